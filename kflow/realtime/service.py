"""Customer data service: the realtime core's public face.

Owns the customer and offer caches, expansion state, highlight state and
the last-update signal, and exposes them to UI collaborators only through
read-only projections and the mutators below.

Usage:
    service = CustomerDataService(source, feed)
    await service.start()
    ...
    await service.handle_expand_customer("cust-1")
    offers = service.customer_offers["cust-1"]
    ...
    await service.stop()
"""

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from kflow.config.models.realtime import HighlightConfig, RealtimeConfig
from kflow.config.settings import DEFAULT_CUSTOMER_TYPES
from kflow.customers.cache import CustomerCache, OfferCache
from kflow.customers.enums import CustomerFilter, EntityKind
from kflow.customers.mapping import map_customer_rows
from kflow.customers.models import CUSTOMER_PATCH_FIELDS, CustomerRecord, OfferRecord
from kflow.feed.channel import ChangeFeed, Subscription
from kflow.observability.logging import get_logger
from kflow.observability.metrics import CACHED_CUSTOMERS
from kflow.realtime.engine import ApplyResult, ReconciliationEngine
from kflow.realtime.events import ChangeEvent, decode_notification
from kflow.realtime.expansion import ExpansionController
from kflow.realtime.highlight import HighlightDebouncer, HighlightListener
from kflow.realtime.state import ExpansionState, RealtimeUpdateSignal
from kflow.realtime.timers import LoopScheduler, Scheduler, TaskTracker
from kflow.source.base import RecordSource

logger = get_logger(__name__)

SEARCH_ALL = "all"
SEARCH_ALL_COLUMNS = ("company_name", "email", "telephone")


class CustomerDataService:
    """Realtime-synchronized customer list with lazily loaded offers.

    Lifecycle follows the owning view: start() on mount loads customers and
    subscribes to the feed, stop() on unmount unsubscribes and cancels
    everything still pending.
    """

    def __init__(
        self,
        source: RecordSource,
        feed: ChangeFeed | None = None,
        *,
        scheduler: Scheduler | None = None,
        realtime: RealtimeConfig | None = None,
        highlight: HighlightConfig | None = None,
        customer_types: Iterable[str] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            source: Remote record source for bulk and per-customer queries
            feed: Change feed; without one the service only reflects fetches
            scheduler: Clock and timers (defaults to the asyncio loop)
            realtime: Re-fetch timing
            highlight: Row highlight policy
            customer_types: Classification tags offered by the type filter
        """
        self._source = source
        self._feed = feed
        self._scheduler = scheduler or LoopScheduler()
        self._tasks = TaskTracker()

        self._customers = CustomerCache()
        self._offers = OfferCache()
        self._expansion = ExpansionState()
        self._signal = RealtimeUpdateSignal()
        self._highlight = HighlightDebouncer(self._scheduler, highlight)

        self._controller = ExpansionController(
            customers=self._customers,
            offers=self._offers,
            expansion=self._expansion,
            signal=self._signal,
            source=source,
            scheduler=self._scheduler,
            tasks=self._tasks,
            config=realtime,
        )
        self._engine = ReconciliationEngine(
            customers=self._customers,
            offers=self._offers,
            expansion=self._expansion,
            signal=self._signal,
            scheduler=self._scheduler,
            request_fetch=self._controller.request_refresh,
            config=realtime,
        )

        self._customer_types = list(customer_types or DEFAULT_CUSTOMER_TYPES)
        self._active_filter = CustomerFilter.ALL
        self._selected_types: tuple[str, ...] = ()
        self._search_term = ""
        self._search_column = "company_name"

        self._is_loading = False
        self._realtime_status: str | None = None
        self._subscriptions: list[Subscription] = []
        self._unwatch: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return self._unwatch is not None

    async def start(self) -> None:
        """Subscribe to the feed and run the initial bulk load."""
        if self.started:
            logger.warning("customer_service_already_started")
            return

        self._unwatch = self._controller.watch()
        if self._feed is not None:
            self._subscriptions = [
                self._feed.subscribe(
                    EntityKind.CUSTOMER.value,
                    lambda payload: self.handle_notification(EntityKind.CUSTOMER, payload),
                ),
                self._feed.subscribe(
                    EntityKind.OFFER.value,
                    lambda payload: self.handle_notification(EntityKind.OFFER, payload),
                ),
            ]

        await self.reload()
        logger.info("customer_service_started", customers=len(self._customers))

    async def stop(self) -> None:
        """Unsubscribe, cancel timers and background fetches."""
        if not self.started:
            return

        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        self._unwatch()
        self._unwatch = None

        timers = self._scheduler.cancel_all()
        await self._tasks.cancel()
        logger.info("customer_service_stopped", cancelled_timers=timers)

    async def drain(self) -> None:
        """Wait for background fetches to finish."""
        await self._tasks.drain()

    async def reload(self) -> bool:
        """Bulk-load all customers with their offers, replacing both caches.

        This is the only path that recomputes every active-offer count.

        Returns:
            True if the caches were replaced
        """
        self._is_loading = True
        try:
            rows = await self._source.load_customers()
            customers, offers = map_customer_rows(rows)
        except Exception as exc:
            logger.error(
                "customer_load_failed",
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        finally:
            self._is_loading = False

        self._customers.replace_all(customers)
        self._offers.clear()
        for customer_id, customer_offers in offers.items():
            self._offers.replace_entry(customer_id, customer_offers)

        CACHED_CUSTOMERS.set(len(self._customers))
        logger.info(
            "customers_loaded",
            customers=len(customers),
            offers=sum(len(entry) for entry in offers.values()),
        )
        return True

    # ------------------------------------------------------------------
    # Feed entry point
    # ------------------------------------------------------------------

    def handle_notification(
        self, table: EntityKind | str, payload: Mapping[str, Any]
    ) -> ApplyResult | None:
        """Decode and apply one raw notification from a feed channel.

        Returns:
            The engine's result, or None if the notification was dropped
        """
        event = decode_notification(payload, kind=table)
        if event is None:
            return None

        stamp = datetime.fromtimestamp(self._scheduler.now_ms() / 1000)
        self._realtime_status = f"Received {event.op.value} at {stamp:%H:%M:%S}"

        result = self._engine.apply(event)
        self._highlight.pulse(_highlight_target(event))
        return result

    # ------------------------------------------------------------------
    # Projections
    # ------------------------------------------------------------------

    @property
    def customers(self) -> tuple[CustomerRecord, ...]:
        """All cached customers in display order."""
        return self._customers.snapshot()

    @property
    def filtered_customers(self) -> tuple[CustomerRecord, ...]:
        """Customers passing the status, type and search filters."""
        return tuple(c for c in self._customers.snapshot() if self._matches(c))

    @property
    def customer_offers(self) -> MappingProxyType[str, tuple[OfferRecord, ...]]:
        return self._offers.snapshot()

    @property
    def expanded_customer_ids(self) -> tuple[str, ...]:
        return self._expansion.expanded_ids()

    @property
    def customer_being_expanded(self) -> str | None:
        return self._expansion.being_expanded

    @property
    def loading_offers(self) -> MappingProxyType[str, bool]:
        return self._controller.loading_offers

    @property
    def changed_row_id(self) -> str | None:
        """Customer row currently highlighted after a change."""
        return self._highlight.changed_row_id

    @property
    def last_realtime_update(self) -> int:
        return self._signal.value

    @property
    def realtime_status(self) -> str | None:
        return self._realtime_status

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def customer_types(self) -> tuple[str, ...]:
        return tuple(self._customer_types)

    @property
    def active_filter(self) -> CustomerFilter:
        return self._active_filter

    @property
    def selected_customer_types(self) -> tuple[str, ...]:
        return self._selected_types

    @property
    def search(self) -> tuple[str, str]:
        """Current search term and column."""
        return self._search_term, self._search_column

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    def set_active_filter(self, value: CustomerFilter | str) -> None:
        try:
            self._active_filter = CustomerFilter(value)
        except ValueError:
            logger.warning("invalid_customer_filter", value=str(value))

    def set_selected_customer_types(self, types: Iterable[str]) -> None:
        self._selected_types = tuple(types)

    def set_search(self, term: str, column: str = "company_name") -> None:
        """Filter customers by a case-insensitive substring of one column.

        Column "all" searches company name, email and telephone.
        """
        if column != SEARCH_ALL and column not in CUSTOMER_PATCH_FIELDS:
            logger.warning("invalid_search_column", column=column)
            column = "company_name"
        self._search_term = term.strip()
        self._search_column = column

    def subscribe_highlight(self, listener: HighlightListener) -> Callable[[], None]:
        """Register a listener for highlighted-row changes.

        Returns:
            Function that unregisters the listener
        """
        return self._highlight.subscribe(listener)

    async def handle_expand_customer(self, customer_id: str) -> bool:
        """Toggle a customer's offer list, fetching offers on first expansion."""
        return await self._controller.toggle_expansion(customer_id)

    async def fetch_customer_offers(self, customer_id: str, force_refresh: bool = False) -> bool:
        """Load a customer's offers unless cached (or always, when forced)."""
        return await self._controller.fetch_offers(customer_id, force_refresh)

    def _matches(self, customer: CustomerRecord) -> bool:
        if self._active_filter is CustomerFilter.ACTIVE and customer.status != "active":
            return False
        if self._active_filter is CustomerFilter.INACTIVE and customer.status != "inactive":
            return False
        if self._selected_types and customer.customer_type not in self._selected_types:
            return False
        if self._search_term:
            needle = self._search_term.casefold()
            columns = (
                SEARCH_ALL_COLUMNS if self._search_column == SEARCH_ALL else (self._search_column,)
            )
            return any(needle in getattr(customer, col).casefold() for col in columns)
        return True


def _highlight_target(event: ChangeEvent) -> str | None:
    """Customer row to pulse for an event.

    Offer changes pulse their owner only when an after-image names it;
    customer changes pulse the customer itself.
    """
    if event.kind is EntityKind.OFFER:
        owner = (event.new or {}).get("customer_id")
        return str(owner) if owner else None
    return event.customer_id
