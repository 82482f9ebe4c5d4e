"""Expansion controller: lazy loading of per-customer offer lists.

Offer lists are fetched the first time a customer is expanded and kept
when it collapses. A full fetch always replaces the customer's entry; it is
the authoritative resync that corrects drift from incremental patches.
"""

from collections.abc import Callable
from types import MappingProxyType

from kflow.config.models.realtime import RealtimeConfig
from kflow.customers.cache import CustomerCache, OfferCache
from kflow.customers.mapping import map_offer_rows
from kflow.observability.logging import get_logger
from kflow.observability.metrics import OFFER_FETCHES
from kflow.realtime.state import ExpansionState, RealtimeUpdateSignal
from kflow.realtime.timers import Scheduler, TaskTracker
from kflow.source.base import RecordSource

logger = get_logger(__name__)


class ExpansionController:
    """Owns expansion toggling, offer fetches and the re-fetch watcher.

    Overlapping fetches for one customer are ordered by a per-customer
    generation counter. A result is written only if no later-started fetch
    has written one already, so a failed newer fetch does not discard an
    older successful one. Only the most recently started fetch clears the
    loading flag. Results for customers no longer cached are dropped.
    """

    def __init__(
        self,
        customers: CustomerCache,
        offers: OfferCache,
        expansion: ExpansionState,
        signal: RealtimeUpdateSignal,
        source: RecordSource,
        scheduler: Scheduler,
        tasks: TaskTracker,
        config: RealtimeConfig | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            customers: Customer cache (active counts are resynced on fetch)
            offers: Offer cache the fetches write into
            expansion: Expanded customers
            signal: Last-update signal to watch
            source: Remote record source
            scheduler: Clock and timer source
            tasks: Tracker for background fetches
            config: Timing configuration
        """
        self._customers = customers
        self._offers = offers
        self._expansion = expansion
        self._signal = signal
        self._source = source
        self._scheduler = scheduler
        self._tasks = tasks
        self._config = config or RealtimeConfig()
        self._loading: dict[str, bool] = {}
        self._fetch_generation: dict[str, int] = {}
        self._applied_generation: dict[str, int] = {}

    @property
    def loading_offers(self) -> MappingProxyType[str, bool]:
        """Read-only per-customer loading flags."""
        return MappingProxyType(dict(self._loading))

    async def toggle_expansion(self, customer_id: str) -> bool:
        """Expand or collapse a customer's offer list.

        Expanding is optimistic: the customer is marked expanded before its
        offers are fetched. A second toggle of the same customer while it is
        still marked as being expanded is ignored.

        Returns:
            Whether the customer is expanded afterwards
        """
        if self._expansion.being_expanded == customer_id:
            logger.debug("expansion_toggle_ignored", customer_id=customer_id)
            return self._expansion.is_expanded(customer_id)

        if self._expansion.is_expanded(customer_id):
            self._expansion.collapse(customer_id)
            logger.debug("customer_collapsed", customer_id=customer_id)
            return False

        self._expansion.being_expanded = customer_id
        self._expansion.expand(customer_id)
        logger.debug("customer_expanded", customer_id=customer_id)

        try:
            cached = self._offers.get(customer_id)
            if cached is None:
                await self.fetch_offers(customer_id)
            elif not cached:
                # an empty entry may be stale; re-read it
                await self.fetch_offers(customer_id, force_refresh=True)
        finally:
            self._scheduler.call_later(
                self._config.expanding_marker_ms,
                lambda: self._clear_expanding_marker(customer_id),
            )
        return True

    async def fetch_offers(self, customer_id: str, force_refresh: bool = False) -> bool:
        """Load a customer's offers and replace its cache entry.

        Args:
            customer_id: Customer whose offers to load
            force_refresh: Fetch even when an entry is already cached

        Returns:
            True if the cache entry was replaced
        """
        if not customer_id:
            return False
        if not force_refresh and (
            customer_id in self._offers or self._loading.get(customer_id)
        ):
            return False

        generation = self._fetch_generation.get(customer_id, 0) + 1
        self._fetch_generation[customer_id] = generation
        self._loading[customer_id] = True

        try:
            rows = await self._source.list_offers(customer_id)
            offers = map_offer_rows(rows)
        except Exception as exc:
            OFFER_FETCHES.labels(status="error").inc()
            logger.error(
                "offer_fetch_failed",
                customer_id=customer_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        finally:
            if self._fetch_generation.get(customer_id) == generation:
                self._loading[customer_id] = False

        if generation <= self._applied_generation.get(customer_id, 0):
            OFFER_FETCHES.labels(status="superseded").inc()
            logger.debug("offer_fetch_superseded", customer_id=customer_id)
            return False

        if customer_id not in self._customers:
            OFFER_FETCHES.labels(status="discarded").inc()
            logger.info("offer_fetch_discarded", customer_id=customer_id)
            return False

        self._applied_generation[customer_id] = generation
        self._offers.replace_entry(customer_id, offers)
        self._customers.set_active_count(customer_id, self._offers.active_count(customer_id))
        OFFER_FETCHES.labels(status="ok").inc()
        logger.info(
            "offers_fetched",
            customer_id=customer_id,
            count=len(offers),
            forced=force_refresh,
        )
        return True

    def request_refresh(self, customer_id: str) -> None:
        """Start a forced fetch in the background."""
        self._tasks.spawn(
            self.fetch_offers(customer_id, force_refresh=True),
            name=f"refresh-offers-{customer_id}",
        )

    def watch(self) -> Callable[[], None]:
        """Start re-fetching expanded customers on realtime signals.

        Returns:
            Function that stops watching
        """
        return self._signal.subscribe(self._on_realtime_update)

    def _on_realtime_update(self, value: int) -> None:
        if value == RealtimeUpdateSignal.SENTINEL:
            return

        expanded = self._expansion.expanded_ids()
        logger.debug("realtime_refresh", signal=value, expanded=len(expanded))
        for customer_id in expanded:
            self.request_refresh(customer_id)

        self._scheduler.call_later(
            self._config.signal_reset_delay_ms,
            lambda: self._signal.reset_if_unchanged(value),
        )

    def _clear_expanding_marker(self, customer_id: str) -> None:
        if self._expansion.being_expanded == customer_id:
            self._expansion.being_expanded = None
