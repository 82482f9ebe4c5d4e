"""Reconciliation engine for customer and offer change events.

Applies decoded change events to the customer and offer caches. The two
feed channels interleave freely, so no handler assumes the other table's
event for the same change has already arrived: inserts tolerate
re-delivery, customer updates merge by presence, and anything the engine
cannot patch reliably is healed by an authoritative re-fetch.

Dispatch is keyed by (entity kind, operation). Offer UPDATE events check
the soft-delete transition before the generic path.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from kflow.config.models.realtime import RealtimeConfig
from kflow.customers.cache import CustomerCache, OfferCache
from kflow.customers.enums import ChangeOp, EntityKind
from kflow.customers.models import (
    CustomerRecord,
    OfferRecord,
    is_active_outcome,
    is_soft_delete_transition,
    is_soft_deleted,
)
from kflow.observability.logging import get_logger
from kflow.observability.metrics import CACHED_CUSTOMERS, EVENTS_APPLIED, REFETCH_SIGNALS
from kflow.realtime.events import ChangeEvent
from kflow.realtime.state import ExpansionState, RealtimeUpdateSignal
from kflow.realtime.timers import Scheduler

logger = get_logger(__name__)

FetchRequest = Callable[[str], None]


@dataclass(frozen=True)
class ApplyResult:
    """What applying one event did to the caches."""

    applied: bool
    """Whether any cache changed."""

    refetch_scheduled: bool = False
    """Whether the debounced re-fetch signal was scheduled."""

    fetch_requested: bool = False
    """Whether an out-of-band offer fetch was requested."""

    reason: str | None = None
    """Why the event was ignored, when it was."""


def _ignored(reason: str, *, fetch_requested: bool = False) -> ApplyResult:
    return ApplyResult(applied=False, fetch_requested=fetch_requested, reason=reason)


class ReconciliationEngine:
    """Applies change events to the customer and offer caches.

    The engine runs synchronously inside the feed callback and never
    raises: a failing event is logged and counted, and the stream goes on.
    """

    def __init__(
        self,
        customers: CustomerCache,
        offers: OfferCache,
        expansion: ExpansionState,
        signal: RealtimeUpdateSignal,
        scheduler: Scheduler,
        request_fetch: FetchRequest,
        config: RealtimeConfig | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            customers: Customer cache to patch
            offers: Offer cache to patch
            expansion: Which customers currently show their offers
            signal: Last-update signal raised when expanded rows must re-fetch
            scheduler: Clock and timer source for the re-fetch debounce
            request_fetch: Starts a forced offer fetch for a customer
            config: Timing configuration
        """
        self._customers = customers
        self._offers = offers
        self._expansion = expansion
        self._signal = signal
        self._scheduler = scheduler
        self._request_fetch = request_fetch
        self._config = config or RealtimeConfig()
        self._refetch_generation = 0

        self._handlers: dict[
            tuple[EntityKind, ChangeOp], Callable[[ChangeEvent], ApplyResult]
        ] = {
            (EntityKind.OFFER, ChangeOp.INSERT): self._offer_inserted,
            (EntityKind.OFFER, ChangeOp.UPDATE): self._offer_updated,
            (EntityKind.OFFER, ChangeOp.DELETE): self._offer_deleted,
            (EntityKind.CUSTOMER, ChangeOp.INSERT): self._customer_inserted,
            (EntityKind.CUSTOMER, ChangeOp.UPDATE): self._customer_updated,
            (EntityKind.CUSTOMER, ChangeOp.DELETE): self._customer_deleted,
        }

    def apply(self, event: ChangeEvent) -> ApplyResult:
        """Apply one decoded event to the caches.

        Args:
            event: Decoded change event

        Returns:
            ApplyResult describing the effect
        """
        handler = self._handlers[(event.kind, event.op)]
        try:
            result = handler(event)
        except Exception as exc:
            EVENTS_APPLIED.labels(
                kind=event.kind.value, op=event.op.value, outcome="error"
            ).inc()
            logger.error(
                "realtime_event_failed",
                kind=event.kind.value,
                op=event.op.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return _ignored("error")

        EVENTS_APPLIED.labels(
            kind=event.kind.value,
            op=event.op.value,
            outcome="applied" if result.applied else "ignored",
        ).inc()
        logger.debug(
            "realtime_event_applied",
            kind=event.kind.value,
            op=event.op.value,
            customer_id=event.customer_id,
            applied=result.applied,
            refetch_scheduled=result.refetch_scheduled,
            fetch_requested=result.fetch_requested,
            reason=result.reason,
        )
        return result

    # ------------------------------------------------------------------
    # Offer events
    # ------------------------------------------------------------------

    def _offer_inserted(self, event: ChangeEvent) -> ApplyResult:
        new = event.new or {}
        customer_id = _customer_ref(new)
        if customer_id is None:
            return _ignored("missing_customer_id")
        if customer_id not in self._customers:
            return _ignored("unknown_customer")

        offer = OfferRecord.from_row(new)
        previous = self._offers.upsert(offer)
        self._shift_count(customer_id, _activity(offer) - _activity(previous))

        if previous is not None:
            logger.debug("offer_insert_redelivered", offer_id=offer.id, customer_id=customer_id)

        return ApplyResult(
            applied=True,
            refetch_scheduled=self._refetch_if_expanded(customer_id),
        )

    def _offer_updated(self, event: ChangeEvent) -> ApplyResult:
        new = event.new or {}
        customer_id = _customer_ref(new)
        if customer_id is None:
            return _ignored("missing_customer_id")

        if is_soft_delete_transition(event.old, new):
            return self._offer_soft_deleted(customer_id, str(new["id"]), event.old, new)

        if customer_id not in self._customers or customer_id not in self._offers:
            # nothing reliable to patch; load the customer's offers instead
            self._request_fetch(customer_id)
            return _ignored("offers_not_loaded", fetch_requested=True)

        if is_soft_deleted(new):
            return _ignored("already_deleted")

        incoming = OfferRecord.from_row(new)
        existing = self._offers.find(customer_id, incoming.id)

        if existing is None:
            # missed the insert; place it as one
            self._offers.upsert(incoming)
            self._shift_count(customer_id, _activity(incoming))
        elif incoming.differs_from(existing):
            # creation time is immutable; keep the cached one so order holds
            incoming = incoming.model_copy(update={"created_at": existing.created_at})
            self._offers.replace_in_place(incoming)
            self._shift_count(customer_id, _activity(incoming) - _activity(existing))
        else:
            return _ignored("unchanged")

        return ApplyResult(
            applied=True,
            refetch_scheduled=self._refetch_if_expanded(customer_id),
        )

    def _offer_soft_deleted(
        self,
        customer_id: str,
        offer_id: str,
        old: dict[str, Any] | None,
        new: dict[str, Any],
    ) -> ApplyResult:
        loaded = customer_id in self._offers
        removed = self._offers.remove(customer_id, offer_id)

        if removed is not None:
            was_active = removed.is_active
        elif not loaded:
            image = old if old and "result" in old else new
            was_active = is_active_outcome(image.get("result"))
        else:
            # entry loaded but offer already gone: repeated delivery
            was_active = False

        if was_active:
            self._shift_count(customer_id, -1)

        return ApplyResult(
            applied=removed is not None or was_active,
            refetch_scheduled=self._refetch_if_expanded(customer_id),
        )

    def _offer_deleted(self, event: ChangeEvent) -> ApplyResult:
        old = event.old or {}
        offer_id = str(old.get("id") or "")
        if not offer_id:
            return _ignored("missing_offer_id")

        customer_id = _customer_ref(old)
        if customer_id is None:
            # minimal before-image: find the owner from the cache
            cached = self._offers.locate(offer_id)
            if cached is None:
                return _ignored("unknown_offer")
            customer_id = cached.customer_id

        loaded = customer_id in self._offers
        removed = self._offers.remove(customer_id, offer_id)
        if removed is not None:
            was_active = removed.is_active
        else:
            was_active = not loaded and is_active_outcome(old.get("result"))

        if was_active:
            self._shift_count(customer_id, -1)

        return ApplyResult(applied=removed is not None or was_active)

    # ------------------------------------------------------------------
    # Customer events
    # ------------------------------------------------------------------

    def _customer_inserted(self, event: ChangeEvent) -> ApplyResult:
        new = event.new or {}
        if is_soft_deleted(new):
            return _ignored("already_deleted")

        record = CustomerRecord.from_row(new, active_offer_count=0)
        if not self._customers.insert_sorted(record):
            return _ignored("duplicate")

        CACHED_CUSTOMERS.set(len(self._customers))
        return ApplyResult(applied=True)

    def _customer_updated(self, event: ChangeEvent) -> ApplyResult:
        new = event.new or {}
        customer_id = str(new["id"])

        if is_soft_delete_transition(event.old, new):
            return self._forget_customer(customer_id)

        existing = self._customers.get(customer_id)
        if existing is None:
            return _ignored("unknown_customer")

        merged = existing.merged_with(new)
        if merged == existing:
            return _ignored("unchanged")

        self._customers.replace(merged)
        return ApplyResult(applied=True)

    def _customer_deleted(self, event: ChangeEvent) -> ApplyResult:
        old = event.old or {}
        return self._forget_customer(str(old["id"]))

    def _forget_customer(self, customer_id: str) -> ApplyResult:
        removed = self._customers.remove(customer_id)
        dropped = self._offers.drop_entry(customer_id)
        collapsed = self._expansion.collapse(customer_id)
        CACHED_CUSTOMERS.set(len(self._customers))

        if removed is None and not (dropped or collapsed):
            return _ignored("unknown_customer")
        return ApplyResult(applied=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _shift_count(self, customer_id: str, delta: int) -> None:
        if delta:
            self._customers.adjust_active_count(customer_id, delta)

    def _refetch_if_expanded(self, customer_id: str) -> bool:
        """Schedule the debounced re-fetch signal when the customer is open.

        Incremental patches are not trusted alone for visible rows: events
        can arrive out of order, so an expanded list is re-read shortly after.
        """
        if not self._expansion.is_expanded(customer_id):
            return False

        self._refetch_generation += 1
        generation = self._refetch_generation
        self._scheduler.call_later(
            self._config.refetch_debounce_ms,
            lambda: self._fire_refetch_signal(generation),
        )
        return True

    def _fire_refetch_signal(self, generation: int) -> None:
        if generation != self._refetch_generation:
            return
        REFETCH_SIGNALS.inc()
        self._signal.set(self._scheduler.now_ms())


def _customer_ref(image: dict[str, Any]) -> str | None:
    value = image.get("customer_id")
    return str(value) if value else None


def _activity(offer: OfferRecord | None) -> int:
    return 1 if offer is not None and offer.is_active else 0
