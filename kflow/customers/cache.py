"""In-memory caches for customers and their offers.

Both caches hand out immutable records and tuples; all mutation goes through
the methods below, which the reconciliation engine and the expansion
controller own.
"""

from collections.abc import Iterable
from types import MappingProxyType

from kflow.customers.models import CustomerRecord, OfferRecord, collation_key


class CustomerCache:
    """Ordered collection of customers keyed by identity.

    Order is whatever the bulk load delivered (alphabetical by company name);
    inserts are positioned by collation order on top of that.
    """

    def __init__(self) -> None:
        """Initialize empty cache."""
        self._order: list[str] = []
        self._records: dict[str, CustomerRecord] = {}

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, customer_id: object) -> bool:
        return customer_id in self._records

    def get(self, customer_id: str) -> CustomerRecord | None:
        """Get a customer by identity."""
        return self._records.get(customer_id)

    def snapshot(self) -> tuple[CustomerRecord, ...]:
        """Return the customers in display order."""
        return tuple(self._records[cid] for cid in self._order)

    def replace_all(self, records: Iterable[CustomerRecord]) -> None:
        """Replace the whole cache, keeping the given order."""
        self._order = []
        self._records = {}
        for record in records:
            if record.id in self._records:
                continue
            self._order.append(record.id)
            self._records[record.id] = record

    def insert_sorted(self, record: CustomerRecord) -> bool:
        """Insert a customer at its alphabetical position.

        Returns:
            False if a customer with the same identity is already cached
        """
        if record.id in self._records:
            return False

        key = collation_key(record.company_name)
        position = len(self._order)
        for index, cid in enumerate(self._order):
            if collation_key(self._records[cid].company_name) > key:
                position = index
                break

        self._order.insert(position, record.id)
        self._records[record.id] = record
        return True

    def replace(self, record: CustomerRecord) -> bool:
        """Replace a cached customer in place, keeping its position."""
        if record.id not in self._records:
            return False
        self._records[record.id] = record
        return True

    def remove(self, customer_id: str) -> CustomerRecord | None:
        """Remove a customer, returning the removed record."""
        record = self._records.pop(customer_id, None)
        if record is not None:
            self._order.remove(customer_id)
        return record

    def adjust_active_count(self, customer_id: str, delta: int) -> int | None:
        """Shift a customer's active-offer count, never going below zero.

        Returns:
            The new count, or None if the customer is not cached
        """
        record = self._records.get(customer_id)
        if record is None:
            return None
        count = max(0, record.active_offer_count + delta)
        self._records[customer_id] = record.model_copy(
            update={"active_offer_count": count}
        )
        return count

    def set_active_count(self, customer_id: str, count: int) -> None:
        """Overwrite a customer's active-offer count after a resync."""
        record = self._records.get(customer_id)
        if record is not None:
            self._records[customer_id] = record.model_copy(
                update={"active_offer_count": max(0, count)}
            )


def sort_newest_first(offers: Iterable[OfferRecord]) -> list[OfferRecord]:
    """Order offers by creation time, newest first."""
    return sorted(offers, key=lambda offer: offer.created_at, reverse=True)


class OfferCache:
    """Per-customer offer sequences, newest first.

    A customer with no entry has never been loaded; an empty entry means the
    customer was loaded and has no visible offers.
    """

    def __init__(self) -> None:
        """Initialize empty cache."""
        self._entries: dict[str, list[OfferRecord]] = {}

    def __contains__(self, customer_id: object) -> bool:
        return customer_id in self._entries

    def get(self, customer_id: str) -> tuple[OfferRecord, ...] | None:
        """Get a customer's offers, or None when never loaded."""
        entry = self._entries.get(customer_id)
        return tuple(entry) if entry is not None else None

    def find(self, customer_id: str, offer_id: str) -> OfferRecord | None:
        """Find a cached offer by identity."""
        for offer in self._entries.get(customer_id, ()):
            if offer.id == offer_id:
                return offer
        return None

    def locate(self, offer_id: str) -> OfferRecord | None:
        """Find a cached offer by identity across all customers."""
        for entry in self._entries.values():
            for offer in entry:
                if offer.id == offer_id:
                    return offer
        return None

    def snapshot(self) -> MappingProxyType[str, tuple[OfferRecord, ...]]:
        """Read-only view of all entries."""
        return MappingProxyType(
            {cid: tuple(entry) for cid, entry in self._entries.items()}
        )

    def replace_entry(self, customer_id: str, offers: Iterable[OfferRecord]) -> None:
        """Replace a customer's whole entry with an authoritative list."""
        self._entries[customer_id] = sort_newest_first(offers)

    def drop_entry(self, customer_id: str) -> bool:
        """Forget a customer's entry entirely."""
        return self._entries.pop(customer_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def upsert(self, offer: OfferRecord) -> OfferRecord | None:
        """Insert an offer at its newest-first position or replace a duplicate.

        Creates the customer's entry when missing.

        Returns:
            The replaced offer when the identity was already cached
        """
        entry = self._entries.setdefault(offer.customer_id, [])
        for index, existing in enumerate(entry):
            if existing.id == offer.id:
                entry[index] = offer
                return existing

        entry.insert(self._position_for(entry, offer), offer)
        return None

    def replace_in_place(self, offer: OfferRecord) -> OfferRecord | None:
        """Replace a cached offer without moving it.

        Returns:
            The previous offer, or None when the offer is not cached
        """
        entry = self._entries.get(offer.customer_id)
        if entry is None:
            return None
        for index, existing in enumerate(entry):
            if existing.id == offer.id:
                entry[index] = offer
                return existing
        return None

    def remove(self, customer_id: str, offer_id: str) -> OfferRecord | None:
        """Remove an offer, returning it when it was cached."""
        entry = self._entries.get(customer_id)
        if entry is None:
            return None
        for index, existing in enumerate(entry):
            if existing.id == offer_id:
                return entry.pop(index)
        return None

    def active_count(self, customer_id: str) -> int:
        """Count cached offers of a customer with an open outcome."""
        return sum(1 for offer in self._entries.get(customer_id, ()) if offer.is_active)

    @staticmethod
    def _position_for(entry: list[OfferRecord], offer: OfferRecord) -> int:
        # first strictly older offer; equal timestamps keep arrival order
        for index, existing in enumerate(entry):
            if existing.created_at < offer.created_at:
                return index
        return len(entry)

