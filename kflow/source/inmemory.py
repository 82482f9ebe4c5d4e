"""In-memory implementation of RecordSource."""

from copy import deepcopy
from typing import Any

from kflow.exceptions import RecordSourceError
from kflow.source.base import RecordSource, Row


class InMemoryRecordSource(RecordSource):
    """In-memory record source for testing and development.

    Rows are plain dicts shaped like the database tables. Failures can be
    injected with fail_next() to exercise error paths.
    """

    def __init__(self) -> None:
        """Initialize empty tables."""
        self._customers: dict[str, Row] = {}
        self._offers: dict[str, Row] = {}
        self._failures: list[RecordSourceError] = []
        self.calls: list[tuple[str, Any]] = []

    def put_customer(self, row: Row) -> None:
        """Insert or replace a customer row."""
        self._customers[str(row["id"])] = dict(row)

    def put_offer(self, row: Row) -> None:
        """Insert or replace an offer row."""
        self._offers[str(row["id"])] = dict(row)

    def delete_offer(self, offer_id: str) -> Row | None:
        """Physically remove an offer row."""
        return self._offers.pop(offer_id, None)

    def fail_next(self, message: str = "simulated failure", status_code: int = 503) -> None:
        """Make the next query raise RecordSourceError."""
        self._failures.append(RecordSourceError(message, status_code=status_code))

    async def load_customers(self) -> list[Row]:
        self.calls.append(("load_customers", None))
        self._maybe_fail()

        results = []
        for customer in self._customers.values():
            if customer.get("deleted_at"):
                continue
            row = deepcopy(customer)
            row["offers"] = [
                deepcopy(offer)
                for offer in self._offers.values()
                if offer.get("customer_id") == customer["id"] and not offer.get("deleted_at")
            ]
            results.append(row)

        results.sort(key=lambda row: row.get("company_name") or "")
        return results

    async def list_offers(self, customer_id: str) -> list[Row]:
        self.calls.append(("list_offers", customer_id))
        self._maybe_fail()

        results = [
            deepcopy(offer)
            for offer in self._offers.values()
            if offer.get("customer_id") == customer_id and not offer.get("deleted_at")
        ]
        results.sort(key=lambda row: str(row.get("created_at") or ""), reverse=True)
        return results

    def _maybe_fail(self) -> None:
        if self._failures:
            raise self._failures.pop(0)
