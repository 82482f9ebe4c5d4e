"""RecordSource abstract interface."""

from abc import ABC, abstractmethod
from typing import Any

Row = dict[str, Any]


class RecordSource(ABC):
    """Abstract interface for the remote customer/offer tables.

    Implementations raise RecordSourceError on any query failure.
    """

    @abstractmethod
    async def load_customers(self) -> list[Row]:
        """Load all non-deleted customers with their non-deleted offers nested.

        Customers are ordered by company name; each row carries an "offers"
        list.
        """
        pass

    @abstractmethod
    async def list_offers(self, customer_id: str) -> list[Row]:
        """List a customer's non-deleted offers, newest first."""
        pass

    async def close(self) -> None:
        """Release any held resources."""
        return None
