"""Test factories for customer/offer rows and change notifications."""

import itertools
from datetime import UTC, datetime, timedelta
from typing import Any

_ids = itertools.count(1)

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def at(minutes: int) -> str:
    """ISO timestamp `minutes` after the base time."""
    return (BASE_TIME + timedelta(minutes=minutes)).isoformat()


class CustomerRowFactory:
    """Factory for customer table rows."""

    @staticmethod
    def create(
        *,
        id: str | None = None,
        company_name: str = "Acme AE",
        email: str = "info@acme.gr",
        telephone: str = "2101234567",
        status: str = "active",
        customer_type: str = "Εταιρεία",
        address: str = "Ερμού 1",
        town: str = "Αθήνα",
        postal_code: str = "10563",
        afm: str = "099999999",
        created_at: str | None = None,
        deleted_at: str | None = None,
        offers: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Create a customer row with sensible defaults.

        Nested offers are only included when given, as in a bulk-load row.
        """
        row: dict[str, Any] = {
            "id": id or f"cust-{next(_ids)}",
            "company_name": company_name,
            "email": email,
            "telephone": telephone,
            "status": status,
            "customer_type": customer_type,
            "address": address,
            "town": town,
            "postal_code": postal_code,
            "afm": afm,
            "created_at": created_at or at(0),
            "deleted_at": deleted_at,
        }
        if offers is not None:
            row["offers"] = offers
        return row


class OfferRowFactory:
    """Factory for offer table rows."""

    @staticmethod
    def create(
        *,
        id: str | None = None,
        customer_id: str = "cust-1",
        created_at: str | None = None,
        amount: float | None = 1000.0,
        offer_result: str | None = "pending",
        result: str | None = None,
        requirements: str | None = "Τοποθέτηση κουφωμάτων",
        source: str = "Email",
        our_comments: str | None = None,
        deleted_at: str | None = None,
    ) -> dict[str, Any]:
        """Create an offer row with sensible defaults (active, no outcome)."""
        return {
            "id": id or f"offer-{next(_ids)}",
            "customer_id": customer_id,
            "created_at": created_at or at(0),
            "amount": amount,
            "offer_result": offer_result,
            "result": result,
            "requirements": requirements,
            "source": source,
            "our_comments": our_comments,
            "deleted_at": deleted_at,
        }


class NotificationFactory:
    """Factory for raw change-feed notifications.

    Mirrors the feed's shape: the side that does not exist is an empty dict.
    """

    @staticmethod
    def insert(table: str, new: dict[str, Any]) -> dict[str, Any]:
        return {"eventType": "INSERT", "table": table, "new": new, "old": {}}

    @staticmethod
    def update(
        table: str, new: dict[str, Any], old: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return {"eventType": "UPDATE", "table": table, "new": new, "old": old or {}}

    @staticmethod
    def delete(table: str, old: dict[str, Any]) -> dict[str, Any]:
        return {"eventType": "DELETE", "table": table, "new": {}, "old": old}

    @staticmethod
    def soft_delete(table: str, row: dict[str, Any], deleted_at: str | None = None) -> dict[str, Any]:
        """UPDATE moving deleted_at from unset to set."""
        old = {**row, "deleted_at": None}
        new = {**row, "deleted_at": deleted_at or at(60)}
        return {"eventType": "UPDATE", "table": table, "new": new, "old": old}
