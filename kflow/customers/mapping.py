"""Mapping of query rows into cached records."""

from collections.abc import Iterable, Mapping
from typing import Any

from kflow.customers.cache import sort_newest_first
from kflow.customers.models import CustomerRecord, OfferRecord, is_soft_deleted


def map_offer_rows(rows: Iterable[Mapping[str, Any]]) -> list[OfferRecord]:
    """Map offer rows to records, dropping soft-deleted ones, newest first."""
    return sort_newest_first(
        OfferRecord.from_row(row) for row in rows if not is_soft_deleted(row)
    )


def map_customer_rows(
    rows: Iterable[Mapping[str, Any]],
) -> tuple[list[CustomerRecord], dict[str, list[OfferRecord]]]:
    """Map bulk-load rows (customers with nested offers) to records.

    Active-offer counts are computed from the nested offers, which makes the
    bulk load the one place where counts are recomputed for every customer.

    Returns:
        Customers in row order, and each customer's offers newest first
    """
    customers: list[CustomerRecord] = []
    offers: dict[str, list[OfferRecord]] = {}

    for row in rows:
        if is_soft_deleted(row):
            continue
        customer_id = str(row["id"])
        nested = [
            {**offer, "customer_id": offer.get("customer_id") or customer_id}
            for offer in row.get("offers") or ()
        ]
        customer_offers = map_offer_rows(nested)
        active = sum(1 for offer in customer_offers if offer.is_active)

        customers.append(CustomerRecord.from_row(row, active_offer_count=active))
        offers[customer_id] = customer_offers

    return customers, offers
