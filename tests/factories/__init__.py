"""Test factories for creating test data."""

from tests.factories.rows import (
    CustomerRowFactory,
    NotificationFactory,
    OfferRowFactory,
    at,
)

__all__ = [
    "CustomerRowFactory",
    "NotificationFactory",
    "OfferRowFactory",
    "at",
]
