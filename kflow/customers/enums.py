"""Enums for the customer/offer domain."""

from enum import Enum


class EntityKind(str, Enum):
    """Record kinds carried by the change feed.

    Values are the table names the feed channels are named after.
    """

    CUSTOMER = "customers"
    OFFER = "offers"


class ChangeOp(str, Enum):
    """Row operation reported by a change notification."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class CustomerFilter(str, Enum):
    """Status filter applied to the customer list."""

    ALL = "all"
    ACTIVE = "active"
    INACTIVE = "inactive"
