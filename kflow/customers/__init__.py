"""Customer/offer domain: records, enums and caches."""

from kflow.customers.cache import CustomerCache, OfferCache
from kflow.customers.enums import ChangeOp, CustomerFilter, EntityKind
from kflow.customers.models import (
    CustomerRecord,
    OfferRecord,
    is_active_outcome,
    is_soft_delete_transition,
)

__all__ = [
    "ChangeOp",
    "CustomerCache",
    "CustomerFilter",
    "CustomerRecord",
    "EntityKind",
    "OfferCache",
    "OfferRecord",
    "is_active_outcome",
    "is_soft_delete_transition",
]
