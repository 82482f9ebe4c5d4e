"""Customer and offer records as held by the client-side cache."""

import unicodedata
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Outcomes that leave an offer open
ACTIVE_OUTCOMES: frozenset[str] = frozenset({"", "pending", "none"})

# Customer columns patched by a generic UPDATE (merge-by-presence)
CUSTOMER_PATCH_FIELDS: tuple[str, ...] = (
    "company_name",
    "email",
    "telephone",
    "status",
    "customer_type",
    "address",
    "town",
    "postal_code",
    "afm",
)


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(UTC)


def is_active_outcome(result: str | None) -> bool:
    """Return True when an offer outcome is unset, pending or none."""
    return not result or result in ACTIVE_OUTCOMES


def is_soft_deleted(image: Mapping[str, Any] | None) -> bool:
    """Return True when a row image carries a deletion timestamp."""
    return bool(image and image.get("deleted_at"))


def is_soft_delete_transition(
    old: Mapping[str, Any] | None, new: Mapping[str, Any] | None
) -> bool:
    """Return True for an UPDATE that moves deleted_at from unset to set."""
    return not is_soft_deleted(old) and is_soft_deleted(new)


def collation_key(name: str) -> tuple[str, str]:
    """Sort key approximating locale collation for display names.

    Accents and case are ignored at the primary level; ties are broken with
    lowercase ordered before uppercase, so the ordering stays total and
    case-sensitive.
    """
    decomposed = unicodedata.normalize("NFD", name)
    base = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return base.casefold(), name.swapcase()


def _text(value: Any) -> str:
    return "" if value is None else str(value)


class CustomerRecord(BaseModel):
    """Cached customer row with its derived active-offer count."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Customer identity")
    company_name: str = Field(default="", description="Display name")
    email: str = Field(default="", description="Contact email")
    telephone: str = Field(default="", description="Contact phone")
    status: str = Field(default="inactive", description="active or inactive")
    customer_type: str = Field(default="", description="Classification tag")
    address: str = Field(default="", description="Street address")
    town: str = Field(default="", description="Town")
    postal_code: str = Field(default="", description="Postal code")
    afm: str = Field(default="", description="Tax identification number")
    created_at: datetime | None = Field(default=None, description="Creation time")
    active_offer_count: int = Field(
        default=0, ge=0, description="Offers of this customer with an open outcome"
    )

    @classmethod
    def from_row(
        cls, row: Mapping[str, Any], *, active_offer_count: int = 0
    ) -> "CustomerRecord":
        """Build a record from a database row or change-feed image."""
        return cls(
            id=str(row["id"]),
            company_name=_text(row.get("company_name")),
            email=_text(row.get("email")),
            telephone=_text(row.get("telephone")),
            status=row.get("status") or "inactive",
            customer_type=_text(row.get("customer_type")),
            address=_text(row.get("address")),
            town=_text(row.get("town")),
            postal_code=_text(row.get("postal_code")),
            afm=_text(row.get("afm")),
            created_at=row.get("created_at"),
            active_offer_count=active_offer_count,
        )

    def merged_with(self, image: Mapping[str, Any]) -> "CustomerRecord":
        """Return a copy patched with the non-empty fields of an image.

        Empty or missing values in the image never overwrite cached values.
        """
        updates = {
            name: str(image[name])
            for name in CUSTOMER_PATCH_FIELDS
            if image.get(name)
        }
        if not updates:
            return self
        return self.model_copy(update=updates)


class OfferRecord(BaseModel):
    """Cached offer row as shown under an expanded customer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Offer identity")
    customer_id: str = Field(..., description="Owning customer")
    amount: float | None = Field(default=None, description="Offer amount")
    created_at: datetime = Field(..., description="Creation time")
    status: str = Field(default="pending", description="Offer result status")
    result: str = Field(default="", description="Outcome; empty while open")
    requirements: str = Field(default="", description="Customer requirements")
    source: str = Field(default="", description="How the offer came in")
    our_comments: str = Field(default="", description="Internal notes")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "OfferRecord":
        """Build a record from a database row or change-feed image.

        UPDATE images may lack created_at; updated_at or the current time is
        used instead so the record can still be ordered.
        """
        amount = row.get("amount")
        return cls(
            id=str(row["id"]),
            customer_id=str(row["customer_id"]),
            amount=float(amount) if amount not in (None, "") else None,
            created_at=row.get("created_at") or row.get("updated_at") or utc_now(),
            status=row.get("offer_result") or "pending",
            result=_text(row.get("result")),
            requirements=_text(row.get("requirements") or row.get("customer_comments")),
            source=_text(row.get("source")),
            our_comments=_text(row.get("our_comments")),
        )

    @property
    def label(self) -> str:
        """Short display label derived from the identity."""
        return f"Προσφορά {self.id[:4]}"

    @property
    def is_active(self) -> bool:
        return is_active_outcome(self.result)

    def differs_from(self, other: "OfferRecord") -> bool:
        """Return True when any user-visible field differs."""
        return (
            self.amount != other.amount
            or self.status != other.status
            or self.requirements != other.requirements
            or self.result != other.result
        )
