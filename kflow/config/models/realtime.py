"""Timing configuration for realtime reconciliation and row highlighting."""

from pydantic import BaseModel, Field


class RealtimeConfig(BaseModel):
    """Debounce and guard delays used by the reconciliation engine."""

    refetch_debounce_ms: int = Field(
        default=100,
        ge=0,
        description="Delay before a scheduled re-fetch signal fires",
    )
    signal_reset_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Delay before the last-update signal is reset to 0",
    )
    expanding_marker_ms: int = Field(
        default=500,
        ge=0,
        description="How long a customer stays marked as being expanded",
    )


class HighlightConfig(BaseModel):
    """Row highlight pulse policy."""

    cooldown_ms: int = Field(
        default=3000,
        ge=0,
        description="Minimum gap between two pulses of the same row",
    )
    visible_ms: int = Field(
        default=1200,
        gt=0,
        description="How long a granted pulse stays visible",
    )
    prune_threshold: int = Field(
        default=100,
        gt=0,
        description="Prune the last-pulse map when it grows beyond this size",
    )
    prune_age_ms: int = Field(
        default=60000,
        gt=0,
        description="Entries older than this are dropped when pruning",
    )
