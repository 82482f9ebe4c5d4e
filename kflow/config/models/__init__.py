"""Configuration section models."""

from kflow.config.models.observability import (
    LoggingConfig,
    MetricsConfig,
    ObservabilityConfig,
)
from kflow.config.models.realtime import HighlightConfig, RealtimeConfig
from kflow.config.models.source import SourceConfig

__all__ = [
    "HighlightConfig",
    "LoggingConfig",
    "MetricsConfig",
    "ObservabilityConfig",
    "RealtimeConfig",
    "SourceConfig",
]
