"""Prometheus metrics for the realtime reconciliation core."""

from prometheus_client import Counter, Gauge

# Change feed metrics
EVENTS_APPLIED = Counter(
    "kflow_realtime_events_total",
    "Change events handled by the reconciliation engine",
    labelnames=["kind", "op", "outcome"],
)

EVENTS_DROPPED = Counter(
    "kflow_realtime_events_dropped_total",
    "Raw notifications dropped by the decoder",
    labelnames=["reason"],
)

REFETCH_SIGNALS = Counter(
    "kflow_refetch_signals_total",
    "Debounced re-fetch signals fired",
)

# Offer loading metrics
OFFER_FETCHES = Counter(
    "kflow_offer_fetches_total",
    "Offer list fetches by outcome",
    labelnames=["status"],
)

# Highlight metrics
HIGHLIGHT_PULSES = Counter(
    "kflow_highlight_pulses_total",
    "Row highlight requests by decision",
    labelnames=["decision"],
)

# Cache size
CACHED_CUSTOMERS = Gauge(
    "kflow_cached_customers",
    "Number of customers currently held in the cache",
)
