"""Realtime reconciliation of the customer/offer caches."""

from kflow.realtime.engine import ApplyResult, ReconciliationEngine
from kflow.realtime.events import ChangeEvent, decode_notification
from kflow.realtime.expansion import ExpansionController
from kflow.realtime.highlight import HighlightDebouncer
from kflow.realtime.service import CustomerDataService
from kflow.realtime.state import ExpansionState, RealtimeUpdateSignal
from kflow.realtime.timers import LoopScheduler, ManualScheduler, Scheduler, TaskTracker

__all__ = [
    "ApplyResult",
    "ChangeEvent",
    "CustomerDataService",
    "ExpansionController",
    "ExpansionState",
    "HighlightDebouncer",
    "LoopScheduler",
    "ManualScheduler",
    "RealtimeUpdateSignal",
    "ReconciliationEngine",
    "Scheduler",
    "TaskTracker",
    "decode_notification",
]
