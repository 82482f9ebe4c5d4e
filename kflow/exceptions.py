"""Exception hierarchy for K-Flow.

The realtime core absorbs these at its public boundary; they exist so the
layers underneath can report failures precisely.
"""

from typing import Any


class KFlowError(Exception):
    """Base exception for all K-Flow errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RecordSourceError(KFlowError):
    """Raised when a query against the record source fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details
