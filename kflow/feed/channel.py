"""ChangeFeed abstract interface.

A change feed delivers row-change notifications per table. Delivery is
serial within one table's channel; different tables' channels may
interleave arbitrarily.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from typing import Any

Notification = Mapping[str, Any]
NotificationHandler = Callable[[Notification], None]


class Subscription(ABC):
    """Handle for an active channel subscription."""

    @abstractmethod
    def unsubscribe(self) -> None:
        """Stop delivering notifications to the handler."""
        pass


class ChangeFeed(ABC):
    """Abstract source of per-table change notifications."""

    @abstractmethod
    def subscribe(self, table: str, handler: NotificationHandler) -> Subscription:
        """Deliver every change of `table` to `handler`."""
        pass
