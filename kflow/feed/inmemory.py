"""In-memory implementation of ChangeFeed."""

from collections import defaultdict

from kflow.feed.channel import ChangeFeed, Notification, NotificationHandler, Subscription
from kflow.observability.logging import get_logger

logger = get_logger(__name__)


class _InMemorySubscription(Subscription):
    def __init__(self, feed: "InMemoryChangeFeed", table: str, handler: NotificationHandler) -> None:
        self._feed = feed
        self._table = table
        self._handler = handler

    def unsubscribe(self) -> None:
        self._feed._remove(self._table, self._handler)


class InMemoryChangeFeed(ChangeFeed):
    """Feed whose notifications are published by the caller.

    Used by tests and by tooling that replays captured notifications.
    publish() delivers synchronously, one handler after another.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[NotificationHandler]] = defaultdict(list)

    def subscribe(self, table: str, handler: NotificationHandler) -> Subscription:
        self._handlers[table].append(handler)
        logger.debug("feed_subscribed", table=table, handlers=len(self._handlers[table]))
        return _InMemorySubscription(self, table, handler)

    def subscriber_count(self, table: str) -> int:
        return len(self._handlers.get(table, ()))

    def publish(self, table: str, notification: Notification) -> int:
        """Deliver a notification to every handler of the table.

        The table name is added to the notification when missing.

        Returns:
            Number of handlers the notification was delivered to
        """
        payload = dict(notification)
        payload.setdefault("table", table)

        handlers = list(self._handlers.get(table, ()))
        for handler in handlers:
            handler(payload)
        return len(handlers)

    def _remove(self, table: str, handler: NotificationHandler) -> None:
        handlers = self._handlers.get(table)
        if handlers and handler in handlers:
            handlers.remove(handler)
            logger.debug("feed_unsubscribed", table=table, handlers=len(handlers))
