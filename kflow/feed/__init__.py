"""Change-feed channels delivering table notifications."""

from kflow.feed.channel import ChangeFeed, Notification, NotificationHandler, Subscription
from kflow.feed.inmemory import InMemoryChangeFeed

__all__ = [
    "ChangeFeed",
    "InMemoryChangeFeed",
    "Notification",
    "NotificationHandler",
    "Subscription",
]
