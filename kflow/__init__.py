"""K-Flow realtime reconciliation core.

Keeps a client-side cache of customers and their offers consistent with the
remote database under an unordered, at-least-once change feed.
"""

__version__ = "0.1.0"
