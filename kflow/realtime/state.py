"""Shared UI state owned by the realtime core.

ExpansionState records which customers show their offers. The
RealtimeUpdateSignal is the "last realtime update" value the engine raises
after a change that expanded rows should re-fetch for; it is an explicit
observable passed to its consumers rather than a process-wide singleton.
"""

from collections.abc import Callable

from kflow.observability.logging import get_logger

logger = get_logger(__name__)

SignalListener = Callable[[int], None]


class ExpansionState:
    """Customer identities whose offer lists are visible.

    Collapsing removes the identity; the offer cache is left alone so the
    next expansion is instant.
    """

    def __init__(self) -> None:
        self._expanded: dict[str, bool] = {}
        self.being_expanded: str | None = None

    def is_expanded(self, customer_id: str) -> bool:
        return self._expanded.get(customer_id, False)

    def expand(self, customer_id: str) -> None:
        self._expanded[customer_id] = True

    def collapse(self, customer_id: str) -> bool:
        """Collapse a customer, returning True if it was expanded."""
        return self._expanded.pop(customer_id, False)

    def expanded_ids(self) -> tuple[str, ...]:
        """Expanded identities in the order they were opened."""
        return tuple(cid for cid, expanded in self._expanded.items() if expanded)


class RealtimeUpdateSignal:
    """Observable timestamp of the last change that needs a re-fetch.

    A value of 0 means "nothing pending". Listeners are called synchronously
    on every change of value, including resets to 0.
    """

    SENTINEL = 0

    def __init__(self) -> None:
        self._value = self.SENTINEL
        self._listeners: list[SignalListener] = []

    @property
    def value(self) -> int:
        return self._value

    def set(self, value: int) -> None:
        """Publish a new value; setting the current value is a no-op."""
        if value == self._value:
            return
        self._value = value
        self._notify()

    def reset_if_unchanged(self, expected: int) -> bool:
        """Reset to the sentinel only if nobody published since `expected`.

        Returns:
            True if the reset happened
        """
        if self._value != expected or expected == self.SENTINEL:
            logger.debug(
                "realtime_signal_reset_skipped",
                expected=expected,
                current=self._value,
            )
            return False
        self.set(self.SENTINEL)
        return True

    def subscribe(self, listener: SignalListener) -> Callable[[], None]:
        """Register a listener, returning a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._value)
            except Exception as exc:
                logger.error(
                    "realtime_signal_listener_failed",
                    value=self._value,
                    error=str(exc),
                )
