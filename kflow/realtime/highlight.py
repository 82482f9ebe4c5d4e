"""Row highlight debouncing.

When a change arrives for a customer row, the row pulses briefly. Repeated
changes to the same row inside the cool-down window do not pulse again, so
a burst of events produces a single animation.
"""

from collections.abc import Callable

from kflow.config.models.realtime import HighlightConfig
from kflow.observability.logging import get_logger
from kflow.observability.metrics import HIGHLIGHT_PULSES
from kflow.realtime.timers import Scheduler

logger = get_logger(__name__)

HighlightListener = Callable[[str | None], None]


class HighlightDebouncer:
    """Decides which row is highlighted and for how long.

    Each granted pulse bumps a generation counter; the auto-clear timer only
    clears the highlight if no newer pulse happened since it was scheduled.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: HighlightConfig | None = None,
    ) -> None:
        """Initialize the debouncer.

        Args:
            scheduler: Clock and timer source
            config: Cool-down, visibility and pruning policy
        """
        self._scheduler = scheduler
        self._config = config or HighlightConfig()
        self._last_pulse: dict[str, int] = {}
        self._generation = 0
        self._changed_row_id: str | None = None
        self._listeners: list[HighlightListener] = []

    @property
    def changed_row_id(self) -> str | None:
        """Identity currently highlighted, or None."""
        return self._changed_row_id

    @property
    def tracked(self) -> int:
        """Number of identities with a remembered pulse time."""
        return len(self._last_pulse)

    def last_pulse_ms(self, row_id: str) -> int | None:
        return self._last_pulse.get(row_id)

    def subscribe(self, listener: HighlightListener) -> Callable[[], None]:
        """Register a listener for highlight changes."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def pulse(self, row_id: str | None) -> bool:
        """Highlight a row unless it pulsed within the cool-down window.

        Returns:
            True if the pulse was granted
        """
        if not row_id:
            return False

        now = self._scheduler.now_ms()
        last = self._last_pulse.get(row_id)
        if last is not None and now - last < self._config.cooldown_ms:
            HIGHLIGHT_PULSES.labels(decision="suppressed").inc()
            logger.debug("highlight_suppressed", row_id=row_id, since_ms=now - last)
            return False

        HIGHLIGHT_PULSES.labels(decision="granted").inc()
        self._generation += 1
        generation = self._generation
        self._last_pulse[row_id] = now
        self._set(row_id)
        self._scheduler.call_later(
            self._config.visible_ms, lambda: self._clear(generation)
        )

        if len(self._last_pulse) > self._config.prune_threshold:
            self._prune(now)

        return True

    def _clear(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._set(None)

    def _prune(self, now: int) -> None:
        cutoff = now - self._config.prune_age_ms
        stale = [rid for rid, ts in self._last_pulse.items() if ts < cutoff]
        for rid in stale:
            del self._last_pulse[rid]
        if stale:
            logger.debug("highlight_pruned", removed=len(stale), remaining=len(self._last_pulse))

    def _set(self, row_id: str | None) -> None:
        if row_id == self._changed_row_id:
            return
        self._changed_row_id = row_id
        for listener in list(self._listeners):
            try:
                listener(row_id)
            except Exception as exc:
                logger.error(
                    "highlight_listener_failed",
                    row_id=row_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
