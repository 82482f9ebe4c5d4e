"""Tests for expansion state and the realtime update signal."""

from kflow.realtime.state import ExpansionState, RealtimeUpdateSignal


class TestExpansionState:
    def test_expand_and_collapse(self) -> None:
        state = ExpansionState()
        state.expand("c1")
        state.expand("c2")

        assert state.is_expanded("c1")
        assert state.expanded_ids() == ("c1", "c2")
        assert state.collapse("c1") is True
        assert state.collapse("c1") is False
        assert state.expanded_ids() == ("c2",)

    def test_being_expanded_marker(self) -> None:
        state = ExpansionState()
        assert state.being_expanded is None
        state.being_expanded = "c1"
        assert state.being_expanded == "c1"


class TestRealtimeUpdateSignal:
    def test_starts_at_sentinel(self) -> None:
        assert RealtimeUpdateSignal().value == RealtimeUpdateSignal.SENTINEL == 0

    def test_listeners_notified_on_change(self) -> None:
        signal = RealtimeUpdateSignal()
        seen: list[int] = []
        signal.subscribe(seen.append)

        signal.set(10)
        signal.set(10)
        signal.set(0)

        assert seen == [10, 0]

    def test_unsubscribe(self) -> None:
        signal = RealtimeUpdateSignal()
        seen: list[int] = []
        unsubscribe = signal.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        signal.set(5)
        assert seen == []

    def test_reset_if_unchanged(self) -> None:
        signal = RealtimeUpdateSignal()
        signal.set(100)

        assert signal.reset_if_unchanged(100) is True
        assert signal.value == 0

    def test_reset_skipped_after_newer_value(self) -> None:
        """A reset scheduled for an older value never erases a newer one."""
        signal = RealtimeUpdateSignal()
        signal.set(100)
        signal.set(200)

        assert signal.reset_if_unchanged(100) is False
        assert signal.value == 200

    def test_failing_listener_does_not_block_others(self) -> None:
        signal = RealtimeUpdateSignal()
        seen: list[int] = []

        def broken(_: int) -> None:
            raise RuntimeError("boom")

        signal.subscribe(broken)
        signal.subscribe(seen.append)
        signal.set(3)

        assert seen == [3]
