"""Tests for macroplay.core.scheduler – the virtual-clock scheduler."""

from __future__ import annotations

from macroplay.core.scheduler import ManualScheduler


class TestManualScheduler:
    def test_fires_only_when_due(self):
        s = ManualScheduler()
        fired = []
        s.call_later(100, lambda: fired.append("a"))
        s.advance(99)
        assert fired == []
        s.advance(1)
        assert fired == ["a"]
        assert s.now == 100

    def test_deadline_order(self):
        s = ManualScheduler()
        fired = []
        s.call_later(50, lambda: fired.append("late"))
        s.call_later(10, lambda: fired.append("early"))
        s.advance(100)
        assert fired == ["early", "late"]

    def test_same_deadline_keeps_insertion_order(self):
        s = ManualScheduler()
        fired = []
        s.call_later(10, lambda: fired.append(1))
        s.call_later(10, lambda: fired.append(2))
        s.advance(10)
        assert fired == [1, 2]

    def test_cancelled_timer_never_fires(self):
        s = ManualScheduler()
        fired = []
        handle = s.call_later(10, lambda: fired.append("x"))
        handle.cancel()
        s.advance(20)
        assert fired == []
        assert s.pending() == 0

    def test_callbacks_can_schedule_within_window(self):
        s = ManualScheduler()
        fired = []

        def first():
            fired.append(s.now)
            s.call_later(5, lambda: fired.append(s.now))

        s.call_later(10, first)
        s.advance(20)
        assert fired == [10, 15]

    def test_run_until_idle(self):
        s = ManualScheduler()
        fired = []
        s.call_later(3000, lambda: fired.append("x"))
        s.run_until_idle()
        assert fired == ["x"]
        assert s.now == 3000
