"""
Unit tests for the active-time timer.
"""

from src.flow.timer import ActiveTimer


class TestActiveTimer:

    def test_hidden_time_not_counted(self, clock):
        """10s visible, 5s hidden, 3s visible -> 13s."""
        timer = ActiveTimer(clock=clock)
        timer.start()

        clock.advance(10)
        timer.set_visible(False)
        clock.advance(5)
        timer.set_visible(True)
        clock.advance(3)

        assert timer.elapsed == 13
        assert timer.stop() == 13

    def test_loading_time_not_counted(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.start()

        clock.advance(4)
        with timer.loading():
            clock.advance(30)
        clock.advance(1)

        assert timer.elapsed == 5

    def test_nested_loading(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.start()
        with timer.loading():
            with timer.loading():
                clock.advance(10)
            clock.advance(10)
            assert not timer.counting
        clock.advance(2)
        assert timer.elapsed == 2

    def test_stop_freezes(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.start()
        clock.advance(7)
        timer.stop()
        clock.advance(100)
        assert timer.elapsed == 7

    def test_repeated_visibility_events_are_idempotent(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.start()
        clock.advance(2)
        timer.set_visible(True)
        clock.advance(2)
        timer.set_visible(False)
        timer.set_visible(False)
        clock.advance(50)
        assert timer.elapsed == 4

    def test_resume_from_stored_seconds(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.resume_from(120)
        clock.advance(30)
        assert timer.elapsed == 150

    def test_start_resets(self, clock):
        timer = ActiveTimer(clock=clock)
        timer.start()
        clock.advance(9)
        timer.start()
        clock.advance(1)
        assert timer.elapsed == 1
