"""
Active-time timer.

Accumulates seconds only while the learner can actually see the activity.
Hidden or unfocused time is not counted, and neither is time spent waiting
on a loading collaborator call.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, Iterator


class ActiveTimer:
    """Wall-clock accumulator that pauses while hidden or loading."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._accumulated = 0.0
        self._mark: float | None = None
        self._running = False
        self._visible = True
        self._loading = 0

    @property
    def counting(self) -> bool:
        return self._running and self._visible and self._loading == 0

    @property
    def elapsed(self) -> float:
        """Active seconds so far."""
        if self.counting and self._mark is not None:
            return self._accumulated + (self._clock() - self._mark)
        return self._accumulated

    def start(self) -> None:
        """Start from zero. Used when a new activity instance begins."""
        self._accumulated = 0.0
        self._running = True
        self._visible = True
        self._loading = 0
        self._mark = self._clock()

    def resume_from(self, seconds: float) -> None:
        """Continue a resumed session from its stored active time."""
        self.start()
        self._accumulated = seconds

    def stop(self) -> float:
        self._freeze()
        self._running = False
        return self._accumulated

    def set_visible(self, visible: bool) -> None:
        if visible == self._visible:
            return
        if not visible:
            self._freeze()
            self._visible = False
        else:
            self._visible = True
            self._thaw()

    @contextmanager
    def loading(self) -> Iterator[None]:
        """Exclude the wrapped block from active time."""
        self._freeze()
        self._loading += 1
        try:
            yield
        finally:
            self._loading -= 1
            self._thaw()

    def _freeze(self) -> None:
        if self.counting and self._mark is not None:
            self._accumulated += self._clock() - self._mark
        self._mark = None

    def _thaw(self) -> None:
        if self.counting:
            self._mark = self._clock()
