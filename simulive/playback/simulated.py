"""SimulatedMediaElement: clock-driven stand-in for a real player.

Advances its position with an injectable monotonic clock, can stall (as if
rebuffering), can run at a skewed rate, and can reject ``play()`` the way a
browser rejects autoplay without a user gesture. Used by the ``simulate``
CLI command and by tests.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable


class AutoplayBlocked(RuntimeError):
    """Raised by play() while autoplay is not allowed."""


class SimulatedMediaElement:
    """In-process media element.

    Args:
        src: Source URL.
        clock: Monotonic clock in seconds.
        rate: Playback rate (1.0 = real time).
        autoplay_allowed: When False, play() raises AutoplayBlocked.
    """

    def __init__(
        self,
        src: str = "",
        *,
        clock: Callable[[], float] | None = None,
        rate: float = 1.0,
        autoplay_allowed: bool = True,
    ) -> None:
        self._clock: Callable[[], float] = clock or time.monotonic
        self._src = src
        self._rate = rate
        self._autoplay_allowed = autoplay_allowed
        self._position = 0.0
        self._anchor = self._clock()
        self._paused = True
        self.seek_count = 0
        self.load_count = 0

    @property
    def current_time(self) -> float:
        if self._paused:
            return self._position
        elapsed = max(0.0, self._clock() - self._anchor)
        return self._position + elapsed * self._rate

    @current_time.setter
    def current_time(self, value: float) -> None:
        self._position = max(0.0, float(value))
        self._anchor = self._clock()
        self.seek_count += 1

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def src(self) -> str:
        return self._src

    @src.setter
    def src(self, value: str) -> None:
        self._src = value

    @property
    def autoplay_allowed(self) -> bool:
        return self._autoplay_allowed

    def allow_autoplay(self, allowed: bool = True) -> None:
        """Simulate (or revoke) the user gesture that unblocks playback."""
        self._autoplay_allowed = allowed

    async def play(self) -> None:
        if not self._src:
            msg = "no source to play"
            raise RuntimeError(msg)
        if not self._autoplay_allowed:
            msg = "play() failed because the user didn't interact with the document first"
            raise AutoplayBlocked(msg)
        if self._paused:
            self._anchor = self._clock()
            self._paused = False

    def pause(self) -> None:
        if not self._paused:
            self._position = self.current_time
            self._paused = True

    def load(self) -> None:
        self._position = 0.0
        self._anchor = self._clock()
        self._paused = True
        self.load_count += 1

    def stall(self, seconds: float) -> None:
        """Freeze the position for ``seconds`` while staying un-paused."""
        self._position = self.current_time
        self._anchor = self._clock() + seconds
