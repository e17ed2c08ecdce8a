"""Media element control surface.

The engine drives players through this small protocol (mirrors an HTML
media element). Every operation may raise (unsupported state, autoplay
policy, network error) and callers must catch locally.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MediaElement(Protocol):
    """A seekable, independently buffering media stream."""

    @property
    def current_time(self) -> float:
        """Reported playback position in seconds."""
        ...

    @current_time.setter
    def current_time(self, value: float) -> None: ...

    @property
    def paused(self) -> bool: ...

    @property
    def src(self) -> str: ...

    @src.setter
    def src(self, value: str) -> None: ...

    async def play(self) -> None:
        """Resume playback. May be rejected (autoplay policy)."""
        ...

    def pause(self) -> None: ...

    def load(self) -> None:
        """Reload the current source (releases decoder state when src is empty)."""
        ...
