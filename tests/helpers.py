"""Shared test helpers.

Usage:
    from tests.helpers import (
        BASE_TIME,
        FakeAuthority,
        FakeClock,
        FakeMediaElement,
        make_record,
    )
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from simulive._types import FeedRecord, from_epoch_ms

# Fixed reference instant used across tests.
BASE_TIME = datetime(2025, 3, 14, 18, 0, 0, tzinfo=UTC)
BASE_MS = BASE_TIME.timestamp() * 1000.0


class FakeClock:
    """Fake clock for deterministic tests.

    Allows manual time advancement without depending on the system clock.
    Units are whatever the consumer expects (seconds or epoch ms).
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, amount: float) -> None:
        self._now += amount

    def set(self, value: float) -> None:
        self._now = value

    def as_datetime(self) -> datetime:
        """Current value read as epoch seconds."""
        return datetime.fromtimestamp(self._now, tz=UTC)


class FakeAuthority:
    """Scripted timestamp authority.

    Each call pops the next response (the last one repeats). A response is
    either an instant in epoch ms or an exception to raise. ``latency_ms``
    advances ``local_clock`` during the call to simulate the round trip.
    """

    def __init__(
        self,
        local_clock: FakeClock,
        responses: list[float | Exception],
        *,
        latency_ms: float = 0.0,
        delay_s: float = 0.0,
    ) -> None:
        self._local_clock = local_clock
        self._responses = list(responses)
        self._latency_ms = latency_ms
        self._delay_s = delay_s
        self.calls = 0

    def script(self, *responses: float | Exception) -> None:
        self._responses = list(responses)

    async def fetch_server_time(self) -> datetime:
        self.calls += 1
        if self._delay_s:
            await asyncio.sleep(self._delay_s)
        else:
            await asyncio.sleep(0)
        self._local_clock.advance(self._latency_ms)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return from_epoch_ms(response)


class FakeMediaElement:
    """Media element double recording every interaction."""

    def __init__(self, position: float = 0.0, *, paused: bool = False, src: str = "video.mp4"):
        self.position = position
        self._paused = paused
        self.src = src
        self.seeks: list[float] = []
        self.play_calls = 0
        self.pause_calls = 0
        self.load_calls = 0
        self.play_error: Exception | None = None
        self.read_error: Exception | None = None

    @property
    def current_time(self) -> float:
        if self.read_error is not None:
            raise self.read_error
        return self.position

    @current_time.setter
    def current_time(self, value: float) -> None:
        self.seeks.append(value)
        self.position = value

    @property
    def paused(self) -> bool:
        return self._paused

    async def play(self) -> None:
        self.play_calls += 1
        if self.play_error is not None:
            raise self.play_error
        self._paused = False

    def pause(self) -> None:
        self.pause_calls += 1
        self._paused = True

    def load(self) -> None:
        self.load_calls += 1


def make_record(
    record_id: str,
    seconds: float,
    payload: Any = None,
) -> FeedRecord[Any]:
    """FeedRecord ordered ``seconds`` after BASE_TIME."""
    return FeedRecord(
        id=record_id,
        order_key=BASE_TIME + timedelta(seconds=seconds),
        payload=payload if payload is not None else record_id,
    )
