"""Core types for Simulive.

This module defines enums, dataclasses, and time helpers used by all engine
components. Changes here affect the entire system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from simulive.exceptions import PlaybackBlockedError

P = TypeVar("P")


class SessionPhase(Enum):
    """Client-visible phase of a session.

    Derived from (is_live flag, scheduled start, now). Never persisted.

    Usual progression:
        SCHEDULED -> LIVE (flag flips on)
        SCHEDULED -> ENDED (start elapses without the flag)
        LIVE -> ENDED (flag flips off)
    Setting the flag on an ENDED session makes it LIVE again.
    """

    SCHEDULED = "scheduled"
    LIVE = "live"
    ENDED = "ended"


class PhasePolicy(Enum):
    """Which inputs may move a session into LIVE.

    - FLAG: only the externally-set is_live flag (an un-flagged session is
      ENDED as soon as its start passes).
    - SCHEDULE: the flag, or being inside [scheduled_start, scheduled_end).
    """

    FLAG = "flag"
    SCHEDULE = "schedule"


class CorrectionAction(Enum):
    """What a correction tick did to a stream's position."""

    NONE = "none"
    SEEK = "seek"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ClockOffset:
    """Local-to-server clock offset.

    ``server_ms ~= local_ms + offset_ms``. Only trusted for the cache TTL
    after ``computed_at_ms`` (local epoch ms); ``valid`` turns False once the
    value is past the fallback horizon and a resync failed.
    """

    offset_ms: int
    computed_at_ms: float
    valid: bool = True

    def age_ms(self, local_now_ms: float) -> float:
        """Milliseconds elapsed since the offset was computed."""
        return local_now_ms - self.computed_at_ms


@dataclass(frozen=True, slots=True)
class SessionTimingFacts:
    """Timing fields of a session record (owned by the external store)."""

    scheduled_start: datetime
    scheduled_end: datetime | None = None
    is_live: bool = False


@dataclass(frozen=True, slots=True)
class PlaybackTarget:
    """Expected shared-timeline position and what each stream reported."""

    expected_offset_s: float
    measured_positions: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class StreamCorrection:
    """Outcome of one correction tick for a single stream."""

    stream_id: str
    action: CorrectionAction
    position_s: float | None = None
    drift_s: float | None = None
    resumed: bool = False
    blocked_by: PlaybackBlockedError | None = None

    @property
    def blocked(self) -> bool:
        """True if resuming the stream was rejected this tick."""
        return self.blocked_by is not None


@dataclass(frozen=True, slots=True)
class CorrectionReport:
    """Outcome of one correction tick across all managed streams."""

    target: PlaybackTarget
    corrections: tuple[StreamCorrection, ...] = ()

    def for_stream(self, stream_id: str) -> StreamCorrection | None:
        for correction in self.corrections:
            if correction.stream_id == stream_id:
                return correction
        return None


@dataclass(frozen=True)
class FeedRecord(Generic[P]):
    """A record of a live feed (chat message, poll, presence, ...).

    Identity is ``id``; total order is ``(order_key, id)``.
    """

    id: str
    order_key: datetime
    payload: P

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.order_key, self.id)


@dataclass(frozen=True, slots=True)
class FeedCursor:
    """Value cursor for history pagination, tie-broken by record id."""

    order_key: datetime
    record_id: str


@dataclass(frozen=True, slots=True)
class TimeRemaining:
    """Countdown until a scheduled start."""

    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def is_zero(self) -> bool:
        return self.days == 0 and self.hours == 0 and self.minutes == 0 and self.seconds == 0


def to_utc(value: datetime | str | float | int) -> datetime:
    """Normalize an instant to an aware UTC datetime.

    Accepts aware/naive datetimes (naive is assumed UTC), ISO-8601 strings
    and epoch milliseconds.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, int | float):
        return from_epoch_ms(value)
    else:
        msg = f"Unsupported instant type: {type(value).__name__}"
        raise TypeError(msg)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def epoch_ms(value: datetime) -> float:
    """Epoch milliseconds of an instant."""
    return to_utc(value).timestamp() * 1000.0


def from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=UTC)
