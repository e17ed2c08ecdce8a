"""Session phase derivation.

``resolve_phase`` is a pure function of (is_live flag, scheduled start, now):

    is_live            -> LIVE
    now < start        -> SCHEDULED
    otherwise          -> ENDED

``scheduled_end`` does not participate under the default FLAG policy: an
un-flagged session is ENDED as soon as its start has passed, which fails
toward "ended" rather than showing a stale countdown forever. The SCHEDULE
policy additionally treats ``start <= now < end`` as LIVE for sessions that
should go live on their own.

``PhaseTracker`` remembers the last derived phase so changes can be
notified. It never overrides a derivation: the phase follows the record.
The usual progression is

    SCHEDULED -> LIVE | ENDED
    LIVE      -> ENDED

anything else (the flag set after the start elapsed, or cleared before it)
is still adopted and logged as a reversal.

Pure, synchronous components: no I/O, no timers.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from simulive._types import PhasePolicy, SessionPhase, to_utc
from simulive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from simulive._types import SessionTimingFacts

logger = get_logger("session.phase")

_FORWARD_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.SCHEDULED: frozenset({SessionPhase.LIVE, SessionPhase.ENDED}),
    SessionPhase.LIVE: frozenset({SessionPhase.ENDED}),
    SessionPhase.ENDED: frozenset(),
}


def resolve_phase(
    is_live: bool,
    scheduled_start: datetime,
    now: datetime,
    *,
    policy: PhasePolicy = PhasePolicy.FLAG,
    scheduled_end: datetime | None = None,
) -> SessionPhase:
    """Derive the client-visible phase.

    Args:
        is_live: Externally-set live flag of the session record.
        scheduled_start: Scheduled start instant.
        now: Current (server-corrected when available) instant.
        policy: FLAG (default) or SCHEDULE.
        scheduled_end: Only used by the SCHEDULE policy.

    Returns:
        The derived SessionPhase.
    """
    if is_live:
        return SessionPhase.LIVE

    start = to_utc(scheduled_start)
    current = to_utc(now)
    if current < start:
        return SessionPhase.SCHEDULED

    if (
        policy is PhasePolicy.SCHEDULE
        and scheduled_end is not None
        and current < to_utc(scheduled_end)
    ):
        return SessionPhase.LIVE

    return SessionPhase.ENDED


def resolve_facts(
    facts: SessionTimingFacts | None,
    now: datetime,
    *,
    policy: PhasePolicy = PhasePolicy.FLAG,
) -> SessionPhase:
    """``resolve_phase`` over a session record; a missing record is ENDED."""
    if facts is None:
        return SessionPhase.ENDED
    return resolve_phase(
        facts.is_live,
        facts.scheduled_start,
        now,
        policy=policy,
        scheduled_end=facts.scheduled_end,
    )


def is_forward(current: SessionPhase, target: SessionPhase) -> bool:
    """True if ``current -> target`` is part of the usual progression."""
    return target in _FORWARD_TRANSITIONS[current]


class PhaseTracker:
    """Holds the last derived phase and fires callbacks when it changes.

    Every resolved phase is adopted: the tracker only decides whether a
    change happened and how to log it. A late joiner can first see LIVE or
    ENDED, and a session that ENDED before its flag was set goes LIVE.

    Args:
        session_id: Session ID for logging.
        on_change: Called with (previous, current) after each change.
    """

    def __init__(
        self,
        session_id: str = "",
        on_change: Callable[[SessionPhase | None, SessionPhase], None] | None = None,
    ) -> None:
        self._session_id = session_id
        self._on_change = on_change
        self._phase: SessionPhase | None = None

    @property
    def phase(self) -> SessionPhase | None:
        """Current phase, None before the first observation."""
        return self._phase

    def observe(self, resolved: SessionPhase) -> bool:
        """Adopt a freshly resolved phase.

        Returns:
            True if the phase changed.
        """
        previous = self._phase
        if resolved == previous:
            return False
        self._phase = resolved
        if previous is None or is_forward(previous, resolved):
            logger.info(
                "session_phase_changed",
                session_id=self._session_id,
                previous=previous.value if previous is not None else None,
                phase=resolved.value,
            )
        else:
            logger.warning(
                "session_phase_reverted",
                session_id=self._session_id,
                previous=previous.value,
                phase=resolved.value,
            )
        if self._on_change is not None:
            self._on_change(previous, resolved)
        return True
