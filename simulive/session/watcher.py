"""SessionPhaseWatcher: keeps a session's phase current.

Re-resolves the phase on every push of the session record and, while the
session is SCHEDULED, on a periodic tick (default 1s) so the start instant
is noticed without waiting for a record change. The tick only runs in
SCHEDULED; it is started and cancelled as the phase moves.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from simulive._constants import DEFAULT_PHASE_TICK_INTERVAL_S
from simulive._types import PhasePolicy, SessionPhase
from simulive.logging import get_logger
from simulive.session.phase import PhaseTracker, resolve_facts
from simulive.supervision import Supervision, cancel_and_wait, cancel_task_soon, run_periodic

if TYPE_CHECKING:
    from collections.abc import Callable

    from simulive._types import SessionTimingFacts
    from simulive.session.source import SessionRecordSource

logger = get_logger("session.watcher")


class SessionPhaseWatcher:
    """Watches one session record and derives its phase.

    Args:
        session_id: Session to watch.
        source: Session record subscription.
        now: Current instant (server-corrected when available).
        policy: Phase policy.
        tick_interval_s: Re-evaluation period while SCHEDULED.
        on_change: Called with (previous, current) on each transition.
        on_error: Called with subscription/decode errors.
    """

    def __init__(
        self,
        session_id: str,
        source: SessionRecordSource,
        *,
        now: Callable[[], datetime] | None = None,
        policy: PhasePolicy = PhasePolicy.FLAG,
        tick_interval_s: float = DEFAULT_PHASE_TICK_INTERVAL_S,
        on_change: Callable[[SessionPhase | None, SessionPhase], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self._session_id = session_id
        self._source = source
        self._now: Callable[[], datetime] = now or (lambda: datetime.now(UTC))
        self._policy = policy
        self._tick_interval_s = tick_interval_s
        self._on_error = on_error
        self._tracker = PhaseTracker(session_id, on_change=on_change)

        self._facts: SessionTimingFacts | None = None
        self._loaded = False
        self._tick_task: asyncio.Task[None] | None = None
        self._supervision: Supervision | None = None

    @property
    def phase(self) -> SessionPhase | None:
        """Phase derived at the last evaluation, None until the first record push."""
        return self._tracker.phase

    @property
    def facts(self) -> SessionTimingFacts | None:
        return self._facts

    @property
    def loaded(self) -> bool:
        """True once the first record push arrived."""
        return self._loaded

    @property
    def is_ticking(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def start(self) -> Supervision:
        """Subscribe to the session record. Idempotent while running."""
        if self._supervision is not None and not self._supervision.cancelled:
            return self._supervision
        supervision = Supervision(f"session.phase:{self._session_id}", on_cancel=self._stop_tick)
        self._supervision = supervision
        supervision.add_detach(
            self._source.watch(self._session_id, self._on_facts, self._on_source_error)
        )
        logger.debug("phase_watch_started", session_id=self._session_id)
        return supervision

    async def stop(self) -> None:
        if self._supervision is not None:
            await self._supervision.cancel()

    def evaluate(self) -> SessionPhase | None:
        """Re-resolve the phase from the last facts and the current time."""
        if not self._loaded:
            return None
        resolved = resolve_facts(self._facts, self._now(), policy=self._policy)
        self._tracker.observe(resolved)
        self._update_tick()
        return resolved

    def _on_facts(self, facts: SessionTimingFacts | None) -> None:
        if self._supervision is None or self._supervision.cancelled:
            return
        if facts is None:
            logger.warning("session_record_missing", session_id=self._session_id)
        self._facts = facts
        self._loaded = True
        self.evaluate()

    def _on_source_error(self, exc: Exception) -> None:
        logger.warning("session_record_error", session_id=self._session_id, error=str(exc))
        if self._on_error is not None:
            self._on_error(exc)

    def _update_tick(self) -> None:
        scheduled = self._tracker.phase is SessionPhase.SCHEDULED
        if scheduled and not self.is_ticking:
            if self._supervision is None or self._supervision.cancelled:
                return
            self._tick_task = asyncio.create_task(
                run_periodic("session.phase.tick", self._tick_interval_s, self._tick),
            )
        elif not scheduled:
            cancel_task_soon(self._tick_task)
            self._tick_task = None

    async def _tick(self) -> None:
        self.evaluate()

    async def _stop_tick(self) -> None:
        await cancel_and_wait(self._tick_task)
        self._tick_task = None
