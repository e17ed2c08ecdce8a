"""LiveSession: per-session wiring of phase, playback and feed.

Control flow:
- The phase watcher follows the session record (and ticks while SCHEDULED).
- The server clock is synced and kept fresh for the whole session; the
  phase is resolved against server-corrected time once it is available.
- On LIVE: the clock is (re)synced, then the DriftCorrector is started over
  the session's media streams.
- On ENDED: the DriftCorrector is stopped and the streams are released.
  If the session goes LIVE again the released streams get their sources
  back and a new DriftCorrector takes over.
- The feed runs in every phase.

``stop()`` tears everything down in one step and bumps the generation, so a
clock sync or phase task still in flight for this session has no effect
once it completes.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic

from simulive._types import P, SessionPhase
from simulive.exceptions import ClockUnavailableError
from simulive.logging import get_logger
from simulive.playback.drift import DriftCorrector
from simulive.session.countdown import time_remaining
from simulive.session.watcher import SessionPhaseWatcher
from simulive.supervision import Supervision

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Mapping

    from simulive._types import TimeRemaining
    from simulive.clock.server_clock import ClockSyncService
    from simulive.config.settings import SimuliveSettings
    from simulive.feed.live_feed import LiveFeed
    from simulive.playback.media import MediaElement
    from simulive.session.source import SessionRecordSource

logger = get_logger("session.live")


class LiveSession(Generic[P]):
    """One open session.

    Args:
        session_id: Session being viewed.
        clock: Shared server clock.
        records: Session record subscription.
        feed: Live feed of the session.
        streams: Media streams to keep on the shared timeline, by stream id.
        settings: Engine settings.
        on_phase_change: Called with (previous, current) on each transition.
    """

    def __init__(
        self,
        session_id: str,
        *,
        clock: ClockSyncService,
        records: SessionRecordSource,
        feed: LiveFeed[P],
        streams: Mapping[str, MediaElement],
        settings: SimuliveSettings,
        on_phase_change: Callable[[SessionPhase | None, SessionPhase], None] | None = None,
    ) -> None:
        self._session_id = session_id
        self._clock = clock
        self._feed = feed
        self._streams = dict(streams)
        self._sources = {stream_id: element.src for stream_id, element in self._streams.items()}
        self._released = False
        self._settings = settings
        self._on_phase_change = on_phase_change

        self._watcher = SessionPhaseWatcher(
            session_id,
            records,
            now=self.now,
            policy=settings.phase.phase_policy,
            tick_interval_s=settings.phase.tick_interval_s,
            on_change=self._phase_changed,
        )
        self._drift: DriftCorrector | None = None
        self._playback_lock = asyncio.Lock()
        self._clock_supervision: Supervision | None = None
        self._supervision: Supervision | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._generation = 0

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def phase(self) -> SessionPhase | None:
        return self._watcher.phase

    @property
    def watcher(self) -> SessionPhaseWatcher:
        return self._watcher

    @property
    def feed(self) -> LiveFeed[P]:
        return self._feed

    @property
    def drift(self) -> DriftCorrector | None:
        """Active drift corrector, None unless the session is LIVE."""
        return self._drift

    @property
    def running(self) -> bool:
        return self._supervision is not None and not self._supervision.cancelled

    def now(self) -> datetime:
        """Server-corrected time when available, local UTC otherwise."""
        if self._clock.is_synced:
            return self._clock.now()
        return datetime.now(UTC)

    def time_remaining(self) -> TimeRemaining | None:
        """Countdown to the scheduled start, None before the record loads."""
        facts = self._watcher.facts
        if facts is None:
            return None
        return time_remaining(facts.scheduled_start, self.now())

    def start(self) -> Supervision:
        """Start clock sync, phase watching and the feed. Idempotent."""
        if self._supervision is not None and not self._supervision.cancelled:
            return self._supervision
        self._generation += 1
        supervision = Supervision(f"session:{self._session_id}", on_cancel=self._teardown)
        self._supervision = supervision
        self._spawn(self._prime_clock(self._generation))
        self._feed.start()
        self._watcher.start()
        logger.info(
            "session_started",
            session_id=self._session_id,
            streams=list(self._streams),
            policy=self._settings.phase.policy,
        )
        return supervision

    async def stop(self) -> None:
        if self._supervision is not None:
            await self._supervision.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _phase_changed(self, previous: SessionPhase | None, current: SessionPhase) -> None:
        if current is SessionPhase.LIVE:
            self._spawn(self._go_live(self._generation))
        elif current is SessionPhase.ENDED and self._drift is not None:
            self._spawn(self._stop_playback())
        if self._on_phase_change is not None:
            try:
                self._on_phase_change(previous, current)
            except Exception:
                logger.error("phase_callback_failed", session_id=self._session_id, exc_info=True)

    async def _prime_clock(self, generation: int) -> None:
        try:
            await self._clock.sync()
        except ClockUnavailableError as exc:
            logger.warning(
                "session_clock_unavailable", session_id=self._session_id, reason=exc.reason
            )
        if generation != self._generation:
            return
        if self._clock_supervision is None:
            self._clock_supervision = self._clock.supervise()
        # Re-resolve against server time now that it may be available.
        self._watcher.evaluate()

    async def _go_live(self, generation: int) -> None:
        try:
            await self._clock.sync()
        except ClockUnavailableError as exc:
            # The corrector skips ticks until the resync loop recovers.
            logger.warning(
                "session_clock_unavailable", session_id=self._session_id, reason=exc.reason
            )
        async with self._playback_lock:
            if generation != self._generation or self.phase is not SessionPhase.LIVE:
                logger.debug("session_live_start_discarded", session_id=self._session_id)
                return
            facts = self._watcher.facts
            if facts is None or self._drift is not None:
                return
            if self._released:
                self._restore_sources()

            drift = DriftCorrector.from_settings(
                self._clock,
                facts.scheduled_start,
                self._settings.playback,
                session_id=self._session_id,
            )
            for stream_id, element in self._streams.items():
                drift.add_stream(stream_id, element)
            self._drift = drift
            drift.start()

    def _restore_sources(self) -> None:
        for stream_id, element in self._streams.items():
            try:
                element.src = self._sources[stream_id]
                element.load()
            except Exception as exc:
                logger.warning(
                    "stream_restore_failed",
                    session_id=self._session_id,
                    stream_id=stream_id,
                    error=str(exc),
                )
        self._released = False
        logger.info("session_streams_restored", session_id=self._session_id)

    async def _stop_playback(self) -> None:
        async with self._playback_lock:
            drift, self._drift = self._drift, None
            if drift is not None:
                await drift.stop()
                self._released = True
                logger.info("session_playback_stopped", session_id=self._session_id)

    async def _teardown(self) -> None:
        self._generation += 1
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._pending.clear()

        await self._watcher.stop()
        await self._stop_playback()
        await self._feed.stop()
        if self._clock_supervision is not None:
            await self._clock_supervision.cancel()
            self._clock_supervision = None
        logger.info("session_stopped", session_id=self._session_id)
