"""DriftCorrector: keeps managed media streams on the shared live timeline.

Everyone should be at the same point of the recording at the same instant:

    expected_offset_s = max(0, (server_now_ms - scheduled_start_ms) / 1000)

Behavior:
- First time ``expected_offset_s > 0``: every stream is seeked straight to
  it (never to 0), so late joiners land on the live point. Streams added
  afterwards are anchored on add.
- Every correction interval (default 5s, deliberately coarse to avoid
  visible micro-seeking): one ``expected_offset_s`` snapshot is taken and
  each stream is evaluated independently against it. Drift above the
  threshold (default 0.25s) forces a seek to the expected position.
- A stream reporting paused is resumed. A rejected resume (autoplay policy)
  is logged as PlaybackBlocked and retried on the next tick.
- Errors in one stream never affect another; errors in one tick never
  cancel the next. Without a usable clock offset the tick is skipped.
- Releasing a stream pauses it, clears its source and reloads it so decoder
  and network resources are freed deterministically.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from simulive._constants import (
    DEFAULT_CORRECTION_INTERVAL_S,
    DEFAULT_DRIFT_THRESHOLD_S,
    DEFAULT_PLAY_TIMEOUT_S,
)
from simulive._types import (
    CorrectionAction,
    CorrectionReport,
    PlaybackTarget,
    StreamCorrection,
    epoch_ms,
)
from simulive.exceptions import ClockUnavailableError, PlaybackBlockedError
from simulive.logging import get_logger
from simulive.metrics import (
    playback_blocked_total,
    playback_corrections_total,
    playback_drift_seconds,
)
from simulive.supervision import Supervision, run_periodic

if TYPE_CHECKING:
    from datetime import datetime

    from simulive.clock.server_clock import ClockSyncService
    from simulive.config.settings import PlaybackSettings
    from simulive.playback.media import MediaElement

logger = get_logger("playback.drift")


def expected_offset_s(server_now_ms: float, scheduled_start_ms: float) -> float:
    """Seconds into the recording everyone should be at; never negative."""
    return max(0.0, (server_now_ms - scheduled_start_ms) / 1000.0)


class DriftCorrector:
    """Drift-corrected playback controller for one or more streams.

    Args:
        clock: Server clock providing the corrected "now".
        scheduled_start: Session scheduled start (timeline zero).
        session_id: Session ID for logging.
        drift_threshold_s: Maximum tolerated |position - expected|.
        correction_interval_s: Period of the correction loop.
        play_timeout_s: Upper bound for a single play() attempt.
    """

    def __init__(
        self,
        clock: ClockSyncService,
        scheduled_start: datetime,
        *,
        session_id: str = "",
        drift_threshold_s: float = DEFAULT_DRIFT_THRESHOLD_S,
        correction_interval_s: float = DEFAULT_CORRECTION_INTERVAL_S,
        play_timeout_s: float = DEFAULT_PLAY_TIMEOUT_S,
    ) -> None:
        self._clock = clock
        self._start_ms = epoch_ms(scheduled_start)
        self._session_id = session_id
        self._drift_threshold_s = drift_threshold_s
        self._correction_interval_s = correction_interval_s
        self._play_timeout_s = play_timeout_s

        self._streams: dict[str, MediaElement] = {}
        self._anchored = False
        self._supervision: Supervision | None = None

    @classmethod
    def from_settings(
        cls,
        clock: ClockSyncService,
        scheduled_start: datetime,
        settings: PlaybackSettings,
        session_id: str = "",
    ) -> DriftCorrector:
        return cls(
            clock,
            scheduled_start,
            session_id=session_id,
            drift_threshold_s=settings.drift_threshold_s,
            correction_interval_s=settings.correction_interval_s,
            play_timeout_s=settings.play_timeout_s,
        )

    @property
    def stream_ids(self) -> tuple[str, ...]:
        return tuple(self._streams)

    @property
    def anchored(self) -> bool:
        """True once streams were seeked to the first positive live offset."""
        return self._anchored

    @property
    def drift_threshold_s(self) -> float:
        return self._drift_threshold_s

    @property
    def running(self) -> bool:
        return self._supervision is not None and self._supervision.active

    def expected_offset_s(self) -> float:
        """Current expected timeline position in seconds.

        Raises:
            ClockUnavailableError: If the clock has no usable offset.
        """
        return expected_offset_s(self._clock.now_ms(), self._start_ms)

    def add_stream(self, stream_id: str, element: MediaElement) -> None:
        """Manage a new stream; anchored immediately if already live.

        Raises:
            ValueError: If ``stream_id`` is already managed.
        """
        if stream_id in self._streams:
            msg = f"Stream '{stream_id}' is already managed"
            raise ValueError(msg)
        self._streams[stream_id] = element
        logger.debug("stream_added", session_id=self._session_id, stream_id=stream_id)

        if self._anchored:
            try:
                expected = self.expected_offset_s()
            except ClockUnavailableError:
                return
            self._seek(stream_id, element, expected, reason="anchor")

    async def remove_stream(self, stream_id: str) -> None:
        """Stop managing a stream and release it."""
        element = self._streams.pop(stream_id, None)
        if element is not None:
            _release(stream_id, element)

    def start(self) -> Supervision:
        """Start the correction loop (first tick runs immediately).

        Idempotent while running. Cancelling the handle releases every
        managed stream.
        """
        if self._supervision is not None and not self._supervision.cancelled:
            return self._supervision
        supervision = Supervision(
            f"playback.drift:{self._session_id}", on_cancel=self._release_all
        )
        supervision.add_task(
            asyncio.create_task(
                run_periodic(
                    "playback.drift",
                    self._correction_interval_s,
                    self.correct_once,
                    immediate=True,
                ),
            ),
        )
        self._supervision = supervision
        logger.info(
            "drift_correction_started",
            session_id=self._session_id,
            streams=list(self._streams),
            interval_s=self._correction_interval_s,
        )
        return supervision

    async def stop(self) -> None:
        """Cancel the loop and release all streams."""
        if self._supervision is not None:
            await self._supervision.cancel()
        else:
            await self._release_all()

    async def correct_once(self) -> CorrectionReport | None:
        """Run one correction tick.

        Returns:
            The tick report, or None when the clock is unavailable.
        """
        try:
            expected = self.expected_offset_s()
        except ClockUnavailableError as exc:
            logger.warning(
                "drift_check_skipped",
                session_id=self._session_id,
                reason=exc.reason,
            )
            return None

        if not self._anchored and expected > 0:
            self._anchor_all(expected)

        corrections: list[StreamCorrection] = []
        positions: dict[str, float] = {}
        for stream_id, element in list(self._streams.items()):
            if self._streams.get(stream_id) is not element:
                continue
            correction = await self._correct_stream(stream_id, element, expected)
            corrections.append(correction)
            if correction.position_s is not None:
                positions[stream_id] = correction.position_s

        return CorrectionReport(
            target=PlaybackTarget(expected_offset_s=expected, measured_positions=positions),
            corrections=tuple(corrections),
        )

    def _anchor_all(self, expected: float) -> None:
        for stream_id, element in list(self._streams.items()):
            self._seek(stream_id, element, expected, reason="anchor")
        self._anchored = True
        logger.info(
            "streams_anchored",
            session_id=self._session_id,
            expected_offset_s=round(expected, 3),
            streams=list(self._streams),
        )

    def _seek(self, stream_id: str, element: MediaElement, target: float, *, reason: str) -> bool:
        try:
            element.current_time = target
        except Exception as exc:
            logger.warning(
                "stream_seek_failed",
                session_id=self._session_id,
                stream_id=stream_id,
                reason=reason,
                error=str(exc),
            )
            return False
        return True

    async def _correct_stream(
        self, stream_id: str, element: MediaElement, expected: float
    ) -> StreamCorrection:
        position: float | None = None
        drift: float | None = None
        action = CorrectionAction.NONE
        try:
            position = float(element.current_time)
            drift = abs(position - expected)
            playback_drift_seconds.labels(stream=stream_id).observe(drift)
            if drift > self._drift_threshold_s:
                element.current_time = expected
                action = CorrectionAction.SEEK
                playback_corrections_total.labels(stream=stream_id).inc()
                logger.info(
                    "drift_corrected",
                    session_id=self._session_id,
                    stream_id=stream_id,
                    position_s=round(position, 3),
                    expected_offset_s=round(expected, 3),
                    drift_s=round(drift, 3),
                )
        except Exception as exc:
            logger.warning(
                "stream_correction_failed",
                session_id=self._session_id,
                stream_id=stream_id,
                error=str(exc),
            )
            return StreamCorrection(
                stream_id=stream_id,
                action=CorrectionAction.ERROR,
                position_s=position,
                drift_s=drift,
            )

        resumed, blocked_by = await self._ensure_playing(stream_id, element)
        return StreamCorrection(
            stream_id=stream_id,
            action=action,
            position_s=position,
            drift_s=drift,
            resumed=resumed,
            blocked_by=blocked_by,
        )

    async def _ensure_playing(
        self, stream_id: str, element: MediaElement
    ) -> tuple[bool, PlaybackBlockedError | None]:
        """Resume a paused stream. Returns (resumed, rejection)."""
        try:
            if not element.paused:
                return False, None
        except Exception as exc:
            logger.warning(
                "stream_state_unreadable",
                session_id=self._session_id,
                stream_id=stream_id,
                error=str(exc),
            )
            return False, None

        try:
            await asyncio.wait_for(element.play(), timeout=self._play_timeout_s)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            blocked = PlaybackBlockedError(stream_id, str(exc) or type(exc).__name__)
            blocked.__cause__ = exc
            playback_blocked_total.labels(stream=stream_id).inc()
            logger.info(
                "playback_blocked",
                session_id=self._session_id,
                stream_id=stream_id,
                reason=blocked.reason,
            )
            return False, blocked
        logger.debug("stream_resumed", session_id=self._session_id, stream_id=stream_id)
        return True, None

    async def _release_all(self) -> None:
        streams, self._streams = self._streams, {}
        for stream_id, element in streams.items():
            _release(stream_id, element)
        if streams:
            logger.info(
                "streams_released",
                session_id=self._session_id,
                streams=list(streams),
            )


def _release(stream_id: str, element: MediaElement) -> None:
    """Pause, clear the source and reload so resources are freed now."""
    for step, action in (
        ("pause", element.pause),
        ("clear_src", lambda: setattr(element, "src", "")),
        ("load", element.load),
    ):
        try:
            action()
        except Exception as exc:
            logger.warning("stream_release_failed", stream_id=stream_id, step=step, error=str(exc))
