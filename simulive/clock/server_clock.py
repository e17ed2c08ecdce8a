"""ClockSyncService: server-authoritative clock with a cached offset.

A client cannot trust its own clock, so the offset between local time and
server time is estimated with a single timestamp round trip:

    t0 = local time right before the round trip
    t1 = local time right after the response
    latency = (t1 - t0) / 2
    offset_ms = server_ms - (t0 + latency)

and then ``now = local + offset_ms``. The round trip writes and deletes a
document in the store, so it is treated as costly: ``sync()`` serves the
cached offset while it is younger than the cache TTL, concurrent calls share
the one in-flight round trip, and a periodic resync (default 30s) corrects
for skew accumulating over a session.

Failure policy:
- Round trip fails, cached offset younger than the fallback horizon
  (default 5 min): the cached offset is returned unchanged
  (TransientSyncFailure, logged, recorded as ``last_error``).
- Round trip fails, no cached offset or one beyond the horizon:
  ClockUnavailableError. A beyond-horizon offset is marked invalid and
  ``now_ms()`` refuses it until the next successful sync.

Offsets are never clamped here; clamping of the derived playback position
happens in DriftCorrector.

One instance per process (or per engine), injected into consumers.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import TYPE_CHECKING

from simulive._constants import (
    DEFAULT_CLOCK_CACHE_TTL_S,
    DEFAULT_FALLBACK_HORIZON_S,
    DEFAULT_RESYNC_INTERVAL_S,
    DEFAULT_ROUND_TRIP_TIMEOUT_S,
)
from simulive._types import ClockOffset, epoch_ms, from_epoch_ms
from simulive.exceptions import ClockError, ClockUnavailableError, TransientSyncFailure
from simulive.logging import get_logger
from simulive.metrics import clock_offset_ms, clock_round_trip_seconds, clock_syncs_total
from simulive.supervision import Supervision, cancel_and_wait, run_periodic

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from simulive.clock.authority import TimestampAuthority
    from simulive.config.settings import ClockSettings

logger = get_logger("clock.server")


def _local_epoch_ms() -> float:
    return time.time() * 1000.0


def compute_offset_ms(server_ms: float, t0_ms: float, t1_ms: float) -> int:
    """Offset such that ``t0 + latency + offset == server`` (within rounding).

    Latency is half the round trip; a local clock stepping backwards during
    the round trip yields zero latency rather than a negative one.
    """
    latency = max(0.0, (t1_ms - t0_ms) / 2.0)
    return round(server_ms - (t0_ms + latency))


class ClockSyncService:
    """Server-authoritative clock.

    Args:
        authority: Trusted timestamp source.
        resync_interval_s: Period of the supervised resync loop.
        cache_ttl_s: How long an offset is served without a round trip.
        fallback_horizon_s: How long a cached offset may stand in for a
            failed resync.
        round_trip_timeout_s: Upper bound for one round trip.
        local_clock: Local wall clock in epoch ms (injectable for tests).
    """

    def __init__(
        self,
        authority: TimestampAuthority,
        *,
        resync_interval_s: float = DEFAULT_RESYNC_INTERVAL_S,
        cache_ttl_s: float = DEFAULT_CLOCK_CACHE_TTL_S,
        fallback_horizon_s: float = DEFAULT_FALLBACK_HORIZON_S,
        round_trip_timeout_s: float = DEFAULT_ROUND_TRIP_TIMEOUT_S,
        local_clock: Callable[[], float] | None = None,
    ) -> None:
        self._authority = authority
        self._resync_interval_s = resync_interval_s
        self._cache_ttl_ms = cache_ttl_s * 1000.0
        self._fallback_horizon_ms = fallback_horizon_s * 1000.0
        self._round_trip_timeout_s = round_trip_timeout_s
        self._local_clock: Callable[[], float] = local_clock or _local_epoch_ms

        self._offset: ClockOffset | None = None
        self._last_error: ClockError | None = None
        self._in_flight: asyncio.Task[ClockOffset] | None = None
        self._resync_task: asyncio.Task[None] | None = None
        self._supervisors = 0

    @classmethod
    def from_settings(
        cls,
        authority: TimestampAuthority,
        settings: ClockSettings,
        local_clock: Callable[[], float] | None = None,
    ) -> ClockSyncService:
        return cls(
            authority,
            resync_interval_s=settings.resync_interval_s,
            cache_ttl_s=settings.cache_ttl_s,
            fallback_horizon_s=settings.fallback_horizon_s,
            round_trip_timeout_s=settings.round_trip_timeout_s,
            local_clock=local_clock,
        )

    @property
    def offset(self) -> ClockOffset | None:
        """Last computed offset (possibly stale or invalid)."""
        return self._offset

    @property
    def is_synced(self) -> bool:
        """True if a usable offset exists."""
        return self._offset is not None and self._offset.valid

    @property
    def last_error(self) -> ClockError | None:
        """Error of the most recent sync, None after a successful one."""
        return self._last_error

    @property
    def is_supervised(self) -> bool:
        """True while the periodic resync loop is running."""
        return self._resync_task is not None and not self._resync_task.done()

    def local_ms(self) -> float:
        return self._local_clock()

    def now_ms(self) -> float:
        """Estimated server time in epoch ms.

        Raises:
            ClockUnavailableError: If no valid offset exists.
        """
        offset = self._offset
        if offset is None:
            raise ClockUnavailableError("clock has never been synchronized")
        if not offset.valid:
            raise ClockUnavailableError("cached offset is past the fallback horizon")
        return self._local_clock() + offset.offset_ms

    def now(self) -> datetime:
        """Estimated server time as an aware UTC datetime."""
        return from_epoch_ms(self.now_ms())

    async def sync(self, *, force: bool = False) -> ClockOffset:
        """Return a usable offset, running a round trip when needed.

        Args:
            force: Skip the cache TTL check (used by the periodic resync).

        Returns:
            The fresh offset, or the cached one (within TTL, or as fallback
            after a failed round trip).

        Raises:
            ClockUnavailableError: If the round trip failed and no cached
                offset is inside the fallback horizon.
        """
        cached = self._offset
        if (
            not force
            and cached is not None
            and cached.valid
            and cached.age_ms(self._local_clock()) < self._cache_ttl_ms
        ):
            return cached

        if self._in_flight is None or self._in_flight.done():
            self._in_flight = asyncio.create_task(self._round_trip())
            self._in_flight.add_done_callback(_consume_result)
        else:
            logger.debug("clock_sync_joined_in_flight")
        return await asyncio.shield(self._in_flight)

    def supervise(self) -> Supervision:
        """Keep the offset fresh with a periodic resync.

        Reference counted: the resync loop runs while at least one returned
        handle has not been cancelled.
        """
        self._supervisors += 1
        if self._resync_task is None or self._resync_task.done():
            self._resync_task = asyncio.create_task(
                run_periodic("clock.resync", self._resync_interval_s, self._resync_tick),
            )
            logger.info("clock_resync_started", interval_s=self._resync_interval_s)
        return Supervision("clock.resync", on_cancel=self._release_supervisor)

    async def close(self) -> None:
        """Stop the resync loop and any in-flight round trip."""
        self._supervisors = 0
        await cancel_and_wait(self._resync_task)
        self._resync_task = None
        if self._in_flight is not None and not self._in_flight.done():
            self._in_flight.cancel()
        self._in_flight = None

    async def _release_supervisor(self) -> None:
        self._supervisors = max(0, self._supervisors - 1)
        if self._supervisors == 0:
            await cancel_and_wait(self._resync_task)
            self._resync_task = None
            logger.info("clock_resync_stopped")

    async def _resync_tick(self) -> None:
        try:
            await self.sync(force=True)
        except ClockUnavailableError:
            # Already logged; retried on the next interval.
            pass

    async def _round_trip(self) -> ClockOffset:
        t0 = self._local_clock()
        start = time.monotonic()
        try:
            server_time = await asyncio.wait_for(
                self._authority.fetch_server_time(),
                timeout=self._round_trip_timeout_s,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._fallback(exc)
        t1 = self._local_clock()
        clock_round_trip_seconds.observe(time.monotonic() - start)

        result = ClockOffset(
            offset_ms=compute_offset_ms(epoch_ms(server_time), t0, t1),
            computed_at_ms=t1,
        )
        self._offset = result
        self._last_error = None
        clock_offset_ms.set(result.offset_ms)
        clock_syncs_total.labels(result="success").inc()
        logger.debug(
            "clock_synced",
            offset_ms=result.offset_ms,
            round_trip_ms=round(t1 - t0, 1),
        )
        return result

    def _fallback(self, exc: Exception) -> ClockOffset:
        reason = str(exc) or type(exc).__name__
        cached = self._offset
        now = self._local_clock()

        if cached is not None and cached.valid and cached.age_ms(now) <= self._fallback_horizon_ms:
            self._last_error = TransientSyncFailure(reason, cached.age_ms(now))
            clock_syncs_total.labels(result="fallback").inc()
            logger.warning(
                "clock_sync_fallback",
                error=reason,
                cached_offset_ms=cached.offset_ms,
                cached_age_ms=round(cached.age_ms(now)),
            )
            return cached

        if cached is not None and cached.valid:
            self._offset = replace(cached, valid=False)
        error = ClockUnavailableError(reason)
        self._last_error = error
        clock_syncs_total.labels(result="unavailable").inc()
        logger.error("clock_unavailable", error=reason, had_cached=cached is not None)
        raise error from exc


def _consume_result(task: asyncio.Task[ClockOffset]) -> None:
    # Every awaiter may have been cancelled; retrieve the outcome so a
    # failed round trip is never reported as "exception never retrieved".
    if not task.cancelled():
        task.exception()
