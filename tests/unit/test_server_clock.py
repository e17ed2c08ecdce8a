"""Tests for ClockSyncService.

Covers the offset formula, the cache TTL, sharing of an in-flight round
trip, the fallback horizon and the supervised resync loop.

All tests use an injectable local clock (epoch ms) for determinism.
"""

from __future__ import annotations

import asyncio

import pytest

from simulive._types import from_epoch_ms
from simulive.clock.server_clock import ClockSyncService, compute_offset_ms
from simulive.config.settings import ClockSettings
from simulive.exceptions import (
    ClockUnavailableError,
    TimestampAuthorityError,
    TransientSyncFailure,
)
from tests.helpers import BASE_MS, FakeAuthority, FakeClock


def _make_service(
    local: FakeClock,
    authority: FakeAuthority,
    **kwargs: float,
) -> ClockSyncService:
    return ClockSyncService(authority, local_clock=local, **kwargs)


class TestComputeOffset:
    def test_round_trip_midpoint_anchoring(self) -> None:
        """200ms round trip, server T: now at t0 + 100ms equals T."""
        offset = compute_offset_ms(BASE_MS, 0.0, 200.0)

        assert offset == round(BASE_MS - 100.0)
        assert 0.0 + 100.0 + offset == pytest.approx(BASE_MS, abs=1.0)

    @pytest.mark.parametrize(
        ("server_ms", "t0", "t1"),
        [
            (BASE_MS, 1_000.0, 1_000.0),
            (BASE_MS, 1_000.0, 1_037.0),
            (1_000.0, BASE_MS, BASE_MS + 350.0),
            (BASE_MS + 0.3, 12.5, 13.3),
        ],
    )
    def test_offset_satisfies_latency_equation(
        self, server_ms: float, t0: float, t1: float
    ) -> None:
        offset = compute_offset_ms(server_ms, t0, t1)
        latency = (t1 - t0) / 2

        assert t0 + latency + offset == pytest.approx(server_ms, abs=0.5)

    def test_offset_can_be_negative(self) -> None:
        assert compute_offset_ms(1_000.0, 5_000.0, 5_000.0) == -4_000

    def test_backwards_local_clock_counts_as_zero_latency(self) -> None:
        assert compute_offset_ms(10_000.0, 2_000.0, 1_900.0) == 8_000


class TestClockSync:
    async def test_sync_sets_offset_and_now(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS], latency_ms=200.0)
        service = _make_service(local, authority)

        offset = await service.sync()

        assert offset.offset_ms == round(BASE_MS - 100.0)
        assert offset.computed_at_ms == 200.0
        assert service.is_synced
        assert service.last_error is None
        # Local clock is at t1 = 200ms: server time is T + 100ms.
        assert service.now_ms() == pytest.approx(BASE_MS + 100.0, abs=1.0)

    async def test_now_returns_aware_datetime(self) -> None:
        local = FakeClock(0.0)
        service = _make_service(local, FakeAuthority(local, [BASE_MS]))
        await service.sync()

        assert service.now() == from_epoch_ms(service.now_ms())
        assert service.now().tzinfo is not None

    async def test_cached_offset_served_within_ttl(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS])
        service = _make_service(local, authority, cache_ttl_s=30.0)

        first = await service.sync()
        local.advance(29_000.0)
        second = await service.sync()

        assert second is first
        assert authority.calls == 1

    async def test_round_trip_after_ttl(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS, BASE_MS + 31_000.0])
        service = _make_service(local, authority, cache_ttl_s=30.0)

        await service.sync()
        local.advance(31_000.0)
        await service.sync()

        assert authority.calls == 2

    async def test_force_skips_cache(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS])
        service = _make_service(local, authority)

        await service.sync()
        await service.sync(force=True)

        assert authority.calls == 2

    async def test_concurrent_syncs_share_one_round_trip(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS], delay_s=0.01)
        service = _make_service(local, authority)

        results = await asyncio.gather(service.sync(), service.sync(), service.sync())

        assert authority.calls == 1
        assert results[0] is results[1] is results[2]

    async def test_now_before_first_sync_raises(self) -> None:
        local = FakeClock(0.0)
        service = _make_service(local, FakeAuthority(local, [BASE_MS]))

        with pytest.raises(ClockUnavailableError):
            service.now_ms()


class TestClockFallback:
    async def test_failure_within_horizon_returns_cached_offset_unchanged(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS])
        service = _make_service(local, authority, cache_ttl_s=30.0, fallback_horizon_s=300.0)
        cached = await service.sync()

        authority.script(TimestampAuthorityError("offline"))
        local.advance(120_000.0)
        result = await service.sync()

        assert result is cached
        assert service.offset is cached
        assert isinstance(service.last_error, TransientSyncFailure)
        assert service.last_error.cached_age_ms == pytest.approx(120_000.0)

    async def test_failure_without_cache_raises_unavailable(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [TimestampAuthorityError("offline")])
        service = _make_service(local, authority)

        with pytest.raises(ClockUnavailableError):
            await service.sync()
        assert not service.is_synced
        assert isinstance(service.last_error, ClockUnavailableError)

    async def test_failure_beyond_horizon_invalidates_offset(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS])
        service = _make_service(local, authority, cache_ttl_s=30.0, fallback_horizon_s=300.0)
        await service.sync()

        authority.script(TimestampAuthorityError("offline"))
        local.advance(301_000.0)
        with pytest.raises(ClockUnavailableError):
            await service.sync()

        assert service.offset is not None
        assert not service.offset.valid
        assert not service.is_synced
        with pytest.raises(ClockUnavailableError):
            service.now_ms()

    async def test_recovers_after_unavailable(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [TimestampAuthorityError("offline")])
        service = _make_service(local, authority)
        with pytest.raises(ClockUnavailableError):
            await service.sync()

        authority.script(BASE_MS)
        await service.sync()

        assert service.is_synced
        assert service.last_error is None

    async def test_round_trip_timeout_counts_as_failure(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS], delay_s=0.5)
        service = _make_service(local, authority, round_trip_timeout_s=0.01)

        with pytest.raises(ClockUnavailableError):
            await service.sync()


class TestClockSupervision:
    async def test_supervise_runs_resync_loop(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [BASE_MS])
        service = _make_service(local, authority, resync_interval_s=0.01)

        handle = service.supervise()
        await asyncio.sleep(0.1)

        assert service.is_supervised
        assert authority.calls >= 2

        await handle.cancel()
        assert not service.is_supervised

    async def test_resync_loop_survives_failures(self) -> None:
        local = FakeClock(0.0)
        authority = FakeAuthority(local, [TimestampAuthorityError("offline")])
        service = _make_service(local, authority, resync_interval_s=0.01)

        handle = service.supervise()
        await asyncio.sleep(0.1)

        assert service.is_supervised
        assert authority.calls >= 2
        await handle.cancel()

    async def test_loop_runs_while_any_handle_is_held(self) -> None:
        local = FakeClock(0.0)
        service = _make_service(local, FakeAuthority(local, [BASE_MS]), resync_interval_s=10.0)

        first = service.supervise()
        second = service.supervise()
        await first.cancel()
        assert service.is_supervised

        await second.cancel()
        assert not service.is_supervised

    async def test_close_stops_loop(self) -> None:
        local = FakeClock(0.0)
        service = _make_service(local, FakeAuthority(local, [BASE_MS]), resync_interval_s=10.0)
        service.supervise()

        await service.close()

        assert not service.is_supervised

    def test_from_settings(self) -> None:
        local = FakeClock(0.0)
        settings = ClockSettings(resync_interval_s=15.0, cache_ttl_s=10.0)
        service = ClockSyncService.from_settings(
            FakeAuthority(local, [BASE_MS]), settings, local_clock=local
        )

        assert service.local_ms() == 0.0
        assert not service.is_supervised
