"""Tests for SimulatedMediaElement."""

from __future__ import annotations

import pytest

from simulive.playback.media import MediaElement
from simulive.playback.simulated import AutoplayBlocked, SimulatedMediaElement
from tests.helpers import FakeClock


class TestSimulatedMediaElement:
    def test_satisfies_media_protocol(self) -> None:
        assert isinstance(SimulatedMediaElement("a.mp4"), MediaElement)

    async def test_position_advances_only_while_playing(self) -> None:
        clock = FakeClock()
        element = SimulatedMediaElement("a.mp4", clock=clock)

        clock.advance(5.0)
        assert element.current_time == 0.0

        await element.play()
        clock.advance(2.0)
        assert element.current_time == pytest.approx(2.0)

        element.pause()
        clock.advance(3.0)
        assert element.current_time == pytest.approx(2.0)

    async def test_rate_skews_position(self) -> None:
        clock = FakeClock()
        element = SimulatedMediaElement("a.mp4", clock=clock, rate=0.5)
        await element.play()

        clock.advance(10.0)

        assert element.current_time == pytest.approx(5.0)

    async def test_seek_sets_position(self) -> None:
        clock = FakeClock()
        element = SimulatedMediaElement("a.mp4", clock=clock)
        await element.play()

        element.current_time = 100.0
        clock.advance(1.0)

        assert element.current_time == pytest.approx(101.0)
        assert element.seek_count == 1

    async def test_stall_freezes_position(self) -> None:
        clock = FakeClock()
        element = SimulatedMediaElement("a.mp4", clock=clock)
        await element.play()
        clock.advance(1.0)

        element.stall(2.0)
        clock.advance(1.5)
        assert element.current_time == pytest.approx(1.0)

        clock.advance(1.5)
        assert element.current_time == pytest.approx(2.0)
        assert not element.paused

    async def test_autoplay_block(self) -> None:
        element = SimulatedMediaElement("a.mp4", autoplay_allowed=False)

        with pytest.raises(AutoplayBlocked):
            await element.play()
        assert element.paused

        element.allow_autoplay()
        await element.play()
        assert not element.paused

    async def test_play_without_source_fails(self) -> None:
        element = SimulatedMediaElement()

        with pytest.raises(RuntimeError):
            await element.play()

    async def test_load_resets(self) -> None:
        clock = FakeClock()
        element = SimulatedMediaElement("a.mp4", clock=clock)
        await element.play()
        clock.advance(4.0)

        element.src = ""
        element.load()

        assert element.paused
        assert element.current_time == 0.0
        assert element.load_count == 1
