"""Tests for countdown helpers."""

from __future__ import annotations

from datetime import timedelta

import pytest

from simulive._types import TimeRemaining
from simulive.session.countdown import format_duration, time_remaining
from tests.helpers import BASE_TIME


class TestTimeRemaining:
    def test_breaks_down_days_hours_minutes_seconds(self) -> None:
        start = BASE_TIME + timedelta(days=2, hours=3, minutes=4, seconds=5)

        assert time_remaining(start, BASE_TIME) == TimeRemaining(2, 3, 4, 5)

    def test_floors_partial_seconds(self) -> None:
        start = BASE_TIME + timedelta(seconds=59, milliseconds=999)

        assert time_remaining(start, BASE_TIME) == TimeRemaining(seconds=59)

    def test_zero_once_started(self) -> None:
        remaining = time_remaining(BASE_TIME, BASE_TIME + timedelta(seconds=10))

        assert remaining.is_zero


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0s"),
            (-5, "0s"),
            (45, "45s"),
            (754, "12m 34s"),
            (5025, "1h 23m 45s"),
            (3605, "1h 5s"),
            (59.9, "59s"),
        ],
    )
    def test_format(self, seconds: float, expected: str) -> None:
        assert format_duration(seconds) == expected
