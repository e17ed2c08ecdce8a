"""Tests for retry_async and backoff_delay."""

from __future__ import annotations

import pytest

from simulive._retry import backoff_delay, is_retryable, retry_async
from simulive.exceptions import DocumentStoreError


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _Flaky:
    """Fails with the scripted errors, then returns ``result``."""

    def __init__(self, errors: list[Exception], result: str = "ok") -> None:
        self._errors = list(errors)
        self._result = result
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return self._result


class TestBackoffDelay:
    def test_doubles_per_attempt(self) -> None:
        delays = [backoff_delay(n, base_delay_s=1.0, max_delay_s=30.0) for n in range(4)]
        assert delays == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max(self) -> None:
        assert backoff_delay(10, base_delay_s=1.0, max_delay_s=30.0) == 30.0

    def test_jitter_stays_in_range(self) -> None:
        delay = backoff_delay(0, base_delay_s=1.0, max_delay_s=30.0, jitter_s=0.5)
        assert 1.0 <= delay <= 1.5


class TestIsRetryable:
    @pytest.mark.parametrize("code", ["unavailable", "deadline-exceeded", "resource-exhausted"])
    def test_transient_codes(self, code: str) -> None:
        assert is_retryable(DocumentStoreError(code))

    @pytest.mark.parametrize("code", ["permission-denied", "not-found", "invalid-argument"])
    def test_permanent_codes(self, code: str) -> None:
        assert not is_retryable(DocumentStoreError(code))

    def test_other_errors_are_transient(self) -> None:
        assert is_retryable(TimeoutError())


class TestRetryAsync:
    async def test_first_attempt_succeeds(self) -> None:
        op = _Flaky([])
        sleep = _Sleeps()

        assert await retry_async(op, sleep=sleep) == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    async def test_recovers_after_transient_errors(self) -> None:
        op = _Flaky([DocumentStoreError("unavailable"), DocumentStoreError("unavailable")])
        sleep = _Sleeps()

        result = await retry_async(op, base_delay_s=0.5, jitter_s=0.0, sleep=sleep)

        assert result == "ok"
        assert op.calls == 3
        assert sleep.delays == [0.5, 1.0]

    async def test_exhausted_retries_raise_last_error(self) -> None:
        op = _Flaky([DocumentStoreError("unavailable", str(n)) for n in range(5)])
        sleep = _Sleeps()

        with pytest.raises(DocumentStoreError, match=": 2"):
            await retry_async(op, max_retries=2, jitter_s=0.0, sleep=sleep)

        assert op.calls == 3
        assert len(sleep.delays) == 2

    async def test_permanent_error_propagates_immediately(self) -> None:
        op = _Flaky([DocumentStoreError("permission-denied")])
        sleep = _Sleeps()

        with pytest.raises(DocumentStoreError, match="permission-denied"):
            await retry_async(op, sleep=sleep)

        assert op.calls == 1
        assert sleep.delays == []

    async def test_zero_retries_is_single_attempt(self) -> None:
        op = _Flaky([DocumentStoreError("unavailable")])

        with pytest.raises(DocumentStoreError):
            await retry_async(op, max_retries=0, sleep=_Sleeps())

        assert op.calls == 1
