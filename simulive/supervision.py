"""Supervision handles and periodic loops.

Every component that starts timers or subscriptions returns a
``Supervision``: a cancellation handle owning asyncio tasks and detach
callbacks. ``cancel()`` is idempotent and deterministic: once it returns,
no owned task is still running and every detach callback has been called.

No threading/locking: single-threaded in the asyncio event loop.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from simulive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = get_logger("supervision")


class Supervision:
    """Cancellation handle for tasks and subscriptions started by a component.

    Args:
        name: Name used in log events.
        on_cancel: Optional coroutine factory awaited after tasks are cancelled
            and detach callbacks ran (e.g. releasing media elements).
    """

    def __init__(
        self,
        name: str,
        on_cancel: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._name = name
        self._tasks: list[asyncio.Task[None]] = []
        self._detach: list[Callable[[], None]] = []
        self._on_cancel = on_cancel
        self._cancelled = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called."""
        return self._cancelled

    @property
    def active(self) -> bool:
        """True while not cancelled and at least one owned task is running."""
        return not self._cancelled and any(not t.done() for t in self._tasks)

    def add_task(self, task: asyncio.Task[None]) -> None:
        if self._cancelled:
            task.cancel()
            return
        self._tasks.append(task)

    def add_detach(self, detach: Callable[[], None]) -> None:
        if self._cancelled:
            detach()
            return
        self._detach.append(detach)

    async def cancel(self) -> None:
        """Cancel owned tasks, run detach callbacks, then the on_cancel hook.

        Idempotent: subsequent calls are no-ops.
        """
        if self._cancelled:
            return
        self._cancelled = True

        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

        detach_callbacks, self._detach = self._detach, []
        for detach in detach_callbacks:
            try:
                detach()
            except Exception:
                logger.warning("detach_failed", supervision=self._name, exc_info=True)

        if self._on_cancel is not None:
            try:
                await self._on_cancel()
            except Exception:
                logger.warning("on_cancel_failed", supervision=self._name, exc_info=True)

        logger.debug("supervision_cancelled", supervision=self._name)


async def run_periodic(
    name: str,
    interval_s: float,
    tick: Callable[[], Awaitable[object]],
    *,
    immediate: bool = False,
) -> None:
    """Call ``tick`` every ``interval_s`` until cancelled.

    A failing tick is logged and never stops the loop: the next tick is
    always scheduled regardless of the outcome of the previous one.

    Args:
        name: Loop name used in log events.
        interval_s: Seconds between ticks.
        tick: Coroutine factory run once per tick.
        immediate: Run the first tick before the first sleep.
    """
    if immediate:
        await _run_tick(name, tick)
    while True:
        await asyncio.sleep(interval_s)
        await _run_tick(name, tick)


async def _run_tick(name: str, tick: Callable[[], Awaitable[object]]) -> None:
    try:
        await tick()
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.error("periodic_tick_failed", loop=name, exc_info=True)


def cancel_task_soon(task: asyncio.Task[None] | None) -> None:
    """Cancel a task without awaiting it (for synchronous call sites)."""
    if task is not None and not task.done():
        task.cancel()


async def cancel_and_wait(task: asyncio.Task[None] | None) -> None:
    """Cancel a task and wait until it has finished."""
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task
