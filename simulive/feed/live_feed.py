"""LiveFeed: subscription plus pagination around a LiveFeedReconciler.

Owns the window subscription of one session's feed and loads older pages on
demand. Failures never corrupt the merged view:

- Subscription error: reported as FeedFetchError(source="subscription")
  through ``on_error``; the view keeps its last state and the store
  redelivers the window once it recovers.
- History error: transient store errors are retried with exponential
  backoff; a final failure raises FeedFetchError(source="history") to the
  caller of ``load_more()`` and leaves the view untouched.

Every ``start()``/``stop()`` bumps a generation counter. Window snapshots and
history pages belonging to an older generation are discarded.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Generic

from simulive._retry import retry_async
from simulive._types import P
from simulive.config.settings import RetrySettings
from simulive.exceptions import FeedFetchError
from simulive.feed.reconciler import LiveFeedReconciler
from simulive.logging import get_logger
from simulive.metrics import feed_fetch_failures_total
from simulive.supervision import Supervision

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from simulive._types import FeedRecord
    from simulive.feed.source import FeedSource

logger = get_logger("feed.live")


class LiveFeed(Generic[P]):
    """Merged, paginated live feed of one session.

    Args:
        source: Window subscription and history pages.
        retry: Backoff settings for history pages. Default: RetrySettings().
        on_update: Called with the new view whenever it changes.
        on_error: Called with FeedFetchError on subscription failures.
        sleep: Sleep used between retries (injectable for tests).
    """

    def __init__(
        self,
        source: FeedSource[P],
        *,
        retry: RetrySettings | None = None,
        on_update: Callable[[tuple[FeedRecord[P], ...]], None] | None = None,
        on_error: Callable[[FeedFetchError], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._retry = retry or RetrySettings()
        self._on_update = on_update
        self._on_error = on_error
        self._sleep = sleep
        self._reconciler: LiveFeedReconciler[P] = LiveFeedReconciler(source.session_id)

        self._generation = 0
        self._supervision: Supervision | None = None
        self._loaded = False
        self._has_more = True
        self._loading_more = False
        self._last_error: FeedFetchError | None = None

    @property
    def session_id(self) -> str:
        return self._source.session_id

    @property
    def view(self) -> tuple[FeedRecord[P], ...]:
        return self._reconciler.view

    @property
    def loaded(self) -> bool:
        """True once the first window snapshot arrived."""
        return self._loaded

    @property
    def has_more(self) -> bool:
        """False once a history page came back short."""
        return self._has_more

    @property
    def loading_more(self) -> bool:
        return self._loading_more

    @property
    def last_error(self) -> FeedFetchError | None:
        return self._last_error

    @property
    def running(self) -> bool:
        return self._supervision is not None and not self._supervision.cancelled

    def start(self) -> Supervision:
        """Subscribe to the live window. Idempotent while running."""
        if self._supervision is not None and not self._supervision.cancelled:
            return self._supervision
        self._generation += 1
        generation = self._generation
        supervision = Supervision(f"feed:{self.session_id}", on_cancel=self._invalidate)
        self._supervision = supervision
        supervision.add_detach(
            self._source.watch_window(
                lambda records: self._on_window(generation, records),
                lambda exc: self._on_subscription_error(generation, exc),
            ),
        )
        logger.debug("feed_started", session_id=self.session_id, generation=generation)
        return supervision

    async def stop(self) -> None:
        if self._supervision is not None:
            await self._supervision.cancel()

    async def load_more(self) -> int:
        """Fetch the next older page and append it to the view.

        No-op (returns 0) while another page is loading, when there is no
        more history, or before the first record is known.

        Returns:
            Number of records added to the view.

        Raises:
            FeedFetchError: If the page could not be fetched after retries.
        """
        if self._loading_more or not self._has_more:
            return 0
        cursor = self._reconciler.cursor()
        if cursor is None:
            return 0

        generation = self._generation
        self._loading_more = True
        try:
            page = await retry_async(
                lambda: self._source.fetch_older(cursor),
                max_retries=self._retry.max_retries,
                base_delay_s=self._retry.base_delay_s,
                max_delay_s=self._retry.max_delay_s,
                jitter_s=self._retry.jitter_s,
                operation_name="feed.fetch_older",
                sleep=self._sleep,
            )
        except Exception as exc:
            if generation != self._generation:
                return 0
            error = FeedFetchError(self.session_id, "history", str(exc))
            self._last_error = error
            feed_fetch_failures_total.labels(source="history").inc()
            logger.warning("feed_history_failed", session_id=self.session_id, error=str(exc))
            raise error from exc
        finally:
            self._loading_more = False

        if generation != self._generation:
            logger.debug("feed_page_discarded", session_id=self.session_id)
            return 0

        if len(page) < self._source.page_size:
            self._has_more = False
        added = self._reconciler.extend_history(page)
        logger.debug(
            "feed_history_loaded",
            session_id=self.session_id,
            fetched=len(page),
            added=added,
            has_more=self._has_more,
        )
        if added:
            self._notify()
        return added

    def _on_window(self, generation: int, records: list[FeedRecord[P]]) -> None:
        if generation != self._generation:
            return
        self._loaded = True
        self._last_error = None
        before = self._reconciler.view
        if self._reconciler.apply_window(records) is not before:
            self._notify()

    def _on_subscription_error(self, generation: int, exc: Exception) -> None:
        if generation != self._generation:
            return
        error = FeedFetchError(self.session_id, "subscription", str(exc))
        self._last_error = error
        feed_fetch_failures_total.labels(source="subscription").inc()
        logger.warning("feed_subscription_failed", session_id=self.session_id, error=str(exc))
        if self._on_error is not None:
            self._on_error(error)

    def _notify(self) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(self._reconciler.view)
        except Exception:
            logger.error("feed_update_callback_failed", session_id=self.session_id, exc_info=True)

    async def _invalidate(self) -> None:
        self._generation += 1
        logger.debug("feed_stopped", session_id=self.session_id)
