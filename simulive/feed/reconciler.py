"""LiveFeedReconciler: merges the live window with paginated history.

The store pushes only the newest N records (the window) on every change.
Older records are fetched on demand and must survive window updates. Merge
rule for a new window:

    oldest  = oldest record of the window
    history = current view records strictly older than ``oldest``
              and not present (by id) in the window
    view    = window (newest first) + history

Records at or newer than the boundary always come from the fresh window, so
edits and deletions inside the window win over stale copies. An empty
window leaves the view unchanged (transient empty snapshots never wipe
history). Applying the same window twice returns the same view object.

Order is the total order ``(order_key, id)``; ``id`` breaks ties between
records sharing a timestamp.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Generic

from simulive._types import FeedCursor, FeedRecord, P
from simulive.logging import get_logger
from simulive.metrics import feed_merges_total

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = get_logger("feed.reconciler")


def _newest_first(records: Iterable[FeedRecord[P]]) -> list[FeedRecord[P]]:
    """Sort newest first and drop repeated ids (first occurrence wins)."""
    seen: set[str] = set()
    result: list[FeedRecord[P]] = []
    for record in sorted(records, key=lambda r: r.sort_key, reverse=True):
        if record.id in seen:
            continue
        seen.add(record.id)
        result.append(record)
    return result


class LiveFeedReconciler(Generic[P]):
    """Client-side merged view of one feed, newest first.

    Pure state holder: no I/O, no timers. Callers feed it pushed windows and
    fetched history pages.
    """

    def __init__(self, session_id: str = "") -> None:
        self._session_id = session_id
        self._view: tuple[FeedRecord[P], ...] = ()

    @property
    def view(self) -> tuple[FeedRecord[P], ...]:
        return self._view

    def __len__(self) -> int:
        return len(self._view)

    def apply_window(self, window: Iterable[FeedRecord[P]]) -> tuple[FeedRecord[P], ...]:
        """Merge a pushed window and return the new view."""
        records = _newest_first(window)
        if not records:
            return self._view

        boundary = records[-1].sort_key
        window_ids = {r.id for r in records}
        history = [r for r in self._view if r.sort_key < boundary and r.id not in window_ids]
        merged = (*records, *history)

        if merged == self._view:
            return self._view
        self._view = merged
        feed_merges_total.inc()
        logger.debug(
            "feed_window_merged",
            session_id=self._session_id,
            window=len(records),
            history=len(history),
        )
        return self._view

    def extend_history(self, page: Iterable[FeedRecord[P]]) -> int:
        """Append an older page. Returns the number of records added.

        Only records strictly older than the current oldest record are
        taken; anything else is already covered by the view.
        """
        oldest = self.oldest()
        known = {r.id for r in self._view}
        added = [
            r
            for r in _newest_first(page)
            if r.id not in known and (oldest is None or r.sort_key < oldest.sort_key)
        ]
        if added:
            self._view = (*self._view, *added)
        return len(added)

    def oldest(self) -> FeedRecord[P] | None:
        return self._view[-1] if self._view else None

    def cursor(self) -> FeedCursor | None:
        """Pagination cursor positioned at the oldest known record."""
        oldest = self.oldest()
        if oldest is None:
            return None
        return FeedCursor(order_key=oldest.order_key, record_id=oldest.id)

    def clear(self) -> None:
        self._view = ()
