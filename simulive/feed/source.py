"""FeedSource: window subscription and history pages of one feed.

Window query: records of one session ordered by ``(order_field, id)``
descending, limited to the window size. History pages use the same order
and start strictly after a ``FeedCursor``; pairing the timestamp with the
record id keeps pagination exact when several records share a timestamp.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic

from simulive._constants import (
    DEFAULT_FEED_PAGE_SIZE,
    DEFAULT_FEED_WINDOW_SIZE,
    DEFAULT_ORDER_FIELD,
    MESSAGES_COLLECTION,
)
from simulive._types import FeedRecord, P, to_utc
from simulive.logging import get_logger
from simulive.store.interface import ID_FIELD, QuerySpec

if TYPE_CHECKING:
    from collections.abc import Callable

    from simulive._types import FeedCursor
    from simulive.feed.payloads import FeedLayout
    from simulive.store.interface import Document, DocumentStore

logger = get_logger("feed.source")


class FeedSource(Generic[P]):
    """Reads one session's feed from the document store.

    Args:
        store: Backing document store.
        session_id: Session whose records are read.
        decode: Builds the payload from a document.
        collection: Feed collection name.
        session_field: Field holding the session id.
        order_field: Timestamp field defining feed order.
        window_size: Records in the live window.
        page_size: Records per history page.
        now: Order key for records whose timestamp is not yet resolved
            (pending server timestamp). Default: local UTC now.
    """

    def __init__(
        self,
        store: DocumentStore,
        session_id: str,
        decode: Callable[[Document], P],
        *,
        collection: str = MESSAGES_COLLECTION,
        session_field: str = "session_id",
        order_field: str = DEFAULT_ORDER_FIELD,
        window_size: int = DEFAULT_FEED_WINDOW_SIZE,
        page_size: int = DEFAULT_FEED_PAGE_SIZE,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._session_id = session_id
        self._decode = decode
        self._collection = collection
        self._session_field = session_field
        self._order_field = order_field
        self._window_size = window_size
        self._page_size = page_size
        self._now: Callable[[], datetime] = now or (lambda: datetime.now(UTC))

    @classmethod
    def from_layout(
        cls,
        store: DocumentStore,
        session_id: str,
        layout: FeedLayout[P],
        **kwargs: Any,
    ) -> FeedSource[P]:
        """Source for a known feed (chat, polls, viewers); ``kwargs`` as ``__init__``."""
        return cls(
            store,
            session_id,
            layout.decode,
            collection=layout.collection,
            session_field=layout.session_field,
            order_field=layout.order_field,
            **kwargs,
        )

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def page_size(self) -> int:
        return self._page_size

    def window_query(self) -> QuerySpec:
        return QuerySpec(
            collection=self._collection,
            filters=((self._session_field, self._session_id),),
            order_by=(self._order_field, ID_FIELD),
            descending=True,
            limit=self._window_size,
        )

    def history_query(self, cursor: FeedCursor) -> QuerySpec:
        return QuerySpec(
            collection=self._collection,
            filters=((self._session_field, self._session_id),),
            order_by=(self._order_field, ID_FIELD),
            descending=True,
            limit=self._page_size,
            start_after=(cursor.order_key, cursor.record_id),
        )

    def watch_window(
        self,
        on_window: Callable[[list[FeedRecord[P]]], None],
        on_error: Callable[[Exception], None],
    ) -> Callable[[], None]:
        """Subscribe to the live window. Returns the detach callback."""

        def _on_snapshot(docs: list[Document]) -> None:
            on_window(self.decode_all(docs))

        return self._store.watch_query(self.window_query(), _on_snapshot, on_error)

    async def fetch_older(self, cursor: FeedCursor) -> list[FeedRecord[P]]:
        """One history page strictly older than ``cursor``, newest first."""
        docs = await self._store.query(self.history_query(cursor))
        return self.decode_all(docs)

    def decode_all(self, docs: list[Document]) -> list[FeedRecord[P]]:
        """Decode documents, skipping (and logging) malformed ones."""
        records: list[FeedRecord[P]] = []
        for doc in docs:
            try:
                records.append(self.decode_record(doc))
            except (TypeError, ValueError) as exc:
                logger.warning(
                    "feed_record_skipped",
                    session_id=self._session_id,
                    record_id=doc.id,
                    error=str(exc),
                )
        return records

    def decode_record(self, doc: Document) -> FeedRecord[P]:
        raw = doc.data.get(self._order_field)
        order_key = to_utc(raw) if raw is not None else self._now()
        return FeedRecord(id=doc.id, order_key=order_key, payload=self._decode(doc))
