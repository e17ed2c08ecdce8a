"""Session record subscription: timing facts of one session.

The session document is owned by the surrounding product; the engine only
reads ``is_live``, ``scheduled_start`` and ``scheduled_end``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from simulive._constants import SESSIONS_COLLECTION
from simulive._types import SessionTimingFacts, to_utc

if TYPE_CHECKING:
    from collections.abc import Callable

    from simulive.store.interface import Document, DocumentStore


def decode_timing_facts(doc: Document) -> SessionTimingFacts:
    """Build SessionTimingFacts from a session document.

    Raises:
        ValueError: If ``scheduled_start`` is missing.
    """
    raw_start = doc.data.get("scheduled_start")
    if raw_start is None:
        msg = f"Session '{doc.id}' has no scheduled_start"
        raise ValueError(msg)
    raw_end = doc.data.get("scheduled_end")
    return SessionTimingFacts(
        scheduled_start=to_utc(raw_start),
        scheduled_end=to_utc(raw_end) if raw_end is not None else None,
        is_live=bool(doc.data.get("is_live", False)),
    )


class SessionRecordSource:
    """Reads and watches session timing facts.

    Args:
        store: Backing document store.
        collection: Sessions collection name.
    """

    def __init__(self, store: DocumentStore, collection: str = SESSIONS_COLLECTION) -> None:
        self._store = store
        self._collection = collection

    async def get(self, session_id: str) -> SessionTimingFacts | None:
        doc = await self._store.get_document(self._collection, session_id)
        return decode_timing_facts(doc) if doc is not None else None

    def watch(
        self,
        session_id: str,
        on_facts: Callable[[SessionTimingFacts | None], None],
        on_error: Callable[[Exception], None],
    ) -> Callable[[], None]:
        """Subscribe to the session record.

        ``on_facts`` receives None when the document does not exist.
        Undecodable documents are reported through ``on_error``.
        """

        def _on_snapshot(doc: Document | None) -> None:
            if doc is None:
                on_facts(None)
                return
            try:
                facts = decode_timing_facts(doc)
            except (TypeError, ValueError) as exc:
                on_error(exc)
                return
            on_facts(facts)

        return self._store.watch_document(self._collection, session_id, _on_snapshot, on_error)
