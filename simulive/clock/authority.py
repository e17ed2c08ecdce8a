"""Trusted timestamp authority backed by the document store.

The store has no "what time is it" call, so the authority writes a marker
document whose timestamp field is assigned by the server, reads it back,
and deletes it. Deleting is best-effort: a leftover marker is harmless, so
cleanup failures are logged and never raised.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from simulive._constants import SERVER_TIME_COLLECTION
from simulive._types import to_utc
from simulive.exceptions import TimestampAuthorityError
from simulive.logging import get_logger
from simulive.store.interface import SERVER_TIMESTAMP

if TYPE_CHECKING:
    from simulive.store.interface import DocumentStore

logger = get_logger("clock.authority")

_TIMESTAMP_FIELD = "timestamp"


class TimestampAuthority(Protocol):
    """Anything that can return a server-generated instant."""

    async def fetch_server_time(self) -> datetime: ...


class DocumentStoreTimestampAuthority:
    """Write-then-read server timestamp round trip.

    Args:
        store: Backing document store.
        collection: Collection for the temporary marker documents.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = SERVER_TIME_COLLECTION,
    ) -> None:
        self._store = store
        self._collection = collection

    async def fetch_server_time(self) -> datetime:
        """Return the server's current time.

        Raises:
            TimestampAuthorityError: If the marker cannot be written or read
                back, or carries no timestamp.
        """
        try:
            doc_id = await self._store.add_document(
                self._collection, {_TIMESTAMP_FIELD: SERVER_TIMESTAMP}
            )
        except Exception as exc:
            raise TimestampAuthorityError(str(exc)) from exc

        try:
            try:
                snapshot = await self._store.get_document(self._collection, doc_id)
            except Exception as exc:
                raise TimestampAuthorityError(str(exc)) from exc
            if snapshot is None:
                raise TimestampAuthorityError("marker document missing after write")
            raw = snapshot.data.get(_TIMESTAMP_FIELD)
            if raw is None:
                raise TimestampAuthorityError("marker document has no timestamp")
            try:
                return to_utc(raw)
            except (TypeError, ValueError) as exc:
                raise TimestampAuthorityError(f"unparseable timestamp {raw!r}") from exc
        finally:
            await self._discard(doc_id)

    async def _discard(self, doc_id: str) -> None:
        try:
            await self._store.delete_document(self._collection, doc_id)
        except Exception as exc:
            logger.warning(
                "server_time_marker_cleanup_failed",
                doc_id=doc_id,
                error=str(exc),
            )
