"""Abstract interface of the push-based document store.

The engine treats the store as a black box offering document reads/writes,
one-shot queries, and push subscriptions to a document or a collection
query. Subscriptions deliver the full current result on subscribe and on
every change (never diffs) and return a detach callback.

Special order field ``ID_FIELD`` orders by document id, which gives value
cursors a total-order tiebreak.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

ID_FIELD = "__id__"


class _ServerTimestamp:
    """Sentinel: the store replaces it with its own clock on write."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class Document:
    """A document snapshot."""

    id: str
    data: Mapping[str, Any]

    def get(self, key: str, default: Any = None) -> Any:
        if key == ID_FIELD:
            return self.id
        return self.data.get(key, default)


@dataclass(frozen=True, slots=True)
class QuerySpec:
    """Collection query: equality filters, ordering, cursor and limit.

    ``start_after`` holds one value per ``order_by`` field; only documents
    strictly after it in the query order are returned.
    """

    collection: str
    filters: tuple[tuple[str, Any], ...] = ()
    order_by: tuple[str, ...] = ()
    descending: bool = True
    limit: int | None = None
    start_after: tuple[Any, ...] | None = field(default=None)


class DocumentStore(ABC):
    """Contract of the backing document store."""

    @abstractmethod
    async def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        """Create a document with a store-assigned id and return the id."""
        ...

    @abstractmethod
    async def set_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        """Create or replace a document."""
        ...

    @abstractmethod
    async def update_document(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> None:
        """Merge ``changes`` into an existing document."""
        ...

    @abstractmethod
    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        """Read one document, None if missing."""
        ...

    @abstractmethod
    async def delete_document(self, collection: str, doc_id: str) -> None:
        """Delete one document (no-op if missing)."""
        ...

    @abstractmethod
    async def query(self, spec: QuerySpec) -> list[Document]:
        """One-shot query."""
        ...

    @abstractmethod
    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: Callable[[Document | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to one document. Returns the detach callback."""
        ...

    @abstractmethod
    def watch_query(
        self,
        spec: QuerySpec,
        on_snapshot: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None]:
        """Subscribe to a collection query. Returns the detach callback."""
        ...
