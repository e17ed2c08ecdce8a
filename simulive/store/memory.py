"""MemoryDocumentStore: in-process implementation of the document store.

Keeps collections in dicts, resolves ``SERVER_TIMESTAMP`` from its own clock
(which may be skewed relative to the local clock to simulate a remote
server), and delivers subscription snapshots synchronously: once on
subscribe and again after every write to the watched collection.

``set_offline(True)`` makes every async operation fail with a transient
``unavailable`` error and notifies subscribers through their error callback,
which lets callers exercise fallback and retry paths.

No threading/locking: single-threaded in the asyncio event loop.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from simulive.exceptions import DocumentStoreError
from simulive.logging import get_logger
from simulive.store.interface import (
    ID_FIELD,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    QuerySpec,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

logger = get_logger("store.memory")


@dataclass(slots=True)
class _Watch:
    """One subscription; ``read`` produces the snapshot it is sent."""

    collection: str
    read: Callable[[], Any]
    on_snapshot: Callable[[Any], None]
    on_error: Callable[[Exception], None] | None
    active: bool = True


def _sort_value(value: Any) -> tuple[bool, Any]:
    # None sorts before every concrete value.
    return (value is not None, value)


class MemoryDocumentStore(DocumentStore):
    """In-process document store.

    Args:
        clock: Server clock returning aware UTC datetimes. Default: system UTC.
        latency_s: Simulated one-way latency awaited by every async operation.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        latency_s: float = 0.0,
    ) -> None:
        self._clock: Callable[[], datetime] = clock or (lambda: datetime.now(UTC))
        self._latency_s = latency_s
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watches: list[_Watch] = []
        self._offline = False

    @property
    def offline(self) -> bool:
        return self._offline

    @property
    def watch_count(self) -> int:
        """Number of active subscriptions (for leak checks)."""
        return sum(1 for w in self._watches if w.active)

    def server_now(self) -> datetime:
        return self._clock()

    def set_offline(self, offline: bool) -> None:
        """Toggle simulated unavailability."""
        if offline == self._offline:
            return
        self._offline = offline
        logger.info("store_offline_changed", offline=offline)
        if offline:
            for watch in list(self._watches):
                if watch.active and watch.on_error is not None:
                    watch.on_error(DocumentStoreError("unavailable", "store offline"))
        else:
            for watch in list(self._watches):
                self._deliver(watch)

    # --- Async operations ---

    async def add_document(self, collection: str, data: Mapping[str, Any]) -> str:
        await self._io()
        doc_id = uuid.uuid4().hex[:20]
        self._collection(collection)[doc_id] = self._resolve(data)
        self._notify(collection)
        return doc_id

    async def set_document(self, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        await self._io()
        self._collection(collection)[doc_id] = self._resolve(data)
        self._notify(collection)

    async def update_document(
        self, collection: str, doc_id: str, changes: Mapping[str, Any]
    ) -> None:
        await self._io()
        docs = self._collection(collection)
        if doc_id not in docs:
            raise DocumentStoreError("not-found", f"{collection}/{doc_id}")
        docs[doc_id] = {**docs[doc_id], **self._resolve(changes)}
        self._notify(collection)

    async def get_document(self, collection: str, doc_id: str) -> Document | None:
        await self._io()
        return self._snapshot(collection, doc_id)

    async def delete_document(self, collection: str, doc_id: str) -> None:
        await self._io()
        if self._collection(collection).pop(doc_id, None) is not None:
            self._notify(collection)

    async def query(self, spec: QuerySpec) -> list[Document]:
        await self._io()
        return self._run_query(spec)

    # --- Subscriptions ---

    def watch_document(
        self,
        collection: str,
        doc_id: str,
        on_snapshot: Callable[[Document | None], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None]:
        watch = _Watch(
            collection, lambda: self._snapshot(collection, doc_id), on_snapshot, on_error
        )
        return self._register(watch)

    def watch_query(
        self,
        spec: QuerySpec,
        on_snapshot: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Callable[[], None]:
        watch = _Watch(spec.collection, lambda: self._run_query(spec), on_snapshot, on_error)
        return self._register(watch)

    # --- Internals ---

    def _register(self, watch: _Watch) -> Callable[[], None]:
        self._watches.append(watch)
        if self._offline:
            if watch.on_error is not None:
                watch.on_error(DocumentStoreError("unavailable", "store offline"))
        else:
            self._deliver(watch)

        def detach() -> None:
            watch.active = False
            if watch in self._watches:
                self._watches.remove(watch)

        return detach

    async def _io(self) -> None:
        if self._latency_s > 0:
            await asyncio.sleep(self._latency_s)
        if self._offline:
            raise DocumentStoreError("unavailable", "store offline")

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _resolve(self, data: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock()
        return {k: (now if v is SERVER_TIMESTAMP else v) for k, v in data.items()}

    def _snapshot(self, collection: str, doc_id: str) -> Document | None:
        data = self._collection(collection).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=dict(data))

    def _run_query(self, spec: QuerySpec) -> list[Document]:
        docs = [
            Document(id=doc_id, data=dict(data))
            for doc_id, data in self._collection(spec.collection).items()
        ]
        docs = [d for d in docs if all(d.get(k) == v for k, v in spec.filters)]

        order_by = spec.order_by or (ID_FIELD,)

        def key(doc: Document) -> tuple[tuple[bool, Any], ...]:
            return tuple(_sort_value(doc.get(f)) for f in order_by)

        docs.sort(key=key, reverse=spec.descending)

        if spec.start_after is not None:
            cursor = tuple(_sort_value(v) for v in spec.start_after)
            if spec.descending:
                docs = [d for d in docs if key(d) < cursor]
            else:
                docs = [d for d in docs if key(d) > cursor]

        if spec.limit is not None:
            docs = docs[: spec.limit]
        return docs

    def _notify(self, collection: str) -> None:
        if self._offline:
            return
        for watch in list(self._watches):
            if watch.active and watch.collection == collection:
                self._deliver(watch)

    def _deliver(self, watch: _Watch) -> None:
        if not watch.active:
            return
        payload = watch.read()
        try:
            watch.on_snapshot(payload)
        except Exception:
            logger.error("snapshot_callback_failed", collection=watch.collection, exc_info=True)
