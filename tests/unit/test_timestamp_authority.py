"""Tests for DocumentStoreTimestampAuthority (write-then-read round trip)."""

from __future__ import annotations

import pytest

from simulive.clock.authority import DocumentStoreTimestampAuthority
from simulive.exceptions import DocumentStoreError, TimestampAuthorityError
from simulive.store.interface import QuerySpec
from simulive.store.memory import MemoryDocumentStore
from tests.helpers import BASE_TIME, FakeClock


class _UndeletableStore(MemoryDocumentStore):
    async def delete_document(self, collection: str, doc_id: str) -> None:
        raise DocumentStoreError("permission-denied", "delete not allowed")


class TestDocumentStoreTimestampAuthority:
    async def test_returns_server_assigned_time(
        self, memory_store: MemoryDocumentStore, server_clock: FakeClock
    ) -> None:
        server_clock.advance(42.0)
        authority = DocumentStoreTimestampAuthority(memory_store)

        result = await authority.fetch_server_time()

        assert result == server_clock.as_datetime()
        assert result.tzinfo is not None

    async def test_marker_is_deleted(self, memory_store: MemoryDocumentStore) -> None:
        authority = DocumentStoreTimestampAuthority(memory_store, collection="clock_markers")

        await authority.fetch_server_time()

        assert await memory_store.query(QuerySpec(collection="clock_markers")) == []

    async def test_store_failure_raises_authority_error(
        self, memory_store: MemoryDocumentStore
    ) -> None:
        memory_store.set_offline(True)
        authority = DocumentStoreTimestampAuthority(memory_store)

        with pytest.raises(TimestampAuthorityError, match="unavailable"):
            await authority.fetch_server_time()

    async def test_cleanup_failure_is_not_raised(self, server_clock: FakeClock) -> None:
        store = _UndeletableStore(clock=server_clock.as_datetime)
        authority = DocumentStoreTimestampAuthority(store)

        result = await authority.fetch_server_time()

        assert result == BASE_TIME
        # The marker is left behind, which is harmless.
        assert len(await store.query(QuerySpec(collection="server_time"))) == 1
