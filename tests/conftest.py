"""Shared fixtures for all tests."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

# Ensure repo root is on sys.path so tests can import the `simulive` package
# when running pytest from the repository root without an editable install.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from simulive.config.settings import get_settings  # noqa: E402
from simulive.store.memory import MemoryDocumentStore  # noqa: E402
from tests.helpers import BASE_TIME, FakeClock  # noqa: E402


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Every test sees settings built from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def server_clock() -> FakeClock:
    """Server wall clock in epoch seconds, starting at BASE_TIME."""
    return FakeClock(BASE_TIME.timestamp())


@pytest.fixture
def memory_store(server_clock: FakeClock) -> MemoryDocumentStore:
    """In-memory store whose server timestamps follow ``server_clock``."""
    return MemoryDocumentStore(clock=server_clock.as_datetime)
