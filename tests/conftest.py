"""Shared fixtures: an in-memory backend and store/service builders."""

from __future__ import annotations

import asyncio

import pytest

from storefront.cache import CacheLayer
from storefront.store import DocumentStore


class MemoryBackend:
    """CollectionBackend keeping raw text in a dict.

    ``write_delay`` makes every write yield to the event loop first, so
    tests can interleave concurrent read-modify-write sequences.
    """

    def __init__(self, files: dict[str, str] | None = None, write_delay: float = 0.0) -> None:
        self.files: dict[str, str] = dict(files or {})
        self.write_delay = write_delay
        self.reads = 0
        self.writes = 0

    async def ensure_ready(self) -> None:
        return None

    async def read_text(self, name: str) -> str | None:
        self.reads += 1
        return self.files.get(name)

    async def write_text(self, name: str, text: str) -> None:
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        self.writes += 1
        self.files[name] = text


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, secs: float) -> None:
        self.now += secs


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def store(backend: MemoryBackend) -> DocumentStore:
    return DocumentStore(backend, CacheLayer())
