"""Abstract persistence interface for collection storage.

Defines the CollectionBackend Protocol that DocumentStore depends on.
Concrete implementations (e.g., FileBackend) live in ``storefront.backends``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class CollectionBackend(Protocol):
    """Async persistence backend for serialized collections.

    Any object implementing these methods can serve as the durable
    store behind DocumentStore. Backends deal only in raw text; parsing
    and validation belong to the store. Failures surface as ``OSError``.
    """

    async def read_text(self, name: str) -> str | None: ...

    async def write_text(self, name: str, text: str) -> None: ...

    async def ensure_ready(self) -> None: ...
