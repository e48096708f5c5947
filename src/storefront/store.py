"""DocumentStore — named collections of JSON documents over a backend.

The store is the only component that performs collection I/O. Reads go
through the CacheLayer; every successful write invalidates the written
collection's cache entries (including derived ones such as search
results) and fires the collection's write hooks (the ActivityIndex
registers one for ``activity``).

Multi-step operations (read ... mutate ... write) are not locked. Two
concurrent writers to the same collection can interleave so that the
last overwrite wins and the other change is lost.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from collections.abc import Awaitable, Callable, Hashable, Iterable
from datetime import datetime, timezone
from typing import Any

from storefront.activity import ActivityIndex
from storefront.backend import CollectionBackend
from storefront.cache import CacheLayer
from storefront.constants import ACTIVITY, KNOWN_COLLECTIONS
from storefront.errors import (
    CorruptDataError,
    NotFoundError,
    StoreIOError,
    ValidationError,
)

logger = logging.getLogger(__name__)

Document = dict[str, Any]

_MISSING = object()


def now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


class DocumentStore:
    """Generic collection CRUD with read-through caching.

    Documents handed out are deep copies; mutating them never touches
    cached state. Construct one instance at startup and pass it to the
    services that need it.
    """

    def __init__(
        self,
        backend: CollectionBackend,
        cache: CacheLayer | None = None,
    ) -> None:
        self._backend = backend
        self.cache = cache if cache is not None else CacheLayer()
        self._write_hooks: dict[str, list[Callable[[], None]]] = {}
        # Bumped after every successful write; a load that straddles a
        # write must not populate the cache.
        self._generations: dict[str, int] = {}
        self.activity_index = ActivityIndex(self)
        self.on_write(ACTIVITY, self.activity_index.invalidate)

    # -- lifecycle ------------------------------------------------------------

    async def initialize(self, collections: Iterable[str] = KNOWN_COLLECTIONS) -> list[str]:
        """Create an empty array for every collection without a backing file.

        Returns the names of the collections that were created.
        """
        try:
            await self._backend.ensure_ready()
        except OSError as exc:
            raise StoreIOError(
                f"Failed to initialize data directory: {exc}", operation="write"
            ) from exc

        created: list[str] = []
        for name in collections:
            if await self._read_raw(name) is None:
                logger.info("Creating empty collection %s.", name)
                await self.write_collection(name, [])
                created.append(name)
        return created

    def on_write(self, name: str, callback: Callable[[], None]) -> None:
        """Register a callback fired after every successful write to ``name``."""
        self._write_hooks.setdefault(name, []).append(callback)

    # -- raw read/write -------------------------------------------------------

    async def _read_raw(self, name: str) -> str | None:
        try:
            return await self._backend.read_text(name)
        except OSError as exc:
            raise StoreIOError(
                f"Failed to read {name}: {exc}", operation="read", collection=name
            ) from exc

    async def _load(self, name: str) -> list[Document]:
        raw = await self._read_raw(name)
        if raw is None:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise CorruptDataError(
                f"Invalid JSON in {name}: {exc}", collection=name
            ) from exc
        if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
            raise CorruptDataError(
                f"Collection {name} is not an array of documents.", collection=name
            )
        return data

    async def read_collection(self, name: str) -> list[Document]:
        """Return every document in ``name``; ``[]`` if the collection has no file."""
        return copy.deepcopy(await self.read_shared(name))

    async def read_shared(self, name: str) -> list[Document]:
        """Like ``read_collection`` but returns the cached list itself.

        Callers must treat the result as read-only and copy whatever they
        hand out.
        """
        cached = self.cache.get(name, _MISSING)
        if cached is not _MISSING:
            return cached

        generation = self._generations.get(name, 0)
        documents = await self._load(name)
        if self._generations.get(name, 0) == generation:
            self.cache.set(name, documents)
        return documents

    async def write_collection(self, name: str, documents: list[Document]) -> None:
        """Atomically overwrite ``name`` and invalidate everything derived from it."""
        text = json.dumps(documents, indent=2)
        try:
            await self._backend.write_text(name, text)
        except OSError as exc:
            raise StoreIOError(
                f"Failed to write {name}: {exc}", operation="write", collection=name
            ) from exc
        self._generations[name] = self._generations.get(name, 0) + 1
        self._after_write(name)

    def _after_write(self, name: str) -> None:
        """Best-effort invalidation; failures are logged, never raised."""
        try:
            self.cache.invalidate_collection(name)
        except Exception:
            logger.warning("Cache invalidation failed for %s.", name, exc_info=True)
        for hook in self._write_hooks.get(name, []):
            try:
                hook()
            except Exception:
                logger.warning("Write hook failed for %s.", name, exc_info=True)

    # -- derived queries --------------------------------------------------------

    async def cached_query(
        self,
        key: Hashable,
        depends_on: Iterable[str],
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Read-through cache for a value derived from one or more collections."""
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            return copy.deepcopy(cached)

        deps = tuple(depends_on)
        before = [self._generations.get(d, 0) for d in deps]
        value = await compute()
        if [self._generations.get(d, 0) for d in deps] == before:
            self.cache.set(key, value, depends_on=deps)
        return copy.deepcopy(value)

    # -- document CRUD --------------------------------------------------------

    async def append_document(self, name: str, document: Document) -> Document:
        """Append one document, assigning ``id``/``createdAt`` when absent."""
        doc = dict(document)
        doc.setdefault("id", new_id())
        doc.setdefault("createdAt", now_iso())
        documents = await self.read_collection(name)
        documents.append(doc)
        await self.write_collection(name, documents)
        return copy.deepcopy(doc)

    async def find_by_id(self, name: str, doc_id: str) -> Document:
        for doc in await self.read_collection(name):
            if doc.get("id") == doc_id:
                return doc
        raise NotFoundError(
            f"Item with id {doc_id} not found in {name}",
            collection=name, id=doc_id, operation="find",
        )

    async def find_one(
        self, name: str, predicate: Callable[[Document], bool]
    ) -> Document | None:
        """First document matching ``predicate`` in collection order, or None."""
        for doc in await self.read_collection(name):
            if predicate(doc):
                return doc
        return None

    async def find_all(
        self, name: str, predicate: Callable[[Document], bool]
    ) -> list[Document]:
        return [doc for doc in await self.read_collection(name) if predicate(doc)]

    async def update_by_id(self, name: str, doc_id: str, patch: dict[str, Any]) -> Document:
        """Merge ``patch`` into the document and stamp ``updatedAt``."""
        if "id" in patch and patch["id"] != doc_id:
            raise ValidationError(
                "Document id is immutable.", collection=name, id=doc_id, operation="update"
            )
        documents = await self.read_collection(name)
        for index, doc in enumerate(documents):
            if doc.get("id") == doc_id:
                updated = {**doc, **patch, "id": doc_id, "updatedAt": now_iso()}
                documents[index] = updated
                await self.write_collection(name, documents)
                return copy.deepcopy(updated)
        raise NotFoundError(
            f"Item with id {doc_id} not found in {name}",
            collection=name, id=doc_id, operation="update",
        )

    async def delete_by_id(self, name: str, doc_id: str) -> Document:
        """Remove the document and return it."""
        documents = await self.read_collection(name)
        for index, doc in enumerate(documents):
            if doc.get("id") == doc_id:
                removed = documents.pop(index)
                await self.write_collection(name, documents)
                return removed
        raise NotFoundError(
            f"Item with id {doc_id} not found in {name}",
            collection=name, id=doc_id, operation="delete",
        )

    async def count(self, name: str) -> int:
        return len(await self.read_collection(name))
