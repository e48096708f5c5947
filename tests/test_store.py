"""Tests for DocumentStore: CRUD, error mapping, cache coherence."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import MemoryBackend

from storefront.cache import CacheLayer
from storefront.constants import KNOWN_COLLECTIONS, PRODUCTS
from storefront.errors import CorruptDataError, NotFoundError, StoreIOError, ValidationError
from storefront.search import SearchEngine
from storefront.store import DocumentStore


def _docs() -> list[dict]:
    return [
        {"id": "p1", "title": "Espresso Machine", "createdAt": "2024-01-01T00:00:00+00:00"},
        {"id": "p2", "title": "French Press", "createdAt": "2024-01-02T00:00:00+00:00"},
    ]


# ---------------------------------------------------------------------------
# read / write
# ---------------------------------------------------------------------------


class TestReadWrite:
    @pytest.mark.asyncio
    async def test_missing_collection_reads_empty(self, store) -> None:
        assert await store.read_collection("orders") == []

    @pytest.mark.asyncio
    async def test_round_trip(self, store) -> None:
        docs = _docs()
        await store.write_collection(PRODUCTS, docs)
        assert await store.read_collection(PRODUCTS) == docs

    @pytest.mark.asyncio
    async def test_written_file_is_json_array(self, store, backend) -> None:
        await store.write_collection(PRODUCTS, _docs())
        assert json.loads(backend.files[PRODUCTS]) == _docs()

    @pytest.mark.asyncio
    async def test_corrupt_json_raises(self) -> None:
        store = DocumentStore(MemoryBackend({"orders": "[{not json"}))
        with pytest.raises(CorruptDataError) as exc_info:
            await store.read_collection("orders")
        assert exc_info.value.error_type == "JSON_PARSE_ERROR"
        assert exc_info.value.context["collection"] == "orders"

    @pytest.mark.asyncio
    async def test_non_array_raises(self) -> None:
        store = DocumentStore(MemoryBackend({"orders": '{"id": "o1"}'}))
        with pytest.raises(CorruptDataError):
            await store.read_collection("orders")

    @pytest.mark.asyncio
    async def test_array_of_non_documents_raises(self) -> None:
        store = DocumentStore(MemoryBackend({"orders": "[1, 2]"}))
        with pytest.raises(CorruptDataError):
            await store.read_collection("orders")

    @pytest.mark.asyncio
    async def test_read_os_error_maps_to_store_io_error(self) -> None:
        backend = AsyncMock()
        backend.read_text = AsyncMock(side_effect=PermissionError("denied"))
        store = DocumentStore(backend)
        with pytest.raises(StoreIOError) as exc_info:
            await store.read_collection("users")
        assert exc_info.value.error_type == "FILE_READ_ERROR"
        assert isinstance(exc_info.value.__cause__, PermissionError)

    @pytest.mark.asyncio
    async def test_write_os_error_maps_to_store_io_error(self) -> None:
        backend = AsyncMock()
        backend.write_text = AsyncMock(side_effect=OSError("disk full"))
        store = DocumentStore(backend)
        with pytest.raises(StoreIOError) as exc_info:
            await store.write_collection("users", [])
        assert exc_info.value.error_type == "FILE_WRITE_ERROR"

    @pytest.mark.asyncio
    async def test_read_shared_returns_cached_list(self, store, backend) -> None:
        await store.write_collection(PRODUCTS, _docs())
        first = await store.read_shared(PRODUCTS)
        assert await store.read_shared(PRODUCTS) is first
        assert await store.read_collection(PRODUCTS) is not first
        assert backend.reads == 1

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        first = await store.read_collection(PRODUCTS)
        first[0]["title"] = "mutated"
        first.append({"id": "p3"})
        assert await store.read_collection(PRODUCTS) == _docs()


# ---------------------------------------------------------------------------
# initialize
# ---------------------------------------------------------------------------


class TestInitialize:
    @pytest.mark.asyncio
    async def test_creates_missing_collections(self, store, backend) -> None:
        backend.files[PRODUCTS] = json.dumps(_docs())
        created = await store.initialize()
        assert PRODUCTS not in created
        assert set(created) == set(KNOWN_COLLECTIONS) - {PRODUCTS}
        assert backend.files["orders"] == "[]"
        assert json.loads(backend.files[PRODUCTS]) == _docs()

    @pytest.mark.asyncio
    async def test_second_initialize_creates_nothing(self, store) -> None:
        await store.initialize()
        assert await store.initialize() == []


# ---------------------------------------------------------------------------
# CRUD by id
# ---------------------------------------------------------------------------


class TestCrud:
    @pytest.mark.asyncio
    async def test_append_assigns_id_and_created_at(self, store) -> None:
        doc = await store.append_document("reviews", {"rating": 5})
        assert doc["id"]
        assert doc["createdAt"]
        assert await store.read_collection("reviews") == [doc]

    @pytest.mark.asyncio
    async def test_append_keeps_given_id(self, store) -> None:
        doc = await store.append_document("reviews", {"id": "r1"})
        assert doc["id"] == "r1"

    @pytest.mark.asyncio
    async def test_find_by_id(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        assert (await store.find_by_id(PRODUCTS, "p2"))["title"] == "French Press"

    @pytest.mark.asyncio
    async def test_find_by_id_missing(self, store) -> None:
        with pytest.raises(NotFoundError) as exc_info:
            await store.find_by_id(PRODUCTS, "nope")
        assert exc_info.value.context == {
            "collection": PRODUCTS, "id": "nope", "operation": "find",
        }

    @pytest.mark.asyncio
    async def test_update_merges_and_stamps(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        updated = await store.update_by_id(PRODUCTS, "p1", {"price": 10.0})
        assert updated["price"] == 10.0
        assert updated["title"] == "Espresso Machine"
        assert updated["updatedAt"]
        assert (await store.find_by_id(PRODUCTS, "p1"))["price"] == 10.0

    @pytest.mark.asyncio
    async def test_update_cannot_change_id(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        with pytest.raises(ValidationError):
            await store.update_by_id(PRODUCTS, "p1", {"id": "other"})

    @pytest.mark.asyncio
    async def test_update_missing(self, store) -> None:
        with pytest.raises(NotFoundError):
            await store.update_by_id(PRODUCTS, "nope", {})

    @pytest.mark.asyncio
    async def test_delete(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        removed = await store.delete_by_id(PRODUCTS, "p1")
        assert removed["id"] == "p1"
        assert [d["id"] for d in await store.read_collection(PRODUCTS)] == ["p2"]

    @pytest.mark.asyncio
    async def test_delete_missing(self, store) -> None:
        with pytest.raises(NotFoundError):
            await store.delete_by_id(PRODUCTS, "nope")

    @pytest.mark.asyncio
    async def test_find_one_and_find_all(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        assert (await store.find_one(PRODUCTS, lambda d: d["id"] == "p2"))["id"] == "p2"
        assert await store.find_one(PRODUCTS, lambda d: False) is None
        assert len(await store.find_all(PRODUCTS, lambda d: True)) == 2
        assert await store.count(PRODUCTS) == 2


# ---------------------------------------------------------------------------
# Cache coherence
# ---------------------------------------------------------------------------


class TestCacheCoherence:
    @pytest.mark.asyncio
    async def test_second_read_served_from_cache(self, store, backend) -> None:
        await store.write_collection(PRODUCTS, _docs())
        await store.read_collection(PRODUCTS)
        reads = backend.reads
        await store.read_collection(PRODUCTS)
        assert backend.reads == reads

    @pytest.mark.asyncio
    async def test_write_replaces_cached_read(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        await store.read_collection(PRODUCTS)  # warm
        new_docs = [{"id": "p9", "title": "Grinder"}]
        await store.write_collection(PRODUCTS, new_docs)
        assert await store.read_collection(PRODUCTS) == new_docs

    @pytest.mark.asyncio
    async def test_product_write_drops_cached_search(self, store) -> None:
        await store.write_collection(PRODUCTS, _docs())
        search = SearchEngine(store)
        assert [p["id"] for p in await search.search("french")] == ["p2"]
        await store.write_collection(
            PRODUCTS, _docs() + [{"id": "p3", "title": "French Roast"}]
        )
        assert [p["id"] for p in await search.search("french")] == ["p2", "p3"]

    @pytest.mark.asyncio
    async def test_load_straddling_write_is_not_cached(self, backend) -> None:
        store = DocumentStore(backend, CacheLayer())
        backend.files[PRODUCTS] = json.dumps(_docs())
        original_read = backend.read_text

        async def read_then_write(name):
            text = await original_read(name)
            # another handler writes while this load is in flight
            await store.write_collection(PRODUCTS, [])
            return text

        backend.read_text = read_then_write
        stale = await store.read_collection(PRODUCTS)
        assert len(stale) == 2
        backend.read_text = original_read
        assert await store.read_collection(PRODUCTS) == []

    @pytest.mark.asyncio
    async def test_invalidation_failure_is_logged_not_raised(self, store, caplog) -> None:
        store.cache.invalidate_collection = MagicMock(side_effect=RuntimeError("boom"))
        with caplog.at_level(logging.WARNING, logger="storefront.store"):
            await store.write_collection(PRODUCTS, [])
        assert "Cache invalidation failed" in caplog.text

    @pytest.mark.asyncio
    async def test_write_hooks_fire(self, store) -> None:
        hook = MagicMock()
        store.on_write("reviews", hook)
        await store.write_collection("reviews", [])
        await store.write_collection(PRODUCTS, [])
        hook.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_block_write(self, store, backend) -> None:
        store.on_write("reviews", MagicMock(side_effect=ValueError("bad hook")))
        await store.write_collection("reviews", [{"id": "r1"}])
        assert json.loads(backend.files["reviews"]) == [{"id": "r1"}]
