"""Tests for CartService, including the documented lost-update race."""

import asyncio
import json

import pytest
from conftest import MemoryBackend

from storefront.carts import CartService
from storefront.constants import CARTS
from storefront.errors import NotFoundError, ValidationError
from storefront.store import DocumentStore

ITEMS = [
    {"productId": "p1", "title": "Beans", "price": 24.99, "quantity": 1},
    {"productId": "p2", "title": "Cup", "price": 15.99, "quantity": 2},
]


async def _cart_with_items(store: DocumentStore, user_id: str = "u1") -> CartService:
    carts = CartService(store)
    await carts.update_cart(user_id, ITEMS)
    return carts


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


class TestValidation:
    def test_non_array_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CartService.validate_cart_items({"productId": "p1"})

    def test_item_without_product_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            CartService.validate_cart_items([{"quantity": 1}])

    @pytest.mark.parametrize("raw, expected", [
        (3, 3), ("4", 4), (2.0, 2), (None, 1), ("abc", 1), (0, 1), (-2, 1), (1.5, 1), (True, 1),
    ])
    def test_malformed_quantities_default_to_one(self, raw, expected) -> None:
        [item] = CartService.validate_cart_items([{"productId": "p1", "quantity": raw}])
        assert item["quantity"] == expected

    def test_extra_fields_preserved(self) -> None:
        [item] = CartService.validate_cart_items([{"productId": "p1", "title": "Beans"}])
        assert item == {"productId": "p1", "title": "Beans", "quantity": 1}

    @pytest.mark.parametrize("raw", [0, -1, "x", None, 2.5])
    def test_validate_quantity_rejects(self, raw) -> None:
        with pytest.raises(ValidationError):
            CartService.validate_quantity(raw)

    def test_find_cart_item(self) -> None:
        cart = {"items": ITEMS}
        assert CartService.find_cart_item(cart, "p2") == (1, ITEMS[1])
        assert CartService.find_cart_item(cart, "p9") == (-1, None)
        with pytest.raises(ValidationError):
            CartService.find_cart_item({}, "p1")


# ---------------------------------------------------------------------------
# Cart documents
# ---------------------------------------------------------------------------


class TestCartDocuments:
    @pytest.mark.asyncio
    async def test_first_access_creates_empty_cart(self, store) -> None:
        cart = await CartService(store).get_user_cart("u1")
        assert cart["userId"] == "u1"
        assert cart["items"] == []
        assert cart["id"] and cart["updatedAt"]
        assert len(await store.read_collection(CARTS)) == 1

    @pytest.mark.asyncio
    async def test_one_cart_per_user(self, store) -> None:
        carts = CartService(store)
        first = await carts.get_user_cart("u1")
        await carts.update_cart("u1", ITEMS)
        await carts.get_user_cart("u2")
        docs = await store.read_collection(CARTS)
        assert sorted(c["userId"] for c in docs) == ["u1", "u2"]
        assert (await carts.get_user_cart("u1"))["id"] == first["id"]

    @pytest.mark.asyncio
    async def test_missing_user_id(self, store) -> None:
        with pytest.raises(ValidationError):
            await CartService(store).get_user_cart("")

    @pytest.mark.asyncio
    async def test_update_cart_requires_array(self, store) -> None:
        with pytest.raises(ValidationError):
            await CartService(store).update_cart("u1", "not-a-list")

    @pytest.mark.asyncio
    async def test_mutation_refreshes_updated_at(self, store) -> None:
        carts = await _cart_with_items(store)
        before = (await carts.get_user_cart("u1"))["updatedAt"]
        await asyncio.sleep(0.001)
        after = (await carts.update_item_quantity("u1", "p1", 3))["updatedAt"]
        assert after > before


# ---------------------------------------------------------------------------
# Item operations
# ---------------------------------------------------------------------------


class TestItemOperations:
    @pytest.mark.asyncio
    async def test_update_quantity(self, store) -> None:
        carts = await _cart_with_items(store)
        cart = await carts.update_item_quantity("u1", "p2", "5")
        assert cart["items"][1]["quantity"] == 5

    @pytest.mark.asyncio
    async def test_update_missing_item(self, store) -> None:
        carts = await _cart_with_items(store)
        with pytest.raises(NotFoundError):
            await carts.update_item_quantity("u1", "p9", 1)

    @pytest.mark.asyncio
    async def test_remove_item(self, store) -> None:
        carts = await _cart_with_items(store)
        cart = await carts.remove_item("u1", "p1")
        assert [i["productId"] for i in cart["items"]] == ["p2"]

    @pytest.mark.asyncio
    async def test_remove_missing_item(self, store) -> None:
        carts = await _cart_with_items(store)
        with pytest.raises(NotFoundError):
            await carts.remove_item("u1", "p9")

    @pytest.mark.asyncio
    async def test_add_item_merges_quantity(self, store) -> None:
        carts = await _cart_with_items(store)
        cart = await carts.add_item("u1", {"id": "p1", "title": "Beans", "price": 24.99}, 2)
        assert cart["items"][0]["quantity"] == 3
        cart = await carts.add_item("u1", {"id": "p3", "title": "Grinder", "price": 79.99})
        assert cart["items"][-1] == {
            "productId": "p3", "title": "Grinder", "price": 79.99, "quantity": 1,
        }

    @pytest.mark.asyncio
    async def test_clear_cart(self, store) -> None:
        carts = await _cart_with_items(store)
        assert (await carts.clear_cart("u1"))["items"] == []

    def test_cart_stats(self) -> None:
        assert CartService.cart_stats({"items": ITEMS}) == {
            "totalItems": 2, "totalQuantity": 3, "isEmpty": False,
        }
        assert CartService.cart_stats(None)["isEmpty"] is True


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestLostUpdate:
    @pytest.mark.asyncio
    async def test_concurrent_quantity_updates_can_lose_one(self) -> None:
        """Both updates read the cart before either write lands; the last
        whole-document overwrite discards the other change."""
        backend = MemoryBackend(write_delay=0.01)
        store = DocumentStore(backend)
        carts = await _cart_with_items(store)
        await carts.get_user_cart("u1")  # warm the cache

        await asyncio.gather(
            carts.update_item_quantity("u1", "p1", 5),
            carts.update_item_quantity("u1", "p2", 7),
        )

        [cart] = json.loads(backend.files[CARTS])
        quantities = {i["productId"]: i["quantity"] for i in cart["items"]}
        assert quantities != {"p1": 5, "p2": 7}
        assert quantities == {"p1": 1, "p2": 7}

    @pytest.mark.asyncio
    async def test_sequential_updates_both_survive(self, store) -> None:
        carts = await _cart_with_items(store)
        await carts.update_item_quantity("u1", "p1", 5)
        await carts.update_item_quantity("u1", "p2", 7)
        cart = await carts.get_user_cart("u1")
        assert {i["productId"]: i["quantity"] for i in cart["items"]} == {"p1": 5, "p2": 7}
