"""CartService — one cart document per user.

Every mutation reads the cart, changes it in memory and overwrites the
whole cart document (inside a whole-collection overwrite). There is no
per-cart lock: two concurrent mutations of the same cart can both start
from the same state, and the second write discards the first one's change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from storefront.constants import CARTS
from storefront.errors import NotFoundError, ValidationError
from storefront.store import new_id, now_iso

if TYPE_CHECKING:
    from storefront.store import DocumentStore


def _parse_quantity(value: Any) -> int | None:
    """Integer value of ``value`` (ints, integral floats, digit strings) or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class CartService:
    """Validates and mutates a user's cart through DocumentStore."""

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    # -- validation -----------------------------------------------------------

    @staticmethod
    def validate_cart_items(items: Any) -> list[dict[str, Any]]:
        """Normalize an incoming items payload.

        Quantities that are missing, malformed or below 1 become 1.
        """
        if not isinstance(items, list):
            raise ValidationError("Items must be an array", collection=CARTS)
        normalized = []
        for position, item in enumerate(items):
            if not isinstance(item, dict) or not item.get("productId"):
                raise ValidationError(
                    f"Item {position} must be an object with a productId",
                    collection=CARTS,
                )
            quantity = _parse_quantity(item.get("quantity"))
            normalized.append({**item, "quantity": quantity if quantity and quantity >= 1 else 1})
        return normalized

    @staticmethod
    def validate_quantity(quantity: Any) -> int:
        parsed = _parse_quantity(quantity)
        if parsed is None or parsed < 1:
            raise ValidationError("Quantity must be a positive number", collection=CARTS)
        return parsed

    @staticmethod
    def find_cart_item(cart: dict[str, Any], product_id: str) -> tuple[int, dict[str, Any] | None]:
        """Return ``(index, item)``; ``(-1, None)`` when the product is not in the cart."""
        items = cart.get("items")
        if not isinstance(items, list):
            raise ValidationError("Invalid cart structure", collection=CARTS)
        for index, item in enumerate(items):
            if item.get("productId") == product_id:
                return index, item
        return -1, None

    # -- reads ----------------------------------------------------------------

    async def get_user_cart(self, user_id: str) -> dict[str, Any]:
        """Fetch the user's cart, creating an empty one on first access."""
        if not user_id:
            raise ValidationError("User ID is required", collection=CARTS)
        cart = await self._store.find_one(CARTS, lambda c: c.get("userId") == user_id)
        if cart is not None:
            return cart
        return await self.save_cart(user_id, {"items": []})

    # -- mutations ------------------------------------------------------------

    async def save_cart(self, user_id: str, cart_data: dict[str, Any]) -> dict[str, Any]:
        """Overwrite the user's cart items, creating the cart document if absent."""
        carts = await self._store.read_collection(CARTS)
        now = now_iso()
        items = list(cart_data.get("items", []))
        for index, cart in enumerate(carts):
            if cart.get("userId") == user_id:
                saved = {**cart, "userId": user_id, "items": items, "updatedAt": now}
                carts[index] = saved
                break
        else:
            saved = {
                "id": new_id(),
                "userId": user_id,
                "items": items,
                "createdAt": now,
                "updatedAt": now,
            }
            carts.append(saved)
        await self._store.write_collection(CARTS, carts)
        return saved

    async def add_item(
        self, user_id: str, product: dict[str, Any], quantity: Any = 1
    ) -> dict[str, Any]:
        """Add ``product`` to the cart, merging quantities when already present."""
        qty = self.validate_quantity(quantity)
        cart = await self.get_user_cart(user_id)
        index, item = self.find_cart_item(cart, product["id"])
        if item is not None:
            cart["items"][index]["quantity"] = int(item.get("quantity", 0)) + qty
        else:
            cart["items"].append({
                "productId": product["id"],
                "title": product.get("title", ""),
                "price": product.get("price", 0),
                "quantity": qty,
            })
        return await self.save_cart(user_id, cart)

    async def update_item_quantity(
        self, user_id: str, product_id: str, quantity: Any
    ) -> dict[str, Any]:
        qty = self.validate_quantity(quantity)
        cart = await self.get_user_cart(user_id)
        index, _ = self.find_cart_item(cart, product_id)
        if index < 0:
            raise NotFoundError(
                "Item not found in cart", collection=CARTS, id=product_id, operation="update_item"
            )
        cart["items"][index]["quantity"] = qty
        return await self.save_cart(user_id, cart)

    async def remove_item(self, user_id: str, product_id: str) -> dict[str, Any]:
        cart = await self.get_user_cart(user_id)
        remaining = [i for i in cart["items"] if i.get("productId") != product_id]
        if len(remaining) == len(cart["items"]):
            raise NotFoundError(
                "Item not found in cart", collection=CARTS, id=product_id, operation="remove_item"
            )
        cart["items"] = remaining
        return await self.save_cart(user_id, cart)

    async def update_cart(self, user_id: str, items: Any) -> dict[str, Any]:
        """Replace the whole item list."""
        return await self.save_cart(user_id, {"items": self.validate_cart_items(items)})

    async def clear_cart(self, user_id: str) -> dict[str, Any]:
        return await self.save_cart(user_id, {"items": []})

    @staticmethod
    def cart_stats(cart: dict[str, Any] | None) -> dict[str, Any]:
        items = (cart or {}).get("items") or []
        return {
            "totalItems": len(items),
            "totalQuantity": sum(int(i.get("quantity", 0)) for i in items),
            "isEmpty": not items,
        }
