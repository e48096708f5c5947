"""Product catalog operations on top of DocumentStore."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any

from storefront.constants import PRODUCTS
from storefront.errors import ValidationError

if TYPE_CHECKING:
    from storefront.store import DocumentStore

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("title", "description", "price", "category")
_DEFAULT_IMAGE = "/images/products/default.jpg"

SAMPLE_PRODUCTS: tuple[dict[str, Any], ...] = (
    {
        "title": "Professional Espresso Machine",
        "description": "Italian-made espresso machine with dual boiler system for perfect coffee extraction",
        "price": 299.99,
        "category": "machines",
        "image": "/images/products/espresso-machine-pro.jpg",
    },
    {
        "title": "Premium Drip Coffee Maker",
        "description": "Programmable coffee maker with thermal carafe, perfect for office or home",
        "price": 89.99,
        "category": "machines",
        "image": "/images/products/drip-coffee-maker.jpg",
    },
    {
        "title": "French Press Deluxe",
        "description": "Borosilicate glass French press with steel frame for rich, full-bodied coffee",
        "price": 34.99,
        "category": "machines",
        "image": "/images/products/french-press.jpg",
    },
    {
        "title": "Colombian Arabica Coffee Beans",
        "description": "Single-origin Colombian coffee beans, medium roast with chocolate notes",
        "price": 24.99,
        "category": "beans",
        "image": "/images/products/colombian-beans.jpg",
    },
    {
        "title": "Ethiopian Yirgacheffe",
        "description": "Light roast Ethiopian beans with bright acidity and floral aroma",
        "price": 28.99,
        "category": "beans",
        "image": "/images/products/ethiopian-beans.jpg",
    },
    {
        "title": "House Espresso Blend",
        "description": "Dark roast espresso blend perfect for lattes and cappuccinos",
        "price": 22.99,
        "category": "beans",
        "image": "/images/products/espresso-blend.jpg",
    },
    {
        "title": "Artisan Ceramic Coffee Cup",
        "description": "Handcrafted ceramic cup with ergonomic handle, perfect for morning coffee",
        "price": 15.99,
        "category": "accessories",
        "image": "/images/products/ceramic-cup.jpg",
    },
    {
        "title": "Electric Milk Frother",
        "description": "Stainless steel milk frother for perfect cappuccino and latte foam",
        "price": 45.99,
        "category": "accessories",
        "image": "/images/products/milk-frother.jpg",
    },
    {
        "title": "Burr Coffee Grinder",
        "description": "Conical burr grinder with 15 grind settings for consistent results",
        "price": 79.99,
        "category": "accessories",
        "image": "/images/products/coffee-grinder.jpg",
    },
)


def _coerce_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid price: {value!r}") from exc
    if not math.isfinite(price):
        raise ValidationError(f"Invalid price: {value!r}")
    if price < 0:
        raise ValidationError("Price must not be negative.")
    return price


class ProductCatalog:
    """Create, read, update and delete products.

    Every write goes through ``DocumentStore.write_collection`` and so
    drops cached product reads and cached search results.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_product(self, data: dict[str, Any]) -> dict[str, Any]:
        missing = [f for f in _REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                errors=[f"{f} is required" for f in missing],
                collection=PRODUCTS,
                operation="create",
            )
        product = {
            **data,
            "price": _coerce_price(data["price"]),
            "image": data.get("image") or _DEFAULT_IMAGE,
            "inStock": data.get("inStock", True),
        }
        product.pop("id", None)
        return await self._store.append_document(PRODUCTS, product)

    async def get_product(self, product_id: str) -> dict[str, Any]:
        return await self._store.find_by_id(PRODUCTS, product_id)

    async def list_products(self) -> list[dict[str, Any]]:
        return await self._store.read_collection(PRODUCTS)

    async def products_by_category(self, category: str) -> list[dict[str, Any]]:
        return await self._store.find_all(PRODUCTS, lambda p: p.get("category") == category)

    async def update_product(self, product_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Apply the non-None fields of ``patch``."""
        changes = {k: v for k, v in patch.items() if v is not None and k != "id"}
        if "price" in changes:
            changes["price"] = _coerce_price(changes["price"])
        return await self._store.update_by_id(PRODUCTS, product_id, changes)

    async def delete_product(self, product_id: str) -> dict[str, Any]:
        return await self._store.delete_by_id(PRODUCTS, product_id)

    async def seed_sample_products(self) -> int:
        """Populate an empty catalog with the sample products. Returns count created."""
        existing = await self._store.read_collection(PRODUCTS)
        if existing:
            logger.info(
                "Found %d existing products, skipping sample data.", len(existing)
            )
            return 0
        for data in SAMPLE_PRODUCTS:
            await self.create_product(dict(data))
        logger.info("Created %d sample products.", len(SAMPLE_PRODUCTS))
        return len(SAMPLE_PRODUCTS)
