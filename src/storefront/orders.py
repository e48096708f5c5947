"""Order creation, ownership checks and status transitions.

Lifecycle::

    pending --[successful payment]--> completed   (terminal)
    pending --[cancel]--------------> cancelled   (terminal)

A completed order never changes again through this service; a second
payment attempt is rejected with ``OrderAlreadyCompleted``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from storefront.carts import CartService
from storefront.constants import (
    ADMIN_ROLE,
    FREE_SHIPPING_THRESHOLD,
    ORDERS,
    SHIPPING_FEE,
    TAX_RATE,
    OrderStatus,
)
from storefront.errors import (
    AccessDenied,
    InvalidStatusTransition,
    OrderAlreadyCompleted,
    ValidationError,
)
from storefront.payments import PaymentService
from storefront.store import now_iso

if TYPE_CHECKING:
    from storefront.store import DocumentStore

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")

_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.PENDING.value: frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value}),
    OrderStatus.COMPLETED.value: frozenset(),
    OrderStatus.CANCELLED.value: frozenset(),
}

_REQUIRED_CUSTOMER_FIELDS = ("name", "email", "address")


def _money(value: Any) -> Decimal:
    amount = Decimal(str(value))
    if not amount.is_finite():
        raise ValidationError(f"Invalid amount: {value!r}", collection=ORDERS)
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Totals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OrderTotals:
    """Rounded order amounts. ``total_amount`` is the sum of the rounded parts."""

    subtotal: float
    tax: float
    shipping: float
    total_amount: float

    def to_dict(self) -> dict[str, float]:
        return {
            "subtotal": self.subtotal,
            "tax": self.tax,
            "shipping": self.shipping,
            "totalAmount": self.total_amount,
        }


def compute_totals(
    items: list[dict[str, Any]],
    tax_rate: float = TAX_RATE,
    free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD,
    shipping_fee: float = SHIPPING_FEE,
) -> OrderTotals:
    """Subtotal, 8% tax, flat shipping below the free-shipping threshold."""
    subtotal = _money(
        sum((Decimal(str(i["price"])) * int(i["quantity"]) for i in items), Decimal(0))
    )
    tax = _money(subtotal * Decimal(str(tax_rate)))
    shipping = Decimal(0) if subtotal >= _money(free_shipping_threshold) else _money(shipping_fee)
    total = _money(subtotal + tax + shipping)
    return OrderTotals(float(subtotal), float(tax), float(shipping), float(total))


def _order_lines(items: Any) -> list[dict[str, Any]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item", collection=ORDERS)
    lines = []
    for position, item in enumerate(items):
        if not isinstance(item, dict) or not item.get("productId"):
            raise ValidationError(
                f"Item {position} must be an object with a productId", collection=ORDERS
            )
        try:
            price = float(item.get("price"))
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Item {position} has an invalid price", collection=ORDERS
            ) from exc
        if not math.isfinite(price):
            raise ValidationError(f"Item {position} has an invalid price", collection=ORDERS)
        if price < 0:
            raise ValidationError(f"Item {position} has a negative price", collection=ORDERS)
        quantity = CartService.validate_quantity(item.get("quantity"))
        lines.append({
            "productId": item["productId"],
            "title": item.get("title", ""),
            "quantity": quantity,
            "price": price,
            "subtotal": float(_money(Decimal(str(price)) * quantity)),
        })
    return lines


def _validate_customer(customer_info: Any) -> dict[str, str]:
    if not isinstance(customer_info, Mapping):
        raise ValidationError(
            "Customer information is required (name, email, address)", collection=ORDERS
        )
    missing = [f for f in _REQUIRED_CUSTOMER_FIELDS if not customer_info.get(f)]
    if missing:
        raise ValidationError(
            "Customer information is required (name, email, address)",
            errors=[f"{f} is required" for f in missing],
            collection=ORDERS,
        )
    return {
        "name": customer_info["name"],
        "email": customer_info["email"],
        "address": customer_info["address"],
        "phone": customer_info.get("phone") or "",
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class OrderService:
    """Owns order documents: creation, access control and the status machine.

    ``requester`` arguments are user mappings with at least ``id`` and
    ``role``. Only the order's owner or an admin may read or pay an order.
    """

    def __init__(
        self,
        store: DocumentStore,
        carts: CartService,
        payments: PaymentService | None = None,
        tax_rate: float = TAX_RATE,
        free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD,
        shipping_fee: float = SHIPPING_FEE,
    ) -> None:
        self._store = store
        self._carts = carts
        self._payments = payments or PaymentService()
        self._tax_rate = tax_rate
        self._free_shipping_threshold = free_shipping_threshold
        self._shipping_fee = shipping_fee

    # -- access control ---------------------------------------------------------

    @staticmethod
    def check_access(order: Mapping[str, Any], requester: Mapping[str, Any]) -> None:
        if requester.get("role") == ADMIN_ROLE:
            return
        if order.get("userId") != requester.get("id"):
            raise AccessDenied(
                "Access denied", collection=ORDERS, id=order.get("id"), user_id=requester.get("id")
            )

    # -- creation ---------------------------------------------------------------

    def compute_totals(self, items: list[dict[str, Any]]) -> OrderTotals:
        return compute_totals(
            items, self._tax_rate, self._free_shipping_threshold, self._shipping_fee
        )

    async def create_order(
        self,
        user_id: str,
        customer_info: Mapping[str, Any],
        items: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Create a pending order from ``items`` or, if omitted, the user's cart."""
        customer = _validate_customer(customer_info)
        if items is None:
            cart = await self._carts.get_user_cart(user_id)
            if not cart.get("items"):
                raise ValidationError("Cart is empty", collection=ORDERS, user_id=user_id)
            items = cart["items"]
        lines = _order_lines(items)
        totals = self.compute_totals(lines)
        if totals.total_amount <= 0:
            raise ValidationError("Order total must be positive", collection=ORDERS)

        order = await self._store.append_document(
            ORDERS,
            {
                "userId": user_id,
                "items": lines,
                **totals.to_dict(),
                "status": OrderStatus.PENDING.value,
                "customerInfo": customer,
                "shippingAddress": customer["address"],
            },
        )
        logger.info("Created order %s for %s (%.2f).", order["id"], user_id, totals.total_amount)
        return order

    # -- reads ------------------------------------------------------------------

    async def get_order_by_id(self, order_id: str, requester: Mapping[str, Any]) -> dict[str, Any]:
        order = await self._store.find_by_id(ORDERS, order_id)
        self.check_access(order, requester)
        return order

    async def list_user_orders(
        self, user_id: str, requester: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        """The user's orders, newest first."""
        self.check_access({"userId": user_id}, requester)
        orders = await self._store.find_all(ORDERS, lambda o: o.get("userId") == user_id)
        return sorted(orders, key=lambda o: o.get("createdAt", ""), reverse=True)

    async def list_all_orders(self, requester: Mapping[str, Any]) -> list[dict[str, Any]]:
        if requester.get("role") != ADMIN_ROLE:
            raise AccessDenied("Admin access required", collection=ORDERS)
        return await self._store.read_collection(ORDERS)

    # -- transitions ------------------------------------------------------------

    async def update_order_status(
        self,
        order_id: str,
        new_status: OrderStatus | str,
        extra: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            status = OrderStatus(new_status).value
        except ValueError as exc:
            raise ValidationError(
                f"Unknown order status {new_status!r}", collection=ORDERS, id=order_id
            ) from exc
        order = await self._store.find_by_id(ORDERS, order_id)
        current = order.get("status", OrderStatus.PENDING.value)
        if current == OrderStatus.COMPLETED.value:
            raise OrderAlreadyCompleted(
                f"Order {order_id} is already completed", collection=ORDERS, id=order_id
            )
        if status not in _TRANSITIONS.get(current, frozenset()):
            raise InvalidStatusTransition(
                f"Cannot move order {order_id} from {current} to {status}",
                collection=ORDERS, id=order_id,
            )

        patch: dict[str, Any] = {**(extra or {}), "status": status}
        if status == OrderStatus.COMPLETED.value:
            patch["completedAt"] = now_iso()
        elif status == OrderStatus.CANCELLED.value:
            patch["cancelledAt"] = now_iso()
        return await self._store.update_by_id(ORDERS, order_id, patch)

    async def apply_payment(
        self,
        order_id: str,
        requester: Mapping[str, Any],
        payment_record: dict[str, Any],
    ) -> dict[str, Any]:
        """Mark a pending order completed with ``payment_record`` and clear the buyer's cart."""
        order = await self.get_order_by_id(order_id, requester)
        if order.get("status") == OrderStatus.COMPLETED.value:
            raise OrderAlreadyCompleted(
                f"Order {order_id} is already completed", collection=ORDERS, id=order_id
            )
        updated = await self.update_order_status(
            order_id, OrderStatus.COMPLETED, {"paymentDetails": payment_record}
        )
        await self._carts.clear_cart(order["userId"])
        return updated

    async def pay_order(
        self,
        order_id: str,
        requester: Mapping[str, Any],
        payment_details: dict[str, Any],
    ) -> dict[str, Any]:
        """Charge the order total and complete the order.

        The idempotency guard runs before the gateway is called, so a retried
        request for a completed order is rejected without a second charge.
        Returns ``{"order": ..., "confirmation": ...}``.
        """
        order = await self.get_order_by_id(order_id, requester)
        status = order.get("status")
        if status == OrderStatus.COMPLETED.value:
            raise OrderAlreadyCompleted(
                f"Order {order_id} is already completed", collection=ORDERS, id=order_id
            )
        if status != OrderStatus.PENDING.value:
            raise InvalidStatusTransition(
                f"Cannot pay order {order_id} in status {status}", collection=ORDERS, id=order_id
            )

        result = await self._payments.process_payment(payment_details, order["totalAmount"])
        updated = await self.apply_payment(
            order_id, requester, self._payments.create_payment_record(result)
        )
        logger.info("Order %s paid (transaction %s).", order_id, result.transaction_id)
        return {
            "order": updated,
            "confirmation": self._payments.generate_confirmation(result),
        }

    async def cancel_order(self, order_id: str, requester: Mapping[str, Any]) -> dict[str, Any]:
        await self.get_order_by_id(order_id, requester)
        return await self.update_order_status(order_id, OrderStatus.CANCELLED)
