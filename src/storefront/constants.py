"""Constants for the storefront data layer."""

from enum import Enum


# Collection names; each maps to one JSON array file.
PRODUCTS = "products"
USERS = "users"
CARTS = "carts"
ORDERS = "orders"
SESSIONS = "sessions"
ACTIVITY = "activity"
REVIEWS = "reviews"
WISHLISTS = "wishlists"
LOYALTY = "loyalty"
SUPPORT = "support"

KNOWN_COLLECTIONS: tuple[str, ...] = (
    PRODUCTS,
    USERS,
    CARTS,
    ORDERS,
    SESSIONS,
    ACTIVITY,
    REVIEWS,
    WISHLISTS,
    LOYALTY,
    SUPPORT,
)

ADMIN_ROLE = "admin"
USER_ROLE = "user"

DEFAULT_CACHE_TTL_SECS = 300.0  # 5 minutes
DEFAULT_CACHE_MAXSIZE = 256
DEFAULT_SEARCH_LIMIT = 50

TAX_RATE = 0.08
FREE_SHIPPING_THRESHOLD = 50.0  # inclusive
SHIPPING_FEE = 9.99

SESSION_TTL_SECS = 30 * 60
REMEMBER_ME_TTL_SECS = 12 * 24 * 60 * 60

PAYMENT_FAILURE_RATE = 0.05


class OrderStatus(str, Enum):
    """Order lifecycle states. ``pending`` is the only non-terminal state."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
