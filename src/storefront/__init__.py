"""Storefront — flat-file document store for a small online shop.

Collections persisted as JSON arrays, a read-through cache, a per-user
activity index, product search, and the cart -> order -> payment lifecycle.
"""

__version__ = "0.1.0"

from storefront.activity import ActivityIndex, ActivityLog, ActivityPage
from storefront.app import Storefront, build_storefront, create_storefront
from storefront.backend import CollectionBackend
from storefront.backends import FileBackend
from storefront.cache import CacheLayer
from storefront.carts import CartService
from storefront.catalog import ProductCatalog
from storefront.config import StoreConfig
from storefront.constants import OrderStatus
from storefront.errors import (
    AccessDenied,
    CorruptDataError,
    InsufficientPoints,
    InvalidStatusTransition,
    NotFoundError,
    OrderAlreadyCompleted,
    PaymentFailed,
    StoreError,
    StoreIOError,
    ValidationError,
)
from storefront.orders import OrderService, OrderTotals, compute_totals
from storefront.payments import PaymentResult, PaymentService
from storefront.search import SearchEngine
from storefront.sessions import SessionStore
from storefront.store import DocumentStore
from storefront.users import UserDirectory

__all__ = [
    "AccessDenied",
    "ActivityIndex",
    "ActivityLog",
    "ActivityPage",
    "CacheLayer",
    "CartService",
    "CollectionBackend",
    "CorruptDataError",
    "DocumentStore",
    "FileBackend",
    "InsufficientPoints",
    "InvalidStatusTransition",
    "NotFoundError",
    "OrderAlreadyCompleted",
    "OrderService",
    "OrderStatus",
    "OrderTotals",
    "PaymentFailed",
    "PaymentResult",
    "PaymentService",
    "ProductCatalog",
    "SearchEngine",
    "SessionStore",
    "StoreConfig",
    "StoreError",
    "StoreIOError",
    "Storefront",
    "UserDirectory",
    "ValidationError",
    "build_storefront",
    "compute_totals",
    "create_storefront",
]
