"""Startup wiring: one DocumentStore and the services built on it.

The host application calls ``create_storefront()`` once and passes the
returned bundle (or individual services) to its handlers. Nothing here
is a module-level singleton.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass

from storefront.activity import ActivityLog
from storefront.backends.filesystem import FileBackend
from storefront.cache import CacheLayer
from storefront.carts import CartService
from storefront.catalog import ProductCatalog
from storefront.config import StoreConfig
from storefront.orders import OrderService
from storefront.payments import PaymentService
from storefront.search import SearchEngine
from storefront.sessions import SessionStore
from storefront.store import DocumentStore
from storefront.users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class Storefront:
    config: StoreConfig
    store: DocumentStore
    catalog: ProductCatalog
    search: SearchEngine
    users: UserDirectory
    activity: ActivityLog
    carts: CartService
    payments: PaymentService
    orders: OrderService
    sessions: SessionStore

    async def close(self) -> None:
        """Stop background work (the session sweep)."""
        await self.sessions.stop()


def build_storefront(
    config: StoreConfig,
    store: DocumentStore | None = None,
    rng: random.Random | None = None,
) -> Storefront:
    """Construct every service around one store without touching the disk."""
    if store is None:
        store = DocumentStore(
            FileBackend(config.data_dir),
            CacheLayer(ttl_secs=config.cache_ttl_secs, maxsize=config.cache_maxsize),
        )
    carts = CartService(store)
    payments = PaymentService(
        failure_rate=config.payment_failure_rate,
        rng=rng,
        min_latency_secs=config.payment_min_latency_secs,
        max_latency_secs=config.payment_max_latency_secs,
    )
    return Storefront(
        config=config,
        store=store,
        catalog=ProductCatalog(store),
        search=SearchEngine(store, limit=config.search_limit),
        users=UserDirectory(store),
        activity=ActivityLog(store, page_size=config.activity_page_size),
        carts=carts,
        payments=payments,
        orders=OrderService(
            store,
            carts,
            payments,
            tax_rate=config.tax_rate,
            free_shipping_threshold=config.free_shipping_threshold,
            shipping_fee=config.shipping_fee,
        ),
        sessions=SessionStore(
            store,
            session_ttl_secs=config.session_ttl_secs,
            remember_me_ttl_secs=config.remember_me_ttl_secs,
            sweep_interval_secs=config.session_sweep_interval_secs,
        ),
    )


async def create_storefront(
    config: StoreConfig | None = None,
    *,
    seed: bool = False,
    start_sweep: bool = False,
    store: DocumentStore | None = None,
    rng: random.Random | None = None,
) -> Storefront:
    """Build the services, create missing collection files and optionally seed."""
    shop = build_storefront(config or StoreConfig(), store=store, rng=rng)
    created = await shop.store.initialize()
    if created:
        logger.info("Initialized collections: %s", ", ".join(created))
    if seed:
        await shop.catalog.seed_sample_products()
    if start_sweep:
        await shop.sessions.start_background_sweep()
    return shop
