"""Storefront configuration — plain frozen dataclass, no pydantic.

The host application constructs this from its own settings (env vars,
CLI flags, etc.) and passes it to ``create_storefront``.
"""

from dataclasses import dataclass

from storefront.constants import (
    DEFAULT_CACHE_MAXSIZE,
    DEFAULT_CACHE_TTL_SECS,
    DEFAULT_SEARCH_LIMIT,
    FREE_SHIPPING_THRESHOLD,
    PAYMENT_FAILURE_RATE,
    REMEMBER_ME_TTL_SECS,
    SESSION_TTL_SECS,
    SHIPPING_FEE,
    TAX_RATE,
)


@dataclass(frozen=True)
class StoreConfig:
    data_dir: str = "data"
    cache_ttl_secs: float = DEFAULT_CACHE_TTL_SECS
    cache_maxsize: int = DEFAULT_CACHE_MAXSIZE
    search_limit: int = DEFAULT_SEARCH_LIMIT
    activity_page_size: int = 20
    tax_rate: float = TAX_RATE
    free_shipping_threshold: float = FREE_SHIPPING_THRESHOLD
    shipping_fee: float = SHIPPING_FEE
    session_ttl_secs: int = SESSION_TTL_SECS
    remember_me_ttl_secs: int = REMEMBER_ME_TTL_SECS
    session_sweep_interval_secs: int = 3600
    payment_failure_rate: float = PAYMENT_FAILURE_RATE
    payment_min_latency_secs: float = 0.5
    payment_max_latency_secs: float = 1.5
