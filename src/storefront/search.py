"""Tokenized substring search over product text fields."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from storefront.constants import DEFAULT_SEARCH_LIMIT, PRODUCTS

if TYPE_CHECKING:
    from storefront.store import DocumentStore

SEARCH_FIELDS = ("title", "description", "category")


def _haystacks(product: dict[str, Any]) -> list[str]:
    return [str(product.get(f) or "").lower() for f in SEARCH_FIELDS]


def matches(product: dict[str, Any], phrase: str, tokens: list[str]) -> bool:
    """True if ``phrase`` appears in one field, or every token appears in some field."""
    fields = _haystacks(product)
    if any(phrase in text for text in fields):
        return True
    return bool(tokens) and all(any(tok in text for text in fields) for tok in tokens)


class SearchEngine:
    """Product search with a result cap and cached results.

    Scans in collection order and stops at ``limit`` matches, so large
    catalogs may have matches beyond the cap that are never returned.
    Results are cached per ``(term, limit)`` and dropped on any product write.
    """

    def __init__(self, store: DocumentStore, limit: int = DEFAULT_SEARCH_LIMIT) -> None:
        self._store = store
        self._limit = limit

    async def search(self, query: str, limit: int | None = None) -> list[dict[str, Any]]:
        cap = self._limit if limit is None else limit
        term = " ".join((query or "").lower().split())

        async def compute() -> list[dict[str, Any]]:
            tokens = term.split()
            results: list[dict[str, Any]] = []
            if cap <= 0:
                return results
            for product in await self._store.read_collection(PRODUCTS):
                if matches(product, term, tokens):
                    results.append(product)
                    if len(results) >= cap:
                        break
            return results

        return await self._store.cached_query(("search", term, cap), (PRODUCTS,), compute)
