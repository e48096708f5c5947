"""Activity log and its per-user secondary index.

The ActivityIndex maps username -> activity ids, most recent first. It
is purely derived: it is rebuilt lazily by one pass over the activity
collection whenever the collection's content signature differs from the
one the index was built against, or after the store reports a write.
"""

from __future__ import annotations

import copy
import hashlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from storefront.constants import ACTIVITY
from storefront.errors import ValidationError

if TYPE_CHECKING:
    from storefront.store import DocumentStore

logger = logging.getLogger(__name__)


def _timestamp_key(record: dict[str, Any]) -> datetime:
    """Sort key for activity timestamps; unparseable values sort oldest."""
    raw = record.get("timestamp")
    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed
    return datetime.min.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# ActivityIndex
# ---------------------------------------------------------------------------


class ActivityIndex:
    """Lazily rebuilt username -> [activity id] index.

    Owned by the DocumentStore, which calls ``invalidate()`` after every
    write to the activity collection. Records without an ``id`` cannot be
    addressed and are left out of the index.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store
        self._by_user: dict[str, list[str]] = {}
        self._positions: dict[str, int] = {}
        self._signature: str | None = None
        self._stale = True
        self._builds = 0

    def invalidate(self) -> None:
        """Force a rebuild on next access."""
        self._stale = True

    @staticmethod
    def signature(records: list[dict[str, Any]]) -> str:
        """Cheap content signature: record count plus a digest of id/user/timestamp."""
        digest = hashlib.sha1(str(len(records)).encode())
        for rec in records:
            digest.update(
                f"\x1f{rec.get('id')}\x1e{rec.get('username')}\x1e{rec.get('timestamp')}".encode()
            )
        return digest.hexdigest()

    def _rebuild(self, records: list[dict[str, Any]], signature: str) -> None:
        groups: dict[str, list[dict[str, Any]]] = {}
        positions: dict[str, int] = {}
        for pos, rec in enumerate(records):
            rec_id = rec.get("id")
            if not rec_id:
                continue
            positions[rec_id] = pos
            groups.setdefault(str(rec.get("username")), []).append(rec)

        self._by_user = {
            user: [r["id"] for r in sorted(recs, key=_timestamp_key, reverse=True)]
            for user, recs in groups.items()
        }
        self._positions = positions
        self._signature = signature
        self._stale = False
        self._builds += 1
        logger.debug(
            "Rebuilt activity index: %d records, %d users.", len(records), len(groups)
        )

    async def _fresh_records(self) -> list[dict[str, Any]]:
        records = await self._store.read_shared(ACTIVITY)
        signature = self.signature(records)
        if self._stale or signature != self._signature:
            self._rebuild(records, signature)
        return records

    async def ids_for(self, username: str) -> list[str]:
        """All activity ids for ``username``, newest first."""
        await self._fresh_records()
        return list(self._by_user.get(username, []))

    async def page_for(
        self, username: str, page: int = 1, page_size: int = 20
    ) -> tuple[list[dict[str, Any]], int]:
        """Hydrate one page of a user's activity. Returns ``(records, total)``."""
        records = await self._fresh_records()
        ids = self._by_user.get(username, [])
        start = (page - 1) * page_size
        page_ids = ids[start:start + page_size]
        return copy.deepcopy([records[self._positions[i]] for i in page_ids]), len(ids)

    @property
    def build_count(self) -> int:
        """Number of rebuilds performed since construction."""
        return self._builds


# ---------------------------------------------------------------------------
# ActivityLog
# ---------------------------------------------------------------------------


@dataclass
class ActivityPage:
    """One page of a user's activity, newest first."""

    username: str
    page: int
    page_size: int
    total: int
    items: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "username": self.username,
            "items": self.items,
            "page": self.page,
            "pageSize": self.page_size,
            "total": self.total,
            "totalPages": self.total_pages,
        }


class ActivityLog:
    """Append activity records and query them per user through the index."""

    def __init__(self, store: DocumentStore, page_size: int = 20) -> None:
        self._store = store
        self._page_size = page_size

    async def log_activity(
        self, username: str, action: str, details: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Record one action. Assigns ``id`` and ``timestamp``."""
        now = datetime.now(timezone.utc).isoformat()
        return await self._store.append_document(
            ACTIVITY,
            {
                "username": username,
                "action": action,
                "details": details or {},
                "timestamp": now,
                "createdAt": now,
            },
        )

    async def activities_for_user(
        self, username: str, page: int = 1, page_size: int | None = None
    ) -> ActivityPage:
        """Return page ``page`` (1-based) of ``username``'s activity."""
        size = page_size or self._page_size
        if page < 1 or size < 1:
            raise ValidationError(
                "page and page_size must be positive.", operation="activity_page"
            )

        async def compute() -> dict[str, Any]:
            items, total = await self._store.activity_index.page_for(username, page, size)
            return {"items": items, "total": total}

        result = await self._store.cached_query(
            ("activity-page", username, page, size), (ACTIVITY,), compute
        )
        return ActivityPage(
            username=username,
            page=page,
            page_size=size,
            total=result["total"],
            items=result["items"],
        )

    async def all_activity(self) -> list[dict[str, Any]]:
        return await self._store.read_collection(ACTIVITY)
