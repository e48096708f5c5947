"""Token-keyed login sessions with expiry and single-session-per-user.

A session is dead as soon as ``now > expiresAt``, whether or not the
sweep has removed its record yet. The sweep only bounds the size of the
sessions collection.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from storefront.constants import REMEMBER_ME_TTL_SECS, SESSION_TTL_SECS, SESSIONS, USERS
from storefront.store import new_id
from storefront.users import public_view

if TYPE_CHECKING:
    from storefront.store import DocumentStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_expiry(raw: Any) -> datetime | None:
    if not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class SessionStore:
    """Session records persisted in the ``sessions`` collection.

    - ``create_session()`` replaces every earlier session of the same user.
    - ``verify_token()`` treats expired sessions as absent.
    - ``sweep_expired()`` removes expired records; failures are logged only.
    - A background task can run the sweep periodically.
    """

    def __init__(
        self,
        store: DocumentStore,
        session_ttl_secs: int = SESSION_TTL_SECS,
        remember_me_ttl_secs: int = REMEMBER_ME_TTL_SECS,
        sweep_interval_secs: float = 3600,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(seconds=session_ttl_secs)
        self._remember_ttl = timedelta(seconds=remember_me_ttl_secs)
        self._sweep_interval = sweep_interval_secs
        self._clock = clock
        self._sweep_task: asyncio.Task[None] | None = None

    def _is_expired(self, session: dict[str, Any], now: datetime) -> bool:
        expires_at = _parse_expiry(session.get("expiresAt"))
        return expires_at is None or now > expires_at

    async def create_session(self, user_id: str, remember_me: bool = False) -> dict[str, str]:
        """Issue a new opaque token for ``user_id``. Returns ``{token, expiresAt}``."""
        now = self._clock()
        expires_at = now + (self._remember_ttl if remember_me else self._ttl)
        session = {
            "id": new_id(),
            "token": secrets.token_urlsafe(32),
            "userId": user_id,
            "createdAt": now.isoformat(),
            "expiresAt": expires_at.isoformat(),
            "rememberMe": remember_me,
        }
        sessions = await self._store.read_collection(SESSIONS)
        kept = [s for s in sessions if s.get("userId") != user_id]
        kept.append(session)
        await self._store.write_collection(SESSIONS, kept)
        replaced = len(sessions) - (len(kept) - 1)
        if replaced:
            logger.debug("Replaced %d session(s) for %s.", replaced, user_id)
        return {"token": session["token"], "expiresAt": session["expiresAt"]}

    async def verify_token(self, token: str | None) -> dict[str, Any] | None:
        """Return the session's user (without credentials), or None if invalid/expired."""
        if not token:
            return None
        session = await self._store.find_one(SESSIONS, lambda s: s.get("token") == token)
        if session is None or self._is_expired(session, self._clock()):
            return None
        user = await self._store.find_one(USERS, lambda u: u.get("id") == session.get("userId"))
        if user is None:
            return None
        return public_view(user)

    async def destroy_session(self, token: str) -> bool:
        """Remove the session for ``token``. Returns False if there was none."""
        sessions = await self._store.read_collection(SESSIONS)
        kept = [s for s in sessions if s.get("token") != token]
        if len(kept) == len(sessions):
            return False
        await self._store.write_collection(SESSIONS, kept)
        return True

    async def sweep_expired(self) -> int:
        """Delete expired sessions. Returns the count removed (0 on failure)."""
        try:
            sessions = await self._store.read_collection(SESSIONS)
            now = self._clock()
            active = [s for s in sessions if not self._is_expired(s, now)]
            removed = len(sessions) - len(active)
            if removed:
                await self._store.write_collection(SESSIONS, active)
            logger.info("Cleaned up %d expired session(s).", removed)
            return removed
        except Exception:
            logger.warning("Session sweep failed.", exc_info=True)
            return 0

    async def active_session_count(self) -> int:
        now = self._clock()
        sessions = await self._store.read_collection(SESSIONS)
        return sum(1 for s in sessions if not self._is_expired(s, now))

    # -- background sweep -------------------------------------------------------

    async def start_background_sweep(self) -> None:
        """Start the periodic sweep task."""
        if self._sweep_task is not None:
            return
        self._sweep_task = asyncio.create_task(self._background_sweep_loop())

    async def _background_sweep_loop(self) -> None:
        logger.info("Session sweep loop started (interval=%ss).", self._sweep_interval)
        try:
            while True:
                await asyncio.sleep(self._sweep_interval)
                await self.sweep_expired()
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """Cancel the background sweep."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()
