"""User records. Password hashing happens upstream; only the hash is stored."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from storefront.constants import ADMIN_ROLE, USER_ROLE, USERS
from storefront.errors import NotFoundError, ValidationError

if TYPE_CHECKING:
    from storefront.store import DocumentStore

_PRIVATE_FIELDS = frozenset({"passwordHash", "password"})


def public_view(user: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``user`` without credential fields."""
    return {k: v for k, v in user.items() if k not in _PRIVATE_FIELDS}


class UserDirectory:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_user(
        self,
        username: str,
        email: str,
        password_hash: str,
        role: str = USER_ROLE,
    ) -> dict[str, Any]:
        errors = []
        if not username:
            errors.append("username is required")
        if not email:
            errors.append("email is required")
        if not password_hash:
            errors.append("passwordHash is required")
        if role not in (USER_ROLE, ADMIN_ROLE):
            errors.append(f"unknown role {role!r}")
        if errors:
            raise ValidationError("Invalid user data.", errors=errors, collection=USERS)

        if await self._store.find_one(USERS, lambda u: u.get("username") == username):
            raise ValidationError(
                f"Username {username} is already taken.", collection=USERS, operation="create"
            )
        user = await self._store.append_document(
            USERS,
            {
                "username": username,
                "email": email,
                "passwordHash": password_hash,
                "role": role,
            },
        )
        return public_view(user)

    async def get_user(self, user_id: str) -> dict[str, Any]:
        """Full record, including ``passwordHash``."""
        return await self._store.find_by_id(USERS, user_id)

    async def get_user_by_username(self, username: str) -> dict[str, Any]:
        user = await self._store.find_one(USERS, lambda u: u.get("username") == username)
        if user is None:
            raise NotFoundError(
                f"User with username {username} not found",
                collection=USERS, operation="find",
            )
        return user

    async def list_users(self) -> list[dict[str, Any]]:
        return [public_view(u) for u in await self._store.read_collection(USERS)]

    async def update_user(self, user_id: str, patch: dict[str, Any]) -> dict[str, Any]:
        return public_view(await self._store.update_by_id(USERS, user_id, patch))

    async def record_login(self, user_id: str, at: str) -> dict[str, Any]:
        return await self.update_user(user_id, {"lastLogin": at})
