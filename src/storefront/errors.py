"""Typed error hierarchy exposed to callers of the data layer.

Every error carries ``(status_code, error_type, message)`` so the route
layer can map it onto a response without inspecting the message text.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class StoreError(Exception):
    """Base exception for storefront operations."""

    status_code: int = 500
    error_type: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_type: str | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_type is not None:
            self.error_type = error_type
        # collection / id / operation, whatever the raiser knows
        self.context: dict[str, Any] = context
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Caller-facing payload, shaped like the route layer's error body."""
        return {
            "success": False,
            "error": self.error_type,
            "message": self.message,
            "statusCode": self.status_code,
            "timestamp": self.timestamp,
        }


# ---------------------------------------------------------------------------
# Storage failures (500-class, not retried)
# ---------------------------------------------------------------------------


class StoreIOError(StoreError):
    """Filesystem failure while reading or writing a collection."""

    error_type = "FILE_READ_ERROR"

    def __init__(self, message: str, *, operation: str = "read", **context: Any) -> None:
        error_type = "FILE_WRITE_ERROR" if operation == "write" else "FILE_READ_ERROR"
        super().__init__(message, error_type=error_type, operation=operation, **context)


class CorruptDataError(StoreError):
    """Collection file exists but is not a valid JSON array. Never repaired."""

    error_type = "JSON_PARSE_ERROR"


# ---------------------------------------------------------------------------
# Recoverable errors
# ---------------------------------------------------------------------------


class NotFoundError(StoreError):
    """404 — id absent from a collection (or item absent from a cart)."""

    status_code = 404
    error_type = "ITEM_NOT_FOUND"


class ValidationError(StoreError):
    """400 — malformed input shape."""

    status_code = 400
    error_type = "VALIDATION_ERROR"

    def __init__(self, message: str, *, errors: list[str] | None = None, **context: Any) -> None:
        super().__init__(message, **context)
        self.errors: list[str] = list(errors) if errors else [message]

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["errors"] = self.errors
        return payload


class AccessDenied(StoreError):
    """403 — requester neither owns the resource nor holds the admin role."""

    status_code = 403
    error_type = "ACCESS_DENIED"


class OrderAlreadyCompleted(StoreError):
    """400 — payment re-attempt or mutation against a completed order."""

    status_code = 400
    error_type = "ORDER_ALREADY_COMPLETED"


class InvalidStatusTransition(StoreError):
    """400 — requested order transition is not allowed from the current state."""

    status_code = 400
    error_type = "INVALID_STATUS_TRANSITION"


class PaymentFailed(StoreError):
    """402 — the payment gateway declined or failed to process the charge."""

    status_code = 402
    error_type = "PAYMENT_FAILED"


class InsufficientPoints(StoreError):
    """400 — loyalty redemption exceeds the available balance."""

    status_code = 400
    error_type = "INSUFFICIENT_POINTS"
