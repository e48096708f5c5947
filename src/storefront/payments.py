"""Simulated payment gateway. Storage-independent.

Validates card details, waits a random gateway latency and fails a fixed
fraction of charges to model an unreliable downstream dependency. The
random source, failure rate and sleep function are injectable so tests
can pin both the success and failure paths.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from storefront.constants import PAYMENT_FAILURE_RATE
from storefront.errors import PaymentFailed, ValidationError

logger = logging.getLogger(__name__)

_CARD_RE = re.compile(r"^\d{13,19}$")
_EXPIRY_RE = re.compile(r"^(\d{2})/(\d{2})$")
_CVV_RE = re.compile(r"^\d{3,4}$")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class PaymentValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


@dataclass
class PaymentResult:
    """Successful gateway charge."""

    transaction_id: str
    last4: str
    amount: float
    processed_at: str
    processing_time_ms: int = 0
    method: str = "credit-card"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "transactionId": self.transaction_id,
            "last4": self.last4,
            "amount": self.amount,
            "method": self.method,
            "processedAt": self.processed_at,
            "processingTimeMs": self.processing_time_ms,
        }


def _card_digits(details: dict[str, Any]) -> str:
    return re.sub(r"\s", "", str(details.get("cardNumber") or ""))


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PaymentService:
    """Validate and process card payments against a simulated gateway."""

    def __init__(
        self,
        failure_rate: float = PAYMENT_FAILURE_RATE,
        rng: random.Random | None = None,
        min_latency_secs: float = 0.5,
        max_latency_secs: float = 1.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self._failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._min_latency = min_latency_secs
        self._max_latency = max(min_latency_secs, max_latency_secs)
        self._sleep = sleep

    @staticmethod
    def validate_payment_details(details: dict[str, Any] | None) -> PaymentValidation:
        """Check card number, expiry and CVV shape. Collects every error."""
        if not details:
            return PaymentValidation(False, ["Payment details are required"])

        errors: list[str] = []
        if not details.get("cardNumber"):
            errors.append("Card number is required")
        elif not _CARD_RE.match(_card_digits(details)):
            errors.append("Invalid card number format")

        expiry = details.get("expiryDate")
        if not expiry:
            errors.append("Expiry date is required")
        else:
            m = _EXPIRY_RE.match(str(expiry))
            if not m:
                errors.append("Invalid expiry date format (MM/YY)")
            elif not 1 <= int(m.group(1)) <= 12:
                errors.append("Invalid expiry month")

        cvv = details.get("cvv")
        if not cvv:
            errors.append("CVV is required")
        elif not _CVV_RE.match(str(cvv)):
            errors.append("Invalid CVV format")

        return PaymentValidation(not errors, errors)

    async def process_payment(self, details: dict[str, Any], amount: float) -> PaymentResult:
        """Charge ``amount``. Raises ValidationError before any gateway call."""
        validation = self.validate_payment_details(details)
        if not validation.is_valid:
            raise ValidationError(
                "Invalid payment details", errors=validation.errors, operation="payment"
            )

        latency = self._rng.uniform(self._min_latency, self._max_latency)
        await self._sleep(latency)

        if self._rng.random() < self._failure_rate:
            logger.warning("Simulated gateway declined a charge of %.2f.", amount)
            raise PaymentFailed("Payment processing failed", operation="payment", amount=amount)

        return PaymentResult(
            transaction_id=f"tx_{uuid.uuid4().hex[:8]}",
            last4=_card_digits(details)[-4:],
            amount=amount,
            processed_at=datetime.now(timezone.utc).isoformat(),
            processing_time_ms=round(latency * 1000),
        )

    @staticmethod
    def create_payment_record(result: PaymentResult) -> dict[str, Any]:
        """Subset of the result stored on the order as ``paymentDetails``."""
        return {
            "method": result.method,
            "last4": result.last4,
            "transactionId": result.transaction_id,
            "processedAt": result.processed_at,
            "amount": result.amount,
        }

    @staticmethod
    def generate_confirmation(result: PaymentResult) -> dict[str, Any]:
        return {
            "transactionId": result.transaction_id,
            "last4": result.last4,
            "amount": result.amount,
            "processedAt": result.processed_at,
            "status": "completed",
        }
