"""Tests for the error hierarchy and its caller-facing contract."""

import pytest

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


class TestErrorContract:
    @pytest.mark.parametrize(
        "exc_cls, status, error_type",
        [
            (CorruptDataError, 500, "JSON_PARSE_ERROR"),
            (NotFoundError, 404, "ITEM_NOT_FOUND"),
            (ValidationError, 400, "VALIDATION_ERROR"),
            (AccessDenied, 403, "ACCESS_DENIED"),
            (OrderAlreadyCompleted, 400, "ORDER_ALREADY_COMPLETED"),
            (InvalidStatusTransition, 400, "INVALID_STATUS_TRANSITION"),
            (PaymentFailed, 402, "PAYMENT_FAILED"),
            (InsufficientPoints, 400, "INSUFFICIENT_POINTS"),
        ],
    )
    def test_status_and_type(self, exc_cls, status, error_type) -> None:
        err = exc_cls("boom")
        assert isinstance(err, StoreError)
        assert err.status_code == status
        assert err.error_type == error_type

    def test_io_error_type_follows_operation(self) -> None:
        assert StoreIOError("x", operation="read").error_type == "FILE_READ_ERROR"
        assert StoreIOError("x", operation="write").error_type == "FILE_WRITE_ERROR"
        assert StoreIOError("x").status_code == 500

    def test_context_is_kept(self) -> None:
        err = NotFoundError("missing", collection="orders", id="o-1", operation="find")
        assert err.context == {"collection": "orders", "id": "o-1", "operation": "find"}

    def test_to_dict_shape(self) -> None:
        payload = AccessDenied("Access denied").to_dict()
        assert payload["success"] is False
        assert payload["error"] == "ACCESS_DENIED"
        assert payload["message"] == "Access denied"
        assert payload["statusCode"] == 403
        assert payload["timestamp"]

    def test_validation_error_lists_errors(self) -> None:
        err = ValidationError("bad", errors=["a", "b"])
        assert err.to_dict()["errors"] == ["a", "b"]
        assert ValidationError("only").errors == ["only"]
