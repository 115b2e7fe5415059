"""Tests for the application exception hierarchy in core/exceptions.py."""

import pytest

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)


@pytest.mark.parametrize(
    "exc_class,error_code,http_status",
    [
        (BaseApplicationError, "APPLICATION_ERROR", 400),
        (ValidationError, "VALIDATION_ERROR", 400),
        (NotFoundError, "NOT_FOUND", 404),
        (PermissionDeniedError, "PERMISSION_DENIED", 403),
        (ConflictError, "CONFLICT", 409),
        (ExternalServiceError, "EXTERNAL_SERVICE_ERROR", 502),
    ],
)
def test_defaults(exc_class, error_code, http_status):
    exc = exc_class("Something went wrong")

    assert exc.error_code == error_code
    assert exc.http_status == http_status


def test_to_dict_includes_details():
    exc = ConflictError(
        "Payout already completed",
        error_code="PAYOUT_ALREADY_PROCESSED",
        details={"booking_id": "b1"},
    )

    assert exc.to_dict() == {
        "success": False,
        "error": "Payout already completed",
        "error_code": "PAYOUT_ALREADY_PROCESSED",
        "details": {"booking_id": "b1"},
    }


def test_to_dict_omits_empty_details():
    assert "details" not in NotFoundError("Booking not found").to_dict()


def test_str_and_repr():
    exc = ValidationError("Bad claim", details={"field": "x"})

    assert str(exc) == "[VALIDATION_ERROR] Bad claim"
    assert repr(exc).startswith("ValidationError(message='Bad claim'")


def test_external_service_name_in_details():
    exc = ExternalServiceError("Stripe down", service_name="stripe")

    assert exc.service_name == "stripe"
    assert exc.details == {"service": "stripe"}
