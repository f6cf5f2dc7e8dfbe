"""Standardized error payloads and the domain error hierarchy."""
from typing import Any


def error_response(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return a standardized error payload."""

    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        payload["error"]["details"] = details
    return payload


class DomainError(Exception):
    """Base class for errors raised by services and rendered by the API layer."""

    code = "DOMAIN_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        return error_response(self.code, self.message, self.details)


class ValidationError(DomainError):
    """Malformed or insufficient input; rejected before any gateway or store call."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(DomainError):
    """The referenced entity is not in a state that allows the operation."""

    code = "INVALID_STATE"
    status_code = 409


class PaymentNotCompletedError(InvalidStateError):
    """The gateway reports that the payment has not succeeded (yet)."""

    code = "PAYMENT_NOT_COMPLETED"
    status_code = 402


class SignatureError(DomainError):
    code = "WEBHOOK_SIGNATURE_INVALID"
    status_code = 400


class WebhookProcessingError(DomainError):
    """A verified webhook could not be applied; answered with 400 so the gateway redelivers."""

    code = "WEBHOOK_PROCESSING_FAILED"
    status_code = 400


class GatewayError(DomainError):
    """Any failure while talking to the payment gateway."""

    code = "GATEWAY_ERROR"
    status_code = 502


__all__ = [
    "error_response",
    "DomainError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "PaymentNotCompletedError",
    "SignatureError",
    "GatewayError",
    "WebhookProcessingError",
]
