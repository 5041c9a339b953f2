# Overview: Error taxonomy shared by services and routes.

"""
Service errors carry their own HTTP status, a stable code, and whether the
caller may retry. Routes return ``error.to_dict()`` with ``error.status_code``.

Retryable errors (timeouts, serialization conflicts, provider outages) are
guaranteed to leave no partial state behind.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for all expected service failures."""

    status_code = 500
    code = "INTERNAL"
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(StorefrontError):
    """Malformed or missing input. No state change."""
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(StorefrontError):
    status_code = 404
    code = "NOT_FOUND"


class UnknownVariantError(NotFoundError):
    """A cart line names a product or size that does not exist. Rejected as bad input."""
    status_code = 400
    code = "UNKNOWN_VARIANT"


class InsufficientStockError(StorefrontError):
    """Business-rule rejection: a variant cannot cover the requested quantity."""
    status_code = 400
    code = "INSUFFICIENT_STOCK"

    def __init__(self, *, variant_id: int, requested: int, available: int, label: str | None = None):
        what = label or f"variant {variant_id}"
        super().__init__(
            f"Not enough stock for {what}. Requested: {requested}, Available: {available}.",
            details={
                "variant_id": variant_id,
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
            },
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class SignatureMismatchError(StorefrontError):
    status_code = 400
    code = "SIGNATURE_MISMATCH"


class ConflictError(StorefrontError):
    status_code = 409
    code = "CONFLICT"


class TransactionTimeoutError(StorefrontError):
    status_code = 503
    code = "TIMEOUT"
    retryable = True


class SerializationFailureError(StorefrontError):
    status_code = 503
    code = "SERIALIZATION_FAILURE"
    retryable = True


class PaymentProviderError(StorefrontError):
    status_code = 502
    code = "PAYMENT_PROVIDER_ERROR"
    retryable = True


class RateLimitedError(StorefrontError):
    """Too many requests from one address; retry after details["retry_after_seconds"]."""
    status_code = 429
    code = "RATE_LIMITED"
    retryable = True


class AuthError(StorefrontError):
    status_code = 401
    code = "UNAUTHENTICATED"


class ForbiddenError(StorefrontError):
    status_code = 403
    code = "FORBIDDEN"


class InternalError(StorefrontError):
    """Unexpected store failure."""
