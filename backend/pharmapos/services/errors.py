# Overview: Error kinds raised by the checkout core; routes map each kind to an HTTP status.

from __future__ import annotations


class CheckoutError(Exception):
    """Base for all checkout-core failures."""

    code = "CHECKOUT_ERROR"
    http_status = 500
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(CheckoutError):
    """Malformed input: empty code, bad quantity, unknown state code."""

    code = "VALIDATION_ERROR"
    http_status = 400


class NotFoundError(CheckoutError):
    """Unresolvable code, missing product or registration."""

    code = "NOT_FOUND"
    http_status = 404


class InsufficientStockError(CheckoutError):
    """Allocator could not cover demand. details["items"] lists each short line."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409


class ConcurrencyConflictError(CheckoutError):
    """Optimistic retry budget exhausted; safe for the caller to retry."""

    code = "CONCURRENCY_CONFLICT"
    http_status = 503
    retryable = True


class SequencingError(CheckoutError):
    """Invoice counter could not be advanced."""

    code = "SEQUENCING_ERROR"
    http_status = 500
