# Overview: Error taxonomy shared by services and routes.

"""
Application errors.

Every error that may reach a client carries its HTTP status so routes can
translate it without a lookup table. Services raise; routes catch AppError
and answer `{"error": message, **details}`.

ValidationError and ConflictError subclass ValueError so call sites that
already guard with `except ValueError` keep working.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        payload.update(self.details)
        return payload


class ValidationError(AppError, ValueError):
    """400-level input problem."""
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    """401: no identity or an identity that could not be verified."""
    status_code = 401
    default_message = "Authentication required"


class AuthorizationError(AppError):
    """403: identity is known but lacks the permission or branch."""
    status_code = 403
    default_message = "Permission denied"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    default_message = "Conflict"


class InsufficientStockError(AppError):
    """
    Requested quantity exceeds what is on hand.

    Raised either by the validation pass (nothing written yet) or by the
    conditional decrement losing a race; both leave stock untouched.
    """
    status_code = 400

    def __init__(self, product_id: int, product_name: str | None, available: int, requested: int):
        label = product_name or f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, requested: {requested}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class InternalError(AppError):
    """500: store failure; the message sent to clients is always generic."""
    status_code = 500

    def to_dict(self) -> dict:
        return {"error": self.default_message}


class StockLedgerError(InternalError):
    """A stock write could not be paired with its movement record."""
