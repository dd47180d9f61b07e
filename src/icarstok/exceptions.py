"""Exception hierarchy shared by every IcarStok layer."""

from __future__ import annotations

from typing import Optional

from .constants import AuthErrorCode


class IcarStokError(Exception):
    """Base class for all errors raised deliberately by the package."""


class ConfigError(IcarStokError):
    """Raised when configuration or collaborator credentials are missing."""


class AuthError(IcarStokError):
    """Raised when the identity provider rejects a credential or session."""

    def __init__(self, code: AuthErrorCode, message: Optional[str] = None) -> None:
        self.code = code
        super().__init__(message or code.value)


class BusinessRuleViolation(IcarStokError):
    """Raised when a requested operation violates a domain constraint."""


class StockValidationError(BusinessRuleViolation):
    """Raised when a sale or purchase fails its stock preconditions."""


class InvalidQuantityError(StockValidationError, ValueError):
    """Raised when a transaction quantity is not a positive whole number."""


class UnknownProductError(StockValidationError):
    """Raised when a sale or purchase references a product that does not exist."""

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Unknown product id: {product_id}")


class InsufficientStockError(StockValidationError):
    """Raised when a sale asks for more units than are in stock."""

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product '{product_id}': "
            f"requested {requested}, available {available}"
        )


class MissingReferenceError(BusinessRuleViolation):
    """Raised when an edit or delete targets an unknown product or supplier."""


class SubmissionInFlightError(BusinessRuleViolation):
    """Raised when the same form is submitted again before the first completes."""


class PersistenceError(IcarStokError):
    """Raised when the document store cannot be read or written."""


class AIResponseError(IcarStokError):
    """Raised when the insight generator returns malformed or empty output."""


__all__ = [
    "IcarStokError",
    "ConfigError",
    "AuthError",
    "BusinessRuleViolation",
    "StockValidationError",
    "InvalidQuantityError",
    "UnknownProductError",
    "InsufficientStockError",
    "MissingReferenceError",
    "SubmissionInFlightError",
    "PersistenceError",
    "AIResponseError",
]
