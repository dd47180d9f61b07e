"""Enumerations shared across IcarStok modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), the insight builder, and the CLI rely on a single source of
truth for collection names and error codes.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Shortest password the identity provider accepts.
MIN_PASSWORD_LENGTH = 6


class Collection(str, Enum):
    """Enumerate the per-user collections (one worksheet each)."""

    PRODUCTS = "products"
    SUPPLIERS = "suppliers"
    SALES = "sales"
    PURCHASES = "purchases"


USERS_SHEET = "users"


class InsightKind(str, Enum):
    """Enumerate the advisory analyses the AI generator can produce."""

    DEMAND_FORECAST = "demand"
    REPLENISHMENT = "replenishment"
    ANOMALIES = "anomalies"
    PERFORMANCE = "performance"


class AuthErrorCode(str, Enum):
    """Enumerate the failure reasons surfaced by the identity provider."""

    INVALID_CREDENTIALS = "invalid-credentials"
    EMAIL_IN_USE = "email-in-use"
    WEAK_PASSWORD = "weak-password"
    INVALID_EMAIL = "invalid-email"
    UNKNOWN = "unknown"


class DeleteOutcome(str, Enum):
    """Describe what a delete request did to the stored record."""

    REMOVED = "removed"
    ARCHIVED = "archived"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "MIN_PASSWORD_LENGTH",
    "Collection",
    "USERS_SHEET",
    "InsightKind",
    "AuthErrorCode",
    "DeleteOutcome",
]
