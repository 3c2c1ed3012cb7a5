"""
tariffs/errors.py

Exceptions raised by tariff validation, the window store and pricing.
"""

from __future__ import annotations

import uuid


class TariffError(Exception):
    """Base exception for tariff operations."""


class InvalidTariffRange(TariffError, ValueError):
    """Raised when a validity range is malformed (missing start or end before start)."""

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class TariffConflict(TariffError):
    """Raised when a window overlaps another version of the same tariff key."""

    def __init__(self, conflicting_id: uuid.UUID, description: str) -> None:
        super().__init__(description)
        self.conflicting_id = conflicting_id
        self.description = description

    def to_dict(self) -> dict[str, str]:
        return {
            "message": "Tariff validity window overlaps an existing version.",
            "conflicting_id": str(self.conflicting_id),
            "description": self.description,
        }


class TariffNotFound(TariffError, LookupError):
    """Raised when no tariff record matches a lookup."""


class InvariantViolation(TariffError, RuntimeError):
    """Raised when stored tariffs break the no-overlap invariant."""


class EvaluationError(TariffError, ValueError):
    """Raised when a pricing formula cannot be evaluated."""


class PricingError(TariffError, ValueError):
    """Raised when a trip price cannot be computed from the resolved tariff."""


class RouteNotFound(TariffError, LookupError):
    """Raised when a tariff write targets a route that does not exist."""
