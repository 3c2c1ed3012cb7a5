"""
Repository-layer exceptions for tariff, reference data and import persistence.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for repository failures."""


class TariffPersistenceError(RepositoryError):
    """Raised when a tariff version cannot be written."""


class TripPersistenceError(RepositoryError):
    """Raised when accepted trips cannot be stored."""


class SessionPersistenceError(RepositoryError):
    """Raised when an import session row cannot be stored or decoded."""


class ReferenceNotFoundError(RepositoryError, LookupError):
    """Raised when correction data points at a reference record that does not exist."""
