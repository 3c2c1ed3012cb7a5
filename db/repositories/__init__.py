"""
Repository layer exports.
"""

from db.repositories.errors import (
    ReferenceNotFoundError,
    RepositoryError,
    SessionPersistenceError,
    TariffPersistenceError,
    TripPersistenceError,
)
from db.repositories.import_session_repository import ImportSessionRepository
from db.repositories.reference_data_repository import ReferenceDataRepository
from db.repositories.tariff_repository import TariffRepository
from db.repositories.trip_repository import TripRepository

__all__ = [
    "ImportSessionRepository",
    "ReferenceDataRepository",
    "TariffRepository",
    "TripRepository",
    "RepositoryError",
    "ReferenceNotFoundError",
    "SessionPersistenceError",
    "TariffPersistenceError",
    "TripPersistenceError",
]
