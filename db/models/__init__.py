"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.import_session import ImportSessionModel
from db.models.personnel import Personnel
from db.models.route import Route
from db.models.site import Site
from db.models.tariff_record import TariffRecordModel
from db.models.trip import Trip
from db.models.vehicle import Vehicle

__all__ = [
    "Site",
    "Personnel",
    "Vehicle",
    "Route",
    "TariffRecordModel",
    "ImportSessionModel",
    "Trip",
]
