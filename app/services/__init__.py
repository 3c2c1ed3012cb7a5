"""
app/services package marker.
"""

from app.services.tariff_service import TariffService, get_tariff_service
from app.services.trip_import_service import (
    TripCSVError,
    TripImportService,
    get_trip_import_service,
)

__all__ = [
    "TariffService",
    "get_tariff_service",
    "TripCSVError",
    "TripImportService",
    "get_trip_import_service",
]
