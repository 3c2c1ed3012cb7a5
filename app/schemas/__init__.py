"""
app/schemas package marker.
"""

from app.schemas.health import HealthResponse
from app.schemas.tariffs import (
    BulkValidityRequest,
    BulkValidityResponse,
    CurrentTariffResponse,
    TariffCheckRequest,
    TariffCheckResponse,
    TariffCreatedResponse,
    TariffCreateRequest,
    TariffQuoteRequest,
    TariffQuoteResponse,
    TariffResponse,
    TariffUpdateRequest,
    ValidityGapResponse,
)
from app.schemas.trip_import import (
    ImportSessionResponse,
    RetryRequest,
    TripImportRequest,
    TripImportResponse,
)

__all__ = [
    "BulkValidityRequest",
    "BulkValidityResponse",
    "CurrentTariffResponse",
    "HealthResponse",
    "ImportSessionResponse",
    "RetryRequest",
    "TariffCheckRequest",
    "TariffCheckResponse",
    "TariffCreatedResponse",
    "TariffCreateRequest",
    "TariffQuoteRequest",
    "TariffQuoteResponse",
    "TariffResponse",
    "TariffUpdateRequest",
    "TripImportRequest",
    "TripImportResponse",
    "ValidityGapResponse",
]
