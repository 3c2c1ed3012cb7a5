"""
app/api/routers package marker.
"""

from app.api.routers.reference_data import router as reference_data_router
from app.api.routers.tariffs import router as tariffs_router
from app.api.routers.trip_import import router as trip_import_router

__all__ = [
    "reference_data_router",
    "tariffs_router",
    "trip_import_router",
]
