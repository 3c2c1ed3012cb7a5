"""
app/api/routers/reference_data.py

Endpoints for supplying missing reference data ahead of an import retry.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.schemas.trip_import import (
    PersonnelRequest,
    ReferenceCreatedResponse,
    RouteRequest,
    SitesRequest,
    VehiclesRequest,
)
from app.services.trip_import_service import TripImportService, get_trip_import_service
from db.repositories.errors import ReferenceNotFoundError
from db.session import get_db

router = APIRouter(prefix="/owners/{owner_id}", tags=["reference-data"])


@router.post("/sites", response_model=ReferenceCreatedResponse, status_code=status.HTTP_201_CREATED)
def add_sites(
    owner_id: uuid.UUID,
    payload: SitesRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ReferenceCreatedResponse:
    """
    Create sites by name. Names already known (case and accents ignored)
    are skipped, so only new ids are returned.
    """

    return ReferenceCreatedResponse(created=service.add_sites(db=db, owner_id=owner_id, names=payload.names))


@router.post("/personnel", response_model=ReferenceCreatedResponse, status_code=status.HTTP_201_CREATED)
def add_personnel(
    owner_id: uuid.UUID,
    payload: PersonnelRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ReferenceCreatedResponse:
    people = [(person.identifier, person.full_name) for person in payload.people]
    return ReferenceCreatedResponse(created=service.add_personnel(db=db, owner_id=owner_id, people=people))


@router.post("/vehicles", response_model=ReferenceCreatedResponse, status_code=status.HTTP_201_CREATED)
def add_vehicles(
    owner_id: uuid.UUID,
    payload: VehiclesRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ReferenceCreatedResponse:
    return ReferenceCreatedResponse(created=service.add_vehicles(db=db, owner_id=owner_id, plates=payload.plates))


@router.post("/routes", response_model=ReferenceCreatedResponse, status_code=status.HTTP_201_CREATED)
def add_route(
    owner_id: uuid.UUID,
    payload: RouteRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ReferenceCreatedResponse:
    """
    Create a route between two existing sites, or return the existing one.
    """

    try:
        route_id = service.add_route(
            db=db,
            owner_id=owner_id,
            origin_site_id=payload.origin_site_id,
            destination_site_id=payload.destination_site_id,
            distance_km=payload.distance_km,
        )
    except ReferenceNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return ReferenceCreatedResponse(created=[route_id])
