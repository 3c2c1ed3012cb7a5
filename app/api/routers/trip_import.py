"""
app/api/routers/trip_import.py

Trip bulk import endpoints: initial pass, session review and correction retry.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_csv_upload
from app.schemas.trip_import import (
    ImportSessionResponse,
    RetryRequest,
    TripImportRequest,
    TripImportResponse,
)
from app.services.trip_import_service import (
    TripCSVError,
    TripImportService,
    get_trip_import_service,
)
from db.session import get_db
from trip_import.errors import (
    BatchTooLarge,
    ImportSessionError,
    InvalidTransition,
    SessionBusy,
    SessionClosed,
    SessionExpired,
    SessionNotFound,
)

router = APIRouter(prefix="/imports", tags=["trip-import"])


def _to_http_error(exc: ImportSessionError) -> HTTPException:
    if isinstance(exc, (SessionNotFound, SessionExpired)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.to_dict())
    if isinstance(exc, (SessionBusy, SessionClosed, InvalidTransition)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict())
    if isinstance(exc, BatchTooLarge):
        return HTTPException(status_code=413, detail=exc.to_dict())
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.to_dict())


@router.post("/trips", response_model=TripImportResponse, status_code=status.HTTP_201_CREATED)
def import_trips(
    payload: TripImportRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> TripImportResponse:
    """
    Classify a batch of raw trip rows. Rows waiting on missing reference data
    are parked in the session until a retry.
    """

    try:
        state = service.import_rows(db=db, owner_id=payload.owner_id, rows=payload.rows)
    except ImportSessionError as exc:
        raise _to_http_error(exc) from exc

    return TripImportResponse.from_state(state)


@router.post("/trips/csv", response_model=TripImportResponse, status_code=status.HTTP_201_CREATED)
def import_trips_csv(
    file: UploadFile = Depends(get_csv_upload),
    owner_id: uuid.UUID = Query(..., description="Owner the trips belong to"),
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> TripImportResponse:
    try:
        state = service.import_csv(db=db, owner_id=owner_id, upload_file=file)
    except TripCSVError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ImportSessionError as exc:
        raise _to_http_error(exc) from exc
    finally:
        file.file.close()

    return TripImportResponse.from_state(state)


@router.get("/sessions/{session_id}", response_model=ImportSessionResponse)
def get_import_session(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ImportSessionResponse:
    try:
        state = service.get_session(db=db, session_id=session_id)
    except ImportSessionError as exc:
        raise _to_http_error(exc) from exc

    return ImportSessionResponse.from_state(state)


@router.post("/sessions/{session_id}/retry", response_model=ImportSessionResponse)
def retry_import_session(
    session_id: uuid.UUID,
    payload: RetryRequest,
    db: Session = Depends(get_db),
    service: TripImportService = Depends(get_trip_import_service),
) -> ImportSessionResponse:
    """
    Re-check pending rows after the operator supplied the listed kinds of
    reference data. Each kind is retried at most once per session.
    """

    try:
        state = service.retry(db=db, session_id=session_id, kinds=payload.kinds)
    except ImportSessionError as exc:
        raise _to_http_error(exc) from exc

    return ImportSessionResponse.from_state(state)
