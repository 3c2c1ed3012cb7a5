"""
app/api/routers/tariffs.py

Tariff version management endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from app.schemas.tariffs import (
    BulkValidityConflictResponse,
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
from app.services.tariff_service import TariffService, get_tariff_service
from db.session import get_db
from tariffs.base import CalculationMethod, TariffPatch, TariffType, TariffWindow
from tariffs.errors import (
    EvaluationError,
    InvalidTariffRange,
    InvariantViolation,
    PricingError,
    RouteNotFound,
    TariffConflict,
    TariffNotFound,
)

router = APIRouter(tags=["tariffs"])


def _invalid_range(exc: InvalidTariffRange) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"message": str(exc), "field": exc.field},
    )


@router.post(
    "/routes/{route_id}/tariffs",
    response_model=TariffCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_tariff(
    route_id: uuid.UUID,
    payload: TariffCreateRequest,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> TariffCreatedResponse:
    """
    Add a tariff version. Rejected with 409 when its window overlaps another
    version of the same type and calculation method on the route.
    """

    try:
        record_id = service.create_tariff(
            db=db,
            route_id=route_id,
            tariff_type=payload.tariff_type,
            calculation_method=payload.calculation_method,
            base_value=payload.base_value,
            surcharge_value=payload.surcharge_value,
            valid_from=payload.valid_from,
            valid_until=payload.valid_until,
        )
    except InvalidTariffRange as exc:
        raise _invalid_range(exc) from exc
    except TariffConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict()) from exc
    except RouteNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return TariffCreatedResponse(id=record_id)


@router.get("/routes/{route_id}/tariffs", response_model=list[TariffResponse])
def list_tariffs(
    route_id: uuid.UUID,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> list[TariffResponse]:
    return [TariffResponse.from_record(record) for record in service.list_versions(db=db, route_id=route_id)]


@router.put("/tariffs/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
def update_tariff(
    record_id: uuid.UUID,
    payload: TariffUpdateRequest,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> Response:
    patch = TariffPatch(
        tariff_type=payload.tariff_type,
        calculation_method=payload.calculation_method,
        base_value=payload.base_value,
        surcharge_value=payload.surcharge_value,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
        clear_valid_until=payload.clear_valid_until,
    )
    try:
        service.update_tariff(db=db, record_id=record_id, patch=patch)
    except InvalidTariffRange as exc:
        raise _invalid_range(exc) from exc
    except TariffConflict as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.to_dict()) from exc
    except (TariffNotFound, RouteNotFound) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/routes/{route_id}/tariffs/check", response_model=TariffCheckResponse)
def check_tariff(
    route_id: uuid.UUID,
    payload: TariffCheckRequest,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> TariffCheckResponse:
    """
    Form pre-check: report a conflicting version without writing anything.
    """

    candidate = TariffWindow(
        tariff_type=payload.tariff_type,
        calculation_method=payload.calculation_method,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
    )
    try:
        conflicting, description = service.check(
            db=db,
            route_id=route_id,
            candidate=candidate,
            exclude_id=payload.exclude_id,
        )
    except InvalidTariffRange as exc:
        raise _invalid_range(exc) from exc

    if conflicting is None:
        return TariffCheckResponse(conflict=False)
    return TariffCheckResponse(
        conflict=True,
        conflicting_id=conflicting.id,
        description=description,
    )


@router.get("/routes/{route_id}/tariffs/applicable", response_model=TariffResponse)
def applicable_tariff(
    route_id: uuid.UUID,
    tariff_type: TariffType = Query(..., alias="type"),
    calculation_method: CalculationMethod = Query(..., alias="method"),
    on: date = Query(..., description="Billing date"),
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> TariffResponse:
    try:
        record = service.resolve_applicable(
            db=db,
            route_id=route_id,
            tariff_type=tariff_type,
            calculation_method=calculation_method,
            on_date=on,
        )
    except TariffNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvariantViolation as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Overlapping tariff versions found.", "error": str(exc)},
        ) from exc

    return TariffResponse.from_record(record)


@router.get("/routes/{route_id}/tariffs/current", response_model=CurrentTariffResponse)
def current_tariff(
    route_id: uuid.UUID,
    tariff_type: TariffType = Query(..., alias="type"),
    calculation_method: CalculationMethod = Query(..., alias="method"),
    today: date | None = Query(default=None, description="Reference day; defaults to today"),
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> CurrentTariffResponse:
    try:
        current = service.resolve_current(
            db=db,
            route_id=route_id,
            tariff_type=tariff_type,
            calculation_method=calculation_method,
            today=today or date.today(),
        )
    except TariffNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return CurrentTariffResponse.from_current(current)


@router.get("/routes/{route_id}/tariffs/gaps", response_model=list[ValidityGapResponse])
def tariff_gaps(
    route_id: uuid.UUID,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> list[ValidityGapResponse]:
    return [ValidityGapResponse.from_gap(gap) for gap in service.gaps(db=db, route_id=route_id)]


@router.post("/routes/{route_id}/tariffs/quote", response_model=TariffQuoteResponse)
def quote_trip(
    route_id: uuid.UUID,
    payload: TariffQuoteRequest,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> TariffQuoteResponse:
    try:
        record, price = service.quote(
            db=db,
            route_id=route_id,
            tariff_type=payload.tariff_type,
            calculation_method=payload.calculation_method,
            on_date=payload.on,
            units=payload.units,
            formula=payload.formula,
        )
    except TariffNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (EvaluationError, PricingError) as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": str(exc)},
        ) from exc
    except InvariantViolation as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Overlapping tariff versions found.", "error": str(exc)},
        ) from exc

    return TariffQuoteResponse(
        tariff_id=record.id,
        base=price.base,
        surcharge=price.surcharge,
        total=price.total,
    )


@router.post("/tariffs/validity/bulk", response_model=BulkValidityResponse)
def bulk_update_validity(
    payload: BulkValidityRequest,
    db: Session = Depends(get_db),
    service: TariffService = Depends(get_tariff_service),
) -> BulkValidityResponse:
    """
    Move every version on the listed routes to a new window. Records whose
    new window would overlap another version are reported and left as-is.
    """

    try:
        result = service.bulk_update_validity(
            db=db,
            route_ids=payload.route_ids,
            valid_from=payload.valid_from,
            valid_until=payload.valid_until,
            tariff_type=payload.tariff_type,
        )
    except InvalidTariffRange as exc:
        raise _invalid_range(exc) from exc

    return BulkValidityResponse(
        updated=result.updated,
        conflicts=[
            BulkValidityConflictResponse(
                route_id=conflict.route_id,
                record_id=conflict.record_id,
                conflicting_id=conflict.conflicting_id,
                description=conflict.description,
            )
            for conflict in result.conflicts
        ],
        not_found=result.not_found,
    )
