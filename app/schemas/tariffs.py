"""
app/schemas/tariffs.py

Request and response schemas for tariff management endpoints.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from tariffs.base import CalculationMethod, CurrentTariff, TariffRecord, TariffType, ValidityGap


class TariffCreateRequest(BaseModel):
    """
    Payload for adding a new tariff version to a route.
    Range checks happen in the store so the error names the offending field.
    """

    tariff_type: TariffType
    calculation_method: CalculationMethod
    base_value: Decimal = Field(..., ge=0)
    surcharge_value: Decimal = Field(default=Decimal("0"), ge=0)
    valid_from: date | None = None
    valid_until: date | None = None


class TariffUpdateRequest(BaseModel):
    tariff_type: TariffType | None = None
    calculation_method: CalculationMethod | None = None
    base_value: Decimal | None = Field(default=None, ge=0)
    surcharge_value: Decimal | None = Field(default=None, ge=0)
    valid_from: date | None = None
    valid_until: date | None = None
    clear_valid_until: bool = False


class TariffCheckRequest(BaseModel):
    tariff_type: TariffType
    calculation_method: CalculationMethod
    valid_from: date | None = None
    valid_until: date | None = None
    exclude_id: uuid.UUID | None = None


class TariffCheckResponse(BaseModel):
    conflict: bool
    conflicting_id: uuid.UUID | None = None
    description: str | None = None


class TariffCreatedResponse(BaseModel):
    id: uuid.UUID


class TariffResponse(BaseModel):
    id: uuid.UUID
    route_id: uuid.UUID
    tariff_type: TariffType
    calculation_method: CalculationMethod
    base_value: Decimal
    surcharge_value: Decimal
    valid_from: date
    valid_until: date | None = None

    @classmethod
    def from_record(cls, record: TariffRecord) -> TariffResponse:
        return cls(
            id=record.id,
            route_id=record.route_id,
            tariff_type=record.tariff_type,
            calculation_method=record.calculation_method,
            base_value=record.base_value,
            surcharge_value=record.surcharge_value,
            valid_from=record.valid_from,
            valid_until=record.valid_until,
        )


class CurrentTariffResponse(BaseModel):
    """
    Tariff shown as current. `stale` is true when every version has expired
    and the most recently expired one is returned instead.
    """

    tariff: TariffResponse
    stale: bool

    @classmethod
    def from_current(cls, current: CurrentTariff) -> CurrentTariffResponse:
        return cls(tariff=TariffResponse.from_record(current.record), stale=current.stale)


class ValidityGapResponse(BaseModel):
    tariff_type: TariffType
    calculation_method: CalculationMethod
    gap_from: date
    gap_until: date

    @classmethod
    def from_gap(cls, gap: ValidityGap) -> ValidityGapResponse:
        return cls(
            tariff_type=gap.tariff_type,
            calculation_method=gap.calculation_method,
            gap_from=gap.gap_from,
            gap_until=gap.gap_until,
        )


class BulkValidityRequest(BaseModel):
    route_ids: list[uuid.UUID] = Field(..., min_length=1)
    valid_from: date
    valid_until: date | None = None
    tariff_type: TariffType | None = None


class BulkValidityConflictResponse(BaseModel):
    route_id: uuid.UUID
    record_id: uuid.UUID
    conflicting_id: uuid.UUID
    description: str


class BulkValidityResponse(BaseModel):
    updated: list[uuid.UUID] = Field(default_factory=list)
    conflicts: list[BulkValidityConflictResponse] = Field(default_factory=list)
    not_found: list[uuid.UUID] = Field(default_factory=list)


class TariffQuoteRequest(BaseModel):
    """
    Price one trip on the route with the version applicable on `on`.
    `formula` is an optional client expression over value, surcharge, units
    and distance; when given, its result is the total whatever the method.
    """

    tariff_type: TariffType
    calculation_method: CalculationMethod
    on: date
    units: Decimal | None = Field(default=None, ge=0)
    formula: str | None = Field(default=None, max_length=500)


class TariffQuoteResponse(BaseModel):
    tariff_id: uuid.UUID
    base: Decimal
    surcharge: Decimal
    total: Decimal
