"""
app/schemas/trip_import.py

Request and response schemas for trip import sessions and correction data.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from trip_import.reasons import CorrectionKind, ReasonCode
from trip_import.session import ImportSessionState, SessionStatus


class TripImportRequest(BaseModel):
    """
    Batch of raw trip rows. Column names may use any accepted alias
    (e.g. `dt`, `fecha`, `origen`, `destino`, `chofer`, `patente`).
    """

    owner_id: uuid.UUID
    rows: list[dict[str, Any]] = Field(default_factory=list)


class RetryRequest(BaseModel):
    kinds: list[CorrectionKind] = Field(..., min_length=1)


class ImportCountsResponse(BaseModel):
    total_rows: int = Field(..., ge=0)
    initial_success_count: int = Field(..., ge=0)
    initial_failure_count: int = Field(..., ge=0)
    pending_count: int = Field(..., ge=0)
    retry_success_count: int = Field(..., ge=0)
    retry_failure_count: int = Field(..., ge=0)


class TripImportResponse(BaseModel):
    session_id: uuid.UUID
    status: SessionStatus
    counts: ImportCountsResponse

    @classmethod
    def from_state(cls, state: ImportSessionState) -> TripImportResponse:
        return cls(
            session_id=state.id,
            status=state.status,
            counts=ImportCountsResponse(**state.summary()),
        )


class ReasonSummaryResponse(BaseModel):
    count: int = Field(..., ge=0)
    samples: list[str] = Field(default_factory=list)


class FailedRowResponse(BaseModel):
    original_index: int
    external_id: str
    reason_code: ReasonCode
    message: str
    original_payload: dict[str, Any] = Field(default_factory=dict)


class PendingRowResponse(BaseModel):
    original_index: int
    external_id: str
    missing_reasons: list[ReasonCode]
    message: str
    payload: dict[str, Any] = Field(default_factory=dict)


class ImportSessionResponse(BaseModel):
    """
    Read-only projection of an import session for operator review and export.
    """

    id: uuid.UUID
    owner_id: uuid.UUID
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    counts: ImportCountsResponse
    failure_breakdown: dict[ReasonCode, ReasonSummaryResponse]
    failed_rows: list[FailedRowResponse]
    pending_rows: list[PendingRowResponse]
    processed_correction_kinds: list[CorrectionKind]
    error_message: str | None = None

    @classmethod
    def from_state(cls, state: ImportSessionState) -> ImportSessionResponse:
        return cls(
            id=state.id,
            owner_id=state.owner_id,
            status=state.status,
            created_at=state.created_at,
            expires_at=state.expires_at,
            counts=ImportCountsResponse(**state.summary()),
            failure_breakdown={
                reason: ReasonSummaryResponse(count=summary.count, samples=list(summary.samples))
                for reason, summary in state.failure_breakdown.items()
            },
            failed_rows=[
                FailedRowResponse(
                    original_index=row.original_index,
                    external_id=row.external_id,
                    reason_code=row.reason_code,
                    message=row.message,
                    original_payload=dict(row.original_payload),
                )
                for row in state.failed_rows
            ],
            pending_rows=[
                PendingRowResponse(
                    original_index=row.original_index,
                    external_id=row.external_id,
                    missing_reasons=list(row.missing_reasons),
                    message=row.message,
                    payload=dict(row.payload),
                )
                for row in state.pending_rows
            ],
            processed_correction_kinds=sorted(
                state.processed_correction_kinds, key=lambda kind: kind.value
            ),
            error_message=state.error_message,
        )


# ---------------------------------------------------------------------------
# Correction data
# ---------------------------------------------------------------------------


class SitesRequest(BaseModel):
    names: list[str] = Field(..., min_length=1)


class PersonRequest(BaseModel):
    identifier: str = Field(..., min_length=1)
    full_name: str | None = None


class PersonnelRequest(BaseModel):
    people: list[PersonRequest] = Field(..., min_length=1)


class VehiclesRequest(BaseModel):
    plates: list[str] = Field(..., min_length=1)


class RouteRequest(BaseModel):
    origin_site_id: uuid.UUID
    destination_site_id: uuid.UUID
    distance_km: float | None = Field(default=None, gt=0)


class ReferenceCreatedResponse(BaseModel):
    created: list[uuid.UUID] = Field(default_factory=list)
