"""
trip_import/session.py

ImportSession state: a self-contained record of one batch import.

Failed and pending rows are embedded inline so a session can be inspected or
exported without further queries, and so expiry is a single-row delete.
States are immutable values; trip_import/reducer.py produces new ones.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from trip_import.reasons import BREAKDOWN_REASONS, CorrectionKind, ReasonCode, kinds_for


class SessionStatus(str, Enum):
    PROCESSING = "processing"
    PENDING_CORRECTION = "pending_correction"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES: frozenset[SessionStatus] = frozenset(
    {SessionStatus.COMPLETED, SessionStatus.FAILED}
)


@dataclass(frozen=True)
class FailedRow:
    """A row that will not import in this session."""

    original_index: int
    external_id: str
    reason_code: ReasonCode
    message: str
    original_payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_index": self.original_index,
            "external_id": self.external_id,
            "reason_code": self.reason_code.value,
            "message": self.message,
            "original_payload": dict(self.original_payload),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FailedRow:
        return cls(
            original_index=int(data["original_index"]),
            external_id=str(data.get("external_id") or ""),
            reason_code=ReasonCode(data["reason_code"]),
            message=str(data.get("message") or ""),
            original_payload=dict(data.get("original_payload") or {}),
        )


@dataclass(frozen=True)
class PendingRow:
    """A well-formed row waiting on missing reference data."""

    original_index: int
    external_id: str
    missing_reasons: tuple[ReasonCode, ...]
    message: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original_index": self.original_index,
            "external_id": self.external_id,
            "missing_reasons": [reason.value for reason in self.missing_reasons],
            "message": self.message,
            "payload": dict(self.payload),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PendingRow:
        return cls(
            original_index=int(data["original_index"]),
            external_id=str(data.get("external_id") or ""),
            missing_reasons=tuple(ReasonCode(value) for value in data.get("missing_reasons") or ()),
            message=str(data.get("message") or ""),
            payload=dict(data.get("payload") or {}),
        )


@dataclass(frozen=True)
class ReasonSummary:
    count: int = 0
    samples: tuple[str, ...] = ()


FailureBreakdown = Mapping[ReasonCode, ReasonSummary]


def empty_breakdown() -> dict[ReasonCode, ReasonSummary]:
    return {reason: ReasonSummary() for reason in BREAKDOWN_REASONS}


def record_failure(
    breakdown: Mapping[ReasonCode, ReasonSummary],
    reason: ReasonCode,
    identifier: str,
    *,
    sample_size: int,
) -> dict[ReasonCode, ReasonSummary]:
    """Return a copy of breakdown with one more occurrence of reason."""

    updated = dict(breakdown)
    current = updated.get(reason, ReasonSummary())
    samples = current.samples
    if identifier and len(samples) < sample_size and identifier not in samples:
        samples = samples + (identifier,)
    updated[reason] = ReasonSummary(count=current.count + 1, samples=samples)
    return updated


def breakdown_to_dict(breakdown: FailureBreakdown) -> dict[str, dict[str, Any]]:
    return {
        reason.value: {"count": summary.count, "samples": list(summary.samples)}
        for reason, summary in breakdown.items()
    }


def breakdown_from_dict(data: Mapping[str, Any] | None) -> dict[ReasonCode, ReasonSummary]:
    breakdown = empty_breakdown()
    for key, value in (data or {}).items():
        breakdown[ReasonCode(key)] = ReasonSummary(
            count=int(value.get("count", 0)),
            samples=tuple(str(sample) for sample in value.get("samples") or ()),
        )
    return breakdown


@dataclass(frozen=True)
class ImportSessionState:
    id: uuid.UUID
    owner_id: uuid.UUID
    status: SessionStatus
    created_at: datetime
    expires_at: datetime
    total_rows: int = 0
    initial_success_count: int = 0
    initial_failure_count: int = 0
    failure_breakdown: FailureBreakdown = field(default_factory=empty_breakdown)
    failed_rows: tuple[FailedRow, ...] = ()
    pending_rows: tuple[PendingRow, ...] = ()
    retry_success_count: int = 0
    retry_failure_count: int = 0
    processed_correction_kinds: frozenset[CorrectionKind] = frozenset()
    version: int = 0
    error_message: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def pending_kinds(self) -> frozenset[CorrectionKind]:
        """Correction kinds that some pending row is still waiting on."""
        return kinds_for(reason for row in self.pending_rows for reason in row.missing_reasons)

    def with_changes(self, **changes: Any) -> ImportSessionState:
        return replace(self, **changes)

    def summary(self) -> dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "initial_success_count": self.initial_success_count,
            "initial_failure_count": self.initial_failure_count,
            "pending_count": len(self.pending_rows),
            "retry_success_count": self.retry_success_count,
            "retry_failure_count": self.retry_failure_count,
        }
