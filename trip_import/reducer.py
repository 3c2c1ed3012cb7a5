"""
trip_import/reducer.py

Pure transitions for ImportSessionState.

processing -> completed | pending_correction      (apply_initial_pass)
pending_correction -> retrying                    (begin_retry)
retrying -> completed | pending_correction        (apply_retry_outcomes)
any non-terminal -> failed                        (mark_failed)

Every function returns a new state and leaves its input untouched. Terminal
sessions raise SessionClosed on any mutation.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

from trip_import.classifier import Accepted, ClassifiedRow, Pending, Rejected
from trip_import.errors import InvalidTransition, SessionClosed
from trip_import.reasons import CorrectionKind, ReasonCode, kinds_for
from trip_import.session import (
    FailedRow,
    ImportSessionState,
    PendingRow,
    SessionStatus,
    empty_breakdown,
    record_failure,
)

DEFAULT_SESSION_TTL = timedelta(hours=24)
DEFAULT_SAMPLE_SIZE = 20


def start_session(
    owner_id: uuid.UUID,
    total_rows: int,
    now: datetime,
    ttl: timedelta = DEFAULT_SESSION_TTL,
    *,
    session_id: uuid.UUID | None = None,
) -> ImportSessionState:
    if total_rows < 0:
        raise ValueError("total_rows must be non-negative.")
    return ImportSessionState(
        id=session_id or uuid.uuid4(),
        owner_id=owner_id,
        status=SessionStatus.PROCESSING,
        created_at=now,
        expires_at=now + ttl,
        total_rows=total_rows,
        failure_breakdown=empty_breakdown(),
    )


def apply_initial_pass(
    state: ImportSessionState,
    outcomes: Sequence[ClassifiedRow],
    *,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> ImportSessionState:
    """
    Fold the first classification pass into the session.

    Accepted rows only count; rejected rows become failed rows; pending rows
    keep every missing reason so a later retry knows which kinds to re-check.
    """
    _require_status(state, SessionStatus.PROCESSING, "apply an initial pass to")
    if len(outcomes) != state.total_rows:
        raise ValueError(
            f"Initial pass covered {len(outcomes)} rows; session expects {state.total_rows}."
        )

    success_count = 0
    breakdown = dict(state.failure_breakdown)
    failed: list[FailedRow] = []
    pending: list[PendingRow] = []

    for outcome in sorted(outcomes, key=lambda item: item.original_index):
        identifier = outcome.external_id or f"#{outcome.original_index}"
        result = outcome.result
        if isinstance(result, Accepted):
            success_count += 1
        elif isinstance(result, Rejected):
            failed.append(_failed_row(outcome, result.reason_code, result.message))
            breakdown = record_failure(
                breakdown, result.reason_code, identifier, sample_size=sample_size
            )
        elif isinstance(result, Pending):
            pending.append(_pending_row(outcome, result))
            for reason in result.missing_reasons:
                breakdown = record_failure(breakdown, reason, identifier, sample_size=sample_size)
        else:
            raise TypeError(f"Unknown classification result: {result!r}")

    return state.with_changes(
        status=SessionStatus.PENDING_CORRECTION if pending else SessionStatus.COMPLETED,
        initial_success_count=success_count,
        initial_failure_count=len(failed),
        failure_breakdown=breakdown,
        failed_rows=tuple(failed),
        pending_rows=tuple(pending),
    )


def begin_retry(
    state: ImportSessionState,
    kinds: Iterable[CorrectionKind],
) -> tuple[ImportSessionState, tuple[PendingRow, ...]]:
    """
    Start a correction pass for the supplied reference kinds.

    Each kind is retried at most once per session: kinds already processed are
    ignored, and when nothing new is supplied the session comes back unchanged
    with no rows to reclassify. Otherwise the session moves to retrying and
    the pending rows waiting on any newly supplied kind are returned in order.
    """
    _require_status(state, SessionStatus.PENDING_CORRECTION, "retry")

    new_kinds = frozenset(kinds) - state.processed_correction_kinds
    if not new_kinds:
        return state, ()

    selected = tuple(
        row for row in state.pending_rows if kinds_for(row.missing_reasons) & new_kinds
    )
    retrying = state.with_changes(
        status=SessionStatus.RETRYING,
        processed_correction_kinds=state.processed_correction_kinds | new_kinds,
    )
    return retrying, selected


def apply_retry_outcomes(
    state: ImportSessionState,
    outcomes: Sequence[ClassifiedRow],
    *,
    sample_size: int = DEFAULT_SAMPLE_SIZE,
) -> ImportSessionState:
    """
    Fold a retry pass into the session.

    A row that is still pending only on kinds that have already had their
    retry becomes STILL_MISSING; a row still waiting on an unprocessed kind
    stays pending with its refreshed reasons.
    """
    _require_status(state, SessionStatus.RETRYING, "apply retry outcomes to")

    pending_by_index = {row.original_index: row for row in state.pending_rows}
    by_index: dict[int, ClassifiedRow] = {}
    for outcome in outcomes:
        if outcome.original_index not in pending_by_index:
            raise ValueError(f"Row {outcome.original_index} is not pending in session {state.id}.")
        by_index[outcome.original_index] = outcome

    processed = state.processed_correction_kinds
    breakdown = dict(state.failure_breakdown)
    newly_failed: list[FailedRow] = []
    still_pending: list[PendingRow] = []
    success_count = 0

    for row in state.pending_rows:
        outcome = by_index.get(row.original_index)
        if outcome is None:
            still_pending.append(row)
            continue

        identifier = row.external_id or f"#{row.original_index}"
        result = outcome.result
        if isinstance(result, Accepted):
            success_count += 1
        elif isinstance(result, Rejected):
            newly_failed.append(
                FailedRow(
                    original_index=row.original_index,
                    external_id=row.external_id,
                    reason_code=result.reason_code,
                    message=result.message,
                    original_payload=row.payload,
                )
            )
            breakdown = record_failure(
                breakdown, result.reason_code, identifier, sample_size=sample_size
            )
        elif isinstance(result, Pending):
            if kinds_for(result.missing_reasons) <= processed:
                newly_failed.append(
                    FailedRow(
                        original_index=row.original_index,
                        external_id=row.external_id,
                        reason_code=ReasonCode.STILL_MISSING,
                        message=f"Still unresolved after correction: {result.message}",
                        original_payload=row.payload,
                    )
                )
                breakdown = record_failure(
                    breakdown, ReasonCode.STILL_MISSING, identifier, sample_size=sample_size
                )
            else:
                still_pending.append(
                    PendingRow(
                        original_index=row.original_index,
                        external_id=row.external_id,
                        missing_reasons=result.missing_reasons,
                        message=result.message,
                        payload=row.payload,
                    )
                )
        else:
            raise TypeError(f"Unknown classification result: {result!r}")

    failed_rows = tuple(
        sorted(state.failed_rows + tuple(newly_failed), key=lambda item: item.original_index)
    )
    return state.with_changes(
        status=SessionStatus.PENDING_CORRECTION if still_pending else SessionStatus.COMPLETED,
        failed_rows=failed_rows,
        pending_rows=tuple(still_pending),
        failure_breakdown=breakdown,
        retry_success_count=state.retry_success_count + success_count,
        retry_failure_count=state.retry_failure_count + len(newly_failed),
    )


def mark_failed(state: ImportSessionState, message: str) -> ImportSessionState:
    if state.is_terminal:
        raise SessionClosed(state.id, state.status.value)
    return state.with_changes(status=SessionStatus.FAILED, error_message=message)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_status(state: ImportSessionState, expected: SessionStatus, action: str) -> None:
    if state.is_terminal:
        raise SessionClosed(state.id, state.status.value)
    if state.status != expected:
        raise InvalidTransition(state.status.value, action)


def _failed_row(outcome: ClassifiedRow, reason: ReasonCode, message: str) -> FailedRow:
    return FailedRow(
        original_index=outcome.original_index,
        external_id=outcome.external_id,
        reason_code=reason,
        message=message,
        original_payload=outcome.payload,
    )


def _pending_row(outcome: ClassifiedRow, result: Pending) -> PendingRow:
    return PendingRow(
        original_index=outcome.original_index,
        external_id=outcome.external_id,
        missing_reasons=result.missing_reasons,
        message=result.message,
        payload=outcome.payload,
    )
