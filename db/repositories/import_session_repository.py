"""
Import session repository: stores ImportSessionState as one row.

The mapped `version` column is SQLAlchemy's version_id_col, so every flush
issues `UPDATE ... WHERE id = :id AND version = :expected`. A stale state,
or a concurrent writer winning the race, surfaces as SessionBusy.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from db.models.import_session import ImportSessionModel
from db.repositories.errors import SessionPersistenceError
from trip_import.errors import SessionBusy, SessionNotFound
from trip_import.reasons import CorrectionKind
from trip_import.session import (
    FailedRow,
    ImportSessionState,
    PendingRow,
    SessionStatus,
    breakdown_from_dict,
    breakdown_to_dict,
)


class ImportSessionRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create(self, state: ImportSessionState) -> ImportSessionState:
        row = ImportSessionModel(id=state.id, owner_id=state.owner_id)
        _copy_state(state, row)
        self._session.add(row)
        try:
            self._session.flush()
        except SQLAlchemyError as exc:
            raise SessionPersistenceError(f"Failed to create import session {state.id}.") from exc
        return state.with_changes(version=row.version)

    def save(self, state: ImportSessionState) -> ImportSessionState:
        row = self._session.get(ImportSessionModel, state.id)
        if row is None:
            raise SessionNotFound(state.id)
        if row.version != state.version:
            raise SessionBusy(state.id)

        _copy_state(state, row)
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise SessionBusy(state.id) from exc
        except SQLAlchemyError as exc:
            raise SessionPersistenceError(f"Failed to save import session {state.id}.") from exc
        return state.with_changes(version=row.version)

    def get(self, session_id: uuid.UUID) -> ImportSessionState | None:
        row = self._session.get(ImportSessionModel, session_id, populate_existing=True)
        if row is None:
            return None
        return _to_state(row)

    def delete_expired(self, now: datetime) -> int:
        result = self._session.execute(
            delete(ImportSessionModel).where(ImportSessionModel.expires_at <= now)
        )
        return int(result.rowcount or 0)


def _copy_state(state: ImportSessionState, row: ImportSessionModel) -> None:
    row.status = state.status.value
    row.created_at = state.created_at
    row.expires_at = state.expires_at
    row.total_rows = state.total_rows
    row.initial_success_count = state.initial_success_count
    row.initial_failure_count = state.initial_failure_count
    row.retry_success_count = state.retry_success_count
    row.retry_failure_count = state.retry_failure_count
    row.failure_breakdown = breakdown_to_dict(state.failure_breakdown)
    row.failed_rows = [failed.to_dict() for failed in state.failed_rows]
    row.pending_rows = [pending.to_dict() for pending in state.pending_rows]
    row.processed_correction_kinds = sorted(kind.value for kind in state.processed_correction_kinds)
    row.error_message = state.error_message


def _to_state(row: ImportSessionModel) -> ImportSessionState:
    try:
        return ImportSessionState(
            id=row.id,
            owner_id=row.owner_id,
            status=SessionStatus(row.status),
            created_at=row.created_at,
            expires_at=row.expires_at,
            total_rows=row.total_rows,
            initial_success_count=row.initial_success_count,
            initial_failure_count=row.initial_failure_count,
            failure_breakdown=breakdown_from_dict(row.failure_breakdown),
            failed_rows=tuple(FailedRow.from_dict(item) for item in row.failed_rows or ()),
            pending_rows=tuple(PendingRow.from_dict(item) for item in row.pending_rows or ()),
            retry_success_count=row.retry_success_count,
            retry_failure_count=row.retry_failure_count,
            processed_correction_kinds=frozenset(
                CorrectionKind(value) for value in row.processed_correction_kinds or ()
            ),
            version=row.version,
            error_message=row.error_message,
        )
    except (KeyError, ValueError) as exc:
        raise SessionPersistenceError(f"Import session {row.id} could not be decoded.") from exc
