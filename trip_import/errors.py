"""
trip_import/errors.py

Session- and pipeline-level exceptions for trip imports.

Row-level problems are never raised; they are returned as Rejected/Pending
classification results and stored on the session.
"""

from __future__ import annotations

import uuid
from typing import Any


class ImportSessionError(Exception):
    """Base exception for import session failures."""

    def to_dict(self) -> dict[str, Any]:
        return {"message": str(self)}


class SessionNotFound(ImportSessionError, LookupError):
    """Raised when a session id is unknown."""

    def __init__(self, session_id: uuid.UUID) -> None:
        super().__init__(f"Import session {session_id} not found.")
        self.session_id = session_id


class SessionExpired(ImportSessionError):
    """Raised when a session is past its expiry time."""

    def __init__(self, session_id: uuid.UUID) -> None:
        super().__init__(f"Import session {session_id} has expired.")
        self.session_id = session_id


class SessionBusy(ImportSessionError):
    """Raised when a concurrent pass modified the session first."""

    def __init__(self, session_id: uuid.UUID) -> None:
        super().__init__(
            f"Import session {session_id} was modified concurrently; reload and retry."
        )
        self.session_id = session_id


class SessionClosed(ImportSessionError):
    """Raised when mutating a completed or failed session."""

    def __init__(self, session_id: uuid.UUID, status: str) -> None:
        super().__init__(f"Import session {session_id} is {status} and can no longer change.")
        self.session_id = session_id
        self.status = status


class InvalidTransition(ImportSessionError):
    """Raised when an operation is not allowed from the current status."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot {requested} an import session in status {current}.")
        self.current = current
        self.requested = requested


class ImportPipelineError(ImportSessionError):
    """Raised when a classification pass fails; the session is marked failed."""

    def __init__(self, message: str, *, session_id: uuid.UUID | None = None) -> None:
        super().__init__(message)
        self.session_id = session_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": str(self),
            "session_id": str(self.session_id) if self.session_id else None,
        }


class ReferenceDataUnavailable(ImportSessionError):
    """Raised by providers when the reference snapshot cannot be fetched."""


class BatchTooLarge(ImportSessionError, ValueError):
    """Raised when a batch exceeds the configured row limit."""

    def __init__(self, rows: int, limit: int) -> None:
        super().__init__(f"Batch has {rows} rows; at most {limit} are accepted per import.")
        self.rows = rows
        self.limit = limit
