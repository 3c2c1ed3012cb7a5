"""
trip_import/orchestrator.py

Runs import passes against collaborators and persists the resulting session.

Each pass fetches a fresh reference snapshot, classifies rows in input order,
writes accepted trips and saves the session through the optimistic version
guard of the session store. Pipeline faults (snapshot fetch, persistence)
move the session to failed; row-level problems never raise.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Protocol

from tariffs.base import TariffType
from trip_import.classifier import Accepted, ClassifiedRow, NormalizedTrip, Rejected, RowClassifier
from trip_import.errors import (
    BatchTooLarge,
    ImportPipelineError,
    SessionBusy,
    SessionExpired,
    SessionNotFound,
)
from trip_import.fields import canonicalize_row
from trip_import.reasons import CorrectionKind
from trip_import.reducer import (
    DEFAULT_SAMPLE_SIZE,
    DEFAULT_SESSION_TTL,
    apply_initial_pass,
    apply_retry_outcomes,
    begin_retry,
    mark_failed,
    start_session,
)
from trip_import.session import ImportSessionState
from trip_import.snapshot import ReferenceDataProvider, ReferenceSnapshot

logger = logging.getLogger(__name__)

AcceptedTrip = tuple[int, NormalizedTrip]


class ImportSessionStore(Protocol):
    """
    Session persistence with an optimistic guard.

    save() must raise SessionBusy when the stored version differs from
    state.version, and return the state carrying the new version.
    """

    def create(self, state: ImportSessionState) -> ImportSessionState:
        ...

    def save(self, state: ImportSessionState) -> ImportSessionState:
        ...

    def get(self, session_id: uuid.UUID) -> ImportSessionState | None:
        ...

    def delete_expired(self, now: datetime) -> int:
        ...


class TripWriter(Protocol):
    def save_accepted(
        self,
        owner_id: uuid.UUID,
        session_id: uuid.UUID,
        trips: Sequence[AcceptedTrip],
    ) -> int:
        ...

    def existing_external_ids(
        self,
        owner_id: uuid.UUID,
        external_ids: Iterable[str],
    ) -> set[str]:
        ...


class Transaction(Protocol):
    """Commit boundary between passes; a SQLAlchemy Session satisfies it."""

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class TariffTypeResolver(Protocol):
    def highest_applicable_type(self, route_id: uuid.UUID, on_date: date) -> TariffType | None:
        ...


class _NoTransaction:
    def commit(self) -> None:
        return None

    def rollback(self) -> None:
        return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportSessionOrchestrator:
    """
    Coordinates the initial pass and correction retries of trip imports.

    The caller owns the transaction object; the orchestrator commits after
    every persisted transition so a failed pass can still record its failure.
    """

    def __init__(
        self,
        *,
        provider: ReferenceDataProvider,
        sessions: ImportSessionStore,
        trips: TripWriter,
        classifier: RowClassifier | None = None,
        clock: Callable[[], datetime] = _utcnow,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        transaction: Transaction | None = None,
        tariff_types: TariffTypeResolver | None = None,
        sample_size: int = DEFAULT_SAMPLE_SIZE,
        max_rows: int | None = None,
        max_future_days: int = 365,
        min_year: int = 2000,
        log_row_failures: bool = True,
    ) -> None:
        self._provider = provider
        self._sessions = sessions
        self._trips = trips
        self._classifier = classifier
        self._clock = clock
        self._session_ttl = session_ttl
        self._transaction = transaction or _NoTransaction()
        self._tariff_types = tariff_types
        self._sample_size = sample_size
        self._max_rows = max_rows
        self._max_future_days = max_future_days
        self._min_year = min_year
        self._log_row_failures = log_row_failures

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def import_batch(
        self,
        owner_id: uuid.UUID,
        rows: Sequence[Mapping[str, Any]],
    ) -> ImportSessionState:
        """
        Create a session and run the initial classification pass.

        Returns the session in completed or pending_correction. A batch where
        every row fails is still completed; only pipeline faults raise.
        """
        if self._max_rows is not None and len(rows) > self._max_rows:
            raise BatchTooLarge(len(rows), self._max_rows)

        now = self._clock()
        state = self._sessions.create(
            start_session(owner_id, len(rows), now, self._session_ttl)
        )
        self._transaction.commit()
        logger.info(
            "Import session started session_id=%s owner_id=%s rows=%s",
            state.id,
            owner_id,
            len(rows),
        )

        try:
            snapshot = self._fetch_snapshot(owner_id)
            external_ids = [_external_id_of(row) for row in rows]
            prior_ids = self._trips.existing_external_ids(
                owner_id, [value for value in external_ids if value]
            )
            outcomes = self._classifier_for(now).classify_batch(rows, snapshot, prior_ids)
            accepted = self._accepted_trips(outcomes)
            if accepted:
                self._trips.save_accepted(owner_id, state.id, accepted)

            completed = apply_initial_pass(state, outcomes, sample_size=self._sample_size)
            saved = self._sessions.save(completed)
            self._transaction.commit()
        except SessionBusy:
            self._transaction.rollback()
            raise
        except Exception as exc:
            raise self._fail(state, exc, phase="initial pass") from exc

        self._log_rejections(saved.id, outcomes)
        logger.info(
            "Import session classified session_id=%s status=%s accepted=%s failed=%s pending=%s",
            saved.id,
            saved.status.value,
            saved.initial_success_count,
            saved.initial_failure_count,
            len(saved.pending_rows),
        )
        return saved

    def get_session(self, session_id: uuid.UUID) -> ImportSessionState:
        state = self._sessions.get(session_id)
        if state is None:
            raise SessionNotFound(session_id)
        if state.is_expired(self._clock()):
            raise SessionExpired(session_id)
        return state

    def retry(
        self,
        session_id: uuid.UUID,
        kinds: Iterable[CorrectionKind | str],
    ) -> ImportSessionState:
        """
        Re-classify the pending rows waiting on newly supplied correction kinds.

        Kinds already processed in this session are ignored; if nothing new is
        supplied the session is returned unchanged.
        """
        supplied = frozenset(CorrectionKind(kind) for kind in kinds)
        state = self.get_session(session_id)

        retrying, selected = begin_retry(state, supplied)
        if retrying is state:
            logger.info(
                "Retry ignored session_id=%s kinds=%s already_processed=%s",
                session_id,
                sorted(kind.value for kind in supplied),
                sorted(kind.value for kind in state.processed_correction_kinds),
            )
            return state

        # Persisting the retrying state claims the session; a concurrent
        # retry holding the same version fails here with SessionBusy.
        try:
            retrying = self._sessions.save(retrying)
            self._transaction.commit()
        except SessionBusy:
            self._transaction.rollback()
            raise

        logger.info(
            "Retry started session_id=%s kinds=%s rows=%s",
            session_id,
            sorted(kind.value for kind in supplied),
            len(selected),
        )

        try:
            snapshot = self._fetch_snapshot(retrying.owner_id)
            prior_ids = self._trips.existing_external_ids(
                retrying.owner_id, [row.external_id for row in selected if row.external_id]
            )
            outcomes = self._classifier_for(self._clock()).classify_batch(
                [row.payload for row in selected],
                snapshot,
                prior_ids,
                indexes=[row.original_index for row in selected],
            )
            accepted = self._accepted_trips(outcomes)
            if accepted:
                self._trips.save_accepted(retrying.owner_id, retrying.id, accepted)

            finished = apply_retry_outcomes(retrying, outcomes, sample_size=self._sample_size)
            saved = self._sessions.save(finished)
            self._transaction.commit()
        except SessionBusy:
            self._transaction.rollback()
            raise
        except Exception as exc:
            raise self._fail(retrying, exc, phase="retry") from exc

        self._log_rejections(saved.id, outcomes)
        logger.info(
            "Retry finished session_id=%s status=%s retry_success=%s retry_failure=%s pending=%s",
            saved.id,
            saved.status.value,
            saved.retry_success_count,
            saved.retry_failure_count,
            len(saved.pending_rows),
        )
        return saved

    def purge_expired(self, now: datetime | None = None) -> int:
        deleted = self._sessions.delete_expired(now or self._clock())
        self._transaction.commit()
        if deleted:
            logger.info("Expired import sessions purged count=%s", deleted)
        return deleted

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_snapshot(self, owner_id: uuid.UUID) -> ReferenceSnapshot:
        return ReferenceSnapshot.from_reference_data(self._provider.snapshot(owner_id))

    def _classifier_for(self, now: datetime) -> RowClassifier:
        if self._classifier is not None:
            return self._classifier
        return RowClassifier(
            today=now.date(),
            max_future_days=self._max_future_days,
            min_year=self._min_year,
        )

    def _accepted_trips(self, outcomes: Sequence[ClassifiedRow]) -> list[AcceptedTrip]:
        accepted: list[AcceptedTrip] = []
        for outcome in outcomes:
            if not isinstance(outcome.result, Accepted):
                continue
            trip = outcome.result.trip
            if trip.tariff_type is None and self._tariff_types is not None:
                resolved = self._tariff_types.highest_applicable_type(trip.route_id, trip.trip_date)
                if resolved is not None:
                    trip = replace(trip, tariff_type=resolved)
            accepted.append((outcome.original_index, trip))
        return accepted

    def _fail(
        self,
        state: ImportSessionState,
        exc: Exception,
        *,
        phase: str,
    ) -> ImportPipelineError:
        error_message = f"{type(exc).__name__}: {exc}"
        logger.exception(
            "Import %s failed session_id=%s error=%s", phase, state.id, error_message
        )
        self._transaction.rollback()
        try:
            self._sessions.save(mark_failed(state, error_message[:2000]))
            self._transaction.commit()
        except Exception:
            self._transaction.rollback()
            logger.exception("Failed to persist failed import session state id=%s", state.id)
        return ImportPipelineError(
            f"Import {phase} failed for session {state.id}: {error_message}",
            session_id=state.id,
        )

    def _log_rejections(self, session_id: uuid.UUID, outcomes: Sequence[ClassifiedRow]) -> None:
        if not self._log_row_failures:
            return
        for outcome in outcomes:
            if isinstance(outcome.result, Rejected):
                logger.warning(
                    "Row rejected session_id=%s index=%s external_id=%s reason=%s field=%s: %s",
                    session_id,
                    outcome.original_index,
                    outcome.external_id,
                    outcome.result.reason_code.value,
                    outcome.result.field,
                    outcome.result.message,
                )


def _external_id_of(row: Mapping[str, Any]) -> str:
    value = canonicalize_row(row).get("external_id")
    return "" if value is None else str(value).strip()
