"""
app/services/trip_import_service.py

Service layer for staged trip imports.

Wires the import orchestrator to SQLAlchemy repositories for one request's
session, parses CSV uploads into raw rows, and writes operator-supplied
correction data (sites, personnel, vehicles, routes) ahead of a retry.
"""

from __future__ import annotations

import csv
import io
import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime
from functools import lru_cache
from typing import Any, Mapping

from fastapi import UploadFile
from sqlalchemy.orm import Session

from app.config import TripImportSettings, get_trip_import_settings
from db.repositories.import_session_repository import ImportSessionRepository
from db.repositories.reference_data_repository import ReferenceDataRepository
from db.repositories.tariff_repository import TariffRepository
from db.repositories.trip_repository import TripRepository
from tariffs.store import TariffWindowStore
from trip_import.orchestrator import ImportSessionOrchestrator, ImportSessionStore, TripWriter
from trip_import.reasons import CorrectionKind
from trip_import.session import ImportSessionState

logger = logging.getLogger(__name__)

_CSV_DELIMITERS = ";,\t"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TripCSVError(ValueError):
    """
    Raised when an uploaded trip file cannot be read as CSV.
    """


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class TripImportService:
    """
    Coordinates import passes, CSV parsing and correction data writes.
    """

    def __init__(
        self,
        *,
        settings: TripImportSettings,
        session_repository_factory: Callable[[Session], ImportSessionStore] = ImportSessionRepository,
        trip_repository_factory: Callable[[Session], TripWriter] = TripRepository,
        reference_repository_factory: Callable[[Session], Any] = ReferenceDataRepository,
        tariff_repository_factory: Callable[[Session], Any] | None = TariffRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._settings = settings
        self._session_repository_factory = session_repository_factory
        self._trip_repository_factory = trip_repository_factory
        self._reference_repository_factory = reference_repository_factory
        self._tariff_repository_factory = tariff_repository_factory
        self._clock = clock

    # ------------------------------------------------------------------
    # Import sessions
    # ------------------------------------------------------------------

    def import_rows(
        self,
        *,
        db: Session,
        owner_id: uuid.UUID,
        rows: Sequence[Mapping[str, Any]],
    ) -> ImportSessionState:
        return self._orchestrator(db).import_batch(owner_id, rows)

    def import_csv(
        self,
        *,
        db: Session,
        owner_id: uuid.UUID,
        upload_file: UploadFile,
    ) -> ImportSessionState:
        rows = self.parse_csv(upload_file)
        logger.info(
            "Trip CSV parsed owner_id=%s file=%r rows=%s",
            owner_id,
            upload_file.filename,
            len(rows),
        )
        return self.import_rows(db=db, owner_id=owner_id, rows=rows)

    def get_session(self, *, db: Session, session_id: uuid.UUID) -> ImportSessionState:
        return self._orchestrator(db).get_session(session_id)

    def retry(
        self,
        *,
        db: Session,
        session_id: uuid.UUID,
        kinds: Iterable[CorrectionKind],
    ) -> ImportSessionState:
        return self._orchestrator(db).retry(session_id, kinds)

    def purge_expired(self, *, db: Session) -> int:
        return self._orchestrator(db).purge_expired()

    # ------------------------------------------------------------------
    # Correction data
    # ------------------------------------------------------------------

    def add_sites(self, *, db: Session, owner_id: uuid.UUID, names: Sequence[str]) -> list[uuid.UUID]:
        return self._write_references(
            db, lambda repository: [site.id for site in repository.add_sites(owner_id, names)]
        )

    def add_personnel(
        self,
        *,
        db: Session,
        owner_id: uuid.UUID,
        people: Sequence[tuple[str, str | None]],
    ) -> list[uuid.UUID]:
        return self._write_references(
            db, lambda repository: [person.id for person in repository.add_personnel(owner_id, people)]
        )

    def add_vehicles(self, *, db: Session, owner_id: uuid.UUID, plates: Sequence[str]) -> list[uuid.UUID]:
        return self._write_references(
            db, lambda repository: [vehicle.id for vehicle in repository.add_vehicles(owner_id, plates)]
        )

    def add_route(
        self,
        *,
        db: Session,
        owner_id: uuid.UUID,
        origin_site_id: uuid.UUID,
        destination_site_id: uuid.UUID,
        distance_km: float | None = None,
    ) -> uuid.UUID:
        created = self._write_references(
            db,
            lambda repository: [
                repository.add_route(
                    owner_id,
                    origin_site_id=origin_site_id,
                    destination_site_id=destination_site_id,
                    distance_km=distance_km,
                ).id
            ],
        )
        return created[0]

    # ------------------------------------------------------------------
    # CSV parsing
    # ------------------------------------------------------------------

    @staticmethod
    def parse_csv(upload_file: UploadFile) -> list[dict[str, Any]]:
        """
        Read an uploaded CSV (comma, semicolon or tab separated, UTF-8 with
        or without BOM) into raw rows. Blank lines are skipped.
        """
        raw_file = upload_file.file
        raw_file.seek(0)
        text_stream: io.TextIOWrapper | None = None
        try:
            text_stream = io.TextIOWrapper(raw_file, encoding="utf-8-sig", newline="")
            sample = text_stream.read(4096)
            text_stream.seek(0)
            if not sample.strip():
                raise TripCSVError("CSV file is empty.")
            try:
                dialect = csv.Sniffer().sniff(sample, delimiters=_CSV_DELIMITERS)
            except csv.Error:
                dialect = csv.excel

            reader = csv.DictReader(text_stream, dialect=dialect)
            headers = reader.fieldnames or []
            if not any((header or "").strip() for header in headers):
                raise TripCSVError("CSV header row is missing.")

            rows: list[dict[str, Any]] = []
            for raw_row in reader:
                row = {
                    (key or "").strip(): value
                    for key, value in raw_row.items()
                    if key is not None
                }
                if all(value is None or str(value).strip() == "" for value in row.values()):
                    continue
                rows.append(row)
            return rows
        except UnicodeDecodeError as exc:
            raise TripCSVError("CSV must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise TripCSVError(f"Invalid CSV format: {exc}") from exc
        finally:
            if text_stream is not None:
                try:
                    text_stream.detach()
                except ValueError:
                    pass

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _orchestrator(self, db: Session) -> ImportSessionOrchestrator:
        settings = self._settings
        tariff_types = None
        if self._tariff_repository_factory is not None:
            tariff_types = TariffWindowStore(self._tariff_repository_factory(db))

        options: dict[str, Any] = {}
        if self._clock is not None:
            options["clock"] = self._clock

        return ImportSessionOrchestrator(
            provider=self._reference_repository_factory(db),
            sessions=self._session_repository_factory(db),
            trips=self._trip_repository_factory(db),
            transaction=db,
            tariff_types=tariff_types,
            session_ttl=settings.session_ttl,
            sample_size=settings.failure_sample_size,
            max_rows=settings.max_rows,
            max_future_days=settings.max_future_days,
            min_year=settings.min_year,
            log_row_failures=settings.log_row_failures,
            **options,
        )

    def _write_references(
        self,
        db: Session,
        write: Callable[[Any], list[uuid.UUID]],
    ) -> list[uuid.UUID]:
        repository = self._reference_repository_factory(db)
        try:
            created = write(repository)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return created


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_trip_import_service() -> TripImportService:
    """
    Build and cache the trip import service with env-driven settings.
    """
    return TripImportService(settings=get_trip_import_settings())
