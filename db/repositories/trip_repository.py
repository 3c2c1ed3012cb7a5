"""
Trip repository: persistence for trips accepted by import passes.

Duplicate detection works on `external_key`, the external id folded by
normalize_key(). The classifier folds its in-batch ids the same way, so
"ABC-1", " abc-1 " and "Abc-1" are one trip both here and in a batch.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.trip import Trip
from db.repositories.errors import TripPersistenceError
from trip_import.classifier import NormalizedTrip
from trip_import.snapshot import normalize_key

_LOOKUP_CHUNK = 1000


def external_keys(external_ids: Iterable[str]) -> list[str]:
    """Distinct non-empty normalised keys for `external_ids`, sorted."""
    return sorted({key for key in map(normalize_key, external_ids) if key})


class TripRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def existing_external_ids(
        self,
        owner_id: uuid.UUID,
        external_ids: Iterable[str],
    ) -> set[str]:
        """Normalised keys of `external_ids` the owner already has trips for."""
        wanted = external_keys(external_ids)
        found: set[str] = set()
        for start in range(0, len(wanted), _LOOKUP_CHUNK):
            chunk = wanted[start : start + _LOOKUP_CHUNK]
            stmt = select(Trip.external_key).where(
                Trip.owner_id == owner_id,
                Trip.external_key.in_(chunk),
            )
            found.update(self._session.scalars(stmt).all())
        return found

    def save_accepted(
        self,
        owner_id: uuid.UUID,
        session_id: uuid.UUID,
        trips: Sequence[tuple[int, NormalizedTrip]],
    ) -> int:
        if not trips:
            return 0

        rows = [
            {
                "id": uuid.uuid4(),
                "owner_id": owner_id,
                "import_session_id": session_id,
                "external_id": trip.external_id,
                "external_key": normalize_key(trip.external_id),
                "trip_date": trip.trip_date,
                "origin_site_id": trip.origin_site_id,
                "destination_site_id": trip.destination_site_id,
                "route_id": trip.route_id,
                "tariff_type": trip.tariff_type.value if trip.tariff_type else None,
                "personnel_id": trip.personnel_id,
                "vehicle_id": trip.vehicle_id,
                "units": trip.units,
                "original_index": original_index,
            }
            for original_index, trip in trips
        ]
        stmt = insert(Trip).values(rows)
        try:
            self._session.execute(stmt)
            self._session.flush()
        except SQLAlchemyError as exc:
            raise TripPersistenceError(
                f"Failed to store {len(rows)} accepted trips for session {session_id}."
            ) from exc
        return len(rows)
