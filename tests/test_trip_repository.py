"""
tests/test_trip_repository.py

External id folding in the trip repository must match the classifier's, so a
previously imported id is recognised however the new batch spells it.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy.dialects import postgresql

from db.repositories.trip_repository import TripRepository, external_keys
from trip_import.classifier import ExternalIdIndex, NormalizedTrip


class _Result:
    def __init__(self, values: list[str]) -> None:
        self._values = values

    def all(self) -> list[str]:
        return self._values


class _RecordingSession:
    """Captures statements instead of talking to PostgreSQL."""

    def __init__(self, stored_keys: list[str] | None = None) -> None:
        self.statements: list = []
        self._stored_keys = stored_keys or []

    def scalars(self, stmt):
        self.statements.append(stmt)
        return _Result(self._stored_keys)

    def execute(self, stmt):
        self.statements.append(stmt)

    def flush(self) -> None:
        pass


def _compiled(stmt):
    return stmt.compile(dialect=postgresql.dialect())


def test_external_keys_use_the_classifier_folding() -> None:
    keys = external_keys([" ABC-1", "abc-1", "Cañada  7", "", "   "])

    assert keys == ["abc-1", "canada 7"]
    index = ExternalIdIndex(keys)
    assert "Abc-1 " in index
    assert "CANADA 7" in index


def test_lookup_matches_the_normalised_key_column() -> None:
    session = _RecordingSession(stored_keys=["canada 7"])

    found = TripRepository(session).existing_external_ids(uuid.uuid4(), ["CAÑADA 7", "abc-1"])

    assert found == {"canada 7"}
    compiled = _compiled(session.statements[0])
    sql = str(compiled)
    assert "trips.external_key IN" in sql
    assert "lower(" not in sql
    assert ["abc-1", "canada 7"] in compiled.params.values()


def test_lookup_without_ids_skips_the_query() -> None:
    session = _RecordingSession()

    assert TripRepository(session).existing_external_ids(uuid.uuid4(), ["", "  "]) == set()
    assert session.statements == []


def test_saved_trips_carry_the_normalised_key() -> None:
    session = _RecordingSession()
    trip = NormalizedTrip(
        external_id=" Cañada-7 ",
        trip_date=date(2024, 3, 15),
        origin_site_id=uuid.uuid4(),
        destination_site_id=uuid.uuid4(),
        route_id=uuid.uuid4(),
        tariff_type=None,
        personnel_id=None,
        vehicle_id=None,
        units=None,
    )

    saved = TripRepository(session).save_accepted(uuid.uuid4(), uuid.uuid4(), [(0, trip)])

    assert saved == 1
    params = _compiled(session.statements[0]).params
    assert "canada-7" in params.values()
    assert " Cañada-7 " in params.values()
