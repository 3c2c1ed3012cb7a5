"""
tests/test_row_classifier.py

Row classification: scalar validation first (rejections), then reference
resolution (pending rows), then acceptance.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from tariffs.base import TariffType
from trip_import.classifier import (
    Accepted,
    ExternalIdIndex,
    Pending,
    Rejected,
    RowClassifier,
    jsonable_row,
)
from trip_import.reasons import ReasonCode
from trip_import.snapshot import PersonnelRef, ReferenceSnapshot, RouteRef, SiteRef, VehicleRef

TODAY = date(2024, 6, 1)

PLANT = SiteRef(id=uuid.uuid4(), name="Planta Norte")
DEPOT = SiteRef(id=uuid.uuid4(), name="Depósito Sur")
PORT = SiteRef(id=uuid.uuid4(), name="Puerto")
DRIVER = PersonnelRef(id=uuid.uuid4(), identifier="30111222", full_name="Ana Gómez")
TRUCK = VehicleRef(id=uuid.uuid4(), plate="AB123CD")
ROUTE = RouteRef(
    id=uuid.uuid4(),
    origin_site_id=PLANT.id,
    destination_site_id=DEPOT.id,
    distance_km=42.0,
    tariff_types=frozenset({TariffType.TRMI}),
)


@pytest.fixture
def snapshot() -> ReferenceSnapshot:
    return ReferenceSnapshot.build(
        sites=[PLANT, DEPOT, PORT],
        personnel=[DRIVER],
        vehicles=[TRUCK],
        routes=[ROUTE],
    )


@pytest.fixture
def classifier() -> RowClassifier:
    return RowClassifier(today=TODAY)


def _row(**overrides) -> dict:
    row = {
        "dt": "T-1",
        "fecha": "15/03/2024",
        "origen": "planta norte",
        "destino": "DEPOSITO SUR",
    }
    row.update(overrides)
    return {key: value for key, value in row.items() if value is not None}


def test_fully_resolved_row_is_accepted(classifier, snapshot) -> None:
    result = classifier.classify(
        _row(chofer="Ana Gomez", patente="ab 123 cd", paletas="3,5", tipo="trmi"), snapshot
    )

    assert isinstance(result, Accepted)
    trip = result.trip
    assert trip.external_id == "T-1"
    assert trip.trip_date == date(2024, 3, 15)
    assert trip.route_id == ROUTE.id
    assert trip.personnel_id == DRIVER.id
    assert trip.vehicle_id == TRUCK.id
    assert trip.units == Decimal("3.5")
    assert trip.tariff_type == TariffType.TRMI
    assert trip.distance_km == 42.0


def test_optional_driver_and_vehicle_may_be_absent(classifier, snapshot) -> None:
    result = classifier.classify(_row(), snapshot)

    assert isinstance(result, Accepted)
    assert result.trip.personnel_id is None
    assert result.trip.vehicle_id is None
    assert result.trip.tariff_type is None


@pytest.mark.parametrize("value", ["2024-03-15", "15-03-2024", "15.03.2024", date(2024, 3, 15)])
def test_accepted_date_formats(classifier, snapshot, value) -> None:
    result = classifier.classify(_row(fecha=value), snapshot)

    assert isinstance(result, Accepted)
    assert result.trip.trip_date == date(2024, 3, 15)


@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"dt": "  "}, "external_id"),
        ({"fecha": None}, "date"),
        ({"destino": ""}, "destination"),
        ({"fecha": "31/02/2024"}, "date"),
        ({"fecha": "03/15/2024"}, "date"),
        ({"fecha": "31/12/1999"}, "date"),
        ({"fecha": "02/06/2025"}, "date"),
        ({"paletas": "-1"}, "units"),
        ({"paletas": "tres"}, "units"),
        ({"paletas": "NaN"}, "units"),
        ({"tipo": "express"}, "tariff_type"),
    ],
)
def test_malformed_rows_are_rejected_with_the_offending_field(classifier, snapshot, overrides, field) -> None:
    result = classifier.classify(_row(**overrides), snapshot)

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.MALFORMED_DATA
    assert result.field == field


def test_malformed_data_wins_over_missing_references(classifier, snapshot) -> None:
    result = classifier.classify(_row(origen="Nowhere", fecha="not a date"), snapshot)

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.MALFORMED_DATA


def test_duplicate_wins_over_malformed_data(classifier, snapshot) -> None:
    result = classifier.classify(_row(fecha="bad"), snapshot, {"t-1"})

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.DUPLICATE_EXTERNAL_ID


def test_unknown_sites_are_reported_once_and_skip_the_route_check(classifier, snapshot) -> None:
    result = classifier.classify(_row(origen="Planta Oeste", destino="Mina"), snapshot)

    assert isinstance(result, Pending)
    assert result.missing_reasons == (ReasonCode.MISSING_SITE,)
    assert "Planta Oeste" in result.message
    assert "Mina" in result.message


def test_every_missing_reference_is_collected(classifier, snapshot) -> None:
    result = classifier.classify(_row(chofer="99999999", patente="ZZ999ZZ"), snapshot)

    assert isinstance(result, Pending)
    assert result.missing_reasons == (ReasonCode.MISSING_PERSONNEL, ReasonCode.MISSING_VEHICLE)


def test_missing_route_between_known_sites_is_pending(classifier, snapshot) -> None:
    result = classifier.classify(_row(destino="Puerto"), snapshot)

    assert isinstance(result, Pending)
    assert result.missing_reasons == (ReasonCode.MISSING_ROUTE,)


def test_route_without_the_requested_tariff_type_is_pending(classifier, snapshot) -> None:
    result = classifier.classify(_row(tipo="TRMC"), snapshot)

    assert isinstance(result, Pending)
    assert result.missing_reasons == (ReasonCode.MISSING_ROUTE,)


def test_batch_marks_repeated_external_ids_as_duplicates(classifier, snapshot) -> None:
    rows = [
        _row(dt="T-1", fecha="bad date"),
        _row(dt="t-1"),
        _row(dt="T-2"),
    ]

    outcomes = classifier.classify_batch(rows, snapshot)

    assert [outcome.original_index for outcome in outcomes] == [0, 1, 2]
    assert isinstance(outcomes[0].result, Rejected)
    assert outcomes[0].result.reason_code == ReasonCode.MALFORMED_DATA
    assert isinstance(outcomes[1].result, Rejected)
    assert outcomes[1].result.reason_code == ReasonCode.DUPLICATE_EXTERNAL_ID
    assert isinstance(outcomes[2].result, Accepted)


def test_batch_checks_previously_imported_ids(classifier, snapshot) -> None:
    outcomes = classifier.classify_batch([_row(dt="T-7")], snapshot, prior_external_ids=["t-7"])

    assert outcomes[0].result.reason_code == ReasonCode.DUPLICATE_EXTERNAL_ID


def test_seen_ids_passed_as_a_plain_set_are_normalised(classifier, snapshot) -> None:
    result = classifier.classify(_row(dt="abc-1"), snapshot, {"ABC-1"})

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.DUPLICATE_EXTERNAL_ID

    result = classifier.classify(_row(dt=" Cañada  7 "), snapshot, frozenset({"canada 7"}))

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.DUPLICATE_EXTERNAL_ID


def test_external_id_index_compares_normalised_ids() -> None:
    index = ExternalIdIndex(["T-1", "  "])
    index.add("Ñandú 2")

    assert "t-1" in index
    assert " nandu   2" in index
    assert "T-3" not in index
    assert len(index) == 2


@pytest.mark.parametrize("missing", ["fecha", "origen", "destino"])
def test_every_required_field_is_enforced(classifier, snapshot, missing) -> None:
    result = classifier.classify(_row(**{missing: "  "}), snapshot)

    assert isinstance(result, Rejected)
    assert result.reason_code == ReasonCode.MALFORMED_DATA
    assert result.field in {"date", "origin", "destination"}
    assert result.message == f"{result.field} is required."


def test_batch_keeps_caller_supplied_indexes(classifier, snapshot) -> None:
    outcomes = classifier.classify_batch([_row(dt="A"), _row(dt="B")], snapshot, indexes=[4, 7])

    assert [outcome.original_index for outcome in outcomes] == [4, 7]
    assert [outcome.external_id for outcome in outcomes] == ["A", "B"]

    with pytest.raises(ValueError):
        classifier.classify_batch([_row()], snapshot, indexes=[1, 2])


def test_classification_is_pure(classifier, snapshot) -> None:
    row = _row(chofer="unknown")

    first = classifier.classify(row, snapshot)
    second = classifier.classify(row, snapshot)

    assert first == second


def test_jsonable_row_formats_dates_day_first() -> None:
    payload = jsonable_row({"fecha": date(2024, 3, 15), "paletas": Decimal("2.5"), "dt": "X"})

    assert payload == {"fecha": "15/03/2024", "paletas": "2.5", "dt": "X"}
