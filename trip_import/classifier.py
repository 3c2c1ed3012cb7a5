"""
trip_import/classifier.py

Row classification for trip imports.

A row is Accepted (importable now), Rejected (cannot succeed in this session
whatever reference data is added) or Pending (only reference lookups failed,
so supplying the missing sites, personnel, vehicles or routes may fix it).

classify() is a pure function of (row, snapshot, seen external ids). Retry
passes call it again with the unchanged row and a freshly fetched snapshot.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from tariffs.base import TariffType
from trip_import.fields import REQUIRED_FIELDS, canonicalize_row
from trip_import.reasons import ReasonCode
from trip_import.snapshot import ReferenceSnapshot, normalize_key

DATE_FORMATS: tuple[str, ...] = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y-%m-%d",
)


@dataclass(frozen=True)
class NormalizedTrip:
    """A fully resolved trip row, ready to persist."""

    external_id: str
    trip_date: date
    origin_site_id: uuid.UUID
    destination_site_id: uuid.UUID
    route_id: uuid.UUID
    tariff_type: TariffType | None
    personnel_id: uuid.UUID | None
    vehicle_id: uuid.UUID | None
    units: Decimal | None
    distance_km: float | None = None


@dataclass(frozen=True)
class Accepted:
    trip: NormalizedTrip


@dataclass(frozen=True)
class Rejected:
    reason_code: ReasonCode
    message: str
    field: str | None = None


@dataclass(frozen=True)
class Pending:
    missing_reasons: tuple[ReasonCode, ...]
    message: str


ClassificationResult = Union[Accepted, Rejected, Pending]


class ExternalIdIndex:
    """
    External ids seen so far, compared by normalize_key() on both sides so
    " ABC-1" and "abc-1" are the same id wherever they come from.
    """

    def __init__(self, values: Iterable[str] = ()) -> None:
        self._keys: set[str] = set()
        for value in values:
            self.add(value)

    def add(self, value: str) -> None:
        key = normalize_key(value)
        if key:
            self._keys.add(key)

    def __contains__(self, value: object) -> bool:
        return normalize_key(value) in self._keys

    def __len__(self) -> int:
        return len(self._keys)


@dataclass(frozen=True)
class ClassifiedRow:
    """One classified input row, tagged with its position in the batch."""

    original_index: int
    external_id: str
    payload: dict[str, Any]
    result: ClassificationResult


class RowClassifier:
    """
    Validates scalar fields and resolves references for one trip row.
    """

    def __init__(
        self,
        *,
        today: date,
        max_future_days: int = 365,
        min_year: int = 2000,
    ) -> None:
        self._today = today
        self._earliest = date(min_year, 1, 1)
        self._latest = today + timedelta(days=max_future_days)

    def classify(
        self,
        row: Mapping[str, Any],
        snapshot: ReferenceSnapshot,
        seen_external_ids: ExternalIdIndex | Iterable[str] = (),
    ) -> ClassificationResult:
        fields = canonicalize_row(row)

        external_id = _clean(fields.get("external_id"))
        if not external_id:
            return Rejected(ReasonCode.MALFORMED_DATA, "external_id is required.", "external_id")
        seen = (
            seen_external_ids
            if isinstance(seen_external_ids, ExternalIdIndex)
            else ExternalIdIndex(seen_external_ids)
        )
        if external_id in seen:
            return Rejected(
                ReasonCode.DUPLICATE_EXTERNAL_ID,
                f"External id {external_id} was already imported.",
                "external_id",
            )

        for required in REQUIRED_FIELDS:
            if required == "external_id":
                continue
            if not _clean(fields.get(required)):
                return Rejected(ReasonCode.MALFORMED_DATA, f"{required} is required.", required)

        trip_date = self._parse_date(fields.get("date"))
        if trip_date is None:
            return Rejected(
                ReasonCode.MALFORMED_DATA,
                f"Invalid date {fields.get('date')!r}; expected day/month/year.",
                "date",
            )
        if trip_date < self._earliest or trip_date > self._latest:
            return Rejected(
                ReasonCode.MALFORMED_DATA,
                f"Date {trip_date.isoformat()} is outside the accepted range "
                f"{self._earliest.isoformat()}..{self._latest.isoformat()}.",
                "date",
            )

        units, units_error = _parse_units(fields.get("units"))
        if units_error:
            return Rejected(ReasonCode.MALFORMED_DATA, units_error, "units")

        tariff_type, type_error = _parse_tariff_type(fields.get("tariff_type"))
        if type_error:
            return Rejected(ReasonCode.MALFORMED_DATA, type_error, "tariff_type")

        return self._resolve_references(
            fields=fields,
            snapshot=snapshot,
            external_id=external_id,
            trip_date=trip_date,
            units=units,
            tariff_type=tariff_type,
        )

    def classify_batch(
        self,
        rows: Sequence[Mapping[str, Any]],
        snapshot: ReferenceSnapshot,
        prior_external_ids: Iterable[str] = (),
        indexes: Sequence[int] | None = None,
    ) -> list[ClassifiedRow]:
        """
        Classify rows in input order. External ids count as seen from their
        first occurrence in the batch, whatever that row's outcome.
        """
        seen = ExternalIdIndex(prior_external_ids)
        positions = list(indexes) if indexes is not None else list(range(len(rows)))
        if len(positions) != len(rows):
            raise ValueError("indexes must match rows one to one.")

        classified: list[ClassifiedRow] = []
        for original_index, row in zip(positions, rows):
            result = self.classify(row, snapshot, seen)
            external_id = _clean(canonicalize_row(row).get("external_id"))
            if external_id:
                seen.add(external_id)
            classified.append(
                ClassifiedRow(
                    original_index=original_index,
                    external_id=external_id,
                    payload=jsonable_row(row),
                    result=result,
                )
            )
        return classified

    def _resolve_references(
        self,
        *,
        fields: Mapping[str, Any],
        snapshot: ReferenceSnapshot,
        external_id: str,
        trip_date: date,
        units: Decimal | None,
        tariff_type: TariffType | None,
    ) -> ClassificationResult:
        missing: list[ReasonCode] = []
        notes: list[str] = []

        origin = snapshot.find_site(fields.get("origin"))
        destination = snapshot.find_site(fields.get("destination"))
        if origin is None:
            missing.append(ReasonCode.MISSING_SITE)
            notes.append(f"origin site {_clean(fields.get('origin'))!r} not found")
        if destination is None:
            if ReasonCode.MISSING_SITE not in missing:
                missing.append(ReasonCode.MISSING_SITE)
            notes.append(f"destination site {_clean(fields.get('destination'))!r} not found")

        personnel_id: uuid.UUID | None = None
        driver = _clean(fields.get("driver"))
        if driver:
            person = snapshot.find_personnel(driver)
            if person is None:
                missing.append(ReasonCode.MISSING_PERSONNEL)
                notes.append(f"driver {driver!r} not found")
            else:
                personnel_id = person.id

        vehicle_id: uuid.UUID | None = None
        plate = _clean(fields.get("vehicle"))
        if plate:
            vehicle = snapshot.find_vehicle(plate)
            if vehicle is None:
                missing.append(ReasonCode.MISSING_VEHICLE)
                notes.append(f"vehicle {plate!r} not found")
            else:
                vehicle_id = vehicle.id

        route = None
        if origin is not None and destination is not None:
            route = snapshot.find_route(origin.id, destination.id)
            if route is None:
                missing.append(ReasonCode.MISSING_ROUTE)
                notes.append(f"no route {origin.name} -> {destination.name}")
            elif tariff_type is not None and tariff_type not in route.tariff_types:
                missing.append(ReasonCode.MISSING_ROUTE)
                notes.append(
                    f"route {origin.name} -> {destination.name} has no {tariff_type.value} tariff"
                )

        if missing or origin is None or destination is None or route is None:
            return Pending(missing_reasons=tuple(missing), message="; ".join(notes))

        return Accepted(
            NormalizedTrip(
                external_id=external_id,
                trip_date=trip_date,
                origin_site_id=origin.id,
                destination_site_id=destination.id,
                route_id=route.id,
                tariff_type=tariff_type,
                personnel_id=personnel_id,
                vehicle_id=vehicle_id,
                units=units,
                distance_km=route.distance_km,
            )
        )

    @staticmethod
    def _parse_date(value: Any) -> date | None:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value

        raw = _clean(value)
        for fmt in DATE_FORMATS:
            try:
                return datetime.strptime(raw, fmt).date()
            except ValueError:
                continue
        return None


def jsonable_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of a raw row safe to store in a JSONB column."""

    payload: dict[str, Any] = {}
    for key, value in row.items():
        if value is None or isinstance(value, (str, int, float, bool)):
            payload[str(key)] = value
        elif isinstance(value, datetime):
            payload[str(key)] = value.strftime("%d/%m/%Y")
        elif isinstance(value, date):
            payload[str(key)] = value.strftime("%d/%m/%Y")
        else:
            payload[str(key)] = str(value)
    return payload


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_units(value: Any) -> tuple[Decimal | None, str | None]:
    raw = _clean(value)
    if not raw:
        return None, None
    try:
        units = Decimal(raw.replace(",", "."))
    except InvalidOperation:
        return None, f"units must be a number, got {raw!r}."
    if not units.is_finite() or units < 0:
        return None, f"units must be a non-negative number, got {raw!r}."
    return units, None


def _parse_tariff_type(value: Any) -> tuple[TariffType | None, str | None]:
    raw = _clean(value).upper()
    if not raw:
        return None, None
    try:
        return TariffType(raw), None
    except ValueError:
        allowed = ", ".join(item.value for item in TariffType)
        return None, f"Unsupported tariff_type {raw!r}. Allowed values: {allowed}."
