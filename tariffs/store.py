"""
tariffs/store.py

Time-versioned tariff storage per route.

Every version of a (route, type, calculation method) key is kept. Writes go
through the overlap gate in tariffs.conflicts, so for any key at most one
version covers a given day. Reads re-check that invariant rather than trusting
it: a double match raises InvariantViolation instead of picking one.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from tariffs.base import (
    CalculationMethod,
    CurrentTariff,
    TariffKey,
    TariffPatch,
    TariffRecord,
    TariffType,
    TariffWindow,
    ValidityGap,
    quantize_money,
)
from tariffs.conflicts import describe_conflict, find_gaps, find_overlap, validate_range
from tariffs.errors import InvalidTariffRange, InvariantViolation, TariffConflict, TariffNotFound

logger = logging.getLogger(__name__)


class TariffRepository(Protocol):
    """Persistence contract consumed by the store."""

    def list_for_route(self, route_id: uuid.UUID) -> list[TariffRecord]:
        ...

    def get(self, record_id: uuid.UUID) -> TariffRecord | None:
        ...

    def add(self, record: TariffRecord) -> uuid.UUID:
        ...

    def replace(self, record: TariffRecord) -> None:
        ...


@dataclass(frozen=True)
class BulkValidityConflict:
    route_id: uuid.UUID
    record_id: uuid.UUID
    conflicting_id: uuid.UUID
    description: str


@dataclass(frozen=True)
class BulkValidityResult:
    updated: list[uuid.UUID] = field(default_factory=list)
    conflicts: list[BulkValidityConflict] = field(default_factory=list)
    not_found: list[uuid.UUID] = field(default_factory=list)


class TariffWindowStore:
    """
    Insert, update and resolve tariff versions for routes.

    The repository is the only state; the store keeps no cache so two store
    instances over the same repository always agree.
    """

    def __init__(self, repository: TariffRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, record: TariffRecord) -> uuid.UUID:
        """
        Persist a new tariff version.

        Raises:
            InvalidTariffRange: malformed validity range or negative amounts.
            TariffConflict: the window overlaps another version of the same key.
        """
        record = self._normalized(record)
        self._gate(record, exclude_id=None)
        record_id = self._repository.add(record)
        logger.info(
            "Tariff inserted id=%s route_id=%s type=%s method=%s window=%s..%s",
            record_id,
            record.route_id,
            record.tariff_type.value,
            record.calculation_method.value,
            record.valid_from,
            record.valid_until,
        )
        return record_id

    def update(self, record_id: uuid.UUID, patch: TariffPatch) -> None:
        """
        Apply a partial update to an existing version, re-running the gate
        with the record itself excluded.
        """
        current = self._repository.get(record_id)
        if current is None:
            raise TariffNotFound(f"Tariff record not found: {record_id}")

        updated = self._normalized(patch.apply(current))
        self._gate(updated, exclude_id=record_id)
        self._repository.replace(updated)
        logger.info(
            "Tariff updated id=%s route_id=%s type=%s method=%s window=%s..%s",
            record_id,
            updated.route_id,
            updated.tariff_type.value,
            updated.calculation_method.value,
            updated.valid_from,
            updated.valid_until,
        )

    def bulk_update_validity(
        self,
        route_ids: Sequence[uuid.UUID],
        valid_from: date,
        valid_until: date | None,
        tariff_type: TariffType | None = None,
    ) -> BulkValidityResult:
        """
        Move every version on the given routes (optionally only one tariff
        type) to a new validity window.

        Each record is gated on its own against the route's state as it
        stands after the previous records were moved. A conflicting record is
        left untouched; the others are still updated.
        """
        validate_range(valid_from, valid_until)
        result = BulkValidityResult()

        for route_id in route_ids:
            records = self._repository.list_for_route(route_id)
            if not records:
                result.not_found.append(route_id)
                continue

            current_state = {record.id: record for record in records}
            route_updated = False
            for record in records:
                if tariff_type is not None and record.tariff_type != tariff_type:
                    continue

                moved = record.with_changes(valid_from=valid_from, valid_until=valid_until)
                conflicting = find_overlap(
                    moved.window,
                    current_state.values(),
                    exclude_id=record.id,
                    route_id=route_id,
                )
                if conflicting is not None:
                    description = describe_conflict(moved.window, conflicting)
                    logger.info(
                        "Bulk validity conflict route_id=%s record_id=%s conflicting_id=%s",
                        route_id,
                        record.id,
                        conflicting.id,
                    )
                    result.conflicts.append(
                        BulkValidityConflict(
                            route_id=route_id,
                            record_id=record.id,
                            conflicting_id=conflicting.id,
                            description=description,
                        )
                    )
                    continue

                self._repository.replace(moved)
                current_state[record.id] = moved
                route_updated = True

            if route_updated:
                result.updated.append(route_id)

        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check(
        self,
        route_id: uuid.UUID,
        candidate: TariffWindow,
        exclude_id: uuid.UUID | None = None,
    ) -> TariffRecord | None:
        """Form pre-check: the first conflicting version, if any."""
        validate_range(candidate.valid_from, candidate.valid_until)
        return find_overlap(
            candidate,
            self._repository.list_for_route(route_id),
            exclude_id,
            route_id=route_id,
        )

    def list_versions(self, route_id: uuid.UUID) -> list[TariffRecord]:
        return sorted(
            self._repository.list_for_route(route_id),
            key=lambda record: (
                record.tariff_type.value,
                record.calculation_method.value,
                record.valid_from,
            ),
        )

    def resolve_applicable(
        self,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        on_date: date,
    ) -> TariffRecord:
        """
        Return the single version of the key whose window contains on_date.

        Raises:
            TariffNotFound: no version covers the date.
            InvariantViolation: more than one version covers the date.
        """
        matches = [
            record
            for record in self._for_key(TariffKey(route_id, tariff_type, calculation_method))
            if record.covers(on_date)
        ]
        if not matches:
            raise TariffNotFound(
                f"No {tariff_type.value}/{calculation_method.value} tariff for route "
                f"{route_id} on {on_date.isoformat()}."
            )
        if len(matches) > 1:
            ids = ", ".join(sorted(str(record.id) for record in matches))
            logger.error(
                "Overlapping tariff versions route_id=%s type=%s method=%s date=%s ids=%s",
                route_id,
                tariff_type.value,
                calculation_method.value,
                on_date,
                ids,
            )
            raise InvariantViolation(
                f"{len(matches)} tariff versions cover {on_date.isoformat()} for route "
                f"{route_id} ({tariff_type.value}/{calculation_method.value}): {ids}"
            )
        return matches[0]

    def resolve_current(
        self,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        today: date,
    ) -> CurrentTariff:
        """
        Pick the version to show as "current" for display, never for billing.

        Among versions not yet expired on `today`, the latest valid_from wins.
        If every version has expired, the most recently expired one is
        returned and flagged stale.
        """
        versions = self._for_key(TariffKey(route_id, tariff_type, calculation_method))
        if not versions:
            raise TariffNotFound(
                f"Route {route_id} has no {tariff_type.value}/{calculation_method.value} tariff."
            )

        live = [
            record
            for record in versions
            if record.valid_until is None or record.valid_until >= today
        ]
        if live:
            return CurrentTariff(record=max(live, key=_start_then_id), stale=False)

        latest_expired = max(versions, key=lambda record: (record.valid_until, record.valid_from, str(record.id)))
        return CurrentTariff(record=latest_expired, stale=True)

    def highest_applicable_type(self, route_id: uuid.UUID, on_date: date) -> TariffType | None:
        """
        Choose a pricing class for a trip that did not state one: the type
        with the highest base value in force on the date, else the type of
        the most recent version, else None when the route has no tariffs.
        """
        records = self._repository.list_for_route(route_id)
        if not records:
            return None

        in_force = [record for record in records if record.covers(on_date)]
        if in_force:
            best = max(
                in_force,
                key=lambda record: (record.base_value, record.tariff_type == TariffType.TRMC),
            )
            return best.tariff_type

        return max(records, key=_start_then_id).tariff_type

    def gaps(self, route_id: uuid.UUID) -> list[ValidityGap]:
        return find_gaps(self._repository.list_for_route(route_id))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _for_key(self, key: TariffKey) -> list[TariffRecord]:
        return [
            record
            for record in self._repository.list_for_route(key.route_id)
            if record.key == key
        ]

    def _gate(self, record: TariffRecord, *, exclude_id: uuid.UUID | None) -> None:
        validate_range(record.valid_from, record.valid_until)
        conflicting = find_overlap(
            record.window,
            self._for_key(record.key),
            exclude_id=exclude_id,
            route_id=record.route_id,
        )
        if conflicting is not None:
            description = describe_conflict(record.window, conflicting)
            logger.info(
                "Tariff write rejected route_id=%s conflicting_id=%s: %s",
                record.route_id,
                conflicting.id,
                description,
            )
            raise TariffConflict(conflicting.id, description)

    @staticmethod
    def _normalized(record: TariffRecord) -> TariffRecord:
        base_value = quantize_money(record.base_value)
        surcharge_value = quantize_money(record.surcharge_value)
        if base_value < 0:
            raise InvalidTariffRange("base_value must be non-negative.", field="base_value")
        if surcharge_value < 0:
            raise InvalidTariffRange("surcharge_value must be non-negative.", field="surcharge_value")
        return record.with_changes(base_value=base_value, surcharge_value=surcharge_value)


def _start_then_id(record: TariffRecord) -> tuple:
    return (record.valid_from, str(record.id))
