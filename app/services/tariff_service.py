"""
app/services/tariff_service.py

Service layer for tariff version management.

Writes lock the route row first so two concurrent writes for the same route
run their overlap check one after the other, then commit. Any failure rolls
the transaction back; a conflict never leaves a partial write.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Protocol

from sqlalchemy.orm import Session

from db.repositories.tariff_repository import TariffRepository
from tariffs.base import (
    CalculationMethod,
    CurrentTariff,
    TariffPatch,
    TariffRecord,
    TariffType,
    TariffWindow,
    ValidityGap,
)
from tariffs.conflicts import describe_conflict
from tariffs.errors import RouteNotFound, TariffNotFound
from tariffs.pricing import FormulaEvaluator, SafeFormulaEvaluator, TripPrice, price_trip
from tariffs.store import BulkValidityResult, TariffWindowStore

logger = logging.getLogger(__name__)


class LockingTariffRepository(Protocol):
    def lock_route(self, route_id: uuid.UUID) -> None:
        ...

    def route_distance(self, route_id: uuid.UUID) -> float | None:
        ...

    def list_for_route(self, route_id: uuid.UUID) -> list[TariffRecord]:
        ...

    def get(self, record_id: uuid.UUID) -> TariffRecord | None:
        ...

    def add(self, record: TariffRecord) -> uuid.UUID:
        ...

    def replace(self, record: TariffRecord) -> None:
        ...


class TariffService:
    """
    Coordinates the tariff window store, route locking and transactions.
    """

    def __init__(
        self,
        *,
        repository_factory: Callable[[Session], LockingTariffRepository] = TariffRepository,
        evaluator: FormulaEvaluator | None = None,
    ) -> None:
        self._repository_factory = repository_factory
        self._evaluator = evaluator or SafeFormulaEvaluator()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_tariff(
        self,
        *,
        db: Session,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        base_value: Decimal,
        surcharge_value: Decimal,
        valid_from: date | None,
        valid_until: date | None,
    ) -> uuid.UUID:
        repository = self._repository_factory(db)
        try:
            repository.lock_route(route_id)
            record_id = TariffWindowStore(repository).insert(
                TariffRecord(
                    route_id=route_id,
                    tariff_type=tariff_type,
                    calculation_method=calculation_method,
                    base_value=base_value,
                    surcharge_value=surcharge_value,
                    valid_from=valid_from,  # type: ignore[arg-type]
                    valid_until=valid_until,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        return record_id

    def update_tariff(self, *, db: Session, record_id: uuid.UUID, patch: TariffPatch) -> None:
        repository = self._repository_factory(db)
        try:
            current = repository.get(record_id)
            if current is None:
                raise TariffNotFound(f"Tariff record not found: {record_id}")
            repository.lock_route(current.route_id)
            TariffWindowStore(repository).update(record_id, patch)
            db.commit()
        except Exception:
            db.rollback()
            raise

    def bulk_update_validity(
        self,
        *,
        db: Session,
        route_ids: Sequence[uuid.UUID],
        valid_from: date,
        valid_until: date | None,
        tariff_type: TariffType | None = None,
    ) -> BulkValidityResult:
        repository = self._repository_factory(db)
        ordered = sorted(set(route_ids), key=str)
        try:
            locked: list[uuid.UUID] = []
            missing: list[uuid.UUID] = []
            for route_id in ordered:
                try:
                    repository.lock_route(route_id)
                    locked.append(route_id)
                except RouteNotFound:
                    missing.append(route_id)
            result = TariffWindowStore(repository).bulk_update_validity(
                locked,
                valid_from,
                valid_until,
                tariff_type,
            )
            result.not_found.extend(missing)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            "Bulk validity update routes=%s updated=%s conflicts=%s not_found=%s",
            len(ordered),
            len(result.updated),
            len(result.conflicts),
            len(result.not_found),
        )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check(
        self,
        *,
        db: Session,
        route_id: uuid.UUID,
        candidate: TariffWindow,
        exclude_id: uuid.UUID | None = None,
    ) -> tuple[TariffRecord | None, str | None]:
        conflicting = self._store(db).check(route_id, candidate, exclude_id)
        if conflicting is None:
            return None, None
        return conflicting, describe_conflict(candidate, conflicting)

    def list_versions(self, *, db: Session, route_id: uuid.UUID) -> list[TariffRecord]:
        return self._store(db).list_versions(route_id)

    def resolve_applicable(
        self,
        *,
        db: Session,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        on_date: date,
    ) -> TariffRecord:
        return self._store(db).resolve_applicable(route_id, tariff_type, calculation_method, on_date)

    def resolve_current(
        self,
        *,
        db: Session,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        today: date,
    ) -> CurrentTariff:
        return self._store(db).resolve_current(route_id, tariff_type, calculation_method, today)

    def gaps(self, *, db: Session, route_id: uuid.UUID) -> list[ValidityGap]:
        return self._store(db).gaps(route_id)

    def quote(
        self,
        *,
        db: Session,
        route_id: uuid.UUID,
        tariff_type: TariffType,
        calculation_method: CalculationMethod,
        on_date: date,
        units: Decimal | None = None,
        formula: str | None = None,
    ) -> tuple[TariffRecord, TripPrice]:
        repository = self._repository_factory(db)
        record = TariffWindowStore(repository).resolve_applicable(
            route_id, tariff_type, calculation_method, on_date
        )
        distance = repository.route_distance(route_id)
        price = price_trip(
            record,
            distance_km=Decimal(str(distance)) if distance is not None else None,
            units=units,
            formula=formula,
            evaluator=self._evaluator,
        )
        return record, price

    def _store(self, db: Session) -> TariffWindowStore:
        return TariffWindowStore(self._repository_factory(db))


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_tariff_service() -> TariffService:
    """
    Build and cache the tariff service.
    """
    return TariffService()
