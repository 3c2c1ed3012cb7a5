"""
Tariff repository: SQLAlchemy persistence for tariff versions.

Implements the TariffRepository protocol consumed by tariffs.store. Callers
own the transaction; nothing here commits.
"""

from __future__ import annotations

import uuid
from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.route import Route
from db.models.tariff_record import TariffRecordModel
from db.repositories.errors import TariffPersistenceError
from tariffs.base import CalculationMethod, TariffRecord, TariffType
from tariffs.errors import RouteNotFound, TariffNotFound


class TariffRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def lock_route(self, route_id: uuid.UUID) -> None:
        """
        Take a row lock on the route so concurrent tariff writes for it run
        their overlap check one after the other.
        """
        stmt = select(Route.id).where(Route.id == route_id).with_for_update()
        if self._session.execute(stmt).scalar_one_or_none() is None:
            raise RouteNotFound(f"Route not found: {route_id}")

    def route_distance(self, route_id: uuid.UUID) -> float | None:
        return self._session.scalar(select(Route.distance_km).where(Route.id == route_id))

    def list_for_route(self, route_id: uuid.UUID) -> list[TariffRecord]:
        stmt: Select[tuple[TariffRecordModel]] = (
            select(TariffRecordModel)
            .where(TariffRecordModel.route_id == route_id)
            .order_by(
                TariffRecordModel.tariff_type,
                TariffRecordModel.calculation_method,
                TariffRecordModel.valid_from,
            )
        )
        return [_to_record(row) for row in self._session.scalars(stmt).all()]

    def get(self, record_id: uuid.UUID) -> TariffRecord | None:
        row = self._session.get(TariffRecordModel, record_id)
        return _to_record(row) if row is not None else None

    def add(self, record: TariffRecord) -> uuid.UUID:
        row = TariffRecordModel(
            id=record.id,
            route_id=record.route_id,
            tariff_type=record.tariff_type.value,
            calculation_method=record.calculation_method.value,
            base_value=record.base_value,
            surcharge_value=record.surcharge_value,
            valid_from=record.valid_from,
            valid_until=record.valid_until,
        )
        self._session.add(row)
        try:
            self._session.flush()
        except SQLAlchemyError as exc:
            raise TariffPersistenceError(f"Failed to store tariff version {record.id}.") from exc
        return row.id

    def replace(self, record: TariffRecord) -> None:
        row = self._session.get(TariffRecordModel, record.id)
        if row is None:
            raise TariffNotFound(f"Tariff record not found: {record.id}")
        row.route_id = record.route_id
        row.tariff_type = record.tariff_type.value
        row.calculation_method = record.calculation_method.value
        row.base_value = record.base_value
        row.surcharge_value = record.surcharge_value
        row.valid_from = record.valid_from
        row.valid_until = record.valid_until
        try:
            self._session.flush()
        except SQLAlchemyError as exc:
            raise TariffPersistenceError(f"Failed to update tariff version {record.id}.") from exc


def _to_record(row: TariffRecordModel) -> TariffRecord:
    return TariffRecord(
        id=row.id,
        route_id=row.route_id,
        tariff_type=TariffType(row.tariff_type),
        calculation_method=CalculationMethod(row.calculation_method),
        base_value=row.base_value,
        surcharge_value=row.surcharge_value,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
    )
