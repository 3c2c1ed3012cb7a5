"""
tariffs/base.py

Core tariff types shared by the conflict resolver, the window store and pricing.
A tariff is identified for versioning purposes by its composite key
(route_id, tariff type, calculation method); every historical version of that
key is kept as its own TariffRecord.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any


class TariffType(str, Enum):
    """Mutually exclusive pricing classes for the same route."""

    TRMC = "TRMC"  # contracted
    TRMI = "TRMI"  # incidental


class CalculationMethod(str, Enum):
    PER_DISTANCE = "per_distance"
    PER_UNIT = "per_unit"
    FIXED = "fixed"


_CENT = Decimal("0.01")


def quantize_money(value: Decimal | int | float | str) -> Decimal:
    """Round a monetary amount to two decimals, half-up."""
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TariffKey:
    """Composite key under which validity windows must never overlap."""

    route_id: uuid.UUID
    tariff_type: TariffType
    calculation_method: CalculationMethod


@dataclass(frozen=True)
class TariffWindow:
    """
    Candidate validity window, as submitted by the tariff form before a
    record exists.
    """

    tariff_type: TariffType
    calculation_method: CalculationMethod
    valid_from: date | None
    valid_until: date | None = None

    def key_for(self, route_id: uuid.UUID) -> TariffKey:
        return TariffKey(route_id, self.tariff_type, self.calculation_method)


@dataclass(frozen=True)
class TariffRecord:
    """One persisted tariff version for a route."""

    route_id: uuid.UUID
    tariff_type: TariffType
    calculation_method: CalculationMethod
    base_value: Decimal
    surcharge_value: Decimal
    valid_from: date
    valid_until: date | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @property
    def key(self) -> TariffKey:
        return TariffKey(self.route_id, self.tariff_type, self.calculation_method)

    @property
    def window(self) -> TariffWindow:
        return TariffWindow(
            tariff_type=self.tariff_type,
            calculation_method=self.calculation_method,
            valid_from=self.valid_from,
            valid_until=self.valid_until,
        )

    def covers(self, on_date: date) -> bool:
        if on_date < self.valid_from:
            return False
        return self.valid_until is None or on_date <= self.valid_until

    def with_changes(self, **changes: Any) -> TariffRecord:
        return replace(self, **changes)


@dataclass(frozen=True)
class TariffPatch:
    """
    Partial update for an existing record. Fields left as None are kept.
    `clear_valid_until` reopens a closed window (valid_until -> None).
    """

    tariff_type: TariffType | None = None
    calculation_method: CalculationMethod | None = None
    base_value: Decimal | None = None
    surcharge_value: Decimal | None = None
    valid_from: date | None = None
    valid_until: date | None = None
    clear_valid_until: bool = False

    def apply(self, record: TariffRecord) -> TariffRecord:
        changes: dict[str, Any] = {}
        for name in (
            "tariff_type",
            "calculation_method",
            "base_value",
            "surcharge_value",
            "valid_from",
            "valid_until",
        ):
            value = getattr(self, name)
            if value is not None:
                changes[name] = value
        if self.clear_valid_until:
            changes["valid_until"] = None
        return record.with_changes(**changes)


@dataclass(frozen=True)
class CurrentTariff:
    """Display-only answer to "which tariff is current"."""

    record: TariffRecord
    stale: bool


@dataclass(frozen=True)
class ValidityGap:
    """An uncovered date span between two consecutive windows of one key."""

    tariff_type: TariffType
    calculation_method: CalculationMethod
    gap_from: date
    gap_until: date
