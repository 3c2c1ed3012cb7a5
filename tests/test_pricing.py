"""
tests/test_pricing.py

Trip pricing per calculation method and the restricted formula evaluator.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

import pytest

from tariffs.base import CalculationMethod, TariffRecord, TariffType
from tariffs.errors import EvaluationError, PricingError
from tariffs.pricing import SafeFormulaEvaluator, adds_surcharge, price_trip, to_python_syntax


def _tariff(method: CalculationMethod, base: str = "10.00", surcharge: str = "5.00") -> TariffRecord:
    return TariffRecord(
        route_id=uuid.uuid4(),
        tariff_type=TariffType.TRMC,
        calculation_method=method,
        base_value=Decimal(base),
        surcharge_value=Decimal(surcharge),
        valid_from=date(2024, 1, 1),
    )


def test_per_distance_multiplies_by_route_distance_and_adds_surcharge() -> None:
    price = price_trip(_tariff(CalculationMethod.PER_DISTANCE), distance_km=Decimal("12.5"))

    assert price.base == Decimal("125.00")
    assert price.surcharge == Decimal("5.00")
    assert price.total == Decimal("130.00")


@pytest.mark.parametrize("distance", [None, Decimal("0")])
def test_per_distance_without_usable_distance_fails(distance) -> None:
    with pytest.raises(PricingError):
        price_trip(_tariff(CalculationMethod.PER_DISTANCE), distance_km=distance)


def test_per_unit_multiplies_by_units() -> None:
    price = price_trip(_tariff(CalculationMethod.PER_UNIT, base="2.50", surcharge="0"), units=Decimal("3"))

    assert price.total == Decimal("7.50")


def test_client_formula_result_is_the_total_and_the_added_surcharge_is_the_toll() -> None:
    price = price_trip(
        _tariff(CalculationMethod.PER_UNIT, base="100.00", surcharge="50.00"),
        units=Decimal("2"),
        formula="value * units + surcharge",
    )

    assert price.total == Decimal("250.00")
    assert price.base == Decimal("200.00")
    assert price.surcharge == Decimal("50.00")


def test_client_formula_with_minimum_charge() -> None:
    price = price_trip(
        _tariff(CalculationMethod.PER_UNIT, base="2.50", surcharge="1.00"),
        units=Decimal("3"),
        formula="max(value * units, 10) + surcharge",
    )

    assert price.base == Decimal("10.00")
    assert price.total == Decimal("11.00")


def test_surcharge_folded_into_the_formula_is_not_reported_as_toll() -> None:
    price = price_trip(
        _tariff(CalculationMethod.PER_UNIT, base="10.00", surcharge="4.00"),
        units=Decimal("3"),
        formula="(value + surcharge) * units",
    )

    assert price.total == Decimal("42.00")
    assert price.base == Decimal("42.00")
    assert price.surcharge == Decimal("0.00")


@pytest.mark.parametrize("method", [CalculationMethod.PER_DISTANCE, CalculationMethod.FIXED])
def test_client_formula_applies_whatever_the_calculation_method(method: CalculationMethod) -> None:
    price = price_trip(
        _tariff(method, base="10.00", surcharge="5.00"),
        units=Decimal("4"),
        formula="Valor * Palets + Peaje",
    )

    assert price.total == Decimal("45.00")
    assert price.base == Decimal("40.00")
    assert price.surcharge == Decimal("5.00")


def test_formula_can_use_route_distance() -> None:
    price = price_trip(
        _tariff(CalculationMethod.PER_DISTANCE, base="2.00", surcharge="0"),
        distance_km=Decimal("150"),
        formula="value * distance",
    )

    assert price.total == Decimal("300.00")


def test_formula_below_the_surcharge_is_rejected() -> None:
    with pytest.raises(PricingError):
        price_trip(_tariff(CalculationMethod.PER_UNIT), units=Decimal("1"), formula="0 - value + surcharge")


def test_formula_result_too_large_for_money_is_a_pricing_error() -> None:
    with pytest.raises(PricingError):
        price_trip(_tariff(CalculationMethod.PER_UNIT), units=Decimal("1E+9"), formula="units ** 10")


def test_fixed_ignores_distance_and_units() -> None:
    price = price_trip(_tariff(CalculationMethod.FIXED), distance_km=Decimal("900"), units=Decimal("40"))

    assert price.total == Decimal("15.00")


def test_negative_formula_result_is_rejected() -> None:
    with pytest.raises(PricingError):
        price_trip(_tariff(CalculationMethod.PER_UNIT), units=Decimal("1"), formula="0 - value")


@pytest.mark.parametrize(
    "expression",
    [
        "__import__('os').system('true')",
        "value.real",
        "units ** 100",
        "value / 0",
        "si(units > 1; value)",
        "units is value",
        "unknown * 2",
        "value *",
        "",
        "'text'",
    ],
)
def test_formula_evaluator_rejects_unsafe_or_invalid_expressions(expression: str) -> None:
    with pytest.raises(EvaluationError):
        SafeFormulaEvaluator().evaluate(expression, {"value": Decimal("2"), "units": Decimal("3")})


def test_formula_variables_are_case_insensitive() -> None:
    result = SafeFormulaEvaluator().evaluate("VALUE * Units - 1", {"value": Decimal("2"), "units": Decimal("3")})

    assert result == Decimal("5")


def test_decimal_overflow_is_an_evaluation_error() -> None:
    with pytest.raises(EvaluationError):
        SafeFormulaEvaluator().evaluate(
            "((((units ** 10) ** 10) ** 10) ** 10) ** 10",
            {"units": Decimal("1E+99")},
        )


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("SI(Palets >= 10; Valor * Palets; Valor * 10)", Decimal("120")),
        ("SI(Palets < 10; 1; 0)", Decimal("0")),
        ("si(palets = 12; 1; 0)", Decimal("1")),
        ("IF(units <> 12; 1; 0)", Decimal("0")),
        ("SI(units > 5 and value > 100; 1; 0)", Decimal("0")),
        ("SI(units > 20; 1; SI(units > 10; 2; 3))", Decimal("2")),
    ],
)
def test_spreadsheet_conditionals_and_comparisons(expression: str, expected: Decimal) -> None:
    result = SafeFormulaEvaluator().evaluate(expression, {"value": Decimal("10"), "units": Decimal("12")})

    assert result == expected


def test_conditional_only_evaluates_the_chosen_branch() -> None:
    result = SafeFormulaEvaluator().evaluate(
        "SI(units = 0; 0; value / units)",
        {"value": Decimal("10"), "units": Decimal("0")},
    )

    assert result == Decimal("0")


def test_rewrites_spreadsheet_syntax() -> None:
    assert to_python_syntax("SI(a >= 1; b; c)") == "SI(a >= 1, b, c)"
    assert to_python_syntax("if(a = 1; b <> c; d)") == "si(a == 1, b != c, d)"
    assert to_python_syntax("a == b") == "a == b"


@pytest.mark.parametrize(
    ("expression", "expected"),
    [
        ("value * units + surcharge", True),
        ("Peaje + Valor * Palets", True),
        ("value * units + surcharge + 1", True),
        ("(value + surcharge) * units", False),
        ("value * units - surcharge", False),
        ("value * units", False),
    ],
)
def test_detects_a_top_level_surcharge_term(expression: str, expected: bool) -> None:
    assert adds_surcharge(expression) is expected
