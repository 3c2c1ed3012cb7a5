"""
tariffs/pricing.py

Trip price computation once a tariff version has been resolved.

Client-specific formulas are evaluated through the FormulaEvaluator protocol.
SafeFormulaEvaluator is the default implementation: arithmetic and
comparisons over named numeric variables, the spreadsheet conditional
SI(condition; if_true; if_false) and a handful of whitelisted functions,
nothing else.
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from tariffs.base import CalculationMethod, TariffRecord, quantize_money
from tariffs.errors import EvaluationError, PricingError

logger = logging.getLogger(__name__)

_MAX_FORMULA_LENGTH = 500
_MAX_EXPONENT = 10

_TRUE = Decimal(1)
_FALSE = Decimal(0)

# Spreadsheet spelling -> Python spelling. Order matters: `<>` before `=`.
_SPREADSHEET_REWRITES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r";"), ","),
    (re.compile(r"<>"), "!="),
    (re.compile(r"(?<![<>!=])=(?!=)"), "=="),
    (re.compile(r"\bif\s*\(", re.IGNORECASE), "si("),
)

# Client sheets name the variables in Spanish.
VARIABLE_ALIASES: dict[str, str] = {
    "valor": "value",
    "palets": "units",
    "peaje": "surcharge",
    "distancia": "distance",
}

_SURCHARGE_NAMES = frozenset({"surcharge", "peaje"})


class FormulaEvaluator(Protocol):
    def evaluate(self, expression: str, variables: Mapping[str, Decimal]) -> Decimal:
        ...


_BINARY_OPERATORS: dict[type, Callable[[Decimal, Decimal], Decimal]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_COMPARISONS: dict[type, Callable[[Decimal, Decimal], bool]] = {
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
}


def _round(value: Decimal, digits: Decimal = Decimal(0)) -> Decimal:
    return round(value, int(digits))


_FUNCTIONS: dict[str, Callable[..., Decimal]] = {
    "min": min,
    "max": max,
    "abs": abs,
    "round": _round,
}


def to_python_syntax(expression: str) -> str:
    """
    Rewrite spreadsheet syntax into the Python expression grammar.

    >>> to_python_syntax("SI(Palets >= 10; Valor; Valor * 2)")
    'SI(Palets >= 10, Valor, Valor * 2)'
    >>> to_python_syntax("if(units = 0; 1; units)")
    'si(units == 0, 1, units)'
    """
    text = expression.strip()
    for pattern, replacement in _SPREADSHEET_REWRITES:
        text = pattern.sub(replacement, text)
    return text


def _parse(expression: str) -> ast.expr:
    if not expression or not expression.strip():
        raise EvaluationError("Formula is empty.")
    if len(expression) > _MAX_FORMULA_LENGTH:
        raise EvaluationError("Formula is too long.")
    try:
        return ast.parse(to_python_syntax(expression), mode="eval").body
    except SyntaxError as exc:
        raise EvaluationError(f"Formula syntax error: {exc.msg}") from exc


def adds_surcharge(expression: str) -> bool:
    """
    True when the formula adds the surcharge as a top-level term, as in
    `value * units + surcharge`. That term is the toll part of the total.
    """
    node = _parse(expression)
    while isinstance(node, ast.BinOp) and isinstance(node.op, ast.Add):
        for term in (node.right, node.left):
            if isinstance(term, ast.Name) and term.id.lower() in _SURCHARGE_NAMES:
                return True
        node = node.left
    return False


class SafeFormulaEvaluator:
    """
    Evaluate spreadsheet-like formulas such as `value * units + surcharge`,
    `max(value, units * 1.5)` or `SI(units > 10; value * units; value * 10)`.

    Variable names are matched case-insensitively and the Spanish names in
    VARIABLE_ALIASES resolve to their English counterparts. Comparisons
    yield 1 or 0.
    """

    def evaluate(self, expression: str, variables: Mapping[str, Decimal]) -> Decimal:
        tree = _parse(expression)

        scope = {name.lower(): Decimal(str(value)) for name, value in variables.items()}
        for alias, name in VARIABLE_ALIASES.items():
            if name in scope:
                scope.setdefault(alias, scope[name])
        try:
            return self._eval(tree, scope)
        except ArithmeticError as exc:
            raise EvaluationError(f"Formula could not be evaluated: {expression}") from exc

    def _eval(self, node: ast.AST, scope: Mapping[str, Decimal]) -> Decimal:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise EvaluationError(f"Unsupported literal: {node.value!r}")
            return Decimal(str(node.value))

        if isinstance(node, ast.Name):
            try:
                return scope[node.id.lower()]
            except KeyError:
                raise EvaluationError(f"Unknown variable: {node.id}") from None

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, scope)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return operand
            if isinstance(node.op, ast.Not):
                return _TRUE if operand == 0 else _FALSE
            raise EvaluationError(f"Unsupported operator: {type(node.op).__name__}")

        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, scope)
            right = self._eval(node.right, scope)
            if isinstance(node.op, ast.Pow):
                if right != right.to_integral_value() or abs(right) > _MAX_EXPONENT:
                    raise EvaluationError("Only small integer exponents are allowed.")
                return left ** int(right)
            handler = _BINARY_OPERATORS.get(type(node.op))
            if handler is None:
                raise EvaluationError(f"Unsupported operator: {type(node.op).__name__}")
            return handler(left, right)

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                compare = _COMPARISONS.get(type(op))
                if compare is None:
                    raise EvaluationError(f"Unsupported comparison: {type(op).__name__}")
                right = self._eval(comparator, scope)
                if not compare(left, right):
                    return _FALSE
                left = right
            return _TRUE

        if isinstance(node, ast.BoolOp):
            truthy = (self._eval(value, scope) != 0 for value in node.values)
            result = all(truthy) if isinstance(node.op, ast.And) else any(truthy)
            return _TRUE if result else _FALSE

        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name) and not node.keywords:
            name = node.func.id.lower()
            if name == "si":
                return self._conditional(node, scope)
            function = _FUNCTIONS.get(name)
            if function is None:
                raise EvaluationError(f"Unsupported function: {node.func.id}")
            arguments = [self._eval(argument, scope) for argument in node.args]
            if not arguments:
                raise EvaluationError(f"{node.func.id} needs at least one argument.")
            try:
                return Decimal(function(*arguments))
            except TypeError as exc:
                raise EvaluationError(f"Bad arguments for {node.func.id}.") from exc

        raise EvaluationError(f"Unsupported expression element: {type(node).__name__}")

    def _conditional(self, node: ast.Call, scope: Mapping[str, Decimal]) -> Decimal:
        # Only the chosen branch is evaluated, so SI(units = 0; 0; value / units) is safe.
        if len(node.args) != 3:
            raise EvaluationError("SI needs exactly three arguments: condition; if true; if false.")
        condition, if_true, if_false = node.args
        chosen = if_true if self._eval(condition, scope) != 0 else if_false
        return self._eval(chosen, scope)


@dataclass(frozen=True)
class TripPrice:
    base: Decimal
    surcharge: Decimal
    total: Decimal


def price_trip(
    record: TariffRecord,
    *,
    distance_km: Decimal | None = None,
    units: Decimal | None = None,
    formula: str | None = None,
    evaluator: FormulaEvaluator | None = None,
) -> TripPrice:
    """
    Price one trip with the resolved tariff version.

    Without a formula:
        per_distance: base_value x route distance (distance must be positive).
        per_unit:     base_value x units.
        fixed:        base_value.
        The surcharge (e.g. toll) is added on top of the base.

    With a client formula, whatever the method, the formula result is the
    total. Variables are `value`, `surcharge`, `units` and `distance`. The
    surcharge is reported as the toll part only when the formula adds it as
    a top-level term; the base is the rest of the total.
    """
    surcharge = quantize_money(record.surcharge_value)
    unit_count = Decimal(str(units)) if units is not None else Decimal(0)

    if formula:
        return _price_with_formula(
            record,
            formula,
            evaluator or SafeFormulaEvaluator(),
            variables={
                "value": record.base_value,
                "surcharge": surcharge,
                "units": unit_count,
                "distance": Decimal(str(distance_km)) if distance_km is not None else Decimal(0),
            },
        )

    method = record.calculation_method
    if method == CalculationMethod.PER_DISTANCE:
        if distance_km is None or distance_km <= 0:
            raise PricingError(f"Route {record.route_id} has no usable distance for per-distance pricing.")
        base = record.base_value * Decimal(str(distance_km))
    elif method == CalculationMethod.PER_UNIT:
        base = record.base_value * unit_count
    else:
        base = record.base_value

    base = _money(base)
    if base < 0:
        raise PricingError(f"Computed base price is negative ({base}).")

    return TripPrice(base=base, surcharge=surcharge, total=quantize_money(base + surcharge))


def _price_with_formula(
    record: TariffRecord,
    formula: str,
    evaluator: FormulaEvaluator,
    *,
    variables: Mapping[str, Decimal],
) -> TripPrice:
    total = _money(evaluator.evaluate(formula, variables))
    try:
        adds_toll = adds_surcharge(formula)
    except EvaluationError:
        # A custom evaluator may accept syntax the built-in grammar does not.
        adds_toll = False
    toll = variables["surcharge"] if adds_toll else Decimal("0.00")
    base = total - toll
    logger.debug(
        "Formula priced tariff=%s formula=%r total=%s toll=%s",
        record.id,
        formula,
        total,
        toll,
    )

    if total < 0 or base < 0:
        raise PricingError(f"Formula result {total} is negative or below the surcharge ({toll}).")
    return TripPrice(base=base, surcharge=toll, total=total)


def _money(value: Decimal) -> Decimal:
    try:
        return quantize_money(value)
    except ArithmeticError as exc:
        raise PricingError(f"Computed price {value!r} is out of range.") from exc
