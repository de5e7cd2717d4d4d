# dx_core/reports/evaluator.py
"""
Restricted arithmetic for calculated fields.

Grammar (no names other than field codes, no calls, no attribute access):

    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | FIELD_CODE | "(" expr ")"

Arithmetic is done in Decimal and rounded half-up to two places.
"""
from __future__ import annotations

import logging
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from dx_core.report_templates.schema import TemplateSchema

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")

_TOKEN_RE = re.compile(r"\s*(?:(\d+(?:\.\d*)?|\.\d+)|([A-Za-z_][A-Za-z0-9_]*)|(\S))")

NUMBER = "NUMBER"
NAME = "NAME"
OP = "OP"
_OPERATORS = set("+-*/()")


class FormulaError(ValueError):
    pass


def parse_number(value: Any) -> Decimal | None:
    """Numeric view of an entered value; None for blanks, booleans and text."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            d = Decimal(raw)
        except InvalidOperation:
            return None
        return d if d.is_finite() else None
    return None


def tokenize(formula: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if m is None:
            raise FormulaError(f"Unexpected input at {pos}")
        number, name, other = m.groups()
        if number is not None:
            tokens.append((NUMBER, number))
        elif name is not None:
            tokens.append((NAME, name))
        elif other in _OPERATORS:
            tokens.append((OP, other))
        else:
            raise FormulaError(f"Unsupported character {other!r}")
        pos = m.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]], values: Mapping[str, Decimal]):
        self.tokens = tokens
        self.values = values
        self.pos = 0

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> tuple[str, str]:
        tok = self._peek()
        if tok is None:
            raise FormulaError("Unexpected end of formula")
        self.pos += 1
        return tok

    def parse(self) -> Decimal:
        result = self._expr()
        if self._peek() is not None:
            raise FormulaError(f"Trailing input {self._peek()[1]!r}")
        return result

    def _expr(self) -> Decimal:
        left = self._term()
        while self._peek() in ((OP, "+"), (OP, "-")):
            _, op = self._take()
            right = self._term()
            left = left + right if op == "+" else left - right
        return left

    def _term(self) -> Decimal:
        left = self._factor()
        while self._peek() in ((OP, "*"), (OP, "/")):
            _, op = self._take()
            right = self._factor()
            left = left * right if op == "*" else left / right
        return left

    def _factor(self) -> Decimal:
        kind, text = self._take()
        if kind == OP and text in "+-":
            value = self._factor()
            return -value if text == "-" else value
        if kind == NUMBER:
            return Decimal(text)
        if kind == NAME:
            if text not in self.values:
                raise FormulaError(f"No numeric value for {text}")
            return self.values[text]
        if (kind, text) == (OP, "("):
            value = self._expr()
            if self._take() != (OP, ")"):
                raise FormulaError("Missing closing parenthesis")
            return value
        raise FormulaError(f"Unexpected token {text!r}")


def evaluate(formula: str, values: Mapping[str, Decimal]) -> Decimal:
    """Evaluate one formula. Raises FormulaError / ArithmeticError on bad input."""
    tokens = tokenize(formula or "")
    if not tokens:
        raise FormulaError("Empty formula")
    return _Parser(tokens, values).parse()


def round2(value: Decimal) -> float:
    return float(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def calculate(schema: TemplateSchema, results: Mapping[str, Any]) -> dict[str, float | None]:
    """
    Evaluate every calculated field in declaration order.

    A later formula may use an earlier calculated code. A field whose formula
    cannot be evaluated comes back as None; the others are unaffected.
    """
    env: dict[str, Decimal] = {}
    for code, value in results.items():
        n = parse_number(value)
        if n is not None:
            env[code] = n

    calculated: dict[str, float | None] = {}
    for cf in schema.calculated_fields:
        try:
            value = evaluate(cf.formula, env)
            rounded = round2(value)
        except (FormulaError, ArithmeticError) as exc:
            logger.warning("Calculation of %s failed (%s): %s", cf.code, cf.formula, exc)
            calculated[cf.code] = None
            env.pop(cf.code, None)
            continue
        calculated[cf.code] = rounded
        env[cf.code] = Decimal(str(rounded))

    return calculated
