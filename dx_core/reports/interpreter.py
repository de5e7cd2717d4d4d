# dx_core/reports/interpreter.py
from __future__ import annotations

from typing import Any, Mapping

from dx_core.report_templates.schema import RangeBand, TemplateSchema
from dx_core.reports.evaluator import parse_number

LOW = "LOW"
NORMAL = "NORMAL"
HIGH = "HIGH"


def classify(value: float, band: RangeBand) -> str:
    """Boundaries are inclusive: min <= value <= max is NORMAL."""
    if band.min is not None and value < band.min:
        return LOW
    if band.max is not None and value > band.max:
        return HIGH
    return NORMAL


def _display_value(value: Any, number) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return float(number)


def interpret(schema: TemplateSchema, results: Mapping[str, Any], sex: str | None) -> list[dict]:
    """
    One entry per numeric value that has a declared reference range.

    The band is the "all" variant when present, otherwise the one for the
    patient's sex. No band, no entry: a missing range is never read as NORMAL.
    """
    codes = [f.code for f in schema.fields] + [c.code for c in schema.calculated_fields]

    out: list[dict] = []
    for code in codes:
        if code not in results:
            continue
        reference = schema.range_for(code)
        if reference is None:
            continue
        number = parse_number(results[code])
        if number is None:
            continue
        band = reference.select(sex)
        if band is None or (band.min is None and band.max is None):
            continue

        value = float(number)
        out.append(
            {
                "field": code,
                "value": _display_value(results[code], number),
                "range": {"min": band.min, "max": band.max},
                "interpretation": classify(value, band),
            }
        )
    return out
