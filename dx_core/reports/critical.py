# dx_core/reports/critical.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from dx_core.report_templates.schema import TemplateSchema
from dx_core.reports.evaluator import parse_number


@dataclass(frozen=True)
class CriticalCheck:
    has_critical: bool
    critical_values: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"hasCritical": self.has_critical, "criticalValues": list(self.critical_values)}


def _plain(value: Any, number) -> Any:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return float(number)


def detect(schema: TemplateSchema, results: Mapping[str, Any]) -> CriticalCheck:
    """Pure: compares values against criticalLow / criticalHigh. No side effects."""
    codes = [f.code for f in schema.fields] + [c.code for c in schema.calculated_fields]

    breaches: list[dict] = []
    for code in codes:
        rule = schema.critical_rule_for(code)
        if rule is None or code not in results:
            continue
        number = parse_number(results[code])
        if number is None:
            continue

        value = float(number)
        if rule.critical_low is not None and value < rule.critical_low:
            breaches.append(
                {
                    "field": code,
                    "value": _plain(results[code], number),
                    "threshold": rule.critical_low,
                    "type": "LOW",
                    "requiresNotification": rule.requires_notification,
                }
            )
        elif rule.critical_high is not None and value > rule.critical_high:
            breaches.append(
                {
                    "field": code,
                    "value": _plain(results[code], number),
                    "threshold": rule.critical_high,
                    "type": "HIGH",
                    "requiresNotification": rule.requires_notification,
                }
            )

    return CriticalCheck(has_critical=bool(breaches), critical_values=breaches)
