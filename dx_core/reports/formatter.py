# dx_core/reports/formatter.py
"""
Display shape of a report, per template type.

Output is what the print/PDF renderer and the report viewer consume; nothing
here writes to the database.
"""
from __future__ import annotations

from typing import Any

from dx_core.report_templates.models import TemplateType
from dx_core.report_templates.schema import TemplateSchema
from dx_core.reports.interpreter import NORMAL

ABNORMAL_FLAGS = ("LOW", "HIGH")


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _interpretation_index(report) -> dict[str, dict]:
    return {row["field"]: row for row in report.auto_interpretation or [] if isinstance(row, dict) and "field" in row}


def _range_text(schema: TemplateSchema, code: str, index: dict[str, dict]) -> str:
    row = index.get(code)
    if row is not None:
        rng = row.get("range") or {}
        if rng.get("min") is not None and rng.get("max") is not None:
            return f"{rng['min']} - {rng['max']}"
    reference = schema.range_for(code)
    if reference is None:
        return ""
    band = reference.display_band()
    return band.text() if band is not None else ""


def format_tabular(report, schema: TemplateSchema) -> list[dict]:
    index = _interpretation_index(report)
    values = {**(report.results or {}), **(report.calculated_results or {})}

    rows: list[dict] = []
    entries = [(f.code, f.label, f.unit) for f in schema.fields]
    entries += [(c.code, c.label, c.unit) for c in schema.calculated_fields]
    for code, label, unit in entries:
        value = values.get(code)
        if _is_blank(value):
            continue
        rows.append(
            {
                "parameter": label,
                "value": value,
                "unit": unit or "",
                "referenceRange": _range_text(schema, code, index),
                "interpretation": (index.get(code) or {}).get("interpretation", ""),
            }
        )
    return rows


def format_qualitative(report, schema: TemplateSchema) -> list[dict]:
    method = schema.specimen_config.get("method") or "Standard"
    tests: list[dict] = []
    for f in schema.fields:
        value = (report.results or {}).get(f.code)
        if _is_blank(value):
            continue
        tests.append({"testName": f.label, "result": value, "method": method})
    return tests


def format_culture(report) -> dict:
    results = report.results or {}
    return {
        "growthStatus": results.get("GROWTH_STATUS") or "No Growth",
        "organismIsolated": results.get("ORGANISM_ISOLATED") or "",
        "colonyCount": results.get("COLONY_COUNT") or "",
        "antibioticSensitivity": results.get("ANTIBIOTIC_SENSITIVITY") or [],
    }


def format_results(report, schema: TemplateSchema) -> Any:
    ttype = schema.template_type
    if ttype == TemplateType.TABULAR:
        return format_tabular(report, schema)
    if ttype == TemplateType.QUALITATIVE:
        return format_qualitative(report, schema)
    if ttype == TemplateType.CULTURE_SENSITIVITY:
        return format_culture(report)
    # NARRATIVE, CLINICAL_NOTE, HYBRID: free text passes through
    return dict(report.results or {})


def interpretation_summary(report) -> dict:
    normal = 0
    abnormal = 0
    for row in report.auto_interpretation or []:
        flag = row.get("interpretation") if isinstance(row, dict) else None
        if flag == NORMAL:
            normal += 1
        elif flag in ABNORMAL_FLAGS:
            abnormal += 1

    critical = len(report.critical_values or []) if report.has_critical_values else 0

    if critical:
        overall = "CRITICAL"
    elif abnormal:
        overall = "ABNORMAL"
    else:
        overall = "NORMAL"

    return {
        "normalCount": normal,
        "abnormalCount": abnormal,
        "criticalCount": critical,
        "overallStatus": overall,
    }


def print_context(report) -> dict:
    snap = report.template_snapshot or {}
    return {
        "header_config": snap.get("header_config") or {},
        "footer_config": snap.get("footer_config") or {},
        "styling": snap.get("styling") or {},
        "print_config": snap.get("print_config") or {},
        "sections": snap.get("sections") or [],
    }


def format_report(report) -> dict:
    schema = TemplateSchema.from_dict(report.template_snapshot or {})
    return {
        "report_id": report.report_id,
        "template_code": schema.template_code,
        "template_name": schema.template_name,
        "template_type": schema.template_type,
        "template_version": report.template_version,
        "status": report.status,
        "formatted_results": format_results(report, schema),
        "interpretation_summary": interpretation_summary(report),
        "critical_values": list(report.critical_values or []),
        "print": print_context(report),
    }
