# dx_core/report_templates/schema.py
"""
Typed view over a template's JSON structure.

Templates (and the snapshots frozen into reports) store their structure as
JSON columns. Nothing in the engine reads those columns directly: they are
parsed once into the frozen dataclasses below.

    schema = TemplateSchema.from_dict(report.template_snapshot)
    schema.get_field("HB").unit        -> "g/dL"
    schema.range_for("HB").select("f") -> RangeBand(min=12, max=16)
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from rest_framework.exceptions import ValidationError

TEMPLATE_CODE_RE = re.compile(r"^[A-Z0-9_]+$")

FIELD_TYPES = (
    "number",
    "text",
    "textarea",
    "select",
    "multiselect",
    "checkbox",
    "date",
    "time",
    "richtext",
    "array",
    "object",
)

# range variant keys; "all" wins over a sex-specific band
VARIANT_ALL = "all"
VARIANT_MALE = "male"
VARIANT_FEMALE = "female"
RANGE_VARIANTS = (VARIANT_ALL, VARIANT_MALE, VARIANT_FEMALE)


def _num_or_none(value: Any) -> float | int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class FieldDefinition:
    code: str
    label: str
    type: str = "text"
    unit: str = ""
    required: bool = False
    min_value: float | int | None = None
    max_value: float | int | None = None
    options: tuple = ()

    @property
    def is_numeric(self) -> bool:
        return self.type == "number"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldDefinition":
        validation = data.get("validation") or {}
        code = str(data.get("code") or "")
        return cls(
            code=code,
            label=str(data.get("label") or code),
            type=str(data.get("type") or "text"),
            unit=str(data.get("unit") or ""),
            required=bool(data.get("required", False)),
            min_value=_num_or_none(validation.get("min")),
            max_value=_num_or_none(validation.get("max")),
            options=tuple(data.get("options") or ()),
        )


@dataclass(frozen=True)
class CalculatedField:
    code: str
    formula: str
    label: str = ""
    unit: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CalculatedField":
        code = str(data.get("code") or "")
        return cls(
            code=code,
            formula=str(data.get("formula") or ""),
            label=str(data.get("label") or code),
            unit=str(data.get("unit") or ""),
        )


@dataclass(frozen=True)
class RangeBand:
    min: float | int | None
    max: float | int | None

    def text(self) -> str:
        if self.min is None or self.max is None:
            return ""
        return f"{self.min} - {self.max}"


@dataclass(frozen=True)
class ReferenceRange:
    """Normal band per demographic variant (all / male / female)."""
    variants: Mapping[str, RangeBand] = field(default_factory=dict)

    def select(self, sex: str | None) -> RangeBand | None:
        band = self.variants.get(VARIANT_ALL)
        if band is not None:
            return band
        key = (sex or "").strip().lower()
        if key in ("m", VARIANT_MALE):
            return self.variants.get(VARIANT_MALE)
        if key in ("f", VARIANT_FEMALE):
            return self.variants.get(VARIANT_FEMALE)
        return None

    def display_band(self) -> RangeBand | None:
        # printed range when the patient's sex is not at hand
        for key in RANGE_VARIANTS:
            if key in self.variants:
                return self.variants[key]
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReferenceRange":
        variants = {}
        for key, band in (data or {}).items():
            if not isinstance(band, Mapping):
                continue
            variants[str(key).lower()] = RangeBand(
                min=_num_or_none(band.get("min")),
                max=_num_or_none(band.get("max")),
            )
        return cls(variants=variants)


@dataclass(frozen=True)
class CriticalRule:
    critical_low: float | int | None = None
    critical_high: float | int | None = None
    requires_notification: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CriticalRule":
        return cls(
            critical_low=_num_or_none(data.get("criticalLow")),
            critical_high=_num_or_none(data.get("criticalHigh")),
            requires_notification=bool(data.get("requiresNotification", True)),
        )


@dataclass(frozen=True)
class TemplateSchema:
    template_code: str
    template_name: str
    template_type: str
    category: str = ""
    fields: tuple[FieldDefinition, ...] = ()
    calculated_fields: tuple[CalculatedField, ...] = ()
    reference_ranges: Mapping[str, ReferenceRange] = field(default_factory=dict)
    critical_rules: Mapping[str, CriticalRule] = field(default_factory=dict)
    specimen_config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def field_codes(self) -> list[str]:
        return [f.code for f in self.fields]

    def get_field(self, code: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.code == code:
                return f
        return None

    def range_for(self, code: str) -> ReferenceRange | None:
        return self.reference_ranges.get(code)

    def critical_rule_for(self, code: str) -> CriticalRule | None:
        return self.critical_rules.get(code)

    def unit_for(self, code: str) -> str:
        f = self.get_field(code)
        if f is not None:
            return f.unit
        for c in self.calculated_fields:
            if c.code == code:
                return c.unit
        return ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplateSchema":
        return cls(
            template_code=str(data.get("template_code") or ""),
            template_name=str(data.get("template_name") or ""),
            template_type=str(data.get("template_type") or "TABULAR"),
            category=str(data.get("category") or ""),
            fields=tuple(FieldDefinition.from_dict(f) for f in data.get("fields") or ()),
            calculated_fields=tuple(CalculatedField.from_dict(c) for c in data.get("calculated_fields") or ()),
            reference_ranges={
                str(code): ReferenceRange.from_dict(r)
                for code, r in (data.get("reference_ranges") or {}).items()
                if isinstance(r, Mapping)
            },
            critical_rules={
                str(code): CriticalRule.from_dict(r)
                for code, r in (data.get("critical_value_rules") or {}).items()
                if isinstance(r, Mapping)
            },
            specimen_config=dict(data.get("specimen_config") or {}),
        )

    @classmethod
    def from_template(cls, template) -> "TemplateSchema":
        return cls.from_dict(
            {
                "template_code": template.template_code,
                "template_name": template.template_name,
                "template_type": template.template_type,
                "category": template.category,
                "fields": template.fields,
                "calculated_fields": template.calculated_fields,
                "reference_ranges": template.reference_ranges,
                "critical_value_rules": template.critical_value_rules,
                "specimen_config": template.specimen_config,
            }
        )


# -------------------------------------------------------------------
# Structural validation (template authoring)
# -------------------------------------------------------------------

def validate_fields(fields: Any) -> None:
    if not isinstance(fields, list):
        raise ValidationError({"fields": ["Fields must be a list."]})

    seen: set[str] = set()
    errors: list[str] = []
    for idx, f in enumerate(fields):
        if not isinstance(f, Mapping):
            errors.append(f"Field at index {idx} must be an object.")
            continue
        code = f.get("code")
        if not code:
            errors.append(f"Field at index {idx} missing 'code'.")
            continue
        if not f.get("label"):
            errors.append(f"Field '{code}' missing 'label'.")
        ftype = f.get("type") or "text"
        if ftype not in FIELD_TYPES:
            errors.append(f"Field '{code}' has invalid type '{ftype}'.")
        if code in seen:
            errors.append(f"Duplicate field code '{code}'.")
        seen.add(code)

    if errors:
        raise ValidationError({"fields": errors})


def validate_calculated_fields(calculated: Any, *, field_codes: list[str]) -> None:
    if not isinstance(calculated, list):
        raise ValidationError({"calculated_fields": ["Calculated fields must be a list."]})

    errors: list[str] = []
    for idx, c in enumerate(calculated):
        if not isinstance(c, Mapping) or not c.get("code") or not c.get("formula"):
            errors.append(f"Calculated field at index {idx} needs 'code' and 'formula'.")
            continue
        if c["code"] in field_codes:
            errors.append(f"Calculated field '{c['code']}' clashes with an entry field code.")

    if errors:
        raise ValidationError({"calculated_fields": errors})


def validate_sections(sections: Any) -> None:
    if not isinstance(sections, list):
        raise ValidationError({"sections": ["Sections must be a list."]})

    errors: list[str] = []
    for idx, s in enumerate(sections):
        if not isinstance(s, Mapping) or not s.get("id"):
            errors.append(f"Section at index {idx} missing 'id'.")
            continue
        if not s.get("type"):
            errors.append(f"Section '{s['id']}' missing 'type'.")

    if errors:
        raise ValidationError({"sections": errors})


def validate_reference_ranges(ranges: Any) -> None:
    if not isinstance(ranges, Mapping):
        raise ValidationError({"reference_ranges": ["Reference ranges must be an object keyed by field code."]})

    errors: list[str] = []
    for code, variants in ranges.items():
        if not isinstance(variants, Mapping):
            errors.append(f"Range for '{code}' must be an object keyed by variant.")
            continue
        for variant in variants:
            if str(variant).lower() not in RANGE_VARIANTS:
                errors.append(f"Range for '{code}' has unknown variant '{variant}'.")

    if errors:
        raise ValidationError({"reference_ranges": errors})


def validate_structure(data: Mapping[str, Any]) -> None:
    """Shape checks shared by create / update / new-version."""
    if "fields" in data:
        validate_fields(data["fields"])
    if "calculated_fields" in data:
        codes = [f.get("code") for f in data.get("fields") or [] if isinstance(f, Mapping)]
        validate_calculated_fields(data["calculated_fields"], field_codes=codes)
    if "sections" in data:
        validate_sections(data["sections"])
    if "reference_ranges" in data:
        validate_reference_ranges(data["reference_ranges"])
    if "critical_value_rules" in data and not isinstance(data["critical_value_rules"], Mapping):
        raise ValidationError({"critical_value_rules": ["Critical value rules must be an object keyed by field code."]})
