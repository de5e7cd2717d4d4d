# dx_core/report_templates/defaults.py
"""
Embedded system templates.

Seeded into the database by TemplateStore.seed_system_templates() and used as
the last step of template resolution: a category whose default has never been
seeded is materialised from here on demand.
"""
from __future__ import annotations

import copy
from typing import Any

COMMON_HEADER_CONFIG = {
    "showLogo": True,
    "showHospitalName": True,
    "showHospitalAddress": True,
    "showPatientInfo": True,
    "showDoctorInfo": True,
    "showSampleInfo": True,
    "showBarcodeId": True,
    "showReportDate": True,
}

COMMON_FOOTER_CONFIG = {
    "showSignature": True,
    "showQRCode": False,
    "showPageNumber": True,
    "showPrintedBy": True,
    "showPrintedAt": True,
    "disclaimer": (
        "This report is generated electronically. "
        "For any queries, please contact the laboratory."
    ),
}

COMMON_PRINT_CONFIG = {
    "pageSize": "A4",
    "orientation": "portrait",
    "margins": {"top": 20, "right": 15, "bottom": 20, "left": 15},
    "headerHeight": 80,
    "footerHeight": 60,
}

COMMON_STYLING = {
    "fontSize": 10,
    "fontFamily": "Arial, sans-serif",
    "headerFontSize": 14,
    "tableStyle": "bordered",
    "interpretationColors": {
        "NORMAL": "#4CAF50",
        "LOW": "#FF9800",
        "HIGH": "#FF9800",
        "CRITICAL": "#F44336",
    },
}

PATIENT_INFO_SECTION = {
    "id": "patient_info",
    "title": "Patient Information",
    "type": "info_block",
    "layout": "two_column",
    "order": 1,
}

SIGNATURE_SECTION = {
    "id": "signature",
    "title": "Authorized Signatory",
    "type": "signature_block",
    "order": 99,
}


def _num(code, label, unit="", *, required=False, vmin=None, vmax=None) -> dict:
    f: dict[str, Any] = {"code": code, "label": label, "type": "number", "unit": unit, "required": required}
    if vmin is not None or vmax is not None:
        f["validation"] = {"min": vmin, "max": vmax}
    return f


def _text(code, label, *, type="text", required=False, options=None) -> dict:
    f: dict[str, Any] = {"code": code, "label": label, "type": type, "unit": "", "required": required}
    if options:
        f["options"] = list(options)
    return f


def _template(
    *,
    code: str,
    name: str,
    category: str,
    template_type: str,
    fields: list,
    short_name: str = "",
    description: str = "",
    sub_category: str = "",
    test_code: str = "",
    calculated_fields: list | None = None,
    reference_ranges: dict | None = None,
    critical_value_rules: dict | None = None,
    sections: list | None = None,
    report_title: str = "LABORATORY REPORT",
    methodology: str = "",
    specimen_config: dict | None = None,
    is_default: bool = False,
) -> dict:
    footer = dict(COMMON_FOOTER_CONFIG)
    if methodology:
        footer["methodology"] = methodology

    return {
        "template_code": code,
        "template_name": name,
        "short_name": short_name,
        "description": description,
        "category": category,
        "sub_category": sub_category,
        "test_code": test_code,
        "template_type": template_type,
        "fields": fields,
        "calculated_fields": calculated_fields or [],
        "reference_ranges": reference_ranges or {},
        "critical_value_rules": critical_value_rules or {},
        "sections": sections or [PATIENT_INFO_SECTION, {"id": "results", "title": "Results", "type": "table", "order": 2}, SIGNATURE_SECTION],
        "header_config": {**COMMON_HEADER_CONFIG, "reportTitle": report_title},
        "footer_config": footer,
        "styling": dict(COMMON_STYLING),
        "print_config": dict(COMMON_PRINT_CONFIG),
        "specimen_config": specimen_config or {},
        "is_default": is_default,
    }


# -------------------------------------------------------------------
# Blood tests
# -------------------------------------------------------------------

BLOOD_TEST_DEFAULT = _template(
    code="BLOOD_TEST_DEFAULT",
    name="Blood Test Report - Standard",
    short_name="Blood Test",
    description="Generic tabular blood test result with one value and notes.",
    category="BLOOD_TEST",
    template_type="TABULAR",
    fields=[
        _num("RESULT_VALUE", "Result", required=True),
        _text("RESULT_UNIT", "Unit"),
        _text("NOTES", "Notes", type="textarea"),
    ],
    methodology="Tests performed using automated analyzers following standard protocols.",
    specimen_config={"type": "WHOLE_BLOOD"},
    is_default=True,
)

CBC_DEFAULT = _template(
    code="CBC_DEFAULT",
    name="Complete Blood Count (CBC)",
    short_name="CBC",
    description="Hematology panel with red cell indices.",
    category="BLOOD_TEST",
    sub_category="HEMATOLOGY",
    test_code="CBC",
    template_type="TABULAR",
    fields=[
        _num("HB", "Hemoglobin", "g/dL", required=True, vmin=0, vmax=30),
        _num("RBC", "RBC Count", "million/uL", vmin=0, vmax=10),
        _num("HCT", "Hematocrit (PCV)", "%", vmin=0, vmax=100),
        _num("WBC", "Total Leukocyte Count", "cells/uL", vmin=0, vmax=200000),
        _num("PLT", "Platelet Count", "cells/uL", vmin=0, vmax=2000000),
    ],
    calculated_fields=[
        {"code": "MCV", "label": "MCV", "formula": "HCT / RBC * 10", "unit": "fL"},
        {"code": "MCH", "label": "MCH", "formula": "HB / RBC * 10", "unit": "pg"},
        {"code": "MCHC", "label": "MCHC", "formula": "HB / HCT * 100", "unit": "g/dL"},
    ],
    reference_ranges={
        "HB": {"all": {"min": 12, "max": 16}},
        "RBC": {"male": {"min": 4.5, "max": 5.5}, "female": {"min": 4.0, "max": 5.0}},
        "HCT": {"male": {"min": 40, "max": 54}, "female": {"min": 36, "max": 48}},
        "WBC": {"all": {"min": 4000, "max": 11000}},
        "PLT": {"all": {"min": 150000, "max": 450000}},
        "MCV": {"all": {"min": 80, "max": 100}},
        "MCH": {"all": {"min": 27, "max": 32}},
        "MCHC": {"all": {"min": 32, "max": 36}},
    },
    critical_value_rules={
        "HB": {"criticalLow": 8, "criticalHigh": 20, "requiresNotification": True},
        "WBC": {"criticalLow": 2000, "criticalHigh": 30000, "requiresNotification": True},
        "PLT": {"criticalLow": 20000, "criticalHigh": 1000000, "requiresNotification": True},
    },
    report_title="HEMATOLOGY REPORT",
    methodology="Automated 5-part differential analyzer.",
    specimen_config={"type": "EDTA_BLOOD", "method": "Automated cell counter"},
)

# -------------------------------------------------------------------
# Biochemistry
# -------------------------------------------------------------------

BIOCHEMISTRY_DEFAULT = _template(
    code="BIOCHEMISTRY_DEFAULT",
    name="Lipid Profile",
    short_name="Lipid",
    description="Lipid panel with Friedewald LDL.",
    category="BIOCHEMISTRY",
    test_code="LIPID",
    template_type="TABULAR",
    fields=[
        _num("TC", "Total Cholesterol", "mg/dL", required=True, vmin=0, vmax=1000),
        _num("TG", "Triglycerides", "mg/dL", required=True, vmin=0, vmax=5000),
        _num("HDL", "HDL Cholesterol", "mg/dL", required=True, vmin=0, vmax=300),
    ],
    calculated_fields=[
        {"code": "VLDL", "label": "VLDL Cholesterol", "formula": "TG / 5", "unit": "mg/dL"},
        {"code": "LDL", "label": "LDL Cholesterol", "formula": "TC - HDL - VLDL", "unit": "mg/dL"},
        {"code": "TC_HDL_RATIO", "label": "TC/HDL Ratio", "formula": "TC / HDL", "unit": ""},
    ],
    reference_ranges={
        "TC": {"all": {"min": 0, "max": 200}},
        "TG": {"all": {"min": 0, "max": 150}},
        "HDL": {"male": {"min": 40, "max": 60}, "female": {"min": 50, "max": 60}},
        "LDL": {"all": {"min": 0, "max": 100}},
        "TC_HDL_RATIO": {"all": {"min": 0, "max": 5}},
    },
    critical_value_rules={
        "TG": {"criticalHigh": 1000, "requiresNotification": True},
    },
    report_title="BIOCHEMISTRY REPORT",
    methodology="Enzymatic colorimetric assay.",
    specimen_config={"type": "SERUM", "fasting": True},
    is_default=True,
)

KFT_DEFAULT = _template(
    code="KFT_DEFAULT",
    name="Kidney Function Test",
    short_name="KFT",
    category="BIOCHEMISTRY",
    test_code="KFT",
    template_type="TABULAR",
    fields=[
        _num("UREA", "Blood Urea", "mg/dL", required=True, vmin=0, vmax=500),
        _num("CREATININE", "Serum Creatinine", "mg/dL", required=True, vmin=0, vmax=30),
        _num("URIC_ACID", "Uric Acid", "mg/dL", vmin=0, vmax=20),
    ],
    calculated_fields=[
        {"code": "BUN", "label": "Blood Urea Nitrogen", "formula": "UREA / 2.14", "unit": "mg/dL"},
        {"code": "BUN_CREATININE_RATIO", "label": "BUN/Creatinine Ratio", "formula": "BUN / CREATININE", "unit": ""},
    ],
    reference_ranges={
        "UREA": {"all": {"min": 15, "max": 45}},
        "CREATININE": {"male": {"min": 0.7, "max": 1.3}, "female": {"min": 0.6, "max": 1.1}},
        "URIC_ACID": {"male": {"min": 3.5, "max": 7.2}, "female": {"min": 2.5, "max": 6.0}},
        "BUN": {"all": {"min": 7, "max": 21}},
    },
    critical_value_rules={
        "CREATININE": {"criticalHigh": 10.0, "requiresNotification": True},
    },
    report_title="BIOCHEMISTRY REPORT",
    methodology="Jaffe / enzymatic method on automated analyzer.",
    specimen_config={"type": "SERUM"},
)

# -------------------------------------------------------------------
# Urine
# -------------------------------------------------------------------

URINE_DEFAULT = _template(
    code="URINE_DEFAULT",
    name="Urine Routine Examination",
    short_name="Urine R/E",
    category="URINE",
    template_type="TABULAR",
    fields=[
        _text("COLOR", "Color", type="select", options=["PALE_YELLOW", "YELLOW", "AMBER", "RED", "BROWN"]),
        _text("APPEARANCE", "Appearance", type="select", options=["CLEAR", "SLIGHTLY_TURBID", "TURBID"]),
        _num("PH", "pH", vmin=0, vmax=14),
        _num("SPECIFIC_GRAVITY", "Specific Gravity", vmin=1.0, vmax=1.1),
        _text("PROTEIN", "Protein", type="select", options=["NIL", "TRACE", "1+", "2+", "3+"]),
        _text("GLUCOSE", "Glucose", type="select", options=["NIL", "TRACE", "1+", "2+", "3+"]),
        _num("PUS_CELLS", "Pus Cells", "/hpf", vmin=0),
        _num("RBC_URINE", "Red Blood Cells", "/hpf", vmin=0),
    ],
    reference_ranges={
        "PH": {"all": {"min": 4.5, "max": 8.0}},
        "SPECIFIC_GRAVITY": {"all": {"min": 1.005, "max": 1.030}},
        "PUS_CELLS": {"all": {"min": 0, "max": 5}},
        "RBC_URINE": {"all": {"min": 0, "max": 2}},
    },
    report_title="CLINICAL PATHOLOGY REPORT",
    specimen_config={"type": "MIDSTREAM_URINE", "method": "Dipstick and microscopy"},
    is_default=True,
)

# -------------------------------------------------------------------
# Serology (qualitative)
# -------------------------------------------------------------------

_REACTIVE = ["NON_REACTIVE", "REACTIVE", "EQUIVOCAL"]

SEROLOGY_DEFAULT = _template(
    code="SEROLOGY_DEFAULT",
    name="Serology Screening",
    short_name="Serology",
    category="SEROLOGY",
    template_type="QUALITATIVE",
    fields=[
        _text("HIV", "HIV I & II Antibodies", type="select", required=True, options=_REACTIVE),
        _text("HBSAG", "Hepatitis B Surface Antigen", type="select", options=_REACTIVE),
        _text("HCV", "Hepatitis C Antibodies", type="select", options=_REACTIVE),
        _text("REMARKS", "Remarks", type="textarea"),
    ],
    report_title="SEROLOGY REPORT",
    methodology="Immunochromatographic assay (rapid card test).",
    specimen_config={"type": "SERUM", "method": "Immunochromatography"},
    is_default=True,
)

# -------------------------------------------------------------------
# Imaging (narrative)
# -------------------------------------------------------------------

IMAGING_DEFAULT = _template(
    code="IMAGING_DEFAULT",
    name="Radiology Report",
    short_name="Radiology",
    category="IMAGING",
    template_type="NARRATIVE",
    fields=[
        _text("STUDY", "Study", required=True),
        _text("CLINICAL_HISTORY", "Clinical History", type="textarea"),
        _text("TECHNIQUE", "Technique", type="textarea"),
        _text("FINDINGS", "Findings", type="richtext", required=True),
        _text("IMPRESSION", "Impression", type="richtext", required=True),
        _text("RECOMMENDATIONS", "Recommendations", type="textarea"),
    ],
    sections=[
        PATIENT_INFO_SECTION,
        {"id": "findings", "title": "Findings", "type": "text_block", "order": 2},
        {"id": "impression", "title": "Impression", "type": "text_block", "order": 3},
        SIGNATURE_SECTION,
    ],
    report_title="RADIOLOGY REPORT",
    is_default=True,
)

# -------------------------------------------------------------------
# Microbiology (culture & sensitivity)
# -------------------------------------------------------------------

MICROBIOLOGY_DEFAULT = _template(
    code="MICROBIOLOGY_DEFAULT",
    name="Culture & Sensitivity",
    short_name="C/S",
    category="MICROBIOLOGY",
    template_type="CULTURE_SENSITIVITY",
    fields=[
        _text("SPECIMEN_TYPE", "Specimen", required=True),
        _text("GROWTH_STATUS", "Growth", type="select", required=True, options=["No Growth", "Growth Detected", "Contaminated"]),
        _text("ORGANISM_ISOLATED", "Organism Isolated"),
        _text("COLONY_COUNT", "Colony Count"),
        {
            "code": "ANTIBIOTIC_SENSITIVITY",
            "label": "Antibiotic Sensitivity",
            "type": "array",
            "unit": "",
            "required": False,
            "itemSchema": {"antibiotic": "text", "result": ["S", "I", "R"], "mic": "text"},
        },
    ],
    sections=[
        PATIENT_INFO_SECTION,
        {"id": "culture", "title": "Culture", "type": "info_block", "order": 2},
        {"id": "sensitivity", "title": "Antibiotic Sensitivity", "type": "table", "order": 3},
        SIGNATURE_SECTION,
    ],
    report_title="MICROBIOLOGY REPORT",
    methodology="Conventional culture; Kirby-Bauer disc diffusion.",
    specimen_config={"method": "Culture"},
    is_default=True,
)

# -------------------------------------------------------------------
# Pathology (hybrid)
# -------------------------------------------------------------------

PATHOLOGY_DEFAULT = _template(
    code="PATHOLOGY_DEFAULT",
    name="Histopathology Report",
    short_name="HPE",
    category="PATHOLOGY",
    template_type="HYBRID",
    fields=[
        _text("SPECIMEN", "Specimen", required=True),
        _text("GROSS_DESCRIPTION", "Gross Description", type="richtext"),
        _num("TUMOR_SIZE", "Tumor Size", "cm", vmin=0),
        _text("MICROSCOPIC_DESCRIPTION", "Microscopic Description", type="richtext"),
        _text("DIAGNOSIS", "Diagnosis", type="richtext", required=True),
    ],
    report_title="HISTOPATHOLOGY REPORT",
    specimen_config={"type": "TISSUE", "fixative": "10% formalin"},
    is_default=True,
)

# -------------------------------------------------------------------
# Cardiac (clinical note)
# -------------------------------------------------------------------

CARDIAC_DEFAULT = _template(
    code="CARDIAC_DEFAULT",
    name="ECG Report",
    short_name="ECG",
    category="CARDIAC",
    template_type="CLINICAL_NOTE",
    fields=[
        _num("HEART_RATE", "Heart Rate", "bpm", required=True, vmin=0, vmax=350),
        _text("RHYTHM", "Rhythm", type="select", options=["SINUS", "ATRIAL_FIBRILLATION", "OTHER"]),
        _num("PR_INTERVAL", "PR Interval", "ms", vmin=0),
        _num("QTC", "QTc", "ms", vmin=0),
        _text("FINDINGS", "Findings", type="textarea"),
        _text("IMPRESSION", "Impression", type="textarea", required=True),
    ],
    reference_ranges={
        "HEART_RATE": {"all": {"min": 60, "max": 100}},
        "PR_INTERVAL": {"all": {"min": 120, "max": 200}},
        "QTC": {"male": {"min": 350, "max": 450}, "female": {"min": 360, "max": 460}},
    },
    critical_value_rules={
        "HEART_RATE": {"criticalLow": 40, "criticalHigh": 150, "requiresNotification": True},
        "QTC": {"criticalHigh": 500, "requiresNotification": True},
    },
    report_title="CARDIOLOGY REPORT",
    is_default=True,
)


DEFAULT_TEMPLATES: list[dict] = [
    BLOOD_TEST_DEFAULT,
    CBC_DEFAULT,
    BIOCHEMISTRY_DEFAULT,
    KFT_DEFAULT,
    URINE_DEFAULT,
    SEROLOGY_DEFAULT,
    IMAGING_DEFAULT,
    MICROBIOLOGY_DEFAULT,
    PATHOLOGY_DEFAULT,
    CARDIAC_DEFAULT,
]


def get_default_template_by_code(template_code: str) -> dict | None:
    for t in DEFAULT_TEMPLATES:
        if t["template_code"] == template_code:
            return copy.deepcopy(t)
    return None


def get_default_template_for_category(category: str) -> dict | None:
    """`<CATEGORY>_DEFAULT` first, then any embedded default of that category."""
    found = get_default_template_by_code(f"{category}_DEFAULT")
    if found is not None and found["category"] == category:
        return found
    for t in DEFAULT_TEMPLATES:
        if t["category"] == category and t["is_default"]:
            return copy.deepcopy(t)
    return None


def known_categories() -> list[str]:
    return sorted({t["category"] for t in DEFAULT_TEMPLATES})
