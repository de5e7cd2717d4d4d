import pytest

from dx_core.report_templates import defaults
from dx_core.report_templates.schema import RangeBand, TemplateSchema
from dx_core.reports.critical import detect
from dx_core.reports.interpreter import HIGH, LOW, NORMAL, classify, interpret

CBC = TemplateSchema.from_dict(defaults.CBC_DEFAULT)


@pytest.mark.parametrize(
    "value, expected",
    [(11.99, LOW), (12, NORMAL), (14, NORMAL), (16, NORMAL), (16.01, HIGH)],
)
def test_boundaries_are_inclusive(value, expected):
    assert classify(value, RangeBand(min=12, max=16)) == expected


def test_all_variant_applies_regardless_of_sex():
    for sex in ("male", "female", "", None):
        rows = interpret(CBC, {"HB": 13}, sex)
        assert rows == [{"field": "HB", "value": 13, "range": {"min": 12, "max": 16}, "interpretation": NORMAL}]


def test_sex_specific_variant():
    female = interpret(CBC, {"HCT": 38}, "female")
    male = interpret(CBC, {"HCT": 38}, "male")

    assert female[0]["interpretation"] == NORMAL
    assert female[0]["range"] == {"min": 36, "max": 48}
    assert male[0]["interpretation"] == LOW
    assert male[0]["range"] == {"min": 40, "max": 54}


def test_no_variant_for_unknown_sex_means_no_entry():
    assert interpret(CBC, {"HCT": 38}, None) == []
    assert interpret(CBC, {"HCT": 38}, "other") == []


def test_fields_without_range_or_value_are_omitted():
    schema = TemplateSchema.from_dict(defaults.BLOOD_TEST_DEFAULT)

    assert interpret(schema, {"RESULT_VALUE": 5, "NOTES": "ok"}, "female") == []
    assert interpret(CBC, {"HB": None, "WBC": ""}, "female") == []


def test_calculated_values_are_interpreted_after_entry_fields():
    rows = interpret(CBC, {"HB": 13, "MCV": 75.0}, "female")

    assert [r["field"] for r in rows] == ["HB", "MCV"]
    assert rows[1]["interpretation"] == LOW


def test_scenario_hb_nine_is_low_but_not_critical():
    rows = interpret(CBC, {"HB": 9}, "female")
    check = detect(CBC, {"HB": 9})

    assert rows[0]["interpretation"] == LOW
    assert check.has_critical is False
    assert check.critical_values == []


def test_scenario_hb_seven_is_critical_low():
    check = detect(CBC, {"HB": 7})

    assert check.has_critical is True
    assert check.critical_values == [
        {"field": "HB", "value": 7, "threshold": 8, "type": "LOW", "requiresNotification": True}
    ]
    assert check.as_dict()["hasCritical"] is True


def test_critical_high_and_multiple_breaches():
    check = detect(CBC, {"HB": 21, "WBC": 1500, "PLT": 200000})

    assert [(c["field"], c["type"], c["threshold"]) for c in check.critical_values] == [
        ("HB", "HIGH", 20),
        ("WBC", "LOW", 2000),
    ]


def test_threshold_equal_to_limit_is_not_critical():
    assert detect(CBC, {"HB": 8}).has_critical is False
    assert detect(CBC, {"HB": 20}).has_critical is False


def test_zero_threshold_is_honoured():
    schema = TemplateSchema.from_dict(
        {
            "template_code": "BALANCE",
            "template_type": "TABULAR",
            "fields": [{"code": "NET", "label": "Net", "type": "number"}],
            "critical_value_rules": {"NET": {"criticalLow": 0, "requiresNotification": False}},
        }
    )

    check = detect(schema, {"NET": -1})

    assert check.has_critical is True
    assert check.critical_values[0]["threshold"] == 0
    assert check.critical_values[0]["requiresNotification"] is False
    assert detect(schema, {"NET": 0}).has_critical is False


def test_non_numeric_values_are_ignored_by_detection():
    assert detect(CBC, {"HB": "pending"}).has_critical is False
