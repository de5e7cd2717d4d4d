from decimal import Decimal

import pytest

from dx_core.report_templates import defaults
from dx_core.report_templates.schema import TemplateSchema
from dx_core.reports.evaluator import FormulaError, calculate, evaluate, parse_number, round2
from dx_core.reports.services import derive


def _vals(**kw):
    return {k: Decimal(str(v)) for k, v in kw.items()}


@pytest.mark.parametrize(
    "formula, expected",
    [
        ("1 + 2 * 3", Decimal("7")),
        ("(1 + 2) * 3", Decimal("9")),
        ("10 / 4", Decimal("2.5")),
        ("-A + 5", Decimal("2")),
        ("A - -A", Decimal("6")),
        ("A * (B - 1) / 2", Decimal("6")),
    ],
)
def test_arithmetic_and_precedence(formula, expected):
    assert evaluate(formula, _vals(A=3, B=5)) == expected


@pytest.mark.parametrize(
    "formula",
    [
        "__import__('os')",
        "A.real",
        "A ** 2",
        "abs(A)",
        "A +",
        "(A + 1",
        "A 1",
        "",
    ],
)
def test_anything_outside_the_grammar_is_rejected(formula):
    with pytest.raises(FormulaError):
        evaluate(formula, _vals(A=3))


def test_unknown_identifier_is_an_error():
    with pytest.raises(FormulaError):
        evaluate("A + MISSING", _vals(A=1))


def test_division_by_zero_raises_arithmetic_error():
    with pytest.raises(ArithmeticError):
        evaluate("A / B", _vals(A=1, B=0))


def test_round_half_up_to_two_places():
    assert round2(Decimal("2.345")) == 2.35
    assert round2(Decimal("2.344")) == 2.34
    assert round2(Decimal("-1.005")) == -1.01


@pytest.mark.parametrize(
    "raw, expected",
    [
        (12, Decimal("12")),
        (12.5, Decimal("12.5")),
        ("  7.25 ", Decimal("7.25")),
        ("", None),
        ("abc", None),
        (None, None),
        (True, None),
        ("NaN", None),
    ],
)
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def test_lipid_calculations_chain_in_declaration_order():
    schema = TemplateSchema.from_dict(defaults.BIOCHEMISTRY_DEFAULT)

    out = calculate(schema, {"TC": 200, "TG": 150, "HDL": 50})

    assert out == {"VLDL": 30.0, "LDL": 120.0, "TC_HDL_RATIO": 4.0}


def test_missing_input_yields_none_without_affecting_others():
    schema = TemplateSchema.from_dict(defaults.CBC_DEFAULT)

    out = calculate(schema, {"HB": 13.5, "HCT": 40, "RBC": None})

    assert out["MCV"] is None
    assert out["MCH"] is None
    assert out["MCHC"] == 33.75


def test_division_by_zero_yields_none():
    schema = TemplateSchema.from_dict(defaults.KFT_DEFAULT)

    out = calculate(schema, {"UREA": 30, "CREATININE": 0})

    assert out["BUN"] == 14.02
    assert out["BUN_CREATININE_RATIO"] is None


def test_string_inputs_are_parsed():
    schema = TemplateSchema.from_dict(defaults.CBC_DEFAULT)

    out = calculate(schema, {"HB": "15", "RBC": "5", "HCT": "45"})

    assert out == {"MCV": 90.0, "MCH": 30.0, "MCHC": 33.33}


@pytest.mark.parametrize(
    "template, results, sex",
    [
        (defaults.CBC_DEFAULT, {"HB": 7, "RBC": 4.1, "HCT": 30, "WBC": 52000, "PLT": 15000}, "female"),
        (defaults.KFT_DEFAULT, {"UREA": 30, "CREATININE": 0}, "male"),
        (defaults.CBC_DEFAULT, {"HB": 13.5, "HCT": 40, "RBC": None}, None),
    ],
)
def test_derive_is_deterministic(template, results, sex):
    schema = TemplateSchema.from_dict(template)

    first = derive(schema, results, sex)
    second = derive(schema, dict(results), sex)

    assert first == second
    assert list(first.calculated) == list(second.calculated)
    assert [i["field"] for i in first.interpretation] == [i["field"] for i in second.interpretation]


def test_derive_keeps_failed_formula_as_none():
    schema = TemplateSchema.from_dict(defaults.KFT_DEFAULT)

    derived = derive(schema, {"UREA": 30, "CREATININE": 0}, "male")

    assert derived.calculated["BUN_CREATININE_RATIO"] is None
    assert derived.calculated["BUN"] == 14.02
