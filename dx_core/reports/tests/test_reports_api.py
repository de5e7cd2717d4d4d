import pytest

from dx_core.reports.models import DiagnosticReport
from dx_core.reports.services import ReportService
from dx_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db

BASE = "/api/v1/reports/"


def _create(api_client, hospital, patient, template, **extra):
    r = api_client.post(
        BASE,
        {"patient_id": str(patient.id), "template_id": str(template.id)},
        format="json",
        **scoped(hospital),
        **extra,
    )
    assert r.status_code == 201, r.data
    return r.data


def _post(api_client, hospital, rid, action, payload=None):
    return api_client.post(f"{BASE}{rid}/{action}/", payload or {}, format="json", **scoped(hospital))


def test_create_report(api_client, hospital, patient, cbc_template):
    data = _create(api_client, hospital, patient, cbc_template)

    assert data["status"] == "DRAFT"
    assert data["report_id"].startswith("RPT")
    assert data["patient_id"] == str(patient.id)
    assert data["template_version"] == 1


def test_create_from_order_item(api_client, hospital, order_item, system_templates):
    r = api_client.post(BASE, {"order_item_id": str(order_item.id)}, format="json", **scoped(hospital))

    assert r.status_code == 201, r.data
    assert r.data["test_code"] == "CBC"
    assert r.data["order_item_id"] == str(order_item.id)


def test_create_needs_patient_and_template(api_client, hospital, patient):
    r = api_client.post(BASE, {"patient_id": str(patient.id)}, format="json", **scoped(hospital))

    assert r.status_code == 400
    assert "template_id" in r.json()["error"]["details"]


def test_create_is_idempotent_with_key(api_client, hospital, patient, cbc_template):
    first = _create(api_client, hospital, patient, cbc_template, HTTP_IDEMPOTENCY_KEY="create-1")
    second = _create(api_client, hospital, patient, cbc_template, HTTP_IDEMPOTENCY_KEY="create-1")

    assert first["id"] == second["id"]
    assert DiagnosticReport.objects.filter(hospital_id=hospital.id).count() == 1


def test_enter_results_and_read_formatted(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]

    r = api_client.put(f"{BASE}{rid}/results/", {"results": {"HB": 7, "RBC": 4.1}}, format="json", **scoped(hospital))
    assert r.status_code == 200, r.data
    assert r.data["status"] == "ENTERED"
    assert r.data["has_critical_values"] is True

    got = api_client.get(f"{BASE}{rid}/", **scoped(hospital))
    assert got.status_code == 200
    formatted = got.data["formatted"]
    assert formatted["template_type"] == "TABULAR"
    assert formatted["interpretation_summary"]["overallStatus"] == "CRITICAL"
    assert formatted["formatted_results"][0]["parameter"] == "Hemoglobin"


def test_invalid_results_are_400_with_field_details(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]

    r = api_client.put(f"{BASE}{rid}/results/", {"results": {"HB": "abc"}}, format="json", **scoped(hospital))

    assert r.status_code == 400
    body = r.json()["error"]
    assert body["code"] == "validation_error"
    assert "HB" in body["details"]


def test_full_workflow_over_api(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]
    api_client.put(f"{BASE}{rid}/results/", {"results": {"HB": 13.4}}, format="json", **scoped(hospital))

    assert _post(api_client, hospital, rid, "qc", {"qc_status": "PASSED"}).data["status"] == "QC_CHECKED"
    assert _post(api_client, hospital, rid, "review", {"impressions": "Normal"}).data["status"] == "REVIEWED"

    approved = _post(api_client, hospital, rid, "approve", {"approver_designation": "Consultant"})
    assert approved.data["status"] == "APPROVED"
    assert approved.data["is_locked"] is True

    locked = api_client.put(f"{BASE}{rid}/results/", {"results": {"HB": 12}}, format="json", **scoped(hospital))
    assert locked.status_code == 423
    assert locked.json()["error"]["code"] == "locked"

    released = _post(api_client, hospital, rid, "release", {"release_mode": "EMAIL"})
    assert released.status_code == 200
    assert released.data["status"] == "RELEASED"

    amended = _post(api_client, hospital, rid, "amend", {"reason": "transcription fix", "new_values": {"HB": 13.1}})
    assert amended.status_code == 200, amended.data
    assert amended.data["status"] == "AMENDED"
    assert amended.data["amendment_count"] == 1


def test_out_of_order_transition_is_409(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]

    r = _post(api_client, hospital, rid, "approve")

    assert r.status_code == 409
    assert r.json()["error"]["code"] == "invalid_transition"


def test_amend_without_reason_is_400(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]

    r = _post(api_client, hospital, rid, "amend", {"reason": ""})

    assert r.status_code == 400
    assert "reason" in r.json()["error"]["details"]


def test_print_flag_counts_prints(api_client, hospital, patient, cbc_template):
    rid = _create(api_client, hospital, patient, cbc_template)["id"]

    api_client.get(f"{BASE}{rid}/", {"print": "1"}, **scoped(hospital))
    r = api_client.get(f"{BASE}{rid}/", {"print": "true"}, **scoped(hospital))

    assert r.data["print_count"] == 2


def test_unknown_report_is_404(api_client, hospital):
    r = api_client.get(f"{BASE}00000000-0000-0000-0000-000000000000/", **scoped(hospital))

    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


@pytest.mark.parametrize("bad_id", ["------------------------------------", "zzzzzzzz-zzzz-zzzz-zzzz-zzzzzzzzzzzz"])
def test_malformed_report_id_is_404(api_client, hospital, bad_id):
    r = api_client.get(f"{BASE}{bad_id}/", **scoped(hospital))

    assert r.status_code == 404


def test_uppercase_report_id_still_resolves(api_client, hospital, patient, cbc_template):
    data = _create(api_client, hospital, patient, cbc_template)

    r = api_client.get(f"{BASE}{str(data['id']).upper()}/", **scoped(hospital))

    assert r.status_code == 200
    assert r.data["id"] == data["id"]


def test_search_filters(api_client, hospital, patient, male_patient, cbc_template):
    critical = ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id)
    ReportService.update_results(hospital_id=hospital.id, report_id=critical.id, results={"HB": 7})
    ReportService.create_report(hospital_id=hospital.id, patient_id=male_patient.id, template_id=cbc_template.id)

    r = api_client.get(BASE, {"has_critical": "true"}, **scoped(hospital))
    assert r.status_code == 200
    assert [row["id"] for row in r.data["results"]] == [str(critical.id)]

    r = api_client.get(BASE, {"patient_id": str(male_patient.id)}, **scoped(hospital))
    assert r.data["count"] == 1
    assert r.data["results"][0]["patient_name"] == "Vikram Shah"

    r = api_client.get(BASE, {"status": "ENTERED"}, **scoped(hospital))
    assert r.data["count"] == 1

    r = api_client.get(BASE, {"category": "blood_test"}, **scoped(hospital))
    assert r.data["count"] == 2

    r = api_client.get(BASE, {"report_id": critical.report_id}, **scoped(hospital))
    assert r.data["count"] == 1


def test_statistics(api_client, hospital, patient, cbc_template):
    a = ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id)
    ReportService.update_results(hospital_id=hospital.id, report_id=a.id, results={"HB": 7})
    ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id)

    r = api_client.get(f"{BASE}statistics/", **scoped(hospital))

    assert r.status_code == 200
    assert r.data["overview"] == {"total": 2, "pending": 2, "completed": 0, "critical": 1}
    assert r.data["by_status"] == {"DRAFT": 1, "ENTERED": 1}
    assert r.data["by_type"] == {"TABULAR": 2}
    assert sum(d["count"] for d in r.data["daily_trend"]) == 2


def test_statistics_rejects_inverted_range(api_client, hospital):
    r = api_client.get(f"{BASE}statistics/", {"date_from": "2026-05-01", "date_to": "2026-04-01"}, **scoped(hospital))

    assert r.status_code == 400
