import uuid

import pytest

from dx_core.audit.models import AuditEvent
from dx_core.audit.selectors import list_audit_events
from dx_core.audit.services import AuditService
from dx_core.reports.services import ReportService
from dx_core.tests.helpers import scoped

pytestmark = pytest.mark.django_db


def test_log_and_filter(hospital, other_hospital):
    entity = uuid.uuid4()
    AuditService.log(
        event_code="report.created",
        entity_type="DiagnosticReport",
        entity_id=entity,
        hospital_id=hospital.id,
        actor_user_id=7,
        metadata={"report_id": "RPT260314001"},
    )
    AuditService.log(
        event_code="report.created",
        entity_type="DiagnosticReport",
        entity_id=entity,
        hospital_id=other_hospital.id,
        actor_user_id=7,
    )

    events = list(list_audit_events(hospital_id=hospital.id, entity_id=entity))

    assert len(events) == 1
    assert events[0].metadata == {"report_id": "RPT260314001"}
    assert list_audit_events(hospital_id=hospital.id, actor_user_id=8).count() == 0


def test_audit_api_lists_report_events(api_client, hospital, patient, cbc_template, user):
    report = ReportService.create_report(
        hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id, actor_user_id=user.id
    )
    ReportService.update_results(hospital_id=hospital.id, report_id=report.id, results={"HB": 13}, actor_user_id=user.id)

    r = api_client.get(
        "/api/v1/audit/events/",
        {"entity_type": "DiagnosticReport", "entity_id": str(report.id)},
        **scoped(hospital),
    )

    assert r.status_code == 200
    assert {e["event_code"] for e in r.data} == {"report.created", "report.results_entered"}
    assert AuditEvent.objects.filter(entity_id=report.id).count() == 2


def test_audit_api_rejects_bad_entity_id(api_client, hospital):
    r = api_client.get("/api/v1/audit/events/", {"entity_id": "nope"}, **scoped(hospital))
    assert r.status_code == 400


def test_record_types_event_by_model_and_filters_by_family(hospital, patient, cbc_template, user):
    report = ReportService.create_report(
        hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id, actor_user_id=user.id
    )
    AuditService.record(report, event_code="export.requested", actor_user_id=user.id, fmt="pdf")

    exported = list_audit_events(hospital_id=hospital.id, event_prefix="export.").get()
    assert exported.entity_type == "DiagnosticReport"
    assert exported.entity_id == report.id
    assert exported.metadata == {"fmt": "pdf"}
    assert list_audit_events(hospital_id=hospital.id, event_prefix="report.").count() == 1


def test_audit_api_caps_limit(api_client, hospital):
    r = api_client.get("/api/v1/audit/events/", {"limit": 501}, **scoped(hospital))
    assert r.status_code == 400
