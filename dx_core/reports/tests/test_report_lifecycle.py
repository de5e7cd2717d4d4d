from datetime import date

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from dx_core.audit.models import AuditEvent
from dx_core.common.api.exceptions import InvalidTransitionError, LockedError, NotFoundError
from dx_core.report_templates.services import TemplateStore
from dx_core.reports.models import LockReason, ReportStatus
from dx_core.reports.services import ReportService, format_report_id

pytestmark = pytest.mark.django_db


@pytest.fixture
def report(hospital, patient, cbc_template, user):
    return ReportService.create_report(
        hospital_id=hospital.id,
        patient_id=patient.id,
        template_id=cbc_template.id,
        actor_user_id=user.id,
    )


def _enter(report, user, **results):
    return ReportService.update_results(
        hospital_id=report.hospital_id,
        report_id=report.id,
        results=results,
        actor_user_id=user.id,
    )


def _approve(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _enter(report, user, HB=13.5, RBC=4.5, HCT=40)
    ReportService.perform_qc_check(qc_status="PASSED", **kw)
    ReportService.perform_review(reviewer_designation="Pathologist", **kw)
    return ReportService.approve_report(approver_designation="Consultant Pathologist", digital_signature="sig:abc", **kw)


# -------------------------------------------------------------------
# create
# -------------------------------------------------------------------

def test_create_report_starts_in_draft_with_frozen_snapshot(report, cbc_template, user):
    assert report.status == ReportStatus.DRAFT
    assert report.template_snapshot["template_code"] == "CBC_DEFAULT"
    assert report.template_snapshot["fields"] == cbc_template.fields
    assert report.results == {"HB": None, "RBC": None, "HCT": None, "WBC": None, "PLT": None}
    assert report.test_code == "CBC"
    assert report.test_category == "BLOOD_TEST"
    assert report.report_type == "TABULAR"
    assert len(report.workflow_history) == 1
    assert report.workflow_history[0]["status"] == ReportStatus.DRAFT
    assert report.workflow_history[0]["by"] == user.id
    assert AuditEvent.objects.filter(entity_id=report.id, event_code="report.created").count() == 1


def test_report_ids_follow_daily_sequence(hospital, patient, cbc_template):
    first = ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id)
    second = ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=cbc_template.id)

    today = timezone.localdate()
    assert first.report_id == f"RPT{today:%y%m%d}001"
    assert second.report_id == f"RPT{today:%y%m%d}002"


def test_report_id_sequence_is_per_hospital(hospital, other_hospital):
    day = date(2026, 3, 14)

    assert ReportService.next_report_id(hospital_id=hospital.id, day=day) == "RPT260314001"
    assert ReportService.next_report_id(hospital_id=other_hospital.id, day=day) == "RPT260314001"
    assert ReportService.next_report_id(hospital_id=hospital.id, day=day) == "RPT260314002"


def test_format_report_id_pads_sequence():
    assert format_report_id(day=date(2026, 1, 5), seq=7, prefix="RPT") == "RPT260105007"
    assert format_report_id(day=date(2026, 1, 5), seq=1234, prefix="RPT") == "RPT2601051234"


def test_create_from_order_item_resolves_template(hospital, order_item, system_templates, user):
    report = ReportService.create_report(hospital_id=hospital.id, order_item_id=order_item.id, actor_user_id=user.id)

    assert report.template.template_code == "CBC_DEFAULT"
    assert report.patient_id == order_item.patient_id
    assert report.order_item_id == order_item.id
    assert report.test_name == "Complete Blood Count"


def test_create_rejects_patient_from_other_hospital(other_hospital, patient, cbc_template):
    with pytest.raises(NotFoundError):
        ReportService.create_report(hospital_id=other_hospital.id, patient_id=patient.id, template_id=cbc_template.id)


def test_create_rejects_inactive_template(hospital, patient, cbc_template, user):
    own = TemplateStore.clone_template(template_id=cbc_template.id, hospital_id=hospital.id, actor_user_id=user.id)
    TemplateStore.deactivate_template(template_id=own.id, hospital_id=hospital.id, actor_user_id=user.id)

    with pytest.raises(ValidationError):
        ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=own.id)


def test_create_requires_a_template_source(hospital, patient):
    with pytest.raises(ValidationError):
        ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id)


# -------------------------------------------------------------------
# result entry
# -------------------------------------------------------------------

def test_scenario_a_low_then_critical(report, user):
    report = _enter(report, user, HB=9)
    hb = next(r for r in report.auto_interpretation if r["field"] == "HB")
    assert hb["interpretation"] == "LOW"
    assert report.has_critical_values is False
    assert report.status == ReportStatus.ENTERED

    report = _enter(report, user, HB=7)
    assert report.has_critical_values is True
    assert report.critical_values == [
        {"field": "HB", "value": 7, "threshold": 8, "type": "LOW", "requiresNotification": True}
    ]


def test_calculated_fields_are_stored_apart_from_results(report, user):
    report = _enter(report, user, HB=15, RBC=5, HCT=45)

    assert report.calculated_results == {"MCV": 90.0, "MCH": 30.0, "MCHC": 33.33}
    assert set(report.results) == {"HB", "RBC", "HCT", "WBC", "PLT"}
    assert {"MCV", "MCH", "MCHC"} <= {r["field"] for r in report.auto_interpretation}


def test_partial_entries_merge_with_stored_results(report, user):
    _enter(report, user, HB=13, RBC=4.5)
    report = _enter(report, user, HCT=40)

    assert report.results["HB"] == 13
    assert report.results["RBC"] == 4.5
    assert report.results["HCT"] == 40


def test_numeric_strings_are_normalised(report, user):
    report = _enter(report, user, HB="13.5", WBC="8000")

    assert report.results["HB"] == 13.5
    assert report.results["WBC"] == 8000


@pytest.mark.parametrize(
    "results, key",
    [
        ({"HB": "high"}, "HB"),
        ({"HB": 31}, "HB"),
        ({"HB": -1}, "HB"),
        ({"HB": ""}, "HB"),
        ({"HB": 13, "GLUCOSE": 90}, "GLUCOSE"),
    ],
)
def test_invalid_results_are_rejected_and_nothing_changes(report, user, results, key):
    with pytest.raises(ValidationError) as exc:
        _enter(report, user, **results)

    assert key in exc.value.detail
    report.refresh_from_db()
    assert report.status == ReportStatus.DRAFT
    assert report.results["HB"] is None


def test_required_field_missing_from_stored_and_incoming_is_rejected(report, user):
    with pytest.raises(ValidationError) as exc:
        _enter(report, user, WBC=8000)
    assert "HB" in exc.value.detail


def test_results_must_be_an_object(report, user):
    with pytest.raises(ValidationError):
        ReportService.update_results(
            hospital_id=report.hospital_id, report_id=report.id, results=["HB", 13], actor_user_id=user.id
        )


def test_snapshot_not_live_template_drives_validation(hospital, patient, cbc_template, user):
    own = TemplateStore.clone_template(template_id=cbc_template.id, hospital_id=hospital.id, actor_user_id=user.id)
    report = ReportService.create_report(hospital_id=hospital.id, patient_id=patient.id, template_id=own.id)

    TemplateStore.update_entry_fields(
        template_id=own.id,
        hospital_id=hospital.id,
        fields=[{"code": "ESR", "label": "ESR", "type": "number"}],
        actor_user_id=user.id,
    )

    report = _enter(report, user, HB=12.5)
    assert report.results["HB"] == 12.5
    with pytest.raises(ValidationError):
        _enter(report, user, ESR=10)


def test_reports_are_scoped_to_hospital(report, other_hospital, user):
    with pytest.raises(NotFoundError):
        ReportService.update_results(
            hospital_id=other_hospital.id, report_id=report.id, results={"HB": 13}, actor_user_id=user.id
        )
    with pytest.raises(NotFoundError):
        ReportService.get_report(hospital_id=other_hospital.id, report_id=report.id)


@pytest.mark.parametrize("bad_id", ["not-a-report", "------------------------------------", None])
def test_malformed_report_id_is_not_found(hospital, user, bad_id):
    with pytest.raises(NotFoundError):
        ReportService.get_report(hospital_id=hospital.id, report_id=bad_id)
    with pytest.raises(NotFoundError):
        ReportService.update_results(hospital_id=hospital.id, report_id=bad_id, results={"HB": 13}, actor_user_id=user.id)


# -------------------------------------------------------------------
# workflow
# -------------------------------------------------------------------

def test_scenario_b_full_lifecycle(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    assert report.status == ReportStatus.DRAFT

    report = _enter(report, user, HB=13.5, RBC=4.5, HCT=40, WBC=7000, PLT=250000)
    assert report.status == ReportStatus.ENTERED
    assert report.entered_by_user_id == user.id

    report = ReportService.perform_qc_check(qc_status="PASSED", qc_notes="Controls in range", **kw)
    assert report.status == ReportStatus.QC_CHECKED

    report = ReportService.perform_review(impressions="Within normal limits", reviewer_designation="Pathologist", **kw)
    assert report.status == ReportStatus.REVIEWED

    report = ReportService.approve_report(approver_designation="Consultant", digital_signature="sig:xyz", **kw)
    assert report.status == ReportStatus.APPROVED
    assert report.is_locked is True
    assert report.lock_reason == LockReason.SIGNED_OFF
    assert report.signature_verified is True

    with pytest.raises(LockedError):
        _enter(report, user, HB=12)

    report = ReportService.release_report(release_mode="PORTAL", **kw)
    assert report.status == ReportStatus.RELEASED
    assert report.is_released is True
    assert report.visible_to_patient is True

    report = ReportService.amend_report(reason="transcription fix", new_values={"HB": 12.8}, **kw)
    assert report.status == ReportStatus.AMENDED
    assert report.amendment_count == 1
    assert len(report.amendments) == 1

    statuses = [h["status"] for h in report.workflow_history]
    assert statuses == ["DRAFT", "ENTERED", "QC_CHECKED", "REVIEWED", "APPROVED", "RELEASED", "AMENDED"]

    events = list(
        AuditEvent.objects.filter(entity_id=report.id).order_by("occurred_at", "created_at").values_list("event_code", flat=True)
    )
    assert set(events) == {
        "report.created",
        "report.results_entered",
        "report.qc_checked",
        "report.reviewed",
        "report.approved",
        "report.released",
        "report.amended",
    }
    assert len(events) == 7


def test_locked_update_leaves_results_untouched(report, user):
    report = _approve(report, user)

    with pytest.raises(LockedError):
        _enter(report, user, HB=7)

    report.refresh_from_db()
    assert report.results["HB"] == 13.5
    assert report.has_critical_values is False
    assert report.status == ReportStatus.APPROVED


def test_failed_qc_stays_entered_and_allows_reentry(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _enter(report, user, HB=13)

    report = ReportService.perform_qc_check(qc_status="FAILED", qc_notes="Clotted sample", **kw)
    assert report.status == ReportStatus.ENTERED
    assert report.qc_status == "FAILED"
    assert report.workflow_history[-1]["notes"] == "QC FAILED: Clotted sample"

    _enter(report, user, HB=13.2)
    report = ReportService.perform_qc_check(qc_status="PASSED", **kw)
    assert report.status == ReportStatus.QC_CHECKED


@pytest.mark.parametrize("reviewed", [False, True])
def test_reentry_after_qc_resets_qc_and_review(report, user, reviewed):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _enter(report, user, HB=13)
    ReportService.perform_qc_check(qc_status="PASSED", qc_notes="Controls in range", **kw)
    if reviewed:
        ReportService.perform_review(reviewer_designation="Pathologist", reviewer_notes="ok", **kw)

    report = _enter(report, user, HB=9.5)

    assert report.status == ReportStatus.ENTERED
    assert (report.qc_status, report.qc_notes, report.qc_checked_by_user_id, report.qc_checked_at) == ("", "", None, None)
    assert (report.reviewed_by_user_id, report.reviewed_at, report.reviewer_designation, report.reviewer_notes) == (
        None,
        None,
        "",
        "",
    )
    assert report.workflow_history[-1]["notes"] == "Results re-entered; QC and review reset"

    with pytest.raises(InvalidTransitionError):
        ReportService.perform_review(**kw)
    report = ReportService.perform_qc_check(qc_status="PASSED", **kw)
    assert report.status == ReportStatus.QC_CHECKED


@pytest.mark.parametrize(
    "operation, kwargs",
    [
        (ReportService.perform_qc_check, {"qc_status": "PASSED"}),
        (ReportService.perform_review, {}),
        (ReportService.approve_report, {}),
        (ReportService.release_report, {}),
        (ReportService.amend_report, {"reason": "typo"}),
    ],
)
def test_operations_out_of_order_are_invalid_transitions(report, user, operation, kwargs):
    with pytest.raises(InvalidTransitionError):
        operation(hospital_id=report.hospital_id, report_id=report.id, actor_user_id=user.id, **kwargs)

    report.refresh_from_db()
    assert report.status == ReportStatus.DRAFT
    assert len(report.workflow_history) == 1


def test_approve_requires_review(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _enter(report, user, HB=13)
    ReportService.perform_qc_check(qc_status="PASSED", **kw)

    with pytest.raises(InvalidTransitionError):
        ReportService.approve_report(**kw)


def test_bad_qc_status_and_release_mode_are_validation_errors(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    with pytest.raises(ValidationError):
        ReportService.perform_qc_check(qc_status="MAYBE", **kw)
    with pytest.raises(ValidationError):
        ReportService.release_report(release_mode="CARRIER_PIGEON", **kw)


# -------------------------------------------------------------------
# amendments
# -------------------------------------------------------------------

def test_amendment_records_stored_previous_values(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    report = _approve(report, user)

    report = ReportService.amend_report(reason="Wrong sample keyed", new_values={"HB": 7}, approved_by_user_id=99, **kw)

    amendment = report.amendments[0]
    assert amendment["reason"] == "Wrong sample keyed"
    assert amendment["previousValues"] == {"HB": 13.5}
    assert amendment["newValues"] == {"HB": 7}
    assert amendment["amendedBy"] == user.id
    assert amendment["approvedBy"] == 99
    assert amendment["amendmentId"] == f"AMD-{report.report_id}-01"

    assert report.results["HB"] == 7
    assert report.has_critical_values is True
    assert report.is_amended is True
    assert report.is_locked is True


def test_amendments_accumulate(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _approve(report, user)

    ReportService.amend_report(reason="first", new_values={"HB": 13.6}, **kw)
    report = ReportService.amend_report(reason="second", new_values={"WBC": 6500}, **kw)

    assert report.amendment_count == 2 == len(report.amendments)
    assert report.amendments[1]["previousValues"] == {"WBC": None}
    assert report.amendments[0]["newValues"] == {"HB": 13.6}
    assert [h["status"] for h in report.workflow_history][-2:] == ["AMENDED", "AMENDED"]


def test_amendment_recalculates_derived_values(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _approve(report, user)

    report = ReportService.amend_report(reason="RBC re-run", new_values={"RBC": 5}, **kw)

    assert report.calculated_results["MCV"] == 80.0
    assert report.calculated_results["MCH"] == 27.0


@pytest.mark.parametrize("reason", ["", "   "])
def test_amendment_needs_a_reason(report, user, reason):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _approve(report, user)

    with pytest.raises(ValidationError) as exc:
        ReportService.amend_report(reason=reason, new_values={"HB": 12}, **kw)
    assert "reason" in exc.value.detail


def test_amendment_rejects_unknown_fields(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id, "actor_user_id": user.id}
    _approve(report, user)

    with pytest.raises(ValidationError):
        ReportService.amend_report(reason="fix", new_values={"GLUCOSE": 90}, **kw)

    report.refresh_from_db()
    assert report.amendment_count == 0


# -------------------------------------------------------------------
# read tracking
# -------------------------------------------------------------------

def test_print_tracking_increments_counter(report, user):
    ReportService.get_report(hospital_id=report.hospital_id, report_id=report.id, track_print=True, actor_user_id=user.id)
    again = ReportService.get_report(
        hospital_id=report.hospital_id, report_id=report.id, track_print=True, actor_user_id=user.id
    )

    assert again.print_count == 2
    assert again.last_printed_by_user_id == user.id
    assert again.last_printed_at is not None


def test_patient_view_only_recorded_once_visible(report, user):
    kw = {"hospital_id": report.hospital_id, "report_id": report.id}

    assert ReportService.get_report(track_view=True, **kw).patient_viewed_at is None

    _approve(report, user)
    ReportService.release_report(actor_user_id=user.id, **kw)

    assert ReportService.get_report(track_view=True, **kw).patient_viewed_at is not None
