# dx_core/reports/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from dx_core.audit.services import AuditService
from dx_core.common.api.exceptions import InvalidTransitionError, LockedError, NotFoundError
from dx_core.common.api.lookups import uuid_or_not_found
from dx_core.common.sequences import next_daily_value
from dx_core.orders.selectors import get_order_item
from dx_core.patients.selectors import get_patient
from dx_core.report_templates.schema import FieldDefinition, TemplateSchema
from dx_core.report_templates.services import TemplateStore, template_snapshot
from dx_core.reports import critical, evaluator, interpreter
from dx_core.reports.models import (
    FINALIZED_STATUSES,
    DiagnosticReport,
    LockReason,
    QCStatus,
    ReleaseMode,
    ReportStatus,
)
from dx_core.reports.notifications import dispatch_critical_notification, dispatch_report_ready

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Pure pipeline pieces
# -------------------------------------------------------------------

@dataclass(frozen=True)
class Derived:
    calculated: dict
    interpretation: list
    critical: critical.CriticalCheck


def derive(schema: TemplateSchema, results: Mapping[str, Any], sex: str | None) -> Derived:
    """calculate -> interpret -> detect, over entered + calculated values."""
    calculated = evaluator.calculate(schema, results)
    merged = {**results, **{k: v for k, v in calculated.items() if v is not None}}
    return Derived(
        calculated=calculated,
        interpretation=interpreter.interpret(schema, merged, sex),
        critical=critical.detect(schema, merged),
    )


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def _normalise_number(value: Any, number: Decimal) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    if number == number.to_integral_value() and "." not in str(value):
        return int(number)
    return float(number)


def _check_value(f: FieldDefinition, value: Any) -> Any:
    if _is_blank(value):
        if f.required:
            raise ValidationError({f.code: [f"{f.label} is required."]})
        return None

    if not f.is_numeric:
        return value

    number = evaluator.parse_number(value)
    if number is None:
        raise ValidationError({f.code: [f"{f.label} must be a number."]})
    if f.min_value is not None and number < Decimal(str(f.min_value)):
        raise ValidationError({f.code: [f"{f.label} must be at least {f.min_value}."]})
    if f.max_value is not None and number > Decimal(str(f.max_value)):
        raise ValidationError({f.code: [f"{f.label} must not exceed {f.max_value}."]})
    return _normalise_number(value, number)


def validate_results(schema: TemplateSchema, incoming: Any, *, existing: Mapping[str, Any] | None = None) -> dict:
    """
    Merge `incoming` over `existing` and validate every field of the schema.

    Keys outside the schema's field codes are rejected, so results never
    grow keys the snapshot does not declare. Fails on the first bad field.
    """
    if not isinstance(incoming, Mapping):
        raise ValidationError({"results": ["Results must be an object keyed by field code."]})

    codes = schema.field_codes
    unknown = sorted(k for k in incoming if k not in codes)
    if unknown:
        raise ValidationError({k: ["Unknown field for this template."] for k in unknown})

    existing = existing or {}
    merged = {code: existing.get(code) for code in codes}
    merged.update(incoming)

    return {f.code: _check_value(f, merged.get(f.code)) for f in schema.fields}


def format_report_id(*, day: date, seq: int, prefix: str | None = None) -> str:
    prefix = prefix if prefix is not None else getattr(settings, "DX_REPORT_ID_PREFIX", "RPT")
    return f"{prefix}{day:%y%m%d}{seq:03d}"


# -------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------

class ReportService:
    """
    Write model for diagnostic reports.

    DRAFT -> ENTERED -> QC_CHECKED -> REVIEWED -> APPROVED -> RELEASED
    APPROVED / RELEASED / AMENDED -> AMENDED

    Every transition locks the report row, appends one workflow_history entry
    and writes one audit event.
    """

    # ----------------------------
    # internals
    # ----------------------------
    @staticmethod
    def _locked(*, hospital_id: UUID, report_id: UUID) -> DiagnosticReport:
        report = (
            DiagnosticReport.objects.select_for_update()
            .filter(id=uuid_or_not_found(report_id, "Report"), hospital_id=hospital_id)
            .first()
        )
        if report is None:
            raise NotFoundError("Report")
        return report

    @staticmethod
    def _clear_signoffs(report: DiagnosticReport) -> None:
        """QC and review vouch for specific values; new values need both again."""
        report.qc_status = ""
        report.qc_notes = ""
        report.qc_checked_by_user_id = None
        report.qc_checked_at = None
        report.reviewed_by_user_id = None
        report.reviewed_at = None
        report.reviewer_designation = ""
        report.reviewer_notes = ""

    @staticmethod
    def _require_status(report: DiagnosticReport, allowed: Iterable[str], operation: str) -> None:
        allowed = tuple(allowed)
        if report.status not in allowed:
            raise InvalidTransitionError(
                f"Cannot {operation} a report in status {report.status}; "
                f"expected {' or '.join(allowed)}."
            )

    @staticmethod
    def _append_history(report: DiagnosticReport, *, status: str, actor_user_id: int | None, notes: str) -> None:
        # new list each time: history is append-only
        report.workflow_history = [
            *(report.workflow_history or []),
            {
                "status": status,
                "at": timezone.now().isoformat(),
                "by": actor_user_id,
                "notes": notes,
            },
        ]

    @staticmethod
    def _audit(report: DiagnosticReport, *, event_code: str, actor_user_id: int | None, **metadata) -> None:
        AuditService.record(
            report,
            event_code=event_code,
            actor_user_id=actor_user_id,
            report_id=report.report_id,
            status=report.status,
            **metadata,
        )

    @staticmethod
    def next_report_id(*, hospital_id: UUID, day: date | None = None) -> str:
        day = day or timezone.localdate()
        seq = next_daily_value(scope_key=f"report:{hospital_id}", day=day)
        return format_report_id(day=day, seq=seq)

    # ----------------------------
    # create
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def create_report(
        *,
        hospital_id: UUID,
        patient_id: UUID | None = None,
        template_id: UUID | None = None,
        order_item_id: UUID | None = None,
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        order_item = None
        if order_item_id is not None:
            order_item = get_order_item(hospital_id=hospital_id, order_item_id=order_item_id)
            if patient_id is not None and order_item.patient_id != patient_id:
                raise ValidationError({"patient_id": ["Patient does not match the order item."]})
            patient_id = order_item.patient_id

        if patient_id is None:
            raise ValidationError({"patient_id": ["patient_id or order_item_id is required."]})
        patient = get_patient(hospital_id=hospital_id, patient_id=patient_id)

        if template_id is not None:
            template = TemplateStore.get_template(template_id=template_id, hospital_id=hospital_id)
            if not template.is_active:
                raise ValidationError({"template_id": ["Template is inactive."]})
        elif order_item is not None:
            template = TemplateStore.resolve_template_for_test(
                test_code=order_item.test_code,
                category=order_item.test_category,
                hospital_id=hospital_id,
            )
        else:
            raise ValidationError({"template_id": ["template_id or order_item_id is required."]})

        snapshot = template_snapshot(template)
        schema = TemplateSchema.from_dict(snapshot)

        report = DiagnosticReport(
            hospital_id=hospital_id,
            report_id=ReportService.next_report_id(hospital_id=hospital_id),
            patient=patient,
            template=template,
            order_item=order_item,
            template_snapshot=snapshot,
            template_version=template.version,
            test_code=(order_item.test_code if order_item else "") or template.test_code or template.template_code,
            test_name=(order_item.test_name if order_item else "") or template.template_name,
            test_category=template.category,
            report_type=template.template_type,
            results={code: None for code in schema.field_codes},
            status=ReportStatus.DRAFT,
            created_by_user_id=actor_user_id,
        )
        ReportService._append_history(report, status=ReportStatus.DRAFT, actor_user_id=actor_user_id, notes="Report created")
        report.save()

        ReportService._audit(
            report,
            event_code="report.created",
            actor_user_id=actor_user_id,
            template_code=template.template_code,
            template_version=template.version,
        )
        logger.info("Report %s created from %s v%s", report.report_id, template.template_code, template.version)
        return report

    # ----------------------------
    # result entry
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def update_results(
        *,
        hospital_id: UUID,
        report_id: UUID,
        results: dict,
        specimens: list | None = None,
        repeatable_sections_data: dict | None = None,
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        """
        validate -> calculate -> interpret -> detect-critical -> persist,
        then enqueue the critical notification once the transaction commits.
        """
        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        if report.is_locked:
            raise LockedError(f"Report {report.report_id} is locked ({report.lock_reason}); amend it instead.")

        schema = TemplateSchema.from_dict(report.template_snapshot)
        validated = validate_results(schema, results, existing=report.results)
        derived = derive(schema, validated, report.patient.sex)

        previous_status = report.status
        report.results = validated
        report.calculated_results = derived.calculated
        report.auto_interpretation = derived.interpretation
        report.has_critical_values = derived.critical.has_critical
        report.critical_values = derived.critical.critical_values
        if specimens is not None:
            report.specimens = specimens
        if repeatable_sections_data is not None:
            report.repeatable_sections_data = repeatable_sections_data

        notes = "Results entered"
        if previous_status in (ReportStatus.QC_CHECKED, ReportStatus.REVIEWED):
            ReportService._clear_signoffs(report)
            notes = "Results re-entered; QC and review reset"

        report.status = ReportStatus.ENTERED
        report.entered_by_user_id = actor_user_id
        report.entered_at = timezone.now()
        ReportService._append_history(report, status=ReportStatus.ENTERED, actor_user_id=actor_user_id, notes=notes)
        report.save()

        ReportService._audit(
            report,
            event_code="report.results_entered",
            actor_user_id=actor_user_id,
            previous_status=previous_status,
            has_critical_values=report.has_critical_values,
        )

        if report.has_critical_values:
            dispatch_critical_notification(report)
        return report

    # ----------------------------
    # QC / review / approval / release
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def perform_qc_check(
        *,
        hospital_id: UUID,
        report_id: UUID,
        qc_status: str,
        qc_notes: str = "",
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        if qc_status not in QCStatus.values:
            raise ValidationError({"qc_status": [f"Must be one of: {', '.join(QCStatus.values)}."]})

        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        ReportService._require_status(report, [ReportStatus.ENTERED], "QC-check")

        report.qc_status = qc_status
        report.qc_notes = qc_notes or ""
        report.qc_checked_by_user_id = actor_user_id
        report.qc_checked_at = timezone.now()
        # failed QC stays ENTERED pending re-entry
        report.status = ReportStatus.QC_CHECKED if qc_status == QCStatus.PASSED else ReportStatus.ENTERED

        notes = f"QC {qc_status}: {qc_notes}" if qc_notes else f"QC {qc_status}"
        ReportService._append_history(report, status=report.status, actor_user_id=actor_user_id, notes=notes)
        report.save()

        ReportService._audit(report, event_code="report.qc_checked", actor_user_id=actor_user_id, qc_status=qc_status)
        return report

    @staticmethod
    @transaction.atomic
    def perform_review(
        *,
        hospital_id: UUID,
        report_id: UUID,
        reviewer_notes: str = "",
        manual_interpretation: str = "",
        impressions: str = "",
        recommendations: str = "",
        reviewer_designation: str = "",
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        ReportService._require_status(report, [ReportStatus.QC_CHECKED], "review")

        report.reviewed_by_user_id = actor_user_id
        report.reviewed_at = timezone.now()
        report.reviewer_designation = reviewer_designation or ""
        report.reviewer_notes = reviewer_notes or ""
        report.manual_interpretation = manual_interpretation or ""
        report.impressions = impressions or ""
        report.recommendations = recommendations or ""
        report.status = ReportStatus.REVIEWED

        notes = f"Reviewed by {reviewer_designation}" if reviewer_designation else "Reviewed"
        ReportService._append_history(report, status=ReportStatus.REVIEWED, actor_user_id=actor_user_id, notes=notes)
        report.save()

        ReportService._audit(report, event_code="report.reviewed", actor_user_id=actor_user_id)
        return report

    @staticmethod
    @transaction.atomic
    def approve_report(
        *,
        hospital_id: UUID,
        report_id: UUID,
        approver_designation: str = "",
        digital_signature: str = "",
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        ReportService._require_status(report, [ReportStatus.REVIEWED], "approve")

        now = timezone.now()
        report.approved_by_user_id = actor_user_id
        report.approved_at = now
        report.approver_designation = approver_designation or ""
        report.digital_signature = digital_signature or ""
        report.signature_verified = bool((digital_signature or "").strip())

        report.is_locked = True
        report.locked_at = now
        report.locked_by_user_id = actor_user_id
        report.lock_reason = LockReason.SIGNED_OFF
        report.status = ReportStatus.APPROVED

        notes = f"Approved and signed by {approver_designation}" if approver_designation else "Approved and signed"
        ReportService._append_history(report, status=ReportStatus.APPROVED, actor_user_id=actor_user_id, notes=notes)
        report.save()

        ReportService._audit(report, event_code="report.approved", actor_user_id=actor_user_id)
        return report

    @staticmethod
    @transaction.atomic
    def release_report(
        *,
        hospital_id: UUID,
        report_id: UUID,
        release_mode: str = ReleaseMode.MANUAL,
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        if release_mode not in ReleaseMode.values:
            raise ValidationError({"release_mode": [f"Must be one of: {', '.join(ReleaseMode.values)}."]})

        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        ReportService._require_status(report, [ReportStatus.APPROVED], "release")

        report.is_released = True
        report.released_at = timezone.now()
        report.released_by_user_id = actor_user_id
        report.release_mode = release_mode
        report.visible_to_patient = True
        report.status = ReportStatus.RELEASED

        ReportService._append_history(
            report,
            status=ReportStatus.RELEASED,
            actor_user_id=actor_user_id,
            notes=f"Report released ({release_mode})",
        )
        report.save()

        ReportService._audit(report, event_code="report.released", actor_user_id=actor_user_id, release_mode=release_mode)
        dispatch_report_ready(report)
        return report

    # ----------------------------
    # amendment (only write path once locked)
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def amend_report(
        *,
        hospital_id: UUID,
        report_id: UUID,
        reason: str,
        new_values: dict | None = None,
        approved_by_user_id: int | None = None,
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        if not (reason or "").strip():
            raise ValidationError({"reason": ["Amendment reason is required."]})

        report = ReportService._locked(hospital_id=hospital_id, report_id=report_id)
        ReportService._require_status(report, FINALIZED_STATUSES, "amend")

        new_values = new_values or {}
        schema = TemplateSchema.from_dict(report.template_snapshot)
        stored = dict(report.results or {})
        validated = validate_results(schema, new_values, existing=stored)

        # previous values come from storage, never from the caller
        previous_values = {code: stored.get(code) for code in new_values}
        applied_values = {code: validated.get(code) for code in new_values}

        derived = derive(schema, validated, report.patient.sex)
        had_critical = report.has_critical_values

        now = timezone.now()
        number = len(report.amendments or []) + 1
        amendment = {
            "amendmentId": f"AMD-{report.report_id}-{number:02d}",
            "amendedAt": now.isoformat(),
            "amendedBy": actor_user_id,
            "reason": reason.strip(),
            "previousValues": previous_values,
            "newValues": applied_values,
            "approvedBy": approved_by_user_id if approved_by_user_id is not None else actor_user_id,
            "approvedAt": now.isoformat(),
        }

        report.results = validated
        report.calculated_results = derived.calculated
        report.auto_interpretation = derived.interpretation
        report.has_critical_values = derived.critical.has_critical
        report.critical_values = derived.critical.critical_values

        report.amendments = [*(report.amendments or []), amendment]
        report.amendment_count = len(report.amendments)
        report.is_amended = True
        report.status = ReportStatus.AMENDED

        ReportService._append_history(
            report,
            status=ReportStatus.AMENDED,
            actor_user_id=actor_user_id,
            notes=f"Amendment {number}: {reason.strip()}",
        )
        report.save()

        ReportService._audit(
            report,
            event_code="report.amended",
            actor_user_id=actor_user_id,
            amendment_id=amendment["amendmentId"],
            changed=sorted(applied_values.keys()),
        )

        if report.has_critical_values and not had_critical:
            dispatch_critical_notification(report)
        return report

    # ----------------------------
    # read with tracking
    # ----------------------------
    @staticmethod
    @transaction.atomic
    def get_report(
        *,
        hospital_id: UUID,
        report_id: UUID,
        track_print: bool = False,
        track_view: bool = False,
        actor_user_id: int | None = None,
    ) -> DiagnosticReport:
        report = DiagnosticReport.objects.select_related("patient").filter(id=uuid_or_not_found(report_id, "Report"), hospital_id=hospital_id).first()
        if report is None:
            raise NotFoundError("Report")

        now = timezone.now()
        updates: dict[str, Any] = {}
        if track_print:
            updates.update(print_count=F("print_count") + 1, last_printed_at=now, last_printed_by_user_id=actor_user_id)
        if track_view and report.visible_to_patient:
            updates["patient_viewed_at"] = now

        if updates:
            DiagnosticReport.objects.filter(pk=report.pk).update(**updates, updated_at=now)
            report.refresh_from_db()
        return report
