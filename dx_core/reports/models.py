# dx_core/reports/models.py
from __future__ import annotations

from django.db import models
from django.utils import timezone

from dx_core.common.models import ScopedModel
from dx_core.orders.models import OrderItem
from dx_core.patients.models import Patient
from dx_core.report_templates.models import ReportTemplate


class ReportStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    ENTERED = "ENTERED", "Results entered"
    QC_CHECKED = "QC_CHECKED", "QC checked"
    REVIEWED = "REVIEWED", "Reviewed"
    APPROVED = "APPROVED", "Approved"
    RELEASED = "RELEASED", "Released"
    AMENDED = "AMENDED", "Amended"


FINALIZED_STATUSES = (ReportStatus.APPROVED, ReportStatus.RELEASED, ReportStatus.AMENDED)


class QCStatus(models.TextChoices):
    PASSED = "PASSED", "Passed"
    FAILED = "FAILED", "Failed"


class ReleaseMode(models.TextChoices):
    MANUAL = "MANUAL", "Manual"
    AUTO = "AUTO", "Automatic"
    PORTAL = "PORTAL", "Patient portal"
    EMAIL = "EMAIL", "Email"


class LockReason(models.TextChoices):
    SIGNED_OFF = "SIGNED_OFF", "Signed off"


class DiagnosticReport(ScopedModel):
    """
    One filled-in template for one patient.

    template_snapshot is frozen at creation; every later computation reads the
    snapshot, never the live template. workflow_history and amendments are
    append-only. Once is_locked, results change only through an amendment.
    """
    report_id = models.CharField(max_length=32, db_index=True)  # RPT{YY}{MM}{DD}{seq}

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="diagnostic_reports")
    template = models.ForeignKey(ReportTemplate, on_delete=models.PROTECT, related_name="reports")
    order_item = models.ForeignKey(
        OrderItem,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="diagnostic_reports",
    )

    template_snapshot = models.JSONField(default=dict)
    template_version = models.PositiveIntegerField(default=1)

    test_code = models.CharField(max_length=64, blank=True, default="")
    test_name = models.CharField(max_length=255, blank=True, default="")
    test_category = models.CharField(max_length=64, db_index=True)
    report_type = models.CharField(max_length=32)

    # payload
    results = models.JSONField(default=dict)
    calculated_results = models.JSONField(default=dict, blank=True)
    auto_interpretation = models.JSONField(default=list, blank=True)
    has_critical_values = models.BooleanField(default=False, db_index=True)
    critical_values = models.JSONField(default=list, blank=True)
    specimens = models.JSONField(default=list, blank=True)
    repeatable_sections_data = models.JSONField(default=dict, blank=True)

    # workflow
    status = models.CharField(max_length=16, choices=ReportStatus.choices, default=ReportStatus.DRAFT, db_index=True)
    workflow_history = models.JSONField(default=list)

    created_by_user_id = models.IntegerField(null=True, blank=True)
    entered_by_user_id = models.IntegerField(null=True, blank=True)
    entered_at = models.DateTimeField(null=True, blank=True)

    qc_status = models.CharField(max_length=16, choices=QCStatus.choices, blank=True, default="")
    qc_checked_by_user_id = models.IntegerField(null=True, blank=True)
    qc_checked_at = models.DateTimeField(null=True, blank=True)
    qc_notes = models.TextField(blank=True, default="")

    reviewed_by_user_id = models.IntegerField(null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewer_designation = models.CharField(max_length=128, blank=True, default="")
    reviewer_notes = models.TextField(blank=True, default="")
    manual_interpretation = models.TextField(blank=True, default="")
    impressions = models.TextField(blank=True, default="")
    recommendations = models.TextField(blank=True, default="")

    approved_by_user_id = models.IntegerField(null=True, blank=True)
    approved_at = models.DateTimeField(null=True, blank=True)
    approver_designation = models.CharField(max_length=128, blank=True, default="")
    digital_signature = models.TextField(blank=True, default="")
    signature_verified = models.BooleanField(default=False)

    is_locked = models.BooleanField(default=False)
    locked_at = models.DateTimeField(null=True, blank=True)
    locked_by_user_id = models.IntegerField(null=True, blank=True)
    lock_reason = models.CharField(max_length=32, choices=LockReason.choices, blank=True, default="")

    is_released = models.BooleanField(default=False)
    released_at = models.DateTimeField(null=True, blank=True)
    released_by_user_id = models.IntegerField(null=True, blank=True)
    release_mode = models.CharField(max_length=16, choices=ReleaseMode.choices, blank=True, default="")
    visible_to_patient = models.BooleanField(default=False)

    # amendment trail; amendment_count == len(amendments)
    is_amended = models.BooleanField(default=False)
    amendment_count = models.PositiveIntegerField(default=0)
    amendments = models.JSONField(default=list, blank=True)

    # print / view tracking
    print_count = models.PositiveIntegerField(default=0)
    last_printed_at = models.DateTimeField(null=True, blank=True)
    last_printed_by_user_id = models.IntegerField(null=True, blank=True)
    patient_viewed_at = models.DateTimeField(null=True, blank=True)

    report_date = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "reports_diagnostic_report"
        constraints = [
            models.UniqueConstraint(fields=["hospital_id", "report_id"], name="uq_report_id_per_hospital"),
        ]
        indexes = [
            models.Index(fields=["hospital_id", "status"]),
            models.Index(fields=["hospital_id", "patient"]),
            models.Index(fields=["hospital_id", "report_date"]),
            models.Index(fields=["hospital_id", "test_category"]),
        ]

    def __str__(self) -> str:
        return f"{self.report_id} [{self.status}]"
