from __future__ import annotations

from django.db import models

from dx_core.common.models import ScopedModel


class AlertSeverity(models.TextChoices):
    INFO = "INFO", "Info"
    WARNING = "WARNING", "Warning"
    CRITICAL = "CRITICAL", "Critical"


class AlertStatus(models.TextChoices):
    OPEN = "OPEN", "Open"
    ACKED = "ACKED", "Acknowledged"
    RESOLVED = "RESOLVED", "Resolved"


class Alert(ScopedModel):
    """
    In-app alert raised by the report engine (critical values, report ready).
    Links are loose UUIDs so alerts survive report/patient cleanup.
    """
    code = models.SlugField(max_length=64, db_index=True)  # e.g. "critical-report-value"
    title = models.CharField(max_length=255)
    message = models.TextField(blank=True, default="")

    severity = models.CharField(
        max_length=16,
        choices=AlertSeverity.choices,
        default=AlertSeverity.INFO,
        db_index=True,
    )
    status = models.CharField(
        max_length=16,
        choices=AlertStatus.choices,
        default=AlertStatus.OPEN,
        db_index=True,
    )

    report_id = models.UUIDField(null=True, blank=True, db_index=True)
    patient_id = models.UUIDField(null=True, blank=True, db_index=True)

    created_by_user_id = models.IntegerField(null=True, blank=True)
    acked_by_user_id = models.IntegerField(null=True, blank=True)
    acked_at = models.DateTimeField(null=True, blank=True)

    meta = models.JSONField(default=dict, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["hospital_id", "status", "severity"]),
            models.Index(fields=["hospital_id", "report_id"]),
        ]

    def __str__(self) -> str:
        return f"{self.code} [{self.severity}] {self.title}"
