# dx_core/audit/models.py
from django.db import models
from dx_core.common.models import ScopedModel


class AuditEvent(ScopedModel):
    """
    Immutable audit record.
    Platform-wide companion of a report's own workflow_history.
    """
    event_code = models.CharField(max_length=128, db_index=True)  # e.g. "report.approved"
    entity_type = models.CharField(max_length=128, db_index=True)  # e.g. "DiagnosticReport"
    entity_id = models.UUIDField(db_index=True)

    actor_user_id = models.IntegerField(null=True, blank=True, db_index=True)

    occurred_at = models.DateTimeField(auto_now_add=True, db_index=True)
    metadata = models.JSONField(default=dict)

    class Meta:
        db_table = "audit_audit_event"
        indexes = [
            models.Index(fields=["hospital_id", "occurred_at"]),
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["hospital_id", "event_code"]),
        ]
