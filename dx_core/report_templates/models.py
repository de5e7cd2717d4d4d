# dx_core/report_templates/models.py
from __future__ import annotations

import uuid

from django.db import models
from django.db.models import Q

from dx_core.common.models import TimeStampedModel


class TemplateType(models.TextChoices):
    TABULAR = "TABULAR", "Tabular"
    QUALITATIVE = "QUALITATIVE", "Qualitative"
    NARRATIVE = "NARRATIVE", "Narrative"
    CULTURE_SENSITIVITY = "CULTURE_SENSITIVITY", "Culture & sensitivity"
    CLINICAL_NOTE = "CLINICAL_NOTE", "Clinical note"
    HYBRID = "HYBRID", "Hybrid"


class ReportTemplate(TimeStampedModel):
    """
    Versioned report schema.

    hospital_id NULL => platform (system) template, read-only for hospitals.
    A new version is a new row; older rows stay queryable for report snapshots.
    At most one active default per (category, hospital_id) is maintained by
    TemplateStore, not by a constraint.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    hospital_id = models.UUIDField(null=True, blank=True, db_index=True)

    template_code = models.CharField(max_length=64, db_index=True)
    template_name = models.CharField(max_length=255)
    short_name = models.CharField(max_length=64, blank=True, default="")
    description = models.TextField(blank=True, default="")

    version = models.PositiveIntegerField(default=1)
    previous_version = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="next_versions",
    )

    category = models.CharField(max_length=64, db_index=True)
    sub_category = models.CharField(max_length=64, blank=True, default="")
    test_code = models.CharField(max_length=64, blank=True, default="", db_index=True)
    template_type = models.CharField(max_length=32, choices=TemplateType.choices, default=TemplateType.TABULAR)

    # structure (parsed through dx_core.report_templates.schema)
    fields = models.JSONField(default=list, blank=True)
    calculated_fields = models.JSONField(default=list, blank=True)
    reference_ranges = models.JSONField(default=dict, blank=True)
    critical_value_rules = models.JSONField(default=dict, blank=True)
    sections = models.JSONField(default=list, blank=True)

    # presentation (opaque, passed through to the renderer)
    header_config = models.JSONField(default=dict, blank=True)
    footer_config = models.JSONField(default=dict, blank=True)
    styling = models.JSONField(default=dict, blank=True)
    print_config = models.JSONField(default=dict, blank=True)
    specimen_config = models.JSONField(default=dict, blank=True)

    is_system_template = models.BooleanField(default=False, db_index=True)
    is_default = models.BooleanField(default=False, db_index=True)
    is_active = models.BooleanField(default=True, db_index=True)

    created_by_user_id = models.IntegerField(null=True, blank=True)
    updated_by_user_id = models.IntegerField(null=True, blank=True)

    class Meta:
        db_table = "report_template"
        ordering = ["category", "template_code", "-version"]
        indexes = [
            models.Index(fields=["hospital_id", "category", "is_default"]),
            models.Index(fields=["hospital_id", "test_code"]),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["hospital_id", "template_code", "version"],
                name="uq_report_template_code_version_per_hospital",
            ),
            models.UniqueConstraint(
                fields=["template_code", "version"],
                condition=Q(hospital_id__isnull=True),
                name="uq_report_template_code_version_system",
            ),
        ]

    def __str__(self) -> str:
        owner = "system" if self.hospital_id is None else str(self.hospital_id)
        return f"{self.template_code} v{self.version} ({owner})"
