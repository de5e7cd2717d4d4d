# dx_core/hospitals/models.py
from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models


class Hospital(models.Model):
    """
    Owner of hospital-customized templates and of every report.
    Root of scoping (NOT a ScopedModel, it *is* the scope).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    name = models.CharField(max_length=255)
    code = models.SlugField(max_length=64, unique=True)

    timezone = models.CharField(max_length=64, default="Asia/Kolkata")
    registration_number = models.CharField(max_length=64, blank=True, default="")

    is_active = models.BooleanField(default=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "hospitals_hospital"

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class HospitalMembership(models.Model):
    """
    Grants a user access to a hospital's reports and templates.
    Role codes are informational here; RBAC lives in the platform gateway.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    hospital = models.ForeignKey(Hospital, on_delete=models.PROTECT, related_name="memberships")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="hospital_memberships")

    role_code = models.SlugField(max_length=64, blank=True, default="")
    designation = models.CharField(max_length=128, blank=True, default="")  # e.g. "Consultant Pathologist"

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "hospitals_membership"
        constraints = [
            models.UniqueConstraint(fields=["hospital", "user"], name="uq_hospital_user_membership"),
        ]
        indexes = [
            models.Index(fields=["hospital", "is_active"]),
        ]
