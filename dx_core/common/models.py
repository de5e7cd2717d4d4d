# dx_core/common/models.py
from __future__ import annotations

import uuid
from django.db import models


class TimeStampedModel(models.Model):
    """
    Standard timestamps for all entities.
    """
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class ScopedModel(TimeStampedModel):
    """
    Enforces hospital scope at the data layer.
    (Middleware enforces request scope; this enforces persistence scope.)
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    hospital_id = models.UUIDField(db_index=True)

    class Meta:
        abstract = True


class Sequence(models.Model):
    """
    Per-scope, per-day counter.

    Incremented under SELECT ... FOR UPDATE so concurrent writers never
    observe the same value (see dx_core.common.sequences).
    """
    scope_key = models.CharField(max_length=128)
    day = models.DateField()
    last_value = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "common_sequence"
        constraints = [
            models.UniqueConstraint(fields=["scope_key", "day"], name="uq_sequence_scope_day"),
        ]

    def __str__(self) -> str:
        return f"{self.scope_key}@{self.day}={self.last_value}"


class IdempotencyRecord(TimeStampedModel):
    """
    First successful response to a keyed write, replayed to retries
    (see dx_core.common.idempotency.DatabaseStore).
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    hospital_id = models.UUIDField(db_index=True)

    # who asked, for what
    user_id = models.BigIntegerField(db_index=True)
    method = models.CharField(max_length=16, db_index=True)
    path = models.CharField(max_length=255, db_index=True)
    idempotency_key = models.CharField(max_length=255, db_index=True)

    # what they got
    status_code = models.PositiveIntegerField(default=200)
    response_data = models.JSONField(default=dict)

    class Meta:
        db_table = "common_idempotency_record"
        constraints = [
            models.UniqueConstraint(
                fields=["hospital_id", "user_id", "method", "path", "idempotency_key"],
                name="uq_idempo_scope_user_method_path_key",
            )
        ]
        indexes = [
            models.Index(fields=["hospital_id", "created_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.method} {self.path} {self.idempotency_key}"
