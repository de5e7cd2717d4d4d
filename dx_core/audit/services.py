# dx_core/audit/services.py
from __future__ import annotations

from typing import Any, Mapping
from uuid import UUID

from django.db import models

from dx_core.audit.models import AuditEvent


class AuditService:
    """
    Append-only trail of report and template state changes.

    Rows are never updated; a report's own ``workflow_history`` is the
    user-facing view, this table is the cross-entity one.
    """

    @staticmethod
    def log(
        *,
        event_code: str,
        entity_type: str,
        entity_id: UUID,
        hospital_id: UUID,
        actor_user_id: int | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> AuditEvent:
        return AuditEvent.objects.create(
            hospital_id=hospital_id,
            event_code=event_code,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_user_id=actor_user_id,
            metadata=dict(metadata or {}),
        )

    @staticmethod
    def record(entity: models.Model, *, event_code: str, actor_user_id: int | None, **metadata) -> AuditEvent:
        """Audit a hospital-scoped row under its own hospital, typed by its model name."""
        return AuditService.log(
            event_code=event_code,
            entity_type=entity._meta.object_name,
            entity_id=entity.pk,
            hospital_id=entity.hospital_id,
            actor_user_id=actor_user_id,
            metadata=metadata,
        )
