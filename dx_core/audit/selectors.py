# dx_core/audit/selectors.py
from __future__ import annotations

from datetime import date
from uuid import UUID

from django.db.models import QuerySet

from dx_core.audit.models import AuditEvent


def list_audit_events(
    *,
    hospital_id: UUID,
    entity_type: str | None = None,
    entity_id: UUID | None = None,
    event_code: str | None = None,
    event_prefix: str | None = None,
    actor_user_id: int | None = None,
    occurred_from: date | None = None,
    occurred_to: date | None = None,
) -> QuerySet[AuditEvent]:
    """
    Newest first. ``event_prefix`` matches a family such as ``report.``.
    """
    qs = AuditEvent.objects.filter(hospital_id=hospital_id)

    filters = {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "event_code": event_code,
        "event_code__startswith": event_prefix,
        "occurred_at__date__gte": occurred_from,
        "occurred_at__date__lte": occurred_to,
    }
    qs = qs.filter(**{k: v for k, v in filters.items() if v})
    if actor_user_id is not None:
        qs = qs.filter(actor_user_id=actor_user_id)

    return qs.order_by("-occurred_at")
