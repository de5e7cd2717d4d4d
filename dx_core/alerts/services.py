from __future__ import annotations

from uuid import UUID

from django.db import transaction
from django.utils import timezone

from dx_core.alerts.models import Alert, AlertSeverity, AlertStatus
from dx_core.common.api.exceptions import NotFoundError
from dx_core.common.api.lookups import uuid_or_not_found


class AlertService:
    @staticmethod
    @transaction.atomic
    def create_alert(
        *,
        hospital_id: UUID,
        code: str,
        title: str,
        message: str = "",
        severity: str = AlertSeverity.INFO,
        report_id: UUID | None = None,
        patient_id: UUID | None = None,
        actor_user_id: int | None = None,
        meta: dict | None = None,
    ) -> Alert:
        return Alert.objects.create(
            hospital_id=hospital_id,
            created_by_user_id=actor_user_id,
            code=code,
            title=title,
            message=message,
            severity=severity,
            status=AlertStatus.OPEN,
            report_id=report_id,
            patient_id=patient_id,
            meta=meta or {},
        )

    @staticmethod
    @transaction.atomic
    def ack_alert(*, hospital_id: UUID, alert_id: UUID, actor_user_id: int | None) -> Alert:
        alert = Alert.objects.select_for_update().filter(id=uuid_or_not_found(alert_id, "Alert"), hospital_id=hospital_id).first()
        if alert is None:
            raise NotFoundError("Alert")

        if alert.status != AlertStatus.ACKED:
            alert.status = AlertStatus.ACKED
            alert.acked_by_user_id = actor_user_id
            alert.acked_at = timezone.now()
            alert.save(update_fields=["status", "acked_by_user_id", "acked_at", "updated_at"])
        return alert
