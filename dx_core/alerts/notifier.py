"""
Notification backends for the report engine.

A backend is any class with ``notify_critical(report, critical_values)`` and
``notify_report_ready(report)``. The one in use is named by the
``DX_NOTIFIER`` setting; the default writes in-app alerts.
"""
from __future__ import annotations

import logging

from django.conf import settings
from django.utils.module_loading import import_string

from dx_core.alerts.models import AlertSeverity
from dx_core.alerts.services import AlertService

logger = logging.getLogger(__name__)

DEFAULT_NOTIFIER = "dx_core.alerts.notifier.InAppNotifier"


class InAppNotifier:
    def notify_critical(self, report, critical_values: list[dict]) -> None:
        flagged = [c for c in critical_values if c.get("requiresNotification", True)]
        if not flagged:
            return

        parts = [f"{c['field']}={c['value']} ({c['type']}, threshold {c['threshold']})" for c in flagged]
        AlertService.create_alert(
            hospital_id=report.hospital_id,
            code="critical-report-value",
            title=f"Critical values on report {report.report_id}",
            message="; ".join(parts),
            severity=AlertSeverity.CRITICAL,
            report_id=report.id,
            patient_id=report.patient_id,
            meta={"report_id": report.report_id, "critical_values": flagged},
        )
        logger.info("Critical alert raised for report %s (%d values)", report.report_id, len(flagged))

    def notify_report_ready(self, report) -> None:
        AlertService.create_alert(
            hospital_id=report.hospital_id,
            code="report-ready",
            title=f"Report {report.report_id} released",
            message=f"{report.test_name} is available.",
            severity=AlertSeverity.INFO,
            report_id=report.id,
            patient_id=report.patient_id,
            meta={"report_id": report.report_id, "release_mode": report.release_mode},
        )


def get_notifier():
    path = getattr(settings, "DX_NOTIFIER", None) or DEFAULT_NOTIFIER
    return import_string(path)()
