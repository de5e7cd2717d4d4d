# dx_core/reports/tasks.py
from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings

from dx_core.alerts.notifier import get_notifier
from dx_core.reports.models import DiagnosticReport

logger = logging.getLogger(__name__)

MAX_RETRIES = getattr(settings, "DX_NOTIFICATION_MAX_RETRIES", 3)


def _load(report_pk: str) -> DiagnosticReport | None:
    report = DiagnosticReport.objects.select_related("patient").filter(id=report_pk).first()
    if report is None:
        logger.warning("Report %s vanished before notification", report_pk)
    return report


@shared_task(bind=True, max_retries=MAX_RETRIES, default_retry_delay=30)
def notify_critical_values_task(self, report_pk: str):
    """
    Deliver the critical-value notification for a report.

    Retried with exponential backoff; the report itself was saved long before.
    """
    report = _load(report_pk)
    if report is None or not report.has_critical_values:
        return None

    try:
        get_notifier().notify_critical(report, list(report.critical_values or []))
    except Exception as exc:
        logger.exception("Critical notification for report %s failed", report.report_id)
        raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))

    return report.report_id


@shared_task(bind=True, max_retries=MAX_RETRIES, default_retry_delay=30)
def notify_report_ready_task(self, report_pk: str):
    report = _load(report_pk)
    if report is None or not report.is_released:
        return None

    try:
        get_notifier().notify_report_ready(report)
    except Exception as exc:
        logger.exception("Report-ready notification for report %s failed", report.report_id)
        raise self.retry(exc=exc, countdown=30 * (2 ** self.request.retries))

    return report.report_id
