# dx_core/reports/notifications.py
"""
Side-channel notifications for report transitions.

Enqueued only after the surrounding transaction commits, so a rolled-back
save never notifies and a broken queue never fails a save.
"""
import logging

from django.db import transaction

from dx_core.reports.tasks import notify_critical_values_task, notify_report_ready_task

logger = logging.getLogger(__name__)


def _enqueue_on_commit(task, report) -> None:
    report_pk = str(report.id)
    label = report.report_id

    def _send():
        try:
            task.delay(report_pk)
        except Exception:
            logger.exception("Could not enqueue %s for report %s", task.name, label)

    transaction.on_commit(_send)


def dispatch_critical_notification(report) -> None:
    logger.warning(
        "Critical values on report %s: %s",
        report.report_id,
        ", ".join(f"{c['field']} {c['type']}" for c in report.critical_values or []),
    )
    _enqueue_on_commit(notify_critical_values_task, report)


def dispatch_report_ready(report) -> None:
    _enqueue_on_commit(notify_report_ready_task, report)
