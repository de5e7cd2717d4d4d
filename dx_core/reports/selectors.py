# dx_core/reports/selectors.py
from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from django.db.models import Count, Q, QuerySet
from django.db.models.functions import TruncDate
from django.utils import timezone

from dx_core.reports.models import DiagnosticReport, ReportStatus

PENDING_STATUSES = (ReportStatus.DRAFT, ReportStatus.ENTERED, ReportStatus.QC_CHECKED, ReportStatus.REVIEWED)
COMPLETED_STATUSES = (ReportStatus.APPROVED, ReportStatus.RELEASED, ReportStatus.AMENDED)


def reports_qs(*, hospital_id: UUID) -> QuerySet[DiagnosticReport]:
    return DiagnosticReport.objects.filter(hospital_id=hospital_id).select_related("patient")


def get_report_scoped(*, hospital_id: UUID, report_id: UUID) -> DiagnosticReport | None:
    return reports_qs(hospital_id=hospital_id).filter(id=report_id).first()


def search_reports(
    *,
    hospital_id: UUID,
    patient_id: UUID | None = None,
    status: str | None = None,
    category: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    report_id: str | None = None,
    has_critical: bool | None = None,
) -> QuerySet[DiagnosticReport]:
    qs = reports_qs(hospital_id=hospital_id)

    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if status:
        qs = qs.filter(status=status)
    if category:
        qs = qs.filter(test_category=category.strip().upper())
    if date_from:
        qs = qs.filter(report_date__date__gte=date_from)
    if date_to:
        qs = qs.filter(report_date__date__lte=date_to)
    if report_id:
        qs = qs.filter(report_id__icontains=report_id.strip())
    if has_critical is not None:
        qs = qs.filter(has_critical_values=has_critical)

    return qs.order_by("-report_date", "-created_at")


def report_statistics(*, hospital_id: UUID, date_from: date | None = None, date_to: date | None = None) -> dict:
    """
    Dashboard counts over a date window (default: the last 30 days, inclusive).
    """
    date_to = date_to or timezone.localdate()
    date_from = date_from or (date_to - timedelta(days=30))

    qs = DiagnosticReport.objects.filter(
        hospital_id=hospital_id,
        report_date__date__gte=date_from,
        report_date__date__lte=date_to,
    )

    overview = qs.aggregate(
        total=Count("id"),
        pending=Count("id", filter=Q(status__in=PENDING_STATUSES)),
        completed=Count("id", filter=Q(status__in=COMPLETED_STATUSES)),
        critical=Count("id", filter=Q(has_critical_values=True)),
    )

    by_status = {row["status"]: row["n"] for row in qs.values("status").annotate(n=Count("id")).order_by("status")}
    by_type = {
        row["report_type"]: row["n"] for row in qs.values("report_type").annotate(n=Count("id")).order_by("report_type")
    }
    daily_trend = [
        {"date": row["day"].isoformat(), "count": row["n"]}
        for row in qs.annotate(day=TruncDate("report_date")).values("day").annotate(n=Count("id")).order_by("day")
    ]

    return {
        "overview": overview,
        "by_status": by_status,
        "by_type": by_type,
        "daily_trend": daily_trend,
        "date_range": {"from": date_from.isoformat(), "to": date_to.isoformat()},
    }
