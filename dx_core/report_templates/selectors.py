# dx_core/report_templates/selectors.py
from __future__ import annotations

from collections import OrderedDict
from uuid import UUID

from django.db.models import Q, QuerySet

from dx_core.report_templates.models import ReportTemplate


def visible_templates_qs(*, hospital_id: UUID) -> QuerySet[ReportTemplate]:
    """Own templates plus platform templates."""
    return ReportTemplate.objects.filter(
        Q(hospital_id=hospital_id) | Q(hospital_id__isnull=True, is_system_template=True)
    )


def get_template_by_id(*, template_id: UUID) -> ReportTemplate | None:
    return ReportTemplate.objects.filter(id=template_id).first()


def list_templates(
    *,
    hospital_id: UUID,
    category: str | None = None,
    template_type: str | None = None,
    search: str | None = None,
    include_inactive: bool = False,
) -> QuerySet[ReportTemplate]:
    qs = visible_templates_qs(hospital_id=hospital_id)

    if not include_inactive:
        qs = qs.filter(is_active=True)
    if category:
        qs = qs.filter(category=category.strip().upper())
    if template_type:
        qs = qs.filter(template_type=template_type)
    if search:
        qs = qs.filter(Q(template_name__icontains=search) | Q(template_code__icontains=search))

    return qs.order_by("category", "template_name", "-version")


def templates_grouped_by_category(*, hospital_id: UUID) -> "OrderedDict[str, list[ReportTemplate]]":
    grouped: OrderedDict[str, list[ReportTemplate]] = OrderedDict()
    for t in list_templates(hospital_id=hospital_id):
        grouped.setdefault(t.category, []).append(t)
    return grouped


def find_test_template(*, test_code: str, hospital_id: UUID | None) -> ReportTemplate | None:
    qs = ReportTemplate.objects.filter(test_code=test_code, is_active=True)
    if hospital_id is None:
        qs = qs.filter(hospital_id__isnull=True, is_system_template=True)
    else:
        qs = qs.filter(hospital_id=hospital_id)
    return qs.order_by("-version", "-created_at").first()


def find_category_default(*, category: str, hospital_id: UUID | None) -> ReportTemplate | None:
    qs = ReportTemplate.objects.filter(category=category, is_default=True, is_active=True)
    if hospital_id is None:
        qs = qs.filter(hospital_id__isnull=True, is_system_template=True)
    else:
        qs = qs.filter(hospital_id=hospital_id)
    return qs.order_by("-version", "-created_at").first()


def latest_in_category(*, category: str, hospital_id: UUID) -> ReportTemplate | None:
    qs = ReportTemplate.objects.filter(category=category, is_active=True).order_by("-version", "-created_at")
    own = qs.filter(hospital_id=hospital_id).first()
    if own is not None:
        return own
    return qs.filter(hospital_id__isnull=True, is_system_template=True).first()


def defaults_for_category(*, category: str, hospital_id: UUID | None) -> QuerySet[ReportTemplate]:
    qs = ReportTemplate.objects.filter(category=category, is_default=True)
    if hospital_id is None:
        return qs.filter(hospital_id__isnull=True)
    return qs.filter(hospital_id=hospital_id)


def system_template_by_code(*, template_code: str) -> ReportTemplate | None:
    return (
        ReportTemplate.objects.filter(template_code=template_code, hospital_id__isnull=True)
        .order_by("-version")
        .first()
    )


def templates_in_category(*, category: str, hospital_id: UUID | None) -> QuerySet[ReportTemplate]:
    qs = ReportTemplate.objects.filter(category=category)
    if hospital_id is None:
        return qs.filter(hospital_id__isnull=True)
    return qs.filter(hospital_id=hospital_id)
