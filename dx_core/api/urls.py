# dx_core/api/urls.py
from __future__ import annotations

from rest_framework.routers import DefaultRouter

from dx_core.alerts.api.views import AlertViewSet
from dx_core.audit.api.views import AuditEventViewSet
from dx_core.report_templates.api.views import ReportTemplateViewSet
from dx_core.reports.api.views import DiagnosticReportViewSet

router = DefaultRouter()

router.register(r"report-templates", ReportTemplateViewSet, basename="report-templates")
router.register(r"reports", DiagnosticReportViewSet, basename="reports")
router.register(r"alerts", AlertViewSet, basename="alerts")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    *router.urls,
]
