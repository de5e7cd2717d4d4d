from django.contrib import admin

from dx_core.reports.models import DiagnosticReport


@admin.register(DiagnosticReport)
class DiagnosticReportAdmin(admin.ModelAdmin):
    list_display = ("report_id", "test_code", "status", "has_critical_values", "is_locked", "hospital_id", "report_date")
    list_filter = ("status", "report_type", "has_critical_values", "is_locked", "is_released")
    search_fields = ("report_id", "test_code", "test_name", "patient__full_name")
    readonly_fields = (
        "report_id",
        "template_snapshot",
        "workflow_history",
        "amendments",
        "created_at",
        "updated_at",
    )
    ordering = ("-report_date",)
