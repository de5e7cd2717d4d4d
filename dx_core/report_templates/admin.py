from django.contrib import admin

from dx_core.report_templates.models import ReportTemplate


@admin.register(ReportTemplate)
class ReportTemplateAdmin(admin.ModelAdmin):
    list_display = ("template_code", "version", "category", "template_type", "hospital_id", "is_system_template", "is_default", "is_active")
    list_filter = ("category", "template_type", "is_system_template", "is_default", "is_active")
    search_fields = ("template_code", "template_name", "test_code")
