from django.apps import AppConfig


class ReportTemplatesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "dx_core.report_templates"
    label = "report_templates"
    verbose_name = "Report templates"
