from django.contrib import admin

from dx_core.alerts.models import Alert


@admin.register(Alert)
class AlertAdmin(admin.ModelAdmin):
    list_display = ("code", "severity", "status", "report_id", "hospital_id", "created_at")
    list_filter = ("severity", "status", "code")
    search_fields = ("title", "message")
