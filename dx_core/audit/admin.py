from django.contrib import admin

from dx_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ("event_code", "entity_type", "entity_id", "actor_user_id", "hospital_id", "occurred_at")
    list_filter = ("event_code", "entity_type")
    search_fields = ("entity_id",)
    readonly_fields = [f.name for f in AuditEvent._meta.fields]
    ordering = ("-occurred_at",)
