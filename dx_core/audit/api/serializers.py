# dx_core/audit/api/serializers.py
from rest_framework import serializers

from dx_core.audit.models import AuditEvent


class AuditEventSerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="occurred_at", read_only=True)

    class Meta:
        model = AuditEvent
        fields = ["id", "hospital_id", "entity_type", "entity_id", "event_code", "actor_user_id", "timestamp", "metadata"]
        read_only_fields = fields


class AuditEventQuerySerializer(serializers.Serializer):
    entity_type = serializers.CharField(required=False, allow_blank=True)
    entity_id = serializers.UUIDField(required=False)
    event_code = serializers.CharField(required=False, allow_blank=True)
    event_prefix = serializers.CharField(required=False, allow_blank=True)
    actor_user_id = serializers.IntegerField(required=False)
    occurred_from = serializers.DateField(required=False)
    occurred_to = serializers.DateField(required=False)
    limit = serializers.IntegerField(required=False, default=200, min_value=1, max_value=500)
