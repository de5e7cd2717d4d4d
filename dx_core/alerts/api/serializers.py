from rest_framework import serializers

from dx_core.alerts.models import Alert


class AlertSerializer(serializers.ModelSerializer):
    class Meta:
        model = Alert
        fields = [
            "id",
            "code",
            "title",
            "message",
            "severity",
            "status",
            "report_id",
            "patient_id",
            "acked_by_user_id",
            "acked_at",
            "created_at",
            "updated_at",
            "meta",
        ]
        read_only_fields = fields
