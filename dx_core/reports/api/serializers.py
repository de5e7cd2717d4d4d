# dx_core/reports/api/serializers.py
from rest_framework import serializers

from dx_core.reports.models import DiagnosticReport, QCStatus, ReleaseMode, ReportStatus


class DiagnosticReportSerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)
    template_id = serializers.UUIDField(read_only=True)
    order_item_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = DiagnosticReport
        fields = [
            "id",
            "hospital_id",
            "report_id",
            "patient_id",
            "template_id",
            "order_item_id",
            "template_version",
            "test_code",
            "test_name",
            "test_category",
            "report_type",
            "results",
            "calculated_results",
            "auto_interpretation",
            "has_critical_values",
            "critical_values",
            "specimens",
            "repeatable_sections_data",
            "status",
            "workflow_history",
            "created_by_user_id",
            "entered_by_user_id",
            "entered_at",
            "qc_status",
            "qc_checked_by_user_id",
            "qc_checked_at",
            "qc_notes",
            "reviewed_by_user_id",
            "reviewed_at",
            "reviewer_designation",
            "reviewer_notes",
            "manual_interpretation",
            "impressions",
            "recommendations",
            "approved_by_user_id",
            "approved_at",
            "approver_designation",
            "signature_verified",
            "is_locked",
            "locked_at",
            "locked_by_user_id",
            "lock_reason",
            "is_released",
            "released_at",
            "released_by_user_id",
            "release_mode",
            "visible_to_patient",
            "is_amended",
            "amendment_count",
            "amendments",
            "print_count",
            "last_printed_at",
            "patient_viewed_at",
            "report_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class DiagnosticReportListSerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)
    patient_name = serializers.CharField(source="patient.full_name", read_only=True)

    class Meta:
        model = DiagnosticReport
        fields = [
            "id",
            "report_id",
            "patient_id",
            "patient_name",
            "test_code",
            "test_name",
            "test_category",
            "report_type",
            "status",
            "has_critical_values",
            "is_locked",
            "is_released",
            "amendment_count",
            "report_date",
        ]
        read_only_fields = fields


class ReportCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False)
    template_id = serializers.UUIDField(required=False)
    order_item_id = serializers.UUIDField(required=False)

    def validate(self, attrs):
        if not attrs.get("order_item_id"):
            if not attrs.get("patient_id"):
                raise serializers.ValidationError({"patient_id": "patient_id or order_item_id is required."})
            if not attrs.get("template_id"):
                raise serializers.ValidationError({"template_id": "template_id or order_item_id is required."})
        return attrs


class ResultsUpdateSerializer(serializers.Serializer):
    results = serializers.DictField(allow_empty=True)
    specimens = serializers.ListField(child=serializers.DictField(), required=False)
    repeatable_sections_data = serializers.DictField(required=False)


class QCCheckSerializer(serializers.Serializer):
    qc_status = serializers.ChoiceField(choices=QCStatus.choices)
    qc_notes = serializers.CharField(required=False, allow_blank=True, default="")


class ReviewSerializer(serializers.Serializer):
    reviewer_notes = serializers.CharField(required=False, allow_blank=True, default="")
    manual_interpretation = serializers.CharField(required=False, allow_blank=True, default="")
    impressions = serializers.CharField(required=False, allow_blank=True, default="")
    recommendations = serializers.CharField(required=False, allow_blank=True, default="")
    reviewer_designation = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)


class ApproveSerializer(serializers.Serializer):
    approver_designation = serializers.CharField(required=False, allow_blank=True, default="", max_length=128)
    digital_signature = serializers.CharField(required=False, allow_blank=True, default="")


class ReleaseSerializer(serializers.Serializer):
    release_mode = serializers.ChoiceField(choices=ReleaseMode.choices, default=ReleaseMode.MANUAL)


class AmendSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=False, trim_whitespace=True)
    new_values = serializers.DictField(required=False, default=dict)
    approved_by_user_id = serializers.IntegerField(required=False, allow_null=True)


class ReportSearchSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField(required=False)
    status = serializers.ChoiceField(choices=ReportStatus.choices, required=False)
    category = serializers.CharField(required=False, allow_blank=True)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    report_id = serializers.CharField(required=False, allow_blank=True)
    has_critical = serializers.BooleanField(required=False, allow_null=True, default=None)


class StatisticsQuerySerializer(serializers.Serializer):
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("date_from"), attrs.get("date_to")
        if start and end and start > end:
            raise serializers.ValidationError({"date_from": "date_from must not be after date_to."})
        return attrs
