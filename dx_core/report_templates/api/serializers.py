# dx_core/report_templates/api/serializers.py
from rest_framework import serializers

from dx_core.report_templates.models import ReportTemplate, TemplateType


class ReportTemplateSerializer(serializers.ModelSerializer):
    previous_version_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = ReportTemplate
        fields = [
            "id",
            "hospital_id",
            "template_code",
            "template_name",
            "short_name",
            "description",
            "version",
            "previous_version_id",
            "category",
            "sub_category",
            "test_code",
            "template_type",
            "fields",
            "calculated_fields",
            "reference_ranges",
            "critical_value_rules",
            "sections",
            "header_config",
            "footer_config",
            "styling",
            "print_config",
            "specimen_config",
            "is_system_template",
            "is_default",
            "is_active",
            "created_by_user_id",
            "updated_by_user_id",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ReportTemplateListSerializer(serializers.ModelSerializer):
    class Meta:
        model = ReportTemplate
        fields = [
            "id",
            "hospital_id",
            "template_code",
            "template_name",
            "short_name",
            "version",
            "category",
            "sub_category",
            "test_code",
            "template_type",
            "is_system_template",
            "is_default",
            "is_active",
        ]
        read_only_fields = fields


class _TemplateContentSerializer(serializers.Serializer):
    template_name = serializers.CharField(max_length=255, required=False)
    short_name = serializers.CharField(max_length=64, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True)
    sub_category = serializers.CharField(max_length=64, required=False, allow_blank=True)
    test_code = serializers.CharField(max_length=64, required=False, allow_blank=True)
    template_type = serializers.ChoiceField(choices=TemplateType.choices, required=False)

    fields = serializers.ListField(child=serializers.DictField(), required=False)
    calculated_fields = serializers.ListField(child=serializers.DictField(), required=False)
    reference_ranges = serializers.DictField(required=False)
    critical_value_rules = serializers.DictField(required=False)
    sections = serializers.ListField(child=serializers.DictField(), required=False)
    header_config = serializers.DictField(required=False)
    footer_config = serializers.DictField(required=False)
    styling = serializers.DictField(required=False)
    print_config = serializers.DictField(required=False)
    specimen_config = serializers.DictField(required=False)


class TemplateCreateSerializer(_TemplateContentSerializer):
    # format and uniqueness are checked by TemplateStore
    template_code = serializers.CharField(max_length=64)
    template_name = serializers.CharField(max_length=255)
    category = serializers.CharField(max_length=64)
    is_default = serializers.BooleanField(required=False, default=False)


class TemplateUpdateSerializer(_TemplateContentSerializer):
    pass


class SectionsSerializer(serializers.Serializer):
    sections = serializers.ListField(child=serializers.DictField())


class EntryFieldsSerializer(serializers.Serializer):
    fields = serializers.ListField(child=serializers.DictField())


class StylingSerializer(serializers.Serializer):
    styling = serializers.DictField()


class ResolveQuerySerializer(serializers.Serializer):
    category = serializers.CharField(max_length=64)
    test_code = serializers.CharField(max_length=64, required=False, allow_blank=True)
