# dx_core/report_templates/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from dx_core.common.api.lookups import UUID_LOOKUP_REGEX
from dx_core.common.api.pagination import paginate
from dx_core.common.scope import get_scope_or_400
from dx_core.report_templates.api.serializers import (
    EntryFieldsSerializer,
    ReportTemplateListSerializer,
    ReportTemplateSerializer,
    ResolveQuerySerializer,
    SectionsSerializer,
    StylingSerializer,
    TemplateCreateSerializer,
    TemplateUpdateSerializer,
)
from dx_core.report_templates.models import ReportTemplate
from dx_core.report_templates.selectors import list_templates, templates_grouped_by_category
from dx_core.report_templates.services import TemplateStore

RESOLVE_PARAMS = [
    OpenApiParameter(name="category", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=True),
    OpenApiParameter(name="test_code", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
]


@extend_schema(tags=["Report Templates"])
class ReportTemplateViewSet(viewsets.GenericViewSet):
    """
    Template CRUD and resolution. Every write goes through TemplateStore.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = ReportTemplateSerializer
    queryset = ReportTemplate.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        parameters=[
            OpenApiParameter(name="category", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="template_type", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="search", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: ReportTemplateListSerializer(many=True)},
    )
    def list(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        qs = list_templates(
            hospital_id=hospital_id,
            category=request.query_params.get("category") or None,
            template_type=request.query_params.get("template_type") or None,
            search=request.query_params.get("search") or None,
        )
        return paginate(request, qs, ReportTemplateListSerializer)

    @extend_schema(request=TemplateCreateSerializer, responses={201: ReportTemplateSerializer})
    def create(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = TemplateCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.create_template(
            hospital_id=hospital_id,
            data=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        template = TemplateStore.get_template(template_id=pk, hospital_id=hospital_id)
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(request=TemplateUpdateSerializer, responses={200: ReportTemplateSerializer})
    def partial_update(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = TemplateUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.update_template(
            template_id=pk,
            hospital_id=hospital_id,
            data=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    def destroy(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        TemplateStore.delete_template(template_id=pk, hospital_id=hospital_id, actor_user_id=request.user.id)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"], url_path="grouped")
    def grouped(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        grouped = templates_grouped_by_category(hospital_id=hospital_id)
        out = {cat: ReportTemplateListSerializer(items, many=True).data for cat, items in grouped.items()}
        return Response(out, status=status.HTTP_200_OK)

    @extend_schema(parameters=RESOLVE_PARAMS, responses={200: ReportTemplateSerializer})
    @action(detail=False, methods=["get"], url_path="resolve")
    def resolve(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = ResolveQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        template = TemplateStore.resolve_template_for_test(
            test_code=q.validated_data.get("test_code"),
            category=q.validated_data["category"],
            hospital_id=hospital_id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(parameters=RESOLVE_PARAMS, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["get"], url_path="entry-form")
    def entry_form(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = ResolveQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        out = TemplateStore.entry_form_config(
            test_code=q.validated_data.get("test_code"),
            category=q.validated_data["category"],
            hospital_id=hospital_id,
        )
        return Response(out, status=status.HTTP_200_OK)

    @extend_schema(parameters=RESOLVE_PARAMS, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["get"], url_path="print-config")
    def print_config(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = ResolveQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        out = TemplateStore.print_config(
            test_code=q.validated_data.get("test_code"),
            category=q.validated_data["category"],
            hospital_id=hospital_id,
        )
        return Response(out, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={200: OpenApiTypes.OBJECT})
    @action(detail=False, methods=["post"], url_path="initialize")
    def initialize(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        out = TemplateStore.initialize_hospital_templates(hospital_id=hospital_id, actor_user_id=request.user.id)
        return Response(out, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={201: ReportTemplateSerializer})
    @action(detail=True, methods=["post"], url_path="clone")
    def clone(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        template = TemplateStore.clone_template(template_id=pk, hospital_id=hospital_id, actor_user_id=request.user.id)
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=SectionsSerializer, responses={200: ReportTemplateSerializer})
    @action(detail=True, methods=["put"], url_path="sections")
    def sections(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = SectionsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.update_sections(
            template_id=pk,
            hospital_id=hospital_id,
            sections=ser.validated_data["sections"],
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(request=EntryFieldsSerializer, responses={200: ReportTemplateSerializer})
    @action(detail=True, methods=["put"], url_path="fields")
    def entry_fields(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = EntryFieldsSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.update_entry_fields(
            template_id=pk,
            hospital_id=hospital_id,
            fields=ser.validated_data["fields"],
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(request=StylingSerializer, responses={200: ReportTemplateSerializer})
    @action(detail=True, methods=["put"], url_path="styling")
    def styling(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = StylingSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.update_styling(
            template_id=pk,
            hospital_id=hospital_id,
            styling=ser.validated_data["styling"],
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={200: ReportTemplateSerializer})
    @action(detail=True, methods=["post"], url_path="set-default")
    def set_default(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        template = TemplateStore.set_as_default(template_id=pk, hospital_id=hospital_id, actor_user_id=request.user.id)
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)

    @extend_schema(request=TemplateUpdateSerializer, responses={201: ReportTemplateSerializer})
    @action(detail=True, methods=["post"], url_path="versions")
    def new_version(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = TemplateUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)

        template = TemplateStore.create_new_version(
            template_id=pk,
            hospital_id=hospital_id,
            data=ser.validated_data,
            actor_user_id=request.user.id,
        )
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_201_CREATED)

    @extend_schema(request=None, responses={200: ReportTemplateSerializer})
    @action(detail=True, methods=["post"], url_path="deactivate")
    def deactivate(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        template = TemplateStore.deactivate_template(template_id=pk, hospital_id=hospital_id, actor_user_id=request.user.id)
        return Response(ReportTemplateSerializer(template).data, status=status.HTTP_200_OK)
