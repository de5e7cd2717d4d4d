# dx_core/reports/api/views.py
from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from dx_core.common.api.lookups import UUID_LOOKUP_REGEX
from dx_core.common.api.pagination import paginate
from dx_core.common.idempotency import idempotent
from dx_core.common.scope import get_scope_or_400
from dx_core.reports.api.serializers import (
    AmendSerializer,
    ApproveSerializer,
    DiagnosticReportListSerializer,
    DiagnosticReportSerializer,
    QCCheckSerializer,
    ReleaseSerializer,
    ReportCreateSerializer,
    ReportSearchSerializer,
    ResultsUpdateSerializer,
    ReviewSerializer,
    StatisticsQuerySerializer,
)
from dx_core.reports.formatter import format_report
from dx_core.reports.models import DiagnosticReport
from dx_core.reports.selectors import report_statistics, search_reports
from dx_core.reports.services import ReportService


def _flag(request, name: str) -> bool:
    return (request.query_params.get(name) or "").strip().lower() in ("1", "true", "yes")


def _detail(report: DiagnosticReport) -> dict:
    out = DiagnosticReportSerializer(report).data
    out["formatted"] = format_report(report)
    return out


@extend_schema(tags=["Reports"])
class DiagnosticReportViewSet(viewsets.GenericViewSet):
    """
    Report lifecycle endpoints. Views parse input and resolve scope; every
    state change goes through ReportService.
    """
    permission_classes = [IsAuthenticated]
    serializer_class = DiagnosticReportSerializer
    queryset = DiagnosticReport.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    @extend_schema(
        parameters=[
            OpenApiParameter(name="patient_id", type=OpenApiTypes.UUID, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="category", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="report_id", type=OpenApiTypes.STR, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="has_critical", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: DiagnosticReportListSerializer(many=True)},
    )
    def list(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = ReportSearchSerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        qs = search_reports(hospital_id=hospital_id, **q.validated_data)
        return paginate(request, qs, DiagnosticReportListSerializer)

    @extend_schema(request=ReportCreateSerializer, responses={201: DiagnosticReportSerializer})
    @idempotent
    def create(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = ReportCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.create_report(
            hospital_id=hospital_id,
            patient_id=ser.validated_data.get("patient_id"),
            template_id=ser.validated_data.get("template_id"),
            order_item_id=ser.validated_data.get("order_item_id"),
            actor_user_id=request.user.id,
        )

        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        parameters=[
            OpenApiParameter(name="print", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False,
                             description="Count this fetch as a print."),
            OpenApiParameter(name="view", type=OpenApiTypes.BOOL, location=OpenApiParameter.QUERY, required=False,
                             description="Record a patient view (released reports only)."),
        ],
        responses={200: OpenApiTypes.OBJECT},
    )
    def retrieve(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        report = ReportService.get_report(
            hospital_id=hospital_id,
            report_id=pk,
            track_print=_flag(request, "print"),
            track_view=_flag(request, "view"),
            actor_user_id=request.user.id,
        )
        return Response(_detail(report), status=status.HTTP_200_OK)

    @extend_schema(request=ResultsUpdateSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["put"], url_path="results")
    def results(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = ResultsUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.update_results(
            hospital_id=hospital_id,
            report_id=pk,
            results=ser.validated_data["results"],
            specimens=ser.validated_data.get("specimens"),
            repeatable_sections_data=ser.validated_data.get("repeatable_sections_data"),
            actor_user_id=request.user.id,
        )
        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(request=QCCheckSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["post"], url_path="qc")
    def qc(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = QCCheckSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.perform_qc_check(
            hospital_id=hospital_id,
            report_id=pk,
            qc_status=ser.validated_data["qc_status"],
            qc_notes=ser.validated_data.get("qc_notes", ""),
            actor_user_id=request.user.id,
        )
        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(request=ReviewSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["post"], url_path="review")
    def review(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = ReviewSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.perform_review(
            hospital_id=hospital_id,
            report_id=pk,
            actor_user_id=request.user.id,
            **ser.validated_data,
        )
        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(request=ApproveSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = ApproveSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.approve_report(
            hospital_id=hospital_id,
            report_id=pk,
            approver_designation=ser.validated_data.get("approver_designation", ""),
            digital_signature=ser.validated_data.get("digital_signature", ""),
            actor_user_id=request.user.id,
        )
        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(request=ReleaseSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["post"], url_path="release")
    @idempotent
    def release(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = ReleaseSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.release_report(
            hospital_id=hospital_id,
            report_id=pk,
            release_mode=ser.validated_data["release_mode"],
            actor_user_id=request.user.id,
        )

        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(request=AmendSerializer, responses={200: DiagnosticReportSerializer})
    @action(detail=True, methods=["post"], url_path="amend")
    def amend(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        ser = AmendSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        report = ReportService.amend_report(
            hospital_id=hospital_id,
            report_id=pk,
            reason=ser.validated_data["reason"],
            new_values=ser.validated_data.get("new_values") or {},
            approved_by_user_id=ser.validated_data.get("approved_by_user_id"),
            actor_user_id=request.user.id,
        )
        return Response(DiagnosticReportSerializer(report).data, status=status.HTTP_200_OK)

    @extend_schema(
        parameters=[
            OpenApiParameter(name="date_from", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="date_to", type=OpenApiTypes.DATE, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: OpenApiTypes.OBJECT},
    )
    @action(detail=False, methods=["get"], url_path="statistics")
    def statistics(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = StatisticsQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)

        out = report_statistics(
            hospital_id=hospital_id,
            date_from=q.validated_data.get("date_from"),
            date_to=q.validated_data.get("date_to"),
        )
        return Response(out, status=status.HTTP_200_OK)
