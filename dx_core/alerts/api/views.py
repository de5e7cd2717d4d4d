from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from dx_core.alerts.api.serializers import AlertSerializer
from dx_core.alerts.models import Alert
from dx_core.alerts.selectors import alerts_qs
from dx_core.alerts.services import AlertService
from dx_core.common.api.lookups import UUID_LOOKUP_REGEX
from dx_core.common.api.pagination import paginate
from dx_core.common.scope import get_scope_or_400


@extend_schema(tags=["Alerts"])
class AlertViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = AlertSerializer
    queryset = Alert.objects.none()
    lookup_value_regex = UUID_LOOKUP_REGEX

    def list(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        qs = alerts_qs(hospital_id=hospital_id)
        status_q = request.query_params.get("status")
        severity_q = request.query_params.get("severity")
        report_id = request.query_params.get("report_id")
        if status_q:
            qs = qs.filter(status=status_q)
        if severity_q:
            qs = qs.filter(severity=severity_q)
        if report_id:
            qs = qs.filter(report_id=report_id)
        return paginate(request, qs.order_by("-created_at"), AlertSerializer)

    @action(methods=["POST"], detail=True, url_path="ack")
    def ack(self, request, pk=None):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        alert = AlertService.ack_alert(hospital_id=hospital_id, alert_id=pk, actor_user_id=request.user.id)
        return Response(AlertSerializer(alert).data, status=status.HTTP_200_OK)
