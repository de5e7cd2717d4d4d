# dx_core/audit/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from dx_core.audit.api.serializers import AuditEventQuerySerializer, AuditEventSerializer
from dx_core.audit.models import AuditEvent
from dx_core.audit.selectors import list_audit_events
from dx_core.common.scope import get_scope_or_400


@extend_schema(tags=["Audit"])
class AuditEventViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(parameters=[AuditEventQuerySerializer], responses={200: AuditEventSerializer(many=True)})
    def list(self, request):
        hospital_id, err = get_scope_or_400(request)
        if err is not None:
            return err

        q = AuditEventQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        params = dict(q.validated_data)
        limit = params.pop("limit")

        qs = list_audit_events(hospital_id=hospital_id, **params)
        return Response(AuditEventSerializer(qs[:limit], many=True).data, status=status.HTTP_200_OK)
