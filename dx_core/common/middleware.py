# dx_core/common/middleware.py
from __future__ import annotations

import logging

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

from dx_core.common.api.exceptions import build_error_envelope
from dx_core.common.scope import HDR_HOSPITAL, INVALID_SCOPE_MSG, MISSING_SCOPE_MSG, NO_ACCESS_MSG, Scope, _parse_uuid

logger = logging.getLogger(__name__)


class HospitalScopeMiddleware(MiddlewareMixin):
    """
    Resolves the caller's hospital from ``X-Hospital-Id`` for /api/v1/ calls
    and checks membership. Must sit after AuthenticationMiddleware.

    400 when the header is missing or not a UUID, 403 when the user is not a
    member. Anonymous requests pass through and are rejected by DRF
    permissions. On success sets ``request.scope`` and ``request.hospital_id``.
    """

    ENFORCED_PREFIX = "/api/v1/"
    UNSCOPED_PATHS = frozenset({"/api/v1/"})

    def _reject(self, request, status_code: int, code: str, message: str) -> JsonResponse:
        return JsonResponse(build_error_envelope(request=request, code=code, message=message), status=status_code)

    def process_request(self, request):
        request.scope = None
        request.hospital_id = None

        path = request.path or ""
        if not path.startswith(self.ENFORCED_PREFIX) or path in self.UNSCOPED_PATHS:
            return None

        user = getattr(request, "user", None)
        if user is None or not user.is_authenticated:
            return None

        raw = request.headers.get(HDR_HOSPITAL)
        if not raw:
            return self._reject(request, 400, "validation_error", MISSING_SCOPE_MSG)

        hospital_id = _parse_uuid(raw)
        if hospital_id is None:
            return self._reject(request, 400, "validation_error", INVALID_SCOPE_MSG)

        from dx_core.hospitals.selectors import is_user_member_of_hospital

        if not is_user_member_of_hospital(user_id=user.id, hospital_id=hospital_id):
            logger.info("User %s denied scope for hospital %s", user.id, hospital_id)
            return self._reject(request, 403, "permission_denied", NO_ACCESS_MSG)

        request.scope = Scope(hospital_id=hospital_id)
        request.hospital_id = hospital_id
        return None
