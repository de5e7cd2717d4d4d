# dx_core/common/scope.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from rest_framework import status
from rest_framework.exceptions import NotAuthenticated
from rest_framework.response import Response

from dx_core.common.api.exceptions import ForbiddenError


@dataclass(frozen=True)
class Scope:
    hospital_id: UUID


# header lookup is case-insensitive
HDR_HOSPITAL = "X-Hospital-Id"

MISSING_SCOPE_MSG = "Missing scope header. Provide X-Hospital-Id."
INVALID_SCOPE_MSG = "Invalid scope header. Provide a valid UUID for X-Hospital-Id."
NO_ACCESS_MSG = "You do not have access to the selected hospital."


def _parse_uuid(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def resolve_scope_from_headers(request) -> Scope | None:
    raw = request.headers.get(HDR_HOSPITAL)
    if not raw:
        return None
    hospital_id = _parse_uuid(raw)
    if hospital_id is None:
        return None
    return Scope(hospital_id=hospital_id)


def get_scope_or_400(request) -> tuple[UUID | None, Response | None]:
    """
    Prefer the scope attached by HospitalScopeMiddleware. Requests the
    middleware could not vet (authenticated later by DRF, e.g. Basic auth, or
    built with APIRequestFactory) fall back to the header and are checked for
    membership here.
    """
    hospital_id = getattr(request, "hospital_id", None)
    if hospital_id:
        parsed = _parse_uuid(hospital_id)
        if parsed is not None:
            return parsed, None
        return None, Response({"detail": INVALID_SCOPE_MSG}, status=status.HTTP_400_BAD_REQUEST)

    scope = resolve_scope_from_headers(request)
    if scope is None:
        return None, Response({"detail": MISSING_SCOPE_MSG}, status=status.HTTP_400_BAD_REQUEST)

    from dx_core.hospitals.selectors import is_user_member_of_hospital

    user = getattr(request, "user", None)
    if user is None or not user.is_authenticated:
        raise NotAuthenticated()
    if not is_user_member_of_hospital(user_id=user.id, hospital_id=scope.hospital_id):
        raise ForbiddenError(NO_ACCESS_MSG)

    request.scope = scope
    request.hospital_id = scope.hospital_id
    return scope.hospital_id, None
