# dx_core/common/api/exceptions.py
"""
Error taxonomy and the single error envelope:

    {"error": {"code", "message", "details", "request_id"}}

Services raise the classes below; DRF's handler turns them into responses and
``api_exception_handler`` reshapes every response into the envelope.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotAuthenticated,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def ensure_request_id(request) -> str:
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            request.request_id = rid
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """Shared by the DRF handler and by middleware JsonResponses."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        }
    }


# -------------------------------------------------------------------
# Domain errors
# -------------------------------------------------------------------

class NotFoundError(NotFound):
    """Template, report, patient or order item absent (or outside the caller's hospital)."""
    default_code = "not_found"

    def __init__(self, entity: str = "Resource", detail=None):
        super().__init__(detail=detail or f"{entity} not found.")


class ForbiddenError(PermissionDenied):
    """Editing a system template, touching another hospital's data."""
    default_code = "permission_denied"


class ConflictError(APIException):
    """Business rule blocks the write (duplicate template code, template still in use)."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


class InvalidTransitionError(ConflictError):
    """Workflow operation not allowed from the report's current status."""
    default_detail = "Operation not allowed in the current report status."
    default_code = "invalid_transition"


class LockedError(APIException):
    """Write attempt on a signed-off report outside the amendment path."""
    status_code = status.HTTP_423_LOCKED
    default_detail = "Report is locked and cannot be modified."
    default_code = "locked"


# -------------------------------------------------------------------
# Envelope handler
# -------------------------------------------------------------------

# order matters: subclasses of PermissionDenied / NotFound keep the family code
_FAMILY_CODES: tuple[tuple[type, str], ...] = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (PermissionDenied, "permission_denied"),
    (NotFound, "not_found"),
    (Http404, "not_found"),
)


def error_code(exc: Exception) -> str:
    for family, code in _FAMILY_CODES:
        if isinstance(exc, family):
            return code
    if isinstance(exc, APIException):
        return exc.default_code or "api_error"
    return "error"


def split_message(data: Any) -> tuple[str, Any]:
    """
    {"detail": msg}            -> (msg, None)
    {"detail": msg, **extra}   -> (msg, extra)
    [msg]                      -> (msg, None)
    field errors               -> ("Request failed.", data)
    """
    if isinstance(data, dict) and "detail" in data:
        extra = {k: v for k, v in data.items() if k != "detail"}
        return str(data["detail"]), extra or None
    if isinstance(data, list) and len(data) == 1:
        return str(data[0]), None
    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled error", exc_info=exc)
        return Response(
            build_error_envelope(request=request, code="server_error", message="Unexpected server error."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, details = split_message(response.data)
    return Response(
        build_error_envelope(request=request, code=error_code(exc), message=message, details=details),
        status=response.status_code,
        headers=response.headers,
    )
