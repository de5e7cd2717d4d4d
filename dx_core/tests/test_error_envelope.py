import json

import pytest
from django.contrib.auth.models import User
from django.test import RequestFactory
from rest_framework.exceptions import ValidationError

from dx_core.common.api.exceptions import (
    ConflictError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    api_exception_handler,
)
from dx_core.common.middleware import HospitalScopeMiddleware


@pytest.mark.django_db
def test_middleware_missing_scope_returns_error_envelope():
    rf = RequestFactory()
    req = rf.get("/api/v1/reports/")
    req.user = User.objects.create_user(username="u1", password="pass123")

    mw = HospitalScopeMiddleware(get_response=lambda r: None)
    resp = mw.process_request(req)

    assert resp is not None
    assert resp.status_code == 400

    body = json.loads(resp.content.decode("utf-8"))
    assert body["error"]["code"] == "validation_error"
    assert "Missing scope header" in body["error"]["message"]
    assert body["error"]["request_id"]


@pytest.mark.parametrize(
    "exc, http_status, code",
    [
        (NotFoundError("Report"), 404, "not_found"),
        (ConflictError("Template code 'CBC' already exists."), 409, "conflict"),
        (InvalidTransitionError("Cannot approve a report in status DRAFT."), 409, "invalid_transition"),
        (LockedError(), 423, "locked"),
    ],
)
def test_domain_errors_map_to_status_and_code(exc, http_status, code):
    req = RequestFactory().get("/api/v1/reports/")
    resp = api_exception_handler(exc, {"request": req})

    assert resp.status_code == http_status
    assert resp.data["error"]["code"] == code
    assert resp.data["error"]["message"] == str(exc.detail)
    assert resp.data["error"]["details"] is None


def test_field_validation_errors_keep_details():
    req = RequestFactory().post("/api/v1/reports/")
    resp = api_exception_handler(ValidationError({"HB": ["Hemoglobin must be a number."]}), {"request": req})

    assert resp.status_code == 400
    assert resp.data["error"]["code"] == "validation_error"
    assert resp.data["error"]["message"] == "Request failed."
    assert resp.data["error"]["details"] == {"HB": ["Hemoglobin must be a number."]}


def test_not_found_names_the_entity():
    assert str(NotFoundError("Template").detail) == "Template not found."
    assert str(NotFoundError(detail="Unknown report category 'X'.").detail) == "Unknown report category 'X'."
