# dx_core/common/idempotency.py
"""
Replay of write responses keyed by the ``Idempotency-Key`` header.

A retried request with the same key, user, hospital, method and path gets the
first successful response back instead of repeating the write. Failed
responses are never stored, so a corrected retry goes through.

Backends (``DX_IDEMPOTENCY_BACKEND``):
    "db"      IdempotencyRecord rows, unique per identity (default)
    "memory"  process-local dict for dev and tests
"""
from __future__ import annotations

import functools
import threading
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from rest_framework.response import Response

from dx_core.common.models import IdempotencyRecord
from dx_core.common.scope import get_scope_or_400

KEY_META = "HTTP_IDEMPOTENCY_KEY"

Identity = tuple[str, str, str, str, str]


class MemoryStore:
    def __init__(self):
        self._lock = threading.Lock()
        self._data: dict[Identity, tuple[int, Any]] = {}

    def load(self, ident: Identity) -> tuple[int, Any] | None:
        with self._lock:
            return self._data.get(ident)

    def save(self, ident: Identity, status_code: int, data: Any) -> None:
        with self._lock:
            self._data.setdefault(ident, (status_code, data))


class DatabaseStore:
    @staticmethod
    def _lookup(ident: Identity) -> dict:
        hospital_id, user_id, method, path, key = ident
        return {
            "hospital_id": hospital_id,
            "user_id": int(user_id),
            "method": method,
            "path": path,
            "idempotency_key": key,
        }

    def load(self, ident: Identity) -> tuple[int, Any] | None:
        rec = IdempotencyRecord.objects.filter(**self._lookup(ident)).first()
        return None if rec is None else (rec.status_code, rec.response_data)

    def save(self, ident: Identity, status_code: int, data: Any) -> None:
        try:
            with transaction.atomic():
                IdempotencyRecord.objects.create(status_code=status_code, response_data=data, **self._lookup(ident))
        except IntegrityError:
            # a concurrent retry stored it first
            return


_memory_store = MemoryStore()


def get_store() -> MemoryStore | DatabaseStore:
    if getattr(settings, "DX_IDEMPOTENCY_BACKEND", "db") == "memory":
        return _memory_store
    return DatabaseStore()


def request_identity(request, hospital_id) -> Identity | None:
    key = (request.META.get(KEY_META) or "").strip()
    if not key:
        return None
    return (str(hospital_id), str(request.user.id), request.method.upper(), request.path, key)


def idempotent(view_method):
    """
    Wrap a viewset method so a repeated Idempotency-Key replays its response.
    Requests without the header, or without a resolvable scope, pass through.
    """

    @functools.wraps(view_method)
    def wrapper(self, request, *args, **kwargs):
        hospital_id, err = get_scope_or_400(request)
        ident = request_identity(request, hospital_id) if err is None else None
        if ident is None:
            return view_method(self, request, *args, **kwargs)

        store = get_store()
        hit = store.load(ident)
        if hit is not None:
            status_code, data = hit
            return Response(data, status=status_code)

        response = view_method(self, request, *args, **kwargs)
        if 200 <= response.status_code < 300:
            store.save(ident, response.status_code, response.data)
        return response

    return wrapper
