# dx_core/common/sequences.py
from __future__ import annotations

from datetime import date

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from dx_core.common.models import Sequence


@transaction.atomic
def next_daily_value(*, scope_key: str, day: date | None = None) -> int:
    """
    Transactional increment-and-read for (scope_key, day).

    The row is created on first use and locked for the rest of the
    transaction, so two callers can never read the same value.
    """
    day = day or timezone.localdate()

    seq, _ = Sequence.objects.select_for_update().get_or_create(scope_key=scope_key, day=day)
    Sequence.objects.filter(pk=seq.pk).update(last_value=F("last_value") + 1)
    seq.refresh_from_db(fields=["last_value"])
    return int(seq.last_value)
