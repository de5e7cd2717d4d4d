# dx_core/hospitals/selectors.py
from __future__ import annotations

from uuid import UUID

from dx_core.hospitals.models import HospitalMembership


def is_user_member_of_hospital(*, user_id: int, hospital_id: UUID) -> bool:
    """
    Single source of truth used by scope enforcement.
    """
    return HospitalMembership.objects.filter(
        is_active=True,
        hospital_id=hospital_id,
        user_id=user_id,
        hospital__is_active=True,
    ).exists()
