# dx_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from dx_core.common.api.exceptions import NotFoundError
from dx_core.patients.models import Patient


def get_patient(*, hospital_id: UUID, patient_id: UUID) -> Patient:
    try:
        return Patient.objects.get(id=patient_id, hospital_id=hospital_id)
    except Patient.DoesNotExist:
        raise NotFoundError("Patient")
