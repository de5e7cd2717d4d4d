# dx_core/conftest.py
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from dx_core.hospitals.models import Hospital, HospitalMembership
from dx_core.orders.models import DiagnosticOrder, OrderItem
from dx_core.patients.models import Patient, Sex


@pytest.fixture
def hospital(db):
    return Hospital.objects.create(code="city-general", name="City General Hospital")


@pytest.fixture
def other_hospital(db):
    return Hospital.objects.create(code="lakeside", name="Lakeside Clinic")


@pytest.fixture
def user(db, hospital):
    """
    Lab user with an active membership in `hospital` only.
    """
    User = get_user_model()
    user = User.objects.create_user(username="labtech", password="testpass", is_active=True)
    HospitalMembership.objects.create(
        hospital=hospital,
        user=user,
        role_code="lab-technician",
        designation="Senior Lab Technician",
        is_active=True,
    )
    return user


@pytest.fixture
def api_client(user):
    # force_login so HospitalScopeMiddleware sees the user and checks membership
    c = APIClient()
    c.force_login(user)
    return c


@pytest.fixture
def patient(db, hospital):
    return Patient.objects.create(
        hospital_id=hospital.id,
        full_name="Asha Rao",
        mrn="MRN-0001",
        sex=Sex.FEMALE,
    )


@pytest.fixture
def male_patient(db, hospital):
    return Patient.objects.create(
        hospital_id=hospital.id,
        full_name="Vikram Shah",
        mrn="MRN-0002",
        sex=Sex.MALE,
    )


@pytest.fixture
def order_item(db, hospital, patient):
    order = DiagnosticOrder.objects.create(hospital_id=hospital.id, patient=patient)
    return OrderItem.objects.create(
        hospital_id=hospital.id,
        order=order,
        patient=patient,
        test_code="CBC",
        test_category="BLOOD_TEST",
        test_name="Complete Blood Count",
    )


@pytest.fixture
def system_templates(db):
    from dx_core.report_templates.services import TemplateStore

    TemplateStore.seed_system_templates()


@pytest.fixture
def cbc_template(system_templates):
    from dx_core.report_templates.selectors import system_template_by_code

    return system_template_by_code(template_code="CBC_DEFAULT")
