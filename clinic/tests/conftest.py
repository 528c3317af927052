import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from .factories import make_department, make_doctor, make_patient, make_type, make_user


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters and cached payloads live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def department(db):
    return make_department()


@pytest.fixture
def doctor(department):
    return make_doctor('doc1', department=department, available_days=[1, 2, 3, 4, 5])


@pytest.fixture
def other_doctor(department):
    return make_doctor('doc2', department=department)


@pytest.fixture
def patient(db):
    return make_patient()


@pytest.fixture
def appt_type(db):
    return make_type()


@pytest.fixture
def receptionist(department):
    return make_user('desk1', 'receptionist', department=department)


@pytest.fixture
def staff_client(receptionist):
    client = APIClient()
    client.force_authenticate(user=receptionist)
    return client
