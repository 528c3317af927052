import pytest
from rest_framework.test import APIClient

from clinic.models import (
    Appointment, CoConsultationNote, CoConsultationNoteSection, CoConsultingDoctor, Notification,
)
from .factories import local, make_appointment, make_doctor, make_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def third_doctor(department):
    return make_doctor('doc3', department=department)


def _payload(patient, primary, co_ids, appt_type, start, end, **extra):
    body = {
        'patientId': patient.id,
        'primaryDoctorId': primary.id,
        'coConsultingDoctorIds': co_ids,
        'appointmentTypeId': appt_type.id,
        'title': 'Joint cardiac review',
        'startTime': start.isoformat(),
        'endTime': end.isoformat(),
        'reason': 'Complex case',
        'urgency': 'HIGH',
    }
    body.update(extra)
    return body


def _client_for(user):
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def co_consultation(staff_client, patient, doctor, other_doctor, appt_type):
    r = staff_client.post('/api/appointments/co-consultations', _payload(
        patient, doctor, [other_doctor.id], appt_type, local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0),
    ), format='json')
    assert r.status_code == 201
    return Appointment.objects.get(id=r.data['data']['id'])


def test_create_co_consultation(staff_client, patient, doctor, other_doctor, third_doctor, appt_type):
    r = staff_client.post('/api/appointments/co-consultations', _payload(
        patient, doctor, [other_doctor.id, third_doctor.id, other_doctor.id], appt_type,
        local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0), notes='Bring the echo report',
    ), format='json')
    assert r.status_code == 201
    data = r.data['data']
    assert data['isCoConsultation'] is True
    assert data['status'] == 'SCHEDULED'
    assert data['duration'] == 60
    assert [d['id'] for d in data['coConsultingDoctors']] == [other_doctor.id, third_doctor.id]
    assert data['coConsultationNotes'][0]['reason'] == 'Complex case'
    assert data['coConsultationNotes'][0]['urgency'] == 'HIGH'
    assert data['coConsultationNotes'][0]['content'] == 'Bring the echo report'

    for d in (doctor, other_doctor, third_doctor):
        assert Notification.objects.filter(user=d.user, type='APPOINTMENT').count() == 1


def test_primary_doctor_conflict(staff_client, patient, doctor, other_doctor, appt_type):
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 10, 30))
    r = staff_client.post('/api/appointments/co-consultations', _payload(
        patient, doctor, [other_doctor.id], appt_type, local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0),
    ), format='json')
    assert r.status_code == 409
    assert r.data == {'success': False, 'error': 'Primary doctor has scheduling conflicts'}
    assert not Appointment.objects.filter(is_co_consultation=True).exists()


def test_co_consulting_doctor_conflict_rolls_back(staff_client, patient, doctor, other_doctor, appt_type):
    make_appointment(patient, other_doctor, appt_type, local(2030, 1, 7, 9, 30), minutes=60)
    r = staff_client.post('/api/appointments/co-consultations', _payload(
        patient, doctor, [other_doctor.id], appt_type, local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0),
    ), format='json')
    assert r.status_code == 409
    assert r.data['error'] == 'One or more co-consulting doctors have scheduling conflicts'
    assert not CoConsultingDoctor.objects.exists()
    assert not CoConsultationNote.objects.exists()
    assert not Notification.objects.exists()


def test_joined_co_consultation_blocks_regular_booking(staff_client, co_consultation, patient, other_doctor,
                                                       appt_type):
    r = staff_client.post('/api/appointments', {
        'patientId': patient.id,
        'doctorId': other_doctor.id,
        'appointmentTypeId': appt_type.id,
        'title': 'Checkup',
        'startTime': local(2030, 1, 7, 10, 30).isoformat(),
        'endTime': local(2030, 1, 7, 11, 0).isoformat(),
        'duration': 30,
    }, format='json')
    assert r.status_code == 409


def test_reschedule_checks_co_consulting_doctors(staff_client, co_consultation, patient, other_doctor, appt_type):
    make_appointment(patient, other_doctor, appt_type, local(2030, 1, 8, 10, 0))
    r = staff_client.post('/api/appointments/reschedule', {
        'appointmentId': co_consultation.id,
        'startTime': local(2030, 1, 8, 10, 0).isoformat(),
        'endTime': local(2030, 1, 8, 11, 0).isoformat(),
    }, format='json')
    assert r.status_code == 409


def test_validation_errors(staff_client, patient, doctor, other_doctor, appt_type):
    start, end = local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0)
    r = staff_client.post('/api/appointments/co-consultations',
                          _payload(patient, doctor, [], appt_type, start, end), format='json')
    assert r.status_code == 400
    r = staff_client.post('/api/appointments/co-consultations',
                          _payload(patient, doctor, [doctor.id], appt_type, start, end), format='json')
    assert r.status_code == 400
    assert r.data['error'] == 'The primary doctor cannot also be a co-consulting doctor'
    r = staff_client.post('/api/appointments/co-consultations',
                          _payload(patient, doctor, [other_doctor.id, 9999], appt_type, start, end), format='json')
    assert r.status_code == 404
    assert r.data['error'] == 'One or more co-consulting doctors not found'


def test_list_matches_primary_and_co_consulting_doctor(staff_client, co_consultation, doctor, other_doctor,
                                                       third_doctor, patient, appt_type):
    make_appointment(patient, other_doctor, appt_type, local(2030, 1, 9, 9, 0))
    for d, expected in ((doctor, 1), (other_doctor, 1), (third_doctor, 0)):
        r = staff_client.get('/api/appointments/co-consultations', {'doctorId': d.id})
        assert r.status_code == 200
        assert r.data['data']['pagination']['total'] == expected
    rows = staff_client.get('/api/appointments/co-consultations').data['data']['coConsultations']
    assert [row['id'] for row in rows] == [co_consultation.id]


def test_involved_doctor_adds_section(co_consultation, doctor, other_doctor):
    client = _client_for(other_doctor.user)
    r = client.post('/api/appointments/co-consultations/notes', {
        'appointmentId': co_consultation.id,
        'content': 'Agreed plan',
        'sectionTitle': 'Cardiology',
        'sectionContent': 'Start beta blocker',
    }, format='json')
    assert r.status_code == 200
    note = r.data['data']['note']
    assert note['content'] == 'Agreed plan'
    assert [s['title'] for s in note['sections']] == ['Cardiology']
    assert note['sections'][0]['doctor']['id'] == other_doctor.id

    updates = Notification.objects.filter(title='Co-consultation note updated')
    assert [n.user_id for n in updates] == [doctor.user_id]

    r = client.get('/api/appointments/co-consultations/notes', {'appointmentId': co_consultation.id})
    assert r.status_code == 200
    assert len(r.data['data']['notes']) == 1


def test_uninvolved_doctor_cannot_write_notes(co_consultation, third_doctor):
    r = _client_for(third_doctor.user).post('/api/appointments/co-consultations/notes', {
        'appointmentId': co_consultation.id, 'content': 'x',
    }, format='json')
    assert r.status_code == 403


def test_section_doctor_must_take_part(co_consultation, doctor, third_doctor):
    r = _client_for(doctor.user).post('/api/appointments/co-consultations/notes', {
        'appointmentId': co_consultation.id,
        'sectionTitle': 'Neuro',
        'sectionContent': 'n/a',
        'doctorId': third_doctor.id,
    }, format='json')
    assert r.status_code == 400
    assert r.data['error'] == 'Invalid doctor ID for this co-consultation'


def test_notes_on_regular_appointment_rejected(staff_client, patient, doctor, appt_type):
    appt = make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 9, 0))
    r = staff_client.get('/api/appointments/co-consultations/notes', {'appointmentId': appt.id})
    assert r.status_code == 400
    assert r.data['error'] == 'Appointment is not a co-consultation'


def test_delete_section_by_author_only(co_consultation, doctor, other_doctor):
    _client_for(other_doctor.user).post('/api/appointments/co-consultations/notes', {
        'appointmentId': co_consultation.id, 'sectionTitle': 'Plan', 'sectionContent': 'Echo in 3 months',
    }, format='json')
    section = CoConsultationNoteSection.objects.get()

    r = _client_for(doctor.user).delete('/api/appointments/co-consultations/notes',
                                        {'sectionId': section.id}, format='json')
    assert r.status_code == 403

    r = _client_for(other_doctor.user).delete('/api/appointments/co-consultations/notes',
                                              {'sectionId': section.id}, format='json')
    assert r.status_code == 200
    assert not CoConsultationNoteSection.objects.exists()


def test_admin_may_delete_any_section(co_consultation, other_doctor):
    _client_for(other_doctor.user).post('/api/appointments/co-consultations/notes', {
        'appointmentId': co_consultation.id, 'sectionTitle': 'Plan', 'sectionContent': 'Echo',
    }, format='json')
    section = CoConsultationNoteSection.objects.get()
    r = _client_for(make_user('root', 'admin')).delete('/api/appointments/co-consultations/notes',
                                                       {'sectionId': section.id}, format='json')
    assert r.status_code == 200


def test_patient_cannot_create_co_consultation(patient, doctor, other_doctor, appt_type):
    client = _client_for(make_user('pat5', 'patient'))
    r = client.post('/api/appointments/co-consultations', _payload(
        patient, doctor, [other_doctor.id], appt_type, local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0),
    ), format='json')
    assert r.status_code == 403
