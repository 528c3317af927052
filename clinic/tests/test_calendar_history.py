from datetime import datetime

import pytest

from clinic.models import AppointmentStatus
from clinic.services.appointments import time_slot
from .factories import local, make_appointment, make_patient

pytestmark = pytest.mark.django_db


def test_calendar_events_and_availability(staff_client, patient, doctor, appt_type):
    kept = make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 10, 0))
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 11, 0), status=AppointmentStatus.CANCELLED)
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 12, 0), status=AppointmentStatus.NO_SHOW)

    # Sunday 6th to Monday 7th: the doctor works Monday to Friday
    r = staff_client.get('/api/appointments/calendar', {
        'startDate': local(2030, 1, 6, 0, 0).isoformat(),
        'endDate': local(2030, 1, 7, 23, 59).isoformat(),
        'doctorId': doctor.id,
    })
    assert r.status_code == 200
    data = r.data['data']
    assert [e['id'] for e in data['events']] == [kept.id]
    assert len(data['availability']) == 1
    block = data['availability'][0]
    assert block['start'] == local(2030, 1, 7, 9, 0).isoformat()
    assert block['end'] == local(2030, 1, 7, 17, 0).isoformat()
    assert block['rendering'] == 'background'
    assert block['color'] == '#e0f7fa'


def test_calendar_requires_dates(staff_client):
    r = staff_client.get('/api/appointments/calendar')
    assert r.status_code == 400
    assert r.data['success'] is False


def test_calendar_without_doctor_has_no_availability(staff_client, patient, doctor, appt_type):
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 10, 0))
    r = staff_client.get('/api/appointments/calendar', {
        'startDate': local(2030, 1, 7, 0, 0).isoformat(),
        'endDate': local(2030, 1, 8, 0, 0).isoformat(),
    })
    assert r.data['data']['availability'] == []
    assert len(r.data['data']['events']) == 1


def test_history_is_newest_first(staff_client, patient, doctor, appt_type):
    older = make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 9, 0))
    newer = make_appointment(patient, doctor, appt_type, local(2030, 1, 9, 9, 0))
    r = staff_client.get('/api/appointments/history')
    assert r.status_code == 200
    assert [a['id'] for a in r.data['data']['appointments']] == [newer.id, older.id]
    assert r.data['data']['pagination']['totalPages'] == 1


def test_status_report_has_percentages(staff_client, patient, doctor, appt_type):
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 9, 0), status=AppointmentStatus.COMPLETED)
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 10, 0), status=AppointmentStatus.COMPLETED)
    make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 11, 0), status=AppointmentStatus.CANCELLED)
    r = staff_client.get('/api/appointments/history', {'reportType': 'status'})
    rows = {row['status']: row for row in r.data['data']['report']}
    assert rows['COMPLETED']['count'] == 2
    assert rows['COMPLETED']['percentage'] == 66.67
    assert rows['CANCELLED']['percentage'] == 33.33


def test_patient_report_groups_with_first_and_last(staff_client, patient, doctor, appt_type):
    other = make_patient('Meera Shah')
    first = make_appointment(patient, doctor, appt_type, local(2030, 1, 7, 9, 0))
    last = make_appointment(patient, doctor, appt_type, local(2030, 1, 14, 9, 0))
    make_appointment(other, doctor, appt_type, local(2030, 1, 8, 9, 0))
    r = staff_client.get('/api/appointments/history', {'reportType': 'patient'})
    rows = r.data['data']['report']
    assert rows[0]['id'] == patient.id
    assert rows[0]['name'] == patient.name
    assert rows[0]['count'] == 2
    assert datetime.fromisoformat(rows[0]['firstAppointment']) == first.start_time
    assert datetime.fromisoformat(rows[0]['lastAppointment']) == last.start_time
    assert rows[1]['count'] == 1


def test_time_report_buckets_by_local_hour(staff_client, patient, doctor, appt_type):
    for hour in (7, 13, 18, 22):
        make_appointment(patient, doctor, appt_type, local(2030, 1, 7, hour, 0))
    r = staff_client.get('/api/appointments/history', {'reportType': 'time'})
    counts = {row['timeSlot']: row['count'] for row in r.data['data']['report']}
    assert counts == {
        'Morning (6AM-12PM)': 1,
        'Afternoon (12PM-5PM)': 1,
        'Evening (5PM-9PM)': 1,
        'Night (9PM-6AM)': 1,
    }


def test_time_slot_boundaries():
    assert time_slot(local(2030, 1, 7, 6, 0)) == 'Morning (6AM-12PM)'
    assert time_slot(local(2030, 1, 7, 12, 0)) == 'Afternoon (12PM-5PM)'
    assert time_slot(local(2030, 1, 7, 21, 0)) == 'Night (9PM-6AM)'
    assert time_slot(local(2030, 1, 7, 5, 59)) == 'Night (9PM-6AM)'


def test_unknown_report_type_rejected(staff_client):
    r = staff_client.get('/api/appointments/history', {'reportType': 'weather'})
    assert r.status_code == 400


def test_calendar_range_is_capped(staff_client):
    r = staff_client.get('/api/appointments/calendar', {
        'startDate': local(2030, 1, 1, 0, 0).isoformat(),
        'endDate': local(2031, 6, 1, 0, 0).isoformat(),
    })
    assert r.status_code == 400
    assert r.data['error'] == 'Calendar range cannot exceed 366 days'
