"""
Integration tests for the appointment endpoints.

These exercise booking with the double-booking guard, listing and
pagination, the status side effects, reschedule and the role checks,
through Django REST Framework's APIClient.
"""
from datetime import timedelta
from unittest import mock

from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from ..models import (
    Appointment, AppointmentNote, AppointmentReminder, AppointmentStatus, WaitingListEntry,
)
from .factories import (
    local, make_appointment, make_department, make_doctor, make_patient, make_type, make_user,
)


class AppointmentAPITests(APITestCase):
    def setUp(self) -> None:
        self.dept = make_department()
        self.doctor = make_doctor('doc1', department=self.dept)
        self.patient = make_patient()
        self.appt_type = make_type()
        self.desk = make_user('desk1', 'receptionist', department=self.dept)
        self.client.force_authenticate(user=self.desk)

    def _book(self, start, end, **extra):
        payload = {
            'patientId': self.patient.id,
            'doctorId': self.doctor.id,
            'appointmentTypeId': self.appt_type.id,
            'title': 'Cardiac review',
            'startTime': start.isoformat(),
            'endTime': end.isoformat(),
            'duration': int((end - start).total_seconds() // 60),
        }
        payload.update(extra)
        return self.client.post('/api/appointments', payload, format='json')

    # ---------------------------------------------------------------- booking

    def test_book_appointment(self):
        start = local(2030, 1, 7, 10, 0)
        resp = self._book(start, start + timedelta(minutes=30))
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertTrue(resp.data['success'])
        data = resp.data['data']
        self.assertEqual(data['status'], 'SCHEDULED')
        self.assertEqual(data['confirmationStatus'], 'PENDING')
        self.assertEqual(data['department']['id'], self.dept.id)
        self.assertEqual(Appointment.objects.count(), 1)

    def test_overlapping_booking_returns_conflict(self):
        first = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30))
        self.assertEqual(first.status_code, 201)
        second = self._book(local(2030, 1, 7, 10, 15), local(2030, 1, 7, 10, 45))
        self.assertEqual(second.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(second.data, {'success': False, 'error': 'Scheduling conflict with existing appointment'})
        self.assertEqual(Appointment.objects.count(), 1)

    def test_enclosing_and_enclosed_ranges_conflict(self):
        self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 11, 0))
        inner = self._book(local(2030, 1, 7, 10, 15), local(2030, 1, 7, 10, 45))
        self.assertEqual(inner.status_code, 409)
        outer = self._book(local(2030, 1, 7, 9, 30), local(2030, 1, 7, 11, 30))
        self.assertEqual(outer.status_code, 409)

    def test_back_to_back_bookings_do_not_conflict(self):
        self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30))
        resp = self._book(local(2030, 1, 7, 10, 30), local(2030, 1, 7, 11, 0))
        self.assertEqual(resp.status_code, 201)

    def test_cancelled_slot_can_be_rebooked(self):
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 10, 0),
                         status=AppointmentStatus.CANCELLED)
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30))
        self.assertEqual(resp.status_code, 201)

    def test_other_doctor_same_time_is_allowed(self):
        self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30))
        other = make_doctor('doc2', department=self.dept)
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30), doctorId=other.id)
        self.assertEqual(resp.status_code, 201)

    def test_end_before_start_is_rejected(self):
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 9, 0), duration=60)
        self.assertEqual(resp.status_code, 400)
        self.assertFalse(resp.data['success'])
        self.assertEqual(resp.data['error'], 'endTime must be after startTime')
        self.assertFalse(Appointment.objects.exists())

    def test_missing_field_is_rejected(self):
        resp = self.client.post('/api/appointments', {'doctorId': self.doctor.id}, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertIn('patientId', resp.data['error'])

    def test_unknown_doctor_returns_404(self):
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30), doctorId=9999)
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.data['error'], 'Doctor not found')

    def test_booking_with_reminders_creates_default_schedule(self):
        start = local(2030, 1, 7, 10, 0)
        resp = self._book(start, start + timedelta(minutes=30), createReminders=True)
        self.assertEqual(resp.status_code, 201)
        reminders = AppointmentReminder.objects.filter(appointment_id=resp.data['data']['id']).order_by('scheduled_time')
        self.assertEqual([(r.channel, r.reminder_type) for r in reminders], [('EMAIL', 'INITIAL'), ('SMS', 'FOLLOWUP')])
        self.assertEqual(reminders[0].scheduled_time, start - timedelta(hours=24))
        self.assertEqual(reminders[1].scheduled_time, start - timedelta(hours=2))
        self.assertEqual(reminders[0].content, 'Reminder: You have an appointment scheduled for 2030-01-07 10:00')
        self.assertEqual(reminders[1].content, 'Reminder: Your appointment is in 2 hours at 10:00')

    def test_title_is_stripped_of_html(self):
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30), title='<b>Review</b>')
        self.assertEqual(resp.data['data']['title'], 'Review')

    def test_free_text_keeps_ampersand_and_less_than(self):
        resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30),
                          title='ECG & echo', notes='<a href="x">BP</a> < 90 <em>now</em>')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['title'], 'ECG & echo')
        appt = Appointment.objects.get(id=resp.data['data']['id'])
        self.assertEqual(appt.title, 'ECG & echo')
        self.assertEqual(appt.notes, 'BP < 90 now')

        resp = self._set_status(appt, 'CANCELLED', reason='Fever & cough, BP < 90')
        self.assertEqual(resp.data['data']['cancelReason'], 'Fever & cough, BP < 90')

    # ---------------------------------------------------------------- list / detail

    def test_pagination_second_page(self):
        base = local(2030, 2, 1, 8, 0)
        created = [
            make_appointment(self.patient, self.doctor, self.appt_type, base + timedelta(hours=i), title=f'Visit {i}')
            for i in range(25)
        ]
        resp = self.client.get('/api/appointments', {'page': 2, 'limit': 10})
        self.assertEqual(resp.status_code, 200)
        data = resp.data['data']
        self.assertEqual([a['id'] for a in data['appointments']], [a.id for a in created[10:20]])
        self.assertEqual(data['pagination'], {'total': 25, 'page': 2, 'limit': 10, 'totalPages': 3})

    def test_list_filters_by_status(self):
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 10, 0),
                         status=AppointmentStatus.CONFIRMED)
        resp = self.client.get('/api/appointments', {'status': 'CONFIRMED'})
        self.assertEqual(resp.data['data']['pagination']['total'], 1)
        self.assertEqual(resp.data['data']['appointments'][0]['status'], 'CONFIRMED')

    def test_list_rejects_unknown_status(self):
        resp = self.client.get('/api/appointments', {'status': 'LOST'})
        self.assertEqual(resp.status_code, 400)

    def test_fetching_twice_returns_same_payload(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        first = self.client.get(f'/api/appointments/{appt.id}')
        second = self.client.get(f'/api/appointments/{appt.id}')
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.data['data']['status'], second.data['data']['status'])
        self.assertEqual(first.data['data']['startTime'], second.data['data']['startTime'])
        self.assertEqual(first.data['data']['updatedAt'], second.data['data']['updatedAt'])

    def test_detail_unknown_returns_404(self):
        resp = self.client.get('/api/appointments/4242')
        self.assertEqual(resp.status_code, 404)
        self.assertFalse(resp.data['success'])

    # ---------------------------------------------------------------- status

    def _set_status(self, appt, new_status, **extra):
        payload = {'appointmentId': appt.id, 'status': new_status}
        payload.update(extra)
        return self.client.post('/api/appointments/status', payload, format='json')

    def test_cancel_sets_cancelled_at_and_reason(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self._set_status(appt, 'CANCELLED', reason='Patient travelling')
        self.assertEqual(resp.status_code, 200)
        appt.refresh_from_db()
        self.assertEqual(appt.status, 'CANCELLED')
        self.assertIsNotNone(appt.cancelled_at)
        self.assertEqual(appt.cancel_reason, 'Patient travelling')
        note = AppointmentNote.objects.get(appointment=appt)
        self.assertEqual(note.note, 'Status changed to CANCELLED: Patient travelling')

    def test_cancel_without_reason_uses_default(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        self._set_status(appt, 'CANCELLED')
        appt.refresh_from_db()
        self.assertEqual(appt.cancel_reason, 'No reason provided')
        self.assertFalse(AppointmentNote.objects.filter(appointment=appt).exists())

    def test_check_in_sets_check_in_time(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self._set_status(appt, 'CHECKED_IN')
        self.assertEqual(resp.status_code, 200)
        self.assertIsNotNone(resp.data['data']['checkInTime'])
        appt.refresh_from_db()
        self.assertIsNotNone(appt.check_in_time)

    def test_confirm_and_no_show_side_effects(self):
        a1 = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        a2 = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 10, 0))
        self._set_status(a1, 'CONFIRMED')
        self._set_status(a2, 'NO_SHOW')
        a1.refresh_from_db()
        a2.refresh_from_db()
        self.assertEqual(a1.confirmation_status, 'CONFIRMED')
        self.assertIsNotNone(a1.confirmation_time)
        self.assertTrue(a2.no_show)

    def test_unknown_status_is_rejected(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self._set_status(appt, 'TELEPORTED')
        self.assertEqual(resp.status_code, 400)

    def test_status_change_on_missing_appointment_returns_404(self):
        resp = self.client.post('/api/appointments/status', {'appointmentId': 777, 'status': 'CONFIRMED'},
                                format='json')
        self.assertEqual(resp.status_code, 404)

    def test_check_in_updates_waiting_list(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self.client.post('/api/waiting-list', {'appointmentId': appt.id}, format='json')
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.data['data']['queueNumber'], 1)
        self._set_status(appt, 'CHECKED_IN')
        self.assertEqual(WaitingListEntry.objects.get(appointment=appt).status, 'CALLED')
        self._set_status(appt, 'IN_PROGRESS')
        self.assertEqual(WaitingListEntry.objects.get(appointment=appt).status, 'SERVING')
        self._set_status(appt, 'NO_SHOW')
        self.assertEqual(WaitingListEntry.objects.get(appointment=appt).status, 'CANCELLED')

    def test_completed_and_cancelled_update_waiting_list(self):
        done = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        dropped = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 10, 0))
        for appt in (done, dropped):
            self.client.post('/api/waiting-list', {'appointmentId': appt.id}, format='json')
        self._set_status(done, 'COMPLETED')
        self._set_status(dropped, 'CANCELLED')
        self.assertEqual(WaitingListEntry.objects.get(appointment=done).status, 'COMPLETED')
        self.assertEqual(WaitingListEntry.objects.get(appointment=dropped).status, 'CANCELLED')

    def test_any_status_can_follow_any_other(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0),
                                status=AppointmentStatus.COMPLETED)
        resp = self._set_status(appt, 'SCHEDULED')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'SCHEDULED')

        self._set_status(appt, 'CANCELLED', reason='Duplicate')
        resp = self._set_status(appt, 'CONFIRMED')
        self.assertEqual(resp.status_code, 200)
        appt.refresh_from_db()
        self.assertEqual(appt.status, 'CONFIRMED')
        self.assertEqual(appt.confirmation_status, 'CONFIRMED')
        # side effects of earlier statuses are left in place
        self.assertIsNotNone(appt.cancelled_at)

    def test_completed_with_follow_up_creates_appointment(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0),
                                title='Cardiac review', location='Room 4')
        follow_date = local(2030, 1, 21, 9, 0)
        resp = self._set_status(appt, 'COMPLETED', followUpNeeded=True, followUpDate=follow_date.isoformat())
        self.assertEqual(resp.status_code, 200)
        follow = resp.data['data']['followUpAppointment']
        self.assertEqual(follow['title'], 'Follow-up: Cardiac review')
        self.assertEqual(follow['status'], 'SCHEDULED')
        self.assertEqual(follow['duration'], 30)
        self.assertEqual(follow['location'], 'Room 4')
        appt.refresh_from_db()
        self.assertTrue(appt.follow_up_needed)
        self.assertEqual(appt.follow_up_notes, 'Follow-up appointment needed')
        self.assertIsNotNone(appt.check_out_time)

    def test_follow_up_conflict_rolls_back_status_change(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 21, 9, 0))
        resp = self._set_status(appt, 'COMPLETED', followUpNeeded=True,
                                followUpDate=local(2030, 1, 21, 9, 15).isoformat())
        self.assertEqual(resp.status_code, 409)
        appt.refresh_from_db()
        self.assertEqual(appt.status, 'SCHEDULED')
        self.assertIsNone(appt.check_out_time)

    def test_status_stats(self):
        for i, st in enumerate(['COMPLETED', 'COMPLETED', 'CANCELLED', 'NO_SHOW']):
            make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9 + i, 0), status=st)
        resp = self.client.get('/api/appointments/status')
        self.assertEqual(resp.status_code, 200)
        data = resp.data['data']
        self.assertEqual(data['total'], 4)
        self.assertEqual(data['statusCounts']['COMPLETED'], 2)
        self.assertEqual(data['statusCounts']['SCHEDULED'], 0)
        self.assertEqual(data['completionRate'], 50.0)
        self.assertEqual(data['noShowRate'], 25.0)
        self.assertEqual(data['cancellationRate'], 25.0)

    # ---------------------------------------------------------------- reschedule

    def test_reschedule_moves_appointment_and_reminders(self):
        start = local(2030, 1, 7, 10, 0)
        booked = self._book(start, start + timedelta(minutes=30), createReminders=True).data['data']
        new_start = local(2030, 1, 9, 11, 0)
        resp = self.client.post('/api/appointments/reschedule', {
            'appointmentId': booked['id'],
            'startTime': new_start.isoformat(),
            'endTime': (new_start + timedelta(minutes=45)).isoformat(),
            'notes': 'Doctor on leave',
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.data['data']['status'], 'RESCHEDULED')
        self.assertEqual(resp.data['data']['duration'], 45)
        self.assertIn('Reschedule notes: Doctor on leave', resp.data['data']['notes'])
        reminders = AppointmentReminder.objects.filter(appointment_id=booked['id'])
        self.assertEqual(reminders.filter(status='CANCELLED').count(), 2)
        pending = reminders.filter(status='PENDING')
        self.assertEqual(pending.count(), 2)
        self.assertTrue(all(r.reminder_type == 'RESCHEDULE' for r in pending))
        note = AppointmentNote.objects.get(appointment_id=booked['id'])
        self.assertTrue(note.note.startswith('Appointment rescheduled from 2030-01-07 10:00 to 2030-01-09 11:00'))

    def test_reschedule_into_taken_slot_conflicts(self):
        a = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 11, 0))
        resp = self.client.post('/api/appointments/reschedule', {
            'appointmentId': a.id,
            'startTime': local(2030, 1, 7, 11, 0).isoformat(),
            'endTime': local(2030, 1, 7, 11, 30).isoformat(),
        }, format='json')
        self.assertEqual(resp.status_code, 409)

    def test_reschedule_within_own_slot_is_allowed(self):
        a = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self.client.post('/api/appointments/reschedule', {
            'appointmentId': a.id,
            'startTime': local(2030, 1, 7, 9, 15).isoformat(),
            'endTime': local(2030, 1, 7, 9, 45).isoformat(),
            'createReminders': False,
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        self.assertFalse(AppointmentReminder.objects.filter(appointment=a).exists())

    def test_cancelled_appointment_cannot_be_rescheduled(self):
        a = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0),
                             status=AppointmentStatus.CANCELLED)
        resp = self.client.post('/api/appointments/reschedule', {
            'appointmentId': a.id,
            'startTime': local(2030, 1, 8, 9, 0).isoformat(),
            'endTime': local(2030, 1, 8, 9, 30).isoformat(),
        }, format='json')
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.data['error'], 'Cannot reschedule an appointment with status: CANCELLED')

    def test_rescheduled_slot_does_not_block_new_bookings(self):
        a = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        resp = self.client.post('/api/appointments/reschedule', {
            'appointmentId': a.id,
            'startTime': local(2030, 1, 7, 11, 0).isoformat(),
            'endTime': local(2030, 1, 7, 11, 30).isoformat(),
        }, format='json')
        self.assertEqual(resp.status_code, 200)
        # RESCHEDULED releases the doctor's time like CANCELLED and NO_SHOW
        resp = self._book(local(2030, 1, 7, 11, 0), local(2030, 1, 7, 11, 30))
        self.assertEqual(resp.status_code, 201)

    # ---------------------------------------------------------------- broadcasts

    def test_booking_is_broadcast_after_commit(self):
        with mock.patch('clinic.services.realtime._send') as send:
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                resp = self._book(local(2030, 1, 7, 10, 0), local(2030, 1, 7, 10, 30))
                send.assert_not_called()
        self.assertEqual(len(callbacks), 1)
        event, payload = send.call_args.args
        self.assertEqual(event, 'created')
        self.assertEqual(payload['appointmentId'], resp.data['data']['id'])

    def test_rolled_back_follow_up_is_not_broadcast(self):
        appt = make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        make_appointment(self.patient, self.doctor, self.appt_type, local(2030, 1, 21, 9, 0))
        with mock.patch('clinic.services.realtime._send') as send:
            with self.captureOnCommitCallbacks(execute=True):
                resp = self._set_status(appt, 'COMPLETED', followUpNeeded=True,
                                        followUpDate=local(2030, 1, 21, 9, 15).isoformat())
        self.assertEqual(resp.status_code, 409)
        send.assert_not_called()


class AppointmentAccessTests(APITestCase):
    def setUp(self) -> None:
        self.dept = make_department()
        self.doctor = make_doctor('doc1', department=self.dept)
        self.appt_type = make_type()
        self.patient_user = make_user('pat1', 'patient')
        self.own_profile = make_patient('Own Patient', user=self.patient_user)
        self.stranger = make_patient('Someone Else')
        self.own_appt = make_appointment(self.own_profile, self.doctor, self.appt_type, local(2030, 1, 7, 9, 0))
        self.other_appt = make_appointment(self.stranger, self.doctor, self.appt_type, local(2030, 1, 7, 10, 0))

    def test_unauthenticated_is_rejected(self):
        resp = APIClient().get('/api/appointments')
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(resp.data['success'])

    def test_nurse_cannot_book(self):
        self.client.force_authenticate(user=make_user('nurse1', 'nurse'))
        resp = self.client.post('/api/appointments', {}, format='json')
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(self.client.get('/api/appointments').status_code, 200)

    def test_patient_sees_only_own_appointments(self):
        self.client.force_authenticate(user=self.patient_user)
        resp = self.client.get('/api/appointments')
        self.assertEqual([a['id'] for a in resp.data['data']['appointments']], [self.own_appt.id])
        self.assertEqual(self.client.get(f'/api/appointments/{self.other_appt.id}').status_code, 403)
        self.assertEqual(self.client.get(f'/api/appointments/{self.own_appt.id}').status_code, 200)

    def test_patient_cannot_book_for_someone_else(self):
        self.client.force_authenticate(user=self.patient_user)
        resp = self.client.post('/api/appointments', {
            'patientId': self.stranger.id,
            'doctorId': self.doctor.id,
            'appointmentTypeId': self.appt_type.id,
            'title': 'Checkup',
            'startTime': local(2030, 1, 8, 9, 0).isoformat(),
            'endTime': local(2030, 1, 8, 9, 30).isoformat(),
            'duration': 30,
        }, format='json')
        self.assertEqual(resp.status_code, 403)

    def test_patient_may_cancel_own_but_not_check_in(self):
        self.client.force_authenticate(user=self.patient_user)
        ok = self.client.post('/api/appointments/status',
                              {'appointmentId': self.own_appt.id, 'status': 'CANCELLED'}, format='json')
        self.assertEqual(ok.status_code, 200)
        denied = self.client.post('/api/appointments/status',
                                  {'appointmentId': self.own_appt.id, 'status': 'CHECKED_IN'}, format='json')
        self.assertEqual(denied.status_code, 403)
        foreign = self.client.post('/api/appointments/status',
                                   {'appointmentId': self.other_appt.id, 'status': 'CANCELLED'}, format='json')
        self.assertEqual(foreign.status_code, 403)
        self.other_appt.refresh_from_db()
        self.assertEqual(self.other_appt.status, 'SCHEDULED')
