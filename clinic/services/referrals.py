"""
Doctor-to-doctor referrals.

Creating a referral can also book the receiving doctor.  The referral,
the new appointment with its reminder, both notifications and the note
on the original appointment are written in one transaction.
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, AppointmentNote, AppointmentReminder, DoctorProfile, Referral
from clinic.services.audit import log_action
from clinic.services.notifications import notify
from clinic.services.pagination import paginate
from clinic.services.reminders import create_reminder
from clinic.services.scheduling import book_appointment, next_business_day
from clinic.services.text import clean_text

logger = logging.getLogger(__name__)

DEFAULT_REFERRAL_TIME = time(9, 0)
DEFAULT_REFERRAL_DURATION = 30


def create_referral(
    user,
    *,
    original: Appointment,
    receiving_doctor: DoctorProfile,
    reason: str,
    notes: Optional[str] = None,
    urgency: str = 'NORMAL',
    create_new_appointment: bool = False,
    appointment_date: Optional[date] = None,
    appointment_time: Optional[time] = None,
    duration: Optional[int] = None,
) -> Referral:
    reason = clean_text(reason)
    notes = clean_text(notes)
    if not reason:
        raise ValueError('reason is required')
    if receiving_doctor.pk == original.doctor_id:
        raise ValueError('Cannot refer a patient to the same doctor')

    with transaction.atomic():
        referral = Referral.objects.create(
            patient=original.patient,
            referring_doctor=original.doctor,
            receiving_doctor=receiving_doctor,
            reason=reason,
            notes=notes,
            urgency=urgency,
            original_appointment=original,
            created_by=user if getattr(user, 'pk', None) else None,
        )

        new_appt = None
        if create_new_appointment:
            day = appointment_date or next_business_day()
            start = timezone.make_aware(
                datetime.combine(day, appointment_time or DEFAULT_REFERRAL_TIME),
                timezone.get_current_timezone(),
            )
            minutes = duration or DEFAULT_REFERRAL_DURATION
            new_appt = book_appointment(
                user,
                patient=original.patient,
                doctor=receiving_doctor,
                appointment_type=original.appointment_type,
                title=f"Referral: {original.title}",
                description=f"Referred by Dr. {original.doctor.name}. Reason: {reason}",
                start=start,
                end=start + timedelta(minutes=minutes),
                duration=minutes,
                notes=notes,
            )
            referral.new_appointment = new_appt
            referral.status = Referral.STATUS_SCHEDULED
            referral.save(update_fields=['new_appointment', 'status'])
            create_reminder(
                user, new_appt,
                reminder_type=AppointmentReminder.TYPE_INITIAL,
                channel=AppointmentReminder.CHANNEL_EMAIL,
                scheduled_time=start - timedelta(hours=24),
                content=(f"You have been referred to Dr. {receiving_doctor.name}. "
                         f"Your appointment is on {timezone.localtime(start):%Y-%m-%d %H:%M}."),
            )

        notify(
            receiving_doctor.user,
            title='New patient referral',
            message=(f"Dr. {original.doctor.name} referred {original.patient.name} to you"
                     f" ({urgency.lower()}): {reason}"),
            type='REFERRAL',
            link=f"/appointments/{new_appt.id}" if new_appt else '',
        )
        notify(
            original.doctor.user,
            title='Referral created',
            message=f"Your referral of {original.patient.name} to Dr. {receiving_doctor.name} was created",
            type='REFERRAL',
        )
        AppointmentNote.objects.create(
            appointment=original,
            note=f"Patient referred to Dr. {receiving_doctor.name}. Reason: {reason}",
            created_by=user if getattr(user, 'pk', None) else None,
        )

    logger.info("referral %s from doctor %s to doctor %s", referral.id, original.doctor_id, receiving_doctor.pk)
    log_action(user=user, action='referral.create', object_type='referral', object_id=referral.id,
               detail={'newAppointmentId': new_appt.id if new_appt else None})
    return referral


def serialize_referral(r: Referral) -> dict:
    return {
        'id': r.id,
        'patient': {'id': r.patient_id, 'name': r.patient.name},
        'referringDoctor': {'id': r.referring_doctor_id, 'name': r.referring_doctor.name},
        'receivingDoctor': {'id': r.receiving_doctor_id, 'name': r.receiving_doctor.name},
        'reason': r.reason,
        'notes': r.notes or None,
        'urgency': r.urgency,
        'status': r.status,
        'originalAppointmentId': r.original_appointment_id,
        'newAppointmentId': r.new_appointment_id,
        'createdAt': r.created_at.isoformat(),
    }


def list_referrals(*, patient_id=None, referring_doctor_id=None, receiving_doctor_id=None, status=None,
                   urgency=None, page=1, limit=None):
    qs = (Referral.objects
          .select_related('patient', 'referring_doctor__user', 'receiving_doctor__user')
          .order_by('-created_at', '-id'))
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if referring_doctor_id:
        qs = qs.filter(referring_doctor_id=referring_doctor_id)
    if receiving_doctor_id:
        qs = qs.filter(receiving_doctor_id=receiving_doctor_id)
    if status:
        qs = qs.filter(status=status)
    if urgency:
        qs = qs.filter(urgency=urgency)
    items, pagination = paginate(qs, page, limit)
    return [serialize_referral(r) for r in items], pagination
