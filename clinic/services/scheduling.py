"""
Booking and the double-booking guard.

``find_conflicts`` is the single place that decides whether a doctor is
free for a time range.  Callers that write must hold the doctor's row
lock (``lock_doctor``) inside the same transaction, otherwise two
concurrent bookings can both see an empty calendar.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from clinic.exceptions import SchedulingConflict
from clinic.models import (
    Appointment, AppointmentNote, AppointmentStatus, AppointmentType, ConfirmationStatus, DoctorProfile, PatientProfile,
)
from clinic.services.audit import log_action
from clinic.services.realtime import broadcast_appointment_event
from clinic.services.reminders import cancel_pending_reminders, schedule_reminders
from clinic.services.text import clean_text

logger = logging.getLogger(__name__)

# statuses that no longer hold the doctor's time
RELEASED_STATUSES = (
    AppointmentStatus.CANCELLED,
    AppointmentStatus.RESCHEDULED,
    AppointmentStatus.NO_SHOW,
)


def find_conflicts(doctor: DoctorProfile, start: datetime, end: datetime, exclude_id: Optional[int] = None):
    """Appointments of ``doctor`` that overlap ``[start, end]``.

    An existing appointment conflicts when it starts inside ``[start, end)``,
    ends inside ``(start, end]``, or encloses the whole range.  The doctor
    is busy both on their own appointments and on co-consultations they
    have joined.
    """
    qs = (Appointment.objects
          .filter(Q(doctor=doctor) | Q(co_consulting_doctors__doctor=doctor))
          .exclude(status__in=RELEASED_STATUSES))
    if exclude_id:
        qs = qs.exclude(id=exclude_id)
    return qs.filter(
        Q(start_time__gte=start, start_time__lt=end)
        | Q(end_time__gt=start, end_time__lte=end)
        | Q(start_time__lte=start, end_time__gte=end)
    ).distinct()


def lock_doctor(doctor: DoctorProfile) -> DoctorProfile:
    return DoctorProfile.objects.select_for_update().get(pk=doctor.pk)


def ensure_no_conflict(doctor: DoctorProfile, start: datetime, end: datetime, exclude_id: Optional[int] = None,
                       detail: Optional[str] = None) -> None:
    clash = find_conflicts(doctor, start, end, exclude_id=exclude_id).order_by('start_time').first()
    if clash is not None:
        logger.warning(
            "conflict for doctor %s between %s and %s with appointment %s",
            doctor.pk, start.isoformat(), end.isoformat(), clash.id,
        )
        raise SchedulingConflict(detail)


def book_appointment(
    user,
    *,
    patient: PatientProfile,
    doctor: DoctorProfile,
    appointment_type: AppointmentType,
    title: str,
    start: datetime,
    end: datetime,
    duration: Optional[int] = None,
    department=None,
    description: str = '',
    location: str = '',
    notes: str = '',
    create_reminders: bool = False,
) -> Appointment:
    """Create a SCHEDULED appointment after the conflict check.

    The doctor row is locked for the rest of the transaction.  When
    ``create_reminders`` is set the default reminder schedule is written
    in the same transaction.
    """
    if end <= start:
        raise ValueError('endTime must be after startTime')
    if duration is None:
        duration = int((end - start).total_seconds() // 60)

    with transaction.atomic():
        lock_doctor(doctor)
        ensure_no_conflict(doctor, start, end)
        appt = Appointment.objects.create(
            patient=patient,
            doctor=doctor,
            department=department or doctor.department,
            appointment_type=appointment_type,
            title=clean_text(title),
            description=clean_text(description),
            start_time=start,
            end_time=end,
            duration=duration,
            location=clean_text(location),
            notes=clean_text(notes),
            status=AppointmentStatus.SCHEDULED,
            confirmation_status=ConfirmationStatus.PENDING,
            created_by=user if getattr(user, 'pk', None) else None,
        )
        if create_reminders:
            schedule_reminders(appt)

    logger.info(
        "booked appointment %s for patient %s with doctor %s at %s",
        appt.id, patient.pk, doctor.pk, start.isoformat(),
    )
    log_action(user=user, action='appointment.book', object_type='appointment', object_id=appt.id,
               detail={'doctorId': doctor.pk, 'patientId': patient.pk, 'startTime': start.isoformat()})
    broadcast_appointment_event('created', appt)
    return appt


def reschedule_appointment(
    user,
    appointment_id: int,
    *,
    start: datetime,
    end: datetime,
    duration: Optional[int] = None,
    notes: Optional[str] = None,
    create_reminders: bool = True,
) -> Appointment:
    """Move an appointment to a new time range.

    Finished or cancelled appointments cannot be moved.  Pending reminders
    of the old slot are cancelled and, unless disabled, RESCHEDULE
    reminders are written for the new slot.
    """
    if end <= start:
        raise ValueError('endTime must be after startTime')

    with transaction.atomic():
        appt = (Appointment.objects.select_for_update()
                .select_related('doctor', 'patient').filter(id=appointment_id).first())
        if appt is None:
            raise Appointment.DoesNotExist(f'appointment {appointment_id} not found')
        if appt.status in (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW):
            raise ValueError(f'Cannot reschedule an appointment with status: {appt.status}')

        doctors = [appt.doctor, *(c.doctor for c in appt.co_consulting_doctors.select_related('doctor'))]
        for doctor in sorted(doctors, key=lambda d: d.pk):
            lock_doctor(doctor)
        for doctor in doctors:
            ensure_no_conflict(doctor, start, end, exclude_id=appt.id)

        old_start = appt.start_time
        appt.start_time = start
        appt.end_time = end
        appt.duration = duration or int((end - start).total_seconds() // 60)
        appt.status = AppointmentStatus.RESCHEDULED
        appt.confirmation_status = ConfirmationStatus.PENDING
        appt.confirmation_time = None
        notes = clean_text(notes)
        if notes:
            appt.notes = f"{appt.notes}\n\nReschedule notes: {notes}" if appt.notes else f"Reschedule notes: {notes}"
        appt.save()

        cancel_pending_reminders(appt)
        if create_reminders:
            schedule_reminders(appt, rescheduled=True)

        who = (user.get_full_name() or user.username) if getattr(user, 'pk', None) else 'system'
        AppointmentNote.objects.create(
            appointment=appt,
            note=(f"Appointment rescheduled from {timezone.localtime(old_start):%Y-%m-%d %H:%M} "
                  f"to {timezone.localtime(start):%Y-%m-%d %H:%M} by {who}"),
            created_by=user if getattr(user, 'pk', None) else None,
        )

    logger.info("rescheduled appointment %s from %s to %s", appt.id, old_start.isoformat(), start.isoformat())
    log_action(user=user, action='appointment.reschedule', object_type='appointment', object_id=appt.id,
               detail={'from': old_start.isoformat(), 'to': start.isoformat()})
    broadcast_appointment_event('rescheduled', appt)
    return appt


def next_business_day(now: Optional[datetime] = None):
    """The next calendar day that is not a Saturday or Sunday."""
    day = timezone.localtime(now or timezone.now()).date() + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day
