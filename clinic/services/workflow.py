"""
Appointment status changes and their side effects.

Any status may be requested from any other; there is no transition
table.  What a status change does is decided by the target status alone.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple

from django.db import transaction
from django.utils import timezone

from clinic.models import (
    Appointment, AppointmentNote, AppointmentStatus, ConfirmationStatus, WaitingListEntry,
)
from clinic.services.audit import log_action
from clinic.services.realtime import broadcast_appointment_event
from clinic.services.scheduling import book_appointment
from clinic.services.text import clean_text

logger = logging.getLogger(__name__)

WAITING_LIST_STATUS = {
    AppointmentStatus.CHECKED_IN: WaitingListEntry.STATUS_CALLED,
    AppointmentStatus.IN_PROGRESS: WaitingListEntry.STATUS_SERVING,
    AppointmentStatus.COMPLETED: WaitingListEntry.STATUS_COMPLETED,
    AppointmentStatus.CANCELLED: WaitingListEntry.STATUS_CANCELLED,
    AppointmentStatus.NO_SHOW: WaitingListEntry.STATUS_CANCELLED,
}

# statuses a patient may set on their own appointment
PATIENT_STATUSES = (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED)


def _apply_side_effects(appt: Appointment, new_status: str, reason: Optional[str], now: datetime) -> None:
    if new_status == AppointmentStatus.CHECKED_IN:
        appt.check_in_time = now
    elif new_status == AppointmentStatus.COMPLETED:
        appt.check_out_time = now
    elif new_status == AppointmentStatus.CANCELLED:
        appt.cancelled_at = now
        appt.cancel_reason = reason or 'No reason provided'
    elif new_status == AppointmentStatus.NO_SHOW:
        appt.no_show = True
    elif new_status == AppointmentStatus.CONFIRMED:
        appt.confirmation_status = ConfirmationStatus.CONFIRMED
        appt.confirmation_time = now


def _status_note(new_status: str, reason: Optional[str], notes: Optional[str]) -> str:
    text = f"Status changed to {new_status}"
    if reason:
        text += f": {reason}"
    if notes:
        text += f"\nNotes: {notes}"
    return text


def update_status(
    user,
    appointment_id: int,
    new_status: str,
    *,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    follow_up_needed: bool = False,
    follow_up_notes: Optional[str] = None,
    follow_up_date: Optional[datetime] = None,
    follow_up_duration: Optional[int] = None,
    own_only: bool = False,
) -> Tuple[Appointment, Optional[Appointment]]:
    """Set ``new_status`` on an appointment and apply its side effects.

    Returns the updated appointment and, for a completed visit that asked
    for one, the follow-up appointment.  Everything runs in a single
    transaction: a conflicting follow-up slot rolls the status change
    back as well.

    With ``own_only`` the caller is a patient: only their own appointment
    may be touched and only CONFIRMED or CANCELLED may be requested.
    """
    if new_status not in AppointmentStatus.values:
        raise ValueError(f'Invalid status: {new_status}')
    reason = clean_text(reason)
    notes = clean_text(notes)

    with transaction.atomic():
        appt = (Appointment.objects.select_for_update(of=('self',))
                .select_related('patient', 'doctor__user', 'appointment_type', 'department')
                .filter(id=appointment_id).first())
        if appt is None:
            raise Appointment.DoesNotExist(f'appointment {appointment_id} not found')
        if own_only:
            if appt.patient.user_id != user.pk:
                raise PermissionError('You can only update your own appointments')
            if new_status not in PATIENT_STATUSES:
                raise PermissionError(f'Patients may not set status {new_status}')

        previous = appt.status
        now = timezone.now()
        appt.status = new_status
        _apply_side_effects(appt, new_status, reason, now)
        appt.save()

        if new_status in WAITING_LIST_STATUS:
            WaitingListEntry.objects.filter(appointment=appt).update(
                status=WAITING_LIST_STATUS[new_status], updated_at=now,
            )

        if reason or notes:
            AppointmentNote.objects.create(
                appointment=appt,
                note=_status_note(new_status, reason, notes),
                created_by=user if getattr(user, 'pk', None) else None,
            )

        follow_up = None
        if new_status == AppointmentStatus.COMPLETED and follow_up_needed:
            follow_up_notes = clean_text(follow_up_notes)
            appt.follow_up_needed = True
            appt.follow_up_notes = follow_up_notes or 'Follow-up appointment needed'
            appt.save(update_fields=['follow_up_needed', 'follow_up_notes', 'updated_at'])
            if follow_up_date:
                duration = follow_up_duration or appt.duration
                follow_up = book_appointment(
                    user,
                    patient=appt.patient,
                    doctor=appt.doctor,
                    department=appt.department,
                    appointment_type=appt.appointment_type,
                    title=f"Follow-up: {appt.title}",
                    description=follow_up_notes or 'Follow-up appointment',
                    start=follow_up_date,
                    end=follow_up_date + timedelta(minutes=duration),
                    duration=duration,
                    location=appt.location,
                    notes=f"Follow-up for appointment on {timezone.localtime(appt.start_time):%Y-%m-%d}",
                )

    logger.info("appointment %s status %s -> %s", appt.id, previous, new_status)
    log_action(user=user, action='appointment.status', object_type='appointment', object_id=appt.id,
               detail={'from': previous, 'to': new_status, 'followUpId': follow_up.id if follow_up else None})
    broadcast_appointment_event('status_changed', appt)
    return appt, follow_up
