"""
Appointment reminders.

Reminders are plain rows; "sending" one is simulated by logging the
delivery and stamping the row.  Real transports (SMTP, SMS gateways,
WhatsApp) are not wired in.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, AppointmentReminder
from clinic.services.audit import log_action
from clinic.services.text import clean_text

logger = logging.getLogger(__name__)


def _when(dt: datetime) -> str:
    return f"{timezone.localtime(dt):%Y-%m-%d %H:%M}"


def _time(dt: datetime) -> str:
    return f"{timezone.localtime(dt):%H:%M}"


def _scheduled_text(appt: Appointment, hours: int, rescheduled: bool) -> str:
    if rescheduled:
        if hours >= 24:
            return f"Your appointment has been rescheduled to {_when(appt.start_time)}"
        return f"Reminder: Your rescheduled appointment is in {hours} hours at {_time(appt.start_time)}"
    if hours >= 24:
        return f"Reminder: You have an appointment scheduled for {_when(appt.start_time)}"
    return f"Reminder: Your appointment is in {hours} hours at {_time(appt.start_time)}"


def schedule_reminders(appt: Appointment, rescheduled: bool = False) -> list[AppointmentReminder]:
    """Write the default reminder schedule for ``appt``.

    Each ``(hours_before, channel, type)`` entry of
    ``APPOINTMENT_REMINDER_SCHEDULE`` yields one PENDING reminder.  For a
    rescheduled appointment every reminder is of type RESCHEDULE.
    """
    created = []
    for hours, channel, reminder_type in settings.APPOINTMENT_REMINDER_SCHEDULE:
        created.append(AppointmentReminder.objects.create(
            appointment=appt,
            reminder_type=AppointmentReminder.TYPE_RESCHEDULE if rescheduled else reminder_type,
            channel=channel,
            scheduled_time=appt.start_time - timedelta(hours=hours),
            content=_scheduled_text(appt, hours, rescheduled),
        ))
    return created


def cancel_pending_reminders(appt: Appointment) -> int:
    return AppointmentReminder.objects.filter(
        appointment=appt, status=AppointmentReminder.STATUS_PENDING,
    ).update(status=AppointmentReminder.STATUS_CANCELLED)


def generate_content(appt: Appointment, reminder_type: str) -> str:
    """Default reminder text for ``reminder_type``."""
    patient = appt.patient.name
    doctor = appt.doctor.name
    when = _when(appt.start_time)
    where = appt.location or 'the hospital'
    if reminder_type == AppointmentReminder.TYPE_INITIAL:
        return (f"Dear {patient}, this is a reminder of your {appt.appointment_type.name} appointment "
                f"with Dr. {doctor} on {when} at {where}.")
    if reminder_type == AppointmentReminder.TYPE_FOLLOWUP:
        return (f"Dear {patient}, your follow-up appointment with Dr. {doctor} is on {when}. "
                f"Please arrive 15 minutes early.")
    if reminder_type == AppointmentReminder.TYPE_CONFIRMATION:
        return (f"Dear {patient}, please confirm your appointment with Dr. {doctor} on {when} "
                f"by replying YES, or NO to cancel.")
    if reminder_type == AppointmentReminder.TYPE_RESCHEDULE:
        return f"Dear {patient}, your appointment with Dr. {doctor} has been rescheduled to {when}."
    return f"Dear {patient}, you have an appointment with Dr. {doctor} on {when}."


def create_reminder(
    user,
    appt: Appointment,
    *,
    reminder_type: str,
    channel: str,
    scheduled_time: datetime,
    content: Optional[str] = None,
) -> AppointmentReminder:
    content = clean_text(content) or generate_content(appt, reminder_type)
    reminder = AppointmentReminder.objects.create(
        appointment=appt,
        reminder_type=reminder_type,
        channel=channel,
        scheduled_time=scheduled_time,
        content=content,
    )
    log_action(user=user, action='reminder.create', object_type='reminder', object_id=reminder.id,
               detail={'appointmentId': appt.id, 'channel': channel})
    return reminder


def update_reminder(user, reminder: AppointmentReminder, **changes) -> AppointmentReminder:
    """Apply the given field changes; ``None`` values are ignored."""
    fields = []
    for name in ('scheduled_time', 'content', 'status', 'channel', 'reminder_type'):
        value = changes.get(name)
        if value is None:
            continue
        if name == 'content':
            value = clean_text(value)
        setattr(reminder, name, value)
        fields.append(name)
    if fields:
        reminder.save(update_fields=fields)
        log_action(user=user, action='reminder.update', object_type='reminder', object_id=reminder.id,
                   detail={'fields': fields})
    return reminder


def _deliver(reminder: AppointmentReminder) -> None:
    # no transport is configured; delivery is recorded in the log only
    logger.info(
        "sending %s reminder %s for appointment %s: %s",
        reminder.channel, reminder.id, reminder.appointment_id, reminder.content,
    )


def send_reminder(user, reminder: AppointmentReminder) -> AppointmentReminder:
    if reminder.status == AppointmentReminder.STATUS_CANCELLED:
        raise ValueError('Cannot send a cancelled reminder')
    _deliver(reminder)
    reminder.status = AppointmentReminder.STATUS_SENT
    reminder.sent_time = timezone.now()
    reminder.save(update_fields=['status', 'sent_time'])
    log_action(user=user, action='reminder.send', object_type='reminder', object_id=reminder.id,
               detail={'channel': reminder.channel})
    return reminder


def cancel_reminder(user, reminder: AppointmentReminder) -> AppointmentReminder:
    reminder.status = AppointmentReminder.STATUS_CANCELLED
    reminder.save(update_fields=['status'])
    log_action(user=user, action='reminder.cancel', object_type='reminder', object_id=reminder.id)
    return reminder


def send_due_reminders(now: Optional[datetime] = None, limit: Optional[int] = None) -> int:
    """Send every PENDING reminder whose scheduled time has passed."""
    now = now or timezone.now()
    qs = (AppointmentReminder.objects
          .filter(status=AppointmentReminder.STATUS_PENDING, scheduled_time__lte=now)
          .order_by('scheduled_time'))
    if limit:
        qs = qs[:limit]
    sent = 0
    for reminder in qs:
        with transaction.atomic():
            locked = (AppointmentReminder.objects.select_for_update()
                      .filter(id=reminder.id, status=AppointmentReminder.STATUS_PENDING).first())
            if locked is None:
                continue
            send_reminder(None, locked)
        sent += 1
    return sent


def serialize_reminder(r: AppointmentReminder, with_appointment: bool = False) -> dict:
    data = {
        'id': r.id,
        'appointmentId': r.appointment_id,
        'reminderType': r.reminder_type,
        'channel': r.channel,
        'scheduledTime': r.scheduled_time.isoformat(),
        'content': r.content,
        'status': r.status,
        'sentTime': r.sent_time.isoformat() if r.sent_time else None,
        'createdAt': r.created_at.isoformat() if r.created_at else None,
    }
    if with_appointment:
        a = r.appointment
        data['appointment'] = {
            'id': a.id,
            'title': a.title,
            'startTime': a.start_time.isoformat(),
            'status': a.status,
            'patient': {'id': a.patient_id, 'name': a.patient.name},
            'doctor': {'id': a.doctor_id, 'name': a.doctor.name},
        }
    return data
