import logging
from typing import Optional

from django.db import transaction
from django.utils import timezone

from clinic.models import Appointment, AppointmentStatus, WaitingListEntry
from clinic.services.audit import log_action
from clinic.services.pagination import paginate

logger = logging.getLogger(__name__)


@transaction.atomic
def add_to_waiting_list(user, appt: Appointment, priority: str = 'normal') -> WaitingListEntry:
    """Queue ``appt`` in its department; numbers restart every local day."""
    if WaitingListEntry.objects.filter(appointment=appt).exists():
        raise ValueError('Appointment is already on the waiting list')
    if appt.status in (AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW, AppointmentStatus.COMPLETED):
        raise ValueError(f'Cannot queue an appointment with status: {appt.status}')

    today = timezone.localdate()
    # lock today's rows of the department so two check-ins don't draw the same number
    todays = (WaitingListEntry.objects.select_for_update()
              .filter(department_id=appt.department_id, created_at__date=today))
    last = max(todays.values_list('queue_number', flat=True), default=0)
    entry = WaitingListEntry.objects.create(
        appointment=appt,
        department_id=appt.department_id,
        queue_number=last + 1,
        priority=priority,
    )
    logger.info("queued appointment %s as #%s in department %s", appt.id, entry.queue_number, appt.department_id)
    log_action(user=user, action='waiting_list.add', object_type='appointment', object_id=appt.id,
               detail={'queueNumber': entry.queue_number})
    return entry


def serialize_entry(e: WaitingListEntry) -> dict:
    a = e.appointment
    return {
        'id': e.id,
        'appointmentId': e.appointment_id,
        'departmentId': e.department_id,
        'queueNumber': e.queue_number,
        'priority': e.priority,
        'status': e.status,
        'patient': {'id': a.patient_id, 'name': a.patient.name},
        'doctor': {'id': a.doctor_id, 'name': a.doctor.name},
        'startTime': a.start_time.isoformat(),
        'createdAt': e.created_at.isoformat(),
    }


def list_waiting_list(*, department_id: Optional[int] = None, status: Optional[str] = None, page=1, limit=None):
    qs = (WaitingListEntry.objects
          .select_related('appointment__patient', 'appointment__doctor__user')
          .filter(created_at__date=timezone.localdate())
          .order_by('queue_number', 'id'))
    if department_id:
        qs = qs.filter(department_id=department_id)
    if status:
        qs = qs.filter(status=status)
    items, pagination = paginate(qs, page, limit)
    return [serialize_entry(e) for e in items], pagination
