import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)

APPOINTMENTS_GROUP = "appointments"


def _send(event: str, payload: dict) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(APPOINTMENTS_GROUP, payload)
    except Exception:
        logger.warning("broadcast of %s for appointment %s failed", event, payload["appointmentId"], exc_info=True)


def broadcast_appointment_event(event: str, appointment) -> None:
    """Push an appointment change to connected dashboards.

    The message leaves once the surrounding transaction commits, so a
    rolled back booking is never announced.  Delivery is best effort: a
    failing channel layer is logged and the calling request still succeeds.
    """
    payload = {
        "type": "appointment.event",
        "event": event,
        "appointmentId": appointment.id,
        "status": appointment.status,
        "doctorId": appointment.doctor_id,
        "patientId": appointment.patient_id,
        "departmentId": appointment.department_id,
        "startTime": appointment.start_time.isoformat(),
        "endTime": appointment.end_time.isoformat(),
    }
    transaction.on_commit(lambda: _send(event, payload))
