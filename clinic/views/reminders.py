"""
Reminder endpoints.

``GET`` lists reminders (pending ones unless a status is given).  ``POST``
takes an ``operation`` of ``create``, ``update``, ``send`` or ``cancel``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from ..models import Appointment, AppointmentReminder
from ..permissions import has_permission
from ..serializers.reminders import ReminderListQuerySerializer, ReminderOperationSerializer
from ..services.pagination import paginate
from ..services.reminders import (
    cancel_reminder,
    create_reminder,
    send_reminder,
    serialize_reminder,
    update_reminder,
)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def reminders(request):
    if request.method == 'GET':
        if not has_permission(request.user, 'read:appointments'):
            return Response({'success': False, 'error': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
        q = ReminderListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        qs = (AppointmentReminder.objects
              .select_related('appointment__patient', 'appointment__doctor__user')
              .filter(status=vd['status'])
              .order_by('scheduled_time', 'id'))
        if vd.get('appointmentId'):
            qs = qs.filter(appointment_id=vd['appointmentId'])
        if vd.get('channel'):
            qs = qs.filter(channel=vd['channel'])
        if vd.get('reminderType'):
            qs = qs.filter(reminder_type=vd['reminderType'])
        items, pagination = paginate(qs, vd.get('page'), vd.get('limit'))
        return Response({'success': True, 'data': {
            'reminders': [serialize_reminder(r, with_appointment=True) for r in items],
            'pagination': pagination,
        }})

    if not has_permission(request.user, 'write:appointments'):
        return Response({'success': False, 'error': 'forbidden'}, status=status.HTTP_403_FORBIDDEN)
    s = ReminderOperationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    op = vd['operation']

    if op == 'create':
        appt = Appointment.objects.select_related('patient', 'doctor__user', 'appointment_type') \
            .filter(id=vd['appointmentId']).first()
        if appt is None:
            return Response({'success': False, 'error': 'Appointment not found'}, status=404)
        reminder = create_reminder(
            request.user, appt,
            reminder_type=vd['reminderType'],
            channel=vd['channel'],
            scheduled_time=vd['scheduledTime'],
            content=vd.get('content'),
        )
        return Response({'success': True, 'data': serialize_reminder(reminder),
                         'message': 'Reminder created successfully'}, status=201)

    reminder = AppointmentReminder.objects.filter(id=vd['reminderId']).first()
    if reminder is None:
        return Response({'success': False, 'error': 'Reminder not found'}, status=404)

    if op == 'update':
        reminder = update_reminder(
            request.user, reminder,
            scheduled_time=vd.get('scheduledTime'),
            content=vd.get('content'),
            status=vd.get('status'),
            channel=vd.get('channel'),
            reminder_type=vd.get('reminderType'),
        )
        message = 'Reminder updated successfully'
    elif op == 'send':
        try:
            reminder = send_reminder(request.user, reminder)
        except ValueError as e:
            return Response({'success': False, 'error': str(e)}, status=400)
        message = 'Reminder sent successfully'
    else:
        reminder = cancel_reminder(request.user, reminder)
        message = 'Reminder cancelled successfully'
    return Response({'success': True, 'data': serialize_reminder(reminder), 'message': message})
