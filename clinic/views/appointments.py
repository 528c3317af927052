"""
Appointment endpoints: booking, listing, detail, status changes,
reschedule, calendar and history reports.

Patients hold only the ``own`` appointment permissions; every query made
on their behalf is narrowed to their own patient profile.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle
from rest_framework import status

from ..models import Appointment, AppointmentType, Department, DoctorProfile, PatientProfile
from ..permissions import HasPermission, has_permission, is_own_scoped
from ..serializers.appointments import (
    AppointmentCreateSerializer,
    AppointmentFilterSerializer,
    CalendarQuerySerializer,
    HistoryQuerySerializer,
    RescheduleSerializer,
    StatusStatsQuerySerializer,
    StatusUpdateSerializer,
)
from ..services.appointments import (
    base_queryset,
    calendar_events,
    can_access,
    history,
    list_appointments,
    patient_for_user,
    report,
    serialize_appointment,
    serialize_appointment_detail,
    status_stats,
)
from ..services.scheduling import book_appointment, reschedule_appointment
from ..services.workflow import update_status
from ..throttles import BookingRateThrottle


def _not_found(what: str):
    return Response({'success': False, 'error': f'{what} not found'}, status=status.HTTP_404_NOT_FOUND)


def _forbidden(msg: str = 'You do not have access to this appointment'):
    return Response({'success': False, 'error': msg}, status=status.HTTP_403_FORBIDDEN)


def _require(request, permission: str):
    """403 response unless the user holds ``permission`` or its ``own`` variant."""
    if has_permission(request.user, permission) or is_own_scoped(request.user, permission):
        return None
    return _forbidden(f'permission "{permission}" required')


def _filters(vd: dict) -> dict:
    return {
        'doctor_id': vd.get('doctorId'),
        'patient_id': vd.get('patientId'),
        'department_id': vd.get('departmentId'),
        'status': vd.get('status'),
        'start_date': vd.get('startDate'),
        'end_date': vd.get('endDate'),
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([UserRateThrottle, BookingRateThrottle])
def appointments(request):
    """List appointments (``GET``) or book one (``POST``)."""
    if request.method == 'POST':
        return _create_appointment(request)
    return _list_appointments(request)


def _list_appointments(request):
    denied = _require(request, 'read:appointments')
    if denied:
        return denied
    q = AppointmentFilterSerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, pagination = list_appointments(request.user, page=vd.get('page'), limit=vd.get('limit'), **_filters(vd))
    return Response({'success': True, 'data': {'appointments': data, 'pagination': pagination}})


def _create_appointment(request):
    """Book an appointment.

    Returns 409 when the doctor already has an active appointment that
    overlaps the requested range.
    """
    denied = _require(request, 'write:appointments')
    if denied:
        return denied
    s = AppointmentCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    patient = PatientProfile.objects.filter(id=vd['patientId']).first()
    if patient is None:
        return _not_found('Patient')
    if is_own_scoped(request.user, 'write:appointments'):
        own = patient_for_user(request.user)
        if own is None or own.id != patient.id:
            return _forbidden('Patients can only book appointments for themselves')
    doctor = DoctorProfile.objects.select_related('user', 'department').filter(id=vd['doctorId']).first()
    if doctor is None:
        return _not_found('Doctor')
    appt_type = AppointmentType.objects.filter(id=vd['appointmentTypeId'], is_active=True).first()
    if appt_type is None:
        return _not_found('Appointment type')
    department = None
    if vd.get('departmentId'):
        department = Department.objects.filter(id=vd['departmentId']).first()
        if department is None:
            return _not_found('Department')

    appt = book_appointment(
        request.user,
        patient=patient,
        doctor=doctor,
        department=department,
        appointment_type=appt_type,
        title=vd['title'],
        description=vd.get('description', ''),
        start=vd['startTime'],
        end=vd['endTime'],
        duration=vd['duration'],
        location=vd.get('location', ''),
        notes=vd.get('notes', ''),
        create_reminders=vd.get('createReminders', False),
    )
    appt = base_queryset().get(id=appt.id)
    return Response(
        {'success': True, 'data': serialize_appointment(appt), 'message': 'Appointment created successfully'},
        status=status.HTTP_201_CREATED,
    )


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('read:appointments')])
def appointment_detail(request, pk: int):
    appt = base_queryset().filter(id=pk).first()
    if appt is None:
        return _not_found('Appointment')
    if not can_access(request.user, appt):
        return _forbidden()
    return Response({'success': True, 'data': serialize_appointment_detail(appt)})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def appointment_status(request):
    """Status statistics (``GET``) or a status change (``POST``)."""
    if request.method == 'POST':
        return _change_status(request)
    return _status_statistics(request)


def _change_status(request):
    """Change an appointment's status and apply the status side effects."""
    denied = _require(request, 'write:appointments')
    if denied:
        return denied
    s = StatusUpdateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        appt, follow_up = update_status(
            request.user,
            vd['appointmentId'],
            vd['status'],
            reason=vd.get('reason'),
            notes=vd.get('notes'),
            follow_up_needed=vd.get('followUpNeeded', False),
            follow_up_notes=vd.get('followUpNotes'),
            follow_up_date=vd.get('followUpDate'),
            follow_up_duration=vd.get('followUpDuration'),
            own_only=is_own_scoped(request.user, 'write:appointments'),
        )
    except Appointment.DoesNotExist:
        return _not_found('Appointment')
    except PermissionError as e:
        return _forbidden(str(e))
    except ValueError as e:
        return Response({'success': False, 'error': str(e)}, status=400)

    data = serialize_appointment(base_queryset().get(id=appt.id))
    if follow_up is not None:
        data['followUpAppointment'] = serialize_appointment(base_queryset().get(id=follow_up.id))
    return Response({'success': True, 'data': data, 'message': f'Appointment status updated to {appt.status}'})


def _status_statistics(request):
    denied = _require(request, 'read:appointments')
    if denied:
        return denied
    q = StatusStatsQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    return Response({'success': True, 'data': status_stats(request.user, **_filters(vd))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasPermission('write:appointments')])
def reschedule(request):
    s = RescheduleSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    appt = base_queryset().filter(id=vd['appointmentId']).first()
    if appt is None:
        return _not_found('Appointment')
    if not can_access(request.user, appt, 'write:appointments'):
        return _forbidden()
    try:
        appt = reschedule_appointment(
            request.user,
            appt.id,
            start=vd['startTime'],
            end=vd['endTime'],
            duration=vd.get('duration'),
            notes=vd.get('notes'),
            create_reminders=vd.get('createReminders', True),
        )
    except Appointment.DoesNotExist:
        return _not_found('Appointment')
    except ValueError as e:
        return Response({'success': False, 'error': str(e)}, status=400)
    return Response({
        'success': True,
        'data': serialize_appointment(base_queryset().get(id=appt.id)),
        'message': 'Appointment rescheduled successfully',
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('read:appointments')])
def calendar(request):
    q = CalendarQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data = calendar_events(
        request.user,
        start=vd['startDate'],
        end=vd['endDate'],
        doctor_id=vd.get('doctorId'),
        patient_id=vd.get('patientId'),
        department_id=vd.get('departmentId'),
    )
    return Response({'success': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, HasPermission('read:appointments')])
def appointment_history(request):
    """Paginated history, newest first, or a grouped report with ``reportType``."""
    q = HistoryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    report_type = vd.get('reportType')
    if report_type:
        rows = report(request.user, report_type, **_filters(vd))
        return Response({'success': True, 'data': {'reportType': report_type, 'report': rows}})
    data, pagination = history(request.user, page=vd.get('page'), limit=vd.get('limit'), **_filters(vd))
    return Response({'success': True, 'data': {'appointments': data, 'pagination': pagination}})
