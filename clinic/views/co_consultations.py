"""
Co-consultation endpoints: multi-doctor appointments and their shared notes.
"""
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from clinic.models import Appointment, AppointmentType, CoConsultationNoteSection, DoctorProfile, PatientProfile
from clinic.permissions import has_permission
from clinic.serializers.appointments import AppointmentFilterSerializer
from clinic.serializers.co_consultations import (
    CoConsultationCreateSerializer, NoteQuerySerializer, NoteWriteSerializer, SectionDeleteSerializer,
)
from clinic.services.co_consultations import (
    book_co_consultation, co_consultation_queryset, delete_section, list_co_consultations, list_notes,
    serialize_co_consultation, serialize_note, write_note,
)
from clinic.throttles import BookingRateThrottle


def _error(msg: str, code: int):
    return Response({'success': False, 'error': msg}, status=code)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
@throttle_classes([UserRateThrottle, BookingRateThrottle])
def co_consultations(request):
    if request.method == 'GET':
        if not (has_permission(request.user, 'read:appointments')
                or has_permission(request.user, 'read:own_appointments')):
            return _error('forbidden', 403)
        q = AppointmentFilterSerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        data, pagination = list_co_consultations(
            request.user,
            doctor_id=vd.get('doctorId'),
            patient_id=vd.get('patientId'),
            department_id=vd.get('departmentId'),
            status=vd.get('status'),
            start_date=vd.get('startDate'),
            end_date=vd.get('endDate'),
            page=vd.get('page'),
            limit=vd.get('limit'),
        )
        return Response({'success': True, 'data': {'coConsultations': data, 'pagination': pagination}})

    if not has_permission(request.user, 'write:appointments'):
        return _error('forbidden', 403)
    s = CoConsultationCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    patient = PatientProfile.objects.filter(id=vd['patientId']).first()
    if patient is None:
        return _error('Patient not found', 404)
    primary = DoctorProfile.objects.select_related('user', 'department').filter(id=vd['primaryDoctorId']).first()
    if primary is None:
        return _error('Primary doctor not found', 404)
    co_doctors = list(DoctorProfile.objects.select_related('user').filter(id__in=vd['coConsultingDoctorIds']))
    if len(co_doctors) != len(vd['coConsultingDoctorIds']):
        return _error('One or more co-consulting doctors not found', 404)
    appt_type = AppointmentType.objects.filter(id=vd['appointmentTypeId']).first()
    if appt_type is None:
        return _error('Appointment type not found', 404)

    try:
        appt = book_co_consultation(
            request.user,
            patient=patient,
            primary_doctor=primary,
            co_doctors=co_doctors,
            appointment_type=appt_type,
            title=vd['title'],
            start=vd['startTime'],
            end=vd['endTime'],
            description=vd['description'],
            location=vd['location'],
            notes=vd['notes'],
            reason=vd['reason'],
            urgency=vd['urgency'],
            create_reminders=vd['createReminders'],
        )
    except ValueError as e:
        return _error(str(e), 400)
    data = serialize_co_consultation(co_consultation_queryset().get(id=appt.id))
    return Response({'success': True, 'data': data, 'message': 'Co-consultation created successfully'}, status=201)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def co_consultation_notes(request):
    """Read (``GET``), write (``POST``) or remove a section of (``DELETE``) the shared note."""
    if request.method == 'GET':
        if not has_permission(request.user, 'read:appointments'):
            return _error('forbidden', 403)
        q = NoteQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        try:
            notes = list_notes(q.validated_data['appointmentId'])
        except Appointment.DoesNotExist:
            return _error('Appointment not found', 404)
        except ValueError as e:
            return _error(str(e), 400)
        return Response({'success': True, 'data': {'notes': notes}})

    if not has_permission(request.user, 'write:appointments'):
        return _error('forbidden', 403)

    if request.method == 'DELETE':
        s = SectionDeleteSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        try:
            delete_section(request.user, s.validated_data['sectionId'])
        except CoConsultationNoteSection.DoesNotExist:
            return _error('Section not found', 404)
        except PermissionError as e:
            return _error(str(e), 403)
        return Response({'success': True, 'message': 'Section deleted successfully'})

    s = NoteWriteSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        note = write_note(
            request.user,
            vd['appointmentId'],
            content=vd.get('content'),
            section_title=vd.get('sectionTitle'),
            section_content=vd.get('sectionContent'),
            doctor_id=vd.get('doctorId'),
        )
    except Appointment.DoesNotExist:
        return _error('Appointment not found', 404)
    except PermissionError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    return Response({'success': True, 'data': {'note': serialize_note(note)}})
