from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment, DoctorProfile
from clinic.permissions import has_permission
from clinic.serializers.referrals import ReferralCreateSerializer, ReferralListQuerySerializer
from clinic.services.referrals import create_referral, list_referrals, serialize_referral


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def referrals(request):
    if request.method == 'GET':
        if not has_permission(request.user, 'read:appointments'):
            return Response({'success': False, 'error': 'forbidden'}, status=403)
        q = ReferralListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        data, pagination = list_referrals(
            patient_id=vd.get('patientId'),
            referring_doctor_id=vd.get('referringDoctorId'),
            receiving_doctor_id=vd.get('receivingDoctorId'),
            status=vd.get('status'),
            urgency=vd.get('urgency'),
            page=vd.get('page'),
            limit=vd.get('limit'),
        )
        return Response({'success': True, 'data': {'referrals': data, 'pagination': pagination}})

    if not has_permission(request.user, 'write:appointments'):
        return Response({'success': False, 'error': 'forbidden'}, status=403)
    s = ReferralCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data

    original = (Appointment.objects.select_related('patient', 'doctor__user', 'appointment_type')
                .filter(id=vd['originalAppointmentId']).first())
    if original is None:
        return Response({'success': False, 'error': 'Original appointment not found'}, status=404)
    receiving = DoctorProfile.objects.select_related('user').filter(id=vd['receivingDoctorId']).first()
    if receiving is None:
        return Response({'success': False, 'error': 'Receiving doctor not found'}, status=404)

    try:
        referral = create_referral(
            request.user,
            original=original,
            receiving_doctor=receiving,
            reason=vd['reason'],
            notes=vd.get('notes'),
            urgency=vd.get('urgency', 'NORMAL'),
            create_new_appointment=vd.get('createNewAppointment', False),
            appointment_date=vd.get('appointmentDate'),
            appointment_time=vd.get('appointmentTime'),
            duration=vd.get('duration'),
        )
    except ValueError as e:
        return Response({'success': False, 'error': str(e)}, status=400)
    return Response({'success': True, 'data': serialize_referral(referral),
                     'message': 'Referral created successfully'}, status=201)
