from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment
from clinic.permissions import has_permission
from clinic.serializers.waiting_list import WaitingListAddSerializer, WaitingListQuerySerializer
from clinic.services.waiting_list import add_to_waiting_list, list_waiting_list, serialize_entry


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def waiting_list(request):
    """Today's queue per department (``GET``) or queue an appointment (``POST``)."""
    if request.method == 'GET':
        if not has_permission(request.user, 'read:appointments'):
            return Response({'success': False, 'error': 'forbidden'}, status=403)
        q = WaitingListQuerySerializer(data=request.query_params)
        q.is_valid(raise_exception=True)
        vd = q.validated_data
        data, pagination = list_waiting_list(
            department_id=vd.get('departmentId'), status=vd.get('status'),
            page=vd.get('page'), limit=vd.get('limit'),
        )
        return Response({'success': True, 'data': {'entries': data, 'pagination': pagination}})

    if not has_permission(request.user, 'write:appointments'):
        return Response({'success': False, 'error': 'forbidden'}, status=403)
    s = WaitingListAddSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = (Appointment.objects.select_related('patient', 'doctor__user')
            .filter(id=s.validated_data['appointmentId']).first())
    if appt is None:
        return Response({'success': False, 'error': 'Appointment not found'}, status=404)
    try:
        entry = add_to_waiting_list(request.user, appt, s.validated_data['priority'])
    except ValueError as e:
        return Response({'success': False, 'error': str(e)}, status=400)
    return Response({'success': True, 'data': serialize_entry(entry)}, status=201)
