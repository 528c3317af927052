from django.conf import settings
from django.core.cache import cache
from django.db import IntegrityError, transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import AppointmentType
from clinic.permissions import IsAdminRoleOrReadOnly
from clinic.serializers.appointments import AppointmentTypeCreateSerializer
from clinic.services.audit import log_action

CACHE_KEY = 'appointment_types:active'


def _serialize(t: AppointmentType) -> dict:
    return {
        'id': t.id,
        'name': t.name,
        'description': t.description,
        'duration': t.duration,
        'color': t.color,
        'isActive': t.is_active,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRoleOrReadOnly])
def appointment_types(request):
    if request.method == 'GET':
        cached = cache.get(CACHE_KEY)
        if cached:
            return Response(cached)
        payload = {'success': True, 'data': [_serialize(t) for t in AppointmentType.objects.filter(is_active=True).order_by('name')]}
        cache.set(CACHE_KEY, payload, settings.APPOINTMENT_TYPES_CACHE_SECONDS)
        return Response(payload)

    s = AppointmentTypeCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    try:
        with transaction.atomic():
            t = AppointmentType.objects.create(
                name=vd['name'].strip(), description=vd.get('description', ''),
                duration=vd.get('duration', 30), color=vd.get('color', '#3b82f6'),
            )
    except IntegrityError:
        return Response({'success': False, 'error': 'Appointment type already exists'}, status=400)
    cache.delete(CACHE_KEY)
    log_action(user=request.user, action='appointment_type.create', object_type='appointment_type', object_id=t.id)
    return Response({'success': True, 'data': _serialize(t)}, status=201)
