from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.serializers.notifications import NotificationQuerySerializer, NotificationReadSerializer
from clinic.services.notifications import list_notifications, mark_read


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notifications(request):
    q = NotificationQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    vd = q.validated_data
    data, pagination = list_notifications(
        request.user, unread_only=vd.get('unreadOnly', False), page=vd.get('page'), limit=vd.get('limit'),
    )
    return Response({'success': True, 'data': {'notifications': data, 'pagination': pagination}})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notifications_read(request):
    s = NotificationReadSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    n = mark_read(request.user, s.validated_data.get('ids'))
    return Response({'success': True, 'data': {'updated': n}})
