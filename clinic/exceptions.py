import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class SchedulingConflict(APIException):
    """The requested slot overlaps an active appointment of the same doctor."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Scheduling conflict with existing appointment'
    default_code = 'scheduling_conflict'


def _flatten(detail):
    """Turn DRF error detail (dict/list/str) into a single readable message."""
    if isinstance(detail, dict):
        if 'detail' in detail:
            return _flatten(detail['detail'])
        parts = []
        for field, value in detail.items():
            if field == 'non_field_errors':
                parts.append(_flatten(value))
            else:
                parts.append(f"{field}: {_flatten(value)}")
        return '; '.join(parts)
    if isinstance(detail, (list, tuple)):
        return ' '.join(_flatten(v) for v in detail)
    return str(detail)


def api_exception_handler(exc, context):
    resp = drf_exception_handler(exc, context)
    if resp is None:
        view = context.get('view')
        logger.exception('unhandled error in %s', getattr(view, '__name__', view.__class__.__name__ if view else '?'))
        return Response({'success': False, 'error': 'Internal server error'}, status=500)
    return Response({'success': False, 'error': _flatten(resp.data)}, status=resp.status_code, headers=_auth_headers(resp))


def _auth_headers(resp):
    # keep WWW-Authenticate so 401 stays a proper challenge
    value = resp.get('WWW-Authenticate')
    return {'WWW-Authenticate': value} if value else None
