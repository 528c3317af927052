"""
Named rate limits.

Function views built with ``@api_view`` cannot carry a ``throttle_scope``,
so each scope used by those views gets its own throttle class.  The rates
live in ``REST_FRAMEWORK['DEFAULT_THROTTLE_RATES']``.
"""
from rest_framework.permissions import SAFE_METHODS
from rest_framework.throttling import AnonRateThrottle, UserRateThrottle


class LoginRateThrottle(AnonRateThrottle):
    scope = 'login'


class BookingRateThrottle(UserRateThrottle):
    """Counts writes only; reads on the same path fall under the ``user`` rate."""
    scope = 'booking'

    def allow_request(self, request, view):
        if request.method in SAFE_METHODS:
            return True
        return super().allow_request(request, view)
