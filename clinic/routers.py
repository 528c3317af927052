"""
URL mappings for the hospital backend API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path, include

from .auth_views import login_view, jwt_refresh_view, jwt_logout_view
from .views import health
from .views.appointments import (
    appointments,
    appointment_detail,
    appointment_status,
    reschedule,
    calendar,
    appointment_history,
)
from .views.appointment_types import appointment_types
from .views.co_consultations import co_consultations, co_consultation_notes
from .views.notifications import notifications, notifications_read
from .views.referrals import referrals
from .views.reminders import reminders
from .views.waiting_list import waiting_list

urlpatterns = [
    # Prometheus exposes /metrics
    path('', include('django_prometheus.urls')),

    path('healthz', health.healthz, name='healthz'),

    path('api/auth/login', login_view, name='login'),
    path('api/auth/refresh', jwt_refresh_view, name='token-refresh'),
    path('api/auth/logout', jwt_logout_view, name='logout'),

    # Appointments
    path('api/appointments', appointments, name='appointments'),
    path('api/appointments/<int:pk>', appointment_detail, name='appointment-detail'),
    path('api/appointments/status', appointment_status, name='appointment-status'),
    path('api/appointments/reschedule', reschedule, name='appointment-reschedule'),
    path('api/appointments/calendar', calendar, name='appointment-calendar'),
    path('api/appointments/history', appointment_history, name='appointment-history'),
    path('api/appointments/notifications', reminders, name='appointment-reminders'),
    path('api/appointments/referrals', referrals, name='appointment-referrals'),
    path('api/appointments/co-consultations', co_consultations, name='co-consultations'),
    path('api/appointments/co-consultations/notes', co_consultation_notes, name='co-consultation-notes'),

    path('api/appointment-types', appointment_types, name='appointment-types'),
    path('api/waiting-list', waiting_list, name='waiting-list'),

    path('api/notifications', notifications, name='notifications'),
    path('api/notifications/read', notifications_read, name='notifications-read'),
]
