"""
Appointment reads: scoping, list/detail payloads, calendar and reports.
"""
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

from django.db.models import Count, Max, Min
from django.utils import timezone

from clinic.models import Appointment, AppointmentStatus, Department, DoctorProfile, PatientProfile
from clinic.permissions import is_own_scoped
from clinic.services.pagination import paginate
from clinic.services.reminders import serialize_reminder


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def patient_for_user(user) -> Optional[PatientProfile]:
    return PatientProfile.objects.filter(user_id=getattr(user, 'pk', None)).first()


def scope_for_user(user, qs, permission: str = 'read:appointments'):
    """Restrict ``qs`` to the user's own appointments when they only hold the ``own`` permission."""
    if is_own_scoped(user, permission):
        return qs.filter(patient__user=user)
    return qs


def can_access(user, appt: Appointment, permission: str = 'read:appointments') -> bool:
    if is_own_scoped(user, permission):
        return appt.patient.user_id == user.pk
    return True


def base_queryset():
    return Appointment.objects.select_related(
        'patient', 'doctor__user', 'doctor__department', 'department', 'appointment_type',
    )


def serialize_appointment(a: Appointment) -> dict:
    return {
        'id': a.id,
        'title': a.title,
        'description': a.description,
        'startTime': _iso(a.start_time),
        'endTime': _iso(a.end_time),
        'duration': a.duration,
        'status': a.status,
        'confirmationStatus': a.confirmation_status,
        'confirmationTime': _iso(a.confirmation_time),
        'checkInTime': _iso(a.check_in_time),
        'checkOutTime': _iso(a.check_out_time),
        'cancelledAt': _iso(a.cancelled_at),
        'cancelReason': a.cancel_reason or None,
        'noShow': a.no_show,
        'location': a.location,
        'notes': a.notes,
        'followUpNeeded': a.follow_up_needed,
        'followUpNotes': a.follow_up_notes or None,
        'isCoConsultation': a.is_co_consultation,
        'patient': {'id': a.patient_id, 'name': a.patient.name, 'phone': a.patient.phone},
        'doctor': {'id': a.doctor_id, 'name': a.doctor.name, 'specialization': a.doctor.specialization},
        'department': {'id': a.department_id, 'name': a.department.name} if a.department_id else None,
        'appointmentType': {
            'id': a.appointment_type_id,
            'name': a.appointment_type.name,
            'color': a.appointment_type.color,
        },
        'createdAt': _iso(a.created_at),
        'updatedAt': _iso(a.updated_at),
    }


def serialize_appointment_detail(a: Appointment) -> dict:
    data = serialize_appointment(a)
    data['appointmentNotes'] = [
        {
            'id': n.id,
            'note': n.note,
            'createdBy': n.created_by_id,
            'createdAt': _iso(n.created_at),
        }
        for n in a.appointment_notes.order_by('-created_at', '-id')
    ]
    data['reminders'] = [serialize_reminder(r) for r in a.reminders.order_by('scheduled_time')]
    entry = getattr(a, 'waiting_list', None)
    data['waitingList'] = {
        'id': entry.id,
        'queueNumber': entry.queue_number,
        'priority': entry.priority,
        'status': entry.status,
    } if entry else None
    return data


def filter_appointments(qs, *, doctor_id=None, patient_id=None, department_id=None, status=None,
                        start_date=None, end_date=None):
    if doctor_id:
        qs = qs.filter(doctor_id=doctor_id)
    if patient_id:
        qs = qs.filter(patient_id=patient_id)
    if department_id:
        qs = qs.filter(department_id=department_id)
    if status:
        qs = qs.filter(status=status)
    if start_date:
        qs = qs.filter(start_time__gte=start_date)
    if end_date:
        qs = qs.filter(start_time__lte=end_date)
    return qs


def list_appointments(user, *, page=1, limit=None, **filters):
    qs = scope_for_user(user, base_queryset())
    qs = filter_appointments(qs, **filters).order_by('start_time', 'id')
    items, pagination = paginate(qs, page, limit)
    return [serialize_appointment(a) for a in items], pagination


def status_stats(user, **filters) -> dict:
    """Per-status counts and the no-show, cancellation and completion rates."""
    qs = filter_appointments(scope_for_user(user, Appointment.objects.all()), **filters)
    counts = {s: 0 for s in AppointmentStatus.values}
    for row in qs.values('status').annotate(count=Count('id')).order_by():
        counts[row['status']] = row['count']
    total = sum(counts.values())

    def rate(n: int) -> float:
        return round(n / total * 100, 2) if total else 0.0

    return {
        'total': total,
        'statusCounts': counts,
        'noShowRate': rate(counts[AppointmentStatus.NO_SHOW]),
        'cancellationRate': rate(counts[AppointmentStatus.CANCELLED]),
        'completionRate': rate(counts[AppointmentStatus.COMPLETED]),
    }


# ------------------------------------------------------------------ calendar

def _availability_blocks(doctor: DoctorProfile, start: datetime, end: datetime) -> list[dict]:
    days = {int(d) for d in (doctor.available_days or [])}
    if not days:
        return []
    tz = timezone.get_current_timezone()
    blocks = []
    day = timezone.localtime(start).date()
    last = timezone.localtime(end).date()
    from_h, from_m = (int(x) for x in doctor.available_from.split(':'))
    to_h, to_m = (int(x) for x in doctor.available_to.split(':'))
    while day <= last:
        # 0 = Sunday, matching available_days
        if (day.weekday() + 1) % 7 in days:
            block_start = timezone.make_aware(datetime(day.year, day.month, day.day, from_h, from_m), tz)
            block_end = timezone.make_aware(datetime(day.year, day.month, day.day, to_h, to_m), tz)
            blocks.append({
                'id': f"availability-{doctor.pk}-{day.isoformat()}",
                'title': 'Available',
                'start': block_start.isoformat(),
                'end': block_end.isoformat(),
                'color': '#e0f7fa',
                'rendering': 'background',
                'doctorId': doctor.pk,
            })
        day += timedelta(days=1)
    return blocks


def calendar_events(user, *, start: datetime, end: datetime, doctor_id=None, patient_id=None,
                    department_id=None) -> dict:
    qs = scope_for_user(user, base_queryset())
    qs = (filter_appointments(qs, doctor_id=doctor_id, patient_id=patient_id, department_id=department_id,
                              start_date=start, end_date=end)
          .exclude(status__in=[AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW])
          .order_by('start_time'))
    events = [
        {
            'id': a.id,
            'title': a.title,
            'start': _iso(a.start_time),
            'end': _iso(a.end_time),
            'color': a.appointment_type.color,
            'status': a.status,
            'patient': {'id': a.patient_id, 'name': a.patient.name},
            'doctor': {'id': a.doctor_id, 'name': a.doctor.name},
            'appointmentType': a.appointment_type.name,
            'location': a.location,
        }
        for a in qs
    ]
    availability = []
    if doctor_id:
        doctor = DoctorProfile.objects.filter(id=doctor_id).first()
        if doctor is not None:
            availability = _availability_blocks(doctor, start, end)
    return {'events': events, 'availability': availability}


# ------------------------------------------------------------------ history / reports

TIME_SLOTS = (
    ('Morning (6AM-12PM)', 6, 12),
    ('Afternoon (12PM-5PM)', 12, 17),
    ('Evening (5PM-9PM)', 17, 21),
)
NIGHT_SLOT = 'Night (9PM-6AM)'


def time_slot(dt: datetime) -> str:
    hour = timezone.localtime(dt).hour
    for label, lo, hi in TIME_SLOTS:
        if lo <= hour < hi:
            return label
    return NIGHT_SLOT


def history(user, *, page=1, limit=None, **filters):
    qs = filter_appointments(scope_for_user(user, base_queryset()), **filters).order_by('-start_time', '-id')
    items, pagination = paginate(qs, page, limit)
    return [serialize_appointment(a) for a in items], pagination


def _grouped(qs, key: str, label_of) -> list[dict]:
    rows = (qs.values(key)
            .annotate(count=Count('id'), first=Min('start_time'), last=Max('start_time'))
            .order_by('-count', key))
    return [
        {
            'id': row[key],
            'name': label_of(row[key]),
            'count': row['count'],
            'firstAppointment': _iso(row['first']),
            'lastAppointment': _iso(row['last']),
        }
        for row in rows
    ]


def report(user, report_type: str, **filters) -> list[dict]:
    """Grouped appointment counts for ``report_type``.

    ``patient``, ``doctor`` and ``department`` group by the related row,
    ``status`` adds a percentage per status and ``time`` buckets by the
    local hour of the start time.
    """
    qs = filter_appointments(scope_for_user(user, Appointment.objects.all()), **filters)

    if report_type == 'patient':
        names = dict(PatientProfile.objects.filter(id__in=qs.values('patient_id')).values_list('id', 'name'))
        return _grouped(qs, 'patient_id', lambda pk: names.get(pk))
    if report_type == 'doctor':
        doctors = {d.id: d.name for d in DoctorProfile.objects.filter(id__in=qs.values('doctor_id'))
                   .select_related('user')}
        return _grouped(qs, 'doctor_id', lambda pk: doctors.get(pk))
    if report_type == 'department':
        names = dict(Department.objects.filter(id__in=qs.values('department_id')).values_list('id', 'name'))
        return _grouped(qs, 'department_id', lambda pk: names.get(pk))
    if report_type == 'status':
        total = qs.count()
        rows = qs.values('status').annotate(count=Count('id')).order_by('-count', 'status')
        return [
            {
                'status': row['status'],
                'count': row['count'],
                'percentage': round(row['count'] / total * 100, 2) if total else 0.0,
            }
            for row in rows
        ]
    if report_type == 'time':
        buckets = OrderedDict((label, 0) for label, _, _ in TIME_SLOTS)
        buckets[NIGHT_SLOT] = 0
        for start_time in qs.values_list('start_time', flat=True):
            buckets[time_slot(start_time)] += 1
        return [{'timeSlot': label, 'count': count} for label, count in buckets.items()]
    raise ValueError(f'Unknown report type: {report_type}')
