"""
Co-consultations: one appointment attended by a primary doctor and one or
more co-consulting doctors.

Booking locks every doctor involved, in primary key order, and runs the
conflict check for each of them before anything is written.  The
appointment, the participant rows, the opening note and the notifications
go out in one transaction.
"""
import logging
from datetime import datetime
from typing import Optional, Sequence

from django.db import transaction
from django.db.models import Prefetch, Q
from django.utils import timezone

from clinic.models import (
    Appointment, AppointmentStatus, AppointmentType, CoConsultationNote, CoConsultationNoteSection,
    CoConsultingDoctor, ConfirmationStatus, DoctorProfile, PatientProfile,
)
from clinic.permissions import has_permission
from clinic.services.appointments import base_queryset, filter_appointments, scope_for_user, serialize_appointment
from clinic.services.audit import log_action
from clinic.services.notifications import notify
from clinic.services.pagination import paginate
from clinic.services.realtime import broadcast_appointment_event
from clinic.services.reminders import schedule_reminders
from clinic.services.scheduling import ensure_no_conflict, lock_doctor
from clinic.services.text import clean_text

logger = logging.getLogger(__name__)


def _author(user):
    return user if getattr(user, 'pk', None) else None


def book_co_consultation(
    user,
    *,
    patient: PatientProfile,
    primary_doctor: DoctorProfile,
    co_doctors: Sequence[DoctorProfile],
    appointment_type: AppointmentType,
    title: str,
    start: datetime,
    end: datetime,
    description: str = '',
    location: str = '',
    notes: str = '',
    reason: str = '',
    urgency: str = 'MEDIUM',
    create_reminders: bool = False,
) -> Appointment:
    """Book ``primary_doctor`` together with ``co_doctors`` for one slot.

    Raises ``SchedulingConflict`` when the primary doctor or any of the
    co-consulting doctors is already busy in ``[start, end]``.
    """
    if end <= start:
        raise ValueError('endTime must be after startTime')
    if not co_doctors:
        raise ValueError('At least one co-consulting doctor is required')
    if any(d.pk == primary_doctor.pk for d in co_doctors):
        raise ValueError('The primary doctor cannot also be a co-consulting doctor')

    with transaction.atomic():
        for doctor in sorted([primary_doctor, *co_doctors], key=lambda d: d.pk):
            lock_doctor(doctor)
        ensure_no_conflict(primary_doctor, start, end, detail='Primary doctor has scheduling conflicts')
        for doctor in co_doctors:
            ensure_no_conflict(doctor, start, end,
                               detail='One or more co-consulting doctors have scheduling conflicts')

        appt = Appointment.objects.create(
            patient=patient,
            doctor=primary_doctor,
            department=primary_doctor.department,
            appointment_type=appointment_type,
            title=clean_text(title),
            description=clean_text(description),
            start_time=start,
            end_time=end,
            duration=int((end - start).total_seconds() // 60),
            location=clean_text(location),
            status=AppointmentStatus.SCHEDULED,
            confirmation_status=ConfirmationStatus.PENDING,
            is_co_consultation=True,
            created_by=_author(user),
        )
        CoConsultingDoctor.objects.bulk_create([
            CoConsultingDoctor(appointment=appt, doctor=doctor, created_by=_author(user)) for doctor in co_doctors
        ])
        CoConsultationNote.objects.create(
            appointment=appt,
            content=clean_text(notes),
            reason=clean_text(reason),
            urgency=urgency,
            created_by=_author(user),
        )
        if create_reminders:
            schedule_reminders(appt)

        when = f"{timezone.localtime(start):%Y-%m-%d %H:%M}"
        notify(
            primary_doctor.user,
            title='New co-consultation appointment',
            message=f"You are the primary doctor for a co-consultation with {patient.name} on {when}",
            type='APPOINTMENT',
            link=f"/appointments/{appt.id}",
        )
        for doctor in co_doctors:
            notify(
                doctor.user,
                title='New co-consultation appointment',
                message=f"You have been asked to join a co-consultation with {patient.name} on {when}",
                type='APPOINTMENT',
                link=f"/appointments/{appt.id}",
            )

    logger.info(
        "booked co-consultation %s with doctor %s and co-consulting doctors %s at %s",
        appt.id, primary_doctor.pk, [d.pk for d in co_doctors], start.isoformat(),
    )
    log_action(user=user, action='appointment.co_consultation', object_type='appointment', object_id=appt.id,
               detail={'doctorId': primary_doctor.pk, 'coDoctorIds': [d.pk for d in co_doctors]})
    broadcast_appointment_event('created', appt)
    return appt


def _serialize_section(s: CoConsultationNoteSection) -> dict:
    return {
        'id': s.id,
        'title': s.title,
        'content': s.content,
        'doctor': {'id': s.doctor_id, 'name': s.doctor.name} if s.doctor_id else None,
        'createdBy': s.created_by_id,
        'updatedBy': s.updated_by_id,
        'createdAt': s.created_at.isoformat(),
        'updatedAt': s.updated_at.isoformat(),
    }


def serialize_note(n: CoConsultationNote) -> dict:
    return {
        'id': n.id,
        'appointmentId': n.appointment_id,
        'content': n.content,
        'reason': n.reason or None,
        'urgency': n.urgency,
        'createdBy': n.created_by_id,
        'createdAt': n.created_at.isoformat(),
        'updatedAt': n.updated_at.isoformat(),
        'sections': [_serialize_section(s) for s in n.sections.select_related('doctor__user').order_by('created_at', 'id')],
    }


def serialize_co_consultation(a: Appointment) -> dict:
    data = serialize_appointment(a)
    data['coConsultingDoctors'] = [
        {'id': c.doctor_id, 'name': c.doctor.name, 'specialization': c.doctor.specialization, 'role': c.role}
        for c in a.co_consulting_doctors.all()
    ]
    data['coConsultationNotes'] = [serialize_note(n) for n in a.co_consultation_notes.all()]
    return data


def co_consultation_queryset():
    return base_queryset().filter(is_co_consultation=True).prefetch_related(
        Prefetch('co_consulting_doctors', queryset=CoConsultingDoctor.objects.select_related('doctor__user')
                 .order_by('id')),
        Prefetch('co_consultation_notes', queryset=CoConsultationNote.objects.order_by('-created_at', '-id')),
    )


def list_co_consultations(user, *, doctor_id=None, page=1, limit=None, **filters):
    """Co-consultations newest first; ``doctor_id`` matches primary and co-consulting doctors."""
    qs = scope_for_user(user, co_consultation_queryset())
    if doctor_id:
        qs = qs.filter(Q(doctor_id=doctor_id) | Q(co_consulting_doctors__doctor_id=doctor_id)).distinct()
    qs = filter_appointments(qs, **filters).order_by('-start_time', '-id')
    items, pagination = paginate(qs, page, limit)
    return [serialize_co_consultation(a) for a in items], pagination


def _get_co_consultation(appointment_id: int) -> Appointment:
    appt = (Appointment.objects.select_related('doctor__user')
            .prefetch_related('co_consulting_doctors__doctor__user')
            .filter(id=appointment_id).first())
    if appt is None:
        raise Appointment.DoesNotExist(f'appointment {appointment_id} not found')
    if not appt.is_co_consultation:
        raise ValueError('Appointment is not a co-consultation')
    return appt


def _involved_doctor_ids(appt: Appointment) -> list[int]:
    return [appt.doctor_id, *(c.doctor_id for c in appt.co_consulting_doctors.all())]


def _is_involved(user, appt: Appointment) -> bool:
    doctor = DoctorProfile.objects.filter(user_id=getattr(user, 'pk', None)).first()
    return doctor is not None and doctor.pk in _involved_doctor_ids(appt)


def list_notes(appointment_id: int) -> list[dict]:
    appt = _get_co_consultation(appointment_id)
    return [serialize_note(n) for n in appt.co_consultation_notes.order_by('-created_at', '-id')]


def write_note(
    user,
    appointment_id: int,
    *,
    content: Optional[str] = None,
    section_title: Optional[str] = None,
    section_content: Optional[str] = None,
    doctor_id: Optional[int] = None,
) -> CoConsultationNote:
    """Create or update the shared note, optionally adding a section.

    Only doctors taking part in the co-consultation, or administrators, may
    write.  The other doctors involved are notified.
    """
    appt = _get_co_consultation(appointment_id)
    if not (_is_involved(user, appt) or has_permission(user, 'all')):
        raise PermissionError('You are not involved in this co-consultation')
    involved = _involved_doctor_ids(appt)
    if doctor_id and doctor_id not in involved:
        raise ValueError('Invalid doctor ID for this co-consultation')

    content = clean_text(content)
    section_title = clean_text(section_title)
    section_content = clean_text(section_content)
    author_doctor = DoctorProfile.objects.filter(user_id=getattr(user, 'pk', None)).first()

    with transaction.atomic():
        note = appt.co_consultation_notes.order_by('created_at', 'id').first()
        if note is None:
            note = CoConsultationNote.objects.create(appointment=appt, content=content, created_by=_author(user))
        elif content:
            note.content = content
            note.save(update_fields=['content', 'updated_at'])

        if section_title and section_content:
            CoConsultationNoteSection.objects.create(
                note=note,
                title=section_title,
                content=section_content,
                doctor_id=doctor_id or (author_doctor.pk if author_doctor else None),
                created_by=_author(user),
                updated_by=_author(user),
            )

        when = f"{timezone.localtime(appt.start_time):%Y-%m-%d %H:%M}"
        recipients = DoctorProfile.objects.select_related('user').filter(pk__in=involved)
        for doctor in recipients:
            if author_doctor is not None and doctor.pk == author_doctor.pk:
                continue
            notify(
                doctor.user,
                title='Co-consultation note updated',
                message=f"A note was updated for the co-consultation on {when}",
                type='APPOINTMENT',
                link=f"/appointments/{appt.id}",
            )

    log_action(user=user, action='co_consultation.note', object_type='appointment', object_id=appt.id,
               detail={'noteId': note.id})
    return note


def delete_section(user, section_id: int) -> None:
    """Remove a note section.

    Administrators may remove any section; otherwise the caller must take
    part in the co-consultation and be the section's author.
    """
    section = (CoConsultationNoteSection.objects.select_related('note__appointment')
               .filter(id=section_id).first())
    if section is None:
        raise CoConsultationNoteSection.DoesNotExist(f'section {section_id} not found')
    appt = section.note.appointment
    allowed = has_permission(user, 'all') or (
        _is_involved(user, appt) and section.created_by_id == getattr(user, 'pk', None)
    )
    if not allowed:
        raise PermissionError('You do not have permission to delete this section')
    section.delete()
    log_action(user=user, action='co_consultation.section_delete', object_type='appointment', object_id=appt.id,
               detail={'sectionId': section_id})
