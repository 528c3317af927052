"""
Database models for the hospital management backend.

The appointment workflow sits at the centre: appointments are booked
against a doctor, move through a status lifecycle, carry reminders and
notes, and optionally have a waiting-list companion used by the
queue display.  Supporting entities (departments, users with roles,
patient and doctor profiles, referrals, notifications) are kept small.
"""
from __future__ import annotations

from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models


class Department(models.Model):
    """A hospital department (cardiology, orthopaedics, ...)."""
    name = models.CharField(max_length=255)
    code = models.CharField(max_length=32, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.name} ({self.code})"


class User(AbstractUser):
    """Custom user model carrying a single role.

    The role decides which permission strings the user holds, see
    :mod:`clinic.permissions`.
    """
    ROLE_ADMIN = 'admin'
    ROLE_DOCTOR = 'doctor'
    ROLE_NURSE = 'nurse'
    ROLE_RECEPTIONIST = 'receptionist'
    ROLE_PATIENT = 'patient'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Administrator'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_NURSE, 'Nurse'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
        (ROLE_PATIENT, 'Patient'),
    ]
    role = models.CharField(max_length=16, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='staff'
    )

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"


class PatientProfile(models.Model):
    """Demographic record of a patient.

    A patient may exist without a login (walk-ins registered at the
    front desk), hence the optional user link.
    """
    user = models.OneToOneField(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='patient_profile'
    )
    name = models.CharField(max_length=255)
    sex = models.CharField(max_length=10, blank=True)
    age = models.PositiveIntegerField(null=True, blank=True)
    phone = models.CharField(max_length=32, blank=True)
    email = models.EmailField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return self.name


class DoctorProfile(models.Model):
    """A doctor and the weekly hours they take appointments."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='doctors'
    )
    specialization = models.CharField(max_length=255, blank=True)
    # weekday numbers, 0 = Sunday
    available_days = models.JSONField(default=list, blank=True)
    available_from = models.CharField(max_length=5, default='09:00')
    available_to = models.CharField(max_length=5, default='17:00')

    @property
    def name(self) -> str:
        return self.user.get_full_name() or self.user.username

    def __str__(self) -> str:
        return f"Dr. {self.name}"


class AppointmentType(models.Model):
    name = models.CharField(max_length=128, unique=True)
    description = models.TextField(blank=True)
    duration = models.PositiveIntegerField(default=30, help_text="Default duration in minutes")
    color = models.CharField(max_length=16, default='#3b82f6')
    is_active = models.BooleanField(default=True)

    def __str__(self) -> str:
        return self.name


class AppointmentStatus(models.TextChoices):
    SCHEDULED = 'SCHEDULED', 'Scheduled'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    CHECKED_IN = 'CHECKED_IN', 'Checked in'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED = 'CANCELLED', 'Cancelled'
    RESCHEDULED = 'RESCHEDULED', 'Rescheduled'
    NO_SHOW = 'NO_SHOW', 'No show'


class ConfirmationStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    DECLINED = 'DECLINED', 'Declined'


class Appointment(models.Model):
    """A booked slot between a patient and a doctor.

    Rows are never hard-deleted; cancelling sets the status to
    ``CANCELLED`` and stamps ``cancelled_at``.
    """
    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='appointments')
    doctor = models.ForeignKey(DoctorProfile, on_delete=models.CASCADE, related_name='appointments')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointments'
    )
    appointment_type = models.ForeignKey(AppointmentType, on_delete=models.PROTECT, related_name='appointments')

    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    start_time = models.DateTimeField()
    end_time = models.DateTimeField()
    duration = models.PositiveIntegerField(help_text="Minutes")
    location = models.CharField(max_length=255, blank=True)
    notes = models.TextField(blank=True)

    status = models.CharField(
        max_length=16, choices=AppointmentStatus.choices, default=AppointmentStatus.SCHEDULED, db_index=True
    )
    confirmation_status = models.CharField(
        max_length=16, choices=ConfirmationStatus.choices, default=ConfirmationStatus.PENDING
    )
    confirmation_time = models.DateTimeField(null=True, blank=True)
    check_in_time = models.DateTimeField(null=True, blank=True)
    check_out_time = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True)
    no_show = models.BooleanField(default=False)

    follow_up_needed = models.BooleanField(default=False)
    follow_up_notes = models.TextField(blank=True)
    is_co_consultation = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL,
        related_name='appointments_created',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['doctor', 'start_time', 'end_time'], name='appt_doctor_time_idx'),
            models.Index(fields=['patient', 'start_time'], name='appt_patient_time_idx'),
            models.Index(fields=['status', 'start_time'], name='appt_status_time_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.title} @ {self.start_time:%F %H:%M} ({self.status})"


class AppointmentNote(models.Model):
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='appointment_notes')
    note = models.TextField()
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"note {self.id} on appt={self.appointment_id}"


class AppointmentReminder(models.Model):
    TYPE_INITIAL = 'INITIAL'
    TYPE_FOLLOWUP = 'FOLLOWUP'
    TYPE_CONFIRMATION = 'CONFIRMATION'
    TYPE_RESCHEDULE = 'RESCHEDULE'
    TYPE_CUSTOM = 'CUSTOM'
    TYPE_CHOICES = [
        (TYPE_INITIAL, 'Initial'),
        (TYPE_FOLLOWUP, 'Follow-up'),
        (TYPE_CONFIRMATION, 'Confirmation'),
        (TYPE_RESCHEDULE, 'Reschedule'),
        (TYPE_CUSTOM, 'Custom'),
    ]

    CHANNEL_EMAIL = 'EMAIL'
    CHANNEL_SMS = 'SMS'
    CHANNEL_WHATSAPP = 'WHATSAPP'
    CHANNEL_CHOICES = [
        (CHANNEL_EMAIL, 'Email'),
        (CHANNEL_SMS, 'SMS'),
        (CHANNEL_WHATSAPP, 'WhatsApp'),
    ]

    STATUS_PENDING = 'PENDING'
    STATUS_SENT = 'SENT'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SENT, 'Sent'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='reminders')
    reminder_type = models.CharField(max_length=16, choices=TYPE_CHOICES, default=TYPE_INITIAL)
    channel = models.CharField(max_length=16, choices=CHANNEL_CHOICES)
    scheduled_time = models.DateTimeField()
    content = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    sent_time = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['status', 'scheduled_time'], name='reminder_status_time_idx')]

    def __str__(self) -> str:
        return f"{self.channel} reminder appt={self.appointment_id} @ {self.scheduled_time:%F %H:%M}"


class WaitingListEntry(models.Model):
    """Queue-display companion of an appointment."""
    STATUS_WAITING = 'WAITING'
    STATUS_CALLED = 'CALLED'
    STATUS_SERVING = 'SERVING'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (STATUS_WAITING, 'Waiting'),
        (STATUS_CALLED, 'Called'),
        (STATUS_SERVING, 'Serving'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    PRIORITY_CHOICES = [
        ('normal', 'Normal'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]

    appointment = models.OneToOneField(Appointment, on_delete=models.CASCADE, related_name='waiting_list')
    department = models.ForeignKey(
        Department, null=True, blank=True, on_delete=models.SET_NULL, related_name='waiting_list'
    )
    queue_number = models.PositiveIntegerField()
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='normal')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_WAITING, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"#{self.queue_number} appt={self.appointment_id} ({self.status})"


class Referral(models.Model):
    URGENCY_CHOICES = [
        ('NORMAL', 'Normal'),
        ('URGENT', 'Urgent'),
        ('EMERGENCY', 'Emergency'),
    ]
    STATUS_PENDING = 'PENDING'
    STATUS_SCHEDULED = 'SCHEDULED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_SCHEDULED, 'Scheduled'),
        ('COMPLETED', 'Completed'),
        ('CANCELLED', 'Cancelled'),
    ]

    patient = models.ForeignKey(PatientProfile, on_delete=models.CASCADE, related_name='referrals')
    referring_doctor = models.ForeignKey(DoctorProfile, on_delete=models.CASCADE, related_name='referrals_sent')
    receiving_doctor = models.ForeignKey(DoctorProfile, on_delete=models.CASCADE, related_name='referrals_received')
    reason = models.TextField()
    notes = models.TextField(blank=True)
    urgency = models.CharField(max_length=16, choices=URGENCY_CHOICES, default='NORMAL')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    original_appointment = models.ForeignKey(
        Appointment, on_delete=models.CASCADE, related_name='referrals_out'
    )
    new_appointment = models.OneToOneField(
        Appointment, null=True, blank=True, on_delete=models.SET_NULL, related_name='referral_in'
    )
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"referral {self.id}: {self.referring_doctor_id} -> {self.receiving_doctor_id}"


class CoConsultingDoctor(models.Model):
    """A doctor joining an appointment alongside its primary doctor."""
    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='co_consulting_doctors')
    doctor = models.ForeignKey(DoctorProfile, on_delete=models.CASCADE, related_name='co_consultations')
    role = models.CharField(max_length=32, default='CONSULTANT')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['appointment', 'doctor'], name='uniq_co_consulting_doctor'),
        ]

    def __str__(self) -> str:
        return f"doctor={self.doctor_id} on appt={self.appointment_id}"


class CoConsultationNote(models.Model):
    """Shared note of a co-consultation; doctors add sections to it."""
    URGENCY_CHOICES = [
        ('LOW', 'Low'),
        ('MEDIUM', 'Medium'),
        ('HIGH', 'High'),
    ]

    appointment = models.ForeignKey(Appointment, on_delete=models.CASCADE, related_name='co_consultation_notes')
    content = models.TextField(blank=True)
    reason = models.TextField(blank=True)
    urgency = models.CharField(max_length=8, choices=URGENCY_CHOICES, default='MEDIUM')
    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"co-consultation note {self.id} on appt={self.appointment_id}"


class CoConsultationNoteSection(models.Model):
    note = models.ForeignKey(CoConsultationNote, on_delete=models.CASCADE, related_name='sections')
    title = models.CharField(max_length=255)
    content = models.TextField()
    doctor = models.ForeignKey(DoctorProfile, null=True, blank=True, on_delete=models.SET_NULL)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+',
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL, related_name='+',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"section {self.id} of note={self.note_id}"


class Notification(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    title = models.CharField(max_length=255)
    message = models.TextField()
    type = models.CharField(max_length=32, default='GENERAL')
    is_read = models.BooleanField(default=False)
    link = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['user', 'is_read', 'created_at'], name='notif_user_read_idx')]

    def __str__(self) -> str:
        return f"{self.title} -> {self.user_id}"


class AuditEvent(models.Model):
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True)
    action = models.CharField(max_length=64)
    object_type = models.CharField(max_length=64, blank=True, null=True)
    object_id = models.IntegerField(blank=True, null=True)
    detail = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['action', 'created_at'], name='audit_action_idx'),
            models.Index(fields=['object_type', 'object_id', 'created_at'], name='audit_object_idx'),
        ]

    def __str__(self):
        return f"{self.action}:{self.user_id}@{self.created_at:%F %T}"
