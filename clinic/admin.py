"""
Django admin registrations for the clinic models.

Superusers can inspect appointments, reminders and the supporting
records through ``/admin/``.  Appointments are shown with their notes
and reminders inline.
"""

from django.contrib import admin

from .models import (
    Department,
    User,
    PatientProfile,
    DoctorProfile,
    AppointmentType,
    Appointment,
    AppointmentNote,
    AppointmentReminder,
    CoConsultingDoctor,
    CoConsultationNote,
    CoConsultationNoteSection,
    WaitingListEntry,
    Referral,
    Notification,
    AuditEvent,
)


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'code', 'created_at')
    search_fields = ('name', 'code')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'department', 'is_staff', 'is_superuser')
    list_filter = ('role', 'department')
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(PatientProfile)
class PatientProfileAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'sex', 'age', 'phone', 'user')
    search_fields = ('name', 'phone', 'email', 'user__username')


@admin.register(DoctorProfile)
class DoctorProfileAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'department', 'specialization', 'available_from', 'available_to')
    list_filter = ('department',)
    search_fields = ('user__username', 'user__first_name', 'user__last_name', 'specialization')


@admin.register(AppointmentType)
class AppointmentTypeAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'duration', 'color', 'is_active')
    list_filter = ('is_active',)


class AppointmentNoteInline(admin.TabularInline):
    model = AppointmentNote
    extra = 0


class AppointmentReminderInline(admin.TabularInline):
    model = AppointmentReminder
    extra = 0


class CoConsultingDoctorInline(admin.TabularInline):
    model = CoConsultingDoctor
    extra = 0


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'patient', 'doctor', 'start_time', 'end_time', 'status')
    list_filter = ('status', 'department', 'appointment_type', 'is_co_consultation')
    search_fields = ('id', 'title', 'patient__name', 'doctor__user__username')
    date_hierarchy = 'start_time'
    inlines = [AppointmentNoteInline, AppointmentReminderInline, CoConsultingDoctorInline]


@admin.register(AppointmentReminder)
class AppointmentReminderAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'reminder_type', 'channel', 'scheduled_time', 'status', 'sent_time')
    list_filter = ('status', 'channel', 'reminder_type')


class CoConsultationNoteSectionInline(admin.TabularInline):
    model = CoConsultationNoteSection
    extra = 0


@admin.register(CoConsultationNote)
class CoConsultationNoteAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'urgency', 'created_by', 'updated_at')
    list_filter = ('urgency',)
    inlines = [CoConsultationNoteSectionInline]


@admin.register(WaitingListEntry)
class WaitingListEntryAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'department', 'queue_number', 'priority', 'status')
    list_filter = ('status', 'priority', 'department')


@admin.register(Referral)
class ReferralAdmin(admin.ModelAdmin):
    list_display = ('id', 'patient', 'referring_doctor', 'receiving_doctor', 'urgency', 'status', 'created_at')
    list_filter = ('status', 'urgency')


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'title', 'type', 'is_read', 'created_at')
    list_filter = ('type', 'is_read')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('id', 'action', 'user', 'object_type', 'object_id', 'created_at')
    list_filter = ('action', 'object_type')
