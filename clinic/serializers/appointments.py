from datetime import timedelta

from django.conf import settings
from rest_framework import serializers

from clinic.models import AppointmentStatus

REPORT_TYPES = ['patient', 'doctor', 'department', 'status', 'time']
CALENDAR_MAX_DAYS = 366


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=settings.APPOINTMENT_MAX_PAGE_SIZE, required=False)


class AppointmentFilterSerializer(PageQuerySerializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    departmentId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=AppointmentStatus.values, required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)


class AppointmentCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    doctorId = serializers.IntegerField(min_value=1)
    departmentId = serializers.IntegerField(min_value=1, required=False)
    appointmentTypeId = serializers.IntegerField(min_value=1)
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField()
    duration = serializers.IntegerField(min_value=1)
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    createReminders = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        if attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError('endTime must be after startTime')
        return attrs


class StatusUpdateSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=AppointmentStatus.values)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    followUpNeeded = serializers.BooleanField(required=False, default=False)
    followUpNotes = serializers.CharField(required=False, allow_blank=True)
    followUpDate = serializers.DateTimeField(required=False)
    followUpDuration = serializers.IntegerField(min_value=1, required=False)


class StatusStatsQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    departmentId = serializers.IntegerField(min_value=1, required=False)
    startDate = serializers.DateTimeField(required=False)
    endDate = serializers.DateTimeField(required=False)


class RescheduleSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField()
    duration = serializers.IntegerField(min_value=1, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    createReminders = serializers.BooleanField(required=False, default=True)

    def validate(self, attrs):
        if attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError('endTime must be after startTime')
        return attrs


class CalendarQuerySerializer(serializers.Serializer):
    startDate = serializers.DateTimeField()
    endDate = serializers.DateTimeField()
    doctorId = serializers.IntegerField(min_value=1, required=False)
    patientId = serializers.IntegerField(min_value=1, required=False)
    departmentId = serializers.IntegerField(min_value=1, required=False)

    def validate(self, attrs):
        if attrs['endDate'] < attrs['startDate']:
            raise serializers.ValidationError('endDate must not be before startDate')
        if attrs['endDate'] - attrs['startDate'] > timedelta(days=CALENDAR_MAX_DAYS):
            raise serializers.ValidationError(f'Calendar range cannot exceed {CALENDAR_MAX_DAYS} days')
        return attrs


class HistoryQuerySerializer(AppointmentFilterSerializer):
    reportType = serializers.ChoiceField(choices=REPORT_TYPES, required=False)


class AppointmentTypeCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=128)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    duration = serializers.IntegerField(min_value=1, required=False, default=30)
    color = serializers.RegexField(r'^#[0-9a-fA-F]{6}$', required=False, default='#3b82f6')
