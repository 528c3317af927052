from rest_framework import serializers

from clinic.models import Referral

URGENCIES = [c for c, _ in Referral.URGENCY_CHOICES]


class ReferralCreateSerializer(serializers.Serializer):
    originalAppointmentId = serializers.IntegerField(min_value=1)
    receivingDoctorId = serializers.IntegerField(min_value=1)
    reason = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False, default='NORMAL')
    createNewAppointment = serializers.BooleanField(required=False, default=False)
    appointmentDate = serializers.DateField(required=False)
    appointmentTime = serializers.TimeField(required=False, format='%H:%M', input_formats=['%H:%M', '%H:%M:%S'])
    duration = serializers.IntegerField(min_value=1, required=False)


class ReferralListQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1, required=False)
    referringDoctorId = serializers.IntegerField(min_value=1, required=False)
    receivingDoctorId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Referral.STATUS_CHOICES], required=False)
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False)
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)
