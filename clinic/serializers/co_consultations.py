from rest_framework import serializers

from clinic.models import CoConsultationNote

URGENCIES = [c for c, _ in CoConsultationNote.URGENCY_CHOICES]


class CoConsultationCreateSerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)
    primaryDoctorId = serializers.IntegerField(min_value=1)
    coConsultingDoctorIds = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)
    appointmentTypeId = serializers.IntegerField(min_value=1)
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default='')
    startTime = serializers.DateTimeField()
    endTime = serializers.DateTimeField()
    location = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    urgency = serializers.ChoiceField(choices=URGENCIES, required=False, default='MEDIUM')
    createReminders = serializers.BooleanField(required=False, default=False)

    def validate_coConsultingDoctorIds(self, value):
        # keep the caller's order, drop repeats
        return list(dict.fromkeys(value))

    def validate(self, attrs):
        if attrs['endTime'] <= attrs['startTime']:
            raise serializers.ValidationError('endTime must be after startTime')
        if attrs['primaryDoctorId'] in attrs['coConsultingDoctorIds']:
            raise serializers.ValidationError('The primary doctor cannot also be a co-consulting doctor')
        return attrs


class NoteQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)


class NoteWriteSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    content = serializers.CharField(required=False, allow_blank=True)
    sectionTitle = serializers.CharField(max_length=255, required=False, allow_blank=True)
    sectionContent = serializers.CharField(required=False, allow_blank=True)
    doctorId = serializers.IntegerField(min_value=1, required=False)


class SectionDeleteSerializer(serializers.Serializer):
    sectionId = serializers.IntegerField(min_value=1)
