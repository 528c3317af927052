from rest_framework import serializers

from clinic.models import AppointmentReminder

REMINDER_TYPES = [c for c, _ in AppointmentReminder.TYPE_CHOICES]
CHANNELS = [c for c, _ in AppointmentReminder.CHANNEL_CHOICES]
STATUSES = [c for c, _ in AppointmentReminder.STATUS_CHOICES]


class ReminderListQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=STATUSES, required=False, default=AppointmentReminder.STATUS_PENDING)
    channel = serializers.ChoiceField(choices=CHANNELS, required=False)
    reminderType = serializers.ChoiceField(choices=REMINDER_TYPES, required=False)
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)


class ReminderOperationSerializer(serializers.Serializer):
    """One body for the four reminder operations.

    ``create`` needs ``appointmentId``, ``reminderType``, ``channel`` and
    ``scheduledTime``; ``update``, ``send`` and ``cancel`` need ``reminderId``.
    """
    operation = serializers.ChoiceField(choices=['create', 'update', 'send', 'cancel'])
    reminderId = serializers.IntegerField(min_value=1, required=False)
    appointmentId = serializers.IntegerField(min_value=1, required=False)
    reminderType = serializers.ChoiceField(choices=REMINDER_TYPES, required=False)
    channel = serializers.ChoiceField(choices=CHANNELS, required=False)
    scheduledTime = serializers.DateTimeField(required=False)
    content = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=STATUSES, required=False)

    def validate(self, attrs):
        op = attrs['operation']
        if op == 'create':
            missing = [f for f in ('appointmentId', 'reminderType', 'channel', 'scheduledTime') if f not in attrs]
            if missing:
                raise serializers.ValidationError(f"Missing required fields: {', '.join(missing)}")
        elif 'reminderId' not in attrs:
            raise serializers.ValidationError('reminderId is required')
        return attrs
