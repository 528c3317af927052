from rest_framework import serializers

from clinic.models import WaitingListEntry


class WaitingListAddSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    priority = serializers.ChoiceField(choices=[c for c, _ in WaitingListEntry.PRIORITY_CHOICES], required=False,
                                       default='normal')


class WaitingListQuerySerializer(serializers.Serializer):
    departmentId = serializers.IntegerField(min_value=1, required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in WaitingListEntry.STATUS_CHOICES], required=False)
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)
