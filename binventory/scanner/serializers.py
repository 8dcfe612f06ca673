from rest_framework import serializers

from .services import ACTION_ADD, ACTION_REMOVE


class ScanSerializer(serializers.Serializer):
    data = serializers.CharField(max_length=500)


class QueuedOperationSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[ACTION_ADD, ACTION_REMOVE])
    binId = serializers.UUIDField()
    itemId = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    timestamp = serializers.IntegerField(min_value=0, help_text="Epoch milliseconds when queued")


class SyncSerializer(serializers.Serializer):
    operations = QueuedOperationSerializer(many=True, allow_empty=True)
