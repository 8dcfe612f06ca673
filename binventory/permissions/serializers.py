from rest_framework import serializers
from .models import ObjectPermission


class ObjectPermissionSerializer(serializers.ModelSerializer):
    class Meta:
        model = ObjectPermission
        fields = ['id', 'object_type', 'object_id', 'subject_type', 'subject_id', 'action', 'granted_by', 'granted_at']
        read_only_fields = fields


class PermissionSubjectSerializer(serializers.Serializer):
    subject_type = serializers.ChoiceField(choices=ObjectPermission.SUBJECT_TYPE_CHOICES)
    subject_id = serializers.CharField(max_length=64)
    action = serializers.ChoiceField(choices=ObjectPermission.ACTION_CHOICES)


class PermissionSerializer(PermissionSubjectSerializer):
    object_type = serializers.ChoiceField(choices=ObjectPermission.OBJECT_TYPE_CHOICES)
    object_id = serializers.UUIDField()


class PermissionQuerySerializer(serializers.Serializer):
    object_type = serializers.ChoiceField(choices=ObjectPermission.OBJECT_TYPE_CHOICES, required=False)
    object_id = serializers.CharField(max_length=64, required=False)
    subject_type = serializers.ChoiceField(choices=ObjectPermission.SUBJECT_TYPE_CHOICES, required=False)
    subject_id = serializers.CharField(max_length=64, required=False)
    action = serializers.ChoiceField(choices=ObjectPermission.ACTION_CHOICES, required=False)
