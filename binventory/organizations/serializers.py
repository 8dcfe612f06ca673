from rest_framework import serializers
from .models import Organization, OrganizationMember


class OrganizationSerializer(serializers.ModelSerializer):
    member_count = serializers.SerializerMethodField()
    role = serializers.SerializerMethodField()

    class Meta:
        model = Organization
        fields = ['id', 'name', 'slug', 'description', 'member_count', 'role', 'created_at', 'updated_at']
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_member_count(self, obj):
        return obj.memberships.count()

    def get_role(self, obj):
        roles = self.context.get('roles') or {}
        return roles.get(obj.id)


class OrganizationWriteSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=100)
    slug = serializers.SlugField(max_length=120, required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class OrganizationMemberSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)
    name = serializers.CharField(source='user.name', read_only=True)
    invited_by_email = serializers.EmailField(source='invited_by.email', read_only=True, default=None)

    class Meta:
        model = OrganizationMember
        fields = ['id', 'user', 'email', 'name', 'role', 'invited_by', 'invited_by_email', 'joined_at']
        read_only_fields = fields


class AddMemberSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(required=False)
    email = serializers.EmailField(required=False)
    role = serializers.ChoiceField(choices=OrganizationMember.ROLE_CHOICES, default=OrganizationMember.ROLE_MEMBER)

    def validate(self, attrs):
        if not attrs.get('user_id') and not attrs.get('email'):
            raise serializers.ValidationError({'user_id': 'Provide user_id or email'})
        return attrs


class UpdateMemberSerializer(serializers.Serializer):
    role = serializers.ChoiceField(choices=OrganizationMember.ROLE_CHOICES)
