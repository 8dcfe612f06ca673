from django.contrib.auth.password_validation import validate_password
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainSerializer, TokenRefreshSerializer
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth.models import update_last_login

from .accounts import verify_credentials
from .audit import AuditAction, AuditEntity
from .models import User, AuditLog, UserSession
from .sessions import SESSION_CLAIM, get_session_for_token, open_session
from .two_factor import require_second_factor
from .utils import create_audit_log


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'name', 'role', 'image', 'is_active', 'is_staff', 'created_at', 'updated_at']
        read_only_fields = ['username', 'email', 'role', 'is_active', 'is_staff', 'created_at', 'updated_at']


class RegisterSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=100)
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, min_length=8, max_length=100, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True, required=False)

    def validate(self, attrs):
        confirm = attrs.pop('password_confirm', None)
        if confirm is not None and confirm != attrs['password']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs


class ProfileSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=100, required=False)
    image = serializers.URLField(max_length=500, required=False, allow_null=True, allow_blank=True)


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8, max_length=100)


class LoginSerializer(TokenObtainSerializer):
    """Email/password login with an optional second factor; opens a session"""
    token_class = RefreshToken

    otp = serializers.CharField(required=False, allow_blank=True, write_only=True)
    recovery_code = serializers.CharField(required=False, allow_blank=True, write_only=True)

    def validate(self, attrs):
        request = self.context.get('request')
        self.user = verify_credentials(attrs[self.username_field], attrs['password'], request)
        if self.user is None:
            create_audit_log(
                request=request,
                action=AuditAction.LOGIN_FAILURE,
                entity=AuditEntity.USER,
                metadata={'email': attrs.get(self.username_field)},
            )
            raise AuthenticationFailed(self.error_messages['no_active_account'], 'no_active_account')

        require_second_factor(self.user, attrs.get('otp'), attrs.get('recovery_code'), request)

        refresh, session = open_session(self.user, request)
        if api_settings.UPDATE_LAST_LOGIN:
            update_last_login(None, self.user)
        create_audit_log(
            request=request,
            user=self.user,
            action=AuditAction.LOGIN_SUCCESS,
            entity=AuditEntity.USER,
            entity_id=self.user.pk,
            metadata={'sessionId': str(session.id)},
        )
        return {
            'refresh': str(refresh),
            'access': str(refresh.access_token),
            'session_id': str(session.id),
            'user': UserSerializer(self.user).data,
        }


class SessionTokenRefreshSerializer(TokenRefreshSerializer):
    """Refresh an access token while its session is alive"""

    def validate(self, attrs):
        try:
            refresh = RefreshToken(attrs['refresh'])
        except TokenError:
            raise InvalidToken('Token is invalid or expired.')

        session = get_session_for_token(refresh)
        if session is None:
            raise InvalidToken('Session has expired or was revoked.')
        if not User.objects.filter(pk=session.user_id, is_active=True).exists():
            raise InvalidToken('Token is invalid. User no longer exists.')

        data = super().validate(attrs)
        create_audit_log(
            request=self.context.get('request'),
            user=session.user,
            action=AuditAction.SESSION_REFRESH,
            entity=AuditEntity.SESSION,
            entity_id=session.id,
        )
        data[SESSION_CLAIM] = str(session.id)
        return data


class SessionSerializer(serializers.ModelSerializer):
    is_current = serializers.SerializerMethodField()

    class Meta:
        model = UserSession
        fields = ['id', 'expires', 'ip_address', 'user_agent', 'device_type', 'created_at', 'last_active', 'is_current']

    def get_is_current(self, obj):
        current_id = self.context.get('current_session_id')
        return current_id is not None and str(obj.id) == str(current_id)


class ExtendSessionSerializer(serializers.Serializer):
    hours = serializers.IntegerField(min_value=1, max_value=24 * 30, default=24)


class AuditLogSerializer(serializers.ModelSerializer):
    user_email = serializers.EmailField(source='user.email', read_only=True, default=None)

    class Meta:
        model = AuditLog
        fields = ['id', 'user', 'user_email', 'action', 'entity', 'entity_id', 'ip_address',
                  'user_agent', 'metadata', 'created_at']


class AuditLogFilterSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(required=False, min_value=1)
    action = serializers.CharField(required=False, allow_blank=True, max_length=100)
    entity = serializers.CharField(required=False, allow_blank=True, max_length=50)
    entity_id = serializers.CharField(required=False, allow_blank=True, max_length=255)
    start_date = serializers.DateTimeField(required=False)
    end_date = serializers.DateTimeField(required=False)


class TwoFactorTokenSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=12)


class RecoveryCodeSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=64)


class PasswordResetRequestSerializer(serializers.Serializer):
    email = serializers.EmailField()


class PasswordResetTokenSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()


class PasswordResetSerializer(PasswordResetTokenSerializer):
    password = serializers.CharField(write_only=True, min_length=8, max_length=100)
