import json
import logging

from django.utils import timezone
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, IsAdminUser, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from . import accounts, audit, recovery, sessions, two_factor
from .errors import bad_request
from .serializers import (
    UserSerializer, RegisterSerializer, ProfileSerializer, ChangePasswordSerializer,
    LoginSerializer, SessionTokenRefreshSerializer, SessionSerializer, ExtendSessionSerializer,
    AuditLogSerializer, AuditLogFilterSerializer, TwoFactorTokenSerializer, RecoveryCodeSerializer,
    PasswordResetRequestSerializer, PasswordResetTokenSerializer, PasswordResetSerializer,
)
from .utils import create_audit_log, parse_int, success_response, validation_error_response
from .audit import AuditAction, AuditEntity

logger = logging.getLogger('binventory.core')

RESET_REQUEST_MESSAGE = 'If an account exists with that email, a password reset link has been sent.'


def current_session_id(request):
    session = getattr(request.user, 'current_session', None)
    return session.id if session else None


class LoginView(TokenObtainPairView):
    serializer_class = LoginSerializer


class SessionTokenRefreshView(TokenRefreshView):
    serializer_class = SessionTokenRefreshSerializer


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """User registration endpoint; returns the user and a fresh session's tokens"""
    serializer = RegisterSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)

    user = accounts.register(request=request, **serializer.validated_data)
    refresh, session = sessions.open_session(user, request)
    return success_response({
        'user': UserSerializer(user).data,
        'access': str(refresh.access_token),
        'refresh': str(refresh),
        'session_id': str(session.id),
    }, status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout(request):
    """End the current session"""
    session_id = current_session_id(request)
    if session_id:
        sessions.close_session(session_id)
    create_audit_log(
        request=request,
        action=AuditAction.LOGOUT,
        entity=AuditEntity.SESSION,
        entity_id=session_id,
    )
    return success_response({'loggedOut': True})


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get or update the current user's profile"""
    if request.method == 'GET':
        data = UserSerializer(request.user).data
        data['two_factor'] = two_factor.get_status(request.user)
        return success_response(data)

    serializer = ProfileSerializer(data=request.data, partial=True)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    user = accounts.update_profile(request.user, request=request, **serializer.validated_data)
    return success_response(UserSerializer(user).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    serializer = ChangePasswordSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    accounts.change_password(
        request.user,
        serializer.validated_data['current_password'],
        serializer.validated_data['new_password'],
        request=request,
    )
    revoked = sessions.revoke_all_other_sessions(request.user, current_session_id(request), request=request)
    return success_response({'passwordChanged': True, 'revokedSessions': revoked})


# Session views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def session_list(request):
    """Active sessions of the current user"""
    active = sessions.get_active_sessions(request.user)
    serializer = SessionSerializer(active, many=True, context={'current_session_id': current_session_id(request)})
    return success_response(serializer.data)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def session_revoke(request, session_id):
    sessions.revoke_session(request.user, session_id, request=request)
    return success_response({'revoked': str(session_id)})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def session_extend(request, session_id):
    serializer = ExtendSessionSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    session = sessions.extend_session(request.user, session_id, serializer.validated_data['hours'], request=request)
    return success_response(SessionSerializer(session, context={'current_session_id': current_session_id(request)}).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def session_revoke_others(request):
    count = sessions.revoke_all_other_sessions(request.user, current_session_id(request), request=request)
    return success_response({'revokedCount': count})


# Two-factor views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def two_factor_status(request):
    return success_response(two_factor.get_status(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_setup(request):
    return success_response(two_factor.generate_secret(request.user, request=request))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_verify(request):
    serializer = TwoFactorTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    if not two_factor.verify_totp(request.user, serializer.validated_data['token'], request=request):
        raise bad_request('INVALID_TOKEN', 'Invalid verification code')
    return success_response(two_factor.get_status(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_recover(request):
    serializer = RecoveryCodeSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    if not two_factor.verify_recovery_code(request.user, serializer.validated_data['code'], request=request):
        raise bad_request('INVALID_RECOVERY_CODE', 'Invalid recovery code')
    return success_response(two_factor.get_status(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_disable(request):
    serializer = TwoFactorTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    two_factor.disable(request.user, serializer.validated_data['token'], request=request)
    return success_response(two_factor.get_status(request.user))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def two_factor_recovery_codes(request):
    serializer = TwoFactorTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    codes = two_factor.regenerate_recovery_codes(request.user, serializer.validated_data['token'], request=request)
    return success_response({'recoveryCodes': codes})


# Password recovery views
@api_view(['POST'])
@permission_classes([AllowAny])
def password_reset_request(request):
    serializer = PasswordResetRequestSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    recovery.request_password_reset(serializer.validated_data['email'], request=request)
    return success_response({'message': RESET_REQUEST_MESSAGE})


@api_view(['POST'])
@permission_classes([AllowAny])
def password_reset_validate(request):
    serializer = PasswordResetTokenSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    user = recovery.validate_reset_token(serializer.validated_data['uid'], serializer.validated_data['token'])
    return success_response({'valid': True, 'email': user.email})


@api_view(['POST'])
@permission_classes([AllowAny])
def password_reset_confirm(request):
    serializer = PasswordResetSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    recovery.reset_password(
        serializer.validated_data['uid'],
        serializer.validated_data['token'],
        serializer.validated_data['password'],
        request=request,
    )
    return success_response({'passwordReset': True})


# AuditLog views (read-only)
def _audit_filters(request):
    """Validated audit filters from the query string; returns (filters, errors)"""
    params = {key: value for key, value in request.query_params.items() if value != ''}
    serializer = AuditLogFilterSerializer(data=params)
    if not serializer.is_valid():
        return None, serializer.errors
    return dict(serializer.validated_data), None


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def security_logs(request):
    """The current user's security events"""
    page = parse_int(request.query_params.get('page'), 1)
    limit = parse_int(request.query_params.get('limit'), 20, maximum=100)
    logs, pagination = audit.get_user_security_logs(request.user, page, limit)
    return success_response(AuditLogSerializer(logs, many=True).data, meta={'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminUser])
def audit_log_list(request):
    """List audit logs with filtering"""
    page = parse_int(request.query_params.get('page'), 1)
    limit = parse_int(request.query_params.get('limit'), 50, maximum=500)
    filters, errors = _audit_filters(request)
    if errors:
        return validation_error_response(errors)
    logs, pagination = audit.get_audit_logs(page=page, limit=limit, **filters)
    return success_response(AuditLogSerializer(logs, many=True).data, meta={'pagination': pagination})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminUser])
def audit_log_export(request):
    """Download every matching audit log as JSON"""
    filters, errors = _audit_filters(request)
    if errors:
        return validation_error_response(errors)
    logs = audit.export_audit_logs(**filters)
    response = HttpResponse(json.dumps(logs, indent=2), content_type='application/json')
    filename = f"audit-logs-{timezone.now():%Y%m%d-%H%M%S}.json"
    response['Content-Disposition'] = f'attachment; filename="{filename}"'
    return response
