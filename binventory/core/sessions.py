"""
Login sessions.

Every issued token pair is bound to a UserSession row through the `sid`
claim; deleting the row revokes the tokens.
"""
import logging
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone as dt_timezone

from django.db import transaction
from django.utils import timezone
from rest_framework_simplejwt.tokens import RefreshToken

from .audit import AuditAction, AuditEntity
from .errors import not_found
from .models import UserSession
from .utils import create_audit_log, get_client_ip, get_user_agent

logger = logging.getLogger(__name__)

SESSION_CLAIM = 'sid'
DEFAULT_EXTEND_HOURS = 24
SUSPICIOUS_LOOKBACK_DAYS = 30
NEW_DEVICE_REASON = 'Login from new device detected'


def mask_token(token):
    return f"{token[:8]}..." if token else ''


def detect_device_type(user_agent):
    ua = (user_agent or '').lower()
    if not ua:
        return 'unknown'
    if 'ipad' in ua or 'tablet' in ua:
        return 'tablet'
    if 'mobile' in ua or 'android' in ua or 'iphone' in ua:
        return 'mobile'
    return 'desktop'


def build_refresh_token(user):
    """Refresh token carrying the profile claims used by clients"""
    token = RefreshToken.for_user(user)
    token['email'] = user.email
    token['name'] = user.name
    token['role'] = user.role
    return token


def open_session(user, request=None):
    """
    Create a session for `user` and return (refresh_token, session).

    The access token is available as `refresh_token.access_token` and carries
    the same `sid` claim.
    """
    refresh = build_refresh_token(user)
    expires = datetime.fromtimestamp(refresh['exp'], tz=dt_timezone.utc)
    user_agent = get_user_agent(request)

    with transaction.atomic():
        session = UserSession.objects.create(
            user=user,
            token=refresh['jti'],
            expires=expires,
            ip_address=get_client_ip(request),
            user_agent=user_agent,
            device_type=detect_device_type(user_agent),
        )
    refresh[SESSION_CLAIM] = str(session.id)

    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.SESSION_CREATE,
        entity=AuditEntity.SESSION,
        entity_id=session.id,
        metadata={'deviceType': session.device_type},
    )
    track_suspicious_activity(user, session, request)
    logger.info(f"Opened session {session.id} for user {user.pk}")
    return refresh, session


def get_session_for_token(validated_token):
    """Live session referenced by a token's `sid` claim, or None"""
    session_id = validated_token.get(SESSION_CLAIM)
    if not session_id:
        return None
    try:
        session_uuid = uuid.UUID(str(session_id))
    except ValueError:
        logger.warning(f"Rejected token with invalid session id {session_id!r}")
        return None
    return UserSession.objects.filter(pk=session_uuid, expires__gt=timezone.now()).first()


def get_active_sessions(user):
    """Unexpired sessions of `user`, latest expiry first"""
    return UserSession.objects.filter(user=user, expires__gt=timezone.now()).order_by('-expires')


def _get_user_session(user, session_id):
    session = UserSession.objects.filter(pk=session_id, user=user).first()
    if session is None:
        raise not_found('SESSION_NOT_FOUND', 'Session not found or does not belong to this user')
    return session


def revoke_session(user, session_id, request=None):
    """Delete one of the user's sessions"""
    session = _get_user_session(user, session_id)
    masked = mask_token(session.token)
    session.delete()
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.SESSION_REVOKE,
        entity=AuditEntity.SESSION,
        entity_id=session_id,
        metadata={'token': masked},
    )
    logger.info(f"Revoked session {session_id} for user {user.pk}")


def revoke_all_other_sessions(user, current_session_id=None, request=None):
    """Delete every session of `user` except the current one; returns count"""
    queryset = UserSession.objects.filter(user=user)
    if current_session_id:
        queryset = queryset.exclude(pk=current_session_id)
    count, _ = queryset.delete()
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.SESSION_REVOKE,
        entity=AuditEntity.SESSION,
        entity_id=current_session_id,
        metadata={'revokedCount': count, 'allExceptCurrent': True},
    )
    return count


def revoke_all_sessions(user):
    count, _ = UserSession.objects.filter(user=user).delete()
    return count


def extend_session(user, session_id, hours=DEFAULT_EXTEND_HOURS, request=None):
    """Push an active session's expiry to now + `hours`"""
    session = UserSession.objects.filter(pk=session_id, user=user, expires__gt=timezone.now()).first()
    if session is None:
        raise not_found('SESSION_NOT_FOUND', 'Session not found, expired, or does not belong to this user')
    session.expires = timezone.now() + timedelta(hours=hours)
    session.save(update_fields=['expires'])
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.SESSION_REFRESH,
        entity=AuditEntity.SESSION,
        entity_id=session.id,
        metadata={'extendedHours': hours},
    )
    return session


def touch_session(session, min_interval_seconds=300):
    """Record activity, at most once per interval"""
    now = timezone.now()
    if session.last_active and (now - session.last_active).total_seconds() < min_interval_seconds:
        return
    UserSession.objects.filter(pk=session.pk).update(last_active=now)


def cleanup_expired_sessions():
    """Delete expired sessions; returns the number removed"""
    expired = UserSession.objects.filter(expires__lte=timezone.now()).select_related('user')
    per_user = Counter(session.user for session in expired)
    count, _ = expired.delete()

    for user, user_count in per_user.items():
        create_audit_log(
            user=user,
            action=AuditAction.SESSION_EXPIRE,
            entity=AuditEntity.SESSION,
            metadata={'expiredCount': user_count},
        )
    logger.info(f"Cleaned up {count} expired session(s)")
    return count


def track_suspicious_activity(user, session, request=None):
    """
    Flag logins from an unfamiliar device.

    A login is suspicious when the user has one or two other sessions from the
    last 30 days and none of them used this device (user agent and IP).
    Returns {'isSuspicious': bool, 'reasons': [...]}.
    """
    result = {'isSuspicious': False, 'reasons': []}
    cutoff = timezone.now() - timedelta(days=SUSPICIOUS_LOOKBACK_DAYS)
    recent = list(
        UserSession.objects.filter(user=user, expires__gt=cutoff)
        .exclude(pk=session.pk)
        .order_by('-expires')[:10]
    )
    if not 0 < len(recent) < 3:
        return result

    known_device = any(
        s.user_agent == session.user_agent and s.ip_address == session.ip_address
        for s in recent
    )
    if known_device:
        return result

    result['isSuspicious'] = True
    result['reasons'].append(NEW_DEVICE_REASON)
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.SESSION_CREATE,
        entity=AuditEntity.SESSION,
        entity_id=session.id,
        metadata={'suspicious': True, 'reasons': result['reasons']},
    )
    logger.warning(f"Suspicious login for user {user.pk}: {', '.join(result['reasons'])}")
    return result


def close_session(session_id):
    """Delete a session without auditing it as a revocation (logout)"""
    UserSession.objects.filter(pk=session_id).delete()
