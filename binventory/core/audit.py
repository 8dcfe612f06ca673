"""
Audit log queries: filtered listing, per-user activity, security events,
retention cleanup and export.
"""
import logging

from .models import AuditLog
from .utils import paginate_queryset

logger = logging.getLogger(__name__)


class AuditAction:
    LOGIN_SUCCESS = 'auth.login.success'
    LOGIN_FAILURE = 'auth.login.failure'
    LOGOUT = 'auth.logout'
    REGISTER = 'auth.register'
    PASSWORD_CHANGE = 'auth.password.change'
    PASSWORD_RESET_REQUEST = 'auth.password.reset.request'
    PASSWORD_RESET_COMPLETE = 'auth.password.reset.complete'

    TWO_FACTOR_ENABLE = 'auth.2fa.enable'
    TWO_FACTOR_VERIFY = 'auth.2fa.verify'
    TWO_FACTOR_DISABLE = 'auth.2fa.disable'
    TWO_FACTOR_RECOVERY = 'auth.2fa.recovery'

    SESSION_CREATE = 'session.create'
    SESSION_REFRESH = 'session.refresh'
    SESSION_EXPIRE = 'session.expire'
    SESSION_REVOKE = 'session.revoke'

    PROFILE_UPDATE = 'user.profile.update'
    EMAIL_CHANGE = 'user.email.change'
    ROLE_CHANGE = 'user.role.change'

    ADMIN_USER_CREATE = 'admin.user.create'
    ADMIN_USER_UPDATE = 'admin.user.update'
    ADMIN_USER_DELETE = 'admin.user.delete'

    API_REQUEST = 'api.request'
    API_ERROR = 'api.error'


class AuditEntity:
    USER = 'user'
    SESSION = 'session'
    BIN = 'bin'
    ITEM = 'item'
    CATEGORY = 'category'
    ORGANIZATION = 'organization'
    SYSTEM = 'system'


SECURITY_ACTIONS = [
    AuditAction.LOGIN_SUCCESS,
    AuditAction.LOGIN_FAILURE,
    AuditAction.PASSWORD_CHANGE,
    AuditAction.PASSWORD_RESET_REQUEST,
    AuditAction.PASSWORD_RESET_COMPLETE,
    AuditAction.TWO_FACTOR_ENABLE,
    AuditAction.TWO_FACTOR_VERIFY,
    AuditAction.TWO_FACTOR_DISABLE,
    AuditAction.TWO_FACTOR_RECOVERY,
    AuditAction.SESSION_CREATE,
    AuditAction.SESSION_REVOKE,
]


def filter_audit_logs(user_id=None, action=None, entity=None, entity_id=None,
                      start_date=None, end_date=None):
    queryset = AuditLog.objects.select_related('user').all()
    if user_id:
        queryset = queryset.filter(user_id=user_id)
    if action:
        queryset = queryset.filter(action=action)
    if entity:
        queryset = queryset.filter(entity=entity)
    if entity_id:
        queryset = queryset.filter(entity_id=str(entity_id))
    if start_date:
        queryset = queryset.filter(created_at__gte=start_date)
    if end_date:
        queryset = queryset.filter(created_at__lte=end_date)
    return queryset.order_by('-created_at')


def _with_limit_key(pagination):
    # Audit listings report page size as `limit`
    return {
        'page': pagination['page'],
        'limit': pagination['pageSize'],
        'total': pagination['total'],
        'totalPages': pagination['totalPages'],
    }


def get_audit_logs(page=1, limit=50, **filters):
    """Filtered, paginated audit logs, newest first"""
    logs, pagination = paginate_queryset(filter_audit_logs(**filters), page, limit)
    return logs, _with_limit_key(pagination)


def get_user_activity_logs(user, page=1, limit=20):
    return get_audit_logs(page=page, limit=limit, user_id=user.pk)


def get_user_security_logs(user, page=1, limit=20):
    """Login, password, two-factor and session events for one user"""
    queryset = AuditLog.objects.filter(
        user=user,
        action__in=SECURITY_ACTIONS,
    ).order_by('-created_at')
    logs, pagination = paginate_queryset(queryset, page, limit)
    return logs, _with_limit_key(pagination)


def clear_old_audit_logs(older_than):
    """Delete audit logs created before `older_than`; returns the number deleted"""
    deleted, _ = AuditLog.objects.filter(created_at__lt=older_than).delete()
    logger.info(f"Cleared {deleted} audit log(s) older than {older_than.isoformat()}")
    return deleted


def serialize_audit_log(log):
    return {
        'id': log.id,
        'userId': log.user_id,
        'action': log.action,
        'entity': log.entity,
        'entityId': log.entity_id,
        'ipAddress': log.ip_address,
        'userAgent': log.user_agent,
        'metadata': log.metadata,
        'createdAt': log.created_at.isoformat(),
    }


def export_audit_logs(**filters):
    """All matching logs (no pagination) as JSON-ready dicts"""
    return [serialize_audit_log(log) for log in filter_audit_logs(**filters)]
