"""Utility functions for audit logging, request metadata and response shaping"""
import logging
import math

from rest_framework import status
from rest_framework.response import Response

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def get_user_agent(request):
    if not request or not hasattr(request, 'META'):
        return ''
    return request.META.get('HTTP_USER_AGENT', '')


def create_audit_log(request=None, action=None, entity=None, entity_id=None,
                     metadata=None, user=None):
    """
    Create an audit log entry

    Args:
        request: Django/DRF request (for user, IP and user agent) - optional if user is provided
        action: Dotted action name (e.g. 'auth.login.success')
        entity: Entity type the action applies to (user, session, bin, item, category, ...)
        entity_id: ID of the entity (stored as string)
        metadata: Dictionary with extra context
        user: Optional user override (defaults to request.user if request provided)

    Returns the created AuditLog, or None when logging failed. Never raises.
    """
    try:
        audit_user = None
        if user is not None:
            audit_user = user
        elif request is not None and hasattr(request, 'user'):
            audit_user = request.user

        if not action:
            logger.warning(f"Audit log creation skipped: missing action (entity={entity}, entity_id={entity_id})")
            return None

        return AuditLog.objects.create(
            user=audit_user if audit_user is not None and audit_user.is_authenticated else None,
            action=action,
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request) or None,
            metadata=metadata or {},
        )
    except Exception as e:
        # Audit logging must not fail the main operation
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def parse_int(value, default, minimum=1, maximum=None):
    """Parse a query-string integer, clamping it to [minimum, maximum]"""
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if number < minimum:
        return default
    if maximum is not None and number > maximum:
        return maximum
    return number


def paginate_queryset(queryset, page=1, limit=20):
    """Slice a queryset; returns (rows, pagination dict)"""
    total = queryset.count()
    offset = (page - 1) * limit
    rows = list(queryset[offset:offset + limit])
    pagination = {
        'page': page,
        'pageSize': limit,
        'total': total,
        'totalPages': math.ceil(total / limit) if limit else 0,
    }
    return rows, pagination


def success_response(data=None, status_code=status.HTTP_200_OK, meta=None):
    """Wrap data in the success envelope"""
    body = {'success': True, 'data': data}
    if meta:
        body['meta'] = meta
    return Response(body, status=status_code)


def validation_error_response(errors):
    """400 response for serializer errors, in the error envelope"""
    return Response(
        {
            'success': False,
            'error': {
                'code': 'VALIDATION_ERROR',
                'message': 'Invalid request data',
                'details': errors,
            },
        },
        status=status.HTTP_400_BAD_REQUEST,
    )
