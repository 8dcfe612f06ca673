"""
Application error type and the DRF exception handler that renders it.

Service functions raise AppError; views let it propagate and the handler
turns it into {"success": false, "error": {"code", "message", "details"}}.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import exceptions, status

logger = logging.getLogger(__name__)


class AppError(exceptions.APIException):
    """Tagged service-layer error: code, message, HTTP status and optional details"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'APP_ERROR'
    default_detail = 'Request could not be processed.'

    def __init__(self, code, message, http_status=status.HTTP_400_BAD_REQUEST, details=None):
        super().__init__(detail=message, code=code)
        self.code = code
        self.message = message
        self.status_code = http_status
        self.details = details

    def __str__(self):
        return f"{self.code}: {self.message}"


def bad_request(code, message, details=None):
    return AppError(code, message, status.HTTP_400_BAD_REQUEST, details)


def unauthorized(code, message, details=None):
    return AppError(code, message, status.HTTP_401_UNAUTHORIZED, details)


def forbidden(code, message, details=None):
    return AppError(code, message, status.HTTP_403_FORBIDDEN, details)


def not_found(code, message, details=None):
    return AppError(code, message, status.HTTP_404_NOT_FOUND, details)


def conflict(code, message, details=None):
    return AppError(code, message, status.HTTP_409_CONFLICT, details)


def service_unavailable(code, message, details=None):
    return AppError(code, message, status.HTTP_503_SERVICE_UNAVAILABLE, details)


def error_body(code, message, details=None):
    return {
        'success': False,
        'error': {
            'code': code,
            'message': message,
            'details': details,
        },
    }


def _describe(exc, response):
    if isinstance(exc, AppError):
        return exc.code, exc.message, exc.details
    if isinstance(exc, exceptions.ValidationError):
        return 'VALIDATION_ERROR', 'Invalid request data', response.data
    if isinstance(exc, (exceptions.NotAuthenticated, exceptions.AuthenticationFailed)):
        return 'UNAUTHORIZED', _detail_text(response.data, 'Authentication required'), None
    if isinstance(exc, (exceptions.PermissionDenied, DjangoPermissionDenied)):
        return 'FORBIDDEN', _detail_text(response.data, 'Permission denied'), None
    if isinstance(exc, (Http404, exceptions.NotFound)):
        return 'NOT_FOUND', _detail_text(response.data, 'Not found'), None
    if isinstance(exc, exceptions.Throttled):
        return 'RATE_LIMITED', _detail_text(response.data, 'Too many requests'), None
    if isinstance(exc, exceptions.MethodNotAllowed):
        return 'METHOD_NOT_ALLOWED', _detail_text(response.data, 'Method not allowed'), None
    code = getattr(exc, 'default_code', 'error')
    return str(code).upper(), _detail_text(response.data, 'Request failed'), None


def _detail_text(data, fallback):
    if isinstance(data, dict) and 'detail' in data:
        return str(data['detail'])
    return fallback


def api_exception_handler(exc, context):
    """DRF exception handler producing the error envelope"""
    # Imported here: rest_framework.views loads the authentication classes, which import this module
    from rest_framework.views import exception_handler

    response = exception_handler(exc, context)
    if response is None:
        view = context.get('view')
        logger.error(f"Unhandled error in {getattr(view, '__name__', view)}: {exc}", exc_info=exc)
        return None

    code, message, details = _describe(exc, response)
    response.data = error_body(code, message, details)
    return response
