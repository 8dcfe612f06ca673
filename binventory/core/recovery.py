"""
Password recovery with Django's password-reset tokens.

Tokens are bound to the password hash, so a completed reset invalidates them.
"""
import hashlib
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.contrib.auth.tokens import default_token_generator
from django.core.cache import cache
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.mail import send_mail
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework import status

from .audit import AuditAction, AuditEntity
from .errors import AppError, bad_request
from .sessions import revoke_all_sessions
from .utils import create_audit_log

logger = logging.getLogger(__name__)

User = get_user_model()

MAX_RESET_REQUESTS_PER_HOUR = 3
RESET_RATE_WINDOW = 60 * 60


def _reset_rate_key(email):
    digest = hashlib.sha256(email.encode('utf-8')).hexdigest()
    return f"password-reset:{digest}"


def count_reset_request(email):
    """Count a request against the address, known or not; returns the count in the window"""
    key = _reset_rate_key(email)
    cache.add(key, 0, RESET_RATE_WINDOW)
    try:
        return cache.incr(key)
    except ValueError:
        # Expired between add and incr
        cache.set(key, 1, RESET_RATE_WINDOW)
        return 1


def build_reset_url(uid, token):
    base_url = getattr(settings, 'BINVENTORY_BASE_URL', 'http://localhost:3000')
    return f"{base_url}/auth/reset-password?uid={uid}&token={token}"


def request_password_reset(email, request=None):
    """
    Mail a reset link when the account exists.

    Returns (uid, token) for an existing account and None otherwise; callers
    must answer the same way in both cases.
    """
    email = (email or '').strip().lower()
    if count_reset_request(email) > MAX_RESET_REQUESTS_PER_HOUR:
        raise AppError(
            'TOO_MANY_REQUESTS',
            'Too many password reset requests. Try again later.',
            status.HTTP_429_TOO_MANY_REQUESTS,
        )

    user = User.objects.filter(email__iexact=email, is_active=True).first()
    if user is None:
        logger.info("Password reset requested for unknown email")
        return None

    uid = urlsafe_base64_encode(force_bytes(user.pk))
    token = default_token_generator.make_token(user)
    send_mail(
        subject='Reset your Binventory password',
        message=(
            'Use the link below to choose a new password. It expires in one hour.\n\n'
            f'{build_reset_url(uid, token)}\n'
        ),
        from_email=None,
        recipient_list=[user.email],
    )
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.PASSWORD_RESET_REQUEST,
        entity=AuditEntity.USER,
        entity_id=user.pk,
    )
    return uid, token


def validate_reset_token(uid, token):
    """Return the user for a valid (uid, token) pair or raise INVALID_TOKEN"""
    try:
        user_pk = force_str(urlsafe_base64_decode(uid))
        user = User.objects.get(pk=user_pk, is_active=True)
    except (TypeError, ValueError, OverflowError, User.DoesNotExist):
        user = None

    if user is None or not default_token_generator.check_token(user, token):
        raise bad_request('INVALID_TOKEN', 'Invalid or expired reset token')
    return user


def reset_password(uid, token, password, request=None):
    """Set a new password, then revoke every session of the user"""
    user = validate_reset_token(uid, token)
    try:
        validate_password(password, user)
    except DjangoValidationError as e:
        raise bad_request('WEAK_PASSWORD', 'Password does not meet requirements', list(e.messages))

    user.set_password(password)
    user.save(update_fields=['password', 'updated_at'])
    revoked = revoke_all_sessions(user)
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.PASSWORD_RESET_COMPLETE,
        entity=AuditEntity.USER,
        entity_id=user.pk,
        metadata={'revokedSessions': revoked},
    )
    logger.info(f"Password reset completed for user {user.pk}")
    return user
