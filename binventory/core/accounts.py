"""
Account operations: registration, credential checks, password changes,
profile updates and role checks.
"""
import logging

from django.contrib.auth import authenticate, get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, transaction

from .audit import AuditAction, AuditEntity
from .errors import bad_request, conflict
from .utils import create_audit_log

logger = logging.getLogger(__name__)

User = get_user_model()

ROLE_ORDER = {
    User.ROLE_USER: 0,
    User.ROLE_ADMIN: 1,
}


def register(name, email, password, request=None):
    """Create an active user; duplicate email is a 409"""
    email = User.objects.normalize_email(email).lower()
    if User.objects.filter(email__iexact=email).exists():
        raise conflict('EMAIL_ALREADY_EXISTS', 'A user with this email already exists')

    try:
        with transaction.atomic():
            user = User.objects.create_user(
                username=email[:150],
                email=email,
                password=password,
                name=name,
                is_active=True,
            )
    except IntegrityError:
        raise conflict('EMAIL_ALREADY_EXISTS', 'A user with this email already exists')

    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.REGISTER,
        entity=AuditEntity.USER,
        entity_id=user.pk,
    )
    logger.info(f"Registered user {user.pk} ({email})")
    return user


def verify_credentials(email, password, request=None):
    """Return the active user for the credentials, or None"""
    user = authenticate(request, email=email, password=password)
    if user is None or not user.is_active:
        return None
    return user


def change_password(user, current_password, new_password, request=None):
    if not user.check_password(current_password):
        raise bad_request('INVALID_PASSWORD', 'Current password is incorrect')
    try:
        validate_password(new_password, user)
    except DjangoValidationError as e:
        raise bad_request('WEAK_PASSWORD', 'Password does not meet requirements', list(e.messages))

    user.set_password(new_password)
    user.save(update_fields=['password', 'updated_at'])
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.PASSWORD_CHANGE,
        entity=AuditEntity.USER,
        entity_id=user.pk,
    )
    return user


def update_profile(user, request=None, **changes):
    """Update name/image; records which fields changed"""
    changed = {}
    for field in ('name', 'image'):
        if field in changes and getattr(user, field) != changes[field]:
            changed[field] = {'from': getattr(user, field), 'to': changes[field]}
            setattr(user, field, changes[field])

    if changed:
        user.save()
        create_audit_log(
            request=request,
            user=user,
            action=AuditAction.PROFILE_UPDATE,
            entity=AuditEntity.USER,
            entity_id=user.pk,
            metadata={'changes': changed},
        )
    return user


def has_permission(user, role):
    """True when the user's role is at least `role`; superusers always pass"""
    if user is None or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    return ROLE_ORDER.get(user.role, 0) >= ROLE_ORDER.get(role, 0)
