"""
Object-level access control for bins, items and categories.

can_access resolves, in order: platform ADMIN role, an explicit user grant,
a grant to one of the user's organizations, organization ownership of the
object (members read; OWNER and ADMIN write and administer), a grant to the
user's platform role, and finally ownership of the object.
"""
import logging

from django.apps import apps
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from binventory.core.errors import bad_request, not_found
from binventory.organizations.models import Organization, OrganizationMember

from .models import ObjectPermission

logger = logging.getLogger(__name__)

User = get_user_model()

OBJECT_MODELS = {
    ObjectPermission.OBJECT_BIN: ('bins', 'Bin', 'Bin not found'),
    ObjectPermission.OBJECT_ITEM: ('catalog', 'Item', 'Item not found'),
    ObjectPermission.OBJECT_CATEGORY: ('catalog', 'Category', 'Category not found'),
}

VALID_ROLES = (User.ROLE_ADMIN, User.ROLE_USER)
ORG_MANAGER_ROLES = (OrganizationMember.ROLE_OWNER, OrganizationMember.ROLE_ADMIN)


def get_object(object_type, object_id):
    """Load the bin/item/category a permission refers to, or None"""
    app_label, model_name, _ = OBJECT_MODELS[object_type]
    model = apps.get_model(app_label, model_name)
    try:
        return model.objects.filter(pk=object_id).first()
    except (ValueError, TypeError):
        # Malformed ids never match a row
        return None


def _has_grant(object_type, object_id, subject_type, subject_id, action):
    return ObjectPermission.objects.filter(
        object_type=object_type,
        object_id=str(object_id),
        subject_type=subject_type,
        subject_id=str(subject_id),
        action=action,
    ).exists()


def can_access(user, object_type, object_id, action):
    if user is None or not user.is_authenticated:
        return False
    if user.role == User.ROLE_ADMIN:
        return True

    if _has_grant(object_type, object_id, ObjectPermission.SUBJECT_USER, user.pk, action):
        return True

    obj = None
    memberships = list(OrganizationMember.objects.filter(user=user).values_list('organization_id', 'role'))
    if memberships:
        obj = get_object(object_type, object_id)
    for organization_id, role in memberships:
        if _has_grant(object_type, object_id, ObjectPermission.SUBJECT_ORGANIZATION, organization_id, action):
            return True
        if obj is not None and obj.organization_id == organization_id:
            if action == ObjectPermission.ACTION_READ:
                return True
            if role in ORG_MANAGER_ROLES:
                return True

    if _has_grant(object_type, object_id, ObjectPermission.SUBJECT_ROLE, user.role, action):
        return True

    if obj is None:
        obj = get_object(object_type, object_id)
    return obj is not None and obj.user_id == user.pk


def _validate_object(object_type, object_id):
    if object_type not in OBJECT_MODELS:
        raise bad_request('INVALID_OBJECT_TYPE', 'Invalid object type')
    if get_object(object_type, object_id) is None:
        raise not_found('OBJECT_NOT_FOUND', OBJECT_MODELS[object_type][2])


def _validate_subject(subject_type, subject_id):
    if subject_type == ObjectPermission.SUBJECT_USER:
        if not str(subject_id).isdigit() or not User.objects.filter(pk=subject_id).exists():
            raise not_found('SUBJECT_NOT_FOUND', 'User not found')
    elif subject_type == ObjectPermission.SUBJECT_ORGANIZATION:
        try:
            exists = Organization.objects.filter(pk=subject_id).exists()
        except (ValueError, TypeError):
            exists = False
        if not exists:
            raise not_found('SUBJECT_NOT_FOUND', 'Organization not found')
    elif subject_type == ObjectPermission.SUBJECT_ROLE:
        if subject_id not in VALID_ROLES:
            raise bad_request('INVALID_ROLE', 'Invalid role')


def grant(object_type, object_id, subject_type, subject_id, action, granted_by=None):
    """Create the permission, or refresh granted_by/granted_at when it exists"""
    _validate_object(object_type, object_id)
    _validate_subject(subject_type, subject_id)

    permission, created = ObjectPermission.objects.get_or_create(
        object_type=object_type,
        object_id=str(object_id),
        subject_type=subject_type,
        subject_id=str(subject_id),
        action=action,
        defaults={'granted_by': granted_by},
    )
    if not created:
        ObjectPermission.objects.filter(pk=permission.pk).update(granted_by=granted_by, granted_at=timezone.now())
        permission.refresh_from_db(fields=['granted_by', 'granted_at'])

    logger.info(f"Granted {action} on {object_type}:{object_id} to {subject_type}:{subject_id}")
    return permission


def revoke(object_type, object_id, subject_type, subject_id, action):
    deleted, _ = ObjectPermission.objects.filter(
        object_type=object_type,
        object_id=str(object_id),
        subject_type=subject_type,
        subject_id=str(subject_id),
        action=action,
    ).delete()
    if not deleted:
        raise not_found('PERMISSION_NOT_FOUND', 'Permission not found')
    logger.info(f"Revoked {action} on {object_type}:{object_id} from {subject_type}:{subject_id}")


def get_permissions(object_type=None, object_id=None, subject_type=None, subject_id=None, action=None):
    queryset = ObjectPermission.objects.all()
    if object_type:
        queryset = queryset.filter(object_type=object_type)
    if object_id:
        queryset = queryset.filter(object_id=str(object_id))
    if subject_type:
        queryset = queryset.filter(subject_type=subject_type)
    if subject_id:
        queryset = queryset.filter(subject_id=str(subject_id))
    if action:
        queryset = queryset.filter(action=action)
    return queryset.order_by('-granted_at')


def grant_many(object_type, object_id, entries, granted_by=None):
    """Grant each {subject_type, subject_id, action} entry on one object"""
    with transaction.atomic():
        return [
            grant(object_type, object_id, granted_by=granted_by, **entry)
            for entry in entries
        ]


def replace_permissions(object_type, object_id, entries, granted_by=None):
    """Drop every grant on the object, then grant `entries`"""
    with transaction.atomic():
        clear_permissions(object_type, object_id)
        return grant_many(object_type, object_id, entries, granted_by=granted_by)


def clear_permissions(object_type, object_id):
    deleted, _ = ObjectPermission.objects.filter(object_type=object_type, object_id=str(object_id)).delete()
    return deleted
