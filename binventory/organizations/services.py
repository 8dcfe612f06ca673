"""
Organization and membership operations.

Only owners and admins administer an organization; only owners delete it
or promote others to owner. An organization always keeps one owner.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils.text import slugify

from binventory.core.audit import AuditEntity
from binventory.core.errors import bad_request, conflict, forbidden, not_found
from binventory.core.utils import create_audit_log

from .models import Organization, OrganizationMember

logger = logging.getLogger(__name__)

User = get_user_model()

ADMIN_ROLES = (OrganizationMember.ROLE_OWNER, OrganizationMember.ROLE_ADMIN)


def create_slug(name):
    return slugify(name)[:120]


def get_membership(organization_id, user):
    return OrganizationMember.objects.filter(organization_id=organization_id, user=user).first()


def is_member(organization_id, user):
    return OrganizationMember.objects.filter(organization_id=organization_id, user=user).exists()


def has_role(organization_id, user, role):
    return OrganizationMember.objects.filter(organization_id=organization_id, user=user, role=role).exists()


def can_administer(organization_id, user):
    return OrganizationMember.objects.filter(
        organization_id=organization_id, user=user, role__in=ADMIN_ROLES
    ).exists()


def _get_organization(organization_id):
    organization = Organization.objects.filter(pk=organization_id).first()
    if organization is None:
        raise not_found('ORGANIZATION_NOT_FOUND', 'Organization not found')
    return organization


def _check_slug_available(slug, exclude_id=None):
    if not slug:
        raise bad_request('INVALID_NAME', 'Organization name must contain letters or digits')
    queryset = Organization.objects.filter(slug=slug)
    if exclude_id:
        queryset = queryset.exclude(pk=exclude_id)
    if queryset.exists():
        raise conflict('SLUG_ALREADY_EXISTS', 'An organization with this slug already exists')


def list_organizations(user):
    """Organizations the user belongs to, with the user's role annotated"""
    memberships = OrganizationMember.objects.filter(user=user).select_related('organization')
    return [(m.organization, m.role) for m in memberships.order_by('organization__name')]


def create_organization(user, name, description=None, slug=None, request=None):
    slug = slug or create_slug(name)
    _check_slug_available(slug)

    try:
        with transaction.atomic():
            organization = Organization.objects.create(name=name, slug=slug, description=description)
            OrganizationMember.objects.create(
                organization=organization,
                user=user,
                role=OrganizationMember.ROLE_OWNER,
            )
    except IntegrityError:
        raise conflict('SLUG_ALREADY_EXISTS', 'An organization with this slug already exists')

    create_audit_log(
        request=request,
        user=user,
        action='organization.create',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization.id,
        metadata={'name': name, 'slug': slug},
    )
    logger.info(f"Organization {organization.id} ({slug}) created by user {user.pk}")
    return organization


def get_organization(user, organization_id):
    organization = _get_organization(organization_id)
    if not is_member(organization.id, user):
        raise forbidden('UNAUTHORIZED', 'You do not have access to this organization')
    return organization


def update_organization(user, organization_id, request=None, **data):
    organization = _get_organization(organization_id)
    if not can_administer(organization.id, user):
        raise forbidden('UNAUTHORIZED', 'You do not have permission to update this organization')

    if 'name' in data and data['name'] != organization.name:
        new_slug = data.get('slug') or create_slug(data['name'])
        _check_slug_available(new_slug, exclude_id=organization.id)
        organization.name = data['name']
        organization.slug = new_slug
    elif data.get('slug') and data['slug'] != organization.slug:
        _check_slug_available(data['slug'], exclude_id=organization.id)
        organization.slug = data['slug']
    if 'description' in data:
        organization.description = data['description']

    organization.save()
    create_audit_log(
        request=request,
        user=user,
        action='organization.update',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization.id,
        metadata={'fields': sorted(data.keys())},
    )
    return organization


def delete_organization(user, organization_id, request=None):
    organization = _get_organization(organization_id)
    if not has_role(organization.id, user, OrganizationMember.ROLE_OWNER):
        raise forbidden('UNAUTHORIZED', 'Only an owner can delete an organization')
    organization.delete()
    create_audit_log(
        request=request,
        user=user,
        action='organization.delete',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization_id,
    )
    logger.info(f"Organization {organization_id} deleted by user {user.pk}")


def list_members(user, organization_id):
    organization = get_organization(user, organization_id)
    return organization.memberships.select_related('user', 'invited_by').order_by('joined_at')


def _resolve_user(user_id=None, email=None):
    target = None
    if user_id:
        target = User.objects.filter(pk=user_id).first()
    elif email:
        target = User.objects.filter(email__iexact=email).first()
    if target is None:
        raise not_found('USER_NOT_FOUND', 'User not found')
    return target


def add_member(actor, organization_id, user_id=None, email=None, role=OrganizationMember.ROLE_MEMBER, request=None):
    organization = _get_organization(organization_id)
    if not can_administer(organization.id, actor):
        raise forbidden('UNAUTHORIZED', 'You do not have permission to add members to this organization')
    if role == OrganizationMember.ROLE_OWNER and not has_role(organization.id, actor, OrganizationMember.ROLE_OWNER):
        raise forbidden('UNAUTHORIZED', 'Only an owner can add another owner')

    target = _resolve_user(user_id, email)
    if is_member(organization.id, target):
        raise conflict('MEMBER_ALREADY_EXISTS', 'This user is already a member of the organization')

    try:
        member = OrganizationMember.objects.create(
            organization=organization,
            user=target,
            role=role,
            invited_by=actor,
        )
    except IntegrityError:
        raise conflict('MEMBER_ALREADY_EXISTS', 'This user is already a member of the organization')

    create_audit_log(
        request=request,
        user=actor,
        action='organization.member.add',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization.id,
        metadata={'memberUserId': target.pk, 'role': role},
    )
    return member


def _get_member(organization_id, member_id):
    member = OrganizationMember.objects.filter(pk=member_id, organization_id=organization_id).first()
    if member is None:
        raise not_found('MEMBER_NOT_FOUND', 'Member not found in this organization')
    return member


def _owner_count(organization_id):
    return OrganizationMember.objects.filter(
        organization_id=organization_id, role=OrganizationMember.ROLE_OWNER
    ).count()


def update_member_role(actor, organization_id, member_id, role, request=None):
    organization = _get_organization(organization_id)
    if not can_administer(organization.id, actor):
        raise forbidden('UNAUTHORIZED', 'You do not have permission to update member roles')

    member = _get_member(organization.id, member_id)
    touches_owner = OrganizationMember.ROLE_OWNER in (role, member.role)
    if touches_owner and not has_role(organization.id, actor, OrganizationMember.ROLE_OWNER):
        raise forbidden('UNAUTHORIZED', 'Only an owner can change owner roles')
    if (member.role == OrganizationMember.ROLE_OWNER and role != OrganizationMember.ROLE_OWNER
            and _owner_count(organization.id) <= 1):
        raise bad_request('LAST_OWNER', 'Cannot change role of the last owner')

    previous = member.role
    member.role = role
    member.save(update_fields=['role'])
    create_audit_log(
        request=request,
        user=actor,
        action='organization.member.role',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization.id,
        metadata={'memberId': str(member.id), 'from': previous, 'to': role},
    )
    return member


def remove_member(actor, organization_id, member_id, request=None):
    organization = _get_organization(organization_id)
    member = _get_member(organization.id, member_id)

    leaving_self = member.user_id == actor.pk
    if not leaving_self and not can_administer(organization.id, actor):
        raise forbidden('UNAUTHORIZED', 'You do not have permission to remove members')
    if (member.role == OrganizationMember.ROLE_OWNER and not leaving_self
            and not has_role(organization.id, actor, OrganizationMember.ROLE_OWNER)):
        raise forbidden('UNAUTHORIZED', 'Only an owner can remove another owner')
    if member.role == OrganizationMember.ROLE_OWNER and _owner_count(organization.id) <= 1:
        raise bad_request('LAST_OWNER', 'Cannot remove the last owner')

    member.delete()
    create_audit_log(
        request=request,
        user=actor,
        action='organization.member.remove',
        entity=AuditEntity.ORGANIZATION,
        entity_id=organization.id,
        metadata={'memberUserId': member.user_id},
    )
