"""
Category tree operations.

Each category stores the ids of its ancestors in `path` (root first). The
path is rebuilt for the whole subtree whenever a category moves, and a move
under one of its own descendants is rejected.
"""
import logging

from django.db import transaction
from django.db.models import Count

from binventory.core.audit import AuditEntity
from binventory.core.errors import bad_request, not_found
from binventory.core.utils import create_audit_log
from binventory.permissions.models import ObjectPermission
from binventory.permissions.services import clear_permissions

from .models import Category

logger = logging.getLogger(__name__)


def _get_user_category(user, category_id, code='CATEGORY_NOT_FOUND', message='Category not found'):
    category = Category.objects.filter(pk=category_id, user=user).first()
    if category is None:
        raise not_found(code, message)
    return category


def _get_parent(user, parent_id):
    parent = Category.objects.filter(pk=parent_id, user=user).first()
    if parent is None:
        raise bad_request('PARENT_CATEGORY_NOT_FOUND', 'Parent category not found')
    return parent


def build_path(parent):
    if parent is None:
        return []
    return list(parent.path) + [str(parent.id)]


def list_categories(user):
    """User's categories ordered by name, with item counts"""
    return (
        Category.objects.filter(user=user)
        .annotate(item_count=Count('items'))
        .order_by('name')
    )


def get_category(user, category_id):
    return _get_user_category(user, category_id)


def create_category(user, name, parent_id=None, organization=None, request=None):
    parent = _get_parent(user, parent_id) if parent_id else None
    category = Category.objects.create(
        name=name,
        parent=parent,
        path=build_path(parent),
        user=user,
        organization=organization,
    )
    create_audit_log(
        request=request,
        user=user,
        action='category.create',
        entity=AuditEntity.CATEGORY,
        entity_id=category.id,
        metadata={'name': name, 'parentId': str(parent.id) if parent else None},
    )
    return category


def _rebuild_descendant_paths(category):
    """Rewrite paths below `category` breadth-first after it moved"""
    frontier = [category]
    while frontier:
        next_frontier = []
        for node in frontier:
            children = list(Category.objects.filter(parent=node))
            for child in children:
                child.path = build_path(node)
                child.save(update_fields=['path', 'updated_at'])
            next_frontier.extend(children)
        frontier = next_frontier


_UNSET = object()


def update_category(user, category_id, name=None, parent_id=_UNSET, request=None):
    """
    Rename and/or move a category.

    `parent_id` of '' or None turns the category into a root; leaving it unset
    keeps the current parent.
    """
    category = _get_user_category(user, category_id)

    with transaction.atomic():
        if name is not None:
            category.name = name

        moved = False
        if parent_id is not _UNSET:
            if parent_id in (None, ''):
                category.parent = None
                category.path = []
            else:
                parent = _get_parent(user, parent_id)
                if parent.id == category.id or str(category.id) in parent.path:
                    raise bad_request('CIRCULAR_REFERENCE', 'Category cannot be its own ancestor')
                category.parent = parent
                category.path = build_path(parent)
            moved = True

        category.save()
        if moved:
            _rebuild_descendant_paths(category)

    create_audit_log(
        request=request,
        user=user,
        action='category.update',
        entity=AuditEntity.CATEGORY,
        entity_id=category.id,
        metadata={'moved': moved},
    )
    return category


def delete_category(user, category_id, request=None):
    category = _get_user_category(user, category_id)
    if category.children.exists():
        raise bad_request('CATEGORY_HAS_CHILDREN', 'Cannot delete a category that has subcategories')
    if category.items.exists():
        raise bad_request('CATEGORY_HAS_ITEMS', 'Cannot delete a category that has items')

    category.delete()
    clear_permissions(ObjectPermission.OBJECT_CATEGORY, category_id)
    create_audit_log(
        request=request,
        user=user,
        action='category.delete',
        entity=AuditEntity.CATEGORY,
        entity_id=category_id,
    )
    logger.info(f"Category {category_id} deleted by user {user.pk}")
