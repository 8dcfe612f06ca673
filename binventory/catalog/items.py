"""
Item operations. Writes are mirrored into the search index; index failures
are logged and never fail the write.
"""
import logging

from binventory.core.audit import AuditEntity
from binventory.core.errors import bad_request, not_found
from binventory.core.utils import create_audit_log, paginate_queryset
from binventory.permissions.models import ObjectPermission
from binventory.permissions.services import clear_permissions
from binventory.search import services as search

from .filters import ItemFilter, low_stock_queryset
from .models import Category, Item

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('name', 'description', 'quantity', 'min_quantity', 'unit')


def _normalize_min_quantity(value):
    # 0 means "no threshold"
    return value or None


def _get_user_category(user, category_id):
    category = Category.objects.filter(pk=category_id, user=user).first()
    if category is None:
        raise bad_request('CATEGORY_NOT_FOUND', 'Category not found')
    return category


def item_queryset(user):
    return Item.objects.filter(user=user).select_related('category')


def list_items(user, page=1, limit=20, category_id=None, search=None, low_stock=None):
    params = {}
    if category_id:
        params['category_id'] = category_id
    if search:
        params['search'] = search
    if low_stock:
        params['low_stock'] = 'true'

    filterset = ItemFilter(params, queryset=item_queryset(user).order_by('name'))
    if not filterset.is_valid():
        errors = {field: [str(m) for m in messages] for field, messages in filterset.errors.items()}
        raise bad_request('VALIDATION_ERROR', 'Invalid filter', details=errors)
    return paginate_queryset(filterset.qs, page, limit)


def low_stock_items(user):
    return low_stock_queryset(item_queryset(user)).order_by('quantity', 'name')


def get_item(user, item_id):
    item = item_queryset(user).filter(pk=item_id).first()
    if item is None:
        raise not_found('ITEM_NOT_FOUND', 'Item not found')
    return item


def create_item(user, name, category_id, unit, description='', quantity=0,
                min_quantity=None, organization=None, request=None):
    category = _get_user_category(user, category_id)
    item = Item.objects.create(
        name=name,
        description=description or '',
        category=category,
        quantity=quantity,
        min_quantity=_normalize_min_quantity(min_quantity),
        unit=unit,
        user=user,
        organization=organization,
    )
    search.safe_index_item(item)
    create_audit_log(
        request=request,
        user=user,
        action='item.create',
        entity=AuditEntity.ITEM,
        entity_id=item.id,
        metadata={'name': name, 'categoryId': str(category.id)},
    )
    return item


def update_item(user, item_id, request=None, **changes):
    item = get_item(user, item_id)

    if changes.get('category_id'):
        item.category = _get_user_category(user, changes['category_id'])
    for field in UPDATABLE_FIELDS:
        if field in changes:
            value = changes[field]
            if field == 'min_quantity':
                value = _normalize_min_quantity(value)
            elif field == 'description':
                value = value or ''
            setattr(item, field, value)

    item.save()
    search.safe_index_item(item)
    create_audit_log(
        request=request,
        user=user,
        action='item.update',
        entity=AuditEntity.ITEM,
        entity_id=item.id,
        metadata={'fields': sorted(changes.keys())},
    )
    return item


def delete_item(user, item_id, request=None):
    item = get_item(user, item_id)
    if item.bin_entries.exists():
        raise bad_request('ITEM_IN_USE', 'Cannot delete an item that is stored in a bin')

    item.delete()
    clear_permissions(ObjectPermission.OBJECT_ITEM, item_id)
    search.safe_delete_item(item_id)
    create_audit_log(
        request=request,
        user=user,
        action='item.delete',
        entity=AuditEntity.ITEM,
        entity_id=item_id,
    )
    logger.info(f"Item {item_id} deleted by user {user.pk}")
