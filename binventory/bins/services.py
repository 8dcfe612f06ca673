"""
Bin operations: CRUD, contents, images and search.

Labels are unique per user and the bin's scan value (qr_code) always
follows its label. Reads go through object permissions, so bins shared
with a user or owned by one of their organizations are reachable too.
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import F, Q

from binventory.catalog.models import Item
from binventory.core.audit import AuditEntity
from binventory.core.errors import AppError, bad_request, conflict, forbidden, not_found, service_unavailable
from binventory.core.utils import create_audit_log, paginate_queryset
from binventory.permissions.models import ObjectPermission
from binventory.permissions.services import can_access, clear_permissions
from binventory.search import services as search
from binventory.search.config import BINS_INDEX

from . import storage
from .models import Bin, BinItem

logger = logging.getLogger(__name__)

READ = ObjectPermission.ACTION_READ
WRITE = ObjectPermission.ACTION_WRITE
ADMIN = ObjectPermission.ACTION_ADMIN


def _label_taken(user, label, exclude_id=None):
    queryset = Bin.objects.filter(user=user, label=label)
    if exclude_id:
        queryset = queryset.exclude(pk=exclude_id)
    return queryset.exists()


def _already_exists(label):
    return conflict('BIN_ALREADY_EXISTS', f"A bin with label {label} already exists")


def list_bins(user, page=1, limit=10, location=None, search_term=None):
    """
    Page through the user's bins, newest first.

    With a search term the engine is tried first; any engine failure falls
    back to a database search. Returns (bins, pagination, source).
    """
    if search_term and search.is_enabled():
        filters = {'user_id': user.pk}
        if location:
            filters['location'] = location
        try:
            result = search.search(
                search_term,
                filters=filters,
                limit=limit,
                offset=(page - 1) * limit,
                indexes=[BINS_INDEX],
            )
            ids = [hit['id'] for hit in result['hits']]
            by_id = {str(b.id): b for b in Bin.objects.filter(pk__in=ids, user=user)}
            bins = [by_id[i] for i in ids if i in by_id]
            pagination = {'page': page, 'pageSize': limit, 'total': result['totalHits']}
            return bins, pagination, 'engine'
        except (search.SearchUnavailable, search.SearchFailed) as e:
            logger.warning(f"Bin search fell back to database: {str(e)}")

    queryset = Bin.objects.filter(user=user)
    if location:
        queryset = queryset.filter(location=location)
    if search_term:
        queryset = queryset.filter(Q(label__icontains=search_term) | Q(description__icontains=search_term))
    bins, pagination = paginate_queryset(queryset.order_by('-created_at'), page, limit)
    pagination.pop('totalPages', None)
    return bins, pagination, 'database'


def create_bin(user, label, location, description=None, organization=None, request=None):
    if _label_taken(user, label):
        raise _already_exists(label)

    try:
        with transaction.atomic():
            bin_obj = Bin.objects.create(
                label=label,
                location=location,
                description=description,
                qr_code=Bin.build_qr_value(label),
                user=user,
                organization=organization,
            )
    except IntegrityError:
        # Concurrent create with the same label
        raise _already_exists(label)

    search.safe_index_bin(bin_obj)
    create_audit_log(
        request=request,
        user=user,
        action='bin.create',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'label': label, 'location': location},
    )
    logger.info(f"Bin {bin_obj.id} ({label}) created by user {user.pk}")
    return bin_obj


def get_bin(user, bin_id, action=READ):
    bin_obj = Bin.objects.filter(pk=bin_id).first()
    if bin_obj is None:
        raise not_found('BIN_NOT_FOUND', f"Bin with ID {bin_id} not found")
    if not can_access(user, ObjectPermission.OBJECT_BIN, bin_obj.id, action):
        raise forbidden('FORBIDDEN', 'You do not have access to this bin')
    return bin_obj


def update_bin(user, bin_id, request=None, **changes):
    bin_obj = get_bin(user, bin_id, WRITE)

    label = changes.get('label')
    if label and label != bin_obj.label:
        if _label_taken(bin_obj.user, label, exclude_id=bin_obj.id):
            raise _already_exists(label)
        bin_obj.label = label
        bin_obj.qr_code = Bin.build_qr_value(label)
    for field in ('location', 'description'):
        if field in changes:
            setattr(bin_obj, field, changes[field])

    try:
        with transaction.atomic():
            bin_obj.save()
    except IntegrityError:
        raise _already_exists(label)

    search.safe_index_bin(bin_obj)
    create_audit_log(
        request=request,
        user=user,
        action='bin.update',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'fields': sorted(changes.keys())},
    )
    return bin_obj


def delete_bin(user, bin_id, request=None):
    """Delete a bin with its contents, QR codes, stored image and index document"""
    bin_obj = get_bin(user, bin_id, ADMIN)
    image_key = bin_obj.image_key

    with transaction.atomic():
        bin_obj.delete()
        clear_permissions(ObjectPermission.OBJECT_BIN, bin_id)
    if image_key:
        storage.delete_image(image_key)
    search.safe_delete_bin(bin_id)
    create_audit_log(
        request=request,
        user=user,
        action='bin.delete',
        entity=AuditEntity.BIN,
        entity_id=bin_id,
    )
    logger.info(f"Bin {bin_id} deleted by user {user.pk}")


def search_bins(user, query, filters=None, limit=20, offset=0):
    """Engine-only bin search; raises SEARCH_UNAVAILABLE / SEARCH_FAILED"""
    scoped = dict(filters or {})
    scoped['user_id'] = user.pk
    try:
        return search.search(query, filters=scoped, limit=limit, offset=offset, indexes=[BINS_INDEX])
    except search.SearchUnavailable:
        raise service_unavailable('SEARCH_UNAVAILABLE', 'Search service is not available')
    except search.SearchFailed as e:
        raise AppError('SEARCH_FAILED', f"Search failed: {str(e)}", 500)


# Bin contents

def list_bin_items(user, bin_id):
    bin_obj = get_bin(user, bin_id, READ)
    return bin_obj.contents.select_related('item', 'item__category').order_by('item__name')


def _get_item(user, item_id):
    item = Item.objects.filter(pk=item_id).first()
    if item is None or not can_access(user, ObjectPermission.OBJECT_ITEM, item.id, READ):
        raise not_found('ITEM_NOT_FOUND', 'Item not found')
    return item


def _get_bin_item(bin_obj, item_id):
    entry = BinItem.objects.select_related('item').filter(bin=bin_obj, item_id=item_id).first()
    if entry is None:
        raise not_found('BIN_ITEM_NOT_FOUND', 'Item is not in this bin')
    return entry


def add_item_to_bin(user, bin_id, item_id, quantity, notes=None, request=None):
    """Put `quantity` of an item in a bin; an existing entry is incremented"""
    if quantity < 1:
        raise bad_request('INVALID_QUANTITY', 'Quantity must be at least 1')
    bin_obj = get_bin(user, bin_id, WRITE)
    item = _get_item(user, item_id)

    with transaction.atomic():
        entry, created = BinItem.objects.select_for_update().get_or_create(
            bin=bin_obj,
            item=item,
            defaults={'quantity': quantity, 'notes': notes},
        )
        if not created:
            entry.quantity = F('quantity') + quantity
            update_fields = ['quantity']
            if notes is not None:
                entry.notes = notes
                update_fields.append('notes')
            entry.save(update_fields=update_fields)
            entry.refresh_from_db()

    create_audit_log(
        request=request,
        user=user,
        action='bin.item.add',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'itemId': str(item.id), 'quantity': quantity},
    )
    return entry


def update_bin_item(user, bin_id, item_id, quantity=None, notes=None, request=None):
    bin_obj = get_bin(user, bin_id, WRITE)
    entry = _get_bin_item(bin_obj, item_id)

    update_fields = []
    if quantity is not None:
        if quantity < 1:
            raise bad_request('INVALID_QUANTITY', 'Quantity must be at least 1')
        entry.quantity = quantity
        update_fields.append('quantity')
    if notes is not None:
        entry.notes = notes
        update_fields.append('notes')
    if update_fields:
        entry.save(update_fields=update_fields)

    create_audit_log(
        request=request,
        user=user,
        action='bin.item.update',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'itemId': str(item_id), 'quantity': entry.quantity},
    )
    return entry


def remove_item_from_bin(user, bin_id, item_id, quantity=None, request=None):
    """
    Take `quantity` of an item out of a bin. The entry is deleted when it
    reaches zero or when no quantity is given. Returns the remaining entry
    or None.
    """
    bin_obj = get_bin(user, bin_id, WRITE)

    with transaction.atomic():
        entry = BinItem.objects.select_for_update().filter(bin=bin_obj, item_id=item_id).first()
        if entry is None:
            raise not_found('BIN_ITEM_NOT_FOUND', 'Item is not in this bin')
        if quantity is None or quantity >= entry.quantity:
            entry.delete()
            remaining = None
        else:
            entry.quantity -= quantity
            entry.save(update_fields=['quantity'])
            remaining = entry

    create_audit_log(
        request=request,
        user=user,
        action='bin.item.remove',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'itemId': str(item_id), 'quantity': quantity},
    )
    return remaining


# Bin images

def upload_bin_image(user, bin_id, upload, request=None):
    """Store a new image for the bin, replacing (and deleting) the previous one"""
    bin_obj = get_bin(user, bin_id, WRITE)
    url, key = storage.upload_image(upload)

    previous_key = bin_obj.image_key
    bin_obj.image_url = url
    bin_obj.image_key = key
    bin_obj.save(update_fields=['image_url', 'image_key', 'updated_at'])
    if previous_key:
        storage.delete_image(previous_key)

    search.safe_index_bin(bin_obj)
    create_audit_log(
        request=request,
        user=user,
        action='bin.image.upload',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
        metadata={'key': key},
    )
    return bin_obj


def delete_bin_image(user, bin_id, request=None):
    bin_obj = get_bin(user, bin_id, WRITE)
    if not bin_obj.image_key:
        raise not_found('IMAGE_NOT_FOUND', 'Bin has no image')

    storage.delete_image(bin_obj.image_key)
    bin_obj.image_url = None
    bin_obj.image_key = None
    bin_obj.save(update_fields=['image_url', 'image_key', 'updated_at'])
    search.safe_index_bin(bin_obj)
    create_audit_log(
        request=request,
        user=user,
        action='bin.image.delete',
        entity=AuditEntity.BIN,
        entity_id=bin_obj.id,
    )
    return bin_obj
