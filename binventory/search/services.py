"""
Wrapper around the Meilisearch engine.

Keeps the bins and items indices in sync with the database and merges
results across indices. Write paths use the safe_* helpers, which log
failures instead of raising, so an unavailable engine never blocks a save.
"""
import logging
import os
import time

import meilisearch
from django.conf import settings
from django.db.models import Q
from meilisearch.errors import MeilisearchApiError, MeilisearchCommunicationError, MeilisearchTimeoutError

from binventory.bins.models import Bin
from binventory.catalog.models import Item
from binventory.core.cache_utils import TYPEAHEAD_CACHE_TTL, cached_per_scope

from .config import BINS_INDEX, DOCUMENT_TYPES, ITEMS_INDEX, SEARCH_INDICES, TYPEAHEAD_CONFIG

logger = logging.getLogger(__name__)


class SearchUnavailable(Exception):
    """Search engine is disabled, unconfigured or unreachable"""


class SearchFailed(Exception):
    """Search engine answered with an error"""


def _setting(name, default=None):
    return getattr(settings, name, os.getenv(name, default))


def is_enabled():
    return bool(_setting('MEILISEARCH_ENABLED', False)) and bool(_setting('MEILISEARCH_HOST'))


def get_client():
    if not is_enabled():
        raise SearchUnavailable('Search engine is not configured')
    return meilisearch.Client(
        _setting('MEILISEARCH_HOST'),
        _setting('MEILISEARCH_API_KEY') or None,
        timeout=int(_setting('MEILISEARCH_TIMEOUT', 5)),
    )


def _engine_call(description, func, *args, **kwargs):
    """Run an engine call, translating client errors into SearchUnavailable / SearchFailed"""
    try:
        return func(*args, **kwargs)
    except (MeilisearchCommunicationError, MeilisearchTimeoutError) as e:
        logger.error(f"Search engine unreachable during {description}: {str(e)}")
        raise SearchUnavailable(str(e)) from e
    except MeilisearchApiError as e:
        logger.error(f"Search engine error during {description}: {str(e)}")
        raise SearchFailed(str(e)) from e


def _iso(value):
    return value.isoformat() if value else None


def bin_document(bin_obj):
    return {
        'id': str(bin_obj.id),
        'type': DOCUMENT_TYPES[BINS_INDEX],
        'label': bin_obj.label,
        'location': bin_obj.location,
        'description': bin_obj.description,
        'qr_code': bin_obj.qr_code,
        'image_url': bin_obj.image_url,
        'user_id': bin_obj.user_id,
        'organization_id': str(bin_obj.organization_id) if bin_obj.organization_id else None,
        'created_at': _iso(bin_obj.created_at),
        'updated_at': _iso(bin_obj.updated_at),
    }


def item_document(item):
    return {
        'id': str(item.id),
        'type': DOCUMENT_TYPES[ITEMS_INDEX],
        'name': item.name,
        'description': item.description,
        'category_id': str(item.category_id),
        'category.name': item.category.name if item.category_id else '',
        'quantity': item.quantity,
        'min_quantity': item.min_quantity,
        'unit': item.unit,
        'user_id': item.user_id,
        'organization_id': str(item.organization_id) if item.organization_id else None,
        'created_at': _iso(item.created_at),
        'updated_at': _iso(item.updated_at),
    }


def initialize_indices():
    """Create missing indices and push their settings"""
    client = get_client()
    for uid, config in SEARCH_INDICES.items():
        try:
            _engine_call(f"get index {uid}", client.get_index, uid)
        except SearchFailed:
            _engine_call(f"create index {uid}", client.create_index, uid, {'primaryKey': config['primaryKey']})
            logger.info(f"Created search index {uid}")

        index_settings = {key: value for key, value in config.items() if key != 'primaryKey'}
        _engine_call(f"update settings of {uid}", client.index(uid).update_settings, index_settings)
    logger.info("Search indices initialized")


def index_all_bins(batch_size=500):
    client = get_client()
    count = 0
    batch = []
    for bin_obj in Bin.objects.all().iterator():
        batch.append(bin_document(bin_obj))
        if len(batch) >= batch_size:
            _engine_call("bulk bin indexing", client.index(BINS_INDEX).add_documents, batch)
            count += len(batch)
            batch = []
    if batch:
        _engine_call("bulk bin indexing", client.index(BINS_INDEX).add_documents, batch)
        count += len(batch)
    return count


def index_all_items(batch_size=500):
    client = get_client()
    count = 0
    batch = []
    for item in Item.objects.select_related('category').iterator():
        batch.append(item_document(item))
        if len(batch) >= batch_size:
            _engine_call("bulk item indexing", client.index(ITEMS_INDEX).add_documents, batch)
            count += len(batch)
            batch = []
    if batch:
        _engine_call("bulk item indexing", client.index(ITEMS_INDEX).add_documents, batch)
        count += len(batch)
    return count


def index_bin(bin_obj):
    _engine_call("bin indexing", get_client().index(BINS_INDEX).add_documents, [bin_document(bin_obj)])


def index_item(item):
    _engine_call("item indexing", get_client().index(ITEMS_INDEX).add_documents, [item_document(item)])


def delete_bin(bin_id):
    _engine_call("bin removal", get_client().index(BINS_INDEX).delete_document, str(bin_id))


def delete_item(item_id):
    _engine_call("item removal", get_client().index(ITEMS_INDEX).delete_document, str(item_id))


def _safe(operation, target, description):
    if not is_enabled():
        return False
    try:
        operation(target)
        return True
    except (SearchUnavailable, SearchFailed) as e:
        # Index drift is repaired by init_search_indices --reindex
        logger.warning(f"Search {description} skipped for {target}: {str(e)}")
        return False


def safe_index_bin(bin_obj):
    return _safe(index_bin, bin_obj, 'bin indexing')


def safe_index_item(item):
    return _safe(index_item, item, 'item indexing')


def safe_delete_bin(bin_id):
    return _safe(delete_bin, bin_id, 'bin removal')


def safe_delete_item(item_id):
    return _safe(delete_item, item_id, 'item removal')


def _quote(value):
    text = str(value).replace('\\', '\\\\').replace('"', '\\"')
    return f'"{text}"'


def build_filter(filters):
    """
    Build an engine filter expression from a dict.

    {'location': 'Garage', 'unit': ['pcs', 'box']} ->
    'location = "Garage" AND (unit = "pcs" OR unit = "box")'
    """
    if not filters:
        return None
    clauses = []
    for key, value in filters.items():
        if isinstance(value, (list, tuple)):
            clauses.append('(' + ' OR '.join(f"{key} = {_quote(v)}" for v in value) + ')')
        else:
            clauses.append(f"{key} = {_quote(value)}")
    return ' AND '.join(clauses)


def search(query, filters=None, limit=20, offset=0, indexes=None):
    """
    Search each index and merge the hits.

    Returns {'hits', 'totalHits', 'processingTimeMs', 'query'}; hits carry a
    `type` of 'bin' or 'item'. totalHits is the engine's estimate.
    """
    if not query:
        return {'hits': [], 'totalHits': 0, 'processingTimeMs': 0, 'query': ''}

    client = get_client()
    params = {'limit': limit, 'offset': offset}
    filter_expression = build_filter(filters)
    if filter_expression:
        params['filter'] = filter_expression

    hits = []
    total_hits = 0
    processing_time = 0
    for uid in indexes or TYPEAHEAD_CONFIG['indexes']:
        result = _engine_call(f"search in {uid}", client.index(uid).search, query, params)
        for hit in result.get('hits', []):
            hit.setdefault('type', DOCUMENT_TYPES.get(uid, uid))
            hits.append(hit)
        total_hits += result.get('estimatedTotalHits') or 0
        processing_time += result.get('processingTimeMs') or 0

    return {
        'hits': hits,
        'totalHits': total_hits,
        'processingTimeMs': processing_time,
        'query': query,
    }


@cached_per_scope("typeahead", cache_ttl=TYPEAHEAD_CACHE_TTL)
def _typeahead_hits(user_id, query):
    result = search(
        query,
        filters={'user_id': user_id},
        limit=TYPEAHEAD_CONFIG['max_results'],
        indexes=TYPEAHEAD_CONFIG['indexes'],
    )
    return result['hits'][:TYPEAHEAD_CONFIG['max_results']]


def typeahead(query, user):
    """Autocomplete suggestions for the user's bins and items"""
    query = (query or '').strip()
    if len(query) < TYPEAHEAD_CONFIG['min_chars']:
        return []
    return _typeahead_hits(user.pk, query)


def database_search(user, query, limit=20, indexes=None):
    """Fallback search over the database when the engine is unavailable"""
    start = time.monotonic()
    indexes = indexes or TYPEAHEAD_CONFIG['indexes']
    hits = []
    total = 0

    if BINS_INDEX in indexes:
        bins = Bin.objects.filter(user=user).filter(
            Q(label__icontains=query) | Q(location__icontains=query) | Q(description__icontains=query)
        ).order_by('-created_at')
        total += bins.count()
        hits.extend(bin_document(b) for b in bins[:limit])

    if ITEMS_INDEX in indexes:
        items = Item.objects.filter(user=user).select_related('category').filter(
            Q(name__icontains=query) | Q(description__icontains=query) | Q(category__name__icontains=query)
        ).order_by('name')
        total += items.count()
        hits.extend(item_document(i) for i in items[:limit])

    return {
        'hits': hits,
        'totalHits': total,
        'processingTimeMs': int((time.monotonic() - start) * 1000),
        'query': query,
    }
