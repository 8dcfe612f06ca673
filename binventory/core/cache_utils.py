"""
Caching helpers shared by the QR lookup and search typeahead caches.

Keys look like "<namespace>:<scope>:<digest>" where the scope is usually a
user id, so one user's entries can be dropped without touching anyone
else's. Pattern deletion needs the django-redis backend; with the local
memory cache entries simply live out their TTL.
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
TYPEAHEAD_CACHE_TTL = 60
QR_LOOKUP_CACHE_TTL = 3600


def scoped_cache_key(namespace, scope, *parts):
    digest = hashlib.md5(repr(parts).encode('utf-8')).hexdigest()
    return f"{namespace}:{scope}:{digest}"


def cached_per_scope(namespace, cache_ttl=60):
    """
    Cache a function's result under the namespace, scoped by its first
    positional argument (a user id for typeahead).

        @cached_per_scope("typeahead", cache_ttl=TYPEAHEAD_CACHE_TTL)
        def lookup(user_id, query):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(scope, *args):
            key = scoped_cache_key(namespace, scope, *args)
            hit = cache.get(key)
            if hit is not None:
                logger.debug(f"{namespace} cache hit: {key}")
                return hit
            result = func(scope, *args)
            cache.set(key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_scope(namespace, scope='*'):
    """Drop every cached entry of a namespace (optionally one scope of it)"""
    delete_pattern = getattr(cache, 'delete_pattern', None)
    if delete_pattern is None:
        logger.debug(f"Cache backend cannot delete by pattern; {namespace} entries expire on their own")
        return 0
    try:
        deleted = delete_pattern(f"{namespace}:{scope}:*")
    except Exception as e:
        logger.warning(f"Could not invalidate {namespace}:{scope}: {str(e)}")
        return 0
    if deleted:
        logger.info(f"Invalidated {deleted} {namespace} cache entries for scope {scope}")
    return deleted
