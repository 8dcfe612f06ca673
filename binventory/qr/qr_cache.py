"""
Cache of validated QR payloads keyed by short code.

A scan resolves a short code to its bin on every request, so successful
validations are cached until the code expires. Entries are dropped when the
QR code or its bin is saved or deleted.
"""
from django.core.cache import cache
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
from django.utils import timezone
import logging

from binventory.bins.models import Bin
from binventory.core.cache_utils import QR_LOOKUP_CACHE_TTL

from .models import QRCode

logger = logging.getLogger(__name__)

QR_KEY_PREFIX = 'qr:'


def get_qr_cache_key(short_code: str) -> str:
    return f"{QR_KEY_PREFIX}{short_code}"


def _ttl_for(expires_at):
    if expires_at is None:
        return QR_LOOKUP_CACHE_TTL
    remaining = int((expires_at - timezone.now()).total_seconds())
    return max(0, min(QR_LOOKUP_CACHE_TTL, remaining))


def cache_qr_payload(short_code: str, payload: dict, expires_at=None):
    ttl = _ttl_for(expires_at)
    if ttl <= 0:
        return
    cache.set(get_qr_cache_key(short_code), payload, ttl)


def get_cached_qr_payload(short_code: str):
    return cache.get(get_qr_cache_key(short_code))


def invalidate_qr_cache(short_code: str):
    cache.delete(get_qr_cache_key(short_code))


def invalidate_bin_qr_caches(bin_id):
    short_codes = list(QRCode.objects.filter(bin_id=bin_id).values_list('short_code', flat=True))
    if short_codes:
        cache.delete_many([get_qr_cache_key(code) for code in short_codes])
        logger.debug(f"Invalidated {len(short_codes)} QR cache entries for bin {bin_id}")


@receiver(post_save, sender=QRCode)
@receiver(post_delete, sender=QRCode)
def qr_code_changed(sender, instance, **kwargs):
    invalidate_qr_cache(instance.short_code)


@receiver(post_save, sender=Bin)
def bin_saved(sender, instance, created, **kwargs):
    if not created:
        invalidate_bin_qr_caches(instance.pk)
