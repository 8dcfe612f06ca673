"""
QR short links for bins.

Each generated code stores a payload {version, binId, shortCode, timestamp,
checksum}. The checksum is the first 8 hex characters of the SHA-256 of the
compact JSON of the other four fields, in that order. A scan resolves the
short code, checks expiry, the bin and the checksum, in that order.
"""
import hashlib
import json
import logging
import os
import secrets
import string
import time
from datetime import timedelta
from urllib.parse import urlparse

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from binventory.bins.models import Bin
from binventory.core.errors import AppError, bad_request, not_found

from . import qr_cache, rendering
from .models import QRCode

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = '1.0'
SHORT_CODE_ALPHABET = string.ascii_letters + string.digits + '_-'
MAX_SHORT_CODE_ATTEMPTS = 5
FORMAT_SVG = 'svg'
FORMAT_PNG = 'png'


def _setting(name, default):
    return getattr(settings, name, os.getenv(name, default))


def base_url():
    return str(_setting('BINVENTORY_BASE_URL', 'http://localhost:3000')).rstrip('/')


def short_link(short_code):
    return f"{base_url()}/b/{short_code}"


def generate_short_code(length=None):
    length = int(length or _setting('QR_SHORT_CODE_LENGTH', 8))
    return ''.join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


def generate_checksum(payload):
    base = {
        'version': payload['version'],
        'binId': payload['binId'],
        'shortCode': payload['shortCode'],
        'timestamp': payload['timestamp'],
    }
    serialized = json.dumps(base, separators=(',', ':'), ensure_ascii=False)
    return hashlib.sha256(serialized.encode('utf-8')).hexdigest()[:8]


def _expiry():
    days = int(_setting('QR_EXPIRATION_DAYS', 365))
    if days <= 0:
        return None
    return timezone.now() + timedelta(days=days)


def render(url, fmt=FORMAT_SVG):
    if fmt == FORMAT_PNG:
        return rendering.png_data_url(url)
    return rendering.render_svg(url)


def create_qr_record(bin_obj):
    """Persist a new short code for the bin; retried on short-code collision"""
    for attempt in range(MAX_SHORT_CODE_ATTEMPTS):
        payload = {
            'version': PAYLOAD_VERSION,
            'binId': str(bin_obj.id),
            'shortCode': generate_short_code(),
            'timestamp': int(time.time() * 1000),
        }
        payload['checksum'] = generate_checksum(payload)
        try:
            with transaction.atomic():
                return QRCode.objects.create(
                    bin=bin_obj,
                    short_code=payload['shortCode'],
                    data=payload,
                    expires_at=_expiry(),
                )
        except IntegrityError:
            logger.warning(f"Short code collision for bin {bin_obj.id} (attempt {attempt + 1})")
    raise AppError('QR_GENERATION_FAILED', 'Could not allocate a unique short code', 500)


def generate_qr_code(bin_id, fmt=FORMAT_SVG):
    """
    Create a new QR code for a bin.

    Returns (image, payload, url); image is SVG markup or a PNG data URL.
    """
    bin_obj = Bin.objects.filter(pk=bin_id).first()
    if bin_obj is None:
        raise not_found('BIN_NOT_FOUND', 'Bin not found')

    record = create_qr_record(bin_obj)
    url = short_link(record.short_code)
    logger.info(f"Generated QR code {record.short_code} for bin {bin_obj.id}")
    return render(url, fmt), record.data, url


def get_active_qr_code(bin_obj):
    """Newest unexpired QR code of the bin, created when there is none"""
    now = timezone.now()
    record = (
        QRCode.objects.filter(bin=bin_obj)
        .exclude(expires_at__lt=now)
        .order_by('-created_at')
        .first()
    )
    return record or create_qr_record(bin_obj)


def validate_qr_code(short_code):
    """Resolve a short code to its payload or raise the matching AppError"""
    cached = qr_cache.get_cached_qr_payload(short_code)
    if cached is not None:
        return cached

    record = QRCode.objects.filter(short_code=short_code).first()
    if record is None:
        raise not_found('QR_NOT_FOUND', 'QR code not found')
    if record.is_expired:
        raise AppError('QR_EXPIRED', 'QR code expired', 410)
    if not Bin.objects.filter(pk=record.bin_id).exists():
        raise not_found('BIN_NOT_FOUND', 'Associated bin not found')

    payload = record.data or {}
    try:
        expected = generate_checksum(payload)
    except KeyError:
        expected = None
    if expected is None or payload.get('checksum') != expected:
        raise bad_request('QR_CHECKSUM_MISMATCH', 'Invalid QR code checksum')

    qr_cache.cache_qr_payload(short_code, payload, record.expires_at)
    return payload


def extract_short_code(value):
    """Accept a bare short code or a full short-link URL"""
    value = (value or '').strip()
    if not value:
        return ''
    parsed = urlparse(value)
    if parsed.scheme and parsed.netloc:
        segments = [segment for segment in parsed.path.split('/') if segment]
        return segments[-1] if segments else ''
    if '/' in value:
        segments = [segment for segment in value.split('/') if segment]
        return segments[-1] if segments else ''
    return value


def purge_expired_qr_codes(dry_run=False):
    """Delete QR codes past their expiry; returns how many matched"""
    expired = QRCode.objects.filter(expires_at__lt=timezone.now())
    count = expired.count()
    if not dry_run and count:
        expired.delete()
        logger.info(f"Purged {count} expired QR codes")
    return count
