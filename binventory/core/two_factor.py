"""
Two-factor authentication with time-based one-time passwords (pyotp).
"""
import logging
import re
import secrets

import pyotp
from django.conf import settings

from binventory.qr.rendering import png_data_url

from .audit import AuditAction, AuditEntity
from .errors import bad_request, unauthorized
from .models import TwoFactorAuth
from .utils import create_audit_log

logger = logging.getLogger(__name__)

RECOVERY_CODE_COUNT = 10
RECOVERY_CODE_BYTES = 10
TOKEN_PATTERN = re.compile(r'^\d{6}$')


def generate_recovery_codes(count=RECOVERY_CODE_COUNT):
    return [secrets.token_hex(RECOVERY_CODE_BYTES) for _ in range(count)]


def get_issuer():
    return getattr(settings, 'TWO_FACTOR_ISSUER', 'Binventory')


def generate_secret(user, request=None):
    """
    Start (or restart) two-factor setup.

    Returns the base32 secret, the otpauth:// provisioning URI, a PNG data URL
    of that URI and ten fresh recovery codes. A user whose setup is already
    verified must disable it first.
    """
    existing = TwoFactorAuth.objects.filter(user=user).first()
    if existing and existing.verified:
        raise bad_request('TWO_FACTOR_ALREADY_ENABLED', 'Two-factor authentication is already set up')

    secret = pyotp.random_base32()
    recovery_codes = generate_recovery_codes()
    TwoFactorAuth.objects.update_or_create(
        user=user,
        defaults={
            'secret': secret,
            'verified': False,
            'recovery_codes': recovery_codes,
        },
    )

    otpauth_url = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=get_issuer())
    logger.info(f"Generated two-factor secret for user {user.pk}")
    return {
        'secret': secret,
        'otpauthUrl': otpauth_url,
        'qrCodeDataUrl': png_data_url(otpauth_url),
        'recoveryCodes': recovery_codes,
    }


def _get_setup(user):
    setup = TwoFactorAuth.objects.filter(user=user).first()
    if setup is None:
        raise bad_request('TWO_FACTOR_NOT_SETUP', 'Two-factor authentication is not set up')
    return setup


def verify_totp(user, token, request=None):
    """
    Check a 6-digit code. The first successful check marks the setup verified.
    Returns True/False; malformed tokens raise INVALID_TOKEN_FORMAT.
    """
    token = (token or '').strip()
    if not TOKEN_PATTERN.match(token):
        raise bad_request('INVALID_TOKEN_FORMAT', 'Token must be 6 digits')

    setup = _get_setup(user)
    if not pyotp.TOTP(setup.secret).verify(token, valid_window=1):
        logger.info(f"Rejected two-factor code for user {user.pk}")
        return False

    if not setup.verified:
        setup.verified = True
        setup.save(update_fields=['verified', 'updated_at'])
        action = AuditAction.TWO_FACTOR_ENABLE
    else:
        action = AuditAction.TWO_FACTOR_VERIFY
    create_audit_log(request=request, user=user, action=action, entity=AuditEntity.USER, entity_id=user.pk)
    return True


def verify_recovery_code(user, code, request=None):
    """Consume a recovery code; returns True when it was valid"""
    setup = _get_setup(user)
    code = (code or '').strip().lower()
    if code not in setup.recovery_codes:
        return False

    setup.recovery_codes = [c for c in setup.recovery_codes if c != code]
    setup.save(update_fields=['recovery_codes', 'updated_at'])
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.TWO_FACTOR_RECOVERY,
        entity=AuditEntity.USER,
        entity_id=user.pk,
        metadata={'remaining': len(setup.recovery_codes)},
    )
    return True


def is_enabled(user):
    return TwoFactorAuth.objects.filter(user=user, verified=True).exists()


def require_second_factor(user, otp=None, recovery_code=None, request=None):
    """Login challenge for users with verified two-factor; raises on failure"""
    if not is_enabled(user):
        return
    if otp:
        if TOKEN_PATTERN.match(otp.strip()) and verify_totp(user, otp, request):
            return
        raise unauthorized('INVALID_TWO_FACTOR_CODE', 'Invalid two-factor code')
    if recovery_code:
        if verify_recovery_code(user, recovery_code, request):
            return
        raise unauthorized('INVALID_TWO_FACTOR_CODE', 'Invalid recovery code')
    raise unauthorized('TWO_FACTOR_REQUIRED', 'Two-factor code required')


def disable(user, token, request=None):
    """Remove two-factor after confirming a current code"""
    setup = _get_setup(user)
    if not verify_totp(user, token, request):
        raise bad_request('INVALID_TOKEN', 'Invalid verification code')
    setup.delete()
    create_audit_log(
        request=request,
        user=user,
        action=AuditAction.TWO_FACTOR_DISABLE,
        entity=AuditEntity.USER,
        entity_id=user.pk,
    )
    logger.info(f"Disabled two-factor for user {user.pk}")


def get_status(user):
    setup = TwoFactorAuth.objects.filter(user=user).first()
    return {
        'enabled': setup is not None,
        'verified': bool(setup and setup.verified),
        'recoveryCodesRemaining': len(setup.recovery_codes) if setup else 0,
    }


def regenerate_recovery_codes(user, token, request=None):
    setup = _get_setup(user)
    if not setup.verified:
        raise bad_request('TWO_FACTOR_NOT_VERIFIED', 'Two-factor authentication is not verified')
    if not verify_totp(user, token, request):
        raise bad_request('INVALID_TOKEN', 'Invalid verification code')
    setup.refresh_from_db()
    setup.recovery_codes = generate_recovery_codes()
    setup.save(update_fields=['recovery_codes', 'updated_at'])
    return setup.recovery_codes
