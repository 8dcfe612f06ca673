"""
Scanner support: resolving scanned QR values and replaying operations that
a scanner device queued while offline.
"""
import logging

from django.db import DatabaseError, transaction

from binventory.bins import services as bins
from binventory.core.errors import AppError
from binventory.qr.services import extract_short_code, validate_qr_code

logger = logging.getLogger(__name__)

ACTION_ADD = 'add'
ACTION_REMOVE = 'remove'


def process_scan(value):
    """Resolve a scanned value to a bin; returns {success, binId} or {success, error}"""
    short_code = extract_short_code(value)
    if not short_code:
        return {'success': False, 'error': 'Invalid QR code'}
    try:
        payload = validate_qr_code(short_code)
    except AppError as e:
        return {'success': False, 'error': e.message, 'code': e.code}
    return {'success': True, 'binId': payload['binId']}


def _apply(user, operation, request=None):
    if operation['action'] == ACTION_ADD:
        bins.add_item_to_bin(
            user, operation['binId'], operation['itemId'], operation['quantity'], request=request
        )
    else:
        bins.remove_item_from_bin(
            user, operation['binId'], operation['itemId'], quantity=operation['quantity'], request=request
        )


def apply_queued_operations(user, operations, request=None):
    """
    Apply queued add/remove operations in timestamp order.

    There is no conflict detection between devices: the last operation to
    arrive wins. A failing operation is reported and the batch continues.
    Results keep the position each operation had in the submitted list.
    """
    ordered = sorted(enumerate(operations), key=lambda pair: pair[1]['timestamp'])
    results = []
    for index, operation in ordered:
        try:
            with transaction.atomic():
                _apply(user, operation, request=request)
            results.append({'index': index, 'success': True, 'error': None})
        except AppError as e:
            logger.info(f"Queued {operation['action']} #{index} for bin {operation['binId']} failed: {e.code}")
            results.append({'index': index, 'success': False, 'error': {'code': e.code, 'message': e.message}})
        except DatabaseError as e:
            logger.error(f"Queued {operation['action']} #{index} for bin {operation['binId']} hit a database error: {str(e)}")
            results.append({
                'index': index,
                'success': False,
                'error': {'code': 'DATABASE_ERROR', 'message': 'Operation could not be saved'},
            })

    results.sort(key=lambda result: result['index'])
    applied = sum(1 for result in results if result['success'])
    logger.info(f"Synced {applied}/{len(results)} queued operations for user {user.pk}")
    return results
