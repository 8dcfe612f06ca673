"""
Client-side offline queue for scanner devices.

Add/remove operations are appended to a JSON file while the device is
offline and replayed against the server's scanner/sync/ endpoint. The queue
is cleared only after the server reports success; per-operation failures
are the server's to report and are not retried.
"""
import json
import logging
import os
import time
from typing import Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_PATH = os.path.join(os.path.expanduser('~'), '.binventory', 'offline-queue.json')


class OfflineQueue:
    """Persistent queue of bin content changes made while offline"""

    def __init__(self, base_url: str, access_token: Optional[str] = None,
                 storage_path: str = DEFAULT_QUEUE_PATH, timeout: int = 10,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.storage_path = storage_path
        self.timeout = timeout
        self.session = session or requests.Session()
        if access_token:
            self.session.headers.update({'Authorization': f'Bearer {access_token}'})
        self._queue: List[Dict] = self._load()

    def _load(self) -> List[Dict]:
        if not os.path.exists(self.storage_path):
            return []
        try:
            with open(self.storage_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read offline queue {self.storage_path}: {str(e)}")
            return []
        return data if isinstance(data, list) else []

    def _save(self):
        directory = os.path.dirname(self.storage_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.storage_path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._queue, f)
        os.replace(tmp_path, self.storage_path)

    def _enqueue(self, action: str, bin_id: str, item_id: str, quantity: int):
        self._queue.append({
            'action': action,
            'binId': str(bin_id),
            'itemId': str(item_id),
            'quantity': quantity,
            'timestamp': int(time.time() * 1000),
        })
        self._save()

    @property
    def pending(self) -> List[Dict]:
        return list(self._queue)

    def add_item_to_bin(self, bin_id: str, item_id: str, quantity: int):
        self._enqueue('add', bin_id, item_id, quantity)

    def remove_item_from_bin(self, bin_id: str, item_id: str, quantity: int):
        self._enqueue('remove', bin_id, item_id, quantity)

    def sync(self) -> bool:
        """Send the queue to the server; True when it was accepted (or was empty)"""
        if not self._queue:
            return True
        try:
            response = self.session.post(
                f"{self.base_url}/scanner/sync/",
                json={'operations': self._queue},
                timeout=self.timeout,
            )
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.warning(f"Offline queue sync failed: {str(e)}")
            return False
        except ValueError:
            logger.warning(f"Offline queue sync got a non-JSON response ({response.status_code})")
            return False

        if response.status_code != 200 or not body.get('success'):
            logger.warning(f"Offline queue sync rejected ({response.status_code}): {body.get('error')}")
            return False

        synced = len(self._queue)
        self._queue = []
        self._save()
        logger.info(f"Synced {synced} queued operation(s)")
        return True

    def process_scan(self, scanned: str) -> Dict:
        """
        Resolve a scanned QR value through the server and, on success, flush
        the queue. Returns {success, binId} or {success, error}.
        """
        try:
            response = self.session.post(
                f"{self.base_url}/scanner/scan/",
                json={'data': scanned},
                timeout=self.timeout,
            )
            body = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            return {'success': False, 'error': f"Scan request failed: {str(e)}"}

        result = body.get('data') if body.get('success') else None
        if not result:
            error = (body.get('error') or {}).get('message', 'Invalid QR code')
            return {'success': False, 'error': error}
        if result.get('success'):
            self.sync()
        return result
