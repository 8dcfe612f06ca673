"""
Test suite for Scanner module
Tests: scan resolution, offline queue replay and the client-side queue
"""
import json
import os
import shutil
import tempfile
from unittest.mock import MagicMock, patch

import requests
from django.core.cache import cache
from django.db import IntegrityError
from django.test import SimpleTestCase, TestCase
from rest_framework import status

from binventory.bins import services as bin_services
from binventory.bins.models import BinItem
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.scanner import services
from binventory.scanner.offline_queue import OfflineQueue


def operation(action, bin_obj, item, quantity, timestamp):
    return {
        'action': action,
        'binId': str(bin_obj.id),
        'itemId': str(item.id),
        'quantity': quantity,
        'timestamp': timestamp,
    }


class ScanServiceTests(TestCase):
    """Test scan resolution"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user)

    def test_scan_short_link(self):
        """Test a scanned short link resolves to its bin"""
        record = TestDataFactory.create_qr_code(self.bin)
        result = services.process_scan(f'http://localhost:3000/b/{record.short_code}')
        self.assertEqual(result, {'success': True, 'binId': str(self.bin.id)})

    def test_scan_unknown(self):
        """Test unknown codes report the validation error"""
        result = services.process_scan('missing')
        self.assertFalse(result['success'])
        self.assertEqual(result['code'], 'QR_NOT_FOUND')

    def test_scan_empty(self):
        """Test empty scans are invalid"""
        self.assertEqual(services.process_scan(''), {'success': False, 'error': 'Invalid QR code'})


class QueuedOperationTests(TestCase):
    """Test replaying queued operations"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user)
        self.item = TestDataFactory.create_item(self.user)

    def test_applied_in_timestamp_order(self):
        """Test operations run by timestamp, not submission order"""
        operations = [
            operation('remove', self.bin, self.item, 2, 2000),
            operation('add', self.bin, self.item, 5, 1000),
        ]
        results = services.apply_queued_operations(self.user, operations)
        self.assertEqual([r['index'] for r in results], [0, 1])
        self.assertTrue(all(r['success'] for r in results))
        self.assertEqual(BinItem.objects.get(bin=self.bin, item=self.item).quantity, 3)

    def test_failure_does_not_abort(self):
        """Test a failing operation is reported and the rest still apply"""
        other_bin = TestDataFactory.create_bin(TestDataFactory.create_user())
        operations = [
            operation('add', other_bin, self.item, 1, 1000),
            operation('add', self.bin, self.item, 1, 2000),
        ]
        results = services.apply_queued_operations(self.user, operations)
        self.assertFalse(results[0]['success'])
        self.assertEqual(results[0]['error']['code'], 'FORBIDDEN')
        self.assertTrue(results[1]['success'])

    def test_database_error_does_not_abort(self):
        """Test a database error is reported per operation and the batch continues"""
        real_add = bin_services.add_item_to_bin
        calls = []

        def flaky_add(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise IntegrityError('duplicate key value violates unique constraint')
            return real_add(*args, **kwargs)

        operations = [
            operation('add', self.bin, self.item, 4, 1000),
            operation('add', self.bin, self.item, 2, 2000),
        ]
        with patch('binventory.scanner.services.bins.add_item_to_bin', side_effect=flaky_add):
            results = services.apply_queued_operations(self.user, operations)

        self.assertFalse(results[0]['success'])
        self.assertEqual(results[0]['error']['code'], 'DATABASE_ERROR')
        self.assertTrue(results[1]['success'])
        self.assertEqual(BinItem.objects.get(bin=self.bin, item=self.item).quantity, 2)


class ScannerAPITests(TestCase):
    """Test Scanner API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user)
        self.item = TestDataFactory.create_item(self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_scan(self):
        """Test scanning via API"""
        record = TestDataFactory.create_qr_code(self.bin)
        response = self.client.post('/api/v1/scanner/scan/', {'data': record.short_code}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['binId'], str(self.bin.id))

    def test_sync(self):
        """Test syncing reports applied and failed counts"""
        response = self.client.post('/api/v1/scanner/sync/', {'operations': [
            operation('add', self.bin, self.item, 2, 1000),
            operation('remove', self.bin, self.item, 1, 500),
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['applied'], 1)
        self.assertEqual(response.data['data']['failed'], 1)
        self.assertEqual(response.data['data']['results'][1]['error']['code'], 'BIN_ITEM_NOT_FOUND')

    def test_sync_invalid_operation(self):
        """Test malformed operations are rejected"""
        response = self.client.post('/api/v1/scanner/sync/', {'operations': [
            {'action': 'move', 'binId': str(self.bin.id), 'itemId': str(self.item.id), 'quantity': 1, 'timestamp': 1},
        ]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class OfflineQueueTests(SimpleTestCase):
    """Test the client-side offline queue"""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, 'queue.json')
        self.session = MagicMock()
        self.session.headers = {}

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _queue(self):
        return OfflineQueue('http://api.example.com/api/v1/', access_token='tok',
                            storage_path=self.path, session=self.session)

    def _response(self, status_code, body):
        response = MagicMock(status_code=status_code)
        response.json.return_value = body
        return response

    def test_operations_persist(self):
        """Test queued operations survive a restart"""
        queue = self._queue()
        queue.add_item_to_bin('bin-1', 'item-1', 2)
        queue.remove_item_from_bin('bin-1', 'item-1', 1)
        with open(self.path, encoding='utf-8') as f:
            self.assertEqual(len(json.load(f)), 2)
        self.assertEqual([op['action'] for op in self._queue().pending], ['add', 'remove'])
        self.assertEqual(self.session.headers['Authorization'], 'Bearer tok')

    def test_sync_clears_on_success(self):
        """Test a successful sync empties the queue"""
        queue = self._queue()
        queue.add_item_to_bin('bin-1', 'item-1', 2)
        self.session.post.return_value = self._response(200, {'success': True, 'data': {}})
        self.assertTrue(queue.sync())
        self.assertEqual(queue.pending, [])
        url = self.session.post.call_args[0][0]
        self.assertEqual(url, 'http://api.example.com/api/v1/scanner/sync/')

    def test_sync_keeps_queue_on_error(self):
        """Test failed syncs keep the queue for a retry"""
        queue = self._queue()
        queue.add_item_to_bin('bin-1', 'item-1', 2)
        self.session.post.return_value = self._response(500, {'success': False, 'error': {'code': 'X'}})
        self.assertFalse(queue.sync())
        self.session.post.side_effect = requests.exceptions.ConnectionError('offline')
        self.assertFalse(queue.sync())
        self.assertEqual(len(queue.pending), 1)

    def test_empty_sync(self):
        """Test syncing an empty queue makes no request"""
        self.assertTrue(self._queue().sync())
        self.session.post.assert_not_called()

    def test_scan_triggers_sync(self):
        """Test a successful scan flushes the queue"""
        queue = self._queue()
        queue.add_item_to_bin('bin-1', 'item-1', 2)
        self.session.post.side_effect = [
            self._response(200, {'success': True, 'data': {'success': True, 'binId': 'bin-1'}}),
            self._response(200, {'success': True, 'data': {}}),
        ]
        result = queue.process_scan('abc123')
        self.assertEqual(result['binId'], 'bin-1')
        self.assertEqual(queue.pending, [])

    def test_corrupt_queue_file(self):
        """Test an unreadable queue file starts an empty queue"""
        with open(self.path, 'w', encoding='utf-8') as f:
            f.write('{not json')
        self.assertEqual(self._queue().pending, [])
