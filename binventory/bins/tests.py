"""
Test suite for Bins module
Tests: bin CRUD, label uniqueness, contents bookkeeping, image storage and access control
"""
import io
from unittest.mock import MagicMock, patch

from azure.core.exceptions import AzureError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase, override_settings
from PIL import Image
from rest_framework import status

from binventory.bins import services, storage
from binventory.bins.models import Bin, BinItem
from binventory.core.errors import AppError
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.permissions import services as permissions
from binventory.permissions.models import ObjectPermission
from binventory.qr.models import QRCode

AZURE_SETTINGS = {
    'AZURE_STORAGE_ACCOUNT_NAME': 'binventorytest',
    'AZURE_STORAGE_ACCOUNT_KEY': 'a2V5',
    'AZURE_STORAGE_CONTAINER': 'bin-images',
}


def png_upload(width=1600, height=400, name='photo.png', content_type='image/png'):
    buffer = io.BytesIO()
    Image.new('RGB', (width, height), color='blue').save(buffer, format='PNG')
    return SimpleUploadedFile(name, buffer.getvalue(), content_type=content_type)


class BinModelTests(TestCase):
    """Test Bin model helpers"""

    def test_qr_value_follows_label(self):
        """Test the scan value is derived from the label"""
        self.assertEqual(Bin.build_qr_value('A-01'), 'bin:A-01')

    def test_str(self):
        """Test bin string representation"""
        bin_obj = TestDataFactory.create_bin(TestDataFactory.create_user(), label='A-01', location='Shed')
        self.assertIn('A-01', str(bin_obj))


class BinServiceTests(TestCase):
    """Test bin service functions"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()

    def test_create_bin(self):
        """Test creating a bin sets its QR value"""
        bin_obj = services.create_bin(self.user, 'A-01', 'Garage')
        self.assertEqual(bin_obj.qr_code, 'bin:A-01')

    def test_duplicate_label_same_user(self):
        """Test labels are unique per user"""
        services.create_bin(self.user, 'A-01', 'Garage')
        with self.assertRaises(AppError) as ctx:
            services.create_bin(self.user, 'A-01', 'Attic')
        self.assertEqual(ctx.exception.code, 'BIN_ALREADY_EXISTS')
        self.assertEqual(ctx.exception.status_code, 409)

    def test_same_label_other_user(self):
        """Test different users may reuse a label"""
        services.create_bin(self.user, 'A-01', 'Garage')
        services.create_bin(self.other, 'A-01', 'Garage')
        self.assertEqual(Bin.objects.filter(label='A-01').count(), 2)

    def test_rename_updates_qr_value(self):
        """Test renaming keeps the scan value in sync"""
        bin_obj = services.create_bin(self.user, 'A-01', 'Garage')
        bin_obj = services.update_bin(self.user, bin_obj.id, label='B-02')
        self.assertEqual(bin_obj.qr_code, 'bin:B-02')

    def test_rename_to_taken_label(self):
        """Test renaming onto an existing label"""
        services.create_bin(self.user, 'A-01', 'Garage')
        second = services.create_bin(self.user, 'B-02', 'Garage')
        with self.assertRaises(AppError) as ctx:
            services.update_bin(self.user, second.id, label='A-01')
        self.assertEqual(ctx.exception.code, 'BIN_ALREADY_EXISTS')

    def test_get_missing_bin(self):
        """Test unknown bins are 404"""
        with self.assertRaises(AppError) as ctx:
            services.get_bin(self.user, '00000000-0000-0000-0000-000000000000')
        self.assertEqual(ctx.exception.code, 'BIN_NOT_FOUND')

    def test_get_foreign_bin(self):
        """Test other users' bins are forbidden"""
        bin_obj = TestDataFactory.create_bin(self.other)
        with self.assertRaises(AppError) as ctx:
            services.get_bin(self.user, bin_obj.id)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_shared_bin_is_readable_not_deletable(self):
        """Test a read grant does not allow deletion"""
        bin_obj = TestDataFactory.create_bin(self.other)
        permissions.grant(ObjectPermission.OBJECT_BIN, bin_obj.id, ObjectPermission.SUBJECT_USER,
                          self.user.pk, ObjectPermission.ACTION_READ)
        self.assertEqual(services.get_bin(self.user, bin_obj.id), bin_obj)
        with self.assertRaises(AppError):
            services.delete_bin(self.user, bin_obj.id)

    def test_delete_cascades(self):
        """Test deleting a bin removes its contents and QR codes"""
        bin_obj = TestDataFactory.create_bin(self.user)
        item = TestDataFactory.create_item(self.user)
        services.add_item_to_bin(self.user, bin_obj.id, item.id, 2)
        TestDataFactory.create_qr_code(bin_obj)

        permissions.grant(ObjectPermission.OBJECT_BIN, bin_obj.id, ObjectPermission.SUBJECT_USER,
                          self.other.pk, ObjectPermission.ACTION_READ)

        services.delete_bin(self.user, bin_obj.id)
        self.assertFalse(BinItem.objects.filter(item=item).exists())
        self.assertFalse(QRCode.objects.exists())
        self.assertFalse(ObjectPermission.objects.filter(object_id=str(bin_obj.id)).exists())

    def test_list_bins_database(self):
        """Test listing filters by location and search term"""
        TestDataFactory.create_bin(self.user, label='TOOLS-1', location='Garage')
        TestDataFactory.create_bin(self.user, label='TOOLS-2', location='Attic')
        TestDataFactory.create_bin(self.other, label='TOOLS-3', location='Garage')

        bins, pagination, source = services.list_bins(self.user, location='Garage')
        self.assertEqual([b.label for b in bins], ['TOOLS-1'])
        self.assertEqual(source, 'database')

        bins, pagination, _ = services.list_bins(self.user, search_term='tools')
        self.assertEqual(pagination['total'], 2)

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.bins.services.search.search')
    def test_list_bins_engine_order(self, mock_search):
        """Test engine hits are returned in engine order"""
        first = TestDataFactory.create_bin(self.user, label='X-1')
        second = TestDataFactory.create_bin(self.user, label='X-2')
        mock_search.return_value = {
            'hits': [{'id': str(second.id)}, {'id': str(first.id)}],
            'totalHits': 2,
        }
        bins, pagination, source = services.list_bins(self.user, search_term='x')
        self.assertEqual(bins, [second, first])
        self.assertEqual(source, 'engine')
        self.assertEqual(mock_search.call_args.kwargs['filters'], {'user_id': self.user.pk})

    def test_search_bins_unavailable(self):
        """Test engine-only bin search without an engine"""
        with self.assertRaises(AppError) as ctx:
            services.search_bins(self.user, 'tools')
        self.assertEqual(ctx.exception.code, 'SEARCH_UNAVAILABLE')


class BinContentsTests(TestCase):
    """Test adding, updating and removing bin contents"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user)
        self.item = TestDataFactory.create_item(self.user)

    def test_add_increments(self):
        """Test adding the same item twice sums the quantity"""
        services.add_item_to_bin(self.user, self.bin.id, self.item.id, 2)
        entry = services.add_item_to_bin(self.user, self.bin.id, self.item.id, 3, notes='top shelf')
        self.assertEqual(entry.quantity, 5)
        self.assertEqual(entry.notes, 'top shelf')
        self.assertEqual(BinItem.objects.count(), 1)

    def test_add_invalid_quantity(self):
        """Test quantities below one are rejected"""
        with self.assertRaises(AppError) as ctx:
            services.add_item_to_bin(self.user, self.bin.id, self.item.id, 0)
        self.assertEqual(ctx.exception.code, 'INVALID_QUANTITY')

    def test_add_foreign_item(self):
        """Test items the user cannot read are not found"""
        foreign = TestDataFactory.create_item(TestDataFactory.create_user())
        with self.assertRaises(AppError) as ctx:
            services.add_item_to_bin(self.user, self.bin.id, foreign.id, 1)
        self.assertEqual(ctx.exception.code, 'ITEM_NOT_FOUND')

    def test_partial_remove(self):
        """Test removing part of the quantity keeps the entry"""
        services.add_item_to_bin(self.user, self.bin.id, self.item.id, 5)
        remaining = services.remove_item_from_bin(self.user, self.bin.id, self.item.id, quantity=2)
        self.assertEqual(remaining.quantity, 3)

    def test_remove_all(self):
        """Test removing the full quantity deletes the entry"""
        services.add_item_to_bin(self.user, self.bin.id, self.item.id, 5)
        self.assertIsNone(services.remove_item_from_bin(self.user, self.bin.id, self.item.id, quantity=9))
        self.assertFalse(BinItem.objects.exists())

    def test_remove_missing_entry(self):
        """Test removing an item that is not in the bin"""
        with self.assertRaises(AppError) as ctx:
            services.remove_item_from_bin(self.user, self.bin.id, self.item.id)
        self.assertEqual(ctx.exception.code, 'BIN_ITEM_NOT_FOUND')

    def test_update_entry(self):
        """Test setting an entry's quantity"""
        services.add_item_to_bin(self.user, self.bin.id, self.item.id, 5)
        entry = services.update_bin_item(self.user, self.bin.id, self.item.id, quantity=1)
        self.assertEqual(entry.quantity, 1)


class BinImageTests(TestCase):
    """Test image validation and Azure storage calls"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user)

    def test_validate_rejects_type(self):
        """Test non-image uploads are rejected"""
        upload = SimpleUploadedFile('notes.txt', b'hello', content_type='text/plain')
        with self.assertRaises(AppError) as ctx:
            storage.validate_image(upload)
        self.assertEqual(ctx.exception.code, 'INVALID_FILE_TYPE')

    def test_validate_rejects_size(self):
        """Test uploads over 5MB are rejected"""
        upload = SimpleUploadedFile('big.png', b'0' * (storage.MAX_FILE_SIZE + 1), content_type='image/png')
        with self.assertRaises(AppError) as ctx:
            storage.validate_image(upload)
        self.assertEqual(ctx.exception.code, 'FILE_TOO_LARGE')

    def test_resize_limits_width(self):
        """Test wide images are scaled down keeping the ratio"""
        data = storage.resize_image(png_upload().read(), 'PNG')
        image = Image.open(io.BytesIO(data))
        self.assertEqual(image.size, (800, 200))

    def test_resize_rejects_garbage(self):
        """Test unreadable image data"""
        with self.assertRaises(AppError) as ctx:
            storage.resize_image(b'not an image', 'PNG')
        self.assertEqual(ctx.exception.code, 'INVALID_IMAGE')

    def test_upload_unconfigured(self):
        """Test uploads fail when storage is not configured"""
        with override_settings(AZURE_STORAGE_ACCOUNT_NAME='', AZURE_STORAGE_ACCOUNT_KEY=''):
            with self.assertRaises(AppError) as ctx:
                services.upload_bin_image(self.user, self.bin.id, png_upload())
        self.assertEqual(ctx.exception.code, 'STORAGE_UNAVAILABLE')

    @override_settings(**AZURE_SETTINGS)
    @patch('binventory.bins.storage.build_blob_url', return_value='https://blob.example/img.png?sig=1')
    @patch('binventory.bins.storage.get_blob_client')
    def test_upload_replaces_previous(self, mock_blob_client, mock_url):
        """Test a new upload stores the image and deletes the old blob"""
        blob = MagicMock()
        mock_blob_client.return_value = blob
        self.bin.image_key = 'uploads/old.png'
        self.bin.save()

        bin_obj = services.upload_bin_image(self.user, self.bin.id, png_upload())
        self.assertTrue(bin_obj.image_key.startswith('uploads/'))
        self.assertTrue(bin_obj.image_key.endswith('.png'))
        self.assertEqual(bin_obj.image_url, 'https://blob.example/img.png?sig=1')
        blob.upload_blob.assert_called_once()
        blob.delete_blob.assert_called_once()
        mock_blob_client.assert_any_call('uploads/old.png')

    @override_settings(**AZURE_SETTINGS)
    @patch('binventory.bins.storage.get_blob_client')
    def test_upload_failure(self, mock_blob_client):
        """Test storage errors surface as UPLOAD_FAILED"""
        mock_blob_client.return_value.upload_blob.side_effect = AzureError('boom')
        with self.assertRaises(AppError) as ctx:
            services.upload_bin_image(self.user, self.bin.id, png_upload())
        self.assertEqual(ctx.exception.code, 'UPLOAD_FAILED')
        self.assertEqual(ctx.exception.status_code, 502)

    def test_delete_without_image(self):
        """Test deleting a missing image"""
        with self.assertRaises(AppError) as ctx:
            services.delete_bin_image(self.user, self.bin.id)
        self.assertEqual(ctx.exception.code, 'IMAGE_NOT_FOUND')


class BinAPITests(TestCase):
    """Test Bin API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_bin(self):
        """Test creating a bin via API"""
        response = self.client.post('/api/v1/bins/', {
            'label': 'GAR-01',
            'location': 'Garage',
            'description': 'Paint supplies',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['qr_code'], 'bin:GAR-01')

    def test_create_bin_requires_location(self):
        """Test location is mandatory"""
        response = self.client.post('/api/v1/bins/', {'label': 'GAR-01'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('location', response.data['error']['details'])

    def test_list_bins(self):
        """Test listing with pagination metadata"""
        for _ in range(3):
            TestDataFactory.create_bin(self.user)
        response = self.client.get('/api/v1/bins/', {'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 2)
        self.assertEqual(response.data['meta']['pagination'], {'page': 1, 'pageSize': 2, 'total': 3})
        self.assertEqual(response.data['meta']['source'], 'database')

    def test_detail_includes_items(self):
        """Test bin detail lists its contents"""
        bin_obj = TestDataFactory.create_bin(self.user)
        item = TestDataFactory.create_item(self.user, name='Brush')
        BinItem.objects.create(bin=bin_obj, item=item, quantity=2)
        response = self.client.get(f'/api/v1/bins/{bin_obj.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['item_count'], 1)
        self.assertEqual(response.data['data']['items'][0]['item']['name'], 'Brush')

    def test_add_and_remove_item(self):
        """Test the contents endpoints"""
        bin_obj = TestDataFactory.create_bin(self.user)
        item = TestDataFactory.create_item(self.user)
        response = self.client.post(f'/api/v1/bins/{bin_obj.id}/items/', {
            'item_id': str(item.id),
            'quantity': 4,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['quantity'], 4)

        response = self.client.delete(f'/api/v1/bins/{bin_obj.id}/items/{item.id}/?quantity=1')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['quantity'], 3)

        response = self.client.delete(f'/api/v1/bins/{bin_obj.id}/items/{item.id}/')
        self.assertIsNone(response.data['data'])

    def test_foreign_bin_forbidden(self):
        """Test other users' bins return 403"""
        bin_obj = TestDataFactory.create_bin(TestDataFactory.create_user())
        response = self.client.patch(f'/api/v1/bins/{bin_obj.id}/', {'location': 'Mine now'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_image_upload_without_file(self):
        """Test the image endpoint requires a file"""
        bin_obj = TestDataFactory.create_bin(self.user)
        response = self.client.post(f'/api/v1/bins/{bin_obj.id}/image/', {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'NO_FILE')

    def test_bin_search_unavailable(self):
        """Test the engine-only search endpoint without an engine"""
        response = self.client.get('/api/v1/bins/search/', {'q': 'tools'})
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_delete_bin(self):
        """Test deleting a bin via API"""
        bin_obj = TestDataFactory.create_bin(self.user)
        response = self.client.delete(f'/api/v1/bins/{bin_obj.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Bin.objects.filter(pk=bin_obj.id).exists())
