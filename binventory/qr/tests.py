"""
Test suite for QR module
Tests: short code generation, payload checksums, validation order, caching, redirects and labels
"""
from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.cache import cache
from django.core.management import call_command
from django.db import IntegrityError
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status

from binventory.core.errors import AppError
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.qr import qr_cache, services
from binventory.qr.label_generator import generate_bin_label
from binventory.qr.models import QRCode


class QRServiceTests(TestCase):
    """Test QR code generation and validation"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user, label='A-01')

    def test_short_code_alphabet(self):
        """Test short codes are URL safe and of the configured length"""
        code = services.generate_short_code()
        self.assertEqual(len(code), 8)
        self.assertTrue(set(code) <= set(services.SHORT_CODE_ALPHABET))

    def test_checksum_ignores_key_order(self):
        """Test the checksum is computed over a fixed field order"""
        payload = {'version': '1.0', 'binId': 'b', 'shortCode': 'abc', 'timestamp': 1}
        reordered = {'timestamp': 1, 'shortCode': 'abc', 'binId': 'b', 'version': '1.0', 'checksum': 'x'}
        self.assertEqual(services.generate_checksum(payload), services.generate_checksum(reordered))
        self.assertEqual(len(services.generate_checksum(payload)), 8)

    @override_settings(BINVENTORY_BASE_URL='https://bins.example.com/')
    def test_generate_returns_short_link(self):
        """Test generation stores the payload and returns the short link"""
        image, payload, url = services.generate_qr_code(self.bin.id)
        self.assertIn('<svg', image)
        self.assertEqual(url, f"https://bins.example.com/b/{payload['shortCode']}")
        self.assertEqual(payload['binId'], str(self.bin.id))
        self.assertEqual(payload['checksum'], services.generate_checksum(payload))

    def test_generate_png(self):
        """Test PNG generation returns a data URL"""
        image, _, _ = services.generate_qr_code(self.bin.id, services.FORMAT_PNG)
        self.assertTrue(image.startswith('data:image/png;base64,'))

    def test_generate_missing_bin(self):
        """Test generation for a missing bin"""
        with self.assertRaises(AppError) as ctx:
            services.generate_qr_code('00000000-0000-0000-0000-000000000000')
        self.assertEqual(ctx.exception.code, 'BIN_NOT_FOUND')

    @patch('binventory.qr.services.QRCode.objects.create', side_effect=IntegrityError('duplicate'))
    def test_short_code_collisions_exhausted(self, mock_create):
        """Test generation gives up after repeated collisions"""
        with self.assertRaises(AppError) as ctx:
            services.create_qr_record(self.bin)
        self.assertEqual(ctx.exception.code, 'QR_GENERATION_FAILED')
        self.assertEqual(mock_create.call_count, services.MAX_SHORT_CODE_ATTEMPTS)

    def test_validate(self):
        """Test a fresh code resolves to its payload"""
        record = TestDataFactory.create_qr_code(self.bin)
        payload = services.validate_qr_code(record.short_code)
        self.assertEqual(payload['binId'], str(self.bin.id))

    def test_validate_unknown(self):
        """Test unknown codes are 404"""
        with self.assertRaises(AppError) as ctx:
            services.validate_qr_code('nope')
        self.assertEqual(ctx.exception.code, 'QR_NOT_FOUND')

    def test_validate_expired(self):
        """Test expired codes are 410"""
        record = TestDataFactory.create_qr_code(self.bin)
        QRCode.objects.filter(pk=record.pk).update(expires_at=timezone.now() - timedelta(days=1))
        with self.assertRaises(AppError) as ctx:
            services.validate_qr_code(record.short_code)
        self.assertEqual(ctx.exception.code, 'QR_EXPIRED')
        self.assertEqual(ctx.exception.status_code, 410)

    def test_validate_tampered_payload(self):
        """Test a payload whose checksum no longer matches"""
        record = TestDataFactory.create_qr_code(self.bin)
        data = dict(record.data, timestamp=record.data['timestamp'] + 1)
        QRCode.objects.filter(pk=record.pk).update(data=data)
        with self.assertRaises(AppError) as ctx:
            services.validate_qr_code(record.short_code)
        self.assertEqual(ctx.exception.code, 'QR_CHECKSUM_MISMATCH')

    def test_validate_uses_cache(self):
        """Test successful validations are served from the cache"""
        record = TestDataFactory.create_qr_code(self.bin)
        services.validate_qr_code(record.short_code)
        self.assertIsNotNone(qr_cache.get_cached_qr_payload(record.short_code))
        with self.assertNumQueries(0):
            services.validate_qr_code(record.short_code)

    def test_bin_update_drops_cache(self):
        """Test saving the bin invalidates cached payloads"""
        record = TestDataFactory.create_qr_code(self.bin)
        services.validate_qr_code(record.short_code)
        self.bin.location = 'Basement'
        self.bin.save()
        self.assertIsNone(qr_cache.get_cached_qr_payload(record.short_code))

    @override_settings(QR_EXPIRATION_DAYS=0)
    def test_no_expiry(self):
        """Test an expiration of 0 days means codes never expire"""
        record = TestDataFactory.create_qr_code(self.bin)
        self.assertIsNone(record.expires_at)
        self.assertFalse(record.is_expired)

    def test_active_code_is_reused(self):
        """Test the newest unexpired code is reused"""
        first = services.get_active_qr_code(self.bin)
        self.assertEqual(services.get_active_qr_code(self.bin), first)
        QRCode.objects.filter(pk=first.pk).update(expires_at=timezone.now() - timedelta(seconds=1))
        self.assertNotEqual(services.get_active_qr_code(self.bin), first)

    def test_extract_short_code(self):
        """Test short codes are taken from bare values and URLs"""
        self.assertEqual(services.extract_short_code('abc123'), 'abc123')
        self.assertEqual(services.extract_short_code('https://bins.example.com/b/abc123'), 'abc123')
        self.assertEqual(services.extract_short_code('/b/abc123/'), 'abc123')
        self.assertEqual(services.extract_short_code('  '), '')

    def test_purge_expired(self):
        """Test purging only removes expired codes"""
        keep = TestDataFactory.create_qr_code(self.bin)
        expired = TestDataFactory.create_qr_code(self.bin)
        QRCode.objects.filter(pk=expired.pk).update(expires_at=timezone.now() - timedelta(days=1))
        self.assertEqual(services.purge_expired_qr_codes(dry_run=True), 1)
        self.assertEqual(QRCode.objects.count(), 2)
        self.assertEqual(services.purge_expired_qr_codes(), 1)
        self.assertEqual(list(QRCode.objects.all()), [keep])


class LabelGeneratorTests(TestCase):
    """Test printable label rendering"""

    def test_label_is_png_data_url(self):
        """Test labels render with and without a barcode"""
        with_barcode = generate_bin_label('A-01', 'http://localhost:3000/b/abc', location='Garage')
        without_barcode = generate_bin_label('A-01', 'http://localhost:3000/b/abc', include_barcode=False)
        self.assertTrue(with_barcode.startswith('data:image/png;base64,'))
        self.assertNotEqual(with_barcode, without_barcode)


class QRAPITests(TestCase):
    """Test QR API endpoints and the public short link"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.user, label='A-01', location='Garage')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_generate(self):
        """Test generating a QR code via API"""
        response = self.client.post('/api/v1/qr/', {'binId': str(self.bin.id), 'format': 'png'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('/b/', response.data['data']['url'])
        self.assertEqual(response.data['data']['qrData']['binId'], str(self.bin.id))

    def test_generate_foreign_bin(self):
        """Test QR codes cannot be generated for other users' bins"""
        bin_obj = TestDataFactory.create_bin(TestDataFactory.create_user())
        response = self.client.post('/api/v1/qr/', {'binId': str(bin_obj.id)}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_validate_with_url(self):
        """Test validating a full short link"""
        record = TestDataFactory.create_qr_code(self.bin)
        response = self.client.get('/api/v1/qr/validate/', {'code': services.short_link(record.short_code)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['shortCode'], record.short_code)

    def test_validate_blank(self):
        """Test an empty short code is rejected"""
        response = self.client.get('/api/v1/qr/validate/', {'code': 'https://bins.example.com/'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_QR_CODE')

    def test_image(self):
        """Test the SVG image endpoint"""
        response = self.client.get(f'/api/v1/qr/image/{self.bin.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'image/svg+xml')
        self.assertEqual(response['Cache-Control'], 'public, max-age=86400')

    def test_label(self):
        """Test the label endpoint reuses the active code"""
        record = TestDataFactory.create_qr_code(self.bin)
        response = self.client.get(f'/api/v1/qr/label/{self.bin.id}/', {'barcode': 'false'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['shortCode'], record.short_code)

    @override_settings(BINVENTORY_BASE_URL='https://bins.example.com')
    def test_short_link_redirects_to_bin(self):
        """Test scanning a code redirects to the bin page without auth"""
        record = TestDataFactory.create_qr_code(self.bin)
        self.client.logout()
        response = self.client.get(f'/b/{record.short_code}')
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response['Location'], f'https://bins.example.com/bins/{self.bin.id}')

    @override_settings(BINVENTORY_BASE_URL='https://bins.example.com')
    def test_short_link_unknown(self):
        """Test unknown codes redirect to the error page"""
        response = self.client.get('/b/unknown')
        self.assertEqual(response.status_code, 302)
        self.assertEqual(response['Location'], 'https://bins.example.com/error?message=QR%20code%20not%20found')


class PurgeExpiredQRCodesCommandTests(TestCase):
    """Test the purge_expired_qr_codes management command"""

    def test_dry_run(self):
        """Test --dry-run reports without deleting"""
        bin_obj = TestDataFactory.create_bin(TestDataFactory.create_user())
        record = TestDataFactory.create_qr_code(bin_obj)
        QRCode.objects.filter(pk=record.pk).update(expires_at=timezone.now() - timedelta(days=1))
        out = StringIO()
        call_command('purge_expired_qr_codes', '--dry-run', stdout=out)
        self.assertIn('1', out.getvalue())
        self.assertTrue(QRCode.objects.filter(pk=record.pk).exists())
