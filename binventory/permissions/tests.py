"""
Test suite for Permissions module
Tests: access resolution order, grants, revocation and the object permission endpoints
"""
from django.test import TestCase
from rest_framework import status

from binventory.core.errors import AppError
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.organizations.models import OrganizationMember
from binventory.permissions import services
from binventory.permissions.models import ObjectPermission

BIN = ObjectPermission.OBJECT_BIN
READ = ObjectPermission.ACTION_READ
WRITE = ObjectPermission.ACTION_WRITE
ADMIN = ObjectPermission.ACTION_ADMIN


class CanAccessTests(TestCase):
    """Test can_access resolution"""

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.owner)

    def test_owner_has_every_action(self):
        """Test the owner can read, write and administer"""
        for action in (READ, WRITE, ADMIN):
            self.assertTrue(services.can_access(self.owner, BIN, self.bin.id, action))

    def test_stranger_has_none(self):
        """Test other users have no access by default"""
        self.assertFalse(services.can_access(self.other, BIN, self.bin.id, READ))

    def test_platform_admin(self):
        """Test ADMIN role users can access everything"""
        admin = TestDataFactory.create_admin()
        self.assertTrue(services.can_access(admin, BIN, self.bin.id, ADMIN))

    def test_user_grant_is_per_action(self):
        """Test a read grant does not allow writes"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        self.assertTrue(services.can_access(self.other, BIN, self.bin.id, READ))
        self.assertFalse(services.can_access(self.other, BIN, self.bin.id, WRITE))

    def test_role_grant(self):
        """Test grants to a platform role apply to its users"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_ROLE, 'USER', READ)
        self.assertTrue(services.can_access(self.other, BIN, self.bin.id, READ))

    def test_organization_grant(self):
        """Test grants to an organization apply to its members"""
        organization = TestDataFactory.create_organization(self.owner)
        OrganizationMember.objects.create(organization=organization, user=self.other)
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_ORGANIZATION, organization.id, WRITE)
        self.assertTrue(services.can_access(self.other, BIN, self.bin.id, WRITE))

    def test_organization_owned_object(self):
        """Test members read organization objects and managers write them"""
        organization = TestDataFactory.create_organization(self.owner)
        self.bin.organization = organization
        self.bin.save()
        OrganizationMember.objects.create(organization=organization, user=self.other)
        self.assertTrue(services.can_access(self.other, BIN, self.bin.id, READ))
        self.assertFalse(services.can_access(self.other, BIN, self.bin.id, WRITE))

        OrganizationMember.objects.filter(user=self.other).update(role=OrganizationMember.ROLE_ADMIN)
        self.assertTrue(services.can_access(self.other, BIN, self.bin.id, WRITE))


class GrantTests(TestCase):
    """Test grant and revoke validation"""

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.owner)

    def test_grant_is_idempotent(self):
        """Test granting twice keeps one row and updates the grantor"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        permission = services.grant(
            BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ, granted_by=self.owner
        )
        self.assertEqual(ObjectPermission.objects.count(), 1)
        self.assertEqual(permission.granted_by, self.owner)

    def test_grant_unknown_object(self):
        """Test granting on a missing object"""
        with self.assertRaises(AppError) as ctx:
            services.grant(BIN, '00000000-0000-0000-0000-000000000000', ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        self.assertEqual(ctx.exception.code, 'OBJECT_NOT_FOUND')

    def test_grant_unknown_subject(self):
        """Test granting to a missing user"""
        with self.assertRaises(AppError) as ctx:
            services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, 999999, READ)
        self.assertEqual(ctx.exception.code, 'SUBJECT_NOT_FOUND')

    def test_grant_invalid_role(self):
        """Test granting to an unknown role"""
        with self.assertRaises(AppError) as ctx:
            services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_ROLE, 'SUPERUSER', READ)
        self.assertEqual(ctx.exception.code, 'INVALID_ROLE')

    def test_revoke_missing(self):
        """Test revoking a grant that does not exist"""
        with self.assertRaises(AppError) as ctx:
            services.revoke(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        self.assertEqual(ctx.exception.code, 'PERMISSION_NOT_FOUND')

    def test_replace_permissions(self):
        """Test replacing drops the previous grants"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        services.replace_permissions(BIN, self.bin.id, [
            {'subject_type': ObjectPermission.SUBJECT_ROLE, 'subject_id': 'USER', 'action': WRITE},
        ])
        self.assertEqual(
            list(ObjectPermission.objects.values_list('subject_type', 'action')),
            [(ObjectPermission.SUBJECT_ROLE, WRITE)],
        )


class PermissionAPITests(TestCase):
    """Test Permission API endpoints"""

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.other = TestDataFactory.create_user()
        self.bin = TestDataFactory.create_bin(self.owner)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def _grant_payload(self, action=READ):
        return {
            'object_type': BIN,
            'object_id': str(self.bin.id),
            'subject_type': ObjectPermission.SUBJECT_USER,
            'subject_id': str(self.other.pk),
            'action': action,
        }

    def test_grant_and_list(self):
        """Test the owner grants access via API"""
        response = self.client.post('/api/v1/permissions/', self._grant_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['granted_by'], self.owner.pk)

        response = self.client.get('/api/v1/permissions/', {'object_id': str(self.bin.id)})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)

    def test_grant_requires_admin_access(self):
        """Test users without admin access cannot grant"""
        self.client.authenticate_user(self.other)
        response = self.client.post('/api/v1/permissions/', self._grant_payload(ADMIN), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error']['code'], 'FORBIDDEN')

    def test_revoke_via_query(self):
        """Test revoking with query parameters"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        query = '&'.join(f'{key}={value}' for key, value in self._grant_payload().items())
        response = self.client.delete(f'/api/v1/permissions/?{query}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(ObjectPermission.objects.exists())

    def test_object_batch_grant(self):
        """Test granting several subjects on one object"""
        response = self.client.post(f'/api/v1/objects/bin/{self.bin.id}/permissions/', [
            {'subject_type': 'user', 'subject_id': str(self.other.pk), 'action': 'read'},
            {'subject_type': 'role', 'subject_id': 'USER', 'action': 'read'},
        ], format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 2)

    def test_object_clear(self):
        """Test clearing every grant on an object"""
        services.grant(BIN, self.bin.id, ObjectPermission.SUBJECT_USER, self.other.pk, READ)
        response = self.client.delete(f'/api/v1/objects/bin/{self.bin.id}/permissions/')
        self.assertEqual(response.data['data']['deleted'], 1)

    def test_object_invalid_type(self):
        """Test unknown object types are rejected"""
        response = self.client.get(f'/api/v1/objects/shelf/{self.bin.id}/permissions/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error']['code'], 'INVALID_OBJECT_TYPE')
