"""
Test suite for Organizations module
Tests: organization CRUD, membership roles and owner protection
"""
from django.test import TestCase
from rest_framework import status

from binventory.core.errors import AppError
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.organizations import services
from binventory.organizations.models import Organization, OrganizationMember


class OrganizationServiceTests(TestCase):
    """Test organization service rules"""

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.member_user = TestDataFactory.create_user()
        self.organization = services.create_organization(self.owner, 'Home Workshop')

    def test_create_makes_owner(self):
        """Test the creator becomes the owner"""
        self.assertEqual(self.organization.slug, 'home-workshop')
        self.assertTrue(services.has_role(self.organization.id, self.owner, OrganizationMember.ROLE_OWNER))

    def test_duplicate_slug(self):
        """Test slugs are unique"""
        with self.assertRaises(AppError) as ctx:
            services.create_organization(self.member_user, 'Home Workshop')
        self.assertEqual(ctx.exception.code, 'SLUG_ALREADY_EXISTS')

    def test_non_member_cannot_read(self):
        """Test outsiders get a 403"""
        with self.assertRaises(AppError) as ctx:
            services.get_organization(self.member_user, self.organization.id)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_member_cannot_add_members(self):
        """Test plain members cannot administer"""
        services.add_member(self.owner, self.organization.id, user_id=self.member_user.pk)
        outsider = TestDataFactory.create_user()
        with self.assertRaises(AppError) as ctx:
            services.add_member(self.member_user, self.organization.id, user_id=outsider.pk)
        self.assertEqual(ctx.exception.status_code, 403)

    def test_add_existing_member(self):
        """Test adding a member twice is a conflict"""
        services.add_member(self.owner, self.organization.id, email=self.member_user.email)
        with self.assertRaises(AppError) as ctx:
            services.add_member(self.owner, self.organization.id, user_id=self.member_user.pk)
        self.assertEqual(ctx.exception.code, 'MEMBER_ALREADY_EXISTS')

    def test_last_owner_cannot_be_demoted(self):
        """Test the last owner keeps the owner role"""
        membership = services.get_membership(self.organization.id, self.owner)
        with self.assertRaises(AppError) as ctx:
            services.update_member_role(self.owner, self.organization.id, membership.id, OrganizationMember.ROLE_ADMIN)
        self.assertEqual(ctx.exception.code, 'LAST_OWNER')

    def test_last_owner_cannot_leave(self):
        """Test the last owner cannot remove themselves"""
        membership = services.get_membership(self.organization.id, self.owner)
        with self.assertRaises(AppError) as ctx:
            services.remove_member(self.owner, self.organization.id, membership.id)
        self.assertEqual(ctx.exception.code, 'LAST_OWNER')

    def test_admin_cannot_promote_owner(self):
        """Test only owners grant the owner role"""
        admin_member = services.add_member(
            self.owner, self.organization.id, user_id=self.member_user.pk, role=OrganizationMember.ROLE_ADMIN
        )
        other = services.add_member(self.owner, self.organization.id, user_id=TestDataFactory.create_user().pk)
        with self.assertRaises(AppError):
            services.update_member_role(self.member_user, self.organization.id, other.id, OrganizationMember.ROLE_OWNER)
        self.assertEqual(admin_member.role, OrganizationMember.ROLE_ADMIN)

    def test_member_can_leave(self):
        """Test a member may remove their own membership"""
        member = services.add_member(self.owner, self.organization.id, user_id=self.member_user.pk)
        services.remove_member(self.member_user, self.organization.id, member.id)
        self.assertFalse(services.is_member(self.organization.id, self.member_user))


class OrganizationAPITests(TestCase):
    """Test Organization API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_organization(self):
        """Test creating an organization via API"""
        response = self.client.post('/api/v1/organizations/', {'name': 'Garage Team'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['role'], 'OWNER')
        self.assertEqual(response.data['data']['member_count'], 1)

    def test_list_organizations(self):
        """Test only the caller's organizations are listed"""
        TestDataFactory.create_organization(self.user, name='Mine')
        TestDataFactory.create_organization(TestDataFactory.create_user(), name='Theirs')
        response = self.client.get('/api/v1/organizations/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([o['name'] for o in response.data['data']], ['Mine'])

    def test_delete_requires_owner(self):
        """Test an admin member cannot delete the organization"""
        owner = TestDataFactory.create_user()
        organization = TestDataFactory.create_organization(owner)
        OrganizationMember.objects.create(
            organization=organization, user=self.user, role=OrganizationMember.ROLE_ADMIN
        )
        response = self.client.delete(f'/api/v1/organizations/{organization.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Organization.objects.filter(pk=organization.id).exists())

    def test_add_and_list_members(self):
        """Test adding a member by email"""
        organization = TestDataFactory.create_organization(self.user)
        other = TestDataFactory.create_user()
        response = self.client.post(
            f'/api/v1/organizations/{organization.id}/members/',
            {'email': other.email, 'role': 'MEMBER'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

        response = self.client.get(f'/api/v1/organizations/{organization.id}/members/')
        self.assertEqual(len(response.data['data']), 2)

    def test_add_member_requires_identifier(self):
        """Test adding a member without user_id or email fails validation"""
        organization = TestDataFactory.create_organization(self.user)
        response = self.client.post(f'/api/v1/organizations/{organization.id}/members/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_missing_organization(self):
        """Test unknown organizations are 404"""
        response = self.client.get('/api/v1/organizations/00000000-0000-0000-0000-000000000000/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'ORGANIZATION_NOT_FOUND')
