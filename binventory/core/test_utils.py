"""
Test utilities and factories for creating test data
"""
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient
from binventory.bins.models import Bin
from binventory.catalog.models import Category, Item
from binventory.core.sessions import open_session
from binventory.organizations.models import Organization, OrganizationMember
from binventory.qr.services import create_qr_record
import random
import string

User = get_user_model()


class TestDataFactory:
    """Factory class for creating test data"""

    @staticmethod
    def random_string(length=10):
        """Generate a random string"""
        return ''.join(random.choices(string.ascii_letters + string.digits, k=length))

    @staticmethod
    def create_user(email=None, password='testpass123', name=None, role=User.ROLE_USER, is_staff=False):
        """Create a test user"""
        if not email:
            email = f'user_{TestDataFactory.random_string(6).lower()}@test.com'
        return User.objects.create_user(
            username=email,
            email=email,
            password=password,
            name=name or 'Test User',
            role=role,
            is_staff=is_staff,
        )

    @staticmethod
    def create_admin(email=None, password='testpass123'):
        return TestDataFactory.create_user(email=email, password=password, role=User.ROLE_ADMIN, is_staff=True)

    @staticmethod
    def create_organization(owner, name=None):
        """Create a test organization owned by `owner`"""
        if not name:
            name = f'Org {TestDataFactory.random_string(6)}'
        organization = Organization.objects.create(
            name=name,
            slug=f'org-{TestDataFactory.random_string(8).lower()}',
        )
        OrganizationMember.objects.create(
            organization=organization,
            user=owner,
            role=OrganizationMember.ROLE_OWNER,
        )
        return organization

    @staticmethod
    def create_category(user, name=None, parent=None):
        """Create a test category"""
        if not name:
            name = f'Category_{TestDataFactory.random_string(6)}'
        path = (parent.path + [str(parent.id)]) if parent else []
        return Category.objects.create(name=name, parent=parent, path=path, user=user)

    @staticmethod
    def create_item(user, category=None, name=None, quantity=10, min_quantity=None, unit='pcs'):
        """Create a test item"""
        if not category:
            category = TestDataFactory.create_category(user)
        if not name:
            name = f'Item_{TestDataFactory.random_string(6)}'
        return Item.objects.create(
            name=name,
            category=category,
            quantity=quantity,
            min_quantity=min_quantity,
            unit=unit,
            user=user,
        )

    @staticmethod
    def create_bin(user, label=None, location='Garage', description=None):
        """Create a test bin"""
        if not label:
            label = f'BIN-{TestDataFactory.random_string(6).upper()}'
        return Bin.objects.create(
            label=label,
            location=location,
            description=description,
            qr_code=Bin.build_qr_value(label),
            user=user,
        )

    @staticmethod
    def create_qr_code(bin_obj):
        """Create a QR code record for a bin"""
        return create_qr_record(bin_obj)


class AuthenticatedAPIClient(APIClient):
    """APIClient with authentication helper"""

    def authenticate_user(self, user):
        """Authenticate the client with a fresh login session for `user`"""
        refresh, session = open_session(user)
        self.session_id = session.id
        self.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
        return self

    def logout(self):
        """Remove authentication"""
        self.credentials()
