"""
Test suite for Catalog module
Tests: category tree maintenance, item CRUD, filters and low-stock detection
"""
from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework import status

from binventory.bins.models import BinItem
from binventory.catalog import categories, items
from binventory.catalog.models import Category, Item
from binventory.core.errors import AppError
from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient


class ItemModelTests(TestCase):
    """Test Item model properties"""

    def setUp(self):
        self.user = TestDataFactory.create_user()

    def test_is_low_stock(self):
        """Test low stock is quantity at or below the minimum"""
        self.assertTrue(TestDataFactory.create_item(self.user, quantity=2, min_quantity=2).is_low_stock)
        self.assertFalse(TestDataFactory.create_item(self.user, quantity=3, min_quantity=2).is_low_stock)

    def test_no_minimum_is_never_low(self):
        """Test items without a minimum are never low stock"""
        self.assertFalse(TestDataFactory.create_item(self.user, quantity=0).is_low_stock)


class CategoryServiceTests(TestCase):
    """Test category tree operations"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.root = categories.create_category(self.user, 'Tools')
        self.child = categories.create_category(self.user, 'Hand Tools', parent_id=self.root.id)
        self.grandchild = categories.create_category(self.user, 'Screwdrivers', parent_id=self.child.id)

    def test_path_lists_ancestors(self):
        """Test paths are root first"""
        self.assertEqual(self.root.path, [])
        self.assertEqual(self.grandchild.path, [str(self.root.id), str(self.child.id)])

    def test_move_rebuilds_subtree(self):
        """Test moving a category rewrites descendant paths"""
        other = categories.create_category(self.user, 'Garden')
        categories.update_category(self.user, self.child.id, parent_id=other.id)
        self.grandchild.refresh_from_db()
        self.assertEqual(self.grandchild.path, [str(other.id), str(self.child.id)])

    def test_move_to_root(self):
        """Test an empty parent makes the category a root"""
        categories.update_category(self.user, self.child.id, parent_id=None)
        self.child.refresh_from_db()
        self.grandchild.refresh_from_db()
        self.assertIsNone(self.child.parent)
        self.assertEqual(self.grandchild.path, [str(self.child.id)])

    def test_move_under_descendant(self):
        """Test cycles are rejected"""
        with self.assertRaises(AppError) as ctx:
            categories.update_category(self.user, self.root.id, parent_id=self.grandchild.id)
        self.assertEqual(ctx.exception.code, 'CIRCULAR_REFERENCE')

    def test_move_under_itself(self):
        """Test a category cannot be its own parent"""
        with self.assertRaises(AppError) as ctx:
            categories.update_category(self.user, self.root.id, parent_id=self.root.id)
        self.assertEqual(ctx.exception.code, 'CIRCULAR_REFERENCE')

    def test_rename_keeps_parent(self):
        """Test renaming without parent_id leaves the tree alone"""
        categories.update_category(self.user, self.child.id, name='Manual Tools')
        self.child.refresh_from_db()
        self.assertEqual(self.child.parent, self.root)

    def test_delete_with_children(self):
        """Test categories with subcategories cannot be deleted"""
        with self.assertRaises(AppError) as ctx:
            categories.delete_category(self.user, self.root.id)
        self.assertEqual(ctx.exception.code, 'CATEGORY_HAS_CHILDREN')

    def test_delete_with_items(self):
        """Test categories with items cannot be deleted"""
        TestDataFactory.create_item(self.user, category=self.grandchild)
        with self.assertRaises(AppError) as ctx:
            categories.delete_category(self.user, self.grandchild.id)
        self.assertEqual(ctx.exception.code, 'CATEGORY_HAS_ITEMS')

    def test_unknown_parent(self):
        """Test creating under a missing parent"""
        with self.assertRaises(AppError) as ctx:
            categories.create_category(self.user, 'Orphan', parent_id='00000000-0000-0000-0000-000000000000')
        self.assertEqual(ctx.exception.code, 'PARENT_CATEGORY_NOT_FOUND')

    def test_other_users_parent(self):
        """Test a parent owned by someone else is not found"""
        other = TestDataFactory.create_user()
        with self.assertRaises(AppError):
            categories.create_category(other, 'Borrowed', parent_id=self.root.id)


class ItemServiceTests(TestCase):
    """Test item service functions"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.category = TestDataFactory.create_category(self.user, name='Hardware')

    def test_zero_minimum_means_none(self):
        """Test a minimum quantity of 0 is stored as no threshold"""
        item = items.create_item(self.user, 'Nails', self.category.id, 'box', min_quantity=0)
        self.assertIsNone(item.min_quantity)

    def test_create_in_foreign_category(self):
        """Test items cannot be filed under another user's category"""
        other = TestDataFactory.create_user()
        with self.assertRaises(AppError) as ctx:
            items.create_item(other, 'Nails', self.category.id, 'box')
        self.assertEqual(ctx.exception.code, 'CATEGORY_NOT_FOUND')
        self.assertEqual(ctx.exception.status_code, 400)

    def test_update_changes_category(self):
        """Test moving an item to another category"""
        item = TestDataFactory.create_item(self.user, category=self.category)
        other = TestDataFactory.create_category(self.user, name='Electrical')
        items.update_item(self.user, item.id, category_id=other.id, quantity=4)
        item.refresh_from_db()
        self.assertEqual(item.category, other)
        self.assertEqual(item.quantity, 4)

    def test_delete_item_in_bin(self):
        """Test items stored in a bin cannot be deleted"""
        item = TestDataFactory.create_item(self.user, category=self.category)
        bin_obj = TestDataFactory.create_bin(self.user)
        BinItem.objects.create(bin=bin_obj, item=item, quantity=1)
        with self.assertRaises(AppError) as ctx:
            items.delete_item(self.user, item.id)
        self.assertEqual(ctx.exception.code, 'ITEM_IN_USE')

    def test_list_filters(self):
        """Test search, category and low stock filters"""
        TestDataFactory.create_item(self.user, category=self.category, name='Wood screws', quantity=1, min_quantity=5)
        TestDataFactory.create_item(self.user, category=self.category, name='Hammer', quantity=3)
        other_category = TestDataFactory.create_category(self.user)
        TestDataFactory.create_item(self.user, category=other_category, name='Machine screws')

        rows, pagination = items.list_items(self.user, search='screw')
        self.assertEqual(pagination['total'], 2)
        rows, _ = items.list_items(self.user, search='screw', category_id=self.category.id)
        self.assertEqual([r.name for r in rows], ['Wood screws'])
        rows, _ = items.list_items(self.user, low_stock=True)
        self.assertEqual([r.name for r in rows], ['Wood screws'])

    def test_list_invalid_category_filter(self):
        """Test a malformed category id is a validation error"""
        with self.assertRaises(AppError) as ctx:
            items.list_items(self.user, category_id='not-a-uuid')
        self.assertEqual(ctx.exception.code, 'VALIDATION_ERROR')

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.index_item')
    def test_create_indexes_item(self, mock_index):
        """Test new items are pushed to the search index"""
        item = items.create_item(self.user, 'Drill', self.category.id, 'pcs')
        mock_index.assert_called_once_with(item)


class CatalogAPITests(TestCase):
    """Test Category and Item API endpoints"""

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)
        self.category = TestDataFactory.create_category(self.user, name='Kitchen')

    def test_create_category(self):
        """Test creating a subcategory via API"""
        response = self.client.post('/api/v1/categories/', {
            'name': 'Utensils',
            'parent_id': str(self.category.id),
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['path'], [str(self.category.id)])

    def test_list_categories_with_counts(self):
        """Test category listing includes item counts"""
        TestDataFactory.create_item(self.user, category=self.category)
        response = self.client.get('/api/v1/categories/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['item_count'], 1)

    def test_create_item(self):
        """Test creating an item via API"""
        response = self.client.post('/api/v1/items/', {
            'name': 'Whisk',
            'category_id': str(self.category.id),
            'quantity': 2,
            'min_quantity': 1,
            'unit': 'pcs',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['data']['category']['name'], 'Kitchen')
        self.assertTrue(Item.objects.filter(name='Whisk', user=self.user).exists())

    def test_create_item_negative_quantity(self):
        """Test negative quantities are rejected"""
        response = self.client.post('/api/v1/items/', {
            'name': 'Whisk',
            'category_id': str(self.category.id),
            'quantity': -1,
            'unit': 'pcs',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantity', response.data['error']['details'])

    def test_list_items_paginated(self):
        """Test item listing pagination metadata"""
        for _ in range(3):
            TestDataFactory.create_item(self.user, category=self.category)
        response = self.client.get('/api/v1/items/', {'page': 2, 'limit': 2})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['data']), 1)
        self.assertEqual(response.data['meta']['pagination']['total'], 3)
        self.assertEqual(response.data['meta']['pagination']['totalPages'], 2)

    def test_low_stock_endpoint(self):
        """Test the low stock listing"""
        TestDataFactory.create_item(self.user, category=self.category, name='Flour', quantity=0, min_quantity=1)
        TestDataFactory.create_item(self.user, category=self.category, name='Sugar', quantity=9, min_quantity=1)
        response = self.client.get('/api/v1/items/low-stock/')
        self.assertEqual([i['name'] for i in response.data['data']], ['Flour'])

    def test_other_users_item(self):
        """Test items of other users are not visible"""
        item = TestDataFactory.create_item(TestDataFactory.create_user())
        response = self.client.get(f'/api/v1/items/{item.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error']['code'], 'ITEM_NOT_FOUND')

    def test_patch_item(self):
        """Test partially updating an item"""
        item = TestDataFactory.create_item(self.user, category=self.category, quantity=5)
        response = self.client.patch(f'/api/v1/items/{item.id}/', {'quantity': 7}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['quantity'], 7)

    def test_delete_category(self):
        """Test deleting an empty category"""
        response = self.client.delete(f'/api/v1/categories/{self.category.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(Category.objects.filter(pk=self.category.id).exists())
