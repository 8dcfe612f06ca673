"""
Test suite for Search module
Tests: filter building, multi-index merging, engine error mapping, typeahead caching and database fallback
"""
import json
from unittest.mock import MagicMock, Mock, patch

from django.core.cache import cache
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase, override_settings
from meilisearch.errors import MeilisearchApiError, MeilisearchCommunicationError
from rest_framework import status

from binventory.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from binventory.search import services
from binventory.search.config import BINS_INDEX, ITEMS_INDEX


def api_error(status_code=404, code='index_not_found'):
    response = Mock(status_code=status_code, text=json.dumps({
        'message': 'Index not found',
        'code': code,
        'type': 'invalid_request',
        'link': '',
    }))
    return MeilisearchApiError('Index not found', response)


def engine_client(results):
    """Mock client whose indices answer search() with results[uid]"""
    client = MagicMock()
    indices = {uid: MagicMock() for uid in (ITEMS_INDEX, BINS_INDEX)}
    for uid, index in indices.items():
        index.search.return_value = results.get(uid, {'hits': [], 'estimatedTotalHits': 0, 'processingTimeMs': 0})
    client.index.side_effect = lambda uid: indices[uid]
    return client, indices


class SearchServiceTests(TestCase):
    """Test the search engine wrapper"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()

    def test_build_filter(self):
        """Test filter expressions quote values and OR lists"""
        expression = services.build_filter({'location': 'Garage "A"', 'unit': ['pcs', 'box']})
        self.assertEqual(expression, 'location = "Garage \\"A\\"" AND (unit = "pcs" OR unit = "box")')
        self.assertIsNone(services.build_filter({}))

    def test_disabled_engine(self):
        """Test searching with the engine disabled"""
        with self.assertRaises(services.SearchUnavailable):
            services.search('hammer')

    def test_empty_query(self):
        """Test an empty query returns nothing without calling the engine"""
        result = services.search('')
        self.assertEqual(result['hits'], [])
        self.assertEqual(result['totalHits'], 0)

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.get_client')
    def test_search_merges_indices(self, mock_get_client):
        """Test hits from both indices are merged and tagged"""
        client, indices = engine_client({
            ITEMS_INDEX: {'hits': [{'id': 'i1'}], 'estimatedTotalHits': 1, 'processingTimeMs': 2},
            BINS_INDEX: {'hits': [{'id': 'b1'}, {'id': 'b2'}], 'estimatedTotalHits': 2, 'processingTimeMs': 3},
        })
        mock_get_client.return_value = client

        result = services.search('box', filters={'user_id': self.user.pk}, limit=5)
        self.assertEqual([h['type'] for h in result['hits']], ['item', 'bin', 'bin'])
        self.assertEqual(result['totalHits'], 3)
        self.assertEqual(result['processingTimeMs'], 5)
        indices[ITEMS_INDEX].search.assert_called_once_with(
            'box', {'limit': 5, 'offset': 0, 'filter': f'user_id = "{self.user.pk}"'}
        )

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.get_client')
    def test_unreachable_engine(self, mock_get_client):
        """Test communication errors become SearchUnavailable"""
        client, indices = engine_client({})
        indices[ITEMS_INDEX].search.side_effect = MeilisearchCommunicationError('connection refused')
        mock_get_client.return_value = client
        with self.assertRaises(services.SearchUnavailable):
            services.search('box', indexes=[ITEMS_INDEX])

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.get_client')
    def test_initialize_creates_missing_index(self, mock_get_client):
        """Test missing indices are created before settings are pushed"""
        client = MagicMock()
        client.get_index.side_effect = api_error()
        mock_get_client.return_value = client

        services.initialize_indices()
        self.assertEqual(client.create_index.call_count, 2)
        client.create_index.assert_any_call(ITEMS_INDEX, {'primaryKey': 'id'})
        settings_pushed = client.index.return_value.update_settings.call_args_list[0][0][0]
        self.assertNotIn('primaryKey', settings_pushed)

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.get_client')
    def test_index_all_bins_batches(self, mock_get_client):
        """Test bulk indexing sends documents in batches"""
        client = MagicMock()
        mock_get_client.return_value = client
        for _ in range(3):
            TestDataFactory.create_bin(self.user)
        self.assertEqual(services.index_all_bins(batch_size=2), 3)
        self.assertEqual(client.index.return_value.add_documents.call_count, 2)

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.get_client')
    def test_safe_index_swallows_engine_errors(self, mock_get_client):
        """Test write-path indexing never raises"""
        client = MagicMock()
        client.index.return_value.add_documents.side_effect = MeilisearchCommunicationError('down')
        mock_get_client.return_value = client
        bin_obj = TestDataFactory.create_bin(self.user)
        self.assertFalse(services.safe_index_bin(bin_obj))

    def test_safe_index_disabled(self):
        """Test write-path indexing is skipped when disabled"""
        self.assertFalse(services.safe_index_bin(TestDataFactory.create_bin(self.user)))

    def test_typeahead_short_query(self):
        """Test queries below the minimum length return nothing"""
        self.assertEqual(services.typeahead('a', self.user), [])

    @override_settings(MEILISEARCH_ENABLED=True)
    @patch('binventory.search.services.search')
    def test_typeahead_is_cached(self, mock_search):
        """Test repeated typeahead queries hit the cache"""
        mock_search.return_value = {'hits': [{'id': 'b1', 'type': 'bin'}], 'totalHits': 1}
        first = services.typeahead('gar', self.user)
        second = services.typeahead('gar', self.user)
        self.assertEqual(first, second)
        mock_search.assert_called_once()

    def test_database_search_is_scoped(self):
        """Test the database fallback only returns the user's documents"""
        TestDataFactory.create_bin(self.user, label='SHED-1', location='Shed')
        TestDataFactory.create_bin(TestDataFactory.create_user(), label='SHED-2', location='Shed')
        TestDataFactory.create_item(self.user, name='Shed key')
        result = services.database_search(self.user, 'shed')
        self.assertEqual(result['totalHits'], 2)
        self.assertEqual(sorted(h['type'] for h in result['hits']), ['bin', 'item'])


class SearchAPITests(TestCase):
    """Test Search API endpoints"""

    def setUp(self):
        cache.clear()
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_search_falls_back_to_database(self):
        """Test search answers from the database when the engine is off"""
        TestDataFactory.create_bin(self.user, label='ATTIC-1', location='Attic')
        response = self.client.get('/api/v1/search/', {'q': 'attic', 'type': 'bin'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['meta']['source'], 'database')
        self.assertEqual(response.data['data']['hits'][0]['label'], 'ATTIC-1')

    @patch('binventory.search.views.services.search')
    def test_search_engine_scoped_to_user(self, mock_search):
        """Test engine searches are filtered by the caller"""
        mock_search.return_value = {'hits': [], 'totalHits': 0, 'processingTimeMs': 1, 'query': 'x'}
        response = self.client.get('/api/v1/search/', {'q': 'x'})
        self.assertEqual(response.data['meta']['source'], 'engine')
        self.assertEqual(mock_search.call_args.kwargs['filters'], {'user_id': self.user.pk})

    def test_search_requires_query(self):
        """Test q is mandatory"""
        response = self.client.get('/api/v1/search/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_typeahead_fallback(self):
        """Test typeahead uses the database when the engine is off"""
        TestDataFactory.create_item(self.user, name='Garden hose')
        response = self.client.get('/api/v1/search/typeahead/', {'q': 'gard'})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data'][0]['name'], 'Garden hose')

    def test_init_requires_staff(self):
        """Test only staff can initialize indices"""
        response = self.client.post('/api/v1/search/init/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_init_unavailable(self):
        """Test initializing with the engine off is a 503"""
        self.client.authenticate_user(TestDataFactory.create_admin())
        response = self.client.post('/api/v1/search/init/', {'reindex': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['error']['code'], 'SEARCH_UNAVAILABLE')


class InitSearchIndicesCommandTests(TestCase):
    """Test the init_search_indices management command"""

    def test_engine_disabled(self):
        """Test the command fails cleanly without an engine"""
        with self.assertRaises(CommandError):
            call_command('init_search_indices')

    @patch('binventory.search.services.index_all_items', return_value=4)
    @patch('binventory.search.services.index_all_bins', return_value=2)
    @patch('binventory.search.services.initialize_indices')
    def test_reindex(self, mock_init, mock_bins, mock_items):
        """Test --reindex pushes bins and items"""
        call_command('init_search_indices', '--reindex')
        mock_init.assert_called_once()
        mock_bins.assert_called_once()
        mock_items.assert_called_once()
