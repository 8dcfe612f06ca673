"""Index layout for the search engine and typeahead behaviour"""

ITEMS_INDEX = 'items'
BINS_INDEX = 'bins'

SEARCH_INDICES = {
    ITEMS_INDEX: {
        'primaryKey': 'id',
        'searchableAttributes': ['name', 'description', 'category.name'],
        # user_id scopes every query to the caller's documents
        'filterableAttributes': ['category_id', 'quantity', 'unit', 'user_id'],
        'sortableAttributes': ['name', 'created_at', 'quantity'],
        'rankingRules': ['typo', 'words', 'proximity', 'attribute', 'exactness'],
    },
    BINS_INDEX: {
        'primaryKey': 'id',
        'searchableAttributes': ['label', 'location', 'description'],
        'filterableAttributes': ['location', 'user_id'],
    },
}

TYPEAHEAD_CONFIG = {
    'min_chars': 2,
    'max_results': 10,
    'indexes': [ITEMS_INDEX, BINS_INDEX],
}

DOCUMENT_TYPES = {
    ITEMS_INDEX: 'item',
    BINS_INDEX: 'bin',
}
