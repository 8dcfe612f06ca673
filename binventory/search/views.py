import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAdminUser, IsAuthenticated

from binventory.core.errors import AppError, service_unavailable
from binventory.core.utils import success_response, validation_error_response

from . import services
from .serializers import SEARCH_TYPES, InitIndicesSerializer, SearchQuerySerializer, TypeaheadQuerySerializer

logger = logging.getLogger('binventory.search')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def search(request):
    """
    Search the caller's bins and items.

    Query params: q, type (all|item|bin), limit, offset. The engine answers
    first; when it is unavailable or fails the database is searched instead
    and meta.source is 'database'.
    """
    serializer = SearchQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    params = serializer.validated_data
    indexes = SEARCH_TYPES[params['type']]

    try:
        result = services.search(
            params['q'],
            filters={'user_id': request.user.pk},
            limit=params['limit'],
            offset=params['offset'],
            indexes=indexes,
        )
        source = 'engine'
    except (services.SearchUnavailable, services.SearchFailed) as e:
        logger.warning(f"Search fell back to database: {str(e)}")
        result = services.database_search(request.user, params['q'], limit=params['limit'], indexes=indexes)
        source = 'database'

    return success_response(result, meta={'source': source})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def typeahead(request):
    """Autocomplete suggestions; queries shorter than two characters return nothing"""
    serializer = TypeaheadQuerySerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    try:
        hits = services.typeahead(serializer.validated_data['q'], request.user)
    except (services.SearchUnavailable, services.SearchFailed) as e:
        logger.warning(f"Typeahead fell back to database: {str(e)}")
        query = serializer.validated_data['q'].strip()
        hits = services.database_search(request.user, query, limit=services.TYPEAHEAD_CONFIG['max_results'])['hits']
        hits = hits[:services.TYPEAHEAD_CONFIG['max_results']]
    return success_response(hits)


@api_view(['POST'])
@permission_classes([IsAdminUser])
def init_indices(request):
    """Create/configure the indices; {"reindex": true} also pushes every document"""
    serializer = InitIndicesSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    try:
        services.initialize_indices()
        counts = {}
        if serializer.validated_data['reindex']:
            counts['bins'] = services.index_all_bins()
            counts['items'] = services.index_all_items()
    except services.SearchUnavailable:
        raise service_unavailable('SEARCH_UNAVAILABLE', 'Search service is not available')
    except services.SearchFailed as e:
        raise AppError('SEARCH_FAILED', f"Search initialization failed: {str(e)}", 500)
    return success_response({'initialized': True, 'indexed': counts})
