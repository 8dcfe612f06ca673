import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from binventory.core.utils import parse_int, success_response, validation_error_response

from . import categories, items
from .serializers import CategorySerializer, CategoryWriteSerializer, ItemSerializer, ItemWriteSerializer

logger = logging.getLogger('binventory.catalog')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List the caller's categories or create one"""
    if request.method == 'GET':
        queryset = categories.list_categories(request.user)
        return success_response(CategorySerializer(queryset, many=True).data)

    serializer = CategoryWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    category = categories.create_category(request.user, request=request, **serializer.validated_data)
    return success_response(CategorySerializer(category).data, status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, rename/move or delete a category"""
    if request.method == 'GET':
        category = categories.get_category(request.user, pk)
        return success_response(CategorySerializer(category).data)

    if request.method == 'DELETE':
        categories.delete_category(request.user, pk, request=request)
        return success_response({'deleted': str(pk)})

    serializer = CategoryWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    category = categories.update_category(request.user, pk, request=request, **serializer.validated_data)
    return success_response(CategorySerializer(category).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def item_list_create(request):
    """
    List items with pagination and filters, or create an item.

    Query params: page, limit, category_id, search, low_stock
    """
    if request.method == 'GET':
        params = request.query_params
        rows, pagination = items.list_items(
            request.user,
            page=parse_int(params.get('page'), 1),
            limit=parse_int(params.get('limit'), 20, maximum=100),
            category_id=params.get('category_id') or params.get('categoryId'),
            search=params.get('search'),
            low_stock=params.get('low_stock', '').lower() in ('true', '1', 'yes'),
        )
        return success_response(ItemSerializer(rows, many=True).data, meta={'pagination': pagination})

    serializer = ItemWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    item = items.create_item(request.user, request=request, **serializer.validated_data)
    return success_response(ItemSerializer(item).data, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def item_low_stock(request):
    """Items at or below their minimum quantity"""
    queryset = items.low_stock_items(request.user)
    return success_response(ItemSerializer(queryset, many=True).data)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def item_detail(request, pk):
    """Retrieve, update or delete an item"""
    if request.method == 'GET':
        item = items.get_item(request.user, pk)
        return success_response(ItemSerializer(item).data)

    if request.method == 'DELETE':
        items.delete_item(request.user, pk, request=request)
        return success_response({'deleted': str(pk)})

    serializer = ItemWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    item = items.update_item(request.user, pk, request=request, **serializer.validated_data)
    return success_response(ItemSerializer(item).data)
