import logging

from rest_framework import status
from rest_framework.decorators import api_view, parser_classes, permission_classes
from rest_framework.parsers import FormParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated

from binventory.core.utils import parse_int, success_response, validation_error_response

from . import services
from .serializers import (
    BinSerializer, BinWriteSerializer, BinItemSerializer, AddBinItemSerializer,
    UpdateBinItemSerializer, RemoveBinItemSerializer, BinSearchSerializer,
)

logger = logging.getLogger('binventory.bins')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def bin_list_create(request):
    """
    List bins (page, limit, location, search) or create a bin.
    meta.source tells whether a search was answered by the engine or the database.
    """
    if request.method == 'GET':
        params = request.query_params
        bins, pagination, source = services.list_bins(
            request.user,
            page=parse_int(params.get('page'), 1),
            limit=parse_int(params.get('limit'), 10, maximum=100),
            location=params.get('location') or None,
            search_term=params.get('search') or None,
        )
        meta = {'pagination': pagination, 'source': source}
        return success_response(BinSerializer(bins, many=True).data, meta=meta)

    serializer = BinWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    bin_obj = services.create_bin(request.user, request=request, **serializer.validated_data)
    return success_response(BinSerializer(bin_obj).data, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def bin_search(request):
    """Search bins in the search engine only"""
    serializer = BinSearchSerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    data = serializer.validated_data
    filters = {'location': data['location']} if data.get('location') else None
    result = services.search_bins(request.user, data['q'], filters, limit=data['limit'], offset=data['offset'])
    return success_response(result)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def bin_detail(request, pk):
    """Retrieve (with contents), update or delete a bin"""
    if request.method == 'GET':
        bin_obj = services.get_bin(request.user, pk)
        data = BinSerializer(bin_obj).data
        data['items'] = BinItemSerializer(services.list_bin_items(request.user, pk), many=True).data
        return success_response(data)

    if request.method == 'DELETE':
        services.delete_bin(request.user, pk, request=request)
        return success_response({'deleted': str(pk)})

    serializer = BinWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    bin_obj = services.update_bin(request.user, pk, request=request, **serializer.validated_data)
    return success_response(BinSerializer(bin_obj).data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def bin_item_list_add(request, pk):
    """List a bin's contents or add an item to it"""
    if request.method == 'GET':
        entries = services.list_bin_items(request.user, pk)
        return success_response(BinItemSerializer(entries, many=True).data)

    serializer = AddBinItemSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    entry = services.add_item_to_bin(request.user, pk, request=request, **serializer.validated_data)
    return success_response(BinItemSerializer(entry).data, status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def bin_item_detail(request, pk, item_id):
    """
    Change quantity/notes of an item in a bin, or take it out.
    DELETE accepts an optional ?quantity= to remove only part of it.
    """
    if request.method == 'DELETE':
        serializer = RemoveBinItemSerializer(data=request.query_params)
        if not serializer.is_valid():
            return validation_error_response(serializer.errors)
        remaining = services.remove_item_from_bin(
            request.user, pk, item_id, quantity=serializer.validated_data.get('quantity'), request=request
        )
        data = BinItemSerializer(remaining).data if remaining else None
        return success_response(data)

    serializer = UpdateBinItemSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    entry = services.update_bin_item(request.user, pk, item_id, request=request, **serializer.validated_data)
    return success_response(BinItemSerializer(entry).data)


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated])
@parser_classes([MultiPartParser, FormParser])
def bin_image(request, pk):
    """Upload (multipart field `image`) or delete the bin's photo"""
    if request.method == 'DELETE':
        bin_obj = services.delete_bin_image(request.user, pk, request=request)
        return success_response(BinSerializer(bin_obj).data)

    upload = request.FILES.get('image') or request.FILES.get('file')
    bin_obj = services.upload_bin_image(request.user, pk, upload, request=request)
    return success_response(BinSerializer(bin_obj).data, status.HTTP_201_CREATED)
