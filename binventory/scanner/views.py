import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from binventory.core.utils import success_response, validation_error_response

from . import services
from .serializers import ScanSerializer, SyncSerializer

logger = logging.getLogger('binventory.scanner')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def scan(request):
    """Resolve a scanned QR value ({"data": url-or-code}) to a bin id"""
    serializer = ScanSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    return success_response(services.process_scan(serializer.validated_data['data']))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def sync(request):
    """Replay a scanner's offline queue; always 200 with one result per operation"""
    serializer = SyncSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    operations = serializer.validated_data['operations']
    results = services.apply_queued_operations(request.user, operations, request=request)
    applied = sum(1 for result in results if result['success'])
    return success_response({'results': results, 'applied': applied, 'failed': len(results) - applied})
