import logging
from urllib.parse import quote

from django.http import HttpResponse, HttpResponseRedirect
from django.views.decorators.http import require_GET
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from binventory.bins.services import get_bin
from binventory.core.errors import AppError, bad_request
from binventory.core.utils import success_response, validation_error_response

from . import services
from .label_generator import generate_bin_label
from .serializers import GenerateQRCodeSerializer, ValidateQRCodeSerializer, LabelOptionsSerializer

logger = logging.getLogger('binventory.qr')

IMAGE_CACHE_CONTROL = 'public, max-age=86400'


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def qr_generate(request):
    """Create a new short link for a bin; body {binId, format: svg|png}"""
    serializer = GenerateQRCodeSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    bin_obj = get_bin(request.user, serializer.validated_data['binId'])
    image, payload, url = services.generate_qr_code(bin_obj.id, serializer.validated_data['format'])
    return success_response({'qrCode': image, 'qrData': payload, 'url': url}, status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def qr_validate(request):
    """Resolve ?code= (bare short code or full short link) to its payload"""
    serializer = ValidateQRCodeSerializer(data=request.query_params)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    short_code = services.extract_short_code(serializer.validated_data['code'])
    if not short_code:
        raise bad_request('INVALID_QR_CODE', 'Short code is required')
    return success_response(services.validate_qr_code(short_code))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def qr_image(request, bin_id):
    """SVG QR image of the bin's current short link"""
    bin_obj = get_bin(request.user, bin_id)
    record = services.get_active_qr_code(bin_obj)
    svg = services.render(services.short_link(record.short_code), services.FORMAT_SVG)
    response = HttpResponse(svg, content_type='image/svg+xml')
    response['Cache-Control'] = IMAGE_CACHE_CONTROL
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def qr_label(request, bin_id):
    """Printable PNG label (data URL); ?barcode=false omits the Code128 barcode"""
    options = LabelOptionsSerializer(data=request.query_params)
    if not options.is_valid():
        return validation_error_response(options.errors)
    bin_obj = get_bin(request.user, bin_id)
    record = services.get_active_qr_code(bin_obj)
    url = services.short_link(record.short_code)
    image = generate_bin_label(
        bin_obj.label,
        url,
        location=bin_obj.location,
        include_barcode=options.validated_data['barcode'],
    )
    return success_response({'label': image, 'url': url, 'shortCode': record.short_code})


@require_GET
def short_link_redirect(request, code):
    """Public /b/<code> redirect to the bin page, or to the error page"""
    base = services.base_url()
    try:
        payload = services.validate_qr_code(code)
    except AppError as e:
        logger.info(f"QR redirect for {code} failed: {e.code}")
        return HttpResponseRedirect(f"{base}/error?message={quote(e.message)}")
    return HttpResponseRedirect(f"{base}/bins/{payload['binId']}")
