"""
Bin image storage on Azure Blob Storage.

Images are validated, downscaled with Pillow and uploaded under
uploads/<uuid>.<ext>. The stored URL carries a read-only SAS token.
"""
import io
import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from urllib.parse import quote

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas
from django.conf import settings
from PIL import Image, UnidentifiedImageError

from binventory.core.errors import AppError, bad_request, service_unavailable

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {
    'image/jpeg': ('jpg', 'JPEG'),
    'image/png': ('png', 'PNG'),
    'image/webp': ('webp', 'WEBP'),
}
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB
MAX_IMAGE_WIDTH = 800
UPLOAD_FOLDER = 'uploads/'
SAS_EXPIRY_DAYS = 7


def _setting(name, default=''):
    return getattr(settings, name, os.getenv(name, default))


def is_configured():
    return bool(_setting('AZURE_STORAGE_ACCOUNT_NAME')) and bool(_setting('AZURE_STORAGE_ACCOUNT_KEY'))


def _connection_string():
    account = _setting('AZURE_STORAGE_ACCOUNT_NAME')
    key = _setting('AZURE_STORAGE_ACCOUNT_KEY')
    return f"DefaultEndpointsProtocol=https;AccountName={account};AccountKey={key};EndpointSuffix=core.windows.net"


def get_blob_client(blob_name):
    if not is_configured():
        raise service_unavailable('STORAGE_UNAVAILABLE', 'Image storage is not configured')
    service = BlobServiceClient.from_connection_string(_connection_string())
    return service.get_blob_client(container=_setting('AZURE_STORAGE_CONTAINER', 'bin-images'), blob=blob_name)


def validate_image(upload):
    """Check content type and size of an uploaded file"""
    if upload is None:
        raise bad_request('NO_FILE', 'No image file provided')
    content_type = getattr(upload, 'content_type', None)
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise bad_request('INVALID_FILE_TYPE', 'Only JPEG, PNG and WebP images are allowed')
    if upload.size > MAX_FILE_SIZE:
        raise bad_request('FILE_TOO_LARGE', 'Image must be 5MB or smaller')
    return content_type


def resize_image(data, pil_format, max_width=MAX_IMAGE_WIDTH):
    """Downscale to max_width keeping the aspect ratio; smaller images are re-encoded as is"""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError):
        raise bad_request('INVALID_IMAGE', 'The uploaded file is not a readable image')

    if image.width > max_width:
        height = round(image.height * max_width / image.width)
        image = image.resize((max_width, height), Image.LANCZOS)
    if pil_format == 'JPEG' and image.mode not in ('RGB', 'L'):
        image = image.convert('RGB')

    buffer = io.BytesIO()
    save_kwargs = {'quality': 85} if pil_format in ('JPEG', 'WEBP') else {'optimize': True}
    image.save(buffer, format=pil_format, **save_kwargs)
    return buffer.getvalue()


def build_blob_url(blob_name, expiry_days=SAS_EXPIRY_DAYS):
    """Blob URL with a read-only SAS token valid for `expiry_days`"""
    account = _setting('AZURE_STORAGE_ACCOUNT_NAME')
    container = _setting('AZURE_STORAGE_CONTAINER', 'bin-images')
    base_url = f"https://{account}.blob.core.windows.net/{container}/{quote(blob_name, safe='/')}"
    sas_token = generate_blob_sas(
        account_name=account,
        container_name=container,
        blob_name=blob_name,
        account_key=_setting('AZURE_STORAGE_ACCOUNT_KEY'),
        permission=BlobSasPermissions(read=True),
        expiry=datetime.now(timezone.utc) + timedelta(days=expiry_days),
    )
    return f"{base_url}?{sas_token}"


def upload_image(upload):
    """
    Validate, resize and store an uploaded image.

    Returns (url, blob_name).
    """
    content_type = validate_image(upload)
    extension, pil_format = ALLOWED_CONTENT_TYPES[content_type]
    data = resize_image(upload.read(), pil_format)

    blob_name = f"{UPLOAD_FOLDER}{uuid.uuid4()}.{extension}"
    blob_client = get_blob_client(blob_name)
    try:
        blob_client.upload_blob(data, overwrite=True, content_settings=ContentSettings(content_type=content_type))
    except AzureError as e:
        logger.error(f"Failed to upload image {blob_name}: {str(e)}")
        raise AppError('UPLOAD_FAILED', 'Failed to upload image', 502)

    logger.info(f"Uploaded image {blob_name} ({len(data)} bytes)")
    return build_blob_url(blob_name), blob_name


def delete_image(blob_name):
    """
    Delete a stored image. Returns True when the blob is gone.
    Blob cleanup is best effort; failures are logged.
    """
    if not blob_name or not is_configured():
        return False
    try:
        get_blob_client(blob_name).delete_blob()
        return True
    except ResourceNotFoundError:
        return True
    except AzureError as e:
        logger.warning(f"Failed to delete image {blob_name}: {str(e)}")
        return False
