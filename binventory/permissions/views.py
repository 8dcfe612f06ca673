import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from binventory.core.errors import bad_request, forbidden
from binventory.core.utils import success_response, validation_error_response

from . import services
from .models import ObjectPermission
from .serializers import (
    ObjectPermissionSerializer, PermissionSerializer, PermissionQuerySerializer, PermissionSubjectSerializer,
)

logger = logging.getLogger('binventory.permissions')

OBJECT_TYPES = [choice for choice, _ in ObjectPermission.OBJECT_TYPE_CHOICES]


def require_access(user, object_type, object_id, action):
    if not services.can_access(user, object_type, object_id, action):
        raise forbidden('FORBIDDEN', 'Access denied')


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def permission_list(request):
    """
    GET: filter grants by object/subject/action query params.
    POST: grant one permission. DELETE: revoke one (identified by query params).
    Granting and revoking need admin access on the object.
    """
    if request.method == 'GET':
        query = PermissionQuerySerializer(data=request.query_params)
        if not query.is_valid():
            return validation_error_response(query.errors)
        permissions = services.get_permissions(**query.validated_data)
        return success_response(ObjectPermissionSerializer(permissions, many=True).data)

    source = request.data if request.method == 'POST' else request.query_params
    serializer = PermissionSerializer(data=source)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    data = serializer.validated_data
    require_access(request.user, data['object_type'], data['object_id'], ObjectPermission.ACTION_ADMIN)

    if request.method == 'POST':
        permission = services.grant(granted_by=request.user, **data)
        return success_response(ObjectPermissionSerializer(permission).data, status.HTTP_201_CREATED)

    services.revoke(**data)
    return success_response(None)


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def object_permissions(request, object_type, object_id):
    """
    Grants on a single object.

    GET lists them (read access). POST adds a batch, PUT replaces all of them
    and DELETE clears them (admin access).
    """
    if object_type not in OBJECT_TYPES:
        raise bad_request('INVALID_OBJECT_TYPE', 'Invalid object type')

    if request.method == 'GET':
        require_access(request.user, object_type, object_id, ObjectPermission.ACTION_READ)
        permissions = services.get_permissions(object_type=object_type, object_id=object_id)
        return success_response(ObjectPermissionSerializer(permissions, many=True).data)

    require_access(request.user, object_type, object_id, ObjectPermission.ACTION_ADMIN)

    if request.method == 'DELETE':
        deleted = services.clear_permissions(object_type, object_id)
        return success_response({'deleted': deleted})

    serializer = PermissionSubjectSerializer(data=request.data, many=True)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    if request.method == 'POST':
        permissions = services.grant_many(object_type, object_id, serializer.validated_data, granted_by=request.user)
    else:
        permissions = services.replace_permissions(
            object_type, object_id, serializer.validated_data, granted_by=request.user
        )
    return success_response(ObjectPermissionSerializer(permissions, many=True).data)
