import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from binventory.core.utils import success_response, validation_error_response

from . import services
from .serializers import (
    OrganizationSerializer, OrganizationWriteSerializer, OrganizationMemberSerializer,
    AddMemberSerializer, UpdateMemberSerializer,
)

logger = logging.getLogger('binventory.organizations')


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def organization_list_create(request):
    """List the caller's organizations or create a new one"""
    if request.method == 'GET':
        pairs = services.list_organizations(request.user)
        organizations = [org for org, _ in pairs]
        roles = {org.id: role for org, role in pairs}
        serializer = OrganizationSerializer(organizations, many=True, context={'roles': roles})
        return success_response(serializer.data)

    serializer = OrganizationWriteSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    organization = services.create_organization(request.user, request=request, **serializer.validated_data)
    data = OrganizationSerializer(organization, context={'roles': {organization.id: 'OWNER'}}).data
    return success_response(data, status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def organization_detail(request, pk):
    """Retrieve, update or delete an organization"""
    if request.method == 'GET':
        organization = services.get_organization(request.user, pk)
        membership = services.get_membership(organization.id, request.user)
        data = OrganizationSerializer(organization, context={'roles': {organization.id: membership.role}}).data
        return success_response(data)

    if request.method == 'DELETE':
        services.delete_organization(request.user, pk, request=request)
        return success_response({'deleted': str(pk)})

    serializer = OrganizationWriteSerializer(data=request.data, partial=request.method == 'PATCH')
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    organization = services.update_organization(request.user, pk, request=request, **serializer.validated_data)
    membership = services.get_membership(organization.id, request.user)
    data = OrganizationSerializer(organization, context={'roles': {organization.id: membership.role}}).data
    return success_response(data)


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def member_list_create(request, pk):
    """List members or add a member"""
    if request.method == 'GET':
        members = services.list_members(request.user, pk)
        return success_response(OrganizationMemberSerializer(members, many=True).data)

    serializer = AddMemberSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    member = services.add_member(request.user, pk, request=request, **serializer.validated_data)
    return success_response(OrganizationMemberSerializer(member).data, status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def member_detail(request, pk, member_id):
    """Change a member's role or remove the member"""
    if request.method == 'DELETE':
        services.remove_member(request.user, pk, member_id, request=request)
        return success_response({'removed': str(member_id)})

    serializer = UpdateMemberSerializer(data=request.data)
    if not serializer.is_valid():
        return validation_error_response(serializer.errors)
    member = services.update_member_role(request.user, pk, member_id, serializer.validated_data['role'], request=request)
    return success_response(OrganizationMemberSerializer(member).data)
