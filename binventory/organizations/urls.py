from django.urls import path
from .views import organization_list_create, organization_detail, member_list_create, member_detail

urlpatterns = [
    path('organizations/', organization_list_create, name='organization-list-create'),
    path('organizations/<uuid:pk>/', organization_detail, name='organization-detail'),
    path('organizations/<uuid:pk>/members/', member_list_create, name='organization-member-list-create'),
    path('organizations/<uuid:pk>/members/<uuid:member_id>/', member_detail, name='organization-member-detail'),
]
