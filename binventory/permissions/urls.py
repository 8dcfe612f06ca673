from django.urls import path
from .views import permission_list, object_permissions

urlpatterns = [
    path('permissions/', permission_list, name='permission-list'),
    path('objects/<str:object_type>/<uuid:object_id>/permissions/', object_permissions, name='object-permissions'),
]
