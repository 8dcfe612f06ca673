from django.urls import path
from .views import bin_list_create, bin_search, bin_detail, bin_item_list_add, bin_item_detail, bin_image

urlpatterns = [
    path('bins/', bin_list_create, name='bin-list-create'),
    path('bins/search/', bin_search, name='bin-search'),
    path('bins/<uuid:pk>/', bin_detail, name='bin-detail'),
    path('bins/<uuid:pk>/items/', bin_item_list_add, name='bin-item-list-add'),
    path('bins/<uuid:pk>/items/<uuid:item_id>/', bin_item_detail, name='bin-item-detail'),
    path('bins/<uuid:pk>/image/', bin_image, name='bin-image'),
]
