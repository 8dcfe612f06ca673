from django.urls import path
from .views import category_list_create, category_detail, item_list_create, item_low_stock, item_detail

urlpatterns = [
    path('categories/', category_list_create, name='category-list-create'),
    path('categories/<uuid:pk>/', category_detail, name='category-detail'),
    path('items/', item_list_create, name='item-list-create'),
    path('items/low-stock/', item_low_stock, name='item-low-stock'),
    path('items/<uuid:pk>/', item_detail, name='item-detail'),
]
