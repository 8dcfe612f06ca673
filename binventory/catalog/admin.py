from django.contrib import admin
from .models import Category, Item


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'parent', 'user', 'organization', 'created_at']
    search_fields = ['name']
    raw_id_fields = ['parent', 'user', 'organization']
    readonly_fields = ['path']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ['name', 'category', 'quantity', 'min_quantity', 'unit', 'user']
    list_filter = ['unit']
    search_fields = ['name', 'description']
    raw_id_fields = ['category', 'user', 'organization']
