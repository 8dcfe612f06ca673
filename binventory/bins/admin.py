from django.contrib import admin
from .models import Bin, BinItem


class BinItemInline(admin.TabularInline):
    model = BinItem
    extra = 0
    raw_id_fields = ['item']


@admin.register(Bin)
class BinAdmin(admin.ModelAdmin):
    list_display = ['label', 'location', 'user', 'organization', 'created_at']
    list_filter = ['location']
    search_fields = ['label', 'location', 'description']
    raw_id_fields = ['user', 'organization']
    readonly_fields = ['qr_code', 'image_key']
    inlines = [BinItemInline]


@admin.register(BinItem)
class BinItemAdmin(admin.ModelAdmin):
    list_display = ['bin', 'item', 'quantity', 'added_at']
    search_fields = ['bin__label', 'item__name']
    raw_id_fields = ['bin', 'item']
