from django.contrib import admin
from .models import QRCode


@admin.register(QRCode)
class QRCodeAdmin(admin.ModelAdmin):
    list_display = ['short_code', 'bin', 'expires_at', 'created_at']
    search_fields = ['short_code', 'bin__label']
    raw_id_fields = ['bin']
    readonly_fields = ['data']
