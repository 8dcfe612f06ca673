from django.contrib import admin
from .models import ObjectPermission


@admin.register(ObjectPermission)
class ObjectPermissionAdmin(admin.ModelAdmin):
    list_display = ['object_type', 'object_id', 'subject_type', 'subject_id', 'action', 'granted_at']
    list_filter = ['object_type', 'subject_type', 'action']
    search_fields = ['object_id', 'subject_id']
    raw_id_fields = ['granted_by']
