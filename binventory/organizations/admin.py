from django.contrib import admin
from .models import Organization, OrganizationMember


class OrganizationMemberInline(admin.TabularInline):
    model = OrganizationMember
    fk_name = 'organization'
    extra = 0
    raw_id_fields = ['user', 'invited_by']


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'created_at']
    search_fields = ['name', 'slug']
    ordering = ['name']
    inlines = [OrganizationMemberInline]


@admin.register(OrganizationMember)
class OrganizationMemberAdmin(admin.ModelAdmin):
    list_display = ['organization', 'user', 'role', 'joined_at']
    list_filter = ['role']
    search_fields = ['organization__name', 'user__email']
    raw_id_fields = ['user', 'invited_by']
