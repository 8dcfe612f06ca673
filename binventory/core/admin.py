from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import User, AuditLog, UserSession, TwoFactorAuth


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = ['email', 'name', 'role', 'is_active', 'is_staff', 'date_joined']
    list_filter = ['role', 'is_active', 'is_staff', 'is_superuser', 'date_joined']
    search_fields = ['username', 'email', 'name']
    ordering = ['email']
    fieldsets = BaseUserAdmin.fieldsets + (
        ('Binventory', {'fields': ('name', 'role', 'image')}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ('Binventory', {'fields': ('email', 'name', 'role')}),
    )


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['user', 'action', 'entity', 'entity_id', 'ip_address', 'created_at']
    list_filter = ['action', 'entity', 'created_at']
    search_fields = ['user__email', 'action', 'entity_id']
    ordering = ['-created_at']
    readonly_fields = ['user', 'action', 'entity', 'entity_id', 'ip_address', 'user_agent', 'metadata', 'created_at']


@admin.register(UserSession)
class UserSessionAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'device_type', 'ip_address', 'expires', 'last_active']
    list_filter = ['device_type', 'expires']
    search_fields = ['user__email', 'ip_address']
    ordering = ['-expires']
    readonly_fields = ['token', 'created_at', 'last_active']


@admin.register(TwoFactorAuth)
class TwoFactorAuthAdmin(admin.ModelAdmin):
    list_display = ['user', 'verified', 'created_at', 'updated_at']
    list_filter = ['verified']
    search_fields = ['user__email']
    exclude = ['secret', 'recovery_codes']
