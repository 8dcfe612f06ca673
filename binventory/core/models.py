import uuid

from django.contrib.auth.models import AbstractUser, UserManager
from django.db import models


class EmailUserManager(UserManager):
    """Looks users up by email regardless of case"""

    def get_by_natural_key(self, username):
        return self.get(email__iexact=username)


class User(AbstractUser):
    """Extended user model; email is the login identifier"""
    ROLE_USER = 'USER'
    ROLE_ADMIN = 'ADMIN'
    ROLE_CHOICES = [
        (ROLE_USER, 'User'),
        (ROLE_ADMIN, 'Admin'),
    ]

    name = models.CharField(max_length=100, blank=True)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=ROLE_USER)
    image = models.URLField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = EmailUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        db_table = 'users'

    def __str__(self):
        return self.name or self.email

    @property
    def is_admin(self):
        return self.role == self.ROLE_ADMIN or self.is_superuser


class AuditLog(models.Model):
    """Audit trail of security-relevant and data-changing operations"""
    ENTITY_CHOICES = [
        ('user', 'User'),
        ('session', 'Session'),
        ('bin', 'Bin'),
        ('item', 'Item'),
        ('category', 'Category'),
        ('organization', 'Organization'),
        ('system', 'System'),
    ]

    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=100)
    entity = models.CharField(max_length=50, choices=ENTITY_CHOICES, blank=True, null=True)
    entity_id = models.CharField(max_length=100, blank=True, null=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user'], name='audit_logs_user_id_2d6f1c_idx'),
            models.Index(fields=['action'], name='audit_logs_action_4b8e3a_idx'),
            models.Index(fields=['created_at'], name='audit_logs_created_9c1d7e_idx'),
        ]

    def __str__(self):
        return f"{self.action} ({self.entity}:{self.entity_id})"


class UserSession(models.Model):
    """A login session; its id travels in issued tokens as the `sid` claim"""
    DEVICE_CHOICES = [
        ('desktop', 'Desktop'),
        ('mobile', 'Mobile'),
        ('tablet', 'Tablet'),
        ('unknown', 'Unknown'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='login_sessions')
    token = models.CharField(max_length=255, unique=True, help_text="jti of the refresh token bound to this session")
    expires = models.DateTimeField()
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, default='')
    device_type = models.CharField(max_length=20, choices=DEVICE_CHOICES, default='unknown')
    created_at = models.DateTimeField(auto_now_add=True)
    last_active = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'user_sessions'
        ordering = ['-expires']
        indexes = [
            models.Index(fields=['user', 'expires'], name='user_sessio_user_id_5a7c2e_idx'),
        ]

    def __str__(self):
        return f"Session {self.id} ({self.user_id})"


class TwoFactorAuth(models.Model):
    """TOTP secret and recovery codes for a user"""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='two_factor')
    secret = models.CharField(max_length=64)
    verified = models.BooleanField(default=False)
    recovery_codes = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'two_factor_auth'

    def __str__(self):
        return f"2FA for {self.user_id} ({'verified' if self.verified else 'pending'})"
