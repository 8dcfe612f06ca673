import uuid

from django.conf import settings
from django.db import models


class ObjectPermission(models.Model):
    """Grant of an action on a bin, item or category to a user, organization or role"""
    OBJECT_BIN = 'bin'
    OBJECT_ITEM = 'item'
    OBJECT_CATEGORY = 'category'
    OBJECT_TYPE_CHOICES = [
        (OBJECT_BIN, 'Bin'),
        (OBJECT_ITEM, 'Item'),
        (OBJECT_CATEGORY, 'Category'),
    ]

    SUBJECT_USER = 'user'
    SUBJECT_ORGANIZATION = 'organization'
    SUBJECT_ROLE = 'role'
    SUBJECT_TYPE_CHOICES = [
        (SUBJECT_USER, 'User'),
        (SUBJECT_ORGANIZATION, 'Organization'),
        (SUBJECT_ROLE, 'Role'),
    ]

    ACTION_READ = 'read'
    ACTION_WRITE = 'write'
    ACTION_ADMIN = 'admin'
    ACTION_CHOICES = [
        (ACTION_READ, 'Read'),
        (ACTION_WRITE, 'Write'),
        (ACTION_ADMIN, 'Admin'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    object_type = models.CharField(max_length=20, choices=OBJECT_TYPE_CHOICES)
    object_id = models.CharField(max_length=64)
    subject_type = models.CharField(max_length=20, choices=SUBJECT_TYPE_CHOICES)
    subject_id = models.CharField(max_length=64, help_text="User pk, organization id or role name")
    action = models.CharField(max_length=10, choices=ACTION_CHOICES)
    granted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='granted_permissions',
    )
    granted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'permissions'
        ordering = ['-granted_at']
        constraints = [
            models.UniqueConstraint(
                fields=['object_type', 'object_id', 'subject_type', 'subject_id', 'action'],
                name='unique_object_permission',
            ),
        ]
        indexes = [
            models.Index(fields=['object_type', 'object_id'], name='permissions_object_3e8a1b_idx'),
            models.Index(fields=['subject_type', 'subject_id'], name='permissions_subject_7c2f4d_idx'),
        ]

    def __str__(self):
        return f"{self.subject_type}:{self.subject_id} {self.action} {self.object_type}:{self.object_id}"
