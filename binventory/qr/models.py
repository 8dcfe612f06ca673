import uuid

from django.db import models
from django.utils import timezone


class QRCode(models.Model):
    """Short code printed in a bin's QR image; `data` holds the signed payload"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    bin = models.ForeignKey('bins.Bin', on_delete=models.CASCADE, related_name='qr_codes')
    short_code = models.CharField(max_length=50, unique=True)
    data = models.JSONField(help_text="version, binId, shortCode, timestamp and checksum")
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'qr_codes'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['expires_at'], name='qr_codes_expires_6a2d1f_idx'),
        ]

    def __str__(self):
        return f"{self.short_code} -> {self.bin_id}"

    @property
    def is_expired(self):
        return self.expires_at is not None and self.expires_at < timezone.now()
