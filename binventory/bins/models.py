import uuid

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Bin(models.Model):
    """A physical storage container identified by a label and a QR code"""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    label = models.CharField(max_length=100)
    location = models.CharField(max_length=200)
    description = models.CharField(max_length=500, blank=True, null=True)
    qr_code = models.CharField(max_length=120, help_text="Scan value, bin:<label>")
    image_url = models.URLField(max_length=1000, blank=True, null=True)
    image_key = models.CharField(max_length=255, blank=True, null=True, help_text="Blob name in storage")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='bins')
    organization = models.ForeignKey(
        'organizations.Organization',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='bins',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'bins'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['user', 'label'], name='unique_bin_label_per_user'),
        ]
        indexes = [
            models.Index(fields=['label'], name='bins_label_8b1e2a_idx'),
            models.Index(fields=['location'], name='bins_locatio_4f6d9c_idx'),
        ]

    def __str__(self):
        return self.label

    @staticmethod
    def build_qr_value(label):
        return f"bin:{label}"


class BinItem(models.Model):
    """Quantity of an item stored in a bin"""
    bin = models.ForeignKey(Bin, on_delete=models.CASCADE, related_name='contents')
    item = models.ForeignKey('catalog.Item', on_delete=models.CASCADE, related_name='bin_entries')
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    notes = models.CharField(max_length=500, blank=True, null=True)
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'bin_items'
        ordering = ['-added_at']
        constraints = [
            models.UniqueConstraint(fields=['bin', 'item'], name='unique_bin_item'),
        ]

    def __str__(self):
        return f"{self.quantity} x {self.item_id} in {self.bin_id}"
