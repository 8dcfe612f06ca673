# Generated manually for the initial QR code schema

import django.db.models.deletion
import uuid
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bins", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="QRCode",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("short_code", models.CharField(max_length=50, unique=True)),
                ("data", models.JSONField(help_text="version, binId, shortCode, timestamp and checksum")),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "bin",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="qr_codes",
                        to="bins.bin",
                    ),
                ),
            ],
            options={
                "db_table": "qr_codes",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["expires_at"], name="qr_codes_expires_6a2d1f_idx"),
                ],
            },
        ),
    ]
