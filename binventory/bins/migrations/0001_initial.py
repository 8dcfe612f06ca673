# Generated manually for the initial bins schema

import django.core.validators
import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("organizations", "0001_initial"),
        ("catalog", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Bin",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("label", models.CharField(max_length=100)),
                ("location", models.CharField(max_length=200)),
                ("description", models.CharField(blank=True, max_length=500, null=True)),
                ("qr_code", models.CharField(help_text="Scan value, bin:<label>", max_length=120)),
                ("image_url", models.URLField(blank=True, max_length=1000, null=True)),
                ("image_key", models.CharField(blank=True, help_text="Blob name in storage", max_length=255, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "organization",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bins",
                        to="organizations.organization",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bins",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "bins",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["label"], name="bins_label_8b1e2a_idx"),
                    models.Index(fields=["location"], name="bins_locatio_4f6d9c_idx"),
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="bin",
            constraint=models.UniqueConstraint(fields=("user", "label"), name="unique_bin_label_per_user"),
        ),
        migrations.CreateModel(
            name="BinItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "quantity",
                    models.PositiveIntegerField(validators=[django.core.validators.MinValueValidator(1)]),
                ),
                ("notes", models.CharField(blank=True, max_length=500, null=True)),
                ("added_at", models.DateTimeField(auto_now_add=True)),
                (
                    "bin",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="contents",
                        to="bins.bin",
                    ),
                ),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bin_entries",
                        to="catalog.item",
                    ),
                ),
            ],
            options={
                "db_table": "bin_items",
                "ordering": ["-added_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="binitem",
            constraint=models.UniqueConstraint(fields=("bin", "item"), name="unique_bin_item"),
        ),
    ]
