# Generated manually for the initial permissions schema

import django.db.models.deletion
import uuid
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ObjectPermission",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "object_type",
                    models.CharField(
                        choices=[("bin", "Bin"), ("item", "Item"), ("category", "Category")],
                        max_length=20,
                    ),
                ),
                ("object_id", models.CharField(max_length=64)),
                (
                    "subject_type",
                    models.CharField(
                        choices=[("user", "User"), ("organization", "Organization"), ("role", "Role")],
                        max_length=20,
                    ),
                ),
                ("subject_id", models.CharField(help_text="User pk, organization id or role name", max_length=64)),
                (
                    "action",
                    models.CharField(
                        choices=[("read", "Read"), ("write", "Write"), ("admin", "Admin")],
                        max_length=10,
                    ),
                ),
                ("granted_at", models.DateTimeField(auto_now_add=True)),
                (
                    "granted_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="granted_permissions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "permissions",
                "ordering": ["-granted_at"],
                "indexes": [
                    models.Index(fields=["object_type", "object_id"], name="permissions_object_3e8a1b_idx"),
                    models.Index(fields=["subject_type", "subject_id"], name="permissions_subject_7c2f4d_idx"),
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="objectpermission",
            constraint=models.UniqueConstraint(
                fields=("object_type", "object_id", "subject_type", "subject_id", "action"),
                name="unique_object_permission",
            ),
        ),
    ]
