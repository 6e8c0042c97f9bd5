import uuid

import django.core.validators
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="ContactMessage",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, validators=[django.core.validators.MinLengthValidator(2)])),
                ("email", models.EmailField(max_length=254)),
                ("phone", models.CharField(blank=True, max_length=30)),
                (
                    "message",
                    models.TextField(max_length=5000, validators=[django.core.validators.MinLengthValidator(10)]),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("new", "New"), ("read", "Read"), ("replied", "Replied"), ("closed", "Closed")],
                        default="new",
                        max_length=16,
                    ),
                ),
                ("source", models.CharField(default="website", max_length=32)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [models.Index(fields=["status", "created_at"], name="contact_status_created_idx")],
            },
        ),
    ]
