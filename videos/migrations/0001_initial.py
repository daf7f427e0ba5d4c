import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Video",
            fields=[
                ("video_id", models.CharField(editable=False, max_length=64, primary_key=True, serialize=False)),
                ("file_name", models.CharField(max_length=255)),
                ("title", models.CharField(blank=True, default="", max_length=512)),
                ("description", models.TextField(blank=True, null=True)),
                ("created_by", models.CharField(editable=False, max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, editable=False)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["created_by", "created_at", "video_id"], name="videos_owner_created_idx"),
                    models.Index(fields=["created_at", "video_id"], name="videos_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Variant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("variant_id", models.CharField(max_length=128)),
                ("owner", models.CharField(max_length=255)),
                (
                    "format",
                    models.CharField(
                        choices=[("original", "Original"), ("transcoded", "Transcoded")],
                        max_length=16,
                    ),
                ),
                ("resolution", models.CharField(default="source", max_length=32)),
                ("size", models.BigIntegerField(default=0)),
                (
                    "transcode_status",
                    models.CharField(
                        choices=[("processing", "Processing"), ("completed", "Completed"), ("failed", "Failed")],
                        default="processing",
                        max_length=16,
                    ),
                ),
                ("url", models.TextField(blank=True, default="")),
                ("object_key", models.CharField(max_length=512)),
                ("error_message", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "video",
                    models.ForeignKey(
                        db_column="video_id",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variants",
                        to="videos.video",
                        to_field="video_id",
                    ),
                ),
            ],
            options={
                "indexes": [
                    models.Index(fields=["transcode_status", "updated_at"], name="videos_variant_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("video", "variant_id"), name="videos_variant_unique"),
                ],
            },
        ),
    ]
