from django.db import models
from django.utils import timezone


class Video(models.Model):
    video_id = models.CharField(primary_key=True, max_length=64, editable=False)
    file_name = models.CharField(max_length=255)
    title = models.CharField(max_length=512, blank=True, default="")
    description = models.TextField(null=True, blank=True)
    # Owner identity; doubles as the partition every row of this video lives under
    created_by = models.CharField(max_length=255, editable=False)
    created_at = models.DateTimeField(default=timezone.now, editable=False)

    class Meta:
        indexes = [
            models.Index(fields=["created_by", "created_at", "video_id"], name="videos_owner_created_idx"),
            models.Index(fields=["created_at", "video_id"], name="videos_created_idx"),
        ]


class Variant(models.Model):
    class Format(models.TextChoices):
        ORIGINAL = "original"
        TRANSCODED = "transcoded"

    class Status(models.TextChoices):
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    video = models.ForeignKey(
        Video,
        to_field="video_id",
        db_column="video_id",
        related_name="variants",
        on_delete=models.CASCADE,
    )
    variant_id = models.CharField(max_length=128)
    owner = models.CharField(max_length=255)
    format = models.CharField(max_length=16, choices=Format.choices)
    resolution = models.CharField(max_length=32, default="source")
    size = models.BigIntegerField(default=0)            # bytes; 0 until known
    transcode_status = models.CharField(max_length=16, choices=Status.choices, default=Status.PROCESSING)
    url = models.TextField(blank=True, default="")      # signed read handle or ""
    object_key = models.CharField(max_length=512)
    error_message = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["video", "variant_id"], name="videos_variant_unique"),
        ]
        indexes = [
            models.Index(fields=["transcode_status", "updated_at"], name="videos_variant_status_idx"),
        ]
