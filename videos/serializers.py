from rest_framework import serializers

from .config import MAX_PART_COUNT
from .models import Variant, Video

SORT_CHOICES = ("createdAt:desc", "createdAt:asc")


class VariantSerializer(serializers.ModelSerializer):
    variantId = serializers.CharField(source="variant_id")
    createdAt = serializers.DateTimeField(source="created_at")

    class Meta:
        model = Variant
        fields = [
            "variantId",
            "format",
            "resolution",
            "size",
            "transcode_status",
            "url",
            "createdAt",
        ]


class VideoSummarySerializer(serializers.ModelSerializer):
    videoId = serializers.CharField(source="video_id")
    fileName = serializers.CharField(source="file_name")
    createdAt = serializers.DateTimeField(source="created_at")
    createdBy = serializers.CharField(source="created_by")

    class Meta:
        model = Video
        fields = ["videoId", "fileName", "title", "description", "createdAt", "createdBy"]


class UploadUrlRequestSerializer(serializers.Serializer):
    fileName = serializers.CharField(max_length=255)
    sizeBytes = serializers.IntegerField(min_value=1)
    contentType = serializers.CharField()


class PartSerializer(serializers.Serializer):
    partNumber = serializers.IntegerField(min_value=1, max_value=MAX_PART_COUNT)
    eTag = serializers.CharField()


class CompleteUploadRequestSerializer(serializers.Serializer):
    videoId = serializers.CharField(max_length=64)
    key = serializers.CharField(max_length=512)
    uploadId = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    parts = PartSerializer(many=True, required=False)
    title = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=512)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs.get("uploadId") and not attrs.get("parts"):
            raise serializers.ValidationError({"parts": "parts required for multipart completion"})
        return attrs


class VideoUpdateSerializer(serializers.Serializer):
    fileName = serializers.CharField(required=False, max_length=255)
    title = serializers.CharField(required=False, allow_blank=True, max_length=512)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one of fileName, title, description")
        return attrs

    def to_model_changes(self) -> dict:
        names = {"fileName": "file_name", "title": "title", "description": "description"}
        return {names[k]: v for k, v in self.validated_data.items()}


class TranscodeRequestSerializer(serializers.Serializer):
    force = serializers.BooleanField(default=False)


class ListVideosQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, min_value=1)
    cursor = serializers.CharField(required=False)
    sort = serializers.ChoiceField(choices=SORT_CHOICES, default="createdAt:desc")
    owner = serializers.CharField(required=False)
    all = serializers.BooleanField(default=False)


class JobStatusSerializer(serializers.Serializer):
    owner = serializers.CharField()
    videoId = serializers.CharField()
    variantId = serializers.CharField()
    status = serializers.ChoiceField(choices=[Variant.Status.COMPLETED, Variant.Status.FAILED])
    url = serializers.CharField(required=False, allow_blank=True, default="")
    size = serializers.IntegerField(required=False, min_value=0, default=0)
    error = serializers.CharField(required=False, allow_blank=True, default="")

    def validate(self, attrs):
        if attrs["status"] == Variant.Status.COMPLETED and not attrs.get("url"):
            raise serializers.ValidationError({"url": "url is required for a completed job"})
        return attrs
