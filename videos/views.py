import logging

from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import records
from .errors import NotFound, UpstreamUnavailable
from .models import Variant
from .permissions import HasJobToken
from .serializers import (
    CompleteUploadRequestSerializer,
    JobStatusSerializer,
    ListVideosQuerySerializer,
    TranscodeRequestSerializer,
    UploadUrlRequestSerializer,
    VariantSerializer,
    VideoSummarySerializer,
    VideoUpdateSerializer,
)
from .services import get_pipeline

logger = logging.getLogger(__name__)


def _variant_payload(variant, store) -> dict:
    """
    Serialize a Variant, re-signing the read URL of completed renditions.
    A completed row whose object has gone missing is reported, not raised.
    """
    data = VariantSerializer(variant).data
    data["available"] = variant.transcode_status == Variant.Status.COMPLETED
    if variant.transcode_status != Variant.Status.COMPLETED:
        return data
    try:
        data["url"] = store.signed_read_handle(variant.object_key)
    except NotFound:
        logger.warning("Completed variant %s is missing its object %s", variant.variant_id, variant.object_key)
        data["url"] = ""
        data["available"] = False
    except UpstreamUnavailable as e:
        logger.warning("Could not refresh URL for %s, keeping the stored one: %s", variant.variant_id, e)
    return data


class HealthView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response({"ok": True})


class UploadUrlView(views.APIView):
    """
    Returns either one presigned PUT URL (small files) or a multipart session with
    one presigned URL per part, so bytes never stream through Django.
    """

    def post(self, request):
        ser = UploadUrlRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        plan = get_pipeline().coordinator().create_session(
            file_name=data["fileName"],
            size_bytes=data["sizeBytes"],
            content_type=data["contentType"],
        )
        return Response(plan.as_dict(), status=status.HTTP_201_CREATED)


class CompleteUploadView(views.APIView):
    def post(self, request):
        ser = CompleteUploadRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        video = get_pipeline().coordinator().complete(
            request.user,
            video_id=data["videoId"],
            key=data["key"],
            upload_id=data.get("uploadId") or None,
            parts=[dict(p) for p in data.get("parts") or []],
            title=data.get("title"),
            description=data.get("description"),
        )
        return Response(VideoSummarySerializer(video).data, status=status.HTTP_201_CREATED)


class VideoListView(views.APIView):
    def get(self, request):
        ser = ListVideosQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        query = ser.validated_data

        pipeline = get_pipeline()
        owner = pipeline.policy.list_scope(request.user, query.get("owner"), query["all"])
        limit = min(query.get("limit") or pipeline.config.list_default_limit, pipeline.config.list_max_limit)

        page = records.list_videos(
            owner=owner,
            limit=limit,
            cursor=query.get("cursor"),
            descending=query["sort"].endswith(":desc"),
        )
        return Response({
            "videos": VideoSummarySerializer(page.items, many=True).data,
            "pagination": {"cursor": page.cursor, "limit": limit},
        })


class VideoDetailView(views.APIView):
    def get(self, request, video_id):
        pipeline = get_pipeline()
        video, variants = records.fetch_video_rows(video_id)
        if video is None:
            raise NotFound("Video not found")
        pipeline.policy.check_access(request.user, video.created_by)

        data = VideoSummarySerializer(video).data
        data["variants"] = [_variant_payload(v, pipeline.store) for v in variants]
        return Response(data)

    def patch(self, request, video_id):
        pipeline = get_pipeline()
        video = records.get_video(video_id)
        pipeline.policy.check_access(request.user, video.created_by)

        ser = VideoUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        video = records.update_video(video_id, **ser.to_model_changes())
        return Response(VideoSummarySerializer(video).data)

    def delete(self, request, video_id):
        pipeline = get_pipeline()
        video = records.get_video(video_id)
        pipeline.policy.check_access(request.user, video.created_by)

        deleted = records.delete_video(video_id)
        return Response({"videoId": video_id, "deletedRecords": deleted})


class TranscodeView(views.APIView):
    """
    Start (or report) the transcode of the original upload. Returns immediately;
    the work happens in a worker process.
    """

    def post(self, request, video_id):
        ser = TranscodeRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        pipeline = get_pipeline()
        result = pipeline.dispatcher().dispatch(request.user, video_id, force=ser.validated_data["force"])
        variant = result.variant
        body = {
            "videoId": video_id,
            "variantId": variant.variant_id,
            "status": variant.transcode_status,
            "enqueued": result.enqueued,
        }
        if variant.transcode_status == Variant.Status.COMPLETED:
            body["url"] = _variant_payload(variant, pipeline.store)["url"]
        code = status.HTTP_202_ACCEPTED if result.enqueued else status.HTTP_200_OK
        return Response(body, status=code)


class JobStatusView(views.APIView):
    """Worker -> API bridge. Authenticated only by the shared job token."""

    permission_classes = [HasJobToken]
    authentication_classes = []

    def post(self, request):
        ser = JobStatusSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        if data["status"] == Variant.Status.COMPLETED:
            records.mark_variant_completed(
                data["owner"], data["videoId"], data["variantId"], size=data["size"], url=data["url"]
            )
            applied = True
        else:
            applied = records.mark_variant_failed(data["owner"], data["videoId"], data["variantId"], data["error"])

        logger.info("Job status %s for %s/%s (applied=%s)", data["status"], data["videoId"], data["variantId"], applied)
        return Response({"ok": True, "applied": applied, "message": f"Job {data['status']}"})
