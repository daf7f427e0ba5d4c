"""
Record store access layer.

Every mutation is a single-row conditional create or a patch of an existing row;
cross-row ordering (Video before its Variants) is the caller's job. The one
exception is upload completion, where a Video and its original Variant are
written together.
"""
import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .errors import Conflict, NotFound
from .keys import decode_cursor, encode_cursor
from .models import Variant, Video

logger = logging.getLogger(__name__)

MUTABLE_VIDEO_FIELDS = ("file_name", "title", "description")


@dataclass
class Page:
    items: list
    cursor: str | None


# ---------------------------------------------------------------------------
# Conditional creates
# ---------------------------------------------------------------------------
def create_video_with_original(*, video_id, owner, file_name, title, description, original: dict) -> Video:
    """
    Create the Video row and its original Variant in one transaction.
    Fails with Conflict if the video id is already taken.
    """
    now = timezone.now()
    try:
        with transaction.atomic():
            video = Video.objects.create(
                video_id=video_id,
                file_name=file_name,
                title=title,
                description=description,
                created_by=owner,
                created_at=now,
            )
            Variant.objects.create(
                video=video,
                owner=owner,
                format=Variant.Format.ORIGINAL,
                transcode_status=Variant.Status.COMPLETED,
                created_at=now,
                updated_at=now,
                **original,
            )
    except IntegrityError:
        raise Conflict(f"Video {video_id} already exists")
    return video


def create_variant(video: Video, *, variant_id, fmt, object_key, resolution="source") -> Variant:
    """Insert a new `processing` Variant. Fails with Conflict if (video, variant_id) exists."""
    now = timezone.now()
    try:
        with transaction.atomic():
            return Variant.objects.create(
                video=video,
                variant_id=variant_id,
                owner=video.created_by,
                format=fmt,
                resolution=resolution,
                object_key=object_key,
                size=0,
                url="",
                transcode_status=Variant.Status.PROCESSING,
                created_at=now,
                updated_at=now,
            )
    except IntegrityError:
        raise Conflict(f"Variant {variant_id} already exists")


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_video(video_id: str) -> Video:
    try:
        return Video.objects.get(pk=video_id)
    except Video.DoesNotExist:
        raise NotFound("Video not found")


def fetch_video_rows(video_id: str) -> tuple[Video | None, list[Variant]]:
    """Every row stored under a video id: the Video (if any) and its Variants."""
    video = Video.objects.filter(pk=video_id).first()
    variants = list(Variant.objects.filter(video_id=video_id).order_by("created_at", "variant_id"))
    return video, variants


def find_variant(video_id: str, fmt: str) -> Variant | None:
    return Variant.objects.filter(video_id=video_id, format=fmt).order_by("created_at").first()


def get_variant(owner: str, video_id: str, variant_id: str) -> Variant:
    try:
        return Variant.objects.get(owner=owner, video_id=video_id, variant_id=variant_id)
    except Variant.DoesNotExist:
        raise NotFound("Variant not found")


def list_videos(*, owner: str | None, limit: int, cursor: str | None = None, descending: bool = True) -> Page:
    """
    Owner-scoped (or, with owner=None, table-wide) listing ordered by creation
    time. The returned cursor resumes strictly after the last row of the page;
    no cursor means there are no further rows.
    """
    qs = Video.objects.all()
    if owner is not None:
        qs = qs.filter(created_by=owner)

    if cursor:
        after_at, after_id = decode_cursor(cursor)
        if descending:
            qs = qs.filter(Q(created_at__lt=after_at) | Q(created_at=after_at, video_id__lt=after_id))
        else:
            qs = qs.filter(Q(created_at__gt=after_at) | Q(created_at=after_at, video_id__gt=after_id))

    order = ("-created_at", "-video_id") if descending else ("created_at", "video_id")
    rows = list(qs.order_by(*order)[: limit + 1])
    if len(rows) > limit:
        rows = rows[:limit]
        last = rows[-1]
        return Page(items=rows, cursor=encode_cursor(last.created_at, last.video_id))
    return Page(items=rows, cursor=None)


# ---------------------------------------------------------------------------
# Patches (fail with NotFound if the row is absent)
# ---------------------------------------------------------------------------
def update_video(video_id: str, **changes) -> Video:
    unknown = set(changes) - set(MUTABLE_VIDEO_FIELDS)
    if unknown:
        raise ValueError(f"Immutable or unknown video fields: {sorted(unknown)}")
    if changes:
        updated = Video.objects.filter(pk=video_id).update(**changes)
        if not updated:
            raise NotFound("Video not found")
    return get_video(video_id)


def patch_variant(owner: str, video_id: str, variant_id: str, **patch) -> None:
    """Apply only the supplied attribute deltas to an existing Variant."""
    if not patch:
        raise ValueError("patch_variant: patch must have at least one field")
    patch.setdefault("updated_at", timezone.now())
    updated = Variant.objects.filter(owner=owner, video_id=video_id, variant_id=variant_id).update(**patch)
    if not updated:
        raise NotFound("Variant not found")


def mark_variant_completed(owner, video_id, variant_id, *, size: int, url: str) -> None:
    # Unconditional: a second identical patch from a duplicate delivery is a no-op.
    patch_variant(
        owner,
        video_id,
        variant_id,
        transcode_status=Variant.Status.COMPLETED,
        size=size,
        url=url,
        error_message="",
    )


def mark_variant_failed(owner, video_id, variant_id, message: str = "") -> bool:
    """
    Move a Variant to `failed` unless it already completed; a late failure from a
    duplicate attempt never overwrites a finished rendition. Returns whether the
    row changed.
    """
    updated = (
        Variant.objects.filter(owner=owner, video_id=video_id, variant_id=variant_id)
        .exclude(transcode_status=Variant.Status.COMPLETED)
        .update(transcode_status=Variant.Status.FAILED, error_message=message[:4000], updated_at=timezone.now())
    )
    if updated:
        return True
    if not Variant.objects.filter(owner=owner, video_id=video_id, variant_id=variant_id).exists():
        raise NotFound("Variant not found")
    logger.info("Variant %s/%s already completed; ignoring failure report", video_id, variant_id)
    return False


def reset_variant(owner, video_id, variant_id) -> None:
    """Forced re-dispatch: put an existing row back into `processing`."""
    patch_variant(
        owner,
        video_id,
        variant_id,
        transcode_status=Variant.Status.PROCESSING,
        size=0,
        url="",
        error_message="",
    )


def claim_failed_variant(owner, video_id, variant_id) -> bool:
    """
    Move a `failed` Variant back to `processing` only if it is still failed.
    Of several concurrent retries exactly one gets True.
    """
    updated = (
        Variant.objects.filter(
            owner=owner, video_id=video_id, variant_id=variant_id, transcode_status=Variant.Status.FAILED
        )
        .update(
            transcode_status=Variant.Status.PROCESSING,
            size=0,
            url="",
            error_message="",
            updated_at=timezone.now(),
        )
    )
    return bool(updated)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------
def delete_video(video_id: str) -> int:
    """
    Remove every row stored under video_id, one row at a time.
    A video with no rows yields NotFound (so a racing second delete does too).
    """
    video, variants = fetch_video_rows(video_id)
    if video is None and not variants:
        raise NotFound("Video not found")

    deleted = 0
    for variant in variants:
        count, _ = Variant.objects.filter(pk=variant.pk).delete()
        deleted += count
    if video is not None:
        count, _ = Video.objects.filter(pk=video.pk).delete()
        deleted += count
    logger.info("Deleted %d record(s) for video %s", deleted, video_id)
    return deleted
