"""
Transcode dispatch.

State machine per (video, transcoded format):

    absent ──create row + enqueue──▶ processing ──worker──▶ completed | failed

Without `force`, a repeat request returns the current processing/completed row
untouched. A `failed` row is retried (reset + new job). With `force`, any existing
row is reset to processing and a fresh job is enqueued, even while a previous job
for it is still in flight; both jobs write the same key and converge.
"""
import json
import logging
from dataclasses import asdict, dataclass

from . import keys, records
from .codec import TRANSCODED_EXTENSION
from .errors import BadRequest, Conflict, UpstreamUnavailable
from .identity import OwnerPolicy, Principal
from .jobqueue import JobQueue
from .models import Variant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscodeJob:
    videoId: str
    variantId: str
    owner: str
    sourceKey: str
    destKey: str

    @classmethod
    def from_payload(cls, payload: dict) -> "TranscodeJob":
        try:
            return cls(**{name: str(payload[name]) for name in cls.__dataclass_fields__})
        except (KeyError, TypeError):
            raise BadRequest(f"Malformed transcode job: {payload!r}")

    @classmethod
    def from_body(cls, body: str) -> "TranscodeJob":
        try:
            payload = json.loads(body)
        except ValueError:
            raise BadRequest("Transcode job body is not JSON")
        if not isinstance(payload, dict):
            raise BadRequest("Transcode job body must be an object")
        return cls.from_payload(payload)

    def as_payload(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class DispatchResult:
    variant: Variant
    enqueued: bool


class TranscodeDispatcher:
    def __init__(self, queue: JobQueue, policy: OwnerPolicy | None = None):
        self.queue = queue
        self.policy = policy or OwnerPolicy()

    def dispatch(self, principal: Principal, video_id: str, *, force: bool = False) -> DispatchResult:
        video = records.get_video(video_id)
        self.policy.check_access(principal, video.created_by)

        fmt = Variant.Format.TRANSCODED
        existing = records.find_variant(video_id, fmt)

        if existing and not force:
            if existing.transcode_status in (Variant.Status.COMPLETED, Variant.Status.PROCESSING):
                logger.info(
                    "Transcode for %s already %s; not enqueuing", video_id, existing.transcode_status
                )
                return DispatchResult(variant=existing, enqueued=False)

        if existing:
            variant_id = existing.variant_id
            dest_key = existing.object_key
            if force:
                records.reset_variant(video.created_by, video_id, variant_id)
            elif not records.claim_failed_variant(video.created_by, video_id, variant_id):
                # Another dispatch already picked up this retry
                logger.info("Retry of %s already claimed; not enqueuing", variant_id)
                return DispatchResult(variant=records.find_variant(video_id, fmt), enqueued=False)
        else:
            variant_id = keys.variant_id_for(video_id, fmt)
            dest_key = keys.variant_key(video_id, variant_id, TRANSCODED_EXTENSION)
            try:
                records.create_variant(video, variant_id=variant_id, fmt=fmt, object_key=dest_key)
            except Conflict:
                # Lost a race with a concurrent dispatch that created the row first
                winner = records.find_variant(video_id, fmt)
                logger.info("Concurrent dispatch for %s won; returning its row", video_id)
                return DispatchResult(variant=winner, enqueued=False)

        original = records.find_variant(video_id, Variant.Format.ORIGINAL)
        source_key = original.object_key if original else keys.original_key(video_id, video.file_name)
        job = TranscodeJob(
            videoId=video_id,
            variantId=variant_id,
            owner=video.created_by,
            sourceKey=source_key,
            destKey=dest_key,
        )

        try:
            message_id = self.queue.enqueue(job.as_payload(), {"videoId": video_id, "variantId": variant_id})
        except UpstreamUnavailable as e:
            # Never leave a row stuck in processing with no job behind it
            records.mark_variant_failed(video.created_by, video_id, variant_id, f"enqueue failed: {e}")
            raise

        logger.info("Enqueued transcode %s for %s (message %s, force=%s)", variant_id, video_id, message_id, force)
        variant = records.get_variant(video.created_by, video_id, variant_id)
        return DispatchResult(variant=variant, enqueued=True)
