"""
Upload coordination: single presigned PUT for small files, S3 multipart with one
presigned URL per part for large ones, then verification and record creation.
"""
import logging
import math
from dataclasses import dataclass, field

from . import keys, records
from .config import PipelineConfig
from .errors import BadRequest, NotFound, PipelineError
from .identity import OwnerPolicy, Principal
from .models import Video
from .s3 import ObjectStore

logger = logging.getLogger(__name__)

SINGLE = "single"
MULTIPART = "multipart"


@dataclass(frozen=True)
class UploadPlan:
    strategy: str
    video_id: str
    key: str
    url: str | None = None
    upload_id: str | None = None
    part_size: int | None = None
    parts: list = field(default_factory=list)

    def as_dict(self) -> dict:
        if self.strategy == SINGLE:
            return {"strategy": SINGLE, "videoId": self.video_id, "key": self.key, "url": self.url}
        return {
            "strategy": MULTIPART,
            "videoId": self.video_id,
            "key": self.key,
            "uploadId": self.upload_id,
            "partSize": self.part_size,
            "partCount": len(self.parts),
            "parts": self.parts,
        }


def plan_parts(size_bytes: int, config: PipelineConfig) -> tuple[int, int]:
    """Return (part_size, part_count); the part size grows if needed to stay under the part limit."""
    part_size = max(
        config.part_size_bytes,
        config.min_part_size_bytes,
        math.ceil(size_bytes / config.max_part_count),
    )
    return part_size, math.ceil(size_bytes / part_size)


def normalize_parts(parts, max_part_count: int) -> list[dict]:
    """
    Validate client-supplied {partNumber, eTag} entries and sort them by part
    number; the client's ordering is never trusted.
    """
    if not isinstance(parts, (list, tuple)) or not parts:
        raise BadRequest("parts required for multipart completion")

    seen = set()
    cleaned = []
    for p in parts:
        if not isinstance(p, dict):
            raise BadRequest("Each part must be an object with partNumber and eTag")
        etag = p.get("eTag") or p.get("ETag") or p.get("etag")
        try:
            number = int(p.get("partNumber"))
        except (TypeError, ValueError):
            raise BadRequest("partNumber must be an integer")
        if not 1 <= number <= max_part_count:
            raise BadRequest(f"partNumber {number} out of range")
        if not etag or not isinstance(etag, str):
            raise BadRequest(f"Missing eTag for part {number}")
        if number in seen:
            raise BadRequest(f"Duplicate partNumber {number}")
        seen.add(number)
        cleaned.append({"partNumber": number, "eTag": etag})
    return sorted(cleaned, key=lambda p: p["partNumber"])


class UploadCoordinator:
    def __init__(self, store: ObjectStore, config: PipelineConfig, policy: OwnerPolicy | None = None):
        self.store = store
        self.config = config
        self.policy = policy or OwnerPolicy()

    def create_session(self, *, file_name: str, size_bytes: int, content_type: str) -> UploadPlan:
        if content_type not in self.config.allowed_content_types:
            allowed = ", ".join(self.config.allowed_content_types)
            raise BadRequest(f"Unsupported content type {content_type!r}; allowed: {allowed}")
        if not isinstance(size_bytes, int) or size_bytes <= 0:
            raise BadRequest("sizeBytes must be a positive integer")
        if size_bytes > self.config.max_upload_bytes:
            raise BadRequest(f"sizeBytes exceeds the maximum of {self.config.max_upload_bytes} bytes")

        video_id = keys.new_video_id()
        key = keys.original_key(video_id, file_name)

        if size_bytes < self.config.multipart_threshold_bytes:
            url = self.store.signed_write_handle(key)
            logger.info("Single upload session for %s (%d bytes)", video_id, size_bytes)
            return UploadPlan(strategy=SINGLE, video_id=video_id, key=key, url=url)

        part_size, part_count = plan_parts(size_bytes, self.config)
        upload_id = self.store.begin_chunked_upload(key, content_type)
        try:
            parts = [
                {"partNumber": n, "url": self.store.signed_part_write_handle(key, upload_id, n)}
                for n in range(1, part_count + 1)
            ]
        except PipelineError:
            self.store.abort_chunked_upload(key, upload_id)
            raise
        logger.info(
            "Multipart upload session for %s: %d bytes in %d parts of %d",
            video_id, size_bytes, part_count, part_size,
        )
        return UploadPlan(
            strategy=MULTIPART,
            video_id=video_id,
            key=key,
            upload_id=upload_id,
            part_size=part_size,
            parts=parts,
        )

    def complete(
        self,
        principal: Principal,
        *,
        video_id: str,
        key: str,
        upload_id: str | None = None,
        parts=None,
        title: str | None = None,
        description: str | None = None,
    ) -> Video:
        if keys.video_id_from_key(key) != video_id or not key.startswith(keys.ORIGINAL_PREFIX):
            raise BadRequest("key does not belong to videoId")

        # Validate everything before touching the store
        ordered = normalize_parts(parts, self.config.max_part_count) if upload_id else None

        if upload_id:
            self.store.finalize_chunked_upload(key, upload_id, ordered)

        stat = self.store.stat(key)
        if not stat.exists:
            raise NotFound("Uploaded object not found; upload it before completing")

        url = self.store.signed_read_handle(key)
        file_name = key.rsplit("/", 1)[-1]
        owner = self.policy.owner_for_new_records(principal)
        video = records.create_video_with_original(
            video_id=video_id,
            owner=owner,
            file_name=file_name,
            title=title or file_name,
            description=description,
            original={
                "variant_id": keys.variant_id_for(video_id, "original"),
                "resolution": "source",
                "size": stat.size,
                "url": url,
                "object_key": key,
            },
        )
        logger.info("Upload completed for %s (%d bytes, owner=%s)", video_id, stat.size, owner)
        return video
