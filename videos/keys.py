"""
Identifier, object-key and cursor helpers shared by the coordinator, the
dispatcher, the worker and the record store.

Object keys tie bytes to records by convention:
    original/<videoId>/<fileName>
    variants/<videoId>/<variantId>.<ext>
"""
import base64
import binascii
import json
import os
import re
from datetime import datetime
from uuid import uuid4

from .errors import BadRequest

VIDEO_ID_PREFIX = "vid_"
ORIGINAL_PREFIX = "original/"
VARIANTS_PREFIX = "variants/"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def new_video_id() -> str:
    return f"{VIDEO_ID_PREFIX}{uuid4().hex}"


def variant_id_for(video_id: str, fmt: str) -> str:
    """One variant row per (video, format): the id is derived, not random."""
    return f"{video_id}_{fmt}"


def sanitize_file_name(file_name: str) -> str:
    """Strip directories and anything that is not safe in an object key."""
    base = os.path.basename((file_name or "").replace("\\", "/")).strip()
    safe = _UNSAFE_CHARS.sub("_", base).strip("._")
    if not safe:
        raise BadRequest("fileName must contain at least one usable character")
    return safe[:200]


def original_key(video_id: str, file_name: str) -> str:
    return f"{ORIGINAL_PREFIX}{video_id}/{sanitize_file_name(file_name)}"


def variant_key(video_id: str, variant_id: str, extension: str = "mkv") -> str:
    return f"{VARIANTS_PREFIX}{video_id}/{variant_id}.{extension}"


def video_id_from_key(key: str) -> str | None:
    """Return the videoId segment of an original/ or variants/ key, else None."""
    for prefix in (ORIGINAL_PREFIX, VARIANTS_PREFIX):
        if key.startswith(prefix):
            rest = key[len(prefix):]
            video_id, sep, _ = rest.partition("/")
            if sep and video_id.startswith(VIDEO_ID_PREFIX):
                return video_id
    return None


def encode_cursor(created_at: datetime, video_id: str) -> str:
    raw = json.dumps({"createdAt": created_at.isoformat(), "videoId": video_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Inverse of encode_cursor. Any tampering surfaces as BadRequest."""
    try:
        data = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        return datetime.fromisoformat(data["createdAt"]), str(data["videoId"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError):
        raise BadRequest("Invalid pagination cursor")
