import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .config import PipelineConfig
from .errors import BadRequest, NotFound, UpstreamUnavailable

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchUpload", "NotFound"}
_BAD_PARTS_CODES = {"InvalidPart", "InvalidPartOrder", "EntityTooSmall", "MalformedXML"}


@dataclass(frozen=True)
class ObjectStat:
    exists: bool
    size: int = 0
    last_modified: datetime | None = None


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _translate(exc: Exception, what: str) -> Exception:
    """Map an SDK failure onto the pipeline's error kinds."""
    if isinstance(exc, ClientError):
        code = _error_code(exc)
        if code in _NOT_FOUND_CODES:
            return NotFound(f"{what}: object or upload not found")
        if code in _BAD_PARTS_CODES:
            return BadRequest(f"{what}: {code}")
    logger.warning("Object store call failed (%s): %s", what, exc)
    return UpstreamUnavailable(f"{what}: object store unavailable")


def _session(config: PipelineConfig):
    return boto3.session.Session(
        aws_access_key_id=config.access_key,
        aws_secret_access_key=config.secret_key,
        region_name=config.region,
    )


def _client(config: PipelineConfig, endpoint_url: str | None):
    return _session(config).client(
        "s3",
        endpoint_url=endpoint_url,  # e.g. http://127.0.0.1:9000 for MinIO
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


class ObjectStore:
    """
    Narrow S3/MinIO interface used by the pipeline.

    Two SDK clients: one for server-side calls, and one that signs URLs against
    the PUBLIC endpoint so the host matches what browsers/curl can reach.
    """

    def __init__(self, config: PipelineConfig, client=None, presign_client=None):
        self.config = config
        self.bucket = config.bucket
        self.client = client or _client(config, config.endpoint_url)
        self.presign_client = presign_client or _client(config, config.public_endpoint or config.endpoint_url)

    # -- single-shot writes ---------------------------------------------------
    def signed_write_handle(self, key: str, expires: int | None = None) -> str:
        """
        Presigned PUT URL for a single object.

        ContentType is NOT part of the signature; clients may send or omit the
        header freely.
        """
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires or self.config.presign_ttl_seconds,
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"presign put {key}")

    def put_direct(self, key: str, body: bytes, content_type: str | None = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, **extra)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"put {key}")

    # -- chunked (multipart) writes -----------------------------------------
    def begin_chunked_upload(self, key: str, content_type: str) -> str:
        try:
            resp = self.client.create_multipart_upload(Bucket=self.bucket, Key=key, ContentType=content_type)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"create multipart upload {key}")
        return resp["UploadId"]

    def signed_part_write_handle(self, key: str, upload_id: str, part_number: int) -> str:
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="upload_part",
                Params={
                    "Bucket": self.bucket,
                    "Key": key,
                    "UploadId": upload_id,
                    "PartNumber": part_number,
                },
                ExpiresIn=self.config.presign_ttl_seconds,
                HttpMethod="PUT",
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"presign part {part_number} of {key}")

    def finalize_chunked_upload(self, key: str, upload_id: str, ordered_parts: list[dict]) -> None:
        """`ordered_parts` are {"partNumber", "eTag"} dicts already sorted by part number."""
        try:
            self.client.complete_multipart_upload(
                Bucket=self.bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={
                    "Parts": [{"ETag": p["eTag"], "PartNumber": p["partNumber"]} for p in ordered_parts]
                },
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"complete multipart upload {key}")

    def abort_chunked_upload(self, key: str, upload_id: str) -> None:
        try:
            self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
        except (ClientError, BotoCoreError) as e:
            logger.warning("Failed to abort multipart upload %s for %s: %s", upload_id, key, e)

    # -- stats & reads -----------------------------------------------------
    def stat(self, key: str) -> ObjectStat:
        try:
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return ObjectStat(exists=False)
            raise _translate(e, f"head {key}")
        except BotoCoreError as e:
            raise _translate(e, f"head {key}")
        return ObjectStat(
            exists=True,
            size=int(head.get("ContentLength", 0)),
            last_modified=head.get("LastModified"),
        )

    def signed_read_handle(self, key: str, ttl: int | None = None) -> str:
        """Presigned GET URL; the object must exist (NotFound otherwise)."""
        if not self.stat(key).exists:
            raise NotFound(f"Object {key} not found")
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl or self.config.presign_ttl_seconds,
                HttpMethod="GET",
            )
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"presign get {key}")

    # -- server-side transfer (worker) ----------------------------------------
    def download(self, key: str, dest_dir: str) -> Path:
        dest = Path(dest_dir) / f"source{Path(key).suffix}"
        try:
            self.client.download_file(self.bucket, key, str(dest))
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"download {key}")
        return dest

    def upload(self, local_path, key: str, content_type: str | None = None) -> None:
        """Plain overwrite: uploading the same key twice leaves the last write."""
        extra = {}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"upload {key}")

    # -- maintenance -----------------------------------------------------------
    def iter_objects(self, prefix: str):
        """Yield (key, last_modified) for every object under prefix."""
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    yield obj["Key"], obj.get("LastModified")
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"list {prefix}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise _translate(e, f"delete {key}")
