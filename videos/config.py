from dataclasses import dataclass

from django.core.exceptions import ImproperlyConfigured

MB = 1024 * 1024

# S3 multipart limits
MIN_PART_SIZE_BYTES = 5 * MB
MAX_PART_COUNT = 10_000


@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable runtime configuration, built once at startup (or per request from
    Django settings) and passed explicitly into every component.
    """

    bucket: str
    region: str = "us-east-1"
    endpoint_url: str | None = None
    public_endpoint: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    presign_ttl_seconds: int = 3600

    allowed_content_types: tuple[str, ...] = ("video/mp4",)
    max_upload_bytes: int = 50 * 1024 * MB
    multipart_threshold_bytes: int = 100 * MB
    part_size_bytes: int = 10 * MB
    min_part_size_bytes: int = MIN_PART_SIZE_BYTES
    max_part_count: int = MAX_PART_COUNT

    queue_url: str = ""
    queue_region: str = "us-east-1"
    queue_endpoint_url: str | None = None
    max_receive_count: int = 5
    lease_seconds: int = 300
    heartbeat_seconds: int = 120
    receive_wait_seconds: int = 20
    worker_concurrency: int = 1
    temp_dir: str | None = None

    job_token: str = ""
    job_status_url: str = ""

    ffmpeg_path: str = "ffmpeg"
    ffmpeg_preset: str = "medium"
    ffmpeg_timeout_seconds: int = 7200

    list_default_limit: int = 10
    list_max_limit: int = 100
    stale_processing_seconds: int = 6 * 60 * 60
    orphan_grace_seconds: int = 24 * 60 * 60

    def __post_init__(self):
        if not self.bucket:
            raise ImproperlyConfigured("S3_BUCKET must be set")
        if self.multipart_threshold_bytes <= 0:
            raise ImproperlyConfigured("Multipart threshold must be positive")
        if self.part_size_bytes < self.min_part_size_bytes:
            raise ImproperlyConfigured(
                f"Multipart part size {self.part_size_bytes} is below the minimum {self.min_part_size_bytes}"
            )
        if self.heartbeat_seconds >= self.lease_seconds:
            raise ImproperlyConfigured(
                f"Heartbeat interval ({self.heartbeat_seconds}s) must be shorter than the lease ({self.lease_seconds}s)"
            )
        if self.worker_concurrency < 1:
            raise ImproperlyConfigured("WORKER_CONCURRENCY must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "PipelineConfig":
        return cls(
            bucket=settings.S3_BUCKET,
            region=settings.S3_REGION,
            endpoint_url=settings.S3_ENDPOINT_URL,
            public_endpoint=settings.S3_PUBLIC_ENDPOINT,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
            presign_ttl_seconds=settings.S3_PRESIGN_EXPIRE_SECONDS,
            allowed_content_types=tuple(settings.UPLOAD_ALLOWED_CONTENT_TYPES),
            max_upload_bytes=settings.UPLOAD_MAX_BYTES,
            multipart_threshold_bytes=settings.MULTIPART_THRESHOLD_BYTES,
            part_size_bytes=max(settings.MULTIPART_PART_SIZE_BYTES, MIN_PART_SIZE_BYTES),
            queue_url=settings.JOBS_QUEUE_URL,
            queue_region=settings.JOBS_QUEUE_REGION,
            queue_endpoint_url=settings.JOBS_QUEUE_ENDPOINT_URL,
            max_receive_count=settings.JOBS_MAX_RECEIVE_COUNT,
            lease_seconds=settings.WORKER_LEASE_SECONDS,
            heartbeat_seconds=settings.WORKER_HEARTBEAT_SECONDS,
            receive_wait_seconds=settings.WORKER_RECEIVE_WAIT_SECONDS,
            worker_concurrency=settings.WORKER_CONCURRENCY,
            temp_dir=settings.WORKER_TEMP_DIR,
            job_token=settings.API_JOB_STATUS_TOKEN,
            job_status_url=settings.JOB_STATUS_URL,
            ffmpeg_path=settings.FFMPEG_PATH,
            ffmpeg_preset=settings.FFMPEG_PRESET,
            ffmpeg_timeout_seconds=settings.FFMPEG_TIMEOUT_SECONDS,
            list_default_limit=settings.LIST_DEFAULT_LIMIT,
            list_max_limit=settings.LIST_MAX_LIMIT,
            stale_processing_seconds=settings.RECONCILE_STALE_PROCESSING_SECONDS,
            orphan_grace_seconds=settings.RECONCILE_ORPHAN_GRACE_SECONDS,
        )
