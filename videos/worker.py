"""
Transcode worker: pulls jobs from the queue, keeps the lease alive while it works,
and reports a terminal state for the Variant.

On success the message is acknowledged (deleted). On failure it is left alone so
the visibility timeout hands it to another attempt; the queue's redrive policy
dead-letters it after maxReceiveCount receives.
"""
import logging
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import httpx
from django.db import close_old_connections, connections

from . import codec, records
from .config import PipelineConfig
from .errors import BadRequest, NotFound, UpstreamUnavailable
from .jobqueue import JobMessage, JobQueue
from .permissions import JOB_TOKEN_HEADER
from .s3 import ObjectStore
from .transcoding import TranscodeJob

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Terminal-state reporting
# ---------------------------------------------------------------------------
class RecordStoreReporter:
    """Patch the record store directly (worker runs inside this project)."""

    def completed(self, job: TranscodeJob, *, size: int, url: str) -> None:
        records.mark_variant_completed(job.owner, job.videoId, job.variantId, size=size, url=url)

    def failed(self, job: TranscodeJob, message: str) -> None:
        records.mark_variant_failed(job.owner, job.videoId, job.variantId, message)


class HttpStatusReporter:
    """Report through the job-status ingress, authenticated by the shared token."""

    def __init__(self, url: str, token: str, timeout: float = 10.0, client: httpx.Client | None = None):
        self.url = url
        self.token = token
        self.client = client or httpx.Client(timeout=timeout)

    def _post(self, body: dict) -> None:
        resp = self.client.post(self.url, json=body, headers={JOB_TOKEN_HEADER: self.token})
        if resp.status_code == 404:
            raise NotFound(f"Variant {body['variantId']} not found")
        resp.raise_for_status()

    def completed(self, job: TranscodeJob, *, size: int, url: str) -> None:
        self._post({
            "owner": job.owner,
            "videoId": job.videoId,
            "variantId": job.variantId,
            "status": "completed",
            "url": url,
            "size": size,
        })

    def failed(self, job: TranscodeJob, message: str) -> None:
        self._post({
            "owner": job.owner,
            "videoId": job.videoId,
            "variantId": job.variantId,
            "status": "failed",
            "error": message[:1000],
        })


def build_reporter(config: PipelineConfig):
    if config.job_status_url:
        return HttpStatusReporter(config.job_status_url, config.job_token)
    return RecordStoreReporter()


# ---------------------------------------------------------------------------
# Lease heartbeat
# ---------------------------------------------------------------------------
class LeaseHeartbeat:
    """
    Extends a message's visibility immediately and then every `interval` seconds
    until the block exits. The interval must be shorter than the lease.
    """

    def __init__(self, queue: JobQueue, message: JobMessage, lease_seconds: int, interval_seconds: float):
        if interval_seconds >= lease_seconds:
            raise ValueError("heartbeat interval must be shorter than the lease")
        self.queue = queue
        self.message = message
        self.lease_seconds = lease_seconds
        self.interval_seconds = interval_seconds
        self.beats = 0
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"heartbeat-{message.message_id}", daemon=True
        )

    def _beat(self):
        try:
            self.queue.extend_lease(self.message, self.lease_seconds)
            self.beats += 1
        except UpstreamUnavailable as e:
            logger.warning("Heartbeat for message %s failed: %s", self.message.message_id, e)

    def _run(self):
        self._beat()
        while not self._stop.wait(self.interval_seconds):
            self._beat()

    def __enter__(self):
        self._thread.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._stop.set()
        self._thread.join(timeout=self.interval_seconds + 5)
        return False


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------
class TranscodeWorker:
    def __init__(self, config: PipelineConfig, store: ObjectStore, queue: JobQueue, reporter=None,
                 transcoder=codec.transcode, manage_db_connections: bool = True):
        self.config = config
        self.store = store
        self.queue = queue
        self.reporter = reporter or build_reporter(config)
        self.transcoder = transcoder
        # Disable when the caller already owns the DB connection (an enclosing atomic block)
        self.manage_db_connections = manage_db_connections

    def run_forever(self, stop_event: threading.Event | None = None, idle_backoff: float = 5.0):
        stop_event = stop_event or threading.Event()
        logger.info(
            "Worker started (concurrency=%d, lease=%ds, heartbeat=%ds)",
            self.config.worker_concurrency, self.config.lease_seconds, self.config.heartbeat_seconds,
        )
        while not stop_event.is_set():
            try:
                self.poll_once()
            except UpstreamUnavailable as e:
                logger.error("Queue receive failed: %s", e)
                stop_event.wait(idle_backoff)
        logger.info("Worker stopped")

    def poll_once(self) -> int:
        messages = self.queue.receive(self.config.worker_concurrency, self.config.receive_wait_seconds)
        if len(messages) <= 1 or self.config.worker_concurrency == 1:
            for message in messages:
                self._handle(message)
        else:
            with ThreadPoolExecutor(max_workers=self.config.worker_concurrency) as pool:
                list(pool.map(self._handle_in_thread, messages))
        return len(messages)

    def _handle(self, message: JobMessage) -> bool:
        """process_message between checks that drop broken or expired DB connections."""
        if not self.manage_db_connections:
            return self.process_message(message)
        close_old_connections()
        try:
            return self.process_message(message)
        finally:
            close_old_connections()

    def _handle_in_thread(self, message: JobMessage) -> bool:
        try:
            return self._handle(message)
        finally:
            if self.manage_db_connections:
                # Pool threads are short-lived; their connections go with them
                connections.close_all()

    def process_message(self, message: JobMessage) -> bool:
        """Run one job. Returns True when the job completed and the message was acknowledged."""
        try:
            job = TranscodeJob.from_body(message.body)
        except BadRequest as e:
            logger.error("Unprocessable message %s left for dead-letter: %s", message.message_id, e)
            return False

        logger.info(
            "Processing %s/%s (message %s, receive #%d)",
            job.videoId, job.variantId, message.message_id, message.receive_count,
        )
        if message.receive_count >= self.config.max_receive_count:
            logger.warning(
                "Message %s is on its last delivery before dead-letter (receive #%d)",
                message.message_id, message.receive_count,
            )

        with LeaseHeartbeat(self.queue, message, self.config.lease_seconds, self.config.heartbeat_seconds):
            try:
                size, url = self._run_job(job)
            except Exception as e:  # every failure ends in `failed`; redelivery is the retry
                logger.exception("Transcode %s/%s failed", job.videoId, job.variantId)
                self._report_failed(job, str(e))
                return False

            try:
                self.reporter.completed(job, size=size, url=url)
            except NotFound:
                logger.warning("Variant %s/%s no longer exists; dropping job", job.videoId, job.variantId)
                self._acknowledge(message)
                return False
            except Exception:
                logger.exception("Could not report completion of %s/%s", job.videoId, job.variantId)
                return False

        self._acknowledge(message)
        logger.info("Completed %s/%s (%d bytes); message deleted", job.videoId, job.variantId, size)
        return True

    def _run_job(self, job: TranscodeJob) -> tuple[int, str]:
        with tempfile.TemporaryDirectory(prefix=f"{job.videoId}-", dir=self.config.temp_dir) as tmp:
            source = self.store.download(job.sourceKey, tmp)
            output = Path(tmp) / f"{job.variantId}.{codec.TRANSCODED_EXTENSION}"
            self.transcoder(self.config, source, output)
            self.store.upload(output, job.destKey, codec.TRANSCODED_CONTENT_TYPE)

        stat = self.store.stat(job.destKey)
        if not stat.exists:
            raise UpstreamUnavailable(f"Uploaded rendition {job.destKey} is not visible")
        url = self.store.signed_read_handle(job.destKey)
        return stat.size, url

    def _report_failed(self, job: TranscodeJob, message: str) -> None:
        try:
            self.reporter.failed(job, message)
        except NotFound:
            logger.warning("Variant %s/%s no longer exists; nothing to mark failed", job.videoId, job.variantId)
        except Exception:
            logger.exception("Could not report failure of %s/%s", job.videoId, job.variantId)

    def _acknowledge(self, message: JobMessage) -> None:
        try:
            self.queue.acknowledge(message)
        except UpstreamUnavailable as e:
            # Redelivery will repeat an idempotent job
            logger.warning("Could not delete message %s: %s", message.message_id, e)
