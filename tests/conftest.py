import pytest
from rest_framework.test import APIClient

from tests.fakes import FakeClock, FakeJobQueue, FakeObjectStore, fake_transcode
from videos.config import MB, PipelineConfig
from videos.identity import OwnerPolicy, Principal
from videos.services import Pipeline
from videos.worker import RecordStoreReporter, TranscodeWorker


@pytest.fixture
def config():
    return PipelineConfig(
        bucket="test-bucket",
        access_key="testing",
        secret_key="testing",
        multipart_threshold_bytes=100 * MB,
        part_size_bytes=10 * MB,
        queue_url="https://sqs.us-east-1.amazonaws.com/123456789012/jobs",
        lease_seconds=300,
        heartbeat_seconds=120,
        receive_wait_seconds=0,
        max_receive_count=3,
        job_token="s3cret",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def queue(clock, config):
    return FakeJobQueue(clock, lease_seconds=config.lease_seconds, max_receive_count=config.max_receive_count)


@pytest.fixture
def pipeline(config, store, queue):
    return Pipeline(config=config, store=store, queue=queue, policy=OwnerPolicy())


@pytest.fixture
def make_worker(config, store, queue):
    def _make(transcoder=fake_transcode, reporter=None):
        return TranscodeWorker(
            config, store, queue, reporter or RecordStoreReporter(), transcoder=transcoder, manage_db_connections=False
        )
    return _make


@pytest.fixture
def alice():
    return Principal(identity="alice@example.com")


@pytest.fixture
def bob():
    return Principal(identity="bob@example.com")


@pytest.fixture
def admin():
    return Principal(identity="admin@example.com", is_admin=True)


@pytest.fixture
def uploaded_video(pipeline, store, alice):
    """A completed single-shot upload owned by alice."""
    def _upload(file_name="lecture.mp4", size=5 * MB, title=None):
        coordinator = pipeline.coordinator()
        plan = coordinator.create_session(file_name=file_name, size_bytes=size, content_type="video/mp4")
        store.client_put(plan.key, size)
        return coordinator.complete(alice, video_id=plan.video_id, key=plan.key, title=title)
    return _upload


@pytest.fixture
def api(pipeline, monkeypatch, settings):
    settings.API_JOB_STATUS_TOKEN = "s3cret"
    monkeypatch.setattr("videos.views.get_pipeline", lambda: pipeline)
    return APIClient()
