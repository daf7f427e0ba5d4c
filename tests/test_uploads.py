import math
import random

import pytest
from hypothesis import given, settings as hsettings, strategies as st

from tests.fakes import FakeObjectStore
from videos.config import MB, PipelineConfig
from videos.errors import BadRequest, Conflict, NotFound, UpstreamUnavailable
from videos.models import Variant, Video
from videos.uploads import MULTIPART, SINGLE, UploadCoordinator, normalize_parts, plan_parts

CONFIG = PipelineConfig(bucket="test-bucket", multipart_threshold_bytes=100 * MB, part_size_bytes=10 * MB)


def _coordinator(store=None):
    return UploadCoordinator(store or FakeObjectStore(), CONFIG)


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------
@hsettings(max_examples=50, deadline=None)
@given(size=st.integers(min_value=1, max_value=CONFIG.multipart_threshold_bytes - 1))
def test_below_threshold_gets_single_signed_put(size):
    plan = _coordinator().create_session(file_name="a.mp4", size_bytes=size, content_type="video/mp4")
    body = plan.as_dict()
    assert body["strategy"] == SINGLE
    assert body["url"]
    assert body["key"] == f"original/{body['videoId']}/a.mp4"


@hsettings(max_examples=30, deadline=None)
@given(size=st.integers(min_value=CONFIG.multipart_threshold_bytes, max_value=5 * 1024 * MB))
def test_at_or_above_threshold_gets_multipart_session(size):
    plan = _coordinator().create_session(file_name="a.mp4", size_bytes=size, content_type="video/mp4")
    body = plan.as_dict()
    assert body["strategy"] == MULTIPART
    assert body["uploadId"]
    assert body["partSize"] >= CONFIG.min_part_size_bytes
    assert body["partCount"] == math.ceil(size / body["partSize"])
    assert [p["partNumber"] for p in body["parts"]] == list(range(1, body["partCount"] + 1))
    assert all(p["url"] for p in body["parts"])


def test_part_size_grows_to_respect_part_limit():
    size = 200 * 1024 * MB  # 200 GiB at 10 MiB parts would need 20480 parts
    part_size, count = plan_parts(size, CONFIG)
    assert count <= CONFIG.max_part_count
    assert part_size * count >= size
    assert part_size > CONFIG.part_size_bytes


@pytest.mark.parametrize("kwargs", [
    {"file_name": "a.mov", "size_bytes": MB, "content_type": "video/quicktime"},
    {"file_name": "a.mp4", "size_bytes": 0, "content_type": "video/mp4"},
    {"file_name": "a.mp4", "size_bytes": CONFIG.max_upload_bytes + 1, "content_type": "video/mp4"},
    {"file_name": "???", "size_bytes": MB, "content_type": "video/mp4"},
])
def test_invalid_session_requests_touch_nothing(kwargs):
    store = FakeObjectStore()
    with pytest.raises(BadRequest):
        _coordinator(store).create_session(**kwargs)
    assert store.calls == []


def test_signing_failure_aborts_multipart_session():
    store = FakeObjectStore()
    store.fail_on.add("signed_part_write_handle")
    with pytest.raises(UpstreamUnavailable):
        _coordinator(store).create_session(file_name="a.mp4", size_bytes=250 * MB, content_type="video/mp4")
    assert len(store.aborted) == 1
    assert store.uploads == {}


# ---------------------------------------------------------------------------
# Part list validation
# ---------------------------------------------------------------------------
def test_normalize_parts_sorts_and_accepts_etag_spellings():
    parts = [
        {"partNumber": 3, "ETag": '"c"'},
        {"partNumber": "1", "eTag": '"a"'},
        {"partNumber": 2, "etag": '"b"'},
    ]
    assert normalize_parts(parts, 10_000) == [
        {"partNumber": 1, "eTag": '"a"'},
        {"partNumber": 2, "eTag": '"b"'},
        {"partNumber": 3, "eTag": '"c"'},
    ]


@pytest.mark.parametrize("parts", [
    [],
    None,
    [{"partNumber": 1}],
    [{"partNumber": "one", "eTag": "x"}],
    [{"partNumber": 0, "eTag": "x"}],
    [{"partNumber": 10_001, "eTag": "x"}],
    [{"partNumber": 1, "eTag": "x"}, {"partNumber": 1, "eTag": "y"}],
    ["not-a-dict"],
])
def test_normalize_parts_rejects_malformed(parts):
    with pytest.raises(BadRequest):
        normalize_parts(parts, 10_000)


# ---------------------------------------------------------------------------
# Completion
# ---------------------------------------------------------------------------
def _multipart_upload(store, size=250 * MB):
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="big.mp4", size_bytes=size, content_type="video/mp4")
    parts = []
    remaining = size
    for p in plan.parts:
        chunk = min(plan.part_size, remaining)
        remaining -= chunk
        parts.append({"partNumber": p["partNumber"], "eTag": store.client_put_part(plan.upload_id, p["partNumber"], chunk)})
    return coordinator, plan, parts


@pytest.mark.django_db
def test_complete_multipart_with_shuffled_parts(alice):
    store = FakeObjectStore()
    coordinator, plan, parts = _multipart_upload(store)
    random.Random(7).shuffle(parts)

    video = coordinator.complete(alice, video_id=plan.video_id, key=plan.key, upload_id=plan.upload_id, parts=parts)

    _, _, sent = store.finalized[0]
    assert [p["partNumber"] for p in sent] == list(range(1, 26))
    assert video.created_by == alice.identity
    assert video.title == "big.mp4"
    original = Variant.objects.get(video=video)
    assert original.format == Variant.Format.ORIGINAL
    assert original.transcode_status == Variant.Status.COMPLETED
    assert original.size == 250 * MB
    assert original.object_key == plan.key
    assert original.url


@pytest.mark.django_db
def test_complete_single_upload_uses_stat_size(alice):
    store = FakeObjectStore()
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="clip.mp4", size_bytes=3 * MB, content_type="video/mp4")
    store.client_put(plan.key, 3 * MB - 17)

    video = coordinator.complete(alice, video_id=plan.video_id, key=plan.key, title="My clip", description="d")

    assert video.title == "My clip"
    assert Variant.objects.get(video=video).size == 3 * MB - 17


@pytest.mark.django_db
def test_complete_without_object_writes_nothing(alice):
    store = FakeObjectStore()
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="clip.mp4", size_bytes=MB, content_type="video/mp4")

    with pytest.raises(NotFound):
        coordinator.complete(alice, video_id=plan.video_id, key=plan.key)
    assert not Video.objects.exists()
    assert not Variant.objects.exists()


@pytest.mark.django_db
def test_empty_part_list_rejected_before_store_call(alice):
    store = FakeObjectStore()
    coordinator, plan, _ = _multipart_upload(store)
    store.calls.clear()

    with pytest.raises(BadRequest):
        coordinator.complete(alice, video_id=plan.video_id, key=plan.key, upload_id=plan.upload_id, parts=[])
    assert store.calls == []
    assert not Video.objects.exists()


@pytest.mark.django_db
def test_key_must_belong_to_video(alice):
    store = FakeObjectStore()
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="clip.mp4", size_bytes=MB, content_type="video/mp4")
    store.client_put(plan.key, MB)

    with pytest.raises(BadRequest):
        coordinator.complete(alice, video_id="vid_someoneelse", key=plan.key)
    with pytest.raises(BadRequest):
        coordinator.complete(alice, video_id=plan.video_id, key=f"variants/{plan.video_id}/x.mkv")


@pytest.mark.django_db
def test_completing_twice_conflicts(alice):
    store = FakeObjectStore()
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="clip.mp4", size_bytes=MB, content_type="video/mp4")
    store.client_put(plan.key, MB)

    coordinator.complete(alice, video_id=plan.video_id, key=plan.key)
    with pytest.raises(Conflict):
        coordinator.complete(alice, video_id=plan.video_id, key=plan.key)
    assert Video.objects.count() == 1
    assert Variant.objects.count() == 1


@pytest.mark.django_db
def test_stat_outage_writes_nothing(alice):
    store = FakeObjectStore()
    coordinator = _coordinator(store)
    plan = coordinator.create_session(file_name="clip.mp4", size_bytes=MB, content_type="video/mp4")
    store.client_put(plan.key, MB)
    store.fail_on.add("stat")

    with pytest.raises(UpstreamUnavailable):
        coordinator.complete(alice, video_id=plan.video_id, key=plan.key)
    assert not Video.objects.exists()
