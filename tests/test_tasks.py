from datetime import datetime, timedelta, timezone

import pytest

from videos import records
from videos.models import Variant
from videos.tasks import reconcile, reconcile_variants

pytestmark = pytest.mark.django_db

OLD = datetime(2020, 1, 1, tzinfo=timezone.utc)


def _transcoded(video):
    return Variant.objects.get(video=video, format=Variant.Format.TRANSCODED)


def test_stale_processing_rows_are_failed(pipeline, uploaded_video, alice):
    video = uploaded_video()
    pipeline.dispatcher().dispatch(alice, video.video_id)
    Variant.objects.filter(format=Variant.Format.TRANSCODED).update(updated_at=OLD)

    summary = reconcile(pipeline)

    assert summary["staleFailed"] == 1
    variant = _transcoded(video)
    assert variant.transcode_status == Variant.Status.FAILED
    assert variant.error_message.startswith("stale")


def test_recent_processing_rows_are_left_alone(pipeline, uploaded_video, alice):
    video = uploaded_video()
    pipeline.dispatcher().dispatch(alice, video.video_id)

    assert reconcile(pipeline)["staleFailed"] == 0
    assert _transcoded(video).transcode_status == Variant.Status.PROCESSING


def test_completed_rows_without_objects_are_failed(pipeline, store, uploaded_video, alice):
    video = uploaded_video()
    original = Variant.objects.get(video=video)
    del store.objects[original.object_key]

    summary = reconcile(pipeline)

    assert summary["missingObjects"] == 1
    original.refresh_from_db()
    assert original.transcode_status == Variant.Status.FAILED
    assert original.url == ""


def test_orphan_objects_past_grace_are_deleted(pipeline, store, uploaded_video):
    video = uploaded_video()
    store.client_put("original/vid_gone/a.mp4", 10, last_modified=OLD)
    store.client_put("variants/vid_gone/vid_gone_transcoded.mkv", 10, last_modified=OLD)
    store.client_put("original/vid_fresh/a.mp4", 10)  # upload may still be completing

    summary = reconcile(pipeline)

    assert summary["orphansDeleted"] == 2
    assert sorted(store.deleted) == ["original/vid_gone/a.mp4", "variants/vid_gone/vid_gone_transcoded.mkv"]
    assert "original/vid_fresh/a.mp4" in store.objects
    assert Variant.objects.get(video=video).object_key in store.objects


def test_deleted_video_leaves_objects_for_sweep(pipeline, store, uploaded_video):
    video = uploaded_video()
    key = Variant.objects.get(video=video).object_key
    records.delete_video(video.video_id)

    summary = reconcile(pipeline, now=datetime.now(timezone.utc) + timedelta(days=2))

    assert summary["orphansDeleted"] == 1
    assert key not in store.objects


def test_celery_task_uses_configured_pipeline(pipeline, monkeypatch):
    monkeypatch.setattr("videos.tasks.get_pipeline", lambda: pipeline)
    assert reconcile_variants.apply().get() == {"staleFailed": 0, "missingObjects": 0, "orphansDeleted": 0}
