import pytest

from videos import records
from videos.errors import BadRequest, Forbidden, NotFound, UpstreamUnavailable
from videos.models import Variant
from videos.transcoding import TranscodeJob

pytestmark = pytest.mark.django_db


def _transcoded_rows(video_id):
    return Variant.objects.filter(video_id=video_id, format=Variant.Format.TRANSCODED)


def test_dispatch_creates_processing_row_and_one_job(pipeline, queue, uploaded_video, alice):
    video = uploaded_video()

    result = pipeline.dispatcher().dispatch(alice, video.video_id)

    assert result.enqueued is True
    assert result.variant.transcode_status == Variant.Status.PROCESSING
    assert result.variant.variant_id == f"{video.video_id}_transcoded"
    [payload] = queue.payloads()
    assert payload == {
        "videoId": video.video_id,
        "variantId": f"{video.video_id}_transcoded",
        "owner": alice.identity,
        "sourceKey": f"original/{video.video_id}/lecture.mp4",
        "destKey": f"variants/{video.video_id}/{video.video_id}_transcoded.mkv",
    }


def test_repeat_dispatch_is_idempotent(pipeline, queue, uploaded_video, alice):
    video = uploaded_video()
    dispatcher = pipeline.dispatcher()

    first = dispatcher.dispatch(alice, video.video_id)
    second = dispatcher.dispatch(alice, video.video_id)

    assert second.enqueued is False
    assert second.variant.pk == first.variant.pk
    assert _transcoded_rows(video.video_id).count() == 1
    assert len(queue.messages) == 1


def test_completed_variant_is_returned_without_new_job(pipeline, queue, uploaded_video, alice):
    video = uploaded_video()
    first = pipeline.dispatcher().dispatch(alice, video.video_id)
    records.mark_variant_completed(alice.identity, video.video_id, first.variant.variant_id, size=9, url="u")
    queue.messages.clear()

    result = pipeline.dispatcher().dispatch(alice, video.video_id)

    assert result.enqueued is False
    assert result.variant.transcode_status == Variant.Status.COMPLETED
    assert queue.messages == {}


def test_failed_variant_is_retried(pipeline, queue, uploaded_video, alice):
    video = uploaded_video()
    first = pipeline.dispatcher().dispatch(alice, video.video_id)
    records.mark_variant_failed(alice.identity, video.video_id, first.variant.variant_id, "boom")

    result = pipeline.dispatcher().dispatch(alice, video.video_id)

    assert result.enqueued is True
    assert result.variant.transcode_status == Variant.Status.PROCESSING
    assert result.variant.error_message == ""
    assert _transcoded_rows(video.video_id).count() == 1
    assert len(queue.messages) == 2


@pytest.mark.parametrize("mark", ["completed", "processing"])
def test_force_resets_existing_row_and_enqueues(pipeline, queue, uploaded_video, alice, mark):
    video = uploaded_video()
    first = pipeline.dispatcher().dispatch(alice, video.video_id)
    if mark == "completed":
        records.mark_variant_completed(alice.identity, video.video_id, first.variant.variant_id, size=9, url="u")

    result = pipeline.dispatcher().dispatch(alice, video.video_id, force=True)

    assert result.enqueued is True
    assert result.variant.transcode_status == Variant.Status.PROCESSING
    assert result.variant.url == ""
    assert _transcoded_rows(video.video_id).count() == 1
    assert len(queue.messages) == 2


def test_enqueue_failure_marks_variant_failed(pipeline, queue, uploaded_video, alice):
    video = uploaded_video()
    queue.fail_enqueue = True

    with pytest.raises(UpstreamUnavailable):
        pipeline.dispatcher().dispatch(alice, video.video_id)

    variant = _transcoded_rows(video.video_id).get()
    assert variant.transcode_status == Variant.Status.FAILED
    assert "enqueue failed" in variant.error_message


def test_other_owner_is_forbidden_admin_is_not(pipeline, queue, uploaded_video, bob, admin):
    video = uploaded_video()
    with pytest.raises(Forbidden):
        pipeline.dispatcher().dispatch(bob, video.video_id)
    assert not _transcoded_rows(video.video_id).exists()

    result = pipeline.dispatcher().dispatch(admin, video.video_id)
    assert result.enqueued is True
    # The row still belongs to the video's owner
    assert result.variant.owner == video.created_by


def test_unknown_video(pipeline, alice):
    with pytest.raises(NotFound):
        pipeline.dispatcher().dispatch(alice, "vid_missing")


@pytest.mark.parametrize("body", ["not json", "[]", '{"videoId": "v"}'])
def test_malformed_job_body(body):
    with pytest.raises(BadRequest):
        TranscodeJob.from_body(body)


def _stale_lookup(monkeypatch, snapshot):
    """The next lookup of the transcoded row returns `snapshot`, as a racing request would have seen it."""
    real = records.find_variant
    pending = [snapshot]

    def find_variant(video_id, fmt):
        if fmt == Variant.Format.TRANSCODED and pending:
            return pending.pop()
        return real(video_id, fmt)

    monkeypatch.setattr(records, "find_variant", find_variant)


def test_concurrent_retries_of_failed_row_enqueue_once(pipeline, queue, uploaded_video, alice, monkeypatch):
    video = uploaded_video()
    first = pipeline.dispatcher().dispatch(alice, video.video_id)
    records.mark_variant_failed(alice.identity, video.video_id, first.variant.variant_id, "boom")
    seen_failed = _transcoded_rows(video.video_id).get()
    queue.messages.clear()

    winner = pipeline.dispatcher().dispatch(alice, video.video_id)
    # The second request read the row while it was still failed
    _stale_lookup(monkeypatch, seen_failed)
    loser = pipeline.dispatcher().dispatch(alice, video.video_id)

    assert winner.enqueued is True
    assert loser.enqueued is False
    assert loser.variant.transcode_status == Variant.Status.PROCESSING
    assert len(queue.messages) == 1


def test_losing_create_race_returns_existing_row(pipeline, queue, uploaded_video, alice, monkeypatch):
    video = uploaded_video()
    winner = pipeline.dispatcher().dispatch(alice, video.video_id)
    # The second request saw no transcoded row yet
    _stale_lookup(monkeypatch, None)

    loser = pipeline.dispatcher().dispatch(alice, video.video_id)

    assert loser.enqueued is False
    assert loser.variant.pk == winner.variant.pk
    assert _transcoded_rows(video.video_id).count() == 1
    assert len(queue.messages) == 1
