from datetime import datetime, timezone

import pytest

from videos import keys
from videos.errors import BadRequest


def test_new_video_ids_are_prefixed_and_unique():
    ids = {keys.new_video_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("vid_") for i in ids)


@pytest.mark.parametrize("raw, expected", [
    ("movie.mp4", "movie.mp4"),
    ("../../etc/passwd", "passwd"),
    ("C:\\Users\\me\\My Clip (1).mp4", "My_Clip_1_.mp4"),
    ("  spaced name.mp4 ", "spaced_name.mp4"),
])
def test_sanitize_file_name(raw, expected):
    assert keys.sanitize_file_name(raw) == expected


@pytest.mark.parametrize("raw", ["", "...", "/", "???"])
def test_sanitize_file_name_rejects_unusable(raw):
    with pytest.raises(BadRequest):
        keys.sanitize_file_name(raw)


def test_object_keys_follow_naming_convention():
    assert keys.original_key("vid_abc", "a b.mp4") == "original/vid_abc/a_b.mp4"
    assert keys.variant_key("vid_abc", "vid_abc_transcoded") == "variants/vid_abc/vid_abc_transcoded.mkv"
    assert keys.variant_id_for("vid_abc", "transcoded") == "vid_abc_transcoded"


@pytest.mark.parametrize("key, video_id", [
    ("original/vid_abc/clip.mp4", "vid_abc"),
    ("variants/vid_abc/vid_abc_transcoded.mkv", "vid_abc"),
    ("original/not-a-video/clip.mp4", None),
    ("thumbnails/vid_abc/x.jpg", None),
    ("original/vid_abc", None),
])
def test_video_id_from_key(key, video_id):
    assert keys.video_id_from_key(key) == video_id


def test_cursor_round_trip():
    at = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert keys.decode_cursor(keys.encode_cursor(at, "vid_1")) == (at, "vid_1")


@pytest.mark.parametrize("cursor", ["not base64!", "eyJmb28iOiAxfQ==", "bnVsbA=="])
def test_tampered_cursor_is_bad_request(cursor):
    with pytest.raises(BadRequest):
        keys.decode_cursor(cursor)
