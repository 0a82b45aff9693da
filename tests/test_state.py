import pytest
from django.db import DatabaseError

from videos.errors import PersistenceError, VideoStateConflict
from videos.models import Video
from videos.pipeline import RenditionSet
from videos.state import ProcessingStateRecorder

Stage = Video.Stage


def renditions():
    return RenditionSet(
        video_versions={"original": "https://cdn.test/o.mp4"},
        thumbnails=["https://cdn.test/t.jpg"],
        cdn_url="https://cdn.test/o.mp4",
        video_url="https://cdn.test/o.mp4",
        metadata={"duration": 1.0, "resolution": "320x240", "fileSize": 10, "codec": "h264"},
    )


def test_begin_attempt_marks_processing(video):
    recorder = ProcessingStateRecorder(video.pk, "job-1")
    recorder.begin_attempt()

    video.refresh_from_db()
    assert video.status == Video.Status.PROCESSING
    assert video.stage == Stage.PROBING
    assert video.progress == 0
    assert video.job_id == "job-1"


def test_progress_never_goes_down(video):
    recorder = ProcessingStateRecorder(video.pk)
    recorder.begin_attempt()
    recorder.advance(Stage.GENERATING_THUMBNAILS, 30)
    recorder.advance(Stage.GENERATING_THUMBNAILS, 20)

    video.refresh_from_db()
    assert video.progress == 30
    assert [p for _, p in recorder.history] == [0, 30]


def test_advance_cannot_claim_completion(video):
    recorder = ProcessingStateRecorder(video.pk)
    recorder.begin_attempt()
    recorder.advance(Stage.FINALIZING, 100)

    video.refresh_from_db()
    assert video.progress == 99
    assert video.status == Video.Status.PROCESSING


def test_failure_keeps_last_progress(video):
    recorder = ProcessingStateRecorder(video.pk)
    recorder.begin_attempt()
    recorder.advance(Stage.TRANSCODING, 50)
    assert recorder.fail("TranscodeError: boom") is True

    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.progress == 50
    assert video.error == "TranscodeError: boom"


def test_completed_video_cannot_be_failed(video):
    recorder = ProcessingStateRecorder(video.pk)
    recorder.begin_attempt()
    recorder.complete(renditions())

    assert recorder.fail("late error") is False
    video.refresh_from_db()
    assert video.status == Video.Status.COMPLETED
    assert video.progress == 100
    assert video.error == ""


def test_failed_video_cannot_complete(video):
    recorder = ProcessingStateRecorder(video.pk)
    recorder.begin_attempt()
    recorder.fail("UploadError: bucket gone")

    with pytest.raises(VideoStateConflict):
        recorder.complete(renditions())
    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.progress != 100


def test_deleted_video_is_a_conflict(video):
    recorder = ProcessingStateRecorder(video.pk)
    video.delete()
    with pytest.raises(VideoStateConflict):
        recorder.begin_attempt()


def test_database_errors_become_persistence_errors(video, monkeypatch):
    def broken_filter(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(Video.objects, "filter", broken_filter)
    with pytest.raises(PersistenceError, match="connection lost") as excinfo:
        ProcessingStateRecorder(video.pk).begin_attempt()
    assert excinfo.value.retryable is True
