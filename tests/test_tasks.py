from datetime import timedelta

import pytest
from celery.exceptions import Retry
from django.utils import timezone

from videos.errors import ProbeError, TranscodeError
from videos.models import ProcessingJob, Video
from videos.tasks import _lease_wait, backoff_seconds, process_video

from .fakes import failing


@pytest.fixture
def use_pipeline(monkeypatch):
    def install(pipeline):
        monkeypatch.setattr("videos.tasks.get_pipeline", lambda: pipeline)
        return pipeline

    return install


@pytest.fixture
def rescheduled(monkeypatch):
    """Records lease-wait reschedules instead of replaying them eagerly."""
    calls = []

    def retry(*args, **kwargs):
        calls.append(kwargs)
        return Retry("rescheduled", when=kwargs.get("countdown"))

    monkeypatch.setattr(process_video, "retry", retry)
    return calls


def test_backoff_doubles_from_two_seconds():
    assert [backoff_seconds(n) for n in (1, 2, 3)] == [2, 4, 8]


def test_successful_job_is_discarded(processing_job, video, make_pipeline, use_pipeline):
    use_pipeline(make_pipeline())

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.successful()
    assert result.get()["status"] == "completed"
    assert not ProcessingJob.objects.filter(pk=processing_job.pk).exists()
    video.refresh_from_db()
    assert video.status == Video.Status.COMPLETED
    assert video.progress == 100
    assert video.job_id == str(processing_job.pk)


def test_retries_exhaust_after_three_attempts(processing_job, video, make_pipeline, use_pipeline, raw_upload):
    transcoder = failing(lambda: TranscodeError("encoder crashed"))
    pipeline = use_pipeline(make_pipeline(transcoder=transcoder))

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.failed()
    assert len(transcoder.calls) == 3

    processing_job.refresh_from_db()
    assert processing_job.state == ProcessingJob.State.FAILED
    assert processing_job.attempts == 3
    assert "encoder crashed" in processing_job.last_error

    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.stage == Video.Stage.FAILED
    assert "encoder crashed" in video.error
    assert video.progress == 50  # where the last attempt stopped
    assert video.video_versions == {}

    # nothing is cleaned up on failure
    assert raw_upload.exists()
    assert len(list((pipeline.workdir_for(video.pk) / "thumbnails").glob("*.jpg"))) == 5


def test_malformed_input_fails_on_first_attempt(processing_job, video, make_pipeline, use_pipeline, raw_upload):
    prober = failing(lambda: ProbeError("no video stream found in clip.mp4"))
    use_pipeline(make_pipeline(prober=prober))

    process_video.apply(args=[str(processing_job.pk)])

    assert len(prober.calls) == 1
    processing_job.refresh_from_db()
    assert processing_job.attempts == 1
    assert processing_job.state == ProcessingJob.State.FAILED

    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.error.startswith("ProbeError:")
    assert video.progress == 0
    assert raw_upload.exists()


def test_transient_failure_then_success(processing_job, video, make_pipeline, use_pipeline, store):
    outcomes = [TranscodeError("disk full")]

    def flaky_transcoder(input_path, out_path, preset):
        if outcomes:
            raise outcomes.pop()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_bytes(preset.label.encode())
        return out_path

    use_pipeline(make_pipeline(transcoder=flaky_transcoder))

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.get()["status"] == "completed"
    video.refresh_from_db()
    assert video.status == Video.Status.COMPLETED
    assert video.error == ""
    assert not ProcessingJob.objects.filter(pk=processing_job.pk).exists()


def test_unexpected_errors_are_retried(processing_job, video, make_pipeline, use_pipeline):
    thumbnailer = failing(lambda: RuntimeError("segfault in libavcodec"))
    use_pipeline(make_pipeline(thumbnailer=thumbnailer))

    process_video.apply(args=[str(processing_job.pk)])

    assert len(thumbnailer.calls) == 3
    video.refresh_from_db()
    assert video.error == "RuntimeError: segfault in libavcodec"


def test_leased_job_is_not_processed_twice(processing_job, make_pipeline, use_pipeline, rescheduled):
    prober = failing(lambda: AssertionError("should not run"))
    use_pipeline(make_pipeline(prober=prober))
    assert processing_job.claim("worker-a", lease_seconds=600)

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.state == "RETRY"
    assert prober.calls == []


def test_redelivery_during_live_lease_is_rescheduled_not_dropped(processing_job, video, make_pipeline,
                                                                  use_pipeline, rescheduled):
    # a crashed worker's message comes straight back while its lease still runs
    use_pipeline(make_pipeline())
    assert processing_job.claim("crashed-worker", lease_seconds=600)
    Video.objects.filter(pk=video.pk).update(status=Video.Status.PROCESSING, stage=Video.Stage.TRANSCODING)

    process_video.apply(args=[str(processing_job.pk)])

    assert len(rescheduled) == 1
    assert 590 <= rescheduled[0]["countdown"] <= 600
    processing_job.refresh_from_db()
    assert processing_job.state == ProcessingJob.State.ACTIVE
    assert processing_job.attempts == 1  # waiting on a lease is not an attempt
    video.refresh_from_db()
    assert video.status == Video.Status.PROCESSING


def test_lease_wait_is_never_zero(processing_job):
    assert _lease_wait(processing_job) == 1
    processing_job.lease_expires_at = timezone.now() - timedelta(seconds=30)
    assert _lease_wait(processing_job) == 1
    processing_job.lease_expires_at = timezone.now() + timedelta(seconds=90)
    assert 89 <= _lease_wait(processing_job) <= 90


def test_redelivery_after_completion_discards_the_job(processing_job, video, make_pipeline, use_pipeline,
                                                      raw_upload):
    prober = failing(lambda: AssertionError("should not run"))
    pipeline = use_pipeline(make_pipeline(prober=prober))
    thumbs = pipeline.workdir_for(video.pk) / "thumbnails"
    thumbs.mkdir(parents=True)
    (thumbs / "thumb-01.jpg").write_bytes(b"\xff\xd8jpeg")
    Video.objects.filter(pk=video.pk).update(status=Video.Status.COMPLETED, stage=Video.Stage.COMPLETED,
                                             progress=100)
    assert processing_job.claim("crashed-worker", lease_seconds=-1)

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.get()["status"] == "completed"
    assert prober.calls == []
    assert not ProcessingJob.objects.filter(pk=processing_job.pk).exists()
    assert not pipeline.workdir_for(video.pk).exists()
    assert not raw_upload.exists()
    video.refresh_from_db()
    assert video.status == Video.Status.COMPLETED
    assert video.error == ""


def test_expired_lease_is_reclaimed(processing_job, make_pipeline, use_pipeline):
    use_pipeline(make_pipeline())
    assert processing_job.claim("crashed-worker", lease_seconds=-1)

    result = process_video.apply(args=[str(processing_job.pk)])

    assert result.get()["status"] == "completed"


def test_crash_loop_gives_up(processing_job, video, make_pipeline, use_pipeline):
    prober = failing(lambda: AssertionError("should not run"))
    use_pipeline(make_pipeline(prober=prober))
    ProcessingJob.objects.filter(pk=processing_job.pk).update(attempts=3, state=ProcessingJob.State.ACTIVE)

    process_video.apply(args=[str(processing_job.pk)])

    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.error.startswith("WorkerLost")
    assert prober.calls == []


def test_unknown_job_is_ignored(db):
    result = process_video.apply(args=["00000000-0000-0000-0000-000000000000"])
    assert result.get()["status"] == "missing"
