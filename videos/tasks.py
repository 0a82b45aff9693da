import math
import socket

from celery import shared_task
from celery.utils.log import get_task_logger
from django.conf import settings
from django.utils import timezone

from .errors import PersistenceError
from .models import ProcessingJob, Video
from .pipeline import VideoJob, get_pipeline
from .state import ProcessingStateRecorder

logger = get_task_logger(__name__)


def backoff_seconds(attempt: int) -> int:
    """Delay after failed attempt `attempt` (1-based): 2s, 4s, 8s... for a 2s base."""
    return settings.VIDEO_RETRY_BACKOFF_SECONDS * 2 ** (max(attempt, 1) - 1)


def _describe(exc: Exception) -> str:
    return f"{exc.__class__.__name__}: {exc}" if str(exc) else exc.__class__.__name__


def _fail(job: ProcessingJob, recorder: ProcessingStateRecorder, message: str):
    recorder.fail(message)
    job.mark_failed(message)


def _lease_wait(job: ProcessingJob) -> int:
    """Seconds until the current lease on `job` runs out, at least one."""
    if job.lease_expires_at is None:
        return 1
    remaining = (job.lease_expires_at - timezone.now()).total_seconds()
    return max(1, math.ceil(remaining))


@shared_task(bind=True, acks_late=True, reject_on_worker_lost=True, max_retries=None)
def process_video(self, job_id: str):
    job = ProcessingJob.objects.filter(pk=job_id).first()
    if job is None:
        # finished jobs are deleted; a late duplicate delivery lands here
        logger.warning("Job %s not found, nothing to do", job_id)
        return {"job_id": job_id, "status": "missing"}
    if job.state == ProcessingJob.State.FAILED:
        logger.warning("Job %s already failed, ignoring delivery", job_id)
        return {"job_id": job_id, "status": "failed"}

    worker = self.request.hostname or socket.gethostname()
    if not job.claim(worker, settings.VIDEO_JOB_LEASE_SECONDS):
        job = ProcessingJob.objects.filter(pk=job_id).first()
        if job is None or job.state == ProcessingJob.State.FAILED:
            return {"job_id": job_id, "status": "missing" if job is None else "failed"}
        # the holder may have died; come back when its lease runs out
        delay = _lease_wait(job)
        logger.info("Job %s is leased by %s, redelivering in %ss", job_id, job.claimed_by, delay)
        raise self.retry(countdown=delay)

    descriptor = VideoJob(
        video_id=str(job.video_id),
        input_path=job.input_path,
        submitter_id=job.submitter_id,
        job_id=str(job.pk),
    )
    if Video.objects.filter(pk=job.video_id, status=Video.Status.COMPLETED).exists():
        # a worker finished the video but died before discarding the job
        get_pipeline().cleanup(descriptor)
        job.delete()
        logger.info("Job %s: video %s already completed, job discarded", job_id, descriptor.video_id)
        return {"job_id": job_id, "video_id": descriptor.video_id, "status": "completed"}

    recorder = ProcessingStateRecorder(job.video_id, job.pk)
    if job.attempts > job.max_attempts:
        # only reachable through crash redeliveries
        _fail(job, recorder, f"WorkerLost: gave up after {job.max_attempts} attempts")
        return {"job_id": job_id, "status": "failed"}

    logger.info("Job %s: attempt %d/%d for video %s on %s",
                job_id, job.attempts, job.max_attempts, job.video_id, worker)

    try:
        result = get_pipeline().run(descriptor, recorder)
    except Exception as exc:
        message = _describe(exc)
        if isinstance(exc, PersistenceError):
            logger.error("Job %s: state write failed: %s", job_id, exc)

        if getattr(exc, "retryable", True) and not job.exhausted:
            delay = backoff_seconds(job.attempts)
            logger.warning("Job %s: attempt %d failed (%s), retrying in %ss",
                           job_id, job.attempts, message, delay)
            job.release_for_retry(message)
            raise self.retry(exc=exc, countdown=delay)

        logger.error("Job %s: giving up after attempt %d: %s", job_id, job.attempts, message)
        _fail(job, recorder, message)
        raise

    job.delete()
    logger.info("Job %s: video %s completed with %s", job_id, descriptor.video_id,
                ", ".join(sorted(result.video_versions)))
    return {
        "job_id": job_id,
        "video_id": descriptor.video_id,
        "status": "completed",
        "video_versions": result.video_versions,
        "thumbnails": result.thumbnails,
    }
