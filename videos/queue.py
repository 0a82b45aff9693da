import logging
from datetime import timedelta
from pathlib import Path

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from kombu.exceptions import OperationalError

from .errors import InvalidJobError
from .models import ProcessingJob, Video
from .pipeline import VideoJob

logger = logging.getLogger(__name__)


def dispatch(job: ProcessingJob) -> bool:
    """Hand a job row to the broker. The task id is the job id."""
    from .tasks import process_video

    try:
        process_video.apply_async(args=[str(job.pk)], task_id=str(job.pk))
    except OperationalError as e:
        # the row stays queued; `manage.py requeue_jobs` picks it up later
        logger.warning("Broker unavailable, job %s left queued: %s", job.pk, e)
        return False
    return True


def enqueue_video_processing(video_id, input_path, submitter_id) -> str:
    """
    Submit a saved upload for processing and return the job id.

    The video row must already exist in `pending` (or `failed`, which starts
    a new lifecycle). Malformed submissions raise InvalidJobError before
    anything is written.
    """
    descriptor = VideoJob(video_id=str(video_id or ""), input_path=str(input_path or ""),
                          submitter_id=str(submitter_id or ""))
    if not Path(descriptor.input_path).is_file():
        raise InvalidJobError(f"input file does not exist: {descriptor.input_path}")

    with transaction.atomic():
        try:
            video = Video.objects.select_for_update().get(pk=descriptor.video_id)
        except (Video.DoesNotExist, ValidationError):
            raise InvalidJobError(f"video {descriptor.video_id} does not exist")
        if video.status not in (Video.Status.PENDING, Video.Status.FAILED):
            raise InvalidJobError(f"video {video.pk} is already {video.status}")

        job = ProcessingJob.objects.create(
            video=video,
            input_path=descriptor.input_path,
            submitter_id=descriptor.submitter_id,
            max_attempts=settings.VIDEO_MAX_ATTEMPTS,
        )
        video.status = Video.Status.PENDING
        video.stage = Video.Stage.QUEUED
        video.progress = 0
        video.error = ""
        video.input_path = descriptor.input_path
        video.job_id = str(job.pk)
        video.save(update_fields=["status", "stage", "progress", "error", "input_path", "job_id", "updated_at"])

    dispatch(job)
    logger.info("Enqueued job %s for video %s (submitter %s)", job.pk, video.pk, descriptor.submitter_id)
    return str(job.pk)


def requeue_stale_jobs(older_than_seconds: int) -> list[str]:
    """
    Re-dispatch jobs nobody has touched for a while: queued or retrying rows
    whose broker message was lost, and active rows whose lease expired.
    """
    now = timezone.now()
    stale = ProcessingJob.objects.filter(updated_at__lt=now - timedelta(seconds=older_than_seconds)).filter(
        Q(state__in=[ProcessingJob.State.QUEUED, ProcessingJob.State.RETRYING])
        | Q(state=ProcessingJob.State.ACTIVE, lease_expires_at__lt=now)
    )
    requeued = []
    for job in stale:
        if dispatch(job):
            job.save(update_fields=["updated_at"])
            requeued.append(str(job.pk))
    return requeued


def resubmit_failed_videos() -> list[str]:
    """Start a new job for each failed video whose raw upload is still on disk."""
    job_ids = []
    for video in Video.objects.filter(status=Video.Status.FAILED):
        if not Path(video.input_path).is_file():
            logger.info("Skipping video %s: input %s is gone", video.pk, video.input_path)
            continue
        job_ids.append(enqueue_video_processing(video.pk, video.input_path, video.submitter_id))
    return job_ids
