import uuid
from datetime import timedelta

from django.db import models
from django.db.models import F, Q
from django.utils import timezone


class Video(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PROCESSING = "processing"
        COMPLETED = "completed"
        FAILED = "failed"

    class Stage(models.TextChoices):
        QUEUED = "queued"
        PROBING = "probing"
        GENERATING_THUMBNAILS = "generating_thumbnails"
        TRANSCODING = "transcoding"
        UPLOADING = "uploading"
        FINALIZING = "finalizing"
        COMPLETED = "completed"
        FAILED = "failed"

    ACTIVE_STATUSES = (Status.PENDING, Status.PROCESSING)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    submitter_id = models.CharField(max_length=64)
    input_path = models.CharField(max_length=1024)     # raw upload in scratch storage

    # processing state
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    stage = models.CharField(max_length=32, choices=Stage.choices, default=Stage.QUEUED)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    error = models.TextField(blank=True, default="")
    job_id = models.CharField(max_length=64, blank=True, default="")

    # renditions, written once on completion
    video_versions = models.JSONField(default=dict, blank=True)  # {"original": url, "720p": url, ...}
    thumbnails = models.JSONField(default=list, blank=True)
    cdn_url = models.URLField(max_length=1024, blank=True, default="")
    video_url = models.URLField(max_length=1024, blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)  # {duration, resolution, fileSize, codec}

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status"], name="videos_video_status_idx")]

    def __str__(self):
        return f"{self.title} ({self.status})"

    @property
    def processing_state(self) -> dict:
        return {
            "status": self.status,
            "progress": self.progress,
            "error": self.error or None,
            "job_id": self.job_id or None,
        }


class ProcessingJob(models.Model):
    """Durable record of a queued video job; deleted once the job succeeds."""

    class State(models.TextChoices):
        QUEUED = "queued"
        ACTIVE = "active"
        RETRYING = "retrying"
        FAILED = "failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    video = models.ForeignKey(Video, on_delete=models.CASCADE, related_name="jobs")
    input_path = models.CharField(max_length=1024)
    submitter_id = models.CharField(max_length=64)

    state = models.CharField(max_length=16, choices=State.choices, default=State.QUEUED)
    attempts = models.PositiveSmallIntegerField(default=0)
    max_attempts = models.PositiveSmallIntegerField(default=3)
    last_error = models.TextField(blank=True, default="")

    claimed_by = models.CharField(max_length=255, blank=True, default="")
    lease_expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["state", "updated_at"], name="videos_job_state_idx")]

    def __str__(self):
        return f"job {self.pk} ({self.state}, attempt {self.attempts}/{self.max_attempts})"

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def claim(self, worker: str, lease_seconds: int) -> bool:
        """
        Take the lease for one attempt. Returns False if another worker holds a
        live lease or the job already failed. A lease left behind by a crashed
        worker can be taken once it expires.
        """
        now = timezone.now()
        claimed = (
            ProcessingJob.objects.filter(pk=self.pk)
            .exclude(state=self.State.FAILED)
            .filter(Q(lease_expires_at__isnull=True) | Q(lease_expires_at__lt=now))
            .update(
                state=self.State.ACTIVE,
                attempts=F("attempts") + 1,
                claimed_by=worker[:255],
                lease_expires_at=now + timedelta(seconds=lease_seconds),
                updated_at=now,
            )
        )
        if claimed:
            self.refresh_from_db()
        return bool(claimed)

    def release_for_retry(self, error: str):
        self.state = self.State.RETRYING
        self.last_error = error[:4000]
        self.claimed_by = ""
        self.lease_expires_at = None
        self.save(update_fields=["state", "last_error", "claimed_by", "lease_expires_at", "updated_at"])

    def mark_failed(self, error: str):
        self.state = self.State.FAILED
        self.last_error = error[:4000]
        self.claimed_by = ""
        self.lease_expires_at = None
        self.save(update_fields=["state", "last_error", "claimed_by", "lease_expires_at", "updated_at"])
