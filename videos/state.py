import logging

from django.db import DatabaseError
from django.utils import timezone

from .errors import PersistenceError, VideoStateConflict
from .models import Video

logger = logging.getLogger(__name__)

Stage = Video.Stage
Status = Video.Status

ERROR_MAX_CHARS = 4000


class ProcessingStateRecorder:
    """
    Writes one attempt's ProcessingState onto the video row.

    Every write is a conditional update limited to non-terminal rows, so a
    video that reached completed/failed is never flipped. Progress never
    goes down within an attempt; `history` keeps the (stage, progress) pairs
    that were written.
    """

    def __init__(self, video_id, job_id: str = ""):
        self.video_id = video_id
        self.job_id = str(job_id or "")
        self.progress = 0
        self.stage = Stage.QUEUED
        self.history: list[tuple[str, int]] = []

    def _write(self, **fields) -> int:
        fields["updated_at"] = timezone.now()
        try:
            return Video.objects.filter(pk=self.video_id, status__in=Video.ACTIVE_STATUSES).update(**fields)
        except DatabaseError as e:
            raise PersistenceError(f"could not persist state for video {self.video_id}: {e}") from e

    def _write_active(self, **fields):
        if not self._write(**fields):
            raise VideoStateConflict(f"video {self.video_id} is missing or no longer processing")

    def begin_attempt(self):
        """Fresh attempt: progress restarts at 0."""
        self.progress = 0
        self.stage = Stage.PROBING
        self.history = [(self.stage, 0)]
        fields = {"status": Status.PROCESSING, "stage": self.stage, "progress": 0, "error": ""}
        if self.job_id:
            fields["job_id"] = self.job_id
        self._write_active(**fields)
        logger.info("Video %s: attempt started (job %s)", self.video_id, self.job_id)

    def advance(self, stage: str, progress: int):
        # 100 is reserved for complete()
        progress = max(self.progress, min(99, int(progress)))
        if stage == self.stage and progress == self.progress:
            return
        self._write_active(stage=stage, progress=progress)
        if stage != self.stage:
            logger.info("Video %s: %s (%d%%)", self.video_id, stage, progress)
        self.stage, self.progress = stage, progress
        self.history.append((stage, progress))

    def save_metadata(self, metadata: dict):
        self._write_active(metadata=metadata)

    def complete(self, renditions):
        self._write_active(
            status=Status.COMPLETED,
            stage=Stage.COMPLETED,
            progress=100,
            error="",
            video_versions=renditions.video_versions,
            thumbnails=renditions.thumbnails,
            cdn_url=renditions.cdn_url,
            video_url=renditions.video_url,
            metadata=renditions.metadata,
        )
        self.stage, self.progress = Stage.COMPLETED, 100
        self.history.append((self.stage, 100))
        logger.info("Video %s: completed", self.video_id)

    def fail(self, message: str) -> bool:
        """Terminal failure; progress stays where the last attempt left it."""
        message = (message or "processing failed")[:ERROR_MAX_CHARS]
        written = self._write(status=Status.FAILED, stage=Stage.FAILED, error=message)
        if written:
            logger.error("Video %s: failed: %s", self.video_id, message)
        else:
            logger.warning("Video %s: not marked failed, row missing or already terminal", self.video_id)
        return bool(written)
