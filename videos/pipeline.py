"""
Per-job orchestration: probe -> thumbnails -> renditions -> upload -> finalize.

A VideoPipeline runs exactly one attempt of one job. Retrying, backoff and
terminal failure are the queue's business (see videos.tasks); the pipeline
only raises.
"""
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings

from .errors import InvalidJobError, UploadError
from .models import Video
from .presets import RenditionPreset, load_presets, select_renditions
from .probe import probe
from .state import ProcessingStateRecorder
from .storage import RemoteAssetStore, UploadedAsset, get_asset_store
from .thumbnails import generate_thumbnails
from .transcode import transcode

logger = logging.getLogger(__name__)

Stage = Video.Stage

# progress checkpoints, in percent
PROBED = 10
THUMBNAILS_START, THUMBNAILS_END = 20, 50
TRANSCODE_END = 90
UPLOAD_END = 99

PLAYBACK_PREFERENCE = ("720p", "480p")


@dataclass(frozen=True)
class VideoJob:
    video_id: str
    input_path: str
    submitter_id: str
    job_id: str = ""

    def __post_init__(self):
        missing = [
            name for name in ("video_id", "input_path", "submitter_id")
            if not str(getattr(self, name) or "").strip()
        ]
        if missing:
            raise InvalidJobError(f"job is missing required fields: {', '.join(missing)}")


@dataclass
class RenditionSet:
    video_versions: dict[str, str] = field(default_factory=dict)
    thumbnails: list[str] = field(default_factory=list)
    cdn_url: str = ""
    video_url: str = ""
    metadata: dict = field(default_factory=dict)


def _share(start: int, end: int, done: int, total: int) -> int:
    if total <= 0:
        return end
    return start + int((end - start) * done / total)


class VideoPipeline:
    def __init__(
        self,
        store: RemoteAssetStore,
        *,
        scratch_root,
        presets: list[RenditionPreset] | None = None,
        thumbnail_count: int = 5,
        prober=probe,
        thumbnailer=generate_thumbnails,
        transcoder=transcode,
    ):
        self.store = store
        self.scratch_root = Path(scratch_root)
        self.presets = presets if presets is not None else load_presets()
        self.thumbnail_count = thumbnail_count
        self.prober = prober
        self.thumbnailer = thumbnailer
        self.transcoder = transcoder

    def workdir_for(self, video_id) -> Path:
        return self.scratch_root / f"video-{video_id}"

    def run(self, job: VideoJob, recorder: ProcessingStateRecorder | None = None) -> RenditionSet:
        recorder = recorder or ProcessingStateRecorder(job.video_id, job.job_id)
        input_path = Path(job.input_path)
        workdir = self.workdir_for(job.video_id)
        workdir.mkdir(parents=True, exist_ok=True)

        recorder.begin_attempt()

        metadata = self.prober(input_path)
        recorder.save_metadata(metadata.as_record())
        recorder.advance(Stage.PROBING, PROBED)
        logger.info("Video %s: probed %s, %.2fs, %s", job.video_id, metadata.resolution,
                    metadata.duration, metadata.codec)

        thumbnails = self._generate_thumbnails(input_path, workdir, metadata.duration, recorder)
        renditions = self._transcode(input_path, workdir, metadata.height, recorder)

        uploaded: list[UploadedAsset] = []
        try:
            result = self._upload(job, input_path, thumbnails, renditions, uploaded, recorder)
            result.metadata = metadata.as_record()
            recorder.advance(Stage.FINALIZING, UPLOAD_END)
            recorder.complete(result)
        except Exception:
            self._rollback(job, uploaded)
            raise

        self.cleanup(job)
        return result

    def _generate_thumbnails(self, input_path: Path, workdir: Path, duration: float, recorder) -> list[Path]:
        recorder.advance(Stage.GENERATING_THUMBNAILS, THUMBNAILS_START)
        count = self.thumbnail_count

        def on_capture(idx, _path):
            recorder.advance(Stage.GENERATING_THUMBNAILS,
                             _share(THUMBNAILS_START, THUMBNAILS_END, idx, count))

        paths = self.thumbnailer(input_path, workdir / "thumbnails", count, duration=duration,
                                 on_capture=on_capture)
        recorder.advance(Stage.GENERATING_THUMBNAILS, THUMBNAILS_END)
        return list(paths)

    def _transcode(self, input_path: Path, workdir: Path, source_height: int, recorder) -> dict[str, Path]:
        targets = select_renditions(source_height, self.presets)
        recorder.advance(Stage.TRANSCODING, THUMBNAILS_END)

        outputs = {}
        for idx, preset in enumerate(targets, start=1):
            out_path = workdir / "renditions" / f"{preset.label}.mp4"
            outputs[preset.label] = Path(self.transcoder(input_path, out_path, preset))
            recorder.advance(Stage.TRANSCODING, _share(THUMBNAILS_END, TRANSCODE_END, idx, len(targets)))
        recorder.advance(Stage.TRANSCODING, TRANSCODE_END)
        return outputs

    def _upload(self, job, input_path, thumbnails, renditions, uploaded, recorder) -> RenditionSet:
        prefix = str(job.video_id)
        total = len(thumbnails) + len(renditions) + 1
        recorder.advance(Stage.UPLOADING, TRANSCODE_END)

        def push(path: Path, kind: str, *, keep_local: bool = False) -> str:
            asset = self.store.upload(path, kind, prefix=prefix)
            uploaded.append(asset)
            if not keep_local:
                path.unlink(missing_ok=True)
            recorder.advance(Stage.UPLOADING, _share(TRANSCODE_END, UPLOAD_END, len(uploaded), total))
            return asset.url

        result = RenditionSet()
        result.thumbnails = [push(p, "thumbnail") for p in thumbnails]
        for label, path in renditions.items():
            result.video_versions[label] = push(path, "video")
        # the raw input is only removed once completion is persisted
        result.video_versions["original"] = push(input_path, "original", keep_local=True)

        # renditions are ordered tallest first
        result.cdn_url = next(
            (result.video_versions[label] for label in renditions),
            result.video_versions["original"],
        )
        result.video_url = next(
            (result.video_versions[label] for label in PLAYBACK_PREFERENCE if label in result.video_versions),
            result.video_versions["original"],
        )
        return result

    def _rollback(self, job: VideoJob, uploaded: list[UploadedAsset]):
        for asset in uploaded:
            try:
                self.store.delete(asset.remote_id)
            except UploadError as e:
                logger.warning("Video %s: rollback could not delete %s: %s", job.video_id, asset.remote_id, e)
        if uploaded:
            logger.info("Video %s: rolled back %d uploaded assets", job.video_id, len(uploaded))

    def cleanup(self, job: VideoJob):
        """Drop the job's scratch directory and the raw upload."""
        workdir = self.workdir_for(job.video_id)
        try:
            shutil.rmtree(workdir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Video %s: could not remove %s: %s", job.video_id, workdir, e)
        try:
            Path(job.input_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Video %s: could not remove input %s: %s", job.video_id, job.input_path, e)


def get_pipeline() -> VideoPipeline:
    return VideoPipeline(
        get_asset_store(),
        scratch_root=settings.VIDEO_SCRATCH_ROOT,
        thumbnail_count=settings.VIDEO_THUMBNAIL_COUNT,
    )
