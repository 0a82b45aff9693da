import pytest

from videos.models import ProcessingJob, Video
from videos.pipeline import VideoPipeline
from videos.presets import load_presets

from .fakes import FakeStore, fake_thumbnailer, fake_transcoder, make_prober


@pytest.fixture(autouse=True)
def scratch_root(settings, tmp_path):
    settings.VIDEO_SCRATCH_ROOT = tmp_path / "scratch"
    settings.VIDEO_SCRATCH_ROOT.mkdir()
    return settings.VIDEO_SCRATCH_ROOT


@pytest.fixture
def raw_upload(scratch_root):
    uploads = scratch_root / "uploads"
    uploads.mkdir(exist_ok=True)
    path = uploads / "clip.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 2048)
    return path


@pytest.fixture
def video(db, raw_upload):
    return Video.objects.create(title="Sunset", submitter_id="user-1", input_path=str(raw_upload))


@pytest.fixture
def processing_job(video):
    job = ProcessingJob.objects.create(
        video=video,
        input_path=video.input_path,
        submitter_id=video.submitter_id,
        max_attempts=3,
    )
    video.job_id = str(job.pk)
    video.save(update_fields=["job_id"])
    return job


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def make_pipeline(store, scratch_root):
    def _make(**overrides):
        kwargs = {
            "scratch_root": scratch_root,
            "presets": load_presets(),
            "thumbnail_count": 5,
            "prober": make_prober(),
            "thumbnailer": fake_thumbnailer,
            "transcoder": fake_transcoder,
        }
        kwargs.update(overrides)
        return VideoPipeline(kwargs.pop("store", store), **kwargs)

    return _make
