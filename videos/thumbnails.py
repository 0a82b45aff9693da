import logging
from pathlib import Path

from django.conf import settings
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import ThumbnailError
from .ffmpeg import run_tool
from .probe import probe

logger = logging.getLogger(__name__)


def thumbnail_timestamps(duration: float, count: int) -> list[float]:
    """Evenly spaced capture points strictly inside (0, duration)."""
    if count < 1:
        raise ThumbnailError(f"thumbnail count must be positive, got {count}")
    if duration <= 0:
        raise ThumbnailError(f"cannot place thumbnails in a {duration}s video")
    interval = duration / (count + 1)
    return [interval * i for i in range(1, count + 1)]


def _capture_frame(input_path: Path, timestamp: float, raw_path: Path):
    cmd = [
        settings.FFMPEG_BIN,
        "-y",
        "-ss", f"{timestamp:.3f}",
        "-i", str(input_path),
        "-frames:v", "1",
        str(raw_path),
    ]
    run_tool(cmd, timeout=settings.VIDEO_THUMBNAIL_TIMEOUT, error_cls=ThumbnailError)


def _fit_frame(raw_path: Path, out_path: Path, size: tuple[int, int]):
    """Letterbox the captured frame onto a fixed-size JPEG."""
    try:
        with Image.open(raw_path) as img:
            framed = ImageOps.pad(img.convert("RGB"), size, color=(0, 0, 0))
        framed.save(out_path, format="JPEG", quality=90)
    except (OSError, UnidentifiedImageError) as e:
        raise ThumbnailError(f"could not render thumbnail from {raw_path.name}: {e}") from e
    finally:
        raw_path.unlink(missing_ok=True)


def generate_thumbnails(input_path, out_dir, count: int = 5, duration: float | None = None,
                        on_capture=None) -> list[Path]:
    """
    Capture `count` frames at evenly spaced timestamps and return the JPEG paths
    in temporal order. `on_capture(index, path)` is called after each frame.
    """
    input_path, out_dir = Path(input_path), Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    if duration is None:
        duration = probe(input_path).duration

    size = tuple(settings.VIDEO_THUMBNAIL_SIZE)
    paths = []
    for idx, ts in enumerate(thumbnail_timestamps(duration, count), start=1):
        stem = f"thumb-{idx:02d}"
        raw_path = out_dir / f"{stem}.png"
        out_path = out_dir / f"{stem}.jpg"

        _capture_frame(input_path, ts, raw_path)
        if not raw_path.exists():
            raise ThumbnailError(f"ffmpeg produced no frame at {ts}s")
        _fit_frame(raw_path, out_path, size)

        logger.debug("Thumbnail %d/%d at %.3fs -> %s", idx, count, ts, out_path)
        paths.append(out_path)
        if on_capture:
            on_capture(idx, out_path)
    return paths
