import json
import os
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .errors import ProbeError
from .ffmpeg import run_tool


@dataclass(frozen=True)
class VideoMetadata:
    duration: float
    width: int
    height: int
    bitrate: int
    codec: str
    file_size: int

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    def as_record(self) -> dict:
        """Shape persisted on the video row."""
        return {
            "duration": self.duration,
            "resolution": self.resolution,
            "fileSize": self.file_size,
            "codec": self.codec,
        }


def _to_int(value, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def parse_probe_output(raw: bytes | str, path: Path) -> VideoMetadata:
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ProbeError(f"unparsable ffprobe output for {path.name}") from e

    video_stream = next(
        (s for s in data.get("streams", []) if s.get("codec_type") == "video"),
        None,
    )
    if not video_stream:
        raise ProbeError(f"no video stream found in {path.name}")

    fmt = data.get("format", {})
    try:
        duration = float(fmt.get("duration") or video_stream.get("duration"))
    except (TypeError, ValueError):
        raise ProbeError(f"could not determine duration of {path.name}")
    if duration <= 0:
        raise ProbeError(f"invalid duration {duration} for {path.name}")

    width = _to_int(video_stream.get("width"))
    height = _to_int(video_stream.get("height"))
    if width <= 0 or height <= 0:
        raise ProbeError(f"invalid frame size {width}x{height} for {path.name}")

    return VideoMetadata(
        duration=duration,
        width=width,
        height=height,
        bitrate=_to_int(fmt.get("bit_rate") or video_stream.get("bit_rate")),
        codec=video_stream.get("codec_name", "unknown"),
        file_size=_to_int(fmt.get("size")) or path.stat().st_size,
    )


def probe(path) -> VideoMetadata:
    """Read duration, frame size, bitrate, codec and size from a media file."""
    path = Path(path)
    if not path.is_file() or not os.access(path, os.R_OK):
        raise ProbeError(f"input file is missing or unreadable: {path}")

    cmd = [
        settings.FFPROBE_BIN,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    result = run_tool(cmd, timeout=settings.VIDEO_PROBE_TIMEOUT, error_cls=ProbeError)
    return parse_probe_output(result.stdout, path)
