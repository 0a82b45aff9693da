from pathlib import Path

from django.conf import settings

from .errors import TranscodeError
from .ffmpeg import run_tool
from .presets import RenditionPreset, get_preset


def _buffer_size(bitrate: str) -> str:
    """Rate-control buffer of two seconds at the target bitrate."""
    unit = bitrate[-1] if bitrate[-1].isalpha() else ""
    value = int(bitrate[:-1] if unit else bitrate)
    return f"{value * 2}{unit}"


def build_command(input_path: Path, output_path: Path, preset: RenditionPreset) -> list[str]:
    opts = settings.VIDEO_TRANSCODE_OPTIONS
    return [
        settings.FFMPEG_BIN,
        "-y",
        "-i", str(input_path),
        "-vf", f"scale=-2:{preset.height}",
        "-c:v", opts["video_codec"],
        "-preset", opts["preset"],
        "-crf", str(opts["crf"]),
        "-maxrate", preset.bitrate,
        "-bufsize", _buffer_size(preset.bitrate),
        "-pix_fmt", "yuv420p",
        "-c:a", opts["audio_codec"],
        "-b:a", opts["audio_bitrate"],
        "-movflags", "+faststart",  # moov atom first so players can stream
        "-f", opts["container"],
        str(output_path),
    ]


def transcode(input_path, output_path, preset: RenditionPreset | str) -> Path:
    """
    Encode one self-contained rendition. `preset` is a RenditionPreset or a
    label looked up in the configured preset table.
    """
    if isinstance(preset, str):
        label = preset
        preset = get_preset(label)
        if preset is None:
            raise TranscodeError(f"unknown quality preset: {label}")

    input_path, output_path = Path(input_path), Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    run_tool(
        build_command(input_path, output_path, preset),
        timeout=settings.VIDEO_TRANSCODE_TIMEOUT,
        error_cls=TranscodeError,
    )
    if not output_path.exists() or output_path.stat().st_size == 0:
        raise TranscodeError(f"ffmpeg produced no output for {preset.label}")
    return output_path
