from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class RenditionPreset:
    label: str
    width: int
    height: int
    bitrate: str


def load_presets(table: dict | None = None) -> list[RenditionPreset]:
    """Build presets from a label -> {width, height, bitrate} table, tallest first."""
    table = settings.VIDEO_RENDITION_PRESETS if table is None else table
    presets = [
        RenditionPreset(label=label, width=int(p["width"]), height=int(p["height"]), bitrate=str(p["bitrate"]))
        for label, p in table.items()
    ]
    return sorted(presets, key=lambda p: p.height, reverse=True)


def get_preset(label: str) -> RenditionPreset | None:
    for preset in load_presets():
        if preset.label == label:
            return preset
    return None


def select_renditions(source_height: int, presets: list[RenditionPreset] | None = None) -> list[RenditionPreset]:
    """Presets no taller than the source; never upscale."""
    presets = load_presets() if presets is None else presets
    return [p for p in presets if p.height <= source_height]
