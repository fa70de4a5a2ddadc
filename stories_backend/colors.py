"""
Dominant display color extraction for uploaded images.

The image is reduced to a small palette and the palette entries are grouped
into swatches the same way Android's Palette/"vibrant" libraries do. The most
populous swatch is taken from the first non-empty group in the order
Vibrant, LightVibrant, DarkVibrant, Muted, falling back to the most populous
palette color.
"""

from __future__ import annotations

import colorsys
import io
import logging

from PIL import Image, UnidentifiedImageError

from stories_backend.records import DEFAULT_COLOR

logger = logging.getLogger(__name__)

SAMPLE_SIZE = (96, 96)
PALETTE_SIZE = 16

# (min_lightness, max_lightness, min_saturation, max_saturation)
_SWATCH_RULES = (
    ("Vibrant", 0.3, 0.7, 0.35, 1.0),
    ("LightVibrant", 0.55, 1.0, 0.35, 1.0),
    ("DarkVibrant", 0.0, 0.45, 0.35, 1.0),
    ("Muted", 0.3, 0.7, 0.0, 0.4),
)


class ColorExtractionError(ValueError):
    pass


def _palette(data: bytes) -> list[tuple[int, tuple[int, int, int]]]:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = img.convert("RGB")
            img.thumbnail(SAMPLE_SIZE)
            quantized = img.quantize(colors=PALETTE_SIZE, method=Image.Quantize.MEDIANCUT)
    except (UnidentifiedImageError, OSError) as exc:
        raise ColorExtractionError(f"cannot decode image: {exc}") from exc

    raw_palette = quantized.getpalette() or []
    counts = quantized.getcolors() or []
    colors = []
    for count, index in counts:
        r, g, b = raw_palette[index * 3: index * 3 + 3]
        colors.append((count, (r, g, b)))
    colors.sort(key=lambda item: item[0], reverse=True)
    return colors


def _hex(rgb: tuple[int, int, int]) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def extract_dominant_color(data: bytes) -> str:
    """Return ``#rrggbb`` for the most representative color of ``data``."""
    colors = _palette(data)
    if not colors:
        return DEFAULT_COLOR

    for _, min_l, max_l, min_s, max_s in _SWATCH_RULES:
        for _count, rgb in colors:
            h, lightness, saturation = colorsys.rgb_to_hls(*(c / 255.0 for c in rgb))
            if min_l <= lightness <= max_l and min_s <= saturation <= max_s:
                return _hex(rgb)
    return _hex(colors[0][1])


def dominant_color_or_default(data: bytes) -> str:
    try:
        return extract_dominant_color(data)
    except ColorExtractionError as exc:
        logger.warning("Falling back to %s: %s", DEFAULT_COLOR, exc)
        return DEFAULT_COLOR
