"""Deterministic, readable background colors for tags.

A tag is hashed into a fixed palette, then the palette color is darkened in
HSL space until white text on it reaches the WCAG contrast target (4.5:1 by
default). The result is memoized in the persistent tag color map.
"""

import colorsys
import logging
from typing import Dict, Optional, Tuple

from storm_notes.config import ContrastSettings
from storm_notes.storage.tag_color_repository import TagColorRepository
from storm_notes.text import normalize_tag

logger = logging.getLogger(__name__)

WHITE = "#ffffff"
DARK_TEXT = "#111111"

# Pleasant palette; entries are darkened as needed for contrast.
PALETTE: Tuple[str, ...] = (
    "#3b82f6", "#22c55e", "#ef4444", "#a855f7", "#14b8a6",
    "#eab308", "#f97316", "#06b6d4", "#84cc16", "#f43f5e",
    "#8b5cf6", "#10b981", "#e11d48", "#0ea5e9", "#f59e0b",
    "#b91c1c", "#047857", "#7c3aed", "#ea580c", "#4338ca",
)

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619


def fnv1a_hash(value: str) -> int:
    """32-bit FNV-1a hash over the UTF-16 code units of a string.

    Code units rather than code points so that a tag hashes identically
    everywhere it has been colored before.
    """
    h = _FNV_OFFSET
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        h ^= encoded[i] | (encoded[i + 1] << 8)
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


def palette_color(tag: str, palette: Tuple[str, ...] = PALETTE) -> str:
    """Base palette entry for a tag, before contrast adjustment."""
    return palette[fnv1a_hash(tag) % len(palette)]


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    """Parse ``#rgb`` or ``#rrggbb`` into 0-255 channels.

    Raises:
        ValueError: If the string is not a hex color.
    """
    s = hex_color.strip().lstrip("#")
    if len(s) == 3:
        s = "".join(c * 2 for c in s)
    if len(s) != 6:
        raise ValueError(f"Not a hex color: {hex_color!r}")
    n = int(s, 16)
    return (n >> 16) & 255, (n >> 8) & 255, n & 255


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{max(0, min(255, v)):02x}" for v in (r, g, b))


def _linearize(channel: int) -> float:
    c = channel / 255
    return c / 12.92 if c <= 0.03928 else ((c + 0.055) / 1.055) ** 2.4


def relative_luminance(hex_color: str) -> float:
    """WCAG relative luminance of an sRGB color."""
    r, g, b = hex_to_rgb(hex_color)
    return 0.2126 * _linearize(r) + 0.7152 * _linearize(g) + 0.0722 * _linearize(b)


def contrast_ratio(hex_a: str, hex_b: str) -> float:
    """WCAG contrast ratio between two colors, always >= 1."""
    l1 = relative_luminance(hex_a)
    l2 = relative_luminance(hex_b)
    hi, lo = (l1, l2) if l1 >= l2 else (l2, l1)
    return (hi + 0.05) / (lo + 0.05)


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def hex_to_hsl(hex_color: str) -> Tuple[float, float, float]:
    """Convert to (hue in degrees, saturation 0-1, lightness 0-1)."""
    r, g, b = hex_to_rgb(hex_color)
    h, l, s = colorsys.rgb_to_hls(r / 255, g / 255, b / 255)
    return h * 360.0, s, l


def hsl_to_hex(h: float, s: float, l: float) -> str:
    """Convert (hue in degrees, saturation, lightness) to ``#rrggbb``."""
    h = (h % 360.0) / 360.0
    r, g, b = colorsys.hls_to_rgb(h, _clamp01(l), _clamp01(s))
    return rgb_to_hex(int(round(r * 255)), int(round(g * 255)), int(round(b * 255)))


def ensure_contrast_for_white(
    hex_color: str, settings: Optional[ContrastSettings] = None
) -> str:
    """Darken a background until white text on it is readable.

    Each pass lowers lightness by a fixed step and nudges saturation up.
    The loop is capped; when the cap is reached the last, darkest attempt is
    returned even if it is still under target.
    """
    settings = settings or ContrastSettings()
    bg = rgb_to_hex(*hex_to_rgb(hex_color))
    h, s, l = hex_to_hsl(bg)
    for _ in range(settings.max_iterations):
        if contrast_ratio(bg, WHITE) >= settings.target:
            return bg
        l = max(0.0, l - settings.lightness_step)
        s = _clamp01(s + settings.saturation_step)
        bg = hsl_to_hex(h, s, l)
    logger.debug(
        f"Contrast target {settings.target} not reached for {hex_color}; using {bg}"
    )
    return bg


def readable_text_color(hex_color: str) -> str:
    """Foreground for text on an arbitrary background: near-black or white."""
    try:
        return DARK_TEXT if relative_luminance(hex_color) > 0.55 else WHITE
    except ValueError:
        return DARK_TEXT


class TagColorService:
    """Assigns and remembers one color per tag.

    Without a repository the assignments live only in this instance.
    """

    def __init__(
        self,
        repository: Optional[TagColorRepository] = None,
        settings: Optional[ContrastSettings] = None,
        palette: Tuple[str, ...] = PALETTE,
    ):
        self.repository = repository
        self.settings = settings or ContrastSettings()
        self.palette = palette
        self._session_colors: Dict[str, str] = {}

    def compute_color(self, tag: str) -> str:
        """Color for a tag from the hash alone, ignoring stored assignments."""
        return ensure_contrast_for_white(palette_color(tag, self.palette), self.settings)

    def color_for(self, tag: str) -> str:
        """Color for a tag, assigning and persisting one on first use."""
        name = normalize_tag(tag)
        if name in self._session_colors:
            return self._session_colors[name]

        stored = self.repository.get(name) if self.repository is not None else None
        if stored:
            self._session_colors[name] = stored
            return stored

        color = self.compute_color(name)
        self._session_colors[name] = color
        if self.repository is not None:
            self.repository.put(name, color)
            logger.debug(f"Assigned color {color} to tag '{name}'")
        return color

    def colors_for(self, tags) -> Dict[str, str]:
        return {normalize_tag(t): self.color_for(t) for t in tags}
