"""Label measurement backed by Pillow fonts."""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import ImageFont

LOG = logging.getLogger(__name__)

DEFAULT_FONT_FAMILY = "sans-serif"
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": ["Courier New", "Courier", "Liberation Mono", "DejaVu Sans Mono"],
}


class TextMeasurer:
    """Caches Pillow fonts and exposes width/line height helpers."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(self) -> None:
        self._font_cache: Dict[Tuple[str, int], Optional[ImageFont.ImageFont]] = {}
        self._font_paths: Dict[str, Optional[str]] = {}

    def font(self, size: float, family: Optional[str] = None) -> Optional[ImageFont.ImageFont]:
        key_size = max(1, int(round(size)))
        family = family or DEFAULT_FONT_FAMILY
        cache_key = (family.lower(), key_size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        candidates: List[str] = []
        for fam in GENERIC_FONT_FALLBACKS.get(family.lower(), [family]):
            resolved = self._locate_font(fam)
            if resolved:
                candidates.append(resolved)
        candidates.append("DejaVuSans.ttf")

        font: Optional[ImageFont.ImageFont] = None
        for candidate in candidates:
            try:
                font = ImageFont.truetype(candidate, key_size)
                break
            except OSError:
                continue
        if font is None:
            LOG.debug("No TrueType font for %r, using Pillow's default font", family)
            try:
                font = ImageFont.load_default()
            except OSError:
                font = None

        self._font_cache[cache_key] = font
        return font

    def measure(self, text: str, size: float, family: Optional[str] = None) -> float:
        font = self.font(size, family)
        if font is None or not hasattr(font, "getlength"):
            return heuristic_width(text, size)
        return float(font.getlength(text))

    def bbox(self, text: str, size: float, family: Optional[str] = None) -> Tuple[float, float]:
        """Width of the widest line of ``text`` and the height of all its lines."""
        lines = text.split("\n") if text else [""]
        width = max(self.measure(line, size, family) for line in lines)
        return width, size * 1.2 * len(lines)

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", key)
        best_match: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not normalized or not directory.exists():
                continue
            try:
                for path in directory.rglob("*.ttf"):
                    stem = re.sub(r"[^a-z0-9]+", "", path.stem.lower())
                    if stem == normalized:
                        score = 0
                    elif stem.startswith(normalized):
                        score = 1
                    else:
                        continue
                    if best_match is None or score < best_match[0]:
                        best_match = (score, str(path))
            except OSError:
                continue
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        return resolved


def heuristic_width(text: str, font_size: float) -> float:
    width = 0.0
    for ch in text:
        if ch.isspace():
            width += font_size * 0.33
        elif ch in "il":
            width += font_size * 0.3
        elif ch in "mwMW@#":
            width += font_size * 0.9
        else:
            width += font_size * 0.6
    return width


TEXT_MEASURER = TextMeasurer()
