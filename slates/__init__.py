"""Placeholder cover ("slate") rendering.

A slate is a 640x360 SVG built from a title and a theme palette. Output is a
pure function of its inputs so the same title/theme always yields the same
bytes.
"""
from __future__ import annotations

from pathlib import Path
import re
import uuid
from typing import Dict, List, Optional

WIDTH = 640
HEIGHT = 360
DEFAULT_THEME = "midnight"
DEFAULT_TITLE = "Roniz Lesson"
DEFAULT_BRAND = "Roniz"

# Title box: x=32..608, lines baseline-stacked from y=150
TITLE_MAX_CHARS = 26
TITLE_MAX_LINES = 3
TITLE_LINE_HEIGHT = 44

THEMES: Dict[str, Dict[str, str]] = {
    "midnight": {
        "bg_a": "#0d1117",
        "bg_b": "#1f2937",
        "accent": "#374151",
        "title_fill": "#ffffff",
        "brand_fill": "#9CA3AF",
    },
    # chalkboard
    "chalk": {
        "bg_a": "#193a2a",
        "bg_b": "#132e21",
        "accent": "#2a4b39",
        "title_fill": "#e8f5e9",
        "brand_fill": "#b7d7c3",
    },
    # note paper
    "paper": {
        "bg_a": "#faf8f3",
        "bg_b": "#f1ede3",
        "accent": "#d9d3c3",
        "title_fill": "#222222",
        "brand_fill": "#6b7280",
    },
}

_UNSAFE_RE = re.compile(r"[<>&\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WS_RE = re.compile(r"\s+")


def normalize_theme(name: Optional[str]) -> str:
    key = (name or "").strip().lower()
    return key if key in THEMES else DEFAULT_THEME


def _clean(text: Optional[str]) -> str:
    s = _UNSAFE_RE.sub("", text or "")
    return _WS_RE.sub(" ", s).strip()


def sanitize_title(title: Optional[str]) -> str:
    """Drop characters that would break the SVG markup; blank -> default title."""
    return _clean(title) or DEFAULT_TITLE


def wrap_title(title: str, width: int = TITLE_MAX_CHARS, max_lines: int = TITLE_MAX_LINES) -> List[str]:
    """Greedy word wrap. Words longer than a line are split; overflow is ellipsised."""
    words: List[str] = []
    for w in title.split(" "):
        while len(w) > width:
            words.append(w[:width])
            w = w[width:]
        if w:
            words.append(w)
    lines: List[str] = []
    cur = ""
    for w in words:
        if not cur:
            cur = w
        elif len(cur) + 1 + len(w) <= width:
            cur = f"{cur} {w}"
        else:
            lines.append(cur)
            cur = w
    if cur:
        lines.append(cur)
    if len(lines) > max_lines:
        last = lines[max_lines - 1]
        lines = lines[:max_lines]
        lines[-1] = (last[: width - 1].rstrip() + "…")
    return lines


def _attr(value: str) -> str:
    return value.replace('"', "&quot;")


def generate(title: Optional[str], theme: Optional[str] = DEFAULT_THEME, *, brand: str = DEFAULT_BRAND) -> bytes:
    t = THEMES[normalize_theme(theme)]
    lines = wrap_title(sanitize_title(title))
    brand_text = _clean(brand) or DEFAULT_BRAND
    # Vertically center the block inside the 118..278 band
    block_h = TITLE_LINE_HEIGHT * len(lines)
    first_baseline = 118 + (160 - block_h) // 2 + 34
    tspans = "\n".join(
        f'    <tspan x="32" y="{first_baseline + i * TITLE_LINE_HEIGHT}">{line}</tspan>'
        for i, line in enumerate(lines)
    )
    svg = f"""<?xml version="1.0" encoding="UTF-8"?>
<svg width="{WIDTH}" height="{HEIGHT}" viewBox="0 0 {WIDTH} {HEIGHT}" xmlns="http://www.w3.org/2000/svg">
  <defs>
    <linearGradient id="bg" x1="0" y1="0" x2="1" y2="1">
      <stop offset="0%" stop-color="{t['bg_a']}"/>
      <stop offset="100%" stop-color="{t['bg_b']}"/>
    </linearGradient>
    <pattern id="grid" width="20" height="20" patternUnits="userSpaceOnUse">
      <path d="M20 0H0V20" fill="none" stroke="{t['accent']}" stroke-opacity="0.25" stroke-width="1"/>
    </pattern>
    <filter id="noise" x="0" y="0" width="1" height="1">
      <feTurbulence type="fractalNoise" baseFrequency="0.9" numOctaves="1" stitchTiles="stitch"/>
      <feColorMatrix type="saturate" values="0"/>
      <feComponentTransfer>
        <feFuncA type="table" tableValues="0 0.04"/>
      </feComponentTransfer>
    </filter>
    <style><![CDATA[
      .math {{ opacity: .25; font: 24px 'Segoe UI', Roboto, Arial, sans-serif; }}
      .brand {{ font: 600 18px 'Segoe UI', Roboto, Arial, sans-serif; fill: {t['brand_fill']}; }}
      .title {{ font: 800 38px 'Segoe UI', Roboto, Arial, sans-serif; fill: {t['title_fill']}; }}
    ]]></style>
  </defs>

  <rect width="{WIDTH}" height="{HEIGHT}" fill="url(#bg)"/>
  <rect width="{WIDTH}" height="{HEIGHT}" fill="url(#grid)"/>
  <rect width="{WIDTH}" height="{HEIGHT}" filter="url(#noise)"/>

  <text x="32" y="72" class="brand">{brand_text}</text>

  <text class="title" data-title="{_attr(' '.join(lines))}">
{tspans}
  </text>

  <text x="40" y="300" class="math" fill="{t['brand_fill']}">π  •  Σ  •  √  •  ∫  •  ≈  •  ∞</text>
  <rect x="40" y="316" width="180" height="6" rx="3" fill="{t['accent']}" opacity=".8"/>
  <rect x="40" y="330" width="240" height="6" rx="3" fill="{t['accent']}" opacity=".6"/>
</svg>
"""
    return svg.encode("utf-8")


def write_slate(out: Path, title: Optional[str], theme: Optional[str] = DEFAULT_THEME, *,
                brand: str = DEFAULT_BRAND, tmp: Optional[Path] = None) -> Path:
    """
    Render and write a slate atomically; I/O errors propagate.

    Each call writes its own temp sibling, so overlapping writers of one slate
    never rename each other's file. The last replace wins.
    """
    data = generate(title, theme, brand=brand)
    if tmp is None:
        tmp = out.with_name(f".{out.name}.{uuid.uuid4().hex[:8]}.tmp{out.suffix}")
    try:
        tmp.write_bytes(data)
        tmp.replace(out)
    except OSError:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise
    return out


__all__ = [
    "WIDTH",
    "HEIGHT",
    "THEMES",
    "DEFAULT_THEME",
    "DEFAULT_TITLE",
    "normalize_theme",
    "sanitize_title",
    "wrap_title",
    "generate",
    "write_slate",
]
