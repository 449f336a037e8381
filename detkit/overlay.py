"""
Presentation helpers shared by anything that draws detections.
"""

from __future__ import annotations

import zlib
from typing import Dict, Tuple

from .types import Detection

Color = Tuple[int, int, int]

# BGR, OpenCV order
_PALETTE: Tuple[Color, ...] = (
    (56, 56, 255),
    (151, 157, 255),
    (31, 112, 255),
    (29, 178, 255),
    (49, 210, 207),
    (10, 249, 72),
    (23, 204, 146),
    (134, 219, 61),
    (52, 147, 26),
    (187, 212, 0),
    (168, 153, 44),
    (255, 194, 0),
    (147, 69, 52),
    (255, 115, 100),
    (236, 24, 0),
    (255, 56, 132),
    (133, 0, 82),
    (255, 56, 203),
    (200, 149, 255),
    (199, 55, 255),
)

_COLOR_CACHE: Dict[str, Color] = {}


def color_for_label(label: str) -> Color:
    """
    Stable color for a label. CRC32 rather than `hash()`, which is salted per process.
    """

    color = _COLOR_CACHE.get(label)
    if color is None:
        color = _PALETTE[zlib.crc32(label.encode("utf-8")) % len(_PALETTE)]
        _COLOR_CACHE[label] = color
    return color


def format_caption(det: Detection) -> str:
    return f"{det.label} {det.confidence:.0%}"
