from __future__ import annotations

import math
from typing import Optional, Tuple

from .types import LetterboxParams


def compute_letterbox(orig_w: int, orig_h: int, target_w: int, target_h: int) -> Optional[LetterboxParams]:
    """
    Uniform scale + symmetric padding that fits (orig_w, orig_h) into the
    target without distortion.

    The resized extent is floored and the padding is integer half-padding, so
    an odd residual pixel lands on the right/bottom edge.

    Returns None when any dimension is non-positive.
    """

    if orig_w <= 0 or orig_h <= 0 or target_w <= 0 or target_h <= 0:
        return None

    scale_w = target_w / orig_w
    scale_h = target_h / orig_h
    scale = min(scale_w, scale_h)
    # The limiting axis fills the target exactly. floor(orig * scale) gives the
    # same value or, after float rounding, one less; the padding is 0 either way.
    resized_w = target_w if scale == scale_w else int(math.floor(orig_w * scale))
    resized_h = target_h if scale == scale_h else int(math.floor(orig_h * scale))
    pad_x = (target_w - resized_w) // 2
    pad_y = (target_h - resized_h) // 2

    return LetterboxParams(
        scale=scale,
        pad_x=pad_x,
        pad_y=pad_y,
        resized_width=resized_w,
        resized_height=resized_h,
    )


def unletterbox_box(
    x: float, y: float, w: float, h: float, params: LetterboxParams
) -> Tuple[float, float, float, float]:
    """
    Map an (x, y, w, h) box from letterboxed model input back to the original image.
    """

    s = params.scale
    return (x - params.pad_x) / s, (y - params.pad_y) / s, w / s, h / s


def oriented_size(width: int, height: int, rotation_degrees: int = 0) -> Tuple[int, int]:
    """
    Extents after rotating a frame by `rotation_degrees`.

    Letterbox parameters must be computed from these, not from the raw sensor
    extents, whenever the frame is rotated before inference.
    """

    if rotation_degrees % 90 != 0:
        raise ValueError(f"rotation must be a multiple of 90 degrees, got {rotation_degrees}")
    if (rotation_degrees // 90) % 2:
        return height, width
    return width, height
