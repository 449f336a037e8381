from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import List, Optional, Sequence, Tuple, Union

from .letterbox import compute_letterbox, unletterbox_box
from .types import CoordinateSpace, Detection, LetterboxParams


@dataclass(frozen=True)
class ResizeTransform:
    """
    Static-image preprocessing: the whole image was stretched to the model input,
    no padding. Restoring is an independent per-axis scale.
    """

    orig_width: int
    orig_height: int
    model_width: int
    model_height: int

    def is_valid(self) -> bool:
        return min(self.orig_width, self.orig_height, self.model_width, self.model_height) > 0

    def restore(self, x: float, y: float, w: float, h: float) -> Tuple[float, float, float, float]:
        sx = self.orig_width / self.model_width
        sy = self.orig_height / self.model_height
        return x * sx, y * sy, w * sx, h * sy


@dataclass(frozen=True)
class LetterboxTransform:
    """
    Live-capture preprocessing: the frame was letterboxed into the model input.
    """

    orig_width: int
    orig_height: int
    params: LetterboxParams

    @classmethod
    def fit(cls, orig_w: int, orig_h: int, target_w: int, target_h: int) -> Optional["LetterboxTransform"]:
        params = compute_letterbox(orig_w, orig_h, target_w, target_h)
        if params is None:
            return None
        return cls(orig_width=orig_w, orig_height=orig_h, params=params)

    def is_valid(self) -> bool:
        s = self.params.scale
        return self.orig_width > 0 and self.orig_height > 0 and math.isfinite(s) and s > 0

    def restore(self, x: float, y: float, w: float, h: float) -> Tuple[float, float, float, float]:
        return unletterbox_box(x, y, w, h, self.params)


InputTransform = Union[ResizeTransform, LetterboxTransform]


def _clip(box: Tuple[float, float, float, float], width: int, height: int) -> Tuple[float, float, float, float]:
    x, y, w, h = box
    x1 = min(max(x, 0.0), float(width))
    y1 = min(max(y, 0.0), float(height))
    x2 = min(max(x + w, 0.0), float(width))
    y2 = min(max(y + h, 0.0), float(height))
    return x1, y1, x2 - x1, y2 - y1


def map_to_image(
    detections: Sequence[Detection],
    transform: InputTransform,
    clip: bool = False,
) -> List[Detection]:
    """
    Restore model-space detections to original-image pixels using the inverse of
    the preprocessing that produced them. Order is preserved.

    An unusable transform (zero/negative extents or scale) yields no detections.
    """

    if not detections or not transform.is_valid():
        return []

    out: List[Detection] = []
    for d in detections:
        if d.space is not CoordinateSpace.MODEL:
            raise ValueError("map_to_image expects model-space detections; this one is already in image space")

        box = transform.restore(d.x, d.y, d.width, d.height)
        if clip:
            box = _clip(box, transform.orig_width, transform.orig_height)
        x, y, w, h = box
        out.append(replace(d, x=x, y=y, width=w, height=h, space=CoordinateSpace.IMAGE))
    return out
