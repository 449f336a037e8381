from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class CoordinateSpace(str, Enum):
    MODEL = "model"
    IMAGE = "image"


@dataclass(frozen=True)
class Detection:
    """
    One labeled box. `x, y` is the top-left corner, `width, height` the extent,
    all in the pixel units of `space` (model input or original image).
    """

    x: float
    y: float
    width: float
    height: float
    label: str
    confidence: float
    class_id: Optional[int] = None
    space: CoordinateSpace = CoordinateSpace.MODEL

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in (self.x, self.y, self.width, self.height, self.confidence))


@dataclass(frozen=True)
class RawOutputTensor:
    """
    Flat float buffer as returned by an inference provider, plus its shape.
    """

    data: np.ndarray
    shape: Tuple[int, ...]

    @classmethod
    def from_array(cls, array) -> "RawOutputTensor":
        arr = np.asarray(array, dtype=np.float32)
        return cls(data=arr.reshape(-1), shape=tuple(int(d) for d in arr.shape))


@dataclass(frozen=True)
class TensorLayout:
    num_boxes: int
    elem_per_box: int
    boxes_first: bool


@dataclass(frozen=True)
class LetterboxParams:
    scale: float
    pad_x: int
    pad_y: int
    resized_width: int = 0
    resized_height: int = 0
