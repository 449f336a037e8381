from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from .catalog import ClassCatalog
from .types import CoordinateSpace, Detection, RawOutputTensor, TensorLayout

logger = logging.getLogger(__name__)


class BoxEncoding(str, Enum):
    """
    Per-box attribute encodings seen in detection exports:

    - PRE_SUPPRESSED: [x1, y1, x2, y2, score, class_id], NMS already done by the model
    - OBJECTNESS:     [cx, cy, w, h, obj, class_scores...]
    - CLASS_SCORES:   [cx, cy, w, h, class_scores...]
    """

    PRE_SUPPRESSED = "pre_suppressed"
    OBJECTNESS = "objectness"
    CLASS_SCORES = "class_scores"


@dataclass(frozen=True)
class DecodeResult:
    detections: List[Detection]
    encoding: Optional[BoxEncoding]

    @property
    def needs_suppression(self) -> bool:
        return self.encoding is not None and self.encoding is not BoxEncoding.PRE_SUPPRESSED


def select_encoding(layout: TensorLayout, objectness: Optional[bool] = None) -> Optional[BoxEncoding]:
    """
    Pick the encoding for a resolved layout.

    Six attributes always mean pre-suppressed output. Otherwise the two layouts
    come from different export pipelines and are read differently: box-first
    (N, 5 + C) carries an objectness column, channel-first (4 + C, N) does not.
    `objectness` forces one reading for both layouts; None keeps the per-layout
    default.
    """

    if layout.elem_per_box == 6:
        return BoxEncoding.PRE_SUPPRESSED
    # need 4 coords + objectness slot + at least one class
    if layout.elem_per_box <= 5:
        return None

    if objectness is None:
        objectness = layout.boxes_first
    return BoxEncoding.OBJECTNESS if objectness else BoxEncoding.CLASS_SCORES


def _box_rows(output: RawOutputTensor, layout: TensorLayout) -> Optional[np.ndarray]:
    """
    View the flat buffer as (num_boxes, elem_per_box) regardless of layout.
    """

    count = layout.num_boxes * layout.elem_per_box
    data = np.asarray(output.data, dtype=np.float32).reshape(-1)
    if data.size < count:
        logger.debug("Output buffer too short: %d values for layout %s", data.size, layout)
        return None

    data = data[:count]
    if layout.boxes_first:
        return data.reshape(layout.num_boxes, layout.elem_per_box)
    return data.reshape(layout.elem_per_box, layout.num_boxes).T


def _best_class(scores: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Best class per row, scanning in index order with a strict `>` against a
    running best that starts at 0: ties keep the lowest index and rows with no
    positive score get class -1 and score 0.
    """

    class_ids = np.argmax(scores, axis=1)
    best = scores[np.arange(scores.shape[0]), class_ids]
    positive = best > 0
    class_ids = np.where(positive, class_ids, -1)
    best = np.where(positive, best, 0.0).astype(np.float32)
    return class_ids, best


def _to_detections(
    boxes_xywh: np.ndarray, scores: np.ndarray, class_ids: np.ndarray, catalog: ClassCatalog
) -> List[Detection]:
    return [
        Detection(
            x=float(x),
            y=float(y),
            width=float(w),
            height=float(h),
            label=catalog.label_for(int(cls_id)),
            confidence=float(score),
            class_id=int(cls_id),
            space=CoordinateSpace.MODEL,
        )
        for (x, y, w, h), score, cls_id in zip(boxes_xywh, scores, class_ids)
    ]


def _center_to_corner(rows: np.ndarray) -> np.ndarray:
    cx, cy, w, h = rows[:, 0], rows[:, 1], rows[:, 2], rows[:, 3]
    return np.stack([cx - w / 2, cy - h / 2, w, h], axis=1)


def _decode_pre_suppressed(rows: np.ndarray, conf_threshold: float, catalog: ClassCatalog) -> List[Detection]:
    finite = np.isfinite(rows).all(axis=1)
    rows = rows[finite & (rows[:, 4] >= conf_threshold)]

    x1, y1, x2, y2 = rows[:, 0], rows[:, 1], rows[:, 2], rows[:, 3]
    boxes = np.stack([x1, y1, x2 - x1, y2 - y1], axis=1)
    # truncate toward zero, as exporters write class ids as floats
    class_ids = rows[:, 5].astype(np.int64)
    return _to_detections(boxes, rows[:, 4], class_ids, catalog)


def _decode_objectness(rows: np.ndarray, conf_threshold: float, catalog: ClassCatalog) -> List[Detection]:
    objectness = rows[:, 4:5]
    # finite inputs can still overflow float32 here; those rows are filtered below
    with np.errstate(over="ignore", invalid="ignore"):
        products = objectness * rows[:, 5:]
    class_ids, scores = _best_class(products)

    keep = np.isfinite(rows).all(axis=1) & np.isfinite(products).all(axis=1) & (scores >= conf_threshold)
    return _to_detections(_center_to_corner(rows[keep]), scores[keep], class_ids[keep], catalog)


def _decode_class_scores(rows: np.ndarray, conf_threshold: float, catalog: ClassCatalog) -> List[Detection]:
    class_ids, scores = _best_class(rows[:, 4:])

    keep = np.isfinite(rows).all(axis=1) & (scores >= conf_threshold)
    return _to_detections(_center_to_corner(rows[keep]), scores[keep], class_ids[keep], catalog)


_DECODERS: Dict[BoxEncoding, Callable[[np.ndarray, float, ClassCatalog], List[Detection]]] = {
    BoxEncoding.PRE_SUPPRESSED: _decode_pre_suppressed,
    BoxEncoding.OBJECTNESS: _decode_objectness,
    BoxEncoding.CLASS_SCORES: _decode_class_scores,
}


def decode_boxes(
    output: RawOutputTensor,
    layout: TensorLayout,
    conf_threshold: float,
    catalog: Optional[ClassCatalog] = None,
    objectness: Optional[bool] = None,
) -> DecodeResult:
    """
    Extract candidate boxes (model-space, unsorted, not yet suppressed) whose
    best-class score is at least `conf_threshold`.
    """

    encoding = select_encoding(layout, objectness=objectness)
    if encoding is None:
        logger.debug("No decoder for %d attributes per box", layout.elem_per_box)
        return DecodeResult(detections=[], encoding=None)

    rows = _box_rows(output, layout)
    if rows is None:
        return DecodeResult(detections=[], encoding=None)

    catalog = catalog if catalog is not None else ClassCatalog.coco()
    detections = _DECODERS[encoding](rows, conf_threshold, catalog)
    logger.debug(
        "Decoded %d/%d boxes as %s (boxes_first=%s)",
        len(detections),
        layout.num_boxes,
        encoding.value,
        layout.boxes_first,
    )
    return DecodeResult(detections=detections, encoding=encoding)
