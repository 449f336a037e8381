from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .types import Detection


@dataclass
class NMSConfig:
    iou_threshold: float = 0.45
    max_detections: Optional[int] = None
    # False runs NMS per class and merges the survivors by score.
    class_agnostic: bool = True


def box_iou(a: Detection, b: Detection) -> float:
    ax1, ay1, ax2, ay2 = a.as_xyxy()
    bx1, by1, bx2, by2 = b.as_xyxy()

    inter = max(0.0, min(ax2, bx2) - max(ax1, bx1)) * max(0.0, min(ay2, by2) - max(ay1, by1))
    if inter <= 0:
        return 0.0
    union = a.area + b.area - inter
    if union <= 0:
        return 0.0
    return inter / union


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.

    Equal scores keep their input order. A box is dropped when its IoU with an
    already kept box is >= cfg.iou_threshold.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    x1 = boxes[:, 0]
    y1 = boxes[:, 1]
    x2 = boxes[:, 2]
    y2 = boxes[:, 3]
    areas = (x2 - x1) * (y2 - y1)

    order = np.argsort(-scores, kind="stable")
    keep = []

    while order.size > 0:
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break
        i = order[0]
        keep.append(i)
        rest = order[1:]

        w = np.maximum(0.0, np.minimum(x2[i], x2[rest]) - np.maximum(x1[i], x1[rest]))
        h = np.maximum(0.0, np.minimum(y2[i], y2[rest]) - np.maximum(y1[i], y1[rest]))
        inter = w * h
        union = areas[i] + areas[rest] - inter
        iou = np.where((inter > 0) & (union > 0), inter / np.where(union > 0, union, 1.0), 0.0)

        order = rest[iou < cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def _class_aware_nms(boxes: np.ndarray, scores: np.ndarray, labels: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    per_class = NMSConfig(iou_threshold=cfg.iou_threshold, max_detections=None, class_agnostic=True)
    kept: List[int] = []
    for label in np.unique(labels):
        idx = np.where(labels == label)[0]
        kept.extend(idx[nms(boxes[idx], scores[idx], per_class)].tolist())

    if not kept:
        return np.empty((0,), dtype=np.int64)

    kept_arr = np.array(kept, dtype=np.int64)
    # score descending, then input order
    kept_arr = kept_arr[np.lexsort((kept_arr, -scores[kept_arr]))]
    if cfg.max_detections is not None:
        kept_arr = kept_arr[: cfg.max_detections]
    return kept_arr


def suppress(detections: Sequence[Detection], cfg: NMSConfig) -> List[Detection]:
    """
    Remove redundant overlapping detections.

    Suppression is class-agnostic by default: overlapping boxes of different
    classes suppress each other. The result is ordered by confidence, descending.
    """

    if not detections:
        return []

    boxes = np.array([d.as_xyxy() for d in detections], dtype=np.float64)
    scores = np.array([d.confidence for d in detections], dtype=np.float64)

    if cfg.class_agnostic:
        keep = nms(boxes, scores, cfg)
    else:
        labels = np.array([d.label for d in detections], dtype=object)
        keep = _class_aware_nms(boxes, scores, labels, cfg)

    return [detections[int(i)] for i in keep]
