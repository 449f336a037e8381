from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .catalog import ClassCatalog
from .decode import decode_boxes
from .layout import resolve_layout
from .mapping import InputTransform, map_to_image
from .nms import NMSConfig, suppress
from .types import Detection, RawOutputTensor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Thresholds and switches for post-processing one output tensor.
    """

    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    # False runs per-class NMS. Changes results relative to the default.
    class_agnostic_nms: bool = True
    # Force reading an objectness column (True) or not (False) for both layouts.
    # None: box-first outputs have one, channel-first outputs do not.
    objectness: Optional[bool] = None
    max_detections: Optional[int] = None
    clip_to_image: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 when set")


class DetectionPostprocessor:
    """
    Raw output tensor -> deduplicated detections.

    Supported per-box layouts (see `detkit.decode.BoxEncoding`):
    - (1, N, 6) or (1, 6, N): [x1, y1, x2, y2, score, class_id], already suppressed
    - (1, N, 5 + C): [cx, cy, w, h, obj, class_scores...]
    - (1, 4 + C, N): [cx, cy, w, h, class_scores...], e.g. 1x84x8400

    Anything else decodes to an empty list; nothing here raises on odd data.
    """

    def __init__(self, cfg: PostprocessConfig = PostprocessConfig(), catalog: Optional[ClassCatalog] = None):
        self.cfg = cfg
        self.catalog = catalog if catalog is not None else ClassCatalog.coco()

    def decode(self, output: RawOutputTensor, cfg: Optional[PostprocessConfig] = None) -> List[Detection]:
        """
        Model-space detections, in suppression order.

        `cfg` overrides the instance config for this call so thresholds can be
        read fresh for every frame.
        """

        cfg = cfg if cfg is not None else self.cfg

        layout = resolve_layout(output.shape)
        if layout is None:
            return []

        result = decode_boxes(
            output,
            layout,
            cfg.conf_threshold,
            catalog=self.catalog,
            objectness=cfg.objectness,
        )
        if not result.detections:
            return []

        if not result.needs_suppression:
            return result.detections

        kept = suppress(
            result.detections,
            NMSConfig(
                iou_threshold=cfg.iou_threshold,
                max_detections=cfg.max_detections,
                class_agnostic=cfg.class_agnostic_nms,
            ),
        )
        logger.debug("NMS kept %d of %d candidates", len(kept), len(result.detections))
        return kept

    def process(
        self,
        output: RawOutputTensor,
        transform: InputTransform,
        cfg: Optional[PostprocessConfig] = None,
    ) -> List[Detection]:
        """
        Decode, suppress and map back to original-image coordinates.

        Args:
            output: raw model output for a single image
            transform: the preprocessing that produced the model input
            cfg: per-call config override
        """

        cfg = cfg if cfg is not None else self.cfg
        return map_to_image(self.decode(output, cfg), transform, clip=cfg.clip_to_image)
