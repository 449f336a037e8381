"""
Post-processing for object-detection model outputs.

Turns a raw, shape-ambiguous output tensor into deduplicated, labeled boxes in
original-image coordinates. Depends on NumPy only; inference runtimes live in
`detkit.backends`.
"""

from .types import CoordinateSpace, Detection, LetterboxParams, RawOutputTensor, TensorLayout
from .catalog import COCO_CLASS_NAMES, ClassCatalog, load_class_names
from .letterbox import compute_letterbox, oriented_size, unletterbox_box
from .layout import resolve_layout
from .decode import BoxEncoding, DecodeResult, decode_boxes, select_encoding
from .nms import NMSConfig, box_iou, nms, suppress
from .mapping import InputTransform, LetterboxTransform, ResizeTransform, map_to_image
from .postprocess import DetectionPostprocessor, PostprocessConfig
from .runtime import DetectionPipeline, PreparedFrame
from .overlay import color_for_label, format_caption

__all__ = [
    "CoordinateSpace",
    "Detection",
    "LetterboxParams",
    "RawOutputTensor",
    "TensorLayout",
    "COCO_CLASS_NAMES",
    "ClassCatalog",
    "load_class_names",
    "compute_letterbox",
    "oriented_size",
    "unletterbox_box",
    "resolve_layout",
    "BoxEncoding",
    "DecodeResult",
    "decode_boxes",
    "select_encoding",
    "NMSConfig",
    "box_iou",
    "nms",
    "suppress",
    "InputTransform",
    "LetterboxTransform",
    "ResizeTransform",
    "map_to_image",
    "DetectionPostprocessor",
    "PostprocessConfig",
    "DetectionPipeline",
    "PreparedFrame",
    "color_for_label",
    "format_caption",
]
