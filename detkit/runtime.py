from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Union

import numpy as np

from .catalog import ClassCatalog
from .mapping import InputTransform
from .postprocess import DetectionPostprocessor, PostprocessConfig
from .types import Detection, RawOutputTensor

InferFn = Callable[[np.ndarray], Union[RawOutputTensor, np.ndarray]]


@dataclass(frozen=True)
class PreparedFrame:
    """
    A model input handed over by the preprocessing side.

    `blob` is a planar (1, 3, H, W) float32 array with values in [0, 1];
    `transform` records how the original image was fitted into it.
    """

    blob: np.ndarray
    transform: InputTransform


class DetectionPipeline:
    """
    Inference -> post-processing for one prepared frame at a time.

    `config_provider` is called on every frame, so threshold changes made by a
    settings surface apply to the next frame without rebuilding the pipeline.
    The pipeline keeps no per-frame state.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        *,
        catalog: Optional[ClassCatalog] = None,
        config_provider: Callable[[], PostprocessConfig] = PostprocessConfig,
    ):
        self._infer_fn = infer_fn
        self._config_provider = config_provider
        self.post = DetectionPostprocessor(catalog=catalog)

    def infer(self, blob: np.ndarray) -> RawOutputTensor:
        out = self._infer_fn(blob)
        if isinstance(out, RawOutputTensor):
            return out
        return RawOutputTensor.from_array(out)

    def __call__(self, frame: PreparedFrame) -> List[Detection]:
        output = self.infer(frame.blob)
        return self.post.process(output, frame.transform, cfg=self._config_provider())
