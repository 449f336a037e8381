from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np

from ..types import RawOutputTensor

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    - providers: passed straight to ORT, e.g. ["CPUExecutionProvider"]; None lets ORT decide
    - input_name/output_name: override the first input/output if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None
    output_name: Optional[str] = None


class OnnxRuntimeBackend:
    """
    Runs an exported detector and returns its primary output as a RawOutputTensor.

    Expects an NCHW float32 blob shaped (1, 3, H, W).
    """

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime`."
            ) from e

        self.model_path = Path(model_path)
        if not self.model_path.exists():
            raise FileNotFoundError(str(self.model_path))

        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(str(self.model_path), providers=providers)

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        self.output_name = cfg.output_name or self.session.get_outputs()[0].name
        self._input_shape = tuple(model_input.shape)

    @property
    def input_size(self) -> Optional[Tuple[int, int]]:
        """
        (width, height) the model was exported with, or None when the spatial
        axes are dynamic and the caller picks the size.
        """

        if len(self._input_shape) != 4:
            return None
        h, w = self._input_shape[2:4]
        if isinstance(w, int) and isinstance(h, int) and w > 0 and h > 0:
            return w, h
        return None

    def resolve_input_size(self, fallback: int) -> Tuple[int, int]:
        size = self.input_size
        return size if size is not None else (fallback, fallback)

    def infer(self, blob: np.ndarray) -> RawOutputTensor:
        outputs = self.session.run([self.output_name], {self.input_name: blob})
        return RawOutputTensor.from_array(outputs[0])
