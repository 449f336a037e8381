from __future__ import annotations

import logging
from typing import Optional, Sequence

from .types import TensorLayout

logger = logging.getLogger(__name__)

# Attribute rows (4 box coords + classes) above this are assumed to be boxes.
# Models with more than 300 classes AND fewer boxes than classes are
# misclassified as box-first; changing the bound changes how existing exports
# decode.
CHANNELS_FIRST_MAX_ATTRIBUTES = 300


def resolve_layout(shape: Sequence[int]) -> Optional[TensorLayout]:
    """
    Decide how a (batch, d1, d2) output is organised without model metadata.

    - (1, C, N) with small C and larger N (e.g. 1x84x8400): channel-first
    - anything else, e.g. (1, 8400, 84) or (1, 300, 6): box-first

    Returns None for anything that is not a single-image rank-3 tensor.
    """

    dims = tuple(int(d) for d in shape)
    if len(dims) != 3:
        logger.debug("Unsupported output rank %d (shape %s)", len(dims), dims)
        return None

    batch, d1, d2 = dims
    if batch != 1:
        logger.debug("Batch > 1 is not supported (shape %s)", dims)
        return None
    if d1 <= 0 or d2 <= 0:
        return None

    if d1 <= CHANNELS_FIRST_MAX_ATTRIBUTES and d2 > d1:
        return TensorLayout(num_boxes=d2, elem_per_box=d1, boxes_first=False)
    return TensorLayout(num_boxes=d1, elem_per_box=d2, boxes_first=True)
