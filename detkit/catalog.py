from __future__ import annotations

from typing import Dict, Iterable, Sequence, Tuple

COCO_CLASS_NAMES: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck", "boat",
    "traffic light", "fire hydrant", "stop sign", "parking meter", "bench",
    "bird", "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra", "giraffe",
    "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee", "skis", "snowboard",
    "sports ball", "kite", "baseball bat", "baseball glove", "skateboard", "surfboard", "tennis racket",
    "bottle", "wine glass", "cup", "fork", "knife", "spoon", "bowl", "banana", "apple", "sandwich", "orange",
    "broccoli", "carrot", "hot dog", "pizza", "donut", "cake", "chair", "couch", "potted plant", "bed",
    "dining table", "toilet", "tv", "laptop", "mouse", "remote", "keyboard", "cell phone", "microwave", "oven",
    "toaster", "sink", "refrigerator", "book", "clock", "vase", "scissors", "teddy bear", "hair drier", "toothbrush",
)


class ClassCatalog:
    """
    Ordered, index-addressed class names.

    Indices outside the catalog resolve to a synthetic `cls_<index>` label so
    models trained on a different class count still produce readable output.
    """

    def __init__(self, names: Iterable[str]):
        self._names: Tuple[str, ...] = tuple(str(n) for n in names)

    @classmethod
    def coco(cls) -> "ClassCatalog":
        return cls(COCO_CLASS_NAMES)

    @classmethod
    def from_mapping(cls, names: Dict[int, str]) -> "ClassCatalog":
        if not names:
            return cls(())
        size = max(names) + 1
        return cls(names.get(i, f"cls_{i}") for i in range(size))

    @classmethod
    def from_metadata(cls, metadata_path: str) -> "ClassCatalog":
        return cls.from_mapping(load_class_names(metadata_path))

    @property
    def names(self) -> Sequence[str]:
        return self._names

    def label_for(self, index: int) -> str:
        if 0 <= index < len(self._names):
            return self._names[index]
        return f"cls_{index}"

    def __len__(self) -> int:
        return len(self._names)

    def __getitem__(self, index: int) -> str:
        return self._names[index]


def load_class_names(metadata_path: str) -> Dict[int, str]:
    """
    Read class names from the `metadata.yaml` written next to exported models:

        names:
          0: person
          1: bicycle

    Only the `names:` block is parsed, so no YAML dependency is needed.
    """

    names: Dict[int, str] = {}
    in_names = False

    with open(metadata_path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            if line == "names:":
                in_names = True
                continue
            if not in_names:
                continue
            # a dedented key ends the block
            if not raw[:1].isspace() and not line.split(":", 1)[0].strip().isdigit():
                break

            if ":" not in line:
                continue
            left, right = line.split(":", 1)
            left = left.strip()
            if not left.isdigit():
                continue
            names[int(left)] = right.strip().strip("'").strip('"')

    return names
