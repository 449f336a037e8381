import argparse
import logging
import queue
from pathlib import Path
from typing import List, Optional, Tuple

import cv2
import numpy as np
from tqdm import tqdm

from Live_Detection import LiveDetectionLoop, SettingsStore, build_pipeline, setup_logging
from Live_Detection.live_loop import FrameResult
from detkit import (
    ClassCatalog,
    Detection,
    LetterboxTransform,
    PreparedFrame,
    ResizeTransform,
    color_for_label,
    format_caption,
    oriented_size,
)
from detkit.backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

logger = logging.getLogger("run_detection")

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".bmp", ".webp"}
_ROTATIONS = {90: cv2.ROTATE_90_CLOCKWISE, 180: cv2.ROTATE_180, 270: cv2.ROTATE_90_COUNTERCLOCKWISE}


def to_blob(image_bgr: np.ndarray) -> np.ndarray:
    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = image_bgr[:, :, ::-1].astype(np.float32) / 255.0
    return np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])


def prepare_resized(image_bgr: np.ndarray, size: Tuple[int, int]) -> PreparedFrame:
    """
    Picked images are stretched to the model input, no letterbox.
    """

    h, w = image_bgr.shape[:2]
    resized = cv2.resize(image_bgr, size, interpolation=cv2.INTER_LINEAR)
    return PreparedFrame(blob=to_blob(resized), transform=ResizeTransform(w, h, size[0], size[1]))


def prepare_letterboxed(image_bgr: np.ndarray, size: Tuple[int, int], orig_size: Tuple[int, int]) -> Optional[PreparedFrame]:
    """
    Live frames are letterboxed. `size` is the model input and `orig_size` the
    post-rotation frame, both (width, height).
    """

    transform = LetterboxTransform.fit(orig_size[0], orig_size[1], size[0], size[1])
    if transform is None:
        return None

    p = transform.params
    canvas = np.zeros((size[1], size[0], 3), dtype=np.uint8)
    resized = cv2.resize(image_bgr, (p.resized_width, p.resized_height), interpolation=cv2.INTER_LINEAR)
    canvas[p.pad_y : p.pad_y + p.resized_height, p.pad_x : p.pad_x + p.resized_width] = resized
    return PreparedFrame(blob=to_blob(canvas), transform=transform)


def draw(image_bgr: np.ndarray, detections: List[Detection]) -> np.ndarray:
    out = image_bgr.copy()
    for det in detections:
        x1, y1, x2, y2 = (int(round(v)) for v in det.as_xyxy())
        color = color_for_label(det.label)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=2)
        caption = format_caption(det)
        (tw, th), baseline = cv2.getTextSize(caption, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        top = max(0, y1 - th - baseline)
        cv2.rectangle(out, (x1, top), (x1 + tw, top + th + baseline), color, thickness=-1)
        cv2.putText(out, caption, (x1, top + th), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 1, cv2.LINE_AA)
    return out


def run_images(args: argparse.Namespace, backend: OnnxRuntimeBackend, settings: SettingsStore, catalog: ClassCatalog) -> int:
    src = Path(args.images)
    paths = sorted(p for p in src.iterdir() if p.suffix.lower() in IMAGE_SUFFIXES) if src.is_dir() else [src]
    if not paths:
        raise FileNotFoundError(f"No images found at: {src}")

    out_dir = Path(args.out) if args.out else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    pipeline = build_pipeline(backend.infer, settings, catalog)
    size = backend.resolve_input_size(settings.get().model_input_size)

    for path in tqdm(paths, desc="detect", unit="img", disable=len(paths) < 2):
        img = cv2.imread(str(path))
        if img is None:
            logger.warning("Could not read image: %s", path)
            continue

        detections = pipeline(prepare_resized(img, size))
        for det in detections:
            print(path.name, det.label, f"{det.confidence:.3f}", tuple(round(v, 1) for v in det.as_xyxy()))

        if out_dir is not None:
            target = out_dir / path.name
            if not cv2.imwrite(str(target), draw(img, detections)):
                raise RuntimeError(f"Failed to write output image: {target}")
    return 0


def run_camera(args: argparse.Namespace, backend: OnnxRuntimeBackend, settings: SettingsStore, catalog: ClassCatalog) -> int:
    cap = cv2.VideoCapture(int(args.webcam))
    if not cap.isOpened():
        raise RuntimeError(f"Could not open webcam index: {args.webcam}")

    rotation = int(args.rotate)
    latest: "queue.Queue[Tuple[np.ndarray, FrameResult]]" = queue.Queue(maxsize=1)
    current = {}

    def source() -> Optional[PreparedFrame]:
        ok, raw = cap.read()
        if not ok or raw is None:
            return None
        orig_size = oriented_size(raw.shape[1], raw.shape[0], rotation)
        frame = cv2.rotate(raw, _ROTATIONS[rotation]) if rotation else raw
        current["frame"] = frame
        size = backend.resolve_input_size(settings.get().model_input_size)
        return prepare_letterboxed(frame, size, orig_size)

    def on_result(result: FrameResult) -> None:
        # only the newest result is worth drawing
        try:
            latest.get_nowait()
        except queue.Empty:
            pass
        latest.put_nowait((current["frame"], result))

    loop = LiveDetectionLoop(source, build_pipeline(backend.infer, settings, catalog), settings, on_result=on_result)
    loop.start()
    try:
        while True:
            try:
                frame, result = latest.get(timeout=1.0)
            except queue.Empty:
                if not loop.is_running:
                    break
                continue
            cv2.imshow("detections", draw(frame, list(result.detections)))
            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord("q")):
                break
    finally:
        loop.close()
        cap.release()
        cv2.destroyAllWindows()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an exported detector on images or a webcam and draw the boxes.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--images", default=None, help="Image file or directory of images.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--model", required=True, help="Path to an .onnx detector.")
    parser.add_argument("--metadata", default=None, help="Optional metadata.yaml with class names (default: COCO).")
    parser.add_argument("--settings", default=None, help="Optional settings JSON; re-read when it changes.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold override.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold override.")
    parser.add_argument("--rotate", type=int, default=0, choices=[0, 90, 180, 270], help="Rotate webcam frames.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CPUExecutionProvider".',
    )
    parser.add_argument("--out", default=None, help="Directory to write annotated images to.")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    setup_logging(args.log_level)

    settings_path = Path(args.settings) if args.settings else None
    settings = SettingsStore(path=settings_path)
    overrides = {}
    if args.conf is not None:
        overrides["confidence_threshold"] = args.conf
    if args.iou is not None:
        overrides["iou_threshold"] = args.iou
    if overrides:
        settings.update(**overrides)

    catalog = ClassCatalog.from_metadata(args.metadata) if args.metadata else ClassCatalog.coco()

    providers = None
    if args.onnx_providers:
        providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]
    backend = OnnxRuntimeBackend(args.model, OnnxRuntimeBackendConfig(providers=providers))
    if backend.input_size is not None and backend.input_size != (settings.get().model_input_size,) * 2:
        logger.info("Model declares a fixed %dx%d input; model_input_size is ignored", *backend.input_size)

    if args.images is not None:
        return run_images(args, backend, settings, catalog)
    return run_camera(args, backend, settings, catalog)


if __name__ == "__main__":
    raise SystemExit(main())
