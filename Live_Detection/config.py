from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from detkit.postprocess import PostprocessConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionSettings:
    confidence_threshold: float = 0.25
    iou_threshold: float = 0.45
    model_input_size: int = 640
    capture_timeout_seconds: float = 0.5
    cycle_delay_seconds: float = 0.1
    class_agnostic_nms: bool = True

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be in [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be in [0, 1]")
        if self.model_input_size < 32:
            raise ValueError("model_input_size must be >= 32")
        if self.capture_timeout_seconds <= 0:
            raise ValueError("capture_timeout_seconds must be > 0")
        if self.cycle_delay_seconds < 0:
            raise ValueError("cycle_delay_seconds must be >= 0")

    def to_postprocess_config(self) -> PostprocessConfig:
        return PostprocessConfig(
            conf_threshold=self.confidence_threshold,
            iou_threshold=self.iou_threshold,
            class_agnostic_nms=self.class_agnostic_nms,
        )


def _require_number(payload: Dict[str, Any], key: str, default: float) -> float:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _require_int(payload: Dict[str, Any], key: str, default: int) -> int:
    if key not in payload:
        return default
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _require_bool(payload: Dict[str, Any], key: str, default: bool) -> bool:
    if key not in payload:
        return default
    value = payload[key]
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be true or false")
    return value


def load_settings(path: Path) -> DetectionSettings:
    """
    Read detection settings from a JSON object. Missing keys keep their defaults;
    unknown keys are rejected.
    """

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid settings JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Settings must be a JSON object")

    defaults = DetectionSettings()
    allowed = set(defaults.__dataclass_fields__)
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown settings keys: {unknown}")

    return DetectionSettings(
        confidence_threshold=_require_number(payload, "confidence_threshold", defaults.confidence_threshold),
        iou_threshold=_require_number(payload, "iou_threshold", defaults.iou_threshold),
        model_input_size=_require_int(payload, "model_input_size", defaults.model_input_size),
        capture_timeout_seconds=_require_number(payload, "capture_timeout_seconds", defaults.capture_timeout_seconds),
        cycle_delay_seconds=_require_number(payload, "cycle_delay_seconds", defaults.cycle_delay_seconds),
        class_agnostic_nms=_require_bool(payload, "class_agnostic_nms", defaults.class_agnostic_nms),
    )


class SettingsStore:
    """
    Read-mostly holder for the current settings.

    The detection loop calls `get()` once per frame; a settings surface may call
    `update()` or `reload_if_changed()` from another thread at any time.
    """

    def __init__(self, settings: Optional[DetectionSettings] = None, path: Optional[Path] = None):
        self._lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._path = path
        self._mtime: Optional[float] = None
        if settings is None:
            settings = load_settings(path) if path is not None else DetectionSettings()
        if path is not None and path.exists():
            self._mtime = path.stat().st_mtime
        self._settings = settings

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def get(self) -> DetectionSettings:
        with self._lock:
            return self._settings

    def update(self, **changes: Any) -> DetectionSettings:
        with self._lock:
            self._settings = replace(self._settings, **changes)
            return self._settings

    def reload_if_changed(self) -> bool:
        """
        Re-read the backing file when its mtime moved. A broken file keeps the
        previous settings and is logged. Concurrent callers load a given change once.
        """

        if self._path is None:
            return False

        with self._reload_lock:
            if not self._path.exists():
                return False
            mtime = self._path.stat().st_mtime
            with self._lock:
                if self._mtime is not None and mtime == self._mtime:
                    return False

            try:
                settings = load_settings(self._path)
            except ValueError:
                logger.warning("Ignoring invalid settings file %s", self._path, exc_info=True)
                with self._lock:
                    self._mtime = mtime
                return False

            with self._lock:
                self._settings = settings
                self._mtime = mtime

        logger.info(
            "Settings reloaded: conf=%.2f iou=%.2f",
            settings.confidence_threshold,
            settings.iou_threshold,
        )
        return True
