"""
Application layer built on top of `detkit`.

`detkit` stays a pure post-processing library; this package owns what a running
detector needs around it:
- settings (thresholds, timeouts) that can change while the loop runs
- the live capture loop with its one-frame-in-flight policy
- logging setup
"""

from __future__ import annotations

from .config import DetectionSettings, SettingsStore, load_settings
from .live_loop import FpsMeter, FrameResult, LiveDetectionLoop, build_pipeline
from .logging_setup import setup_logging

__all__ = [
    "DetectionSettings",
    "SettingsStore",
    "load_settings",
    "FpsMeter",
    "FrameResult",
    "LiveDetectionLoop",
    "build_pipeline",
    "setup_logging",
]
