"""
Optional inference backends for detkit.

Kept apart from the core so post-processing can be used without installing an
inference runtime.
"""

from __future__ import annotations

__all__ = []
