"""
Core Module - Shared domain vocabulary.

Components:
- mastery: MasteryLevel, score clamping, UTC timestamp helpers
- locks: KeyedLock for per-key atomic read-modify-write
- errors: Package exception hierarchy
- log_config: Loguru sink setup

Design Principle:
Domain modules (delivery, adaptive, learning) import shared concepts from
here rather than reimplementing them.
"""

from adaptive_engine.core.errors import AdaptiveEngineError, EngineNotStartedError
from adaptive_engine.core.locks import KeyedLock
from adaptive_engine.core.mastery import (
    MASTERED_THRESHOLD,
    MasteryLevel,
    clamp_mastery,
    ensure_utc,
    utc_now,
)

__all__ = [
    "AdaptiveEngineError",
    "EngineNotStartedError",
    "KeyedLock",
    "MASTERED_THRESHOLD",
    "MasteryLevel",
    "clamp_mastery",
    "ensure_utc",
    "utc_now",
]
