"""Exceptions raised by the adaptive engine."""

from __future__ import annotations


class AdaptiveEngineError(Exception):
    """Base class for adaptive engine errors."""


class EngineNotStartedError(AdaptiveEngineError):
    """The engine facade was used before ``start()`` completed."""

    def __init__(self, operation: str):
        super().__init__(f"AdaptiveLearningEngine.{operation} called before start()")
        self.operation = operation
