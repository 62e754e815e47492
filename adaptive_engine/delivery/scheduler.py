"""
SM-2 Spaced Repetition Scheduler.

Implements the SuperMemo 2 update as a pure function of the current
interval, ease factor and repetition count.

SM-2 Grade Scale:
0 - Complete blackout, wrong response
1 - Incorrect, but upon seeing answer remembered
2 - Incorrect, but answer seemed easy to recall
3 - Correct, but with significant difficulty
4 - Correct, with some hesitation
5 - Correct, with perfect recall
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from adaptive_engine.core.mastery import utc_now

MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3


# =============================================================================
# SM-2 Algorithm
# =============================================================================


@dataclass(frozen=True)
class SM2Config:
    """Configuration for SM-2 algorithm."""

    initial_easiness: float = 2.5
    minimum_easiness: float = 1.3
    first_interval: int = 1  # Days for first review
    second_interval: int = 6  # Days for second review
    failure_interval: int = 1
    failure_ease_penalty: float = 0.2
    failure_mastery_delta: float = -10.0
    mastery_step: float = 5.0  # Mastery gained per quality point above 2


@dataclass(frozen=True)
class ReviewSchedule:
    """Outcome of one SM-2 step."""

    new_interval: int
    new_ease: float
    new_repetitions: int
    next_date: datetime
    mastery_delta: float

    @property
    def passed(self) -> bool:
        return self.new_repetitions > 0


def clamp_quality(quality: float) -> float:
    """Clamp a recall quality to the 0-5 scale. NaN counts as a blackout."""
    if math.isnan(quality):
        return MIN_QUALITY
    return max(MIN_QUALITY, min(MAX_QUALITY, quality))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ReviewScheduler:
    """
    Implements the SM-2 spaced repetition algorithm.

    The SuperMemo 2 algorithm calculates optimal review intervals
    based on performance history. Each item has:
    - Easiness Factor (EF): How easy the item is (2.5 default, min 1.3)
    - Interval: Days until next review
    - Repetitions: Consecutive correct recalls
    """

    def __init__(self, config: SM2Config | None = None):
        """
        Initialize SM-2 scheduler.

        Args:
            config: Custom configuration (uses defaults if None)
        """
        self.config = config or SM2Config()

    def compute_next_review(
        self,
        quality: float,
        current_interval: int,
        current_ease: float,
        repetitions: int,
        now: datetime | None = None,
    ) -> ReviewSchedule:
        """
        Calculate the next review from a recall quality.

        Out-of-range qualities are clamped, never rejected.

        Args:
            quality: Recall quality (0-5)
            current_interval: Current interval in days
            current_ease: Current ease factor
            repetitions: Consecutive successful reviews so far
            now: Reference time (defaults to UTC now)

        Returns:
            ReviewSchedule with interval, ease, repetitions, date and mastery delta
        """
        cfg = self.config
        q = clamp_quality(quality)

        if q < PASSING_QUALITY:
            # Failed - reset to beginning
            new_repetitions = 0
            new_interval = cfg.failure_interval
            new_ease = max(cfg.minimum_easiness, current_ease - cfg.failure_ease_penalty)
            mastery_delta = cfg.failure_mastery_delta
        else:
            # Passed - advance
            new_repetitions = repetitions + 1

            if new_repetitions == 1:
                new_interval = cfg.first_interval
            elif new_repetitions == 2:
                new_interval = cfg.second_interval
            else:
                new_interval = _round_half_up(current_interval * current_ease)

            # EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
            ef_delta = 0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)
            new_ease = max(cfg.minimum_easiness, current_ease + ef_delta)

            # +5 for q=3, +10 for q=4, +15 for q=5
            mastery_delta = (q - 2) * cfg.mastery_step

        reference = now or utc_now()

        return ReviewSchedule(
            new_interval=new_interval,
            new_ease=new_ease,
            new_repetitions=new_repetitions,
            next_date=reference + timedelta(days=new_interval),
            mastery_delta=mastery_delta,
        )

    def grade_from_response(
        self,
        is_correct: bool,
        response_ms: int,
        expected_ms: int = 10000,
    ) -> int:
        """
        Convert a response to an SM-2 grade.

        Args:
            is_correct: Whether the answer was correct
            response_ms: Time taken to respond
            expected_ms: Expected response time

        Returns:
            SM-2 grade (0-5)
        """
        if not is_correct:
            # Quick wrong answers suggest a guess; slow ones a near miss
            return 0 if response_ms < expected_ms * 0.5 else 1

        ratio = response_ms / expected_ms if expected_ms > 0 else 1.0
        if ratio < 0.5:
            return 5
        elif ratio < 1.0:
            return 4
        else:
            return 3
