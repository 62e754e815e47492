"""
Core Mastery Module.

Shared vocabulary for mastery scores and time handling.

Design:
- MasteryLevel: Enum for categorizing 0-100 mastery scores
- clamp_mastery: Keeps every stored score inside [0, 100]
- utc_now / ensure_utc: Timezone-aware timestamps regardless of backend
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

MASTERY_MIN = 0.0
MASTERY_MAX = 100.0
MASTERED_THRESHOLD = 80.0


class MasteryLevel(str, Enum):
    """
    Mastery level categorization.

    Aligned with learning science research on skill acquisition stages.
    """

    NOT_STARTED = "not_started"  # 0
    NOVICE = "novice"  # 1-39
    DEVELOPING = "developing"  # 40-69
    PROFICIENT = "proficient"  # 70-79
    MASTERED = "mastered"  # 80-100

    @classmethod
    def from_score(cls, score: float) -> MasteryLevel:
        """
        Convert a 0-100 mastery score to a level.

        Args:
            score: Mastery score between 0 and 100

        Returns:
            Corresponding MasteryLevel
        """
        if score <= 0:
            return cls.NOT_STARTED
        elif score < 40:
            return cls.NOVICE
        elif score < 70:
            return cls.DEVELOPING
        elif score < MASTERED_THRESHOLD:
            return cls.PROFICIENT
        else:
            return cls.MASTERED

    @property
    def display_name(self) -> str:
        """Human-readable name."""
        return self.value.replace("_", " ").title()

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            MasteryLevel.NOT_STARTED: "dim",
            MasteryLevel.NOVICE: "red",
            MasteryLevel.DEVELOPING: "yellow",
            MasteryLevel.PROFICIENT: "cyan",
            MasteryLevel.MASTERED: "green",
        }[self]


def clamp_mastery(score: float) -> float:
    """Clamp a mastery score to [0, 100]."""
    return max(MASTERY_MIN, min(MASTERY_MAX, score))


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """
    Normalize a timestamp to aware UTC.

    SQLite drops tzinfo on the way back, so naive values are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
