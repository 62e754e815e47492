"""
Delivery: review scheduling and mastery tracking.

Components:
- ReviewScheduler: SM-2 spaced repetition step
- MasteryService: Atomic review recording and learner summaries
- MasteryStore: Storage protocol (in-memory implementation included)
"""

from .mastery_service import MasteryService, review_streak
from .scheduler import ReviewSchedule, ReviewScheduler, SM2Config, clamp_quality
from .state_store import (
    DifficultyRange,
    InMemoryMasteryStore,
    LearnableItem,
    LearnerStats,
    MasteryStore,
    ReviewState,
)

__all__ = [
    # Scheduling
    "ReviewScheduler",
    "ReviewSchedule",
    "SM2Config",
    "clamp_quality",
    # Mastery
    "MasteryService",
    "LearnerStats",
    "review_streak",
    # Persistence
    "MasteryStore",
    "InMemoryMasteryStore",
    "ReviewState",
    "LearnableItem",
    "DifficultyRange",
]
