"""
Review State Store.

Provides the per (learner, item) review state and the storage contract the
scheduler and recommendation blender read from:
- ReviewState: SM-2 state plus mastery and exposure counters
- LearnableItem: Catalog entry (type, difficulty, visibility)
- MasteryStore: Async storage protocol
- InMemoryMasteryStore: Dict-backed store for tests and embedded use

The SQL-backed implementation lives in adaptive_engine.db.stores.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

from adaptive_engine.core.mastery import ensure_utc

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ReviewState:
    """Review state for one learner on one item."""

    learner_id: str
    item_id: str
    repetitions: int = 0
    ease_factor: float = 2.5
    interval_days: int = 0
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    mastery_score: float = 0.0  # 0-100
    times_correct: int = 0
    times_incorrect: int = 0
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    average_response_time_ms: float | None = None
    fastest_response_time_ms: int | None = None
    timed_reviews: int = 0  # reviews that reported a response time

    @property
    def exposure_count(self) -> int:
        return self.times_correct + self.times_incorrect

    @property
    def accuracy(self) -> float:
        """Fraction of reviews answered correctly (0 when never reviewed)."""
        total = self.exposure_count
        return self.times_correct / total if total else 0.0

    def is_due(self, now: datetime) -> bool:
        """Check if this item is due for review at ``now``."""
        return self.next_review_at is not None and self.next_review_at <= now

    def copy(self) -> ReviewState:
        return replace(self)


@dataclass(frozen=True)
class LearnableItem:
    """A learnable item (annotation) in the catalog."""

    item_id: str
    item_type: str | None = None  # anatomical, behavioral, color, pattern, habitat
    difficulty: int = 1  # 1-5
    visible: bool = True
    label: str | None = None


@dataclass(frozen=True)
class DifficultyRange:
    """Inclusive difficulty bounds."""

    minimum: int
    maximum: int

    def contains(self, difficulty: int) -> bool:
        return self.minimum <= difficulty <= self.maximum


# =============================================================================
# Storage Contract
# =============================================================================


class MasteryStore(Protocol):
    """Storage collaborator for review state and the item catalog."""

    async def get(self, learner_id: str, item_id: str) -> ReviewState | None:
        """Return the stored state, or None when the learner never saw the item."""
        ...

    async def upsert(self, learner_id: str, item_id: str, state: ReviewState) -> ReviewState:
        """Insert or replace the state and return what was stored."""
        ...

    async def find_due(self, learner_id: str, now: datetime, limit: int) -> list[ReviewState]:
        """States with next_review_at <= now, earliest first."""
        ...

    async def find_weak(
        self,
        learner_id: str,
        threshold: float,
        limit: int,
        item_type: str | None = None,
    ) -> list[ReviewState]:
        """States below the mastery threshold, weakest then least recently seen first."""
        ...

    async def find_unseen(
        self,
        learner_id: str,
        limit: int,
        difficulty_range: DifficultyRange | None = None,
    ) -> list[LearnableItem]:
        """Visible catalog items without a state for this learner."""
        ...

    async def list_states(self, learner_id: str) -> list[ReviewState]:
        """All states for a learner."""
        ...

    async def add_items(self, items: list[LearnableItem]) -> None:
        """Insert or replace catalog entries."""
        ...


def _seen_sort_key(state: ReviewState) -> tuple[float, float]:
    seen = state.last_seen_at
    # Never-seen first, then oldest
    return (state.mastery_score, seen.timestamp() if seen is not None else float("-inf"))


class InMemoryMasteryStore:
    """
    Dict-backed MasteryStore.

    Returns copies so callers can never mutate stored state outside upsert().
    """

    def __init__(self, items: list[LearnableItem] | None = None):
        self._states: dict[tuple[str, str], ReviewState] = {}
        self._items: dict[str, LearnableItem] = {}
        for item in items or []:
            self._items[item.item_id] = item

    async def get(self, learner_id: str, item_id: str) -> ReviewState | None:
        state = self._states.get((learner_id, item_id))
        return state.copy() if state is not None else None

    async def upsert(self, learner_id: str, item_id: str, state: ReviewState) -> ReviewState:
        stored = replace(
            state,
            learner_id=learner_id,
            item_id=item_id,
            next_review_at=ensure_utc(state.next_review_at),
            last_reviewed_at=ensure_utc(state.last_reviewed_at),
            first_seen_at=ensure_utc(state.first_seen_at),
            last_seen_at=ensure_utc(state.last_seen_at),
        )
        self._states[(learner_id, item_id)] = stored
        return stored.copy()

    async def find_due(self, learner_id: str, now: datetime, limit: int) -> list[ReviewState]:
        due = [s for s in self._learner_states(learner_id) if s.is_due(now)]
        due.sort(key=lambda s: s.next_review_at)
        return [s.copy() for s in due[:limit]]

    async def find_weak(
        self,
        learner_id: str,
        threshold: float,
        limit: int,
        item_type: str | None = None,
    ) -> list[ReviewState]:
        weak = [s for s in self._learner_states(learner_id) if s.mastery_score < threshold]
        if item_type is not None:
            weak = [s for s in weak if self._item_type(s.item_id) == item_type]
        weak.sort(key=_seen_sort_key)
        return [s.copy() for s in weak[:limit]]

    async def find_unseen(
        self,
        learner_id: str,
        limit: int,
        difficulty_range: DifficultyRange | None = None,
    ) -> list[LearnableItem]:
        unseen = []
        for item in self._items.values():
            if not item.visible or (learner_id, item.item_id) in self._states:
                continue
            if difficulty_range is not None and not difficulty_range.contains(item.difficulty):
                continue
            unseen.append(item)
            if len(unseen) >= limit:
                break
        return unseen

    async def list_states(self, learner_id: str) -> list[ReviewState]:
        return [s.copy() for s in self._learner_states(learner_id)]

    async def add_items(self, items: list[LearnableItem]) -> None:
        for item in items:
            self._items[item.item_id] = item

    def _learner_states(self, learner_id: str) -> list[ReviewState]:
        return [s for (learner, _), s in self._states.items() if learner == learner_id]

    def _item_type(self, item_id: str) -> str | None:
        item = self._items.get(item_id)
        return item.item_type if item is not None else None


@dataclass
class LearnerStats:
    """Per-learner summary across all reviewed items."""

    learner_id: str
    total_items: int = 0
    mastered: int = 0
    learning: int = 0
    due_for_review: int = 0
    weak_count: int = 0
    average_mastery: float = 0.0
    streak: int = 0
    by_level: dict[str, int] = field(default_factory=dict)
