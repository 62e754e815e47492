"""
Recommendation Blending for Adaptive Practice.

Merges three independently sourced candidate sets into one priority list:
- Due for review (spaced repetition signal)
- Weak items (lowest mastery first)
- New items (never seen by this learner)

Category shares are targets, not guarantees. When a source has fewer
candidates than its share, the batch is simply shorter; the shortfall is
not redistributed to the other categories.
"""

from __future__ import annotations

import asyncio
import math
from collections import Counter
from collections.abc import Awaitable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from loguru import logger

from adaptive_engine.core.mastery import utc_now
from adaptive_engine.delivery.state_store import (
    DifficultyRange,
    LearnableItem,
    MasteryStore,
    ReviewState,
)


class RecommendationReason(str, Enum):
    """Why an item was recommended."""

    DUE_FOR_REVIEW = "due_for_review"
    WEAK = "weak"
    NEW = "new"
    REINFORCEMENT = "reinforcement"


# Priority per reason (1-10, higher = more important)
REASON_PRIORITY = {
    RecommendationReason.DUE_FOR_REVIEW: 10,
    RecommendationReason.WEAK: 8,
    RecommendationReason.REINFORCEMENT: 6,
    RecommendationReason.NEW: 5,
}


@dataclass(frozen=True)
class RecommendationCandidate:
    """One recommended item with its reasoning."""

    item_id: str
    reason: RecommendationReason
    priority: int
    state: ReviewState | None = None
    item: LearnableItem | None = None


@dataclass(frozen=True)
class RecommendationOptions:
    """Selection options for a recommendation batch."""

    focus_type: str | None = None
    difficulty_range: DifficultyRange | None = None
    include_new: bool = True


@dataclass(frozen=True)
class BlendWeights:
    """Target share of each category in a batch."""

    due: float = 0.4
    weak: float = 0.4
    new: float = 0.2

    def counts(self, count: int) -> tuple[int, int, int]:
        return (
            math.ceil(count * self.due),
            math.ceil(count * self.weak),
            math.ceil(count * self.new),
        )


class RecommendationBlender:
    """
    Select items for a practice batch from due, weak and new candidates.

    The three reads run concurrently. Each has its own timeout; a source
    that does not answer in time contributes nothing to the batch.
    """

    def __init__(
        self,
        store: MasteryStore,
        weak_threshold: float = 70.0,
        weights: BlendWeights | None = None,
        source_timeout: float | None = 2.0,
        clock=utc_now,
    ):
        """
        Initialize the blender.

        Args:
            store: MasteryStore collaborator providing the candidate queries
            weak_threshold: Mastery score (0-100) below which an item is weak
            weights: Category shares (40/40/20 by default)
            source_timeout: Seconds each source may take; None disables the timeout
            clock: Callable returning the current aware datetime
        """
        self.store = store
        self.weak_threshold = weak_threshold
        self.weights = weights or BlendWeights()
        self.source_timeout = source_timeout
        self._clock = clock

    async def get_recommendations(
        self,
        learner_id: str,
        count: int = 5,
        options: RecommendationOptions | None = None,
    ) -> list[RecommendationCandidate]:
        """
        Get recommended items for practice.

        Args:
            learner_id: Learner identifier
            count: Maximum number of items to return
            options: Focus type, difficulty range, whether to include new items

        Returns:
            Deduplicated candidates sorted by priority (highest first)
        """
        if count <= 0:
            return []

        options = options or RecommendationOptions()
        due_count, weak_count, new_count = self.weights.counts(count)
        now = self._clock()

        async def no_new_items() -> list[LearnableItem]:
            return []

        new_source = (
            self.store.find_unseen(learner_id, new_count, options.difficulty_range)
            if options.include_new
            else no_new_items()
        )

        due, weak, new = await asyncio.gather(
            self._fetch("due", self.store.find_due(learner_id, now, due_count)),
            self._fetch(
                "weak",
                self.store.find_weak(learner_id, self.weak_threshold, weak_count, options.focus_type),
            ),
            self._fetch("new", new_source),
        )

        candidates = [
            *(self._from_state(s, RecommendationReason.DUE_FOR_REVIEW) for s in due[:due_count]),
            *(self._from_state(s, RecommendationReason.WEAK) for s in weak[:weak_count]),
            *(
                RecommendationCandidate(
                    item_id=item.item_id,
                    reason=RecommendationReason.NEW,
                    priority=REASON_PRIORITY[RecommendationReason.NEW],
                    item=item,
                )
                for item in new[:new_count]
            ),
        ]

        ranked = blend_candidates(candidates, count)

        breakdown = Counter(c.reason.value for c in ranked)
        logger.info(
            f"Generated {len(ranked)}/{count} recommendations for {learner_id}: "
            f"due={breakdown.get('due_for_review', 0)} "
            f"weak={breakdown.get('weak', 0)} "
            f"new={breakdown.get('new', 0)}"
        )
        return ranked

    async def _fetch(self, source: str, query: Awaitable[list]) -> list:
        """Await one candidate source, degrading to nothing on timeout."""
        try:
            if self.source_timeout is None:
                return await query
            return await asyncio.wait_for(query, timeout=self.source_timeout)
        except TimeoutError:
            logger.warning(
                f"Recommendation source '{source}' timed out after {self.source_timeout}s; "
                "continuing without it"
            )
            return []

    @staticmethod
    def _from_state(state: ReviewState, reason: RecommendationReason) -> RecommendationCandidate:
        return RecommendationCandidate(
            item_id=state.item_id,
            reason=reason,
            priority=REASON_PRIORITY[reason],
            state=state,
        )


def blend_candidates(
    candidates: list[RecommendationCandidate],
    count: int,
) -> list[RecommendationCandidate]:
    """
    Deduplicate by item id and rank by priority.

    On collision the higher-priority candidate wins. Ties keep the order the
    sources produced them in (due by review date, weak by mastery).
    """
    best: dict[str, tuple[int, RecommendationCandidate]] = {}
    for rank, candidate in enumerate(candidates):
        existing = best.get(candidate.item_id)
        if existing is None or candidate.priority > existing[1].priority:
            best[candidate.item_id] = (rank, candidate)

    ordered = sorted(best.values(), key=lambda entry: (-entry[1].priority, entry[0]))
    return [candidate for _, candidate in ordered[:count]]
