"""
Mastery Service.

Records reviews against the SM-2 scheduler and keeps per (learner, item)
review state consistent:
- Lazily seeds state on first exposure
- Serializes concurrent reviews of the same key
- Clamps mastery to [0, 100]
- Summarizes a learner's progress (mastered, learning, due, streak)
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, timedelta

from loguru import logger

from adaptive_engine.core.locks import KeyedLock
from adaptive_engine.core.mastery import (
    MASTERED_THRESHOLD,
    MasteryLevel,
    clamp_mastery,
    utc_now,
)
from adaptive_engine.delivery.scheduler import (
    PASSING_QUALITY,
    ReviewScheduler,
    clamp_quality,
)
from adaptive_engine.delivery.state_store import LearnerStats, MasteryStore, ReviewState

DISCOVERY_REVIEW_DELAY = timedelta(days=1)


class MasteryService:
    """
    Track learner mastery per item using SM-2.

    Each review is an atomic read-modify-write on one (learner, item) key;
    reviews of different keys run independently.
    """

    def __init__(
        self,
        store: MasteryStore,
        scheduler: ReviewScheduler | None = None,
        weak_threshold: float = 70.0,
        clock=utc_now,
    ):
        """
        Initialize the service.

        Args:
            store: MasteryStore collaborator
            scheduler: SM-2 scheduler (default configuration if None)
            weak_threshold: Mastery score below which an item counts as weak
            clock: Callable returning the current aware datetime
        """
        self.store = store
        self.scheduler = scheduler or ReviewScheduler()
        self.weak_threshold = weak_threshold
        self._clock = clock
        self._locks = KeyedLock()

    def seed_state(self, learner_id: str, item_id: str, now: datetime) -> ReviewState:
        """Fresh state for an item the learner has never seen."""
        return ReviewState(
            learner_id=learner_id,
            item_id=item_id,
            ease_factor=self.scheduler.config.initial_easiness,
            first_seen_at=now,
        )

    async def record_review(
        self,
        learner_id: str,
        item_id: str,
        quality: float,
        response_time_ms: int | None = None,
    ) -> ReviewState:
        """
        Record a review result and update learner progress.

        Args:
            learner_id: Learner identifier
            item_id: Item identifier
            quality: Recall quality (clamped to 0-5)
            response_time_ms: Optional time taken to answer

        Returns:
            The updated, persisted ReviewState
        """
        async with self._locks.hold((learner_id, item_id)):
            now = self._clock()
            state = await self.store.get(learner_id, item_id)
            if state is None:
                logger.debug(f"First review of {item_id} for {learner_id}; seeding state")
                state = self.seed_state(learner_id, item_id, now)

            schedule = self.scheduler.compute_next_review(
                quality,
                state.interval_days,
                state.ease_factor,
                state.repetitions,
                now=now,
            )

            is_correct = clamp_quality(quality) >= PASSING_QUALITY
            if is_correct:
                state.times_correct += 1
            else:
                state.times_incorrect += 1

            if response_time_ms is not None:
                self._update_response_times(state, response_time_ms)

            state.repetitions = schedule.new_repetitions
            state.ease_factor = schedule.new_ease
            state.interval_days = schedule.new_interval
            state.next_review_at = schedule.next_date
            state.last_reviewed_at = now
            state.last_seen_at = now
            if state.first_seen_at is None:
                state.first_seen_at = now
            state.mastery_score = clamp_mastery(state.mastery_score + schedule.mastery_delta)

            saved = await self.store.upsert(learner_id, item_id, state)

        logger.info(
            f"Review recorded: learner={learner_id} item={item_id} quality={quality} "
            f"interval={schedule.new_interval}d mastery={saved.mastery_score:.0f}"
        )
        return saved

    @staticmethod
    def _update_response_times(state: ReviewState, response_time_ms: int) -> None:
        # Untimed reviews do not count towards the average
        state.timed_reviews += 1
        n = state.timed_reviews
        if state.average_response_time_ms is None or n <= 1:
            state.average_response_time_ms = float(response_time_ms)
        else:
            state.average_response_time_ms = (
                state.average_response_time_ms * (n - 1) + response_time_ms
            ) / n

        if state.fastest_response_time_ms is None or response_time_ms < state.fastest_response_time_ms:
            state.fastest_response_time_ms = response_time_ms

    async def mark_discovered(self, learner_id: str, item_id: str) -> ReviewState:
        """
        Mark an item as seen for the first time without a review.

        The item becomes due one day later. Existing state is left untouched.
        """
        async with self._locks.hold((learner_id, item_id)):
            existing = await self.store.get(learner_id, item_id)
            if existing is not None:
                return existing

            now = self._clock()
            state = self.seed_state(learner_id, item_id, now)
            state.last_seen_at = now
            state.next_review_at = now + DISCOVERY_REVIEW_DELAY
            saved = await self.store.upsert(learner_id, item_id, state)

        logger.debug(f"Item {item_id} discovered by {learner_id}")
        return saved

    async def get_state(self, learner_id: str, item_id: str) -> ReviewState | None:
        return await self.store.get(learner_id, item_id)

    async def get_mastery_score(self, learner_id: str, item_id: str) -> float:
        """Mastery score (0-100), or 0 if the item was never practiced."""
        state = await self.store.get(learner_id, item_id)
        return state.mastery_score if state is not None else 0.0

    async def get_user_stats(self, learner_id: str) -> LearnerStats:
        """Summarize a learner's progress across all items."""
        states = await self.store.list_states(learner_id)
        stats = LearnerStats(learner_id=learner_id, total_items=len(states))
        if not states:
            return stats

        now = self._clock()
        stats.mastered = sum(1 for s in states if s.mastery_score >= MASTERED_THRESHOLD)
        stats.learning = sum(1 for s in states if 0 < s.mastery_score < MASTERED_THRESHOLD)
        stats.due_for_review = sum(1 for s in states if s.is_due(now))
        stats.weak_count = sum(1 for s in states if s.mastery_score < self.weak_threshold)
        stats.average_mastery = sum(s.mastery_score for s in states) / len(states)
        stats.streak = review_streak(s.last_reviewed_at.date() for s in states if s.last_reviewed_at)
        levels = Counter(MasteryLevel.from_score(s.mastery_score).value for s in states)
        stats.by_level = dict(levels)
        return stats


def review_streak(review_days) -> int:
    """
    Count consecutive calendar days with reviews.

    The streak ends at the most recent review day and walks backwards
    until the first gap.
    """
    days: set[date] = set(review_days)
    if not days:
        return 0

    current = max(days)
    streak = 0
    while current in days:
        streak += 1
        current -= timedelta(days=1)
    return streak
