"""
SQL-backed stores.

SqlMasteryStore and SqlKeyValueStore implement the async storage protocols
on top of a synchronous SQLAlchemy session. Each call runs its session in
a worker thread so the event loop is never blocked on I/O.

Timestamps are written as naive UTC and come back marked as UTC.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from sqlalchemy import and_, select

from adaptive_engine.core.mastery import ensure_utc
from adaptive_engine.db.database import Database
from adaptive_engine.db.models import ItemRow, KeyValueRow, ReviewStateRow
from adaptive_engine.delivery.state_store import DifficultyRange, LearnableItem, ReviewState


def _to_db(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    value = ensure_utc(value)
    return value.astimezone(UTC).replace(tzinfo=None)


def _state_from_row(row: ReviewStateRow) -> ReviewState:
    return ReviewState(
        learner_id=row.learner_id,
        item_id=row.item_id,
        repetitions=row.repetitions,
        ease_factor=row.ease_factor,
        interval_days=row.interval_days,
        next_review_at=ensure_utc(row.next_review_at),
        last_reviewed_at=ensure_utc(row.last_reviewed_at),
        mastery_score=row.mastery_score,
        times_correct=row.times_correct,
        times_incorrect=row.times_incorrect,
        first_seen_at=ensure_utc(row.first_seen_at),
        last_seen_at=ensure_utc(row.last_seen_at),
        average_response_time_ms=row.average_response_time_ms,
        fastest_response_time_ms=row.fastest_response_time_ms,
        timed_reviews=row.timed_reviews or 0,
    )


def _row_from_state(learner_id: str, item_id: str, state: ReviewState) -> ReviewStateRow:
    return ReviewStateRow(
        learner_id=learner_id,
        item_id=item_id,
        repetitions=state.repetitions,
        ease_factor=state.ease_factor,
        interval_days=state.interval_days,
        next_review_at=_to_db(state.next_review_at),
        last_reviewed_at=_to_db(state.last_reviewed_at),
        mastery_score=state.mastery_score,
        times_correct=state.times_correct,
        times_incorrect=state.times_incorrect,
        first_seen_at=_to_db(state.first_seen_at),
        last_seen_at=_to_db(state.last_seen_at),
        average_response_time_ms=state.average_response_time_ms,
        fastest_response_time_ms=state.fastest_response_time_ms,
        timed_reviews=state.timed_reviews,
    )


def _item_from_row(row: ItemRow) -> LearnableItem:
    return LearnableItem(
        item_id=row.item_id,
        item_type=row.item_type,
        difficulty=row.difficulty,
        visible=row.visible,
        label=row.label,
    )


class SqlMasteryStore:
    """MasteryStore over the review_states and learnable_items tables."""

    def __init__(self, db: Database):
        self.db = db

    async def get(self, learner_id: str, item_id: str) -> ReviewState | None:
        return await asyncio.to_thread(self._get, learner_id, item_id)

    async def upsert(self, learner_id: str, item_id: str, state: ReviewState) -> ReviewState:
        return await asyncio.to_thread(self._upsert, learner_id, item_id, state)

    async def find_due(self, learner_id: str, now: datetime, limit: int) -> list[ReviewState]:
        return await asyncio.to_thread(self._find_due, learner_id, now, limit)

    async def find_weak(
        self,
        learner_id: str,
        threshold: float,
        limit: int,
        item_type: str | None = None,
    ) -> list[ReviewState]:
        return await asyncio.to_thread(self._find_weak, learner_id, threshold, limit, item_type)

    async def find_unseen(
        self,
        learner_id: str,
        limit: int,
        difficulty_range: DifficultyRange | None = None,
    ) -> list[LearnableItem]:
        return await asyncio.to_thread(self._find_unseen, learner_id, limit, difficulty_range)

    async def list_states(self, learner_id: str) -> list[ReviewState]:
        return await asyncio.to_thread(self._list_states, learner_id)

    async def add_items(self, items: list[LearnableItem]) -> None:
        await asyncio.to_thread(self._add_items, items)

    # -------------------------------------------------------------------------
    # Synchronous implementations (run in worker threads)
    # -------------------------------------------------------------------------

    def _get(self, learner_id: str, item_id: str) -> ReviewState | None:
        with self.db.session_scope() as session:
            row = session.get(ReviewStateRow, (learner_id, item_id))
            return _state_from_row(row) if row is not None else None

    def _upsert(self, learner_id: str, item_id: str, state: ReviewState) -> ReviewState:
        with self.db.session_scope() as session:
            row = session.merge(_row_from_state(learner_id, item_id, state))
            session.flush()
            return _state_from_row(row)

    def _find_due(self, learner_id: str, now: datetime, limit: int) -> list[ReviewState]:
        stmt = (
            select(ReviewStateRow)
            .where(
                ReviewStateRow.learner_id == learner_id,
                ReviewStateRow.next_review_at.is_not(None),
                ReviewStateRow.next_review_at <= _to_db(now),
            )
            .order_by(ReviewStateRow.next_review_at.asc(), ReviewStateRow.item_id)
            .limit(limit)
        )
        with self.db.session_scope() as session:
            return [_state_from_row(row) for row in session.scalars(stmt)]

    def _find_weak(
        self,
        learner_id: str,
        threshold: float,
        limit: int,
        item_type: str | None,
    ) -> list[ReviewState]:
        stmt = select(ReviewStateRow).where(
            ReviewStateRow.learner_id == learner_id,
            ReviewStateRow.mastery_score < threshold,
        )
        if item_type is not None:
            stmt = stmt.join(ItemRow, ItemRow.item_id == ReviewStateRow.item_id).where(
                ItemRow.item_type == item_type
            )
        stmt = stmt.order_by(
            ReviewStateRow.mastery_score.asc(),
            ReviewStateRow.last_seen_at.asc().nulls_first(),
            ReviewStateRow.item_id,
        ).limit(limit)
        with self.db.session_scope() as session:
            return [_state_from_row(row) for row in session.scalars(stmt)]

    def _find_unseen(
        self,
        learner_id: str,
        limit: int,
        difficulty_range: DifficultyRange | None,
    ) -> list[LearnableItem]:
        stmt = (
            select(ItemRow)
            .outerjoin(
                ReviewStateRow,
                and_(
                    ReviewStateRow.item_id == ItemRow.item_id,
                    ReviewStateRow.learner_id == learner_id,
                ),
            )
            .where(ItemRow.visible.is_(True), ReviewStateRow.item_id.is_(None))
        )
        if difficulty_range is not None:
            stmt = stmt.where(
                ItemRow.difficulty >= difficulty_range.minimum,
                ItemRow.difficulty <= difficulty_range.maximum,
            )
        stmt = stmt.order_by(ItemRow.created_at, ItemRow.item_id).limit(limit)
        with self.db.session_scope() as session:
            return [_item_from_row(row) for row in session.scalars(stmt)]

    def _list_states(self, learner_id: str) -> list[ReviewState]:
        stmt = (
            select(ReviewStateRow)
            .where(ReviewStateRow.learner_id == learner_id)
            .order_by(ReviewStateRow.item_id)
        )
        with self.db.session_scope() as session:
            return [_state_from_row(row) for row in session.scalars(stmt)]

    def _add_items(self, items: list[LearnableItem]) -> None:
        with self.db.session_scope() as session:
            for item in items:
                session.merge(
                    ItemRow(
                        item_id=item.item_id,
                        item_type=item.item_type,
                        difficulty=item.difficulty,
                        visible=item.visible,
                        label=item.label,
                    )
                )


class SqlKeyValueStore:
    """KeyValueStore over the key_values table."""

    def __init__(self, db: Database):
        self.db = db

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def list_by_prefix(self, prefix: str) -> dict[str, str]:
        return await asyncio.to_thread(self._list_by_prefix, prefix)

    def _get(self, key: str) -> str | None:
        with self.db.session_scope() as session:
            row = session.get(KeyValueRow, key)
            return row.value if row is not None else None

    def _set(self, key: str, value: str) -> None:
        with self.db.session_scope() as session:
            session.merge(KeyValueRow(key=key, value=value))

    def _list_by_prefix(self, prefix: str) -> dict[str, str]:
        stmt = select(KeyValueRow).where(KeyValueRow.key.startswith(prefix, autoescape=True))
        with self.db.session_scope() as session:
            return {row.key: row.value for row in session.scalars(stmt)}
