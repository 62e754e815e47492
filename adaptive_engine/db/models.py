"""
Adaptive Engine Models.

SQLAlchemy models backing the SQL stores:
- Learnable item catalog
- Per learner/item review state
- Key-value records for pattern snapshots
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all adaptive engine tables."""


class ItemRow(Base):
    """A learnable item (annotation) in the catalog."""

    __tablename__ = "learnable_items"

    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_type: Mapped[str | None] = mapped_column(String(64))  # anatomical, behavioral, color...
    difficulty: Mapped[int] = mapped_column(Integer, default=1)
    visible: Mapped[bool] = mapped_column(Boolean, default=True)
    label: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(default=func.now())

    __table_args__ = (Index("idx_items_visible_difficulty", "visible", "difficulty"),)

    def __repr__(self) -> str:
        return f"<ItemRow {self.item_id} type={self.item_type} difficulty={self.difficulty}>"


class ReviewStateRow(Base):
    """
    SM-2 review state per learner per item.

    Mastery is stored on the 0-100 scale.
    """

    __tablename__ = "review_states"

    learner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # SM-2 fields
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    next_review_at: Mapped[datetime | None] = mapped_column()
    last_reviewed_at: Mapped[datetime | None] = mapped_column()

    # Mastery and exposure
    mastery_score: Mapped[float] = mapped_column(Float, default=0.0)
    times_correct: Mapped[int] = mapped_column(Integer, default=0)
    times_incorrect: Mapped[int] = mapped_column(Integer, default=0)
    first_seen_at: Mapped[datetime | None] = mapped_column()
    last_seen_at: Mapped[datetime | None] = mapped_column()

    # Response timing
    average_response_time_ms: Mapped[float | None] = mapped_column(Float)
    fastest_response_time_ms: Mapped[int | None] = mapped_column(Integer)
    timed_reviews: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        Index("idx_review_states_due", "learner_id", "next_review_at"),
        Index("idx_review_states_mastery", "learner_id", "mastery_score"),
    )

    def __repr__(self) -> str:
        return f"<ReviewStateRow learner={self.learner_id} item={self.item_id} mastery={self.mastery_score}>"


class KeyValueRow(Base):
    """Opaque string value under a string key."""

    __tablename__ = "key_values"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=func.now(), onupdate=func.now())
