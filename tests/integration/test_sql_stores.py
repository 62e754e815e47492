"""
Integration tests for the SQLAlchemy stores against SQLite.

Tests:
- ReviewState round trip with aware UTC timestamps
- Due / weak / unseen queries and their ordering
- Key-value prefix listing
- MasteryService on the SQL store
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from adaptive_engine.db.database import Database
from adaptive_engine.db.stores import SqlKeyValueStore, SqlMasteryStore
from adaptive_engine.delivery.mastery_service import MasteryService
from adaptive_engine.delivery.state_store import DifficultyRange, LearnableItem, ReviewState
from adaptive_engine.learning.persistence import PatternSnapshotStore

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def database(tmp_path):
    db = Database(f"sqlite:///{tmp_path / 'engine.db'}")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def store(database):
    return SqlMasteryStore(database)


def state(item_id, mastery=0.0, next_review_at=None, last_seen_at=None, learner="alice"):
    return ReviewState(
        learner_id=learner,
        item_id=item_id,
        mastery_score=mastery,
        next_review_at=next_review_at,
        last_seen_at=last_seen_at,
    )


class TestReviewStates:
    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        original = ReviewState(
            learner_id="alice",
            item_id="el-pico",
            repetitions=3,
            ease_factor=2.36,
            interval_days=15,
            next_review_at=NOW + timedelta(days=15),
            last_reviewed_at=NOW,
            mastery_score=45.0,
            times_correct=3,
            times_incorrect=1,
            first_seen_at=NOW - timedelta(days=7),
            last_seen_at=NOW,
            average_response_time_ms=2400.0,
            fastest_response_time_ms=1800,
            timed_reviews=4,
        )

        await store.upsert("alice", "el-pico", original)
        loaded = await store.get("alice", "el-pico")

        assert loaded == original
        assert loaded.next_review_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, store):
        await store.upsert("alice", "el-pico", state("el-pico", mastery=10.0))
        await store.upsert("alice", "el-pico", state("el-pico", mastery=25.0))

        assert (await store.get("alice", "el-pico")).mastery_score == 25.0
        assert len(await store.list_states("alice")) == 1

    @pytest.mark.asyncio
    async def test_missing_state(self, store):
        assert await store.get("alice", "nothing") is None

    @pytest.mark.asyncio
    async def test_non_utc_timestamps_are_normalized(self, store):
        from datetime import timezone

        plus_two = timezone(timedelta(hours=2))
        await store.upsert(
            "alice", "el-pico", state("el-pico", next_review_at=datetime(2024, 3, 1, 11, 0, tzinfo=plus_two))
        )

        loaded = await store.get("alice", "el-pico")
        assert loaded.next_review_at == NOW


class TestQueries:
    @pytest.mark.asyncio
    async def test_find_due_earliest_first(self, store):
        await store.upsert("alice", "b", state("b", next_review_at=NOW - timedelta(hours=1)))
        await store.upsert("alice", "a", state("a", next_review_at=NOW - timedelta(days=2)))
        await store.upsert("alice", "c", state("c", next_review_at=NOW + timedelta(hours=1)))
        await store.upsert("alice", "d", state("d"))
        await store.upsert("bob", "e", state("e", next_review_at=NOW - timedelta(days=9), learner="bob"))

        due = await store.find_due("alice", NOW, 10)

        assert [s.item_id for s in due] == ["a", "b"]
        assert len(await store.find_due("alice", NOW, 1)) == 1

    @pytest.mark.asyncio
    async def test_find_weak_ordering(self, store):
        await store.upsert("alice", "seen-recently", state("seen-recently", 30.0, last_seen_at=NOW))
        await store.upsert(
            "alice", "seen-long-ago", state("seen-long-ago", 30.0, last_seen_at=NOW - timedelta(days=5))
        )
        await store.upsert("alice", "never-seen", state("never-seen", 30.0))
        await store.upsert("alice", "weakest", state("weakest", 5.0, last_seen_at=NOW))
        await store.upsert("alice", "strong", state("strong", 90.0))

        weak = await store.find_weak("alice", 70.0, 10)

        assert [s.item_id for s in weak] == ["weakest", "never-seen", "seen-long-ago", "seen-recently"]

    @pytest.mark.asyncio
    async def test_find_weak_by_type(self, store):
        await store.add_items(
            [LearnableItem("beak", item_type="anatomical"), LearnableItem("red", item_type="color")]
        )
        await store.upsert("alice", "beak", state("beak", 10.0))
        await store.upsert("alice", "red", state("red", 20.0))

        weak = await store.find_weak("alice", 70.0, 10, item_type="color")

        assert [s.item_id for s in weak] == ["red"]

    @pytest.mark.asyncio
    async def test_find_unseen(self, store):
        await store.add_items(
            [
                LearnableItem("a", difficulty=1),
                LearnableItem("b", difficulty=3),
                LearnableItem("c", difficulty=5),
                LearnableItem("hidden", difficulty=3, visible=False),
            ]
        )
        await store.upsert("alice", "a", state("a"))

        unseen = await store.find_unseen("alice", 10)
        ranged = await store.find_unseen("alice", 10, DifficultyRange(2, 4))
        other_learner = await store.find_unseen("bob", 10)

        assert [i.item_id for i in unseen] == ["b", "c"]
        assert [i.item_id for i in ranged] == ["b"]
        assert [i.item_id for i in other_learner] == ["a", "b", "c"]


class TestKeyValueStore:
    @pytest.mark.asyncio
    async def test_set_get_and_prefix(self, database):
        kv = SqlKeyValueStore(database)
        await kv.set("pattern-learning/meta", "{}")
        await kv.set("pattern-learning/patterns", "[]")
        await kv.set("pattern-learning/patterns", "[1]")
        await kv.set("other/meta", "{}")

        assert await kv.get("pattern-learning/patterns") == "[1]"
        assert await kv.get("missing") is None
        assert await kv.list_by_prefix("pattern-learning/") == {
            "pattern-learning/meta": "{}",
            "pattern-learning/patterns": "[1]",
        }

    @pytest.mark.asyncio
    async def test_prefix_wildcards_are_literal(self, database):
        kv = SqlKeyValueStore(database)
        await kv.set("100%/meta", "a")
        await kv.set("100x/meta", "b")

        assert await kv.list_by_prefix("100%/") == {"100%/meta": "a"}

    @pytest.mark.asyncio
    async def test_snapshot_round_trip(self, database):
        snapshots = PatternSnapshotStore(SqlKeyValueStore(database))

        assert await snapshots.save({"patterns": [{"id": "global:el pico"}]})
        loaded = await snapshots.load()

        assert loaded["patterns"] == [{"id": "global:el pico"}]
        assert loaded["rejections"] == []


class TestMasteryServiceOnSql:
    @pytest.mark.asyncio
    async def test_concurrent_reviews(self, store):
        service = MasteryService(store)

        await asyncio.gather(*(service.record_review("alice", "el-pico", 5) for _ in range(8)))

        loaded = await store.get("alice", "el-pico")
        assert loaded.times_correct == 8
        assert loaded.mastery_score == 100.0
