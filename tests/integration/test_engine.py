"""
Integration tests for AdaptiveLearningEngine over SQLite.

Tests:
- Lifecycle: start/close, async context manager, not-started errors
- Review -> recommendation flow
- Learned patterns survive an engine restart
"""

import pytest

from adaptive_engine.adaptive.recommendations import RecommendationReason
from adaptive_engine.core.errors import AdaptiveEngineError, EngineNotStartedError
from adaptive_engine.delivery.state_store import InMemoryMasteryStore, LearnableItem
from adaptive_engine.engine import AdaptiveLearningEngine
from adaptive_engine.learning.models import Annotation, BoundingBox, ObservationContext, PromptContext
from config import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'engine.db'}",
        pattern_persist_retry_seconds=0.01,
    )


def beak():
    return Annotation(
        feature="el pico",
        bounding_box=BoundingBox(x=0.4, y=0.3, width=0.1, height=0.08),
        confidence=0.9,
    )


CARDINAL = ObservationContext(species="Northern Cardinal")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_use_before_start_raises(self, settings):
        engine = AdaptiveLearningEngine(settings, InMemoryMasteryStore())

        with pytest.raises(EngineNotStartedError) as excinfo:
            await engine.record_review("alice", "el-pico", 4)

        assert excinfo.value.operation == "record_review"
        assert isinstance(excinfo.value, AdaptiveEngineError)
        with pytest.raises(EngineNotStartedError):
            engine.enhance_prompt("base")

    @pytest.mark.asyncio
    async def test_context_manager(self, settings):
        async with AdaptiveLearningEngine.from_settings(settings) as engine:
            assert engine.started

        assert not engine.started

    @pytest.mark.asyncio
    async def test_settings_flow_into_services(self, tmp_path):
        settings = Settings(
            database_url=f"sqlite:///{tmp_path / 'tuned.db'}",
            weak_mastery_threshold=50.0,
            pattern_min_samples=5,
            sm2_minimum_ease=1.5,
        )
        engine = AdaptiveLearningEngine(settings, InMemoryMasteryStore())

        assert engine.mastery.weak_threshold == 50.0
        assert engine.recommendations.weak_threshold == 50.0
        assert engine.patterns.config.min_samples == 5
        assert engine.scheduler.config.minimum_easiness == 1.5


class TestReviewFlow:
    @pytest.mark.asyncio
    async def test_reviews_drive_recommendations(self, settings):
        async with AdaptiveLearningEngine.from_settings(settings) as engine:
            await engine.add_items([LearnableItem(f"item-{i}", difficulty=2) for i in range(6)])
            await engine.record_review("alice", "item-0", 1)
            await engine.record_review("alice", "item-1", 5)

            batch = await engine.get_recommendations("alice", count=5)
            stats = await engine.get_user_stats("alice")

        by_item = {c.item_id: c.reason for c in batch}
        assert by_item["item-0"] == RecommendationReason.WEAK
        assert by_item["item-1"] == RecommendationReason.WEAK
        assert sum(1 for r in by_item.values() if r == RecommendationReason.NEW) == 1
        assert stats.total_items == 2
        assert stats.learning == 1

    @pytest.mark.asyncio
    async def test_discovered_item_is_not_new(self, settings):
        async with AdaptiveLearningEngine.from_settings(settings) as engine:
            await engine.add_items([LearnableItem("item-0")])
            await engine.mark_discovered("alice", "item-0")

            batch = await engine.get_recommendations("alice", count=5)

        assert [(c.item_id, c.reason) for c in batch] == [("item-0", RecommendationReason.WEAK)]


class TestPatternPersistence:
    @pytest.mark.asyncio
    async def test_patterns_survive_restart(self, settings):
        async with AdaptiveLearningEngine.from_settings(settings) as engine:
            await engine.learn_from_annotations([beak(), beak(), beak()], CARDINAL)
            await engine.learn_from_rejection(beak(), "blurry", CARDINAL)
            await engine.learn_from_rejection(beak(), "too blurry", CARDINAL)
            before = engine.enhance_prompt(
                "Annotate.", PromptContext(species="Northern Cardinal", target_features=["el pico"])
            )

        async with AdaptiveLearningEngine.from_settings(settings) as engine:
            after = engine.enhance_prompt(
                "Annotate.", PromptContext(species="Northern Cardinal", target_features=["el pico"])
            )
            metrics = engine.evaluate_quality(beak(), "Northern Cardinal")

        assert after == before
        assert "LEARNED FEATURE PATTERNS" in after
        assert '"low_quality" (2x)' in after
        assert metrics.bounding_box_quality == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_memory_only_engine(self, settings):
        async with AdaptiveLearningEngine(settings, InMemoryMasteryStore()) as engine:
            pattern = await engine.learn_from_approval(beak())
            assert pattern.observation_count == 1
            correction = await engine.learn_from_correction(beak(), beak())

        assert correction is not None
        assert pattern.observation_count == 2
