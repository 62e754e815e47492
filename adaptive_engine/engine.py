"""
Adaptive Learning Engine.

Facade wiring the scheduler, mastery service, recommendation blender and
pattern learner to one set of stores and one configuration. The engine owns
the lifecycle: start() restores learned patterns, close() flushes them and
releases any database it created.

Usage:
    async with AdaptiveLearningEngine.from_settings(get_settings()) as engine:
        await engine.record_review("learner-1", "el-pico", quality=4)
        batch = await engine.get_recommendations("learner-1", count=10)
"""

from __future__ import annotations

from loguru import logger

from adaptive_engine.adaptive.recommendations import (
    BlendWeights,
    RecommendationBlender,
    RecommendationCandidate,
    RecommendationOptions,
)
from adaptive_engine.core.errors import EngineNotStartedError
from adaptive_engine.core.mastery import utc_now
from adaptive_engine.db.database import Database
from adaptive_engine.db.stores import SqlKeyValueStore, SqlMasteryStore
from adaptive_engine.delivery.mastery_service import MasteryService
from adaptive_engine.delivery.scheduler import ReviewScheduler, SM2Config
from adaptive_engine.delivery.state_store import (
    LearnableItem,
    LearnerStats,
    MasteryStore,
    ReviewState,
)
from adaptive_engine.learning.models import Annotation, ObservationContext, PromptContext
from adaptive_engine.learning.pattern_learner import PatternLearner, PatternLearnerConfig
from adaptive_engine.learning.patterns import LearnedPattern, PositionCorrection, RejectionRecord
from adaptive_engine.learning.persistence import KeyValueStore, PatternSnapshotStore
from adaptive_engine.learning.quality import QualityMetrics
from adaptive_engine.learning.rejections import RejectionClassifier
from config import Settings


class AdaptiveLearningEngine:
    """Single entry point for review tracking, recommendations and pattern learning."""

    def __init__(
        self,
        settings: Settings,
        mastery_store: MasteryStore,
        kv_store: KeyValueStore | None = None,
        classifier: RejectionClassifier | None = None,
        clock=utc_now,
        database: Database | None = None,
    ):
        """
        Initialize the engine.

        Args:
            settings: Application settings
            mastery_store: Review state and item catalog storage
            kv_store: Snapshot storage for learned patterns (None keeps them in memory)
            classifier: Rejection reason classifier (keyword matching if None)
            clock: Callable returning the current aware datetime
            database: Database owned by the engine, disposed on close()
        """
        self.settings = settings
        self._database = database

        self.scheduler = ReviewScheduler(
            SM2Config(
                initial_easiness=settings.sm2_initial_ease,
                minimum_easiness=settings.sm2_minimum_ease,
            )
        )
        self.mastery = MasteryService(
            mastery_store,
            scheduler=self.scheduler,
            weak_threshold=settings.weak_mastery_threshold,
            clock=clock,
        )
        self.recommendations = RecommendationBlender(
            mastery_store,
            weak_threshold=settings.weak_mastery_threshold,
            weights=BlendWeights(
                due=settings.due_share,
                weak=settings.weak_share,
                new=settings.new_share,
            ),
            source_timeout=settings.recommendation_source_timeout_seconds,
            clock=clock,
        )

        snapshots = (
            PatternSnapshotStore(kv_store, prefix=settings.pattern_key_prefix)
            if kv_store is not None
            else None
        )
        self.patterns = PatternLearner(
            PatternLearnerConfig(
                confidence_threshold=settings.pattern_confidence_threshold,
                min_samples=settings.pattern_min_samples,
                approval_weight=settings.pattern_approval_weight,
                correction_weight=settings.pattern_correction_weight,
                correction_history=settings.pattern_correction_history,
            ),
            snapshots=snapshots,
            classifier=classifier,
            persist_retry_seconds=settings.pattern_persist_retry_seconds,
            clock=clock,
        )
        self._started = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> AdaptiveLearningEngine:
        """Build an engine over SQL stores at ``settings.database_url``."""
        db = Database.from_settings(settings)
        db.init_db()
        return cls(
            settings,
            SqlMasteryStore(db),
            SqlKeyValueStore(db),
            database=db,
            **kwargs,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        if self._started:
            return
        await self.patterns.restore()
        self._started = True
        logger.info("Adaptive learning engine started")

    async def close(self) -> None:
        if not self._started:
            if self._database is not None:
                self._database.dispose()
            return
        await self.patterns.close()
        if self._database is not None:
            self._database.dispose()
        self._started = False
        logger.info("Adaptive learning engine closed")

    async def __aenter__(self) -> AdaptiveLearningEngine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _require_started(self, operation: str) -> None:
        if not self._started:
            raise EngineNotStartedError(operation)

    # =========================================================================
    # Mastery
    # =========================================================================

    async def add_items(self, items: list[LearnableItem]) -> None:
        self._require_started("add_items")
        await self.mastery.store.add_items(items)

    async def record_review(
        self,
        learner_id: str,
        item_id: str,
        quality: float,
        response_time_ms: int | None = None,
    ) -> ReviewState:
        self._require_started("record_review")
        return await self.mastery.record_review(learner_id, item_id, quality, response_time_ms)

    async def mark_discovered(self, learner_id: str, item_id: str) -> ReviewState:
        self._require_started("mark_discovered")
        return await self.mastery.mark_discovered(learner_id, item_id)

    async def get_user_stats(self, learner_id: str) -> LearnerStats:
        self._require_started("get_user_stats")
        return await self.mastery.get_user_stats(learner_id)

    async def get_recommendations(
        self,
        learner_id: str,
        count: int = 5,
        options: RecommendationOptions | None = None,
    ) -> list[RecommendationCandidate]:
        self._require_started("get_recommendations")
        return await self.recommendations.get_recommendations(learner_id, count, options)

    # =========================================================================
    # Pattern learning
    # =========================================================================

    async def learn_from_annotations(
        self,
        annotations: list[Annotation],
        context: ObservationContext | None = None,
    ) -> int:
        self._require_started("learn_from_annotations")
        return await self.patterns.learn_from_annotations(annotations, context)

    async def learn_from_approval(
        self,
        annotation: Annotation,
        context: ObservationContext | None = None,
    ) -> LearnedPattern:
        self._require_started("learn_from_approval")
        return await self.patterns.learn_from_approval(annotation, context)

    async def learn_from_rejection(
        self,
        annotation: Annotation,
        reason: str,
        context: ObservationContext | None = None,
    ) -> RejectionRecord:
        self._require_started("learn_from_rejection")
        return await self.patterns.learn_from_rejection(annotation, reason, context)

    async def learn_from_correction(
        self,
        original: Annotation,
        corrected: Annotation,
        context: ObservationContext | None = None,
    ) -> PositionCorrection | None:
        self._require_started("learn_from_correction")
        return await self.patterns.learn_from_correction(original, corrected, context)

    def enhance_prompt(self, base_prompt: str, context: PromptContext | None = None) -> str:
        self._require_started("enhance_prompt")
        return self.patterns.enhance_prompt(base_prompt, context)

    def evaluate_quality(self, annotation: Annotation, species: str | None = None) -> QualityMetrics:
        self._require_started("evaluate_quality")
        return self.patterns.evaluate_quality(annotation, species)
