"""
Pattern Learner.

Learns where features usually sit and how trustworthy their annotations are,
from three kinds of evidence:
1. High-confidence generated annotations (observe / learn_from_annotations)
2. Reviewer decisions (approval, rejection, position correction)
3. Prompt outcomes (how many confident annotations a prompt produced)

The learned state feeds back into generation through enhance_prompt() and
into filtering through evaluate_quality().

Each key (feature x optional species) keeps ONE running centroid and
variance. A feature that genuinely appears at different positions across
images blurs into a single average; this is a known limitation of the
closed-form approach.
"""

from __future__ import annotations

import asyncio
from collections import Counter, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from adaptive_engine.core.locks import KeyedLock
from adaptive_engine.core.mastery import utc_now
from adaptive_engine.learning.models import Annotation, ObservationContext, PromptContext
from adaptive_engine.learning.patterns import (
    GLOBAL_SCOPE,
    BoxDelta,
    FeatureAdjustment,
    FeatureStats,
    LearnedPattern,
    PositionCorrection,
    PromptRecord,
    RejectionRecord,
    SpeciesFeatureStats,
    feature_key,
    history_key,
)
from adaptive_engine.learning.persistence import PatternSnapshotStore
from adaptive_engine.learning.prompt_guidance import (
    correction_guidance,
    feature_guidance,
    rejection_warnings,
    species_guidance,
)
from adaptive_engine.learning.quality import (
    QualityMetrics,
    bounding_box_quality,
    build_metrics,
)
from adaptive_engine.learning.rejections import KeywordRejectionClassifier, RejectionClassifier
from adaptive_engine.learning.statistics import fold_box, running_average


@dataclass(frozen=True)
class PatternLearnerConfig:
    """Learning hyperparameters."""

    confidence_threshold: float = 0.75  # Only learn from high-confidence annotations
    min_samples: int = 3  # Observations before a pattern is trusted
    min_rejection_occurrences: int = 2
    approval_confidence_boost: float = 0.05
    rejection_confidence_penalty: float = 0.10
    rejection_confidence_floor: float = 0.3
    approval_weight: int = 2
    correction_weight: int = 3
    correction_history: int = 50
    max_prompt_history: int = 10
    correction_default_confidence: float = 0.85
    prompt_saturation: int = 5  # Annotations per prompt that count as fully effective


class PatternLearner:
    """
    Self-improving pattern memory for generated annotations.

    Updates to one key are serialized; different keys never share a lock.
    Snapshots are saved in the background after each learning step and a
    failed save never fails the step.
    """

    def __init__(
        self,
        config: PatternLearnerConfig | None = None,
        snapshots: PatternSnapshotStore | None = None,
        classifier: RejectionClassifier | None = None,
        persist_retry_seconds: float = 30.0,
        clock=utc_now,
    ):
        """
        Initialize the learner.

        Args:
            config: Learning hyperparameters
            snapshots: Snapshot persistence (None keeps state in memory only)
            classifier: Rejection reason classifier (keyword matching if None)
            persist_retry_seconds: Delay before retrying a failed save
            clock: Callable returning the current aware datetime
        """
        self.config = config or PatternLearnerConfig()
        self.classifier = classifier or KeywordRejectionClassifier()
        self._snapshots = snapshots
        self._retry_delay = persist_retry_seconds
        self._clock = clock

        self._patterns: dict[str, LearnedPattern] = {}
        self._species: dict[str, SpeciesFeatureStats] = {}
        self._corrections: dict[str, deque[PositionCorrection]] = {}
        self._rejections: dict[str, dict[str, RejectionRecord]] = {}
        self._prompts: dict[str, list[PromptRecord]] = {}

        self._locks = KeyedLock()
        self._persist_task: asyncio.Task | None = None
        self._save_lock = asyncio.Lock()
        self._retry_sleeping = False
        self._dirty = False
        self._closed = False
        self.failed_saves = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def restore(self) -> bool:
        """Load the last snapshot, if any. Returns True when state was restored."""
        if self._snapshots is None:
            return False

        snapshot = await self._snapshots.load()
        if snapshot is None:
            return False

        try:
            self.restore_snapshot(snapshot)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed pattern snapshot: {e}")
            self.restore_snapshot({})
            return False

        logger.info(
            f"Pattern learner restored: {len(self._patterns)} patterns, "
            f"{len(self._species)} species"
        )
        return True

    async def flush(self) -> bool:
        """
        Save the current state now.

        A background save that is already writing is never abandoned: its
        store calls may run in worker threads that would finish after this
        save and overwrite it. Saves are serialized by a lock instead, and
        only a loop that is waiting to retry is cancelled.
        """
        if self._snapshots is None:
            return True

        task = self._persist_task
        if task is not None and not task.done() and self._retry_sleeping:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        async with self._save_lock:
            self._dirty = False
            saved = await self._snapshots.save(self.export_snapshot())
        if not saved:
            self._dirty = True
            self.failed_saves += 1
        return saved

    async def close(self) -> None:
        """Final best-effort flush; later learning steps stay in memory only."""
        if self._closed:
            return
        self._closed = True
        await self.flush()

        task = self._persist_task
        if task is not None:
            # Otherwise the loop exits once it sees the learner is closed
            if self._retry_sleeping:
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        self._persist_task = None

    def _schedule_persist(self) -> None:
        if self._snapshots is None or self._closed:
            return
        self._dirty = True
        if self._persist_task is None or self._persist_task.done():
            self._persist_task = asyncio.create_task(self._persist_loop())

    async def _persist_loop(self) -> None:
        while self._dirty and not self._closed:
            async with self._save_lock:
                if not self._dirty or self._closed:
                    return
                self._dirty = False
                saved = await self._snapshots.save(self.export_snapshot())
            if saved:
                continue

            self._dirty = True
            self.failed_saves += 1
            logger.warning(f"Pattern snapshot save failed; retrying in {self._retry_delay}s")
            self._retry_sleeping = True
            try:
                await asyncio.sleep(self._retry_delay)
            finally:
                self._retry_sleeping = False

    # =========================================================================
    # Learning from generated annotations
    # =========================================================================

    def qualifies(self, annotation: Annotation) -> bool:
        return annotation.effective_confidence >= self.config.confidence_threshold

    async def observe(self, annotation: Annotation, context: ObservationContext | None = None) -> bool:
        """
        Learn from one generated annotation.

        Returns:
            True if the annotation was confident enough to learn from
        """
        return await self.learn_from_annotations([annotation], context) == 1

    async def learn_from_annotations(
        self,
        annotations: list[Annotation],
        context: ObservationContext | None = None,
    ) -> int:
        """
        Learn from a batch of annotations produced for one image.

        Only annotations at or above the confidence threshold are used.

        Returns:
            Number of annotations learned from
        """
        context = context or ObservationContext()
        confident = [a for a in annotations if self.qualifies(a)]
        if not confident:
            logger.debug(f"No high-confidence annotations among {len(annotations)}")
            return 0

        for annotation in confident:
            key = feature_key(annotation.feature, context.species)
            async with self._locks.hold(key):
                self._update_feature_pattern(key, annotation, context)

        if context.species:
            async with self._locks.hold(("species", context.species)):
                self._update_species_stats(context.species, confident)

        if context.prompt:
            await self._track_prompt_success(context.prompt, confident, context.species)

        logger.info(
            f"Learned from {len(confident)}/{len(annotations)} annotations "
            f"(species={context.species or GLOBAL_SCOPE})"
        )
        self._schedule_persist()
        return len(confident)

    def _new_pattern(
        self,
        key: str,
        annotation: Annotation,
        species: str | None,
        confidence: float,
    ) -> LearnedPattern:
        return LearnedPattern(
            id=key,
            feature_type=annotation.feature,
            species=species,
            last_updated=self._clock(),
            average_confidence=confidence,
            average_difficulty=float(annotation.difficulty_level),
        )

    def _update_feature_pattern(
        self,
        key: str,
        annotation: Annotation,
        context: ObservationContext,
    ) -> LearnedPattern:
        confidence = annotation.effective_confidence
        pattern = self._patterns.get(key)
        if pattern is None:
            pattern = self._new_pattern(key, annotation, context.species, confidence)

        if annotation.bounding_box is not None:
            pattern.bounding_box = fold_box(pattern.bounding_box, annotation.bounding_box)

        n = pattern.observation_count
        pattern.average_confidence = running_average(pattern.average_confidence, confidence, n)
        pattern.average_difficulty = running_average(
            pattern.average_difficulty, annotation.difficulty_level, n
        )
        pattern.observation_count = n + 1
        pattern.last_updated = self._clock()

        if annotation.pronunciation and annotation.pronunciation not in pattern.pronunciations:
            pattern.pronunciations.append(annotation.pronunciation)
        for trait in context.image_characteristics:
            if trait not in pattern.image_characteristics:
                pattern.image_characteristics.append(trait)

        self._patterns[key] = pattern
        return pattern

    def _update_species_stats(self, species: str, annotations: list[Annotation]) -> None:
        stats = self._species.get(species)
        if stats is None:
            stats = SpeciesFeatureStats(species=species, last_updated=self._clock())

        for annotation in annotations:
            feature = stats.features.get(annotation.feature)
            if feature is None:
                feature = FeatureStats(feature_name=annotation.feature)

            n = feature.observations
            feature.average_confidence = running_average(
                feature.average_confidence, annotation.effective_confidence, n
            )
            feature.average_difficulty = running_average(
                feature.average_difficulty, annotation.difficulty_level, n
            )
            if annotation.bounding_box is not None:
                feature.bounding_box = fold_box(feature.bounding_box, annotation.bounding_box)
            feature.observations = n + 1
            stats.features[annotation.feature] = feature

        stats.total_annotations += len(annotations)
        stats.last_updated = self._clock()
        for feature in stats.features.values():
            feature.occurrence_rate = feature.observations / stats.total_annotations

        self._species[species] = stats

    async def _track_prompt_success(
        self,
        prompt: str,
        annotations: list[Annotation],
        species: str | None,
    ) -> None:
        avg_confidence = sum(a.effective_confidence for a in annotations) / len(annotations)
        effectiveness = avg_confidence * min(len(annotations) / self.config.prompt_saturation, 1.0)
        record = PromptRecord(
            prompt=prompt,
            effectiveness=effectiveness,
            average_confidence=avg_confidence,
            annotation_count=len(annotations),
            species=species,
            timestamp=self._clock(),
        )

        scope = species or GLOBAL_SCOPE
        async with self._locks.hold(("prompts", scope)):
            history = [r for r in self._prompts.get(scope, []) if r.prompt != prompt]
            history.append(record)
            history.sort(key=lambda r: r.effectiveness, reverse=True)
            self._prompts[scope] = history[: self.config.max_prompt_history]

        for annotation in annotations:
            key = feature_key(annotation.feature, species)
            async with self._locks.hold(key):
                pattern = self._patterns.get(key)
                if pattern is None or prompt in pattern.successful_prompts:
                    continue
                pattern.successful_prompts.append(prompt)
                del pattern.successful_prompts[: -self.config.max_prompt_history]

        logger.debug(f"Tracked prompt success: effectiveness={effectiveness:.2f} species={scope}")

    # =========================================================================
    # Learning from reviewer feedback
    # =========================================================================

    async def learn_from_approval(
        self,
        annotation: Annotation,
        context: ObservationContext | None = None,
    ) -> LearnedPattern:
        """
        Reinforce a pattern with a reviewer-approved annotation.

        Confidence is boosted and the approved box pulls the centroid with
        extra weight.
        """
        context = context or ObservationContext()
        cfg = self.config
        key = feature_key(annotation.feature, context.species)

        async with self._locks.hold(key):
            pattern = self._patterns.get(key)
            if pattern is None:
                boosted = min(1.0, annotation.effective_confidence + cfg.approval_confidence_boost)
                pattern = self._new_pattern(key, annotation, context.species, boosted)
            else:
                pattern.average_confidence = min(
                    1.0, pattern.average_confidence + cfg.approval_confidence_boost
                )

            if annotation.bounding_box is not None:
                pattern.bounding_box = fold_box(
                    pattern.bounding_box, annotation.bounding_box, cfg.approval_weight
                )

            pattern.observation_count += 1
            pattern.last_updated = self._clock()
            self._patterns[key] = pattern

        logger.info(
            f"Learned from approval: {key} confidence={pattern.average_confidence:.2f}"
        )
        self._schedule_persist()
        return pattern

    async def learn_from_rejection(
        self,
        annotation: Annotation,
        reason: str,
        context: ObservationContext | None = None,
    ) -> RejectionRecord:
        """
        Record a rejection and lower confidence in the feature's pattern.

        Returns:
            The updated counter for this (species, feature, category)
        """
        context = context or ObservationContext()
        cfg = self.config
        key = feature_key(annotation.feature, context.species)
        category = self.classifier.classify(reason)
        now = self._clock()

        async with self._locks.hold(key):
            pattern = self._patterns.get(key)
            # A value already under the floor is left alone, never raised
            if pattern is not None and pattern.average_confidence > cfg.rejection_confidence_floor:
                pattern.average_confidence = max(
                    cfg.rejection_confidence_floor,
                    pattern.average_confidence - cfg.rejection_confidence_penalty,
                )
                pattern.last_updated = now

        rejection_key = history_key(context.species, annotation.feature)
        async with self._locks.hold(("rejections", rejection_key)):
            records = self._rejections.setdefault(rejection_key, {})
            record = records.get(category)
            if record is None:
                record = RejectionRecord(
                    feature=annotation.feature,
                    species=context.species,
                    reason_category=category,
                    last_reason=reason,
                    timestamp=now,
                    count=0,
                )
                records[category] = record
            record.count += 1
            record.last_reason = reason
            record.timestamp = now

        logger.info(f"Learned from rejection: {rejection_key} category={category} count={record.count}")
        self._schedule_persist()
        return record

    async def learn_from_correction(
        self,
        original: Annotation,
        corrected: Annotation,
        context: ObservationContext | None = None,
    ) -> PositionCorrection | None:
        """
        Learn from a reviewer moving or resizing a box.

        Returns:
            The stored correction, or None when either box is missing
        """
        context = context or ObservationContext()
        cfg = self.config
        if original.bounding_box is None or corrected.bounding_box is None:
            logger.info(f"Skipping correction for '{original.feature}': missing bounding box")
            return None

        now = self._clock()
        correction = PositionCorrection(
            feature=original.feature,
            species=context.species,
            original_box=original.bounding_box,
            corrected_box=corrected.bounding_box,
            delta=BoxDelta.between(original.bounding_box, corrected.bounding_box),
            timestamp=now,
            reviewer_id=context.reviewer_id,
        )

        correction_key = history_key(context.species, original.feature)
        async with self._locks.hold(("corrections", correction_key)):
            history = self._corrections.get(correction_key)
            if history is None:
                history = deque(maxlen=cfg.correction_history)
                self._corrections[correction_key] = history
            history.append(correction)
            tracked = len(history)

        key = feature_key(original.feature, context.species)
        async with self._locks.hold(key):
            pattern = self._patterns.get(key)
            if pattern is None:
                confidence = (
                    corrected.confidence
                    if corrected.confidence is not None
                    else cfg.correction_default_confidence
                )
                pattern = self._new_pattern(key, original, context.species, confidence)

            pattern.bounding_box = fold_box(
                pattern.bounding_box, corrected.bounding_box, cfg.correction_weight
            )
            pattern.observation_count += 1
            pattern.last_updated = now
            self._patterns[key] = pattern

        logger.info(f"Learned from correction: {correction_key} ({tracked} tracked)")
        self._schedule_persist()
        return correction

    # =========================================================================
    # Read side
    # =========================================================================

    def get_pattern(self, feature: str, species: str | None = None) -> LearnedPattern | None:
        return self._patterns.get(feature_key(feature, species))

    def get_species_stats(self, species: str) -> SpeciesFeatureStats | None:
        return self._species.get(species)

    def corrections_for(self, species: str | None, feature: str) -> list[PositionCorrection]:
        return list(self._corrections.get(history_key(species, feature), ()))

    def rejections_for(self, species: str | None, feature: str) -> list[RejectionRecord]:
        records = self._rejections.get(history_key(species, feature), {})
        return sorted(records.values(), key=lambda r: (-r.count, r.reason_category))

    def position_adjusted_features(
        self,
        species: str | None,
        features: list[str],
    ) -> list[FeatureAdjustment]:
        """Average correction per feature, for features with enough corrections."""
        adjustments = []
        for feature in features:
            history = self._corrections.get(history_key(species, feature), ())
            if len(history) < self.config.min_samples:
                adjustments.append(FeatureAdjustment(feature=feature, based_on_corrections=0))
                continue
            adjustments.append(
                FeatureAdjustment(
                    feature=feature,
                    based_on_corrections=len(history),
                    delta=BoxDelta.mean([c.delta for c in history]),
                )
            )
        return adjustments

    def enhance_prompt(self, base_prompt: str, context: PromptContext | None = None) -> str:
        """
        Append learned guidance to a generation prompt.

        Sections appear only when backed by enough evidence: species guidance,
        expected positions of target features, correction adjustments and
        recurring rejection reasons. Output depends on nothing but the
        current learned state.
        """
        context = context or PromptContext()
        min_samples = self.config.min_samples
        sections: list[str | None] = []

        if context.species:
            stats = self._species.get(context.species)
            if stats is not None and stats.total_annotations >= min_samples:
                sections.append(species_guidance(stats))

        if context.target_features:
            sections.append(
                feature_guidance(self._patterns, context.target_features, context.species, min_samples)
            )
            sections.append(
                correction_guidance(
                    self.position_adjusted_features(context.species, context.target_features)
                )
            )
            sections.append(
                rejection_warnings(
                    self._rejections,
                    context.species,
                    context.target_features,
                    self.config.min_rejection_occurrences,
                )
            )

        added = [s for s in sections if s]
        return base_prompt + "".join(added)

    def evaluate_quality(self, annotation: Annotation, species: str | None = None) -> QualityMetrics:
        """
        Score an annotation against the learned pattern for its feature.

        Until the pattern has enough observations the box and prompt
        components are fixed defaults, whatever the input.
        """
        confidence = annotation.effective_confidence
        pattern = self._patterns.get(feature_key(annotation.feature, species))

        if pattern is None or pattern.observation_count < self.config.min_samples:
            return build_metrics(confidence)

        box_quality = None
        if pattern.bounding_box is not None and annotation.bounding_box is not None:
            box_quality = bounding_box_quality(annotation.bounding_box, pattern.bounding_box)

        if box_quality is None:
            return build_metrics(confidence, prompt_effectiveness=pattern.average_confidence)
        return build_metrics(confidence, box_quality, pattern.average_confidence)

    def recommended_features(self, species: str, limit: int = 8) -> list[str]:
        """Features worth annotating for a species, by occurrence x confidence."""
        stats = self._species.get(species)
        if stats is None:
            return []
        ranked = sorted(
            stats.features.values(),
            key=lambda f: (-(f.occurrence_rate * f.average_confidence), f.feature_name),
        )
        return [f.feature_name for f in ranked[:limit]]

    def best_prompts(self, species: str | None = None, limit: int = 3) -> list[PromptRecord]:
        return list(self._prompts.get(species or GLOBAL_SCOPE, [])[:limit])

    def analytics(self) -> dict[str, Any]:
        """
        Summary of what has been learned.

        observation counts include every annotation learned from, whatever
        its review outcome; they are training counts, not approved counts.
        """
        top_features = sorted(
            self._patterns.values(),
            key=lambda p: (-p.observation_count, p.id),
        )[:10]
        categories: Counter[str] = Counter()
        for records in self._rejections.values():
            for record in records.values():
                categories[record.reason_category] += record.count

        return {
            "totalPatterns": len(self._patterns),
            "speciesTracked": len(self._species),
            "topFeatures": [
                {
                    "feature": p.feature_type,
                    "species": p.species,
                    "observations": p.observation_count,
                    "confidence": p.average_confidence,
                }
                for p in top_features
            ],
            "speciesBreakdown": [
                {
                    "species": s.species,
                    "annotations": s.total_annotations,
                    "features": len(s.features),
                }
                for s in sorted(self._species.values(), key=lambda s: (-s.total_annotations, s.species))
            ],
            "correctionsTracked": sum(len(h) for h in self._corrections.values()),
            "rejectionCategories": dict(categories),
        }

    # =========================================================================
    # Snapshots
    # =========================================================================

    def export_snapshot(self) -> dict[str, list[dict[str, Any]]]:
        """JSON-serializable copy of all learned state."""
        return {
            "patterns": [p.to_dict() for p in self._patterns.values()],
            "species": [s.to_dict() for s in self._species.values()],
            "corrections": [c.to_dict() for h in self._corrections.values() for c in h],
            "rejections": [r.to_dict() for rs in self._rejections.values() for r in rs.values()],
            "prompts": [r.to_dict() for rs in self._prompts.values() for r in rs],
        }

    def restore_snapshot(self, snapshot: dict[str, list[dict[str, Any]]]) -> None:
        """Replace learned state with a snapshot produced by export_snapshot()."""
        patterns = [LearnedPattern.from_dict(d) for d in snapshot.get("patterns", [])]
        species = [SpeciesFeatureStats.from_dict(d) for d in snapshot.get("species", [])]
        corrections = [PositionCorrection.from_dict(d) for d in snapshot.get("corrections", [])]
        rejections = [RejectionRecord.from_dict(d) for d in snapshot.get("rejections", [])]
        prompts = [PromptRecord.from_dict(d) for d in snapshot.get("prompts", [])]

        self._patterns = {p.id: p for p in patterns}
        self._species = {s.species: s for s in species}

        self._corrections = {}
        for correction in sorted(corrections, key=lambda c: c.timestamp):
            key = history_key(correction.species, correction.feature)
            history = self._corrections.setdefault(
                key, deque(maxlen=self.config.correction_history)
            )
            history.append(correction)

        self._rejections = {}
        for record in rejections:
            key = history_key(record.species, record.feature)
            self._rejections.setdefault(key, {})[record.reason_category] = record

        self._prompts = {}
        for record in sorted(prompts, key=lambda r: r.effectiveness, reverse=True):
            history = self._prompts.setdefault(record.species or GLOBAL_SCOPE, [])
            if len(history) < self.config.max_prompt_history:
                history.append(record)

    @property
    def last_updated(self) -> datetime | None:
        stamps = [p.last_updated for p in self._patterns.values()]
        return max(stamps) if stamps else None
