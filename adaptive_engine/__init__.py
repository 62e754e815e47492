"""
Adaptive Learning Engine.

Tracks per-item mastery with SM-2, blends due, weak and new items into
practice batches, and learns annotation patterns from reviewer feedback.

Components:
- delivery: ReviewScheduler, MasteryService, review state storage
- adaptive: RecommendationBlender
- learning: PatternLearner and its statistics, scoring and persistence
- db: SQLAlchemy-backed stores
- engine: AdaptiveLearningEngine facade
"""

__version__ = "1.0.0"
