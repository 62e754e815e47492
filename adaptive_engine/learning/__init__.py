"""
Learning: pattern memory for generated annotations.

Components:
- PatternLearner: Learns positions, confidences and failure modes
- statistics: Weighted Welford updates for bounding boxes
- quality: Composite annotation quality score
- prompt_guidance: Learned-state sections appended to prompts
- rejections: Rejection reason classification
- persistence: Versioned snapshots over a key-value store
"""

from .models import Annotation, BoundingBox, ObservationContext, PromptContext
from .pattern_learner import PatternLearner, PatternLearnerConfig
from .patterns import LearnedPattern, PositionCorrection, RejectionRecord, SpeciesFeatureStats
from .persistence import InMemoryKeyValueStore, KeyValueStore, PatternSnapshotStore
from .quality import QualityMetrics
from .rejections import KeywordRejectionClassifier, RejectionClassifier

__all__ = [
    # Inputs
    "Annotation",
    "BoundingBox",
    "ObservationContext",
    "PromptContext",
    # Learner
    "PatternLearner",
    "PatternLearnerConfig",
    "LearnedPattern",
    "PositionCorrection",
    "RejectionRecord",
    "SpeciesFeatureStats",
    "QualityMetrics",
    # Rejections
    "RejectionClassifier",
    "KeywordRejectionClassifier",
    # Persistence
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "PatternSnapshotStore",
]
