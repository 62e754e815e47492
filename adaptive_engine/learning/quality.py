"""
Annotation quality scoring.

Composite score:
    overall = 0.4 * confidence + 0.3 * bounding_box_quality + 0.3 * prompt_effectiveness

Bounding box quality measures how far an annotation's center sits from the
learned centroid, in units of the learned spread:
    distance = sqrt(((cx - mean_x) / sqrt(var_x + eps))^2 + ((cy - mean_y) / sqrt(var_y + eps))^2)
    bounding_box_quality = exp(-distance / 2)

``eps`` keeps the division finite while the variance is still zero.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from adaptive_engine.learning.models import BoundingBox
from adaptive_engine.learning.statistics import BoundingBoxStat

CONFIDENCE_WEIGHT = 0.4
BOUNDING_BOX_WEIGHT = 0.3
PROMPT_WEIGHT = 0.3

DEFAULT_BOUNDING_BOX_QUALITY = 0.7
DEFAULT_PROMPT_EFFECTIVENESS = 0.7
VARIANCE_EPSILON = 0.01


@dataclass(frozen=True)
class QualityMetrics:
    """Annotation quality breakdown."""

    confidence: float
    bounding_box_quality: float
    prompt_effectiveness: float
    overall_quality: float

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


def normalized_distance(
    box: BoundingBox,
    stat: BoundingBoxStat,
    epsilon: float = VARIANCE_EPSILON,
) -> float:
    """Variance-normalized distance between a box center and the learned centroid."""
    dist_x = (box.center_x - stat.center_x) / math.sqrt(stat.var_x + epsilon)
    dist_y = (box.center_y - stat.center_y) / math.sqrt(stat.var_y + epsilon)
    return math.sqrt(dist_x * dist_x + dist_y * dist_y)


def bounding_box_quality(
    box: BoundingBox,
    stat: BoundingBoxStat,
    epsilon: float = VARIANCE_EPSILON,
) -> float:
    """1.0 at the centroid, decaying exponentially with normalized distance."""
    return math.exp(-normalized_distance(box, stat, epsilon) / 2)


def composite_score(confidence: float, box_quality: float, prompt_effectiveness: float) -> float:
    return (
        CONFIDENCE_WEIGHT * confidence
        + BOUNDING_BOX_WEIGHT * box_quality
        + PROMPT_WEIGHT * prompt_effectiveness
    )


def build_metrics(
    confidence: float,
    box_quality: float = DEFAULT_BOUNDING_BOX_QUALITY,
    prompt_effectiveness: float = DEFAULT_PROMPT_EFFECTIVENESS,
) -> QualityMetrics:
    """Assemble metrics, filling in the overall score."""
    return QualityMetrics(
        confidence=confidence,
        bounding_box_quality=box_quality,
        prompt_effectiveness=prompt_effectiveness,
        overall_quality=composite_score(confidence, box_quality, prompt_effectiveness),
    )
