"""Adaptive practice selection."""

from .recommendations import (
    REASON_PRIORITY,
    BlendWeights,
    RecommendationBlender,
    RecommendationCandidate,
    RecommendationOptions,
    RecommendationReason,
    blend_candidates,
)

__all__ = [
    "RecommendationBlender",
    "RecommendationCandidate",
    "RecommendationOptions",
    "RecommendationReason",
    "BlendWeights",
    "REASON_PRIORITY",
    "blend_candidates",
]
