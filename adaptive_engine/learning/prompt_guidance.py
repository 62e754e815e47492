"""
Prompt guidance templating.

Turns learned state into plain-text sections appended to a generation
prompt. Every function here is pure: the same learned state always yields
the same text.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from adaptive_engine.learning.patterns import (
    FeatureAdjustment,
    LearnedPattern,
    RejectionRecord,
    SpeciesFeatureStats,
    feature_key,
    history_key,
)

TOP_SPECIES_FEATURES = 5
TOP_REJECTION_REASONS = 3


def species_guidance(stats: SpeciesFeatureStats) -> str:
    top = stats.top_features(TOP_SPECIES_FEATURES)
    return (
        f"\n\nSPECIES-SPECIFIC GUIDANCE for {stats.species}:\n"
        f"- Common features to prioritize: {', '.join(top)}\n"
        f"- Based on {stats.total_annotations} previous annotations\n"
        "- Focus on features with high occurrence rates"
    )


def feature_guidance(
    patterns: Mapping[str, LearnedPattern],
    target_features: Iterable[str],
    species: str | None,
    min_observations: int,
) -> str | None:
    """Expected center and size for target features with enough observations."""
    hints = []
    for feature in target_features:
        pattern = patterns.get(feature_key(feature, species))
        if pattern is None or pattern.observation_count < min_observations:
            continue
        box = pattern.bounding_box
        if box is None:
            continue
        hints.append(
            f"- {feature}: typically centered at ({box.center_x:.2f}, {box.center_y:.2f}) "
            f"with size {box.width:.2f}x{box.height:.2f}"
        )

    if not hints:
        return None
    return (
        "\n\nLEARNED FEATURE PATTERNS:\n"
        + "\n".join(hints)
        + "\nNote: Use these as reference points, not strict requirements"
    )


def correction_guidance(adjustments: Iterable[FeatureAdjustment]) -> str | None:
    """Average position and size corrections reviewers keep making."""
    hints = []
    for adjustment in adjustments:
        delta = adjustment.delta
        if delta is None:
            continue
        hints.append(
            f"- {adjustment.feature}: Adjust position by ({delta.dx:.2f}, {delta.dy:.2f}) "
            f"and size by ({delta.dwidth:.2f}, {delta.dheight:.2f}) "
            f"[Based on {adjustment.based_on_corrections} reviewer corrections]"
        )

    if not hints:
        return None
    return (
        "\n\nCORRECTION-BASED ADJUSTMENTS:\n"
        + "\n".join(hints)
        + "\nNote: These adjustments are learned from expert corrections"
    )


def rejection_warnings(
    rejections: Mapping[str, Mapping[str, RejectionRecord]],
    species: str | None,
    target_features: Iterable[str],
    min_occurrences: int = 2,
) -> str | None:
    """Recurring rejection reasons for the target features, most frequent first."""
    warnings = []
    for feature in target_features:
        records = rejections.get(history_key(species, feature), {})
        recurring = sorted(
            (r for r in records.values() if r.count >= min_occurrences),
            key=lambda r: (-r.count, r.reason_category),
        )[:TOP_REJECTION_REASONS]
        if recurring:
            reasons = ", ".join(f'"{r.reason_category}" ({r.count}x)' for r in recurring)
            warnings.append(f"- {feature}: Avoid patterns that caused: {reasons}")

    if not warnings:
        return None
    return (
        "\n\nCOMMON REJECTION PATTERNS TO AVOID:\n"
        + "\n".join(warnings)
        + "\nNote: Learn from past mistakes to improve accuracy"
    )
