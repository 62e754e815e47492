"""
Learned pattern state.

Everything the pattern learner remembers, in a form that round-trips
through JSON snapshots:
- LearnedPattern: per (feature, species?) position and confidence statistics
- SpeciesFeatureStats: which features co-occur for a species, and how often
- PositionCorrection: one reviewer edit of a box
- RejectionRecord: counter per (species, feature, reason category)
- PromptRecord: how well a generation prompt performed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from adaptive_engine.learning.models import BoundingBox
from adaptive_engine.learning.statistics import BoundingBoxStat

GLOBAL_SCOPE = "global"


def feature_key(feature: str, species: str | None = None) -> str:
    """Key of the pattern for a feature, species-specific when species is known."""
    return f"{species}:{feature}" if species else f"{GLOBAL_SCOPE}:{feature}"


def history_key(species: str | None, feature: str) -> str:
    """Key of correction and rejection history for a (species, feature)."""
    return f"{species or GLOBAL_SCOPE}:{feature}"


def _iso(value: datetime) -> str:
    return value.isoformat()


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


@dataclass
class LearnedPattern:
    """Learned pattern for a specific feature, optionally per species."""

    id: str
    feature_type: str
    species: str | None
    last_updated: datetime
    bounding_box: BoundingBoxStat | None = None
    average_confidence: float = 0.8
    observation_count: int = 0
    average_difficulty: float = 0.0
    pronunciations: list[str] = field(default_factory=list)
    image_characteristics: list[str] = field(default_factory=list)
    successful_prompts: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "featureType": self.feature_type,
            "species": self.species,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
            "averageConfidence": self.average_confidence,
            "observationCount": self.observation_count,
            "averageDifficulty": self.average_difficulty,
            "pronunciations": list(self.pronunciations),
            "imageCharacteristics": list(self.image_characteristics),
            "successfulPrompts": list(self.successful_prompts),
            "lastUpdated": _iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LearnedPattern:
        box = data.get("boundingBox")
        return cls(
            id=data["id"],
            feature_type=data["featureType"],
            species=data.get("species"),
            last_updated=_parse(data["lastUpdated"]),
            bounding_box=BoundingBoxStat.from_dict(box) if box else None,
            average_confidence=data.get("averageConfidence", 0.8),
            observation_count=data.get("observationCount", 0),
            average_difficulty=data.get("averageDifficulty", 0.0),
            pronunciations=list(data.get("pronunciations", [])),
            image_characteristics=list(data.get("imageCharacteristics", [])),
            successful_prompts=list(data.get("successfulPrompts", [])),
        )


@dataclass
class FeatureStats:
    """How one feature behaves across a species' annotations."""

    feature_name: str
    occurrence_rate: float = 0.0
    average_confidence: float = 0.0
    average_difficulty: float = 0.0
    observations: int = 0
    bounding_box: BoundingBoxStat | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "featureName": self.feature_name,
            "occurrenceRate": self.occurrence_rate,
            "averageConfidence": self.average_confidence,
            "averageDifficulty": self.average_difficulty,
            "observations": self.observations,
            "boundingBox": self.bounding_box.to_dict() if self.bounding_box else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FeatureStats:
        box = data.get("boundingBox")
        return cls(
            feature_name=data["featureName"],
            occurrence_rate=data.get("occurrenceRate", 0.0),
            average_confidence=data.get("averageConfidence", 0.0),
            average_difficulty=data.get("averageDifficulty", 0.0),
            observations=data.get("observations", 0),
            bounding_box=BoundingBoxStat.from_dict(box) if box else None,
        )


@dataclass
class SpeciesFeatureStats:
    """Feature statistics for one species."""

    species: str
    last_updated: datetime
    features: dict[str, FeatureStats] = field(default_factory=dict)
    total_annotations: int = 0

    def top_features(self, limit: int = 5) -> list[str]:
        """Most frequently annotated features, ties broken by name."""
        ranked = sorted(
            self.features.values(),
            key=lambda f: (-f.occurrence_rate, f.feature_name),
        )
        return [f.feature_name for f in ranked[:limit]]

    def to_dict(self) -> dict[str, Any]:
        return {
            "species": self.species,
            "features": [f.to_dict() for f in self.features.values()],
            "totalAnnotations": self.total_annotations,
            "lastUpdated": _iso(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SpeciesFeatureStats:
        features = [FeatureStats.from_dict(f) for f in data.get("features", [])]
        return cls(
            species=data["species"],
            last_updated=_parse(data["lastUpdated"]),
            features={f.feature_name: f for f in features},
            total_annotations=data.get("totalAnnotations", 0),
        )


@dataclass(frozen=True)
class BoxDelta:
    """Difference between a corrected and an original box."""

    dx: float = 0.0
    dy: float = 0.0
    dwidth: float = 0.0
    dheight: float = 0.0

    @classmethod
    def between(cls, original: BoundingBox, corrected: BoundingBox) -> BoxDelta:
        return cls(
            dx=corrected.x - original.x,
            dy=corrected.y - original.y,
            dwidth=corrected.width - original.width,
            dheight=corrected.height - original.height,
        )

    @classmethod
    def mean(cls, deltas: list[BoxDelta]) -> BoxDelta:
        if not deltas:
            return cls()
        n = len(deltas)
        return cls(
            dx=sum(d.dx for d in deltas) / n,
            dy=sum(d.dy for d in deltas) / n,
            dwidth=sum(d.dwidth for d in deltas) / n,
            dheight=sum(d.dheight for d in deltas) / n,
        )

    def to_dict(self) -> dict[str, float]:
        return {"dx": self.dx, "dy": self.dy, "dwidth": self.dwidth, "dheight": self.dheight}


@dataclass(frozen=True)
class PositionCorrection:
    """A reviewer's correction of a generated box."""

    feature: str
    species: str | None
    original_box: BoundingBox
    corrected_box: BoundingBox
    delta: BoxDelta
    timestamp: datetime
    reviewer_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.feature,
            "species": self.species,
            "originalBox": self.original_box.model_dump(),
            "correctedBox": self.corrected_box.model_dump(),
            "delta": self.delta.to_dict(),
            "timestamp": _iso(self.timestamp),
            "reviewerId": self.reviewer_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PositionCorrection:
        return cls(
            feature=data["feature"],
            species=data.get("species"),
            original_box=BoundingBox(**data["originalBox"]),
            corrected_box=BoundingBox(**data["correctedBox"]),
            delta=BoxDelta(**data["delta"]),
            timestamp=_parse(data["timestamp"]),
            reviewer_id=data.get("reviewerId"),
        )


@dataclass
class RejectionRecord:
    """How often annotations of a feature were rejected for one reason category."""

    feature: str
    species: str | None
    reason_category: str
    last_reason: str
    timestamp: datetime
    count: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "feature": self.feature,
            "species": self.species,
            "reasonCategory": self.reason_category,
            "lastReason": self.last_reason,
            "timestamp": _iso(self.timestamp),
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RejectionRecord:
        return cls(
            feature=data["feature"],
            species=data.get("species"),
            reason_category=data["reasonCategory"],
            last_reason=data.get("lastReason", ""),
            timestamp=_parse(data["timestamp"]),
            count=data.get("count", 1),
        )


@dataclass(frozen=True)
class PromptRecord:
    """Measured effectiveness of one generation prompt."""

    prompt: str
    effectiveness: float
    average_confidence: float
    annotation_count: int
    species: str | None
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "effectiveness": self.effectiveness,
            "averageConfidence": self.average_confidence,
            "annotationCount": self.annotation_count,
            "species": self.species,
            "timestamp": _iso(self.timestamp),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PromptRecord:
        return cls(
            prompt=data["prompt"],
            effectiveness=data["effectiveness"],
            average_confidence=data.get("averageConfidence", 0.0),
            annotation_count=data.get("annotationCount", 0),
            species=data.get("species"),
            timestamp=_parse(data["timestamp"]),
        )


@dataclass(frozen=True)
class FeatureAdjustment:
    """Average reviewer correction for a feature, once enough corrections exist."""

    feature: str
    based_on_corrections: int
    delta: BoxDelta | None = None
