"""
Input models for the pattern learner.

Annotations arrive from the content-generation layer (vision model output,
reviewer edits). They are validated here so the statistics code can assume
normalized boxes and bounded confidences.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_CONFIDENCE = 0.8


class BoundingBox(BaseModel):
    """Normalized [0, 1] rectangle; (x, y) is the top-left corner."""

    model_config = ConfigDict(frozen=True)

    x: float = Field(ge=0.0, le=1.0)
    y: float = Field(ge=0.0, le=1.0)
    width: float = Field(ge=0.0, le=1.0)
    height: float = Field(ge=0.0, le=1.0)

    @property
    def center_x(self) -> float:
        return self.x + self.width / 2

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2

    def as_dimensions(self) -> tuple[float, float, float, float]:
        """(center_x, center_y, width, height), the order statistics are kept in."""
        return (self.center_x, self.center_y, self.width, self.height)


class Annotation(BaseModel):
    """A generated annotation of one visual feature."""

    model_config = ConfigDict(frozen=True)

    feature: str = Field(min_length=1, description="Feature term, e.g. 'el pico'")
    english_term: str | None = None
    bounding_box: BoundingBox | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    difficulty_level: int = Field(default=1, ge=1, le=5)
    annotation_type: str | None = None
    pronunciation: str | None = None

    @property
    def effective_confidence(self) -> float:
        """Confidence, with unscored annotations counted as 0.8."""
        return self.confidence if self.confidence is not None else DEFAULT_CONFIDENCE


class ObservationContext(BaseModel):
    """Where an annotation came from."""

    species: str | None = None
    image_id: str | None = None
    reviewer_id: str | None = None
    prompt: str | None = None
    image_characteristics: list[str] = Field(default_factory=list)


class PromptContext(BaseModel):
    """What the next generation request targets."""

    species: str | None = None
    target_features: list[str] = Field(default_factory=list)
    image_characteristics: list[str] = Field(default_factory=list)
