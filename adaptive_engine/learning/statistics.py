"""
Incremental statistics for learned patterns.

Bounding boxes are summarized per dimension (center x, center y, width,
height) with Welford's online mean/variance. Extra weight toward a trusted
position (approval, correction) is a single weighted step rather than the
same sample inserted several times:

    n' = n + w
    mean' = mean + w * (x - mean) / n'
    variance' = (variance * n + w * (x - mean) * (x - mean')) / n'

With w = 1 this is the plain Welford update, and one step of weight w lands
exactly where w unweighted steps with the same sample would.

Variance here is the population variance (divided by n).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from adaptive_engine.learning.models import BoundingBox


def running_average(current: float, value: float, count: int) -> float:
    """Fold one value into an average over ``count`` previous values."""
    return (current * count + value) / (count + 1)


def weighted_welford(
    mean: float,
    variance: float,
    n: int,
    value: float,
    weight: int = 1,
) -> tuple[float, float]:
    """
    One weighted Welford step for a single dimension.

    Args:
        mean: Current mean
        variance: Current population variance
        n: Current sample size
        value: New observation
        weight: How many observations ``value`` counts as

    Returns:
        (new_mean, new_variance)
    """
    new_n = n + weight
    delta = value - mean
    new_mean = mean + weight * delta / new_n
    delta2 = value - new_mean
    new_variance = (variance * n + weight * delta * delta2) / new_n
    # Rounding can push a zero variance fractionally negative
    return new_mean, max(0.0, new_variance)


@dataclass
class BoundingBoxStat:
    """Running centroid, size and variance of a feature's position."""

    center_x: float
    center_y: float
    width: float
    height: float
    var_x: float = 0.0
    var_y: float = 0.0
    var_width: float = 0.0
    var_height: float = 0.0
    sample_size: int = 1

    @classmethod
    def from_box(cls, box: BoundingBox, weight: int = 1) -> BoundingBoxStat:
        """Start statistics from a first observation."""
        cx, cy, w, h = box.as_dimensions()
        return cls(center_x=cx, center_y=cy, width=w, height=h, sample_size=weight)

    def update(self, box: BoundingBox, weight: int = 1) -> BoundingBoxStat:
        """Return statistics with ``box`` folded in at ``weight``."""
        if weight < 1:
            raise ValueError(f"weight must be >= 1, got {weight}")

        n = self.sample_size
        means = (self.center_x, self.center_y, self.width, self.height)
        variances = (self.var_x, self.var_y, self.var_width, self.var_height)

        updated = [
            weighted_welford(mean, var, n, value, weight)
            for mean, var, value in zip(means, variances, box.as_dimensions())
        ]
        (cx, vx), (cy, vy), (w, vw), (h, vh) = updated

        return BoundingBoxStat(
            center_x=cx,
            center_y=cy,
            width=w,
            height=h,
            var_x=vx,
            var_y=vy,
            var_width=vw,
            var_height=vh,
            sample_size=n + weight,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "center": {"x": self.center_x, "y": self.center_y},
            "size": {"width": self.width, "height": self.height},
            "variance": {
                "x": self.var_x,
                "y": self.var_y,
                "width": self.var_width,
                "height": self.var_height,
            },
            "sampleSize": self.sample_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoundingBoxStat:
        variance = data.get("variance", {})
        return cls(
            center_x=data["center"]["x"],
            center_y=data["center"]["y"],
            width=data["size"]["width"],
            height=data["size"]["height"],
            var_x=variance.get("x", 0.0),
            var_y=variance.get("y", 0.0),
            var_width=variance.get("width", 0.0),
            var_height=variance.get("height", 0.0),
            sample_size=data.get("sampleSize", 1),
        )


def fold_box(stat: BoundingBoxStat | None, box: BoundingBox, weight: int = 1) -> BoundingBoxStat:
    """Fold a box into possibly-empty statistics."""
    if stat is None:
        return BoundingBoxStat.from_box(box, weight)
    return stat.update(box, weight)
