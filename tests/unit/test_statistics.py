"""
Unit tests for incremental bounding box statistics.

Tests:
- Welford mean/variance against a direct computation
- Weighted step equals repeated unweighted steps
- Identical boxes collapse variance to zero
"""

import pytest

from adaptive_engine.learning.models import BoundingBox
from adaptive_engine.learning.statistics import (
    BoundingBoxStat,
    fold_box,
    running_average,
    weighted_welford,
)


def box(x, y, width=0.1, height=0.1):
    return BoundingBox(x=x, y=y, width=width, height=height)


class TestWelford:
    def test_matches_population_statistics(self):
        values = [0.2, 0.4, 0.9, 0.5, 0.1]
        mean, variance, n = values[0], 0.0, 1
        for value in values[1:]:
            mean, variance = weighted_welford(mean, variance, n, value)
            n += 1

        expected_mean = sum(values) / len(values)
        expected_var = sum((v - expected_mean) ** 2 for v in values) / len(values)
        assert mean == pytest.approx(expected_mean)
        assert variance == pytest.approx(expected_var)

    @pytest.mark.parametrize("weight", [2, 3, 5])
    def test_weighted_equals_repeated(self, weight):
        mean, variance, n = 0.3, 0.01, 4

        weighted = weighted_welford(mean, variance, n, 0.7, weight)

        repeated_mean, repeated_var = mean, variance
        for i in range(weight):
            repeated_mean, repeated_var = weighted_welford(repeated_mean, repeated_var, n + i, 0.7)

        assert weighted[0] == pytest.approx(repeated_mean)
        assert weighted[1] == pytest.approx(repeated_var)

    def test_variance_is_never_negative(self):
        _, variance = weighted_welford(0.45, 0.0, 3, 0.45)

        assert variance == 0.0

    def test_running_average(self):
        assert running_average(0.8, 1.0, 1) == pytest.approx(0.9)
        assert running_average(0.0, 0.6, 0) == pytest.approx(0.6)


class TestBoundingBoxStat:
    def test_from_box_uses_center(self):
        stat = BoundingBoxStat.from_box(box(0.4, 0.3, 0.1, 0.08))

        assert stat.center_x == pytest.approx(0.45)
        assert stat.center_y == pytest.approx(0.34)
        assert stat.width == pytest.approx(0.1)
        assert stat.height == pytest.approx(0.08)
        assert stat.sample_size == 1
        assert stat.var_x == 0.0

    def test_identical_boxes_have_zero_variance(self):
        stat = None
        for _ in range(4):
            stat = fold_box(stat, box(0.2, 0.6))

        assert stat.sample_size == 4
        assert stat.center_x == pytest.approx(0.25)
        assert stat.center_y == pytest.approx(0.65)
        assert stat.var_x == pytest.approx(0.0)
        assert stat.var_y == pytest.approx(0.0)

    def test_mean_moves_toward_repeated_box(self):
        stat = BoundingBoxStat.from_box(box(0.0, 0.0))
        for _ in range(50):
            stat = stat.update(box(0.5, 0.5))

        assert stat.center_x == pytest.approx(0.55, abs=0.02)

    def test_weighted_update_equals_repeated_updates(self):
        start = fold_box(fold_box(None, box(0.1, 0.2)), box(0.3, 0.1))

        weighted = start.update(box(0.6, 0.5, 0.2, 0.3), weight=3)
        repeated = start
        for _ in range(3):
            repeated = repeated.update(box(0.6, 0.5, 0.2, 0.3))

        assert weighted.sample_size == repeated.sample_size == 5
        for attr in ("center_x", "center_y", "width", "height", "var_x", "var_y", "var_width", "var_height"):
            assert getattr(weighted, attr) == pytest.approx(getattr(repeated, attr))

    def test_weight_must_be_positive(self):
        stat = BoundingBoxStat.from_box(box(0.1, 0.1))

        with pytest.raises(ValueError):
            stat.update(box(0.2, 0.2), weight=0)

    def test_first_weighted_observation(self):
        stat = fold_box(None, box(0.1, 0.1), weight=3)

        assert stat.sample_size == 3
        assert stat.var_x == 0.0
