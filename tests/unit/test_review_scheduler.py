"""
Unit tests for ReviewScheduler.

Tests:
- SM-2 interval progression (1, 6, then interval x ease)
- Failure reset and ease penalty
- Ease floor and quality clamping
- Mastery deltas
- Grading from response correctness and time
"""

import math
from datetime import UTC, datetime, timedelta

import pytest

from adaptive_engine.delivery.scheduler import ReviewScheduler, SM2Config, clamp_quality

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def scheduler():
    return ReviewScheduler()


class TestSuccessfulReview:
    """Tests for quality >= 3."""

    def test_first_success_schedules_one_day(self, scheduler):
        result = scheduler.compute_next_review(4, 0, 2.5, 0, now=NOW)

        assert result.new_repetitions == 1
        assert result.new_interval == 1
        assert result.next_date == NOW + timedelta(days=1)

    def test_second_success_schedules_six_days(self, scheduler):
        result = scheduler.compute_next_review(4, 1, 2.5, 1, now=NOW)

        assert result.new_repetitions == 2
        assert result.new_interval == 6

    def test_third_success_multiplies_by_ease(self, scheduler):
        result = scheduler.compute_next_review(5, 6, 2.5, 2, now=NOW)

        assert result.new_interval == 15
        assert result.new_ease == pytest.approx(2.6)
        assert result.new_repetitions == 3
        assert result.passed

    def test_interval_rounds_half_up(self, scheduler):
        # 2 * 2.25 = 4.5 rounds to 5, not to the even 4
        result = scheduler.compute_next_review(4, 2, 2.25, 2, now=NOW)

        assert result.new_interval == 5

    def test_quality_four_keeps_ease(self, scheduler):
        result = scheduler.compute_next_review(4, 6, 2.5, 2, now=NOW)

        assert result.new_ease == pytest.approx(2.5)

    def test_ease_never_drops_below_floor(self, scheduler):
        result = scheduler.compute_next_review(3, 6, 1.3, 2, now=NOW)

        assert result.new_ease == pytest.approx(1.3)

    @pytest.mark.parametrize("quality,delta", [(3, 5.0), (4, 10.0), (5, 15.0)])
    def test_mastery_delta(self, scheduler, quality, delta):
        result = scheduler.compute_next_review(quality, 0, 2.5, 0, now=NOW)

        assert result.mastery_delta == pytest.approx(delta)


class TestFailedReview:
    """Tests for quality < 3."""

    @pytest.mark.parametrize("quality", [0, 1, 2])
    def test_failure_resets_progress(self, scheduler, quality):
        result = scheduler.compute_next_review(quality, 15, 2.0, 4, now=NOW)

        assert result.new_repetitions == 0
        assert result.new_interval == 1
        assert result.new_ease == pytest.approx(1.8)
        assert result.mastery_delta == -10.0
        assert not result.passed

    def test_failure_ease_floor(self, scheduler):
        result = scheduler.compute_next_review(2, 15, 1.4, 4, now=NOW)

        assert result.new_ease == pytest.approx(1.3)


class TestQualityClamping:
    """Out-of-range qualities are clamped, never rejected."""

    def test_clamp_quality(self):
        assert clamp_quality(7) == 5
        assert clamp_quality(-2) == 0
        assert clamp_quality(3.5) == 3.5

    def test_quality_above_five_behaves_as_five(self, scheduler):
        high = scheduler.compute_next_review(9, 6, 2.5, 2, now=NOW)
        five = scheduler.compute_next_review(5, 6, 2.5, 2, now=NOW)

        assert high == five

    def test_negative_quality_behaves_as_zero(self, scheduler):
        result = scheduler.compute_next_review(-3, 6, 2.5, 2, now=NOW)

        assert result.new_repetitions == 0
        assert result.new_ease == pytest.approx(2.3)

    def test_nan_quality_behaves_as_zero(self, scheduler):
        assert clamp_quality(math.nan) == 0

        result = scheduler.compute_next_review(math.nan, 0, 2.5, 0, now=NOW)

        assert not result.passed
        assert result.new_repetitions == 0
        assert result.new_ease == pytest.approx(2.3)
        assert result.mastery_delta == -10


class TestCustomConfig:
    def test_minimum_ease_from_config(self):
        scheduler = ReviewScheduler(SM2Config(minimum_easiness=1.5))

        result = scheduler.compute_next_review(0, 6, 1.6, 2, now=NOW)

        assert result.new_ease == pytest.approx(1.5)


class TestGradeFromResponse:
    """Tests for converting a response to an SM-2 grade."""

    def test_fast_correct_is_perfect(self, scheduler):
        assert scheduler.grade_from_response(True, 2000) == 5

    def test_normal_correct_is_hesitant(self, scheduler):
        assert scheduler.grade_from_response(True, 8000) == 4

    def test_slow_correct_is_difficult(self, scheduler):
        assert scheduler.grade_from_response(True, 15000) == 3

    def test_quick_wrong_is_blackout(self, scheduler):
        assert scheduler.grade_from_response(False, 1000) == 0

    def test_slow_wrong_is_near_miss(self, scheduler):
        assert scheduler.grade_from_response(False, 9000) == 1
