"""
Unit tests for prompt enhancement.

Tests:
- Prompt is unchanged until enough evidence exists
- Species, feature, correction and rejection sections
- Section order and determinism
"""

import pytest

from adaptive_engine.learning.models import Annotation, BoundingBox, ObservationContext, PromptContext
from adaptive_engine.learning.pattern_learner import PatternLearner
from adaptive_engine.learning.prompt_guidance import rejection_warnings

BASE = "Annotate the visible features of this bird."
SPECIES = "Northern Cardinal"


def beak(x=0.4):
    return Annotation(
        feature="el pico",
        bounding_box=BoundingBox(x=x, y=0.3, width=0.1, height=0.08),
        confidence=0.9,
    )


@pytest.fixture
def learner(clock):
    return PatternLearner(clock=clock)


@pytest.fixture
def context():
    return PromptContext(species=SPECIES, target_features=["el pico"])


class TestEnhancePrompt:
    def test_nothing_learned(self, learner, context):
        assert learner.enhance_prompt(BASE, context) == BASE

    def test_no_context(self, learner):
        assert learner.enhance_prompt(BASE) == BASE

    @pytest.mark.asyncio
    async def test_too_few_observations(self, learner, context):
        await learner.observe(beak(), ObservationContext(species=SPECIES))
        await learner.observe(beak(), ObservationContext(species=SPECIES))

        assert learner.enhance_prompt(BASE, context) == BASE

    @pytest.mark.asyncio
    async def test_feature_and_species_guidance(self, learner, context):
        for _ in range(3):
            await learner.observe(beak(), ObservationContext(species=SPECIES))

        prompt = learner.enhance_prompt(BASE, context)

        assert prompt.startswith(BASE)
        assert f"SPECIES-SPECIFIC GUIDANCE for {SPECIES}" in prompt
        assert "Common features to prioritize: el pico" in prompt
        assert "Based on 3 previous annotations" in prompt
        assert "LEARNED FEATURE PATTERNS" in prompt
        assert "el pico: typically centered at (0.45, 0.34) with size 0.10x0.08" in prompt

    @pytest.mark.asyncio
    async def test_correction_guidance(self, learner, context):
        species = ObservationContext(species=SPECIES)
        for _ in range(3):
            await learner.learn_from_correction(beak(), beak(x=0.45), species)

        prompt = learner.enhance_prompt(BASE, context)

        assert "CORRECTION-BASED ADJUSTMENTS" in prompt
        assert "el pico: Adjust position by (0.05, 0.00) and size by (0.00, 0.00)" in prompt
        assert "[Based on 3 reviewer corrections]" in prompt

    @pytest.mark.asyncio
    async def test_rejection_warnings_need_repeats(self, learner, context):
        species = ObservationContext(species=SPECIES)
        await learner.learn_from_rejection(beak(), "wrong position", species)
        assert "COMMON REJECTION PATTERNS" not in learner.enhance_prompt(BASE, context)

        await learner.learn_from_rejection(beak(), "position is off", species)
        prompt = learner.enhance_prompt(BASE, context)

        assert "COMMON REJECTION PATTERNS TO AVOID" in prompt
        assert 'el pico: Avoid patterns that caused: "poor_localization" (2x)' in prompt

    @pytest.mark.asyncio
    async def test_section_order_and_determinism(self, learner, context):
        species = ObservationContext(species=SPECIES)
        for _ in range(3):
            await learner.observe(beak(), species)
            await learner.learn_from_correction(beak(), beak(x=0.45), species)
            await learner.learn_from_rejection(beak(), "blurry", species)

        prompt = learner.enhance_prompt(BASE, context)

        positions = [
            prompt.index("SPECIES-SPECIFIC GUIDANCE"),
            prompt.index("LEARNED FEATURE PATTERNS"),
            prompt.index("CORRECTION-BASED ADJUSTMENTS"),
            prompt.index("COMMON REJECTION PATTERNS TO AVOID"),
        ]
        assert positions == sorted(positions)
        assert learner.enhance_prompt(BASE, context) == prompt

    @pytest.mark.asyncio
    async def test_other_species_gets_no_guidance(self, learner):
        for _ in range(3):
            await learner.observe(beak(), ObservationContext(species=SPECIES))

        other = PromptContext(species="Blue Jay", target_features=["el pico"])
        assert learner.enhance_prompt(BASE, other) == BASE


class TestRejectionWarnings:
    @pytest.mark.asyncio
    async def test_top_three_reasons(self, learner):
        species = ObservationContext(species=SPECIES)
        reasons = ["blurry"] * 4 + ["box off"] * 3 + ["duplicate"] * 2 + ["wrong species"] * 2
        for reason in reasons:
            await learner.learn_from_rejection(beak(), reason, species)

        text = rejection_warnings(learner._rejections, SPECIES, ["el pico"])

        assert '"low_quality" (4x), "poor_localization" (3x), "duplicate" (2x)' in text
        assert "incorrect_species" not in text
