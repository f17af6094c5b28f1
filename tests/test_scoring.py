"""Tests for ScoringEngine."""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone

import pytest

from personalization.models import (
    BehaviorMetrics,
    Candidate,
    DeviceType,
    ExpertiseLevel,
    RecommendationCategory,
    RecommendationContext,
    SpeedPreference,
    SpeedTier,
    UserProfile,
)
from personalization.scoring import ScoringEngine


@pytest.fixture
def scorer() -> ScoringEngine:
    return ScoringEngine()


def _candidate(**overrides) -> Candidate:
    fields = dict(
        candidate_id=50,
        name="Plain",
        category="General",
        provider="Someone",
        quality_rating=70,
        popularity=50,
        satisfaction=50,
        performance_index=50,
    )
    fields.update(overrides)
    return Candidate(**fields)


def _codes(scored) -> list[str]:
    return [r.code for r in scored.reasons]


def _at(hour: int) -> RecommendationContext:
    return RecommendationContext(current_time=datetime(2024, 6, 3, hour, 30, tzinfo=timezone.utc))


# ---------------------------------------------------------------------------
# Worked examples
# ---------------------------------------------------------------------------


class TestWorkedExamples:
    def test_preferred_category_quality_upgrade(
        self, scorer, artistic_candidate, conservative_artist, neutral_context
    ) -> None:
        scored = scorer.score(artistic_candidate, conservative_artist, neutral_context)
        assert scored.score == 76
        assert scored.category is RecommendationCategory.QUALITY_UPGRADE
        assert _codes(scored) == [
            "category_match",
            "quality_match",
            "speed_match",
            "expertise",
            "quality_upgrade",
        ]
        assert scored.confidence == pytest.approx(0.7)

    def test_trending_quality_upgrade(
        self, scorer, speed_candidate, conservative_artist, neutral_context
    ) -> None:
        scored = scorer.score(speed_candidate, conservative_artist, neutral_context)
        assert scored.score == 87
        assert scored.category is RecommendationCategory.QUALITY_UPGRADE
        assert _codes(scored) == ["quality_match", "expertise", "trending", "quality_upgrade"]
        assert scored.confidence == pytest.approx(0.8)

    def test_components_add_up(
        self, scorer, artistic_candidate, conservative_artist, neutral_context
    ) -> None:
        scored = scorer.score(artistic_candidate, conservative_artist, neutral_context)
        assert scored.components["base_appeal"] == pytest.approx(21.3)
        assert scored.components["compatibility"] == pytest.approx(30.0)
        assert scored.components["expertise"] == 10
        assert scored.components["quality_upgrade"] == 15
        assert scored.components["trending"] == 0
        assert scored.components["context"] == 0

    def test_perfect_match(self, scorer, neutral_context) -> None:
        profile = UserProfile(
            user_id=1,
            preferred_categories=["Artistic"],
            preferred_providers=["RunDiffusion"],
            exploration_score=30,
        )
        candidate = _candidate(
            category="Artistic",
            provider="RunDiffusion",
            quality_rating=80,
            speed_tier=SpeedTier.FAST,
        )
        scored = scorer.score(candidate, profile, neutral_context)
        assert scored.score == 69
        assert scored.category is RecommendationCategory.PERFECT_MATCH
        assert "perfect_match" in _codes(scored)

    def test_score_is_clamped_to_100(
        self, scorer, speed_candidate, adventurous_profile, neutral_context
    ) -> None:
        scored = scorer.score(speed_candidate, adventurous_profile, neutral_context)
        assert scored.score == 100
        assert sum(scored.components.values()) > 100

    def test_scoring_is_deterministic(
        self, scorer, artistic_candidate, adventurous_profile, neutral_context
    ) -> None:
        first = scorer.score(artistic_candidate, adventurous_profile, neutral_context)
        second = scorer.score(artistic_candidate, adventurous_profile, neutral_context)
        assert first == second


# ---------------------------------------------------------------------------
# Factors
# ---------------------------------------------------------------------------


class TestAppeal:
    def test_weighted_blend(self, scorer, artistic_candidate) -> None:
        assert scorer.appeal(artistic_candidate) == 71

    def test_rounds_half_up(self, scorer, speed_candidate) -> None:
        # 28.5 + 38 + 12 + 9 = 87.5
        assert scorer.appeal(speed_candidate) == 88

    def test_missing_metrics_default_to_50(self, scorer, artistic_candidate) -> None:
        candidate = dataclasses.replace(
            artistic_candidate, satisfaction=None, performance_index=None
        )
        assert scorer.appeal(candidate) == 63


class TestCompatibility:
    def test_learned_affinity_counts_as_category_match(self, scorer, artistic_candidate) -> None:
        profile = UserProfile(user_id=1, category_affinities={"Artistic": 5})
        _, reasons = scorer.compatibility(artistic_candidate, profile)
        assert "category_match" in [r.code for r in reasons]

    def test_only_top_three_learned_categories_count(self, scorer, artistic_candidate) -> None:
        profile = UserProfile(
            user_id=1,
            category_affinities={"Speed": 90, "Anime": 80, "Latest": 70, "Artistic": 5},
        )
        _, reasons = scorer.compatibility(artistic_candidate, profile)
        assert "category_match" not in [r.code for r in reasons]

    @pytest.mark.parametrize(
        "preference, tier, points",
        [
            (SpeedPreference.FAST, SpeedTier.ULTRA_FAST, 25),
            (SpeedPreference.FAST, SpeedTier.DETAILED, 5),
            (SpeedPreference.BALANCED, SpeedTier.FAST, 25),
            (SpeedPreference.BALANCED, SpeedTier.ULTRA_FAST, 15),
            (SpeedPreference.QUALITY, SpeedTier.DETAILED, 25),
            (SpeedPreference.QUALITY, SpeedTier.ULTRA_FAST, 5),
        ],
    )
    def test_speed_table(self, scorer, preference, tier, points) -> None:
        profile = UserProfile(user_id=1, speed_preference=preference, quality_threshold=100)
        score, _ = scorer.compatibility(_candidate(speed_tier=tier), profile)
        assert score == points

    def test_speed_reason_only_above_15(self, scorer) -> None:
        profile = UserProfile(user_id=1, quality_threshold=100)
        _, reasons = scorer.compatibility(_candidate(speed_tier=SpeedTier.ULTRA_FAST), profile)
        assert reasons == []

    def test_capped_at_100(self, scorer) -> None:
        profile = UserProfile(
            user_id=1, preferred_categories=["General"], preferred_providers=["Someone"]
        )
        score, _ = scorer.compatibility(_candidate(speed_tier=SpeedTier.FAST), profile)
        assert score == 100


class TestExpertise:
    def test_novice_gets_bonus_for_simple_general_models(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.NOVICE)
        scored = scorer.score(_candidate(features=("easy",)), profile, neutral_context)
        assert scored.components["expertise"] == 15
        assert "expertise" in _codes(scored)

    def test_novice_gets_nothing_outside_general(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.NOVICE)
        scored = scorer.score(_candidate(category="Anime"), profile, neutral_context)
        assert scored.components["expertise"] == 0

    def test_intermediate_prefers_simpler_models(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.INTERMEDIATE)
        simple = scorer.score(_candidate(features=("a", "b")), profile, neutral_context)
        complex_ = scorer.score(_candidate(features=("a", "b", "c")), profile, neutral_context)
        assert simple.components["expertise"] == 10
        assert complex_.components["expertise"] == 5

    def test_expert_bonus_and_reason_for_complex_models(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.EXPERT)
        scored = scorer.score(_candidate(features=("a", "b", "c")), profile, neutral_context)
        assert scored.components["expertise"] == 15
        assert "expertise" in _codes(scored)

    def test_expert_simple_model_has_no_reason(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.EXPERT)
        scored = scorer.score(_candidate(), profile, neutral_context)
        assert scored.components["expertise"] == 8
        assert "expertise" not in _codes(scored)

    def test_power_user_needs_complex_model(self, scorer, neutral_context) -> None:
        profile = UserProfile(user_id=1, expertise_level=ExpertiseLevel.POWER_USER)
        complex_ = scorer.score(_candidate(features=("a", "b", "c")), profile, neutral_context)
        simple = scorer.score(_candidate(), profile, neutral_context)
        assert complex_.components["expertise"] == 10
        assert simple.components["expertise"] == 0


class TestExploration:
    def test_new_category(self, scorer, adventurous_profile, neutral_context) -> None:
        scored = scorer.score(
            _candidate(category="Anime", quality_rating=75), adventurous_profile, neutral_context
        )
        assert scored.components["exploration"] == 20
        assert "exploration" in _codes(scored)

    def test_new_provider(self, scorer, adventurous_profile, neutral_context) -> None:
        scored = scorer.score(
            _candidate(category="Artistic", provider="Lykon", quality_rating=80),
            adventurous_profile,
            neutral_context,
        )
        assert scored.components["exploration"] == 15

    def test_featured_known_model(self, scorer, adventurous_profile, neutral_context) -> None:
        scored = scorer.score(
            _candidate(
                category="Artistic", provider="RunDiffusion", quality_rating=85, featured=True
            ),
            adventurous_profile,
            neutral_context,
        )
        assert scored.components["exploration"] == 10

    def test_only_adventurous_users_explore(
        self, scorer, speed_candidate, conservative_artist, neutral_context
    ) -> None:
        moderate = dataclasses.replace(conservative_artist, exploration_score=55)
        for profile in (conservative_artist, moderate):
            scored = scorer.score(speed_candidate, profile, neutral_context)
            assert scored.components["exploration"] == 0
            assert "exploration" not in _codes(scored)


class TestTrendingAndCategory:
    @pytest.mark.parametrize(
        "popularity, featured, bonus",
        [(90, True, 25), (90, False, 15), (76, False, 15), (60, True, 10), (60, False, 0)],
    )
    def test_trending_tiers(
        self, scorer, conservative_artist, neutral_context, popularity, featured, bonus
    ) -> None:
        candidate = _candidate(popularity=popularity, featured=featured)
        scored = scorer.score(candidate, conservative_artist, neutral_context)
        assert scored.components["trending"] == bonus

    def test_trending_category(self, scorer, conservative_artist, neutral_context) -> None:
        candidate = _candidate(quality_rating=80, popularity=90, featured=True)
        scored = scorer.score(candidate, conservative_artist, neutral_context)
        assert scored.category is RecommendationCategory.TRENDING

    def test_fallback_category_is_exploration(
        self, scorer, conservative_artist, neutral_context
    ) -> None:
        scored = scorer.score(_candidate(), conservative_artist, neutral_context)
        assert scored.category is RecommendationCategory.EXPLORATION

    def test_upgrade_needs_more_than_margin(self, scorer, conservative_artist, neutral_context) -> None:
        at_margin = scorer.score(_candidate(quality_rating=85), conservative_artist, neutral_context)
        above = scorer.score(_candidate(quality_rating=86), conservative_artist, neutral_context)
        assert at_margin.components["quality_upgrade"] == 0
        assert above.components["quality_upgrade"] == 15


class TestContext:
    def test_fast_models_during_work_hours(self, scorer, conservative_artist) -> None:
        scored = scorer.score(_candidate(speed_tier=SpeedTier.FAST), conservative_artist, _at(10))
        assert scored.components["context"] == 5

    def test_professional_models_off_hours(self, scorer, conservative_artist) -> None:
        pro = _candidate(quality_rating=90)
        assert scorer.score(pro, conservative_artist, _at(20)).components["context"] == 5
        assert scorer.score(pro, conservative_artist, _at(8)).components["context"] == 5
        assert scorer.score(pro, conservative_artist, _at(12)).components["context"] == 0

    def test_premium_models_get_no_off_hours_bonus(self, scorer, conservative_artist) -> None:
        scored = scorer.score(_candidate(quality_rating=75), conservative_artist, _at(22))
        assert scored.components["context"] == 0

    def test_mobile_ultra_fast(self, scorer, conservative_artist) -> None:
        context = RecommendationContext(device_type=DeviceType.MOBILE)
        scored = scorer.score(
            _candidate(speed_tier=SpeedTier.ULTRA_FAST), conservative_artist, context
        )
        assert scored.components["context"] == 5

    def test_category_continuity(self, scorer, conservative_artist) -> None:
        context = RecommendationContext(current_category="General")
        scored = scorer.score(_candidate(), conservative_artist, context)
        assert scored.components["context"] == 10

    def test_context_does_not_add_reasons(self, scorer, conservative_artist) -> None:
        base = scorer.score(_candidate(), conservative_artist, RecommendationContext())
        browsing = scorer.score(
            _candidate(), conservative_artist, RecommendationContext(current_category="General")
        )
        assert browsing.reasons == base.reasons


class TestConfidence:
    @pytest.mark.parametrize(
        "interactions, expected",
        [(0, 0.5), (5, 0.5), (6, 0.6), (21, 0.7), (51, 0.8)],
    )
    def test_history_tiers(self, scorer, artistic_candidate, interactions, expected) -> None:
        profile = UserProfile(
            user_id=1, behavior=BehaviorMetrics(total_interactions=interactions)
        )
        assert scorer.confidence(artistic_candidate, profile, 0) == pytest.approx(expected)

    def test_reason_bonus_is_capped(self, scorer, artistic_candidate) -> None:
        profile = UserProfile(user_id=1)
        assert scorer.confidence(artistic_candidate, profile, 10) == pytest.approx(0.7)

    def test_never_exceeds_one(self, scorer, speed_candidate) -> None:
        profile = UserProfile(user_id=1, behavior=BehaviorMetrics(total_interactions=500))
        assert scorer.confidence(speed_candidate, profile, 10) == 1.0


class TestRelevance:
    def test_low_quality_candidate_is_dropped(
        self, scorer, low_quality_candidate, conservative_artist, neutral_context
    ) -> None:
        scored = scorer.score(low_quality_candidate, conservative_artist, neutral_context)
        assert scored.score == 20
        assert not scorer.is_relevant(scored)
        assert scorer.score_all([low_quality_candidate], conservative_artist, neutral_context) == []

    def test_score_all_keeps_relevant_in_input_order(
        self, scorer, artistic_candidate, speed_candidate, conservative_artist, neutral_context
    ) -> None:
        kept = scorer.score_all(
            [speed_candidate, artistic_candidate], conservative_artist, neutral_context
        )
        assert [s.candidate.candidate_id for s in kept] == [2, 1]


class TestMissingValues:
    def test_missing_profile_fields_use_defaults(
        self, scorer, artistic_candidate, conservative_artist, neutral_context
    ) -> None:
        profile = dataclasses.replace(
            conservative_artist,
            quality_threshold=None,
            speed_preference=None,
            expertise_level=None,
        )
        scored = scorer.score(artistic_candidate, profile, neutral_context)
        assert scored.score == 76

    def test_scores_stay_in_bounds(
        self, scorer, sample_candidates, adventurous_profile, conservative_artist
    ) -> None:
        context = RecommendationContext(
            current_time=datetime(2024, 6, 3, 21, tzinfo=timezone.utc),
            device_type=DeviceType.MOBILE,
            current_category="Photorealistic",
        )
        for profile in (adventurous_profile, conservative_artist):
            for candidate in sample_candidates:
                scored = scorer.score(candidate, profile, context)
                assert 0 <= scored.score <= 100
                assert 0.0 <= scored.confidence <= 1.0

    def test_none_collections_score_like_empty_ones(
        self, scorer, sample_candidates, conservative_artist, neutral_context
    ) -> None:
        empty = dataclasses.replace(
            conservative_artist,
            preferred_categories=[],
            preferred_providers=[],
            category_affinities={},
            provider_affinities={},
        )
        missing = dataclasses.replace(
            conservative_artist,
            preferred_categories=None,
            preferred_providers=None,
            category_affinities=None,
            provider_affinities=None,
        )
        for candidate in sample_candidates:
            expected = scorer.score(candidate, empty, neutral_context)
            actual = scorer.score(candidate, missing, neutral_context)
            assert actual.score == expected.score
            assert actual.reasons == expected.reasons

    def test_none_collections_have_no_interests(self) -> None:
        profile = UserProfile(user_id=1, preferred_categories=None, category_affinities=None)
        assert profile.top_categories() == []
        assert profile.interest_categories() == []
