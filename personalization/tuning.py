"""Tunable weights and thresholds for scoring, diversity and feedback.

Every numeric constant the engine uses lives on :class:`EngineConfig` so it
can be overridden per deployment (see ``ENGINE_OVERRIDES`` in :mod:`config`)
without touching code.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from personalization.models import (
    BehaviorMetrics,
    ExpertiseLevel,
    InteractionType,
    SpeedPreference,
    SpeedTier,
    UserProfile,
)


def _default_speed_compatibility() -> dict[str, dict[str, int]]:
    return {
        SpeedPreference.FAST.value: {
            SpeedTier.ULTRA_FAST.value: 25,
            SpeedTier.FAST.value: 20,
            SpeedTier.STANDARD.value: 10,
            SpeedTier.DETAILED.value: 5,
        },
        SpeedPreference.BALANCED.value: {
            SpeedTier.ULTRA_FAST.value: 15,
            SpeedTier.FAST.value: 25,
            SpeedTier.STANDARD.value: 20,
            SpeedTier.DETAILED.value: 15,
        },
        SpeedPreference.QUALITY.value: {
            SpeedTier.ULTRA_FAST.value: 5,
            SpeedTier.FAST.value: 10,
            SpeedTier.STANDARD.value: 20,
            SpeedTier.DETAILED.value: 25,
        },
    }


def _default_interaction_base_scores() -> dict[str, int]:
    return {
        InteractionType.VIEW.value: 1,
        InteractionType.LIKE.value: 3,
        InteractionType.BOOKMARK.value: 4,
        InteractionType.GENERATE.value: 5,
        InteractionType.SHARE.value: 4,
        InteractionType.DOWNLOAD.value: 4,
    }


_ENUM_FIELDS = {
    "default_expertise_level": ExpertiseLevel,
    "default_speed_preference": SpeedPreference,
}


@dataclass(frozen=True)
class EngineConfig:
    """All heuristic constants of the recommendation engine.

    Score and threshold values are on the 0–100 scale unless noted.
    """

    # Candidate appeal: weighted blend of candidate-only metrics.
    appeal_popularity_weight: float = 0.3
    appeal_quality_weight: float = 0.4
    appeal_satisfaction_weight: float = 0.2
    appeal_performance_weight: float = 0.1
    default_candidate_metric: float = 50.0

    # Weights applied to the component scores when summing relevance.
    base_appeal_weight: float = 0.3
    compatibility_weight: float = 0.4

    # Compatibility components.
    category_match_bonus: int = 30
    provider_match_bonus: int = 20
    quality_threshold_bonus: int = 25
    speed_compatibility: dict[str, dict[str, int]] = field(
        default_factory=_default_speed_compatibility
    )
    speed_reason_min_score: int = 15
    perfect_match_compatibility: float = 80.0
    learned_interest_categories: int = 3

    # Expertise bonus.
    novice_category: str = "General"
    novice_max_features: int = 2
    novice_bonus: int = 15
    intermediate_max_features: int = 2
    intermediate_simple_bonus: int = 10
    intermediate_complex_bonus: int = 5
    expert_min_features: int = 3
    expert_complex_bonus: int = 15
    expert_simple_bonus: int = 8
    power_user_bonus: int = 10

    # Exploration bonus (adventurous users only).
    exploration_new_category_bonus: int = 20
    exploration_new_category_min_quality: float = 70.0
    exploration_new_provider_bonus: int = 15
    exploration_new_provider_min_quality: float = 75.0
    exploration_featured_bonus: int = 10
    exploration_featured_min_quality: float = 80.0
    exploration_category_min_bonus: float = 15.0

    # Trending bonus tiers.
    trending_hot_popularity: float = 85.0
    trending_hot_bonus: int = 25
    trending_popular_popularity: float = 75.0
    trending_popular_bonus: int = 15
    trending_featured_bonus: int = 10
    trending_category_min_bonus: float = 20.0

    # Quality upgrade.
    quality_upgrade_margin: float = 15.0
    quality_upgrade_bonus: int = 15

    # Contextual bonus.
    work_hours_start: int = 9
    work_hours_end: int = 17
    work_hours_fast_bonus: int = 5
    off_hours_start: int = 18
    off_hours_end: int = 8
    off_hours_professional_bonus: int = 5
    mobile_ultra_fast_bonus: int = 5
    continuity_bonus: int = 10

    # Confidence.
    confidence_base: float = 0.5
    confidence_interaction_tiers: tuple[tuple[int, float], ...] = (
        (50, 0.3),
        (20, 0.2),
        (5, 0.1),
    )
    confidence_per_reason: float = 0.05
    confidence_reason_cap: float = 0.2
    confidence_popularity_threshold: float = 80.0
    confidence_popularity_bonus: float = 0.1

    # Relevance floor; candidates at or below it are discarded.
    min_relevance_score: float = 30.0

    # Diversity re-ranking.
    diversity_always_keep: int = 5
    diversity_max_per_category: int = 4
    diversity_max_per_provider: int = 3
    diversity_override_score: float = 85.0

    # Feedback.
    interaction_base_scores: dict[str, int] = field(
        default_factory=_default_interaction_base_scores
    )
    engagement_normaliser: float = 5.0

    # Expertise derived from interaction volume and category diversity.
    expertise_intermediate_min_interactions: int = 10
    expertise_expert_min_interactions: int = 50
    expertise_power_user_min_interactions: int = 200
    expertise_expert_min_diversity: float = 0.3
    expertise_power_user_min_diversity: float = 0.6

    # Profile defaults for users seen for the first time.
    default_quality_threshold: float = 70.0
    default_exploration_score: float = 60.0
    default_expertise_level: ExpertiseLevel = ExpertiseLevel.INTERMEDIATE
    default_speed_preference: SpeedPreference = SpeedPreference.BALANCED
    default_session_duration: float = 600.0
    default_most_active_hour: int = 14

    def with_overrides(self, overrides: Mapping[str, Any]) -> EngineConfig:
        """Return a copy with the named fields replaced.

        Args:
            overrides: Mapping of field name to new value.

        Returns:
            A new :class:`EngineConfig`.

        Raises:
            ValueError: If *overrides* names a field that does not exist, or
                gives an enum field a value that is not one of its members.
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown engine config fields: {', '.join(unknown)}")
        values = dict(overrides)
        # JSON overrides carry enum values as plain strings.
        for name, enum_type in _ENUM_FIELDS.items():
            if name in values:
                values[name] = enum_type(values[name])
        return dataclasses.replace(self, **values)

    def default_profile(self, user_id: int) -> UserProfile:
        """Build the profile used for a user with no stored history."""
        return UserProfile(
            user_id=user_id,
            quality_threshold=self.default_quality_threshold,
            speed_preference=self.default_speed_preference,
            expertise_level=self.default_expertise_level,
            exploration_score=self.default_exploration_score,
            behavior=BehaviorMetrics(
                average_session_duration=self.default_session_duration,
                most_active_hour=self.default_most_active_hour,
            ),
        )


DEFAULT_CONFIG = EngineConfig()
