"""Scoring engine: multi-factor relevance for one (user, candidate) pair."""

from __future__ import annotations

import logging
import math
from enum import Enum

from personalization.models import (
    Candidate,
    DeviceType,
    ExpertiseLevel,
    ExplorationWillingness,
    QualityTier,
    Reason,
    RecommendationCategory,
    RecommendationContext,
    ScoredCandidate,
    SpeedTier,
    UserProfile,
)
from personalization.tuning import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

_Bonus = tuple[float, Reason | None]


class ScoringEngine:
    """Scores candidates against a user profile using fixed heuristic weights.

    The relevance score is the sum of these factors, clamped to [0, 100] and
    rounded half-up:

    ====================  ===================================================
    Factor                Contribution
    ====================  ===================================================
    Base appeal           ``0.3 ×`` candidate appeal (popularity, quality,
                          satisfaction, performance)
    Preference match      ``0.4 ×`` compatibility (category, provider,
                          quality threshold, speed tier)
    Expertise             Fixed bonus when complexity suits the user
    Exploration           Adventurous users only: novel category/provider
    Trending              Tiered by popularity and featured flag
    Quality upgrade       Flat bonus well above the user's threshold
    Context               Time of day, device, current category
    ====================  ===================================================

    The engine is stateless and never raises for well-typed input; missing
    profile or candidate values fall back to :class:`EngineConfig` defaults.

    Args:
        config: Weights and thresholds. Defaults to :data:`DEFAULT_CONFIG`.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def score(
        self,
        candidate: Candidate,
        profile: UserProfile,
        context: RecommendationContext,
    ) -> ScoredCandidate:
        """Score *candidate* for *profile* in *context*.

        Returns:
            A :class:`ScoredCandidate` carrying the relevance score, the
            confidence, every reason collected and the category tag.
        """
        cfg = self._config
        reasons: list[Reason] = []

        base = self.appeal(candidate) * cfg.base_appeal_weight

        compatibility, compat_reasons = self.compatibility(candidate, profile)
        reasons.extend(compat_reasons)
        if compatibility > cfg.perfect_match_compatibility:
            reasons.append(Reason("perfect_match", "Exceptional match for your preferences"))

        expertise, expertise_reason = self._expertise_bonus(candidate, profile)
        _collect(reasons, expertise_reason)

        exploration = 0.0
        if profile.exploration_willingness is ExplorationWillingness.ADVENTUROUS:
            exploration, exploration_reason = self._exploration_bonus(candidate, profile)
            _collect(reasons, exploration_reason)

        trending, trending_reason = self._trending_bonus(candidate)
        _collect(reasons, trending_reason)

        upgrade = 0.0
        is_upgrade = candidate.quality_rating > self._threshold(profile) + cfg.quality_upgrade_margin
        if is_upgrade:
            upgrade = float(cfg.quality_upgrade_bonus)
            reasons.append(
                Reason("quality_upgrade", "Significant quality improvement opportunity")
            )

        contextual = self._contextual_bonus(candidate, context)

        components = {
            "base_appeal": base,
            "compatibility": compatibility * cfg.compatibility_weight,
            "expertise": expertise,
            "exploration": exploration,
            "trending": trending,
            "quality_upgrade": upgrade,
            "context": contextual,
        }
        total = _round_half_up(_clamp(sum(components.values()), 0.0, 100.0))

        if is_upgrade:
            category = RecommendationCategory.QUALITY_UPGRADE
        elif compatibility > cfg.perfect_match_compatibility:
            category = RecommendationCategory.PERFECT_MATCH
        elif trending > cfg.trending_category_min_bonus:
            category = RecommendationCategory.TRENDING
        else:
            # Both a strong exploration bonus and the fallback land here.
            category = RecommendationCategory.EXPLORATION

        return ScoredCandidate(
            candidate=candidate,
            score=total,
            confidence=self.confidence(candidate, profile, len(reasons)),
            reasons=tuple(reasons),
            category=category,
            components=components,
        )

    def score_all(
        self,
        candidates: list[Candidate],
        profile: UserProfile,
        context: RecommendationContext,
    ) -> list[ScoredCandidate]:
        """Score every candidate and drop those at or below the relevance floor."""
        scored = [self.score(c, profile, context) for c in candidates]
        kept = [s for s in scored if self.is_relevant(s)]
        logger.debug(
            "Scored %d candidates for user %r; %d above threshold.",
            len(scored),
            profile.user_id,
            len(kept),
        )
        return kept

    def is_relevant(self, scored: ScoredCandidate) -> bool:
        return scored.score > self._config.min_relevance_score

    def appeal(self, candidate: Candidate) -> int:
        """Candidate-only appeal in [0, 100], independent of any user."""
        cfg = self._config
        satisfaction = _metric(candidate.satisfaction, cfg.default_candidate_metric)
        performance = _metric(candidate.performance_index, cfg.default_candidate_metric)
        raw = (
            _clamp(candidate.popularity, 0.0, 100.0) * cfg.appeal_popularity_weight
            + _clamp(candidate.quality_rating, 0.0, 100.0) * cfg.appeal_quality_weight
            + satisfaction * cfg.appeal_satisfaction_weight
            + performance * cfg.appeal_performance_weight
        )
        return _round_half_up(_clamp(raw, 0.0, 100.0))

    def compatibility(
        self, candidate: Candidate, profile: UserProfile
    ) -> tuple[float, list[Reason]]:
        """Preference-alignment score in [0, 100] and the reasons behind it."""
        cfg = self._config
        score = 0.0
        reasons: list[Reason] = []

        if candidate.category in profile.interest_categories(cfg.learned_interest_categories):
            score += cfg.category_match_bonus
            reasons.append(
                Reason("category_match", f"Matches your {candidate.category} preference")
            )

        if candidate.provider in (profile.preferred_providers or ()):
            score += cfg.provider_match_bonus
            reasons.append(
                Reason("provider_match", f"From your preferred provider {candidate.provider}")
            )

        if candidate.quality_rating >= self._threshold(profile):
            score += cfg.quality_threshold_bonus
            reasons.append(
                Reason(
                    "quality_match",
                    f"Meets your quality standards ({candidate.quality_rating:.0f}/100)",
                )
            )

        preference = _value(profile.speed_preference) or _value(cfg.default_speed_preference)
        speed_score = cfg.speed_compatibility.get(preference, {}).get(
            _value(candidate.speed_tier), 0
        )
        score += speed_score
        if speed_score > cfg.speed_reason_min_score:
            reasons.append(Reason("speed_match", f"Optimized for {preference} generation"))

        return min(100.0, score), reasons

    def confidence(self, candidate: Candidate, profile: UserProfile, n_reasons: int) -> float:
        """Confidence in [0, 1] from history depth, reason count and popularity."""
        cfg = self._config
        confidence = cfg.confidence_base
        interactions = profile.behavior.total_interactions if profile.behavior else 0
        for min_interactions, bonus in cfg.confidence_interaction_tiers:
            if interactions > min_interactions:
                confidence += bonus
                break
        confidence += min(cfg.confidence_reason_cap, n_reasons * cfg.confidence_per_reason)
        if candidate.popularity > cfg.confidence_popularity_threshold:
            confidence += cfg.confidence_popularity_bonus
        return round(_clamp(confidence, 0.0, 1.0), 4)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _threshold(self, profile: UserProfile) -> float:
        if profile.quality_threshold is None:
            return self._config.default_quality_threshold
        return _clamp(profile.quality_threshold, 0.0, 100.0)

    def _expertise_bonus(self, candidate: Candidate, profile: UserProfile) -> _Bonus:
        cfg = self._config
        n_features = len(candidate.features)
        level = profile.expertise_level or cfg.default_expertise_level

        if level == ExpertiseLevel.NOVICE:
            if (
                candidate.category == cfg.novice_category
                and n_features <= cfg.novice_max_features
            ):
                return cfg.novice_bonus, Reason("expertise", "Perfect for getting started")
            return 0.0, None

        if level == ExpertiseLevel.INTERMEDIATE:
            bonus = (
                cfg.intermediate_simple_bonus
                if n_features <= cfg.intermediate_max_features
                else cfg.intermediate_complex_bonus
            )
            return bonus, Reason("expertise", "Matches your growing expertise level")

        if level == ExpertiseLevel.EXPERT:
            if n_features >= cfg.expert_min_features:
                return cfg.expert_complex_bonus, Reason(
                    "expertise", "Advanced features for expert use"
                )
            return cfg.expert_simple_bonus, None

        if level == ExpertiseLevel.POWER_USER and n_features >= cfg.expert_min_features:
            return cfg.power_user_bonus, Reason("expertise", "Suitable for power user workflows")

        return 0.0, None

    def _exploration_bonus(self, candidate: Candidate, profile: UserProfile) -> _Bonus:
        cfg = self._config
        quality = candidate.quality_rating
        new_category = candidate.category not in (profile.category_affinities or {})
        new_provider = (
            candidate.provider not in (profile.provider_affinities or {})
            and candidate.provider not in (profile.preferred_providers or ())
        )

        if new_category and quality >= cfg.exploration_new_category_min_quality:
            return cfg.exploration_new_category_bonus, Reason(
                "exploration", f"Discover {candidate.category} style models"
            )
        if new_provider and quality > cfg.exploration_new_provider_min_quality:
            return cfg.exploration_new_provider_bonus, Reason(
                "exploration", f"Explore {candidate.provider} models"
            )
        if candidate.featured and quality > cfg.exploration_featured_min_quality:
            return cfg.exploration_featured_bonus, Reason(
                "exploration", "Featured high-quality model"
            )
        return 0.0, None

    def _trending_bonus(self, candidate: Candidate) -> _Bonus:
        cfg = self._config
        if candidate.popularity > cfg.trending_hot_popularity and candidate.featured:
            return cfg.trending_hot_bonus, Reason("trending", "Trending and highly popular")
        if candidate.popularity > cfg.trending_popular_popularity:
            return cfg.trending_popular_bonus, Reason("trending", "Popular among creators")
        if candidate.featured:
            return cfg.trending_featured_bonus, Reason("trending", "Featured model")
        return 0.0, None

    def _contextual_bonus(self, candidate: Candidate, context: RecommendationContext) -> float:
        cfg = self._config
        bonus = 0.0

        if context.current_time is not None:
            hour = context.current_time.hour
            if (
                cfg.work_hours_start <= hour <= cfg.work_hours_end
                and candidate.speed_tier == SpeedTier.FAST
            ):
                bonus += cfg.work_hours_fast_bonus
            elif (
                hour >= cfg.off_hours_start or hour <= cfg.off_hours_end
            ) and candidate.quality_tier is QualityTier.PROFESSIONAL:
                bonus += cfg.off_hours_professional_bonus

        if (
            context.device_type == DeviceType.MOBILE
            and candidate.speed_tier == SpeedTier.ULTRA_FAST
        ):
            bonus += cfg.mobile_ultra_fast_bonus

        if context.current_category and candidate.category == context.current_category:
            bonus += cfg.continuity_bonus

        return bonus


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def _collect(reasons: list[Reason], reason: Reason | None) -> None:
    if reason is not None:
        reasons.append(reason)


def _value(member: Enum | str | None) -> str | None:
    return member.value if isinstance(member, Enum) else member


def _metric(value: float | None, default: float) -> float:
    return _clamp(default if value is None else value, 0.0, 100.0)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
