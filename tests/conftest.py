"""Shared pytest fixtures for all personalization tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from personalization.models import (
    Candidate,
    ExpertiseLevel,
    RecommendationContext,
    SpeedPreference,
    SpeedTier,
    UserProfile,
)
from personalization.tuning import EngineConfig


# ---------------------------------------------------------------------------
# Candidate fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def artistic_candidate() -> Candidate:
    """High-quality, modestly popular artistic model."""
    return Candidate(
        candidate_id=1,
        name="Artistic Vision",
        category="Artistic",
        provider="RunDiffusion",
        quality_rating=90,
        popularity=40,
        features=("portrait",),
        speed_tier=SpeedTier.STANDARD,
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        satisfaction=80,
        performance_index=70,
    )


@pytest.fixture
def speed_candidate() -> Candidate:
    """Featured, very popular ultra-fast model."""
    return Candidate(
        candidate_id=2,
        name="Turbo Schnell",
        category="Speed",
        provider="Black Forest Labs",
        quality_rating=95,
        popularity=95,
        featured=True,
        features=("fast", "schnell", "turbo"),
        speed_tier=SpeedTier.ULTRA_FAST,
        created_at=datetime(2024, 5, 1, tzinfo=timezone.utc),
        satisfaction=60,
        performance_index=90,
    )


@pytest.fixture
def low_quality_candidate() -> Candidate:
    """A candidate that should never clear the relevance floor."""
    return Candidate(
        candidate_id=3,
        name="Rough Draft",
        category="Sketch",
        provider="Nobody",
        quality_rating=10,
        popularity=5,
        satisfaction=0,
        performance_index=0,
    )


@pytest.fixture
def sample_candidates() -> list[Candidate]:
    """12-candidate pool spanning several categories and providers."""
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    rows = [
        (10, "Photorealistic", "RunDiffusion", 88, 80, False, SpeedTier.STANDARD),
        (11, "Photorealistic", "RunDiffusion", 84, 72, False, SpeedTier.DETAILED),
        (12, "Photorealistic", "Stability AI", 79, 65, False, SpeedTier.STANDARD),
        (13, "Artistic", "Lykon", 76, 70, False, SpeedTier.STANDARD),
        (14, "Artistic", "Playground", 84, 62, True, SpeedTier.FAST),
        (15, "General", "Stability AI", 72, 75, False, SpeedTier.STANDARD),
        (16, "Speed", "Black Forest Labs", 82, 94, True, SpeedTier.ULTRA_FAST),
        (17, "Speed", "ByteDance", 68, 66, False, SpeedTier.FAST),
        (18, "Latest", "Stability AI", 86, 58, False, SpeedTier.DETAILED),
        (19, "Photorealistic", "Black Forest Labs", 95, 88, True, SpeedTier.STANDARD),
        (20, "Anime", "Civitai", 74, 55, False, SpeedTier.FAST),
        (21, "Anime", "Civitai", 70, 50, False, SpeedTier.STANDARD),
    ]
    return [
        Candidate(
            candidate_id=cid,
            name=f"Model {cid}",
            category=category,
            provider=provider,
            quality_rating=quality,
            popularity=popularity,
            featured=featured,
            speed_tier=tier,
            created_at=created,
            satisfaction=70,
            performance_index=60,
        )
        for cid, category, provider, quality, popularity, featured, tier in rows
    ]


# ---------------------------------------------------------------------------
# User profile fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def conservative_artist() -> UserProfile:
    """Prefers Artistic models and values consistency over variety."""
    return UserProfile(
        user_id=1,
        preferred_categories=["Artistic"],
        quality_threshold=70,
        speed_preference=SpeedPreference.BALANCED,
        expertise_level=ExpertiseLevel.INTERMEDIATE,
        exploration_score=30,
    )


@pytest.fixture
def adventurous_profile() -> UserProfile:
    """An expert who likes trying new things; has some Artistic history."""
    profile = UserProfile(
        user_id=2,
        quality_threshold=70,
        expertise_level=ExpertiseLevel.EXPERT,
        exploration_score=85,
    )
    profile.category_affinities = {"Artistic": 40}
    profile.provider_affinities = {"RunDiffusion": 30}
    return profile


@pytest.fixture
def new_user_profile() -> UserProfile:
    """A brand-new user with the documented default profile."""
    return EngineConfig().default_profile(99)


@pytest.fixture
def neutral_context() -> RecommendationContext:
    """No time, device or browsing signal."""
    return RecommendationContext()
