"""Core domain dataclasses shared across all personalization modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SpeedTier(str, Enum):
    """How quickly a candidate model produces an image."""

    ULTRA_FAST = "ultra_fast"
    FAST = "fast"
    STANDARD = "standard"
    DETAILED = "detailed"


class QualityTier(str, Enum):
    STANDARD = "standard"
    PREMIUM = "premium"
    PROFESSIONAL = "professional"


class SpeedPreference(str, Enum):
    FAST = "fast"
    BALANCED = "balanced"
    QUALITY = "quality"


class ExpertiseLevel(str, Enum):
    NOVICE = "novice"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"
    POWER_USER = "power_user"


class ExplorationWillingness(str, Enum):
    """Bucketed form of :attr:`UserProfile.exploration_score`."""

    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    ADVENTUROUS = "adventurous"


class DeviceType(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    DESKTOP = "desktop"


class InteractionType(str, Enum):
    """Kinds of user interaction the feedback recorder learns from."""

    VIEW = "view"
    LIKE = "like"
    BOOKMARK = "bookmark"
    GENERATE = "generate"
    SHARE = "share"
    DOWNLOAD = "download"


class RecommendationCategory(str, Enum):
    PERFECT_MATCH = "perfect_match"
    TRENDING = "trending"
    EXPLORATION = "exploration"
    QUALITY_UPGRADE = "quality_upgrade"


@dataclass(frozen=True)
class Candidate:
    """A single recommendable model in the candidate pool.

    Attributes:
        candidate_id: Stable positive identifier.
        name: Display name.
        category: Style category label (e.g. ``"Artistic"``, ``"Speed"``).
        provider: Provider label (e.g. ``"Black Forest Labs"``).
        quality_rating: Quality in [0, 100].
        popularity: Popularity in [0, 100].
        featured: Whether editors have featured the model.
        features: Special feature / capability tags.
        speed_tier: Generation speed tier.
        created_at: When the candidate was added (UTC).
        satisfaction: User satisfaction in [0, 100]; ``None`` when unknown.
        performance_index: Performance index in [0, 100]; ``None`` when unknown.
    """

    candidate_id: int
    name: str
    category: str
    provider: str
    quality_rating: float
    popularity: float
    featured: bool = False
    features: tuple[str, ...] = ()
    speed_tier: SpeedTier = SpeedTier.STANDARD
    created_at: datetime = datetime(1970, 1, 1, tzinfo=timezone.utc)
    satisfaction: float | None = None
    performance_index: float | None = None

    @property
    def quality_tier(self) -> QualityTier:
        if self.quality_rating > 80:
            return QualityTier.PROFESSIONAL
        if self.quality_rating > 60:
            return QualityTier.PREMIUM
        return QualityTier.STANDARD


@dataclass
class BehaviorMetrics:
    """Aggregate behaviour counters maintained by the feedback recorder.

    Attributes:
        total_interactions: Number of interactions ever recorded.
        average_session_duration: Rolling mean session length in seconds.
        session_samples: How many events contributed a session duration.
            While zero, :attr:`average_session_duration` is the default prior.
        most_active_hour: Hour of day (0–23) with the most interactions.
        hourly_activity: 24 interaction counters, one per hour of day.
    """

    total_interactions: int = 0
    average_session_duration: float = 600.0
    session_samples: int = 0
    most_active_hour: int = 14
    hourly_activity: list[int] = field(default_factory=lambda: [0] * 24)


@dataclass
class UserProfile:
    """Durable behavioural model for one user.

    Only :class:`~personalization.feedback.FeedbackRecorder` writes profiles;
    scoring and orchestration treat them as read-only snapshots.

    Attributes:
        user_id: Positive user identifier.
        preferred_categories: Explicitly preferred categories, best first.
        preferred_providers: Explicitly preferred providers, best first.
        quality_threshold: Minimum quality the user is happy with, [0, 100].
        speed_preference: Speed versus quality trade-off.
        expertise_level: Self-reported or assigned expertise.
        exploration_score: Willingness to try new things, [0, 100].
        category_affinities: Learned interest per category, [0, 100].
        provider_affinities: Learned interest per provider, [0, 100].
        behavior: Aggregate behaviour metrics.
    """

    user_id: int
    preferred_categories: list[str] = field(default_factory=list)
    preferred_providers: list[str] = field(default_factory=list)
    quality_threshold: float = 70.0
    speed_preference: SpeedPreference = SpeedPreference.BALANCED
    expertise_level: ExpertiseLevel = ExpertiseLevel.INTERMEDIATE
    exploration_score: float = 60.0
    category_affinities: dict[str, int] = field(default_factory=dict)
    provider_affinities: dict[str, int] = field(default_factory=dict)
    behavior: BehaviorMetrics = field(default_factory=BehaviorMetrics)

    @property
    def exploration_willingness(self) -> ExplorationWillingness:
        if self.exploration_score is None:
            return ExplorationWillingness.MODERATE
        if self.exploration_score > 70:
            return ExplorationWillingness.ADVENTUROUS
        if self.exploration_score > 40:
            return ExplorationWillingness.MODERATE
        return ExplorationWillingness.CONSERVATIVE

    def top_categories(self, n: int = 3) -> list[str]:
        """Return up to *n* categories with the highest affinity, best first.

        Ties are broken alphabetically so the result is deterministic.
        """
        affinities = self.category_affinities or {}
        ranked = sorted(affinities.items(), key=lambda kv: (-kv[1], kv[0]))
        return [category for category, _ in ranked[:n]]

    def interest_categories(self, n_learned: int = 3) -> list[str]:
        """Explicit preferred categories followed by the top learned ones."""
        interests = list(self.preferred_categories or [])
        for category in self.top_categories(n_learned):
            if category not in interests:
                interests.append(category)
        return interests


@dataclass(frozen=True)
class RecommendationContext:
    """Ephemeral per-request context. Built fresh for every call.

    Attributes:
        current_time: Request time; the hour drives time-of-day bonuses.
            ``None`` disables time-of-day scoring.
        session_duration: Seconds spent in the current session, if known.
        device_type: Requesting device class, if known.
        current_category: Category the user is browsing, if any.
        exclude_ids: Candidate ids that must not be returned.
        max_results: Requested result count.
    """

    current_time: datetime | None = None
    session_duration: float | None = None
    device_type: DeviceType | None = None
    current_category: str | None = None
    exclude_ids: frozenset[int] = frozenset()
    max_results: int = 20


@dataclass(frozen=True)
class Reason:
    """A reason code with its human-readable description."""

    code: str
    description: str


@dataclass(frozen=True)
class ScoredCandidate:
    """Output of the scoring engine for one (user, candidate) pair.

    Attributes:
        candidate: The scored candidate.
        score: Relevance in [0, 100].
        confidence: Confidence in [0, 1].
        reasons: Every reason collected while scoring, in scoring order.
        category: Recommendation category tag.
        components: Weighted contribution of each scoring factor.
    """

    candidate: Candidate
    score: int
    confidence: float
    reasons: tuple[Reason, ...]
    category: RecommendationCategory
    components: dict[str, float] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Recommendation:
    """A candidate as returned to the serving boundary (top 3 reasons only)."""

    candidate: Candidate
    score: int
    confidence: float
    reasons: tuple[Reason, ...]
    category: RecommendationCategory


@dataclass(frozen=True)
class RecommendationBatch:
    """Recommendations for one request plus summary metadata."""

    user_id: int
    recommendations: list[Recommendation]
    total_candidates: int
    processing_time_ms: float
    diversity_score: float
    average_confidence: float


@dataclass(frozen=True)
class InteractionEvent:
    """A single observed user interaction. Immutable once recorded.

    Attributes:
        user_id: Positive user identifier.
        candidate_id: Positive candidate identifier.
        interaction_type: What the user did.
        engagement_level: Strength of the interaction, [1, 10].
        timestamp: When it happened (UTC).
        session_duration: Session length in seconds, if reported.
        device_type: Device class, if reported.
        referral_source: Where the user came from (``"search"``,
            ``"recommendation"``, ...), if reported.
    """

    user_id: int
    candidate_id: int
    interaction_type: InteractionType
    engagement_level: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_duration: float | None = None
    device_type: DeviceType | None = None
    referral_source: str | None = None


@dataclass(frozen=True)
class InteractionAck:
    """Acknowledgement that an interaction was accepted for processing."""

    user_id: int
    candidate_id: int
    accepted: bool = True
