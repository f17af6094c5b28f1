"""Feedback recorder: learns category/provider affinities from interactions."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import AsyncIterator, Mapping
from enum import Enum

import numpy as np

from personalization.errors import InteractionValidationError
from personalization.models import (
    BehaviorMetrics,
    DeviceType,
    ExpertiseLevel,
    InteractionAck,
    InteractionEvent,
    InteractionType,
    UserProfile,
)
from personalization.repositories import (
    CandidateFilter,
    CandidateRepository,
    UserProfileStore,
)
from personalization.tuning import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

_AFFINITY_MIN = 0
_AFFINITY_MAX = 100

# Engagement estimate when the caller does not report one.
_ENGAGEMENT_ESTIMATES = {
    InteractionType.VIEW: 3,
    InteractionType.LIKE: 6,
    InteractionType.BOOKMARK: 7,
    InteractionType.GENERATE: 9,
    InteractionType.SHARE: 8,
    InteractionType.DOWNLOAD: 8,
}


class FeedbackRecorder:
    """Applies interaction events to user profiles off the request path.

    :meth:`submit` is the serving-boundary entry point: it validates the
    event synchronously (raising :class:`InteractionValidationError` on bad
    input, so nothing is ever partially applied), schedules :meth:`record`
    on the running event loop and returns an ack straight away.

    :meth:`record` never raises.  Store or repository failures are logged
    and dropped, because the user action that produced the event must
    succeed regardless.

    Affinity updates are additive deltas clamped to [0, 100]; updates for
    the same user are serialised within this process. After each update the
    user's expertise level is re-derived from their history.

    Args:
        profile_store: Where profiles are loaded from and saved to.
        candidate_repository: Used to look up the event's category/provider.
        config: Engine constants. Defaults to :data:`DEFAULT_CONFIG`.
    """

    def __init__(
        self,
        profile_store: UserProfileStore,
        candidate_repository: CandidateRepository,
        config: EngineConfig = DEFAULT_CONFIG,
    ) -> None:
        self._store = profile_store
        self._candidates = candidate_repository
        self._config = config
        self._user_locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}
        self._pending: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def submit(self, event: InteractionEvent) -> InteractionAck:
        """Validate *event* and schedule it for background processing.

        Must be called from within a running event loop.

        Raises:
            InteractionValidationError: If the event is malformed.
        """
        validate_event(event, self._config)
        task = asyncio.get_running_loop().create_task(
            self.record(event), name=f"feedback-{event.user_id}-{event.candidate_id}"
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return InteractionAck(user_id=event.user_id, candidate_id=event.candidate_id)

    async def record(self, event: InteractionEvent) -> None:
        """Apply *event* to the user's profile. Never raises."""
        try:
            validate_event(event, self._config)
            await self._append_to_log(event)
            await self._apply(event)
        except InteractionValidationError as exc:
            logger.warning("Dropping invalid interaction event: %s", exc)
        except Exception:
            logger.exception(
                "Error recording %s interaction for user=%r candidate=%r",
                _value(event.interaction_type),
                event.user_id,
                event.candidate_id,
            )

    async def drain(self) -> None:
        """Wait until every scheduled event has been processed."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextlib.asynccontextmanager
    async def _serialised(self, user_id: int) -> AsyncIterator[None]:
        """Hold the per-user lock; the entry is dropped once nobody needs it."""
        lock = self._user_locks.setdefault(user_id, asyncio.Lock())
        self._lock_users[user_id] = self._lock_users.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[user_id] -= 1
            if not self._lock_users[user_id]:
                del self._lock_users[user_id]
                del self._user_locks[user_id]

    async def _append_to_log(self, event: InteractionEvent) -> None:
        try:
            await self._store.append_interaction_event(event)
        except Exception:
            logger.exception("Failed to append interaction event to the audit log.")

    async def _apply(self, event: InteractionEvent) -> None:
        boost = affinity_boost(event.interaction_type, event.engagement_level, self._config)
        async with self._serialised(event.user_id):
            profile = await self._store.load_user_profile(event.user_id)
            if profile is None:
                profile = self._config.default_profile(event.user_id)

            matches = await self._candidates.load_candidates(
                CandidateFilter(include_ids=frozenset({event.candidate_id}))
            )
            if matches:
                candidate = matches[0]
                profile.category_affinities = profile.category_affinities or {}
                profile.provider_affinities = profile.provider_affinities or {}
                _add_affinity(profile.category_affinities, candidate.category, boost)
                _add_affinity(profile.provider_affinities, candidate.provider, boost)
            else:
                logger.warning(
                    "Unknown candidate %r in interaction from user %r; affinities unchanged.",
                    event.candidate_id,
                    event.user_id,
                )

            update_behavior(profile.behavior, event)
            profile.expertise_level = derive_expertise_level(profile, self._config)
            await self._store.save_user_profile(profile)

        logger.debug(
            "Recorded %s for user=%r candidate=%r (boost=%d).",
            _value(event.interaction_type),
            event.user_id,
            event.candidate_id,
            boost,
        )


# ---------------------------------------------------------------------------
# Event maths
# ---------------------------------------------------------------------------


def validate_event(event: InteractionEvent, config: EngineConfig = DEFAULT_CONFIG) -> None:
    """Check every field of *event*.

    Raises:
        InteractionValidationError: Listing every failed check.
    """
    errors: list[str] = []
    if not _is_int(event.user_id) or event.user_id <= 0:
        errors.append("Valid user ID is required")
    if not _is_int(event.candidate_id) or event.candidate_id <= 0:
        errors.append("Valid candidate ID is required")
    if _value(event.interaction_type) not in config.interaction_base_scores:
        errors.append("Valid interaction type is required")
    if not _is_int(event.engagement_level) or not 1 <= event.engagement_level <= 10:
        errors.append("Engagement level must be between 1 and 10")
    if event.session_duration is not None and event.session_duration < 0:
        errors.append("Session duration cannot be negative")
    if errors:
        raise InteractionValidationError(errors)


def affinity_boost(
    interaction_type: InteractionType | str,
    engagement_level: int,
    config: EngineConfig = DEFAULT_CONFIG,
) -> int:
    """Affinity delta for one interaction: ``round(base × engagement / 5)``.

    Base scores: view 1, like 3, bookmark 4, generate 5, share 4, download 4.
    """
    base = config.interaction_base_scores.get(_value(interaction_type), 1)
    return int(math.floor(base * engagement_level / config.engagement_normaliser + 0.5))


def estimate_engagement_level(
    interaction_type: InteractionType,
    session_duration: float | None = None,
    device_type: DeviceType | None = None,
) -> int:
    """Estimate an engagement level in [1, 10] for callers that omit one."""
    level = _ENGAGEMENT_ESTIMATES.get(InteractionType(interaction_type), 3)
    if session_duration:
        if session_duration > 300:
            level += 2
        elif session_duration > 60:
            level += 1
    if device_type == DeviceType.MOBILE and interaction_type == InteractionType.GENERATE:
        level += 1
    return min(10, level)


def update_behavior(behavior: BehaviorMetrics, event: InteractionEvent) -> None:
    """Fold *event* into the aggregate metrics in place."""
    behavior.total_interactions += 1

    if event.session_duration is not None:
        samples = behavior.session_samples + 1
        if behavior.session_samples == 0:
            behavior.average_session_duration = float(event.session_duration)
        else:
            behavior.average_session_duration += (
                event.session_duration - behavior.average_session_duration
            ) / samples
        behavior.session_samples = samples

    if len(behavior.hourly_activity) != 24:
        behavior.hourly_activity = [0] * 24
    behavior.hourly_activity[event.timestamp.hour] += 1
    behavior.most_active_hour = int(np.argmax(np.asarray(behavior.hourly_activity)))


def diversity_index(affinities: Mapping[str, float] | None) -> float:
    """Gini-Simpson index of *affinities*: 0 for one category, towards 1 for many.

    Returns 0.0 when there is no positive affinity at all.
    """
    weights = np.asarray(list((affinities or {}).values()), dtype=float)
    total = weights.sum()
    if total <= 0:
        return 0.0
    shares = weights / total
    return float(1.0 - np.sum(shares**2))


def derive_expertise_level(
    profile: UserProfile, config: EngineConfig = DEFAULT_CONFIG
) -> ExpertiseLevel:
    """Expertise implied by interaction volume and category diversity.

    Fewer than 10 interactions is novice.  Reaching expert needs 50
    interactions and a diversity of 0.3; power user needs 200 and 0.6.
    """
    interactions = profile.behavior.total_interactions if profile.behavior else 0
    diversity = diversity_index(profile.category_affinities)
    if interactions < config.expertise_intermediate_min_interactions:
        return ExpertiseLevel.NOVICE
    if (
        interactions < config.expertise_expert_min_interactions
        or diversity < config.expertise_expert_min_diversity
    ):
        return ExpertiseLevel.INTERMEDIATE
    if (
        interactions < config.expertise_power_user_min_interactions
        or diversity < config.expertise_power_user_min_diversity
    ):
        return ExpertiseLevel.EXPERT
    return ExpertiseLevel.POWER_USER


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _add_affinity(affinities: dict[str, int], key: str, boost: int) -> None:
    current = affinities.get(key, 0)
    affinities[key] = max(_AFFINITY_MIN, min(_AFFINITY_MAX, current + boost))


def _value(member: Enum | str) -> str:
    return member.value if isinstance(member, Enum) else member
