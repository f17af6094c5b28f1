"""Recommendation orchestrator: fetch, score, sort, diversify, shape."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable
from typing import TypeVar

import numpy as np

from personalization.diversity import DiversityOptimizer, diversity_score
from personalization.errors import CollaboratorUnavailableError
from personalization.models import (
    Candidate,
    Recommendation,
    RecommendationBatch,
    RecommendationContext,
    ScoredCandidate,
    UserProfile,
)
from personalization.repositories import (
    CandidateFilter,
    CandidateRepository,
    UserProfileStore,
)
from personalization.scoring import ScoringEngine
from personalization.tuning import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

_MAX_REASONS = 3


class RecommendationEngine:
    """Produces ranked, diversified, explained recommendations for one user.

    Pipeline for a single request:

    1. Load the user's profile and the eligible candidates concurrently.
       A missing profile is replaced by the default profile (not saved).
    2. Score every candidate with :class:`ScoringEngine` and drop those at or
       below the relevance floor.
    3. Sort by score, then quality rating, then newest first, then id.
    4. Re-rank with :class:`DiversityOptimizer`, truncate to
       ``context.max_results`` and keep the top 3 reasons per item.

    This is the only component that talks to the repositories, and it never
    writes the profile.

    Args:
        candidate_repository: Source of candidates.
        profile_store: Source of user profiles.
        scoring_engine: Scorer. Defaults to one built from *config*.
        diversity_optimizer: Re-ranker. Defaults to one built from *config*.
        config: Engine constants. Defaults to :data:`DEFAULT_CONFIG`.
        io_timeout_seconds: Upper bound for each repository call; ``None``
            disables the timeout.
    """

    def __init__(
        self,
        candidate_repository: CandidateRepository,
        profile_store: UserProfileStore,
        scoring_engine: ScoringEngine | None = None,
        diversity_optimizer: DiversityOptimizer | None = None,
        config: EngineConfig = DEFAULT_CONFIG,
        io_timeout_seconds: float | None = 2.0,
    ) -> None:
        self._candidates = candidate_repository
        self._profiles = profile_store
        self._config = config
        self._scoring = scoring_engine or ScoringEngine(config)
        self._diversity = diversity_optimizer or DiversityOptimizer(config)
        self._io_timeout = io_timeout_seconds

    async def recommend(
        self, user_id: int, context: RecommendationContext
    ) -> list[Recommendation]:
        """Return recommendations for *user_id*, best first.

        Raises:
            ValueError: If *user_id* is not positive.
            CollaboratorUnavailableError: If loading the profile or the
                candidates fails or times out. Safe to retry.
        """
        batch = await self.recommend_batch(user_id, context)
        return batch.recommendations

    async def recommend_batch(
        self, user_id: int, context: RecommendationContext
    ) -> RecommendationBatch:
        """Like :meth:`recommend` but also returns request metadata."""
        if user_id <= 0:
            raise ValueError(f"user_id must be positive, got {user_id!r}")

        start = time.monotonic()
        candidate_filter = CandidateFilter(exclude_ids=frozenset(context.exclude_ids))
        profile, candidates = await asyncio.gather(
            self._call("load_user_profile", self._profiles.load_user_profile(user_id)),
            self._call("load_candidates", self._candidates.load_candidates(candidate_filter)),
        )
        if profile is None:
            logger.debug("No stored profile for user %r; using defaults.", user_id)
            profile = self._config.default_profile(user_id)

        eligible = [c for c in candidates if c.candidate_id not in context.exclude_ids]
        ranked = self.rank(eligible, profile, context)
        recommendations = [_to_recommendation(s) for s in ranked]

        confidences = np.array([r.confidence for r in recommendations], dtype=np.float64)
        batch = RecommendationBatch(
            user_id=user_id,
            recommendations=recommendations,
            total_candidates=len(eligible),
            processing_time_ms=(time.monotonic() - start) * 1000,
            diversity_score=diversity_score(recommendations),
            average_confidence=float(confidences.mean()) if confidences.size else 0.0,
        )
        logger.debug(
            "Recommendations for user %r: %s",
            user_id,
            [r.candidate.candidate_id for r in recommendations],
        )
        return batch

    def rank(
        self,
        candidates: list[Candidate],
        profile: UserProfile,
        context: RecommendationContext,
    ) -> list[ScoredCandidate]:
        """Score, filter, sort and diversify *candidates*; pure and synchronous."""
        if not candidates or context.max_results <= 0:
            return []
        scored = self._scoring.score_all(candidates, profile, context)
        scored.sort(key=_sort_key)
        diversified = self._diversity.diversify(scored, profile, limit=context.max_results)
        return diversified[: context.max_results]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, operation: str, awaitable: Awaitable[_T]) -> _T:
        """Await a repository call, mapping failures to a retryable error."""
        try:
            if self._io_timeout is None:
                return await awaitable
            return await asyncio.wait_for(awaitable, timeout=self._io_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("%s timed out after %.1fs", operation, self._io_timeout)
            raise CollaboratorUnavailableError(operation, exc) from exc
        except Exception as exc:
            logger.exception("%s failed", operation)
            raise CollaboratorUnavailableError(operation, exc) from exc


def _sort_key(scored: ScoredCandidate) -> tuple:
    candidate = scored.candidate
    return (
        -scored.score,
        -candidate.quality_rating,
        -candidate.created_at.timestamp(),
        candidate.candidate_id,
    )


def _to_recommendation(scored: ScoredCandidate) -> Recommendation:
    return Recommendation(
        candidate=scored.candidate,
        score=scored.score,
        confidence=scored.confidence,
        reasons=scored.reasons[:_MAX_REASONS],
        category=scored.category,
    )
