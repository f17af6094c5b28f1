"""Diversity re-ranking of a sorted recommendation list."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Protocol

from personalization.models import Candidate, ExplorationWillingness, UserProfile
from personalization.tuning import DEFAULT_CONFIG, EngineConfig

logger = logging.getLogger(__name__)


class _Ranked(Protocol):
    candidate: Candidate
    score: int


class DiversityOptimizer:
    """Limits category/provider monoculture while keeping the best items on top.

    Two passes over a list already sorted best-first:

    1. **Diversity pass**: the top ``diversity_always_keep`` (5) items are
       always admitted.  Each later item is admitted if its category has been
       admitted fewer than 4 times, *or* its provider fewer than 3 times,
       *or* its score exceeds 85.
    2. **Backfill pass**: if fewer than *limit* items were admitted, the
       best remaining items fill the gap in their original order.

    Users whose exploration willingness is ``conservative`` get the input
    back unchanged.  The output never exceeds *limit* items otherwise, and
    the same input always yields the same output.

    Args:
        config: Diversity caps. Defaults to :data:`DEFAULT_CONFIG`.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self._config = config

    def diversify(
        self,
        ranked: list[_Ranked],
        profile: UserProfile,
        limit: int | None = None,
    ) -> list[_Ranked]:
        """Re-rank *ranked* (sorted best-first) for *profile*.

        Args:
            ranked: Scored candidates, best first.
            profile: The requesting user's profile.
            limit: Maximum number of items to return. ``None`` means
                ``len(ranked)``.

        Returns:
            A new list; *ranked* is not modified.
        """
        if profile.exploration_willingness is ExplorationWillingness.CONSERVATIVE:
            return list(ranked)

        cfg = self._config
        limit = len(ranked) if limit is None else max(0, limit)

        admitted: list[_Ranked] = []
        admitted_ids: set[int] = set()
        category_counts: Counter[str] = Counter()
        provider_counts: Counter[str] = Counter()

        for item in ranked:
            if len(admitted) >= limit:
                break
            candidate = item.candidate
            should_admit = (
                len(admitted) < cfg.diversity_always_keep
                or category_counts[candidate.category] < cfg.diversity_max_per_category
                or provider_counts[candidate.provider] < cfg.diversity_max_per_provider
                or item.score > cfg.diversity_override_score
            )
            if should_admit:
                admitted.append(item)
                admitted_ids.add(candidate.candidate_id)
                category_counts[candidate.category] += 1
                provider_counts[candidate.provider] += 1

        n_diverse = len(admitted)
        for item in ranked:
            if len(admitted) >= limit:
                break
            if item.candidate.candidate_id not in admitted_ids:
                admitted.append(item)
                admitted_ids.add(item.candidate.candidate_id)

        logger.debug(
            "Diversity pass admitted %d of %d; backfilled %d.",
            n_diverse,
            len(ranked),
            len(admitted) - n_diverse,
        )
        return admitted


def diversity_score(items: list[_Ranked]) -> float:
    """Mean of the distinct-category and distinct-provider ratios, in [0, 1].

    Lists with fewer than two items are perfectly diverse by definition.
    """
    if len(items) < 2:
        return 1.0
    categories = {i.candidate.category for i in items}
    providers = {i.candidate.provider for i in items}
    return (len(categories) / len(items) + len(providers) / len(items)) / 2
