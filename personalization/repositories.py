"""Collaborator interfaces consumed by the engine and the feedback recorder.

The persistence layer lives outside this package; anything that implements
these protocols can be plugged in.  In-memory implementations are provided
by :mod:`personalization.catalogue` and :mod:`personalization.profile_store`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from personalization.models import Candidate, InteractionEvent, UserProfile


@dataclass(frozen=True)
class CandidateFilter:
    """Selection criteria for :meth:`CandidateRepository.load_candidates`.

    Attributes:
        exclude_ids: Candidate ids to leave out.
        include_ids: If set, only these candidate ids are returned.
        limit: Maximum number of candidates to return; ``None`` for all.
    """

    exclude_ids: frozenset[int] = frozenset()
    include_ids: frozenset[int] | None = None
    limit: int | None = None

    def accepts(self, candidate: Candidate) -> bool:
        if candidate.candidate_id in self.exclude_ids:
            return False
        if self.include_ids is not None and candidate.candidate_id not in self.include_ids:
            return False
        return True


class CandidateRepository(Protocol):
    async def load_candidates(self, candidate_filter: CandidateFilter) -> list[Candidate]:
        ...


class UserProfileStore(Protocol):
    async def load_user_profile(self, user_id: int) -> UserProfile | None:
        ...

    async def save_user_profile(self, profile: UserProfile) -> None:
        ...

    async def append_interaction_event(self, event: InteractionEvent) -> None:
        ...
