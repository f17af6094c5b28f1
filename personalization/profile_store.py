"""In-memory user profile store with a bounded interaction log."""

from __future__ import annotations

import copy
import json
import logging
import threading
import time
from collections import deque
from enum import Enum
from pathlib import Path
from typing import Any

from personalization.models import (
    BehaviorMetrics,
    ExpertiseLevel,
    InteractionEvent,
    SpeedPreference,
    UserProfile,
)

logger = logging.getLogger(__name__)


class InMemoryProfileStore:
    """Thread-safe :class:`~personalization.repositories.UserProfileStore`.

    Profiles are stored and returned as deep copies, so a caller holding a
    loaded profile works on a private snapshot until it calls
    :meth:`save_user_profile`.

    When *snapshot_path* is set, :meth:`load_snapshot` restores profiles
    written by :meth:`persist_snapshot`, and :meth:`start_persist_loop` writes
    a snapshot periodically from a daemon thread.

    The interaction log keeps at most *max_events* entries; older events are
    dropped first.

    Args:
        snapshot_path: Optional JSON file used for durable snapshots.
        max_events: Capacity of the interaction log, or ``None`` for no limit.
    """

    def __init__(
        self,
        snapshot_path: str | Path | None = None,
        max_events: int | None = 10000,
    ) -> None:
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        self._lock = threading.RLock()
        self._profiles: dict[int, UserProfile] = {}
        self._events: deque[InteractionEvent] = deque(maxlen=max_events)
        self._persist_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Store interface
    # ------------------------------------------------------------------

    async def load_user_profile(self, user_id: int) -> UserProfile | None:
        with self._lock:
            profile = self._profiles.get(user_id)
            return copy.deepcopy(profile) if profile is not None else None

    async def save_user_profile(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.user_id] = copy.deepcopy(profile)

    async def append_interaction_event(self, event: InteractionEvent) -> None:
        with self._lock:
            self._events.append(event)

    def get_events(self, user_id: int | None = None) -> list[InteractionEvent]:
        """Return recorded events, optionally only those of *user_id*."""
        with self._lock:
            if user_id is None:
                return list(self._events)
            return [e for e in self._events if e.user_id == user_id]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def load_snapshot(self) -> None:
        """Restore profiles from the snapshot file, if one exists."""
        if self._snapshot_path is None or not self._snapshot_path.exists():
            return
        try:
            records = json.loads(self._snapshot_path.read_text(encoding="utf-8"))
            profiles = {r["user_id"]: profile_from_record(r) for r in records}
            with self._lock:
                self._profiles = profiles
            logger.info("Loaded %d user profiles from %s.", len(profiles), self._snapshot_path)
        except Exception:
            logger.exception("Failed to load user profiles from %s.", self._snapshot_path)

    def persist_snapshot(self) -> None:
        """Write every profile to the snapshot file."""
        if self._snapshot_path is None:
            return
        try:
            with self._lock:
                records = [profile_to_record(p) for p in self._profiles.values()]
            tmp_path = self._snapshot_path.with_suffix(".tmp")
            tmp_path.write_text(json.dumps(records), encoding="utf-8")
            tmp_path.replace(self._snapshot_path)
            logger.info("Persisted %d user profiles to %s.", len(records), self._snapshot_path)
        except Exception:
            logger.exception("Failed to persist user profiles to %s.", self._snapshot_path)

    def start_persist_loop(self, interval_seconds: int = 60) -> None:
        """Start a background daemon thread that periodically persists all profiles.

        Safe to call multiple times; only one thread is started.
        """
        if self._snapshot_path is None:
            return
        if self._persist_thread is not None and self._persist_thread.is_alive():
            return
        self._persist_thread = threading.Thread(
            target=self._persist_loop,
            args=(interval_seconds,),
            name="profile-persist",
            daemon=True,
        )
        self._persist_thread.start()
        logger.debug("Profile persist loop started (interval=%ds).", interval_seconds)

    def _persist_loop(self, interval_seconds: int) -> None:
        """Periodically persist all profiles. Runs in a daemon thread."""
        while True:
            time.sleep(interval_seconds)
            self.persist_snapshot()


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------


def profile_to_record(profile: UserProfile) -> dict[str, Any]:
    """Convert a profile into a JSON-serialisable dict."""
    behavior = profile.behavior
    return {
        "user_id": profile.user_id,
        "preferred_categories": list(profile.preferred_categories or []),
        "preferred_providers": list(profile.preferred_providers or []),
        "quality_threshold": profile.quality_threshold,
        "speed_preference": _value(profile.speed_preference),
        "expertise_level": _value(profile.expertise_level),
        "exploration_score": profile.exploration_score,
        "category_affinities": dict(profile.category_affinities or {}),
        "provider_affinities": dict(profile.provider_affinities or {}),
        "behavior": {
            "total_interactions": behavior.total_interactions,
            "average_session_duration": behavior.average_session_duration,
            "session_samples": behavior.session_samples,
            "most_active_hour": behavior.most_active_hour,
            "hourly_activity": list(behavior.hourly_activity),
        },
    }


def profile_from_record(record: dict[str, Any]) -> UserProfile:
    """Inverse of :func:`profile_to_record`."""
    behavior = record.get("behavior", {})
    return UserProfile(
        user_id=int(record["user_id"]),
        preferred_categories=list(record.get("preferred_categories", [])),
        preferred_providers=list(record.get("preferred_providers", [])),
        quality_threshold=float(record.get("quality_threshold", 70.0)),
        speed_preference=SpeedPreference(record.get("speed_preference") or "balanced"),
        expertise_level=ExpertiseLevel(record.get("expertise_level") or "intermediate"),
        exploration_score=float(record.get("exploration_score", 60.0)),
        category_affinities={k: int(v) for k, v in record.get("category_affinities", {}).items()},
        provider_affinities={k: int(v) for k, v in record.get("provider_affinities", {}).items()},
        behavior=BehaviorMetrics(
            total_interactions=int(behavior.get("total_interactions", 0)),
            average_session_duration=float(behavior.get("average_session_duration", 600.0)),
            session_samples=int(behavior.get("session_samples", 0)),
            most_active_hour=int(behavior.get("most_active_hour", 14)),
            hourly_activity=list(behavior.get("hourly_activity", [0] * 24)),
        ),
    )


def _value(member: Enum | str | None) -> str | None:
    return member.value if isinstance(member, Enum) else member
