"""Candidate catalogue: loads and caches recommendable models from a JSON export."""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from personalization.models import Candidate, SpeedTier
from personalization.repositories import CandidateFilter

logger = logging.getLogger(__name__)

_ULTRA_FAST_HINTS = ("schnell", "fast", "speed")
_FAST_HINTS = ("quick", "rapid")
_DETAILED_HINTS = ("detailed", "quality", "pro")


class CandidateCatalogue:
    """In-memory :class:`~personalization.repositories.CandidateRepository`.

    The catalogue is filled either directly via :meth:`replace` or from a
    JSON export (a list of candidate records) via :meth:`refresh`.  When a
    source path is configured, a background daemon thread started with
    :meth:`start_refresh_loop` re-reads it every *refresh_interval_seconds*.

    All public methods are thread-safe.

    Args:
        source_path: Optional path of the JSON export to load from.
        refresh_interval_seconds: How often the background thread reloads the
            export. Defaults to 300 (5 minutes).
    """

    def __init__(
        self,
        source_path: str | Path | None = None,
        refresh_interval_seconds: int = 300,
    ) -> None:
        self._source_path = Path(source_path) if source_path else None
        self._refresh_interval = refresh_interval_seconds
        self._lock = threading.RLock()
        self._candidates: dict[int, Candidate] = {}
        self._refresh_thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def replace(self, candidates: list[Candidate]) -> None:
        """Swap the cached candidates for *candidates*."""
        new_candidates = {c.candidate_id: c for c in candidates}
        with self._lock:
            self._candidates = new_candidates

    def refresh(self) -> None:
        """Reload the JSON export and update the cache.

        On failure, logs an error and preserves the existing cache so the
        service can keep serving.
        """
        if self._source_path is None:
            return
        try:
            records = json.loads(self._source_path.read_text(encoding="utf-8"))
            candidates = [candidate_from_record(r) for r in records]
            self.replace(candidates)
            logger.info(
                "Candidate catalogue refreshed: %d candidates loaded.", len(candidates)
            )
        except Exception:
            logger.exception(
                "Failed to refresh candidate catalogue from %s; keeping existing %d candidates.",
                self._source_path,
                len(self._candidates),
            )

    def start_refresh_loop(self) -> None:
        """Start a background daemon thread that periodically calls :meth:`refresh`.

        Safe to call multiple times; only one refresh thread is started.
        """
        if self._source_path is None:
            return
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return
        self._refresh_thread = threading.Thread(
            target=self._refresh_loop,
            name="catalogue-refresh",
            daemon=True,
        )
        self._refresh_thread.start()
        logger.debug("Catalogue refresh loop started (interval=%ds).", self._refresh_interval)

    # ------------------------------------------------------------------
    # Repository interface
    # ------------------------------------------------------------------

    async def load_candidates(self, candidate_filter: CandidateFilter) -> list[Candidate]:
        """Return cached candidates accepted by *candidate_filter*, ordered by id."""
        with self._lock:
            snapshot = sorted(self._candidates.values(), key=lambda c: c.candidate_id)
        selected = [c for c in snapshot if candidate_filter.accepts(c)]
        if candidate_filter.limit is not None:
            selected = selected[: candidate_filter.limit]
        return selected

    def get_all_candidates(self) -> list[Candidate]:
        """Return a snapshot list of every cached candidate."""
        with self._lock:
            return list(self._candidates.values())

    def get_all_categories(self) -> list[str]:
        """Return a sorted list of every category present in the catalogue."""
        with self._lock:
            return sorted({c.category for c in self._candidates.values()})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _refresh_loop(self) -> None:
        """Periodically refresh the catalogue. Runs in a daemon thread."""
        while True:
            time.sleep(self._refresh_interval)
            self.refresh()


# ---------------------------------------------------------------------------
# Record parsing
# ---------------------------------------------------------------------------


def candidate_from_record(record: dict[str, Any]) -> Candidate:
    """Build a :class:`Candidate` from one JSON export record.

    Ratings are clamped to [0, 100].  When ``speed_tier`` is absent it is
    inferred from the name and feature tags.

    Raises:
        KeyError: If a required field (``id``, ``name``, ``category``,
            ``provider``) is missing.
        ValueError: If ``speed_tier`` is not a known tier.
    """
    features = tuple(record.get("features") or record.get("tags") or ())
    speed_value = record.get("speed_tier")
    speed_tier = (
        SpeedTier(speed_value)
        if speed_value
        else infer_speed_tier(record["name"], features)
    )
    created_raw = record.get("created_at")
    created_at = (
        _parse_datetime(created_raw)
        if created_raw
        else datetime(1970, 1, 1, tzinfo=timezone.utc)
    )
    return Candidate(
        candidate_id=int(record["id"]),
        name=record["name"],
        category=record["category"],
        provider=record["provider"],
        quality_rating=_clamp_metric(record.get("quality_rating", 50)),
        popularity=_clamp_metric(record.get("popularity", 0)),
        featured=bool(record.get("featured", False)),
        features=features,
        speed_tier=speed_tier,
        created_at=created_at,
        satisfaction=_optional_metric(record.get("satisfaction")),
        performance_index=_optional_metric(record.get("performance_index")),
    )


def infer_speed_tier(name: str, features: tuple[str, ...] | list[str]) -> SpeedTier:
    """Guess a speed tier from the model name and its tags."""
    haystack = " ".join([*features, name]).lower()
    if any(hint in haystack for hint in _ULTRA_FAST_HINTS):
        return SpeedTier.ULTRA_FAST
    if any(hint in haystack for hint in _FAST_HINTS):
        return SpeedTier.FAST
    if any(hint in haystack for hint in _DETAILED_HINTS):
        return SpeedTier.DETAILED
    return SpeedTier.STANDARD


def _clamp_metric(value: Any) -> float:
    return min(100.0, max(0.0, float(value)))


def _optional_metric(value: Any) -> float | None:
    return None if value is None else _clamp_metric(value)


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
