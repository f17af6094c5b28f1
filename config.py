"""Application configuration driven by environment variables.

All settings have sensible defaults for local development.
Scoring weights and thresholds live on
:class:`personalization.tuning.EngineConfig`; individual fields can be
overridden here through ``ENGINE_OVERRIDES`` without a code change.
"""

import json
import os

# ---------------------------------------------------------------------------
# gRPC server (the web tier connects to us on this address)
# ---------------------------------------------------------------------------

GRPC_SERVER_HOST: str = os.getenv("GRPC_SERVER_HOST", "0.0.0.0")
GRPC_SERVER_PORT: int = int(os.getenv("GRPC_SERVER_PORT", "50051"))

# Seconds to let in-flight RPCs finish on shutdown.
GRPC_SHUTDOWN_GRACE_SECONDS: float = float(os.getenv("GRPC_SHUTDOWN_GRACE_SECONDS", "5"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Recommendation engine
# ---------------------------------------------------------------------------

# Result count when a request does not specify one.
DEFAULT_MAX_RESULTS: int = int(os.getenv("DEFAULT_MAX_RESULTS", "20"))

# Upper bound for each candidate/profile load; the request fails on timeout.
COLLABORATOR_TIMEOUT_SECONDS: float = float(
    os.getenv("COLLABORATOR_TIMEOUT_SECONDS", "2.0")
)

# JSON object of EngineConfig field overrides,
# e.g. '{"min_relevance_score": 35, "diversity_max_per_provider": 2}'.
ENGINE_OVERRIDES: dict = json.loads(os.getenv("ENGINE_OVERRIDES", "{}"))

# ---------------------------------------------------------------------------
# Candidate catalogue
# ---------------------------------------------------------------------------

# JSON export of recommendable models (a list of records).
CANDIDATES_PATH: str = os.getenv("CANDIDATES_PATH", "data/candidates.json")

# How often (seconds) to reload the candidate export.
CATALOGUE_REFRESH_INTERVAL_SECONDS: int = int(
    os.getenv("CATALOGUE_REFRESH_INTERVAL_SECONDS", "300")
)

# ---------------------------------------------------------------------------
# User profile persistence
# ---------------------------------------------------------------------------

# JSON snapshot of user profiles; empty disables snapshots.
PROFILE_SNAPSHOT_PATH: str = os.getenv("PROFILE_SNAPSHOT_PATH", "data/profiles.json")

# How often (seconds) to write the profile snapshot.
STATE_PERSIST_INTERVAL_SECONDS: int = int(
    os.getenv("STATE_PERSIST_INTERVAL_SECONDS", "60")
)

# Most recent interaction events kept in memory for auditing.
INTERACTION_LOG_MAX_EVENTS: int = int(os.getenv("INTERACTION_LOG_MAX_EVENTS", "10000"))
