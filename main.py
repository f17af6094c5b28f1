"""Entry point: wires all components and starts the gRPC server."""

from __future__ import annotations

import asyncio
import logging
import signal

import grpc

import config
from personalization.catalogue import CandidateCatalogue
from personalization.engine import RecommendationEngine
from personalization.feedback import FeedbackRecorder
from personalization.profile_store import InMemoryProfileStore
from personalization.service import PersonalizationServicer, build_generic_handler
from personalization.tuning import EngineConfig

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_server(
    catalogue: CandidateCatalogue,
    profile_store: InMemoryProfileStore,
    engine_config: EngineConfig,
) -> tuple[grpc.aio.Server, FeedbackRecorder]:
    """Construct the gRPC server with all dependencies wired.

    Args:
        catalogue: The loaded :class:`~personalization.catalogue.CandidateCatalogue`.
        profile_store: The :class:`~personalization.profile_store.InMemoryProfileStore`.
        engine_config: Scoring and diversity constants.

    Returns:
        A configured but not-yet-started :class:`grpc.aio.Server` and the
        feedback recorder, which must be drained on shutdown.
    """
    engine = RecommendationEngine(
        candidate_repository=catalogue,
        profile_store=profile_store,
        config=engine_config,
        io_timeout_seconds=config.COLLABORATOR_TIMEOUT_SECONDS,
    )
    feedback = FeedbackRecorder(
        profile_store=profile_store,
        candidate_repository=catalogue,
        config=engine_config,
    )
    servicer = PersonalizationServicer(
        engine=engine,
        feedback_recorder=feedback,
        default_max_results=config.DEFAULT_MAX_RESULTS,
    )

    server = grpc.aio.server()
    server.add_generic_rpc_handlers((build_generic_handler(servicer),))
    server.add_insecure_port(f"{config.GRPC_SERVER_HOST}:{config.GRPC_SERVER_PORT}")
    return server, feedback


async def serve() -> None:
    """Initialise all components and serve until SIGTERM/SIGINT.

    Startup sequence:
    1. Resolve engine constants (defaults plus ``ENGINE_OVERRIDES``).
    2. Load the candidate catalogue and restore user profiles.
    3. Start background threads (catalogue refresh, profile persistence).
    4. Build and start the gRPC server.
    5. On shutdown: stop the server, drain pending feedback, persist profiles.
    """
    engine_config = EngineConfig().with_overrides(config.ENGINE_OVERRIDES)

    logger.info("Loading candidate catalogue from %s…", config.CANDIDATES_PATH)
    catalogue = CandidateCatalogue(
        source_path=config.CANDIDATES_PATH,
        refresh_interval_seconds=config.CATALOGUE_REFRESH_INTERVAL_SECONDS,
    )
    catalogue.refresh()
    logger.info(
        "Catalogue loaded: %d candidates across %d categories.",
        len(catalogue.get_all_candidates()),
        len(catalogue.get_all_categories()),
    )

    profile_store = InMemoryProfileStore(
        snapshot_path=config.PROFILE_SNAPSHOT_PATH or None,
        max_events=config.INTERACTION_LOG_MAX_EVENTS,
    )
    profile_store.load_snapshot()

    catalogue.start_refresh_loop()
    profile_store.start_persist_loop(config.STATE_PERSIST_INTERVAL_SECONDS)

    server, feedback = build_server(catalogue, profile_store, engine_config)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_event.set)

    await server.start()
    logger.info(
        "Personalization gRPC server listening on %s:%d",
        config.GRPC_SERVER_HOST,
        config.GRPC_SERVER_PORT,
    )

    await stop_event.wait()
    logger.info("Shutting down: draining %d pending feedback events…", feedback.pending_count)
    await server.stop(grace=config.GRPC_SHUTDOWN_GRACE_SECONDS)
    await feedback.drain()
    logger.info("Interaction log holds %d events.", len(profile_store.get_events()))
    profile_store.persist_snapshot()


def main() -> None:
    asyncio.run(serve())


if __name__ == "__main__":
    main()
