"""gRPC servicer: the entry point for inbound calls from the web tier.

Messages are protobuf well-known types (``Struct`` in, ``Struct`` or
``Empty`` out), so no generated stubs are required.  Register the servicer on
a ``grpc.aio`` server with :func:`build_generic_handler`.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

import grpc
from google.protobuf import empty_pb2, json_format, struct_pb2
from google.protobuf.timestamp_pb2 import Timestamp

from personalization.engine import RecommendationEngine
from personalization.errors import CollaboratorUnavailableError
from personalization.feedback import FeedbackRecorder, estimate_engagement_level
from personalization.models import (
    DeviceType,
    InteractionEvent,
    InteractionType,
    RecommendationBatch,
    RecommendationContext,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "personalization.PersonalizationService"

_RECOMMENDATION_WARN_THRESHOLD_MS = 450  # warn if within 50ms of SLA


class PersonalizationServicer:
    """Implements ``GetRecommendations`` and ``RecordInteraction``.

    Args:
        engine: The :class:`~personalization.engine.RecommendationEngine`.
        feedback_recorder: The :class:`~personalization.feedback.FeedbackRecorder`.
        default_max_results: Result count when the request does not set one.
    """

    def __init__(
        self,
        engine: RecommendationEngine,
        feedback_recorder: FeedbackRecorder,
        default_max_results: int = 20,
    ) -> None:
        self._engine = engine
        self._feedback = feedback_recorder
        self._default_max_results = default_max_results

    # ------------------------------------------------------------------
    # Recommendation request
    # ------------------------------------------------------------------

    async def GetRecommendations(self, request: struct_pb2.Struct, context: Any) -> struct_pb2.Struct:
        """Return ranked recommendations plus batch metadata.

        Args:
            request: ``Struct`` with ``user_id`` and optional context fields.
            context: gRPC service context.

        Returns:
            ``Struct`` with ``recommendations`` and metadata, or an empty
            ``Struct`` with a non-OK status on error.
        """
        payload = json_format.MessageToDict(request)
        user_id = payload.get("user_id")

        start_ms = time.monotonic() * 1000
        try:
            user_id = _require_int(payload, "user_id")
            rec_context = _context_from_payload(payload, self._default_max_results)
            batch = await self._engine.recommend_batch(user_id, rec_context)
        except CollaboratorUnavailableError as exc:
            context.set_code(grpc.StatusCode.UNAVAILABLE)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        except ValueError as exc:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details(str(exc))
            return struct_pb2.Struct()
        except Exception:
            logger.exception(
                "Unexpected error generating recommendations for user=%r", user_id
            )
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error generating recommendations.")
            return struct_pb2.Struct()
        finally:
            elapsed_ms = time.monotonic() * 1000 - start_ms
            if elapsed_ms > _RECOMMENDATION_WARN_THRESHOLD_MS:
                logger.warning(
                    "GetRecommendations for user=%r took %.1fms (SLA: 500ms)",
                    user_id,
                    elapsed_ms,
                )
            else:
                logger.debug("GetRecommendations for user=%r took %.1fms", user_id, elapsed_ms)

        response = struct_pb2.Struct()
        response.update(batch_to_payload(batch))
        return response

    # ------------------------------------------------------------------
    # Fire-and-forget interaction event
    # ------------------------------------------------------------------

    async def RecordInteraction(self, request: struct_pb2.Struct, context: Any) -> empty_pb2.Empty:
        """Validate an interaction and hand it to the feedback recorder.

        Returns as soon as the event is accepted; learning happens in the
        background.

        Args:
            request: ``Struct`` describing the interaction.
            context: gRPC service context.

        Returns:
            ``google.protobuf.Empty``.
        """
        payload = json_format.MessageToDict(request)
        try:
            event = event_from_payload(payload)
            self._feedback.submit(event)
        except ValueError as exc:
            context.set_code(grpc.StatusCode.INVALID_ARGUMENT)
            context.set_details(str(exc))
        except Exception:
            logger.exception("Error accepting interaction event %r", payload)
            context.set_code(grpc.StatusCode.INTERNAL)
            context.set_details("Internal error recording interaction.")
        return empty_pb2.Empty()


def build_generic_handler(servicer: PersonalizationServicer) -> grpc.GenericRpcHandler:
    """Wrap *servicer* in a handler for ``server.add_generic_rpc_handlers``."""
    return grpc.method_handlers_generic_handler(
        SERVICE_NAME,
        {
            "GetRecommendations": grpc.unary_unary_rpc_method_handler(
                servicer.GetRecommendations,
                request_deserializer=struct_pb2.Struct.FromString,
                response_serializer=struct_pb2.Struct.SerializeToString,
            ),
            "RecordInteraction": grpc.unary_unary_rpc_method_handler(
                servicer.RecordInteraction,
                request_deserializer=struct_pb2.Struct.FromString,
                response_serializer=empty_pb2.Empty.SerializeToString,
            ),
        },
    )


# ---------------------------------------------------------------------------
# Payload conversion
# ---------------------------------------------------------------------------


def batch_to_payload(batch: RecommendationBatch) -> dict[str, Any]:
    """Convert a :class:`RecommendationBatch` into a JSON-compatible dict."""
    return {
        "user_id": batch.user_id,
        "recommendations": [
            {
                "candidate_id": r.candidate.candidate_id,
                "name": r.candidate.name,
                "category": r.candidate.category,
                "provider": r.candidate.provider,
                "score": r.score,
                "confidence": r.confidence,
                "recommendation_category": r.category.value,
                "reasons": [
                    {"code": reason.code, "description": reason.description}
                    for reason in r.reasons
                ],
            }
            for r in batch.recommendations
        ],
        "total_candidates": batch.total_candidates,
        "processing_time_ms": round(batch.processing_time_ms, 3),
        "diversity_score": batch.diversity_score,
        "average_confidence": batch.average_confidence,
    }


def event_from_payload(payload: dict[str, Any]) -> InteractionEvent:
    """Build an :class:`InteractionEvent` from a request payload.

    A missing ``engagement_level`` is estimated from the interaction type,
    session duration and device; a missing ``timestamp`` means now.

    Raises:
        ValueError: If a field is missing or malformed.
    """
    interaction_type = InteractionType(payload.get("interaction_type"))
    session_duration = _optional_float(payload, "session_duration")
    device_type = _optional_device(payload)
    if payload.get("engagement_level") is None:
        engagement_level = estimate_engagement_level(
            interaction_type, session_duration, device_type
        )
    else:
        engagement_level = _require_int(payload, "engagement_level")

    raw_ts = payload.get("timestamp")
    timestamp = _parse_timestamp(raw_ts) if raw_ts else datetime.now(timezone.utc)

    return InteractionEvent(
        user_id=_require_int(payload, "user_id"),
        candidate_id=_require_int(payload, "candidate_id"),
        interaction_type=interaction_type,
        engagement_level=engagement_level,
        timestamp=timestamp,
        session_duration=session_duration,
        device_type=device_type,
        referral_source=payload.get("referral_source"),
    )


def _context_from_payload(payload: dict[str, Any], default_max_results: int) -> RecommendationContext:
    max_results = (
        _require_int(payload, "max_results")
        if payload.get("max_results") is not None
        else default_max_results
    )
    raw_time = payload.get("current_time")
    return RecommendationContext(
        current_time=_parse_timestamp(raw_time) if raw_time else datetime.now(timezone.utc),
        session_duration=_optional_float(payload, "session_duration"),
        device_type=_optional_device(payload),
        current_category=payload.get("current_category") or None,
        exclude_ids=frozenset(int(i) for i in payload.get("exclude_ids", [])),
        max_results=max_results,
    )


def _require_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return int(value)


def _optional_float(payload: dict[str, Any], key: str) -> float | None:
    value = payload.get(key)
    return None if value is None else float(value)


def _optional_device(payload: dict[str, Any]) -> DeviceType | None:
    value = payload.get("device_type")
    return DeviceType(value) if value else None


def _parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 string into a UTC-aware ``datetime``.

    Raises:
        ValueError: If *value* is not a valid RFC 3339 timestamp.
    """
    ts = Timestamp()
    ts.FromJsonString(value)
    return ts.ToDatetime(tzinfo=timezone.utc)
