"""Exceptions raised by the personalization engine."""

from __future__ import annotations


class InteractionValidationError(ValueError):
    """An interaction event failed validation and was not applied.

    Attributes:
        reasons: One human-readable message per failed check.
    """

    def __init__(self, reasons: list[str]) -> None:
        super().__init__("Invalid interaction event: " + "; ".join(reasons))
        self.reasons = list(reasons)


class CollaboratorUnavailableError(RuntimeError):
    """A candidate repository or profile store call failed or timed out.

    The orchestrator never retries; callers decide whether to retry.
    """

    retryable = True

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause!r}"
        super().__init__(message)
        self.operation = operation
