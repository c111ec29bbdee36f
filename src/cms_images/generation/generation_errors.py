"""Exceptions raised along the remote image generation path."""

from __future__ import annotations


class GenerationError(Exception):
    """Base class for generation-related errors."""


class TransportError(GenerationError):
    """Raised when the network call itself fails or returns a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(GenerationError):
    """Raised when the remote service answers with a malformed payload."""


class PollTimeoutError(GenerationError):
    """Raised when polling did not finish before the deadline."""

    def __init__(self, *, attempts: int, elapsed_seconds: float) -> None:
        super().__init__(
            f"Timed out after {attempts} attempts ({elapsed_seconds:.1f}s elapsed)"
        )
        self.attempts = attempts
        self.elapsed_seconds = elapsed_seconds


class NoArtifactsError(GenerationError):
    """Raised when a job finished a poll round with nothing to select."""


class SagaCancelledError(GenerationError):
    """Raised when the caller signalled cancellation."""


class ApplyError(GenerationError):
    """Base class for failures of the replacement step."""


class ValidationError(ApplyError):
    """Raised when the fetched payload is not acceptable (e.g. not an image)."""


class PayloadTooLargeError(ApplyError):
    """Raised when the payload exceeds the configured ceiling."""

    def __init__(self, size_bytes: int, limit_bytes: int) -> None:
        super().__init__(
            f"Payload of {size_bytes} bytes exceeds limit of {limit_bytes} bytes"
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class NotFoundError(ApplyError):
    """Raised when the replacement target no longer exists."""


class TargetNotFoundError(GenerationError):
    """Raised when a repository, post or image to regenerate cannot be located."""


class InvalidTargetError(GenerationError):
    """Raised when the requested target selection is malformed."""


__all__ = [
    "GenerationError",
    "TransportError",
    "ProtocolError",
    "PollTimeoutError",
    "NoArtifactsError",
    "SagaCancelledError",
    "ApplyError",
    "ValidationError",
    "PayloadTooLargeError",
    "NotFoundError",
    "TargetNotFoundError",
    "InvalidTargetError",
]
