"""Data structures shared by the generation saga and its collaborators."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Union


class ImageKind(StrEnum):
    """Which kind of blog image a request targets."""

    HERO = "hero"
    INBLOG = "inblog"


class ArtifactReadiness(StrEnum):
    """Readiness of one candidate result reported by the remote service."""

    READY = "ready"
    PENDING = "pending"
    UNKNOWN = "unknown"


class SagaStage(StrEnum):
    """Stages of a generation run, used to tag failures and warnings."""

    SUBMIT = "submit"
    POLL = "poll"
    SELECT = "select"
    APPLY = "apply"
    COMPENSATE = "compensate"


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Immutable input for one saga run.

    ``kind`` is only meaningful to prompt construction; the saga passes it
    through untouched.
    """

    prompt: str
    target_ref: str
    kind: ImageKind = ImageKind.HERO


@dataclass(frozen=True, slots=True)
class JobHandle:
    """Identifier of a submitted remote job."""

    value: str

    def __post_init__(self) -> None:
        if not self.value:
            raise ValueError("JobHandle value must be non-empty")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Artifact:
    """One candidate output in a status snapshot."""

    artifact_id: str
    readiness: ArtifactReadiness
    download_url: str | None = None
    width: int | None = None
    height: int | None = None
    size_bytes: int | None = None
    alt_text: str | None = None

    def __post_init__(self) -> None:
        is_ready = self.readiness is ArtifactReadiness.READY
        if is_ready and not self.download_url:
            raise ValueError(f"Ready artifact '{self.artifact_id}' needs a download_url")
        if not is_ready and self.download_url:
            raise ValueError(
                f"Artifact '{self.artifact_id}' has a download_url but is {self.readiness}"
            )


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    """Raw result of a delete call; the saga decides how severe a failure is."""

    deleted: bool
    status_code: int | None = None
    detail: str = ""

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


@dataclass(frozen=True, slots=True)
class SagaWarning:
    """Secondary problem that never changes the terminal outcome."""

    stage: SagaStage
    message: str


@dataclass(frozen=True, slots=True)
class Applied:
    """Terminal success: the target now reflects ``artifact_ref``."""

    artifact_ref: str
    applied_ref: str
    handle: JobHandle
    warnings: tuple[SagaWarning, ...] = ()

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class Failed:
    """Terminal failure tagged with the stage it happened in."""

    stage: SagaStage
    reason: str
    error: BaseException | None = field(default=None, compare=False)
    handle: JobHandle | None = None
    warnings: tuple[SagaWarning, ...] = ()

    @property
    def succeeded(self) -> bool:
        return False

    @property
    def error_type(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None


SagaResult = Union[Applied, Failed]


@dataclass(frozen=True, slots=True)
class SagaConfig:
    """Tunable timings and limits for one run."""

    poll_interval_seconds: float = 60.0
    deadline_seconds: float = 5 * 60.0
    payload_ceiling_bytes: int = 10 * 1024 * 1024

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        if self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        if self.payload_ceiling_bytes <= 0:
            raise ValueError("payload_ceiling_bytes must be positive")


__all__ = [
    "ImageKind",
    "ArtifactReadiness",
    "SagaStage",
    "GenerationRequest",
    "JobHandle",
    "Artifact",
    "DeleteOutcome",
    "SagaWarning",
    "Applied",
    "Failed",
    "SagaResult",
    "SagaConfig",
]
