"""Pick the artifact to apply from a status snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .generation_models import Artifact, ArtifactReadiness


@dataclass(frozen=True, slots=True)
class ArtifactSelection:
    """Partition counters plus the chosen artifact, if any."""

    ready_count: int
    pending_count: int
    total: int
    chosen: Artifact | None = None

    @property
    def is_empty(self) -> bool:
        return self.total == 0


def select_artifact(artifacts: Sequence[Artifact]) -> ArtifactSelection:
    """Return the first ready artifact in input order.

    Selection is deterministic: no ranking, no randomness. ``chosen`` is only
    set for artifacts that are ready and carry a download URL.
    """

    ready = 0
    pending = 0
    chosen: Artifact | None = None
    for artifact in artifacts:
        if artifact.readiness is ArtifactReadiness.READY:
            ready += 1
            if chosen is None and artifact.download_url:
                chosen = artifact
        elif artifact.readiness is ArtifactReadiness.PENDING:
            pending += 1
    return ArtifactSelection(
        ready_count=ready,
        pending_count=pending,
        total=len(artifacts),
        chosen=chosen,
    )


__all__ = ["ArtifactSelection", "select_artifact"]
