"""Saga observer that journals in-flight handles for crash recovery."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..repositories.job_handle_repository import JobHandleRepository
from .generation_models import DeleteOutcome, GenerationRequest, JobHandle
from .saga import SagaObserver

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HandleJournal(SagaObserver):
    """Write each handle on submit and close it once the remote job is gone.

    Handles whose delete failed stay open so ``cleanup_orphaned_jobs`` can
    retry them later, outside of any saga run.
    """

    repo: JobHandleRepository
    request_key: str
    log: logging.Logger = field(default_factory=lambda: logger)

    def on_submitted(self, request: GenerationRequest, handle: JobHandle) -> None:
        self.repo.record(
            handle=handle.value,
            request_key=self.request_key,
            target_ref=request.target_ref,
        )

    def on_compensated(
        self, request: GenerationRequest, handle: JobHandle, outcome: DeleteOutcome | None
    ) -> None:
        if outcome is None or not (outcome.deleted or outcome.not_found):
            self.log.warning(
                "generation.journal.left_open",
                extra={"handle": handle.value, "request_key": self.request_key},
            )
            return
        self.repo.mark_compensated(handle.value)


__all__ = ["HandleJournal"]
