"""Generation saga: submit, poll, select, apply and always compensate.

One run drives a single remote job from submission to cleanup::

    idle -> submitted -> polling -> selected -> applied -> compensated
                 \\__________\\___________\\________-> failed(stage)

Rules enforced here:

* ``submit`` is attempted once; its failure ends the run with nothing to
  clean up.
* Once a handle exists, ``delete`` is attempted exactly once before ``run``
  returns, whatever happened in between (including cancellation).
* A failed delete is reported as a warning. It never turns ``Applied`` into
  ``Failed`` and never replaces the stage/reason of an earlier failure.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace

from .artifact_selector import select_artifact
from .generation_errors import NoArtifactsError, SagaCancelledError
from .generation_models import (
    Applied,
    Artifact,
    DeleteOutcome,
    Failed,
    GenerationRequest,
    JobHandle,
    SagaConfig,
    SagaResult,
    SagaStage,
    SagaWarning,
)
from .poll_loop import PollLoop
from .remote_client import RemoteJobClient
from ..media.replacement import ReplacementApplier

logger = logging.getLogger(__name__)


class SagaObserver:
    """Optional progress hook. Default implementations do nothing."""

    def on_stage(self, request: GenerationRequest, stage: SagaStage) -> None:
        """Called when the run enters ``stage``."""

    def on_submitted(self, request: GenerationRequest, handle: JobHandle) -> None:
        """Called once a remote handle exists."""

    def on_compensated(
        self, request: GenerationRequest, handle: JobHandle, outcome: DeleteOutcome | None
    ) -> None:
        """Called after the delete attempt; ``outcome`` is ``None`` when it raised."""


@dataclass(slots=True)
class GenerationSaga:
    """Orchestrate one remote generation job end to end."""

    client: RemoteJobClient
    applier: ReplacementApplier
    config: SagaConfig = field(default_factory=SagaConfig)
    poll_loop: PollLoop = field(default_factory=PollLoop)
    observer: SagaObserver | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def run(
        self, request: GenerationRequest, *, cancel: asyncio.Event | None = None
    ) -> SagaResult:
        self._notify_stage(request, SagaStage.SUBMIT)
        try:
            _raise_if_cancelled(cancel, "before submit")
            handle = await self.client.submit(request.prompt)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._failed(request, SagaStage.SUBMIT, exc, handle=None)

        self.log.info(
            "generation.saga.submitted",
            extra={"handle": handle.value, "target_ref": request.target_ref},
        )
        self._notify(lambda observer: observer.on_submitted(request, handle))

        try:
            outcome = await self._drive(request, handle, cancel)
        except asyncio.CancelledError:
            await asyncio.shield(self._compensate(request, handle))
            raise

        warnings = await self._compensate(request, handle)
        if warnings:
            outcome = replace(outcome, warnings=outcome.warnings + warnings)
        return outcome

    async def _drive(
        self,
        request: GenerationRequest,
        handle: JobHandle,
        cancel: asyncio.Event | None,
    ) -> SagaResult:
        """Poll, select and apply. Never compensates; ``run`` does that."""

        async def check() -> tuple[Artifact | None, bool]:
            _raise_if_cancelled(cancel, "before status")
            snapshot = await self.client.status(handle)
            selection = select_artifact(snapshot)
            self.log.info(
                "generation.saga.polled",
                extra={
                    "handle": handle.value,
                    "ready": selection.ready_count,
                    "pending": selection.pending_count,
                    "total": selection.total,
                },
            )
            if selection.chosen is not None:
                return selection.chosen, True
            if selection.is_empty:
                raise NoArtifactsError(f"Job {handle.value} returned no images")
            return None, False

        self._notify_stage(request, SagaStage.POLL)
        try:
            artifact = await self.poll_loop.poll(
                check,
                interval=self.config.poll_interval_seconds,
                deadline=self.config.deadline_seconds,
                cancel=cancel,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._failed(request, SagaStage.POLL, exc, handle=handle)

        self._notify_stage(request, SagaStage.SELECT)
        self.log.info(
            "generation.saga.selected",
            extra={
                "handle": handle.value,
                "artifact_id": artifact.artifact_id,
                "width": artifact.width,
                "height": artifact.height,
                "size_bytes": artifact.size_bytes,
            },
        )

        self._notify_stage(request, SagaStage.APPLY)
        try:
            _raise_if_cancelled(cancel, "before apply")
            applied_ref = await self.applier.apply(
                request.target_ref, artifact, ceiling_bytes=self.config.payload_ceiling_bytes
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return self._failed(request, SagaStage.APPLY, exc, handle=handle)

        self.log.info(
            "generation.saga.applied",
            extra={
                "handle": handle.value,
                "artifact_id": artifact.artifact_id,
                "applied_ref": applied_ref,
            },
        )
        return Applied(artifact_ref=artifact.artifact_id, applied_ref=applied_ref, handle=handle)

    async def _compensate(
        self, request: GenerationRequest, handle: JobHandle
    ) -> tuple[SagaWarning, ...]:
        """Attempt the delete once; problems become warnings."""

        self._notify_stage(request, SagaStage.COMPENSATE)
        outcome: DeleteOutcome | None = None
        warning: SagaWarning | None = None
        try:
            outcome = await self.client.delete(handle)
        except Exception as exc:
            warning = SagaWarning(
                stage=SagaStage.COMPENSATE,
                message=f"Failed to delete job {handle.value}: {exc}",
            )
        else:
            if outcome.deleted:
                self.log.info("generation.saga.compensated", extra={"handle": handle.value})
            elif outcome.not_found:
                self.log.info(
                    "generation.saga.compensated.already_gone", extra={"handle": handle.value}
                )
            else:
                warning = SagaWarning(
                    stage=SagaStage.COMPENSATE,
                    message=(
                        f"Failed to delete job {handle.value}: "
                        f"status {outcome.status_code} {outcome.detail}".rstrip()
                    ),
                )

        if warning is not None:
            self.log.warning(
                "generation.saga.compensation_failed",
                extra={"handle": handle.value, "detail": warning.message},
            )
        self._notify(lambda observer: observer.on_compensated(request, handle, outcome))
        return (warning,) if warning is not None else ()

    def _failed(
        self,
        request: GenerationRequest,
        stage: SagaStage,
        exc: Exception,
        *,
        handle: JobHandle | None,
    ) -> Failed:
        reason = str(exc) or type(exc).__name__
        self.log.error(
            "generation.saga.failed",
            extra={
                "stage": stage.value,
                "error_type": type(exc).__name__,
                "reason": reason,
                "handle": handle.value if handle else None,
                "target_ref": request.target_ref,
            },
        )
        return Failed(stage=stage, reason=reason, error=exc, handle=handle)

    def _notify_stage(self, request: GenerationRequest, stage: SagaStage) -> None:
        self._notify(lambda observer: observer.on_stage(request, stage))

    def _notify(self, callback) -> None:
        if self.observer is None:
            return
        try:
            callback(self.observer)
        except Exception:
            self.log.exception("generation.saga.observer_failed")


def _raise_if_cancelled(cancel: asyncio.Event | None, where: str) -> None:
    if cancel is not None and cancel.is_set():
        raise SagaCancelledError(f"Generation cancelled {where}")


async def run_generation_saga(
    request: GenerationRequest,
    config: SagaConfig,
    *,
    client: RemoteJobClient,
    applier: ReplacementApplier,
    cancel: asyncio.Event | None = None,
    observer: SagaObserver | None = None,
    poll_loop: PollLoop | None = None,
) -> SagaResult:
    """Run one generation saga and return its terminal result."""

    saga = GenerationSaga(
        client=client,
        applier=applier,
        config=config,
        poll_loop=poll_loop or PollLoop(),
        observer=observer,
    )
    return await saga.run(request, cancel=cancel)


__all__ = ["GenerationSaga", "SagaObserver", "run_generation_saga"]
