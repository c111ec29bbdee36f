from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest

from src.cms_images.generation.generation_errors import (
    NoArtifactsError,
    NotFoundError,
    PayloadTooLargeError,
    PollTimeoutError,
    SagaCancelledError,
    TransportError,
)
from src.cms_images.generation.generation_models import (
    Applied,
    DeleteOutcome,
    Failed,
    GenerationRequest,
    JobHandle,
    SagaConfig,
    SagaStage,
)
from src.cms_images.generation.poll_loop import PollLoop
from src.cms_images.generation.saga import GenerationSaga, SagaObserver, run_generation_saga
from src.cms_images.media.replacement import UploadsReplacementApplier
from tests.mocks.generation_fakes import FakeApplier, FakeClient, FakeClock, pending, ready

REQUEST = GenerationRequest(prompt="draw a lighthouse", target_ref="/images/uploads/post/hero.png")


def _saga(client: FakeClient, applier: FakeApplier, clock: FakeClock, **kwargs) -> GenerationSaga:
    return GenerationSaga(
        client=client,
        applier=applier,
        config=SagaConfig(),
        poll_loop=clock.poll_loop(),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_happy_path_applies_first_ready_and_deletes_job() -> None:
    clock = FakeClock()
    artifact = ready("img-7")
    client = FakeClient(snapshots=[[pending()], [pending(), artifact]])
    applier = FakeApplier(applied_ref="/images/uploads/post/hero.png")

    result = await _saga(client, applier, clock).run(REQUEST)

    assert isinstance(result, Applied)
    assert result.succeeded
    assert result.artifact_ref == "img-7"
    assert result.applied_ref == "/images/uploads/post/hero.png"
    assert result.handle == JobHandle("conv-1")
    assert result.warnings == ()
    assert client.submitted == ["draw a lighthouse"]
    assert applier.calls == [(REQUEST.target_ref, artifact)]
    assert client.deleted == [JobHandle("conv-1")]
    assert clock.sleeps == [60.0]


@pytest.mark.asyncio
async def test_submit_failure_has_nothing_to_compensate() -> None:
    client = FakeClient(submit_error=TransportError("service down", status_code=503))
    applier = FakeApplier()

    result = await _saga(client, applier, FakeClock()).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.SUBMIT
    assert result.handle is None
    assert result.error_type == "TransportError"
    assert "service down" in result.reason
    assert client.status_calls == 0
    assert client.deleted == []
    assert applier.calls == []


@pytest.mark.asyncio
async def test_poll_timeout_fails_at_poll_and_still_deletes() -> None:
    clock = FakeClock()
    client = FakeClient(snapshots=[[pending()]])
    applier = FakeApplier()

    result = await _saga(client, applier, clock).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.POLL
    assert isinstance(result.error, PollTimeoutError)
    assert result.handle == JobHandle("conv-1")
    assert client.status_calls == 5
    assert client.deleted == [JobHandle("conv-1")]
    assert applier.calls == []


@pytest.mark.asyncio
async def test_empty_snapshot_fails_without_waiting() -> None:
    clock = FakeClock()
    client = FakeClient(snapshots=[[]])

    result = await _saga(client, FakeApplier(), clock).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.POLL
    assert isinstance(result.error, NoArtifactsError)
    assert client.status_calls == 1
    assert clock.sleeps == []
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_status_error_fails_at_poll() -> None:
    client = FakeClient(snapshots=[TransportError("status failed", status_code=500)])

    result = await _saga(client, FakeApplier(), FakeClock()).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.POLL
    assert result.error_type == "TransportError"
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_apply_failure_is_called_once_and_compensated() -> None:
    client = FakeClient(snapshots=[[ready()]])
    applier = FakeApplier(error=PayloadTooLargeError(15 * 1024 * 1024, 10 * 1024 * 1024))

    result = await _saga(client, applier, FakeClock()).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.APPLY
    assert result.error_type == "PayloadTooLargeError"
    assert len(applier.calls) == 1
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_delete_failure_is_warning_on_success() -> None:
    client = FakeClient(
        snapshots=[[ready()]],
        delete_outcome=DeleteOutcome(deleted=False, status_code=500, detail="oops"),
    )

    result = await _saga(client, FakeApplier(), FakeClock()).run(REQUEST)

    assert isinstance(result, Applied)
    assert len(result.warnings) == 1
    assert result.warnings[0].stage is SagaStage.COMPENSATE
    assert "500" in result.warnings[0].message


@pytest.mark.asyncio
async def test_delete_failure_does_not_replace_original_failure() -> None:
    client = FakeClient(
        snapshots=[[ready()]],
        delete_outcome=TransportError("delete timed out"),
    )
    applier = FakeApplier(error=RuntimeError("disk full"))

    result = await _saga(client, applier, FakeClock()).run(REQUEST)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.APPLY
    assert result.reason == "disk full"
    assert [warning.stage for warning in result.warnings] == [SagaStage.COMPENSATE]
    assert "delete timed out" in result.warnings[0].message
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_delete_not_found_counts_as_compensated() -> None:
    client = FakeClient(
        snapshots=[[ready()]],
        delete_outcome=DeleteOutcome(deleted=False, status_code=404),
    )

    result = await _saga(client, FakeApplier(), FakeClock()).run(REQUEST)

    assert isinstance(result, Applied)
    assert result.warnings == ()


@pytest.mark.asyncio
async def test_cancel_event_fails_at_active_stage_and_deletes() -> None:
    cancel = asyncio.Event()
    clock = FakeClock()

    class CancellingClient(FakeClient):
        async def status(self, handle):
            cancel.set()
            return await super().status(handle)

    client = CancellingClient(snapshots=[[pending()]])

    result = await _saga(client, FakeApplier(), clock).run(REQUEST, cancel=cancel)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.POLL
    assert isinstance(result.error, SagaCancelledError)
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_cancel_event_before_submit_skips_remote_calls() -> None:
    cancel = asyncio.Event()
    cancel.set()
    client = FakeClient()

    result = await _saga(client, FakeApplier(), FakeClock()).run(REQUEST, cancel=cancel)

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.SUBMIT
    assert client.submitted == []
    assert client.deleted == []


@pytest.mark.asyncio
async def test_task_cancellation_still_deletes_job() -> None:
    client = FakeClient(snapshots=[[pending()]])
    saga = GenerationSaga(
        client=client,
        applier=FakeApplier(),
        config=SagaConfig(poll_interval_seconds=3600, deadline_seconds=7200),
        poll_loop=PollLoop(),
    )

    task = asyncio.create_task(saga.run(REQUEST))
    for _ in range(20):
        await asyncio.sleep(0)
        if client.status_calls:
            break
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert client.deleted == [JobHandle("conv-1")]


class RecordingObserver(SagaObserver):
    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def on_stage(self, request, stage):
        self.events.append(("stage", stage))

    def on_submitted(self, request, handle):
        self.events.append(("submitted", handle))

    def on_compensated(self, request, handle, outcome):
        self.events.append(("compensated", outcome))


@pytest.mark.asyncio
async def test_observer_sees_stages_in_order() -> None:
    observer = RecordingObserver()
    client = FakeClient(snapshots=[[ready()]])

    await _saga(client, FakeApplier(), FakeClock(), observer=observer).run(REQUEST)

    assert observer.events == [
        ("stage", SagaStage.SUBMIT),
        ("submitted", JobHandle("conv-1")),
        ("stage", SagaStage.POLL),
        ("stage", SagaStage.SELECT),
        ("stage", SagaStage.APPLY),
        ("stage", SagaStage.COMPENSATE),
        ("compensated", DeleteOutcome(deleted=True, status_code=200)),
    ]


@pytest.mark.asyncio
async def test_failing_observer_does_not_change_outcome(caplog) -> None:
    class ExplodingObserver(SagaObserver):
        def on_submitted(self, request, handle):
            raise RuntimeError("journal offline")

    client = FakeClient(snapshots=[[ready()]])

    result = await _saga(client, FakeApplier(), FakeClock(), observer=ExplodingObserver()).run(
        REQUEST
    )

    assert isinstance(result, Applied)
    assert client.deleted == [JobHandle("conv-1")]
    assert any(
        record.getMessage() == "generation.saga.observer_failed" for record in caplog.records
    )


@pytest.mark.asyncio
async def test_run_generation_saga_entry_point() -> None:
    clock = FakeClock()
    client = FakeClient(snapshots=[[ready("only")]])

    result = await run_generation_saga(
        REQUEST,
        SagaConfig(poll_interval_seconds=5, deadline_seconds=30),
        client=client,
        applier=FakeApplier(),
        poll_loop=clock.poll_loop(),
    )

    assert isinstance(result, Applied)
    assert result.artifact_ref == "only"


@pytest.mark.asyncio
async def test_configured_ceiling_reaches_applier() -> None:
    client = FakeClient(snapshots=[[ready()]])
    applier = FakeApplier()

    await run_generation_saga(
        REQUEST,
        SagaConfig(payload_ceiling_bytes=2048),
        client=client,
        applier=applier,
        poll_loop=FakeClock().poll_loop(),
    )

    assert applier.ceilings == [2048]


def _uploads_applier(tmp_path: Path, payload: bytes) -> UploadsReplacementApplier:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"Content-Type": "image/png"}, content=payload)

    return UploadsReplacementApplier(
        repo_path=tmp_path,
        slug="post",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_payload_over_configured_ceiling_fails_apply(tmp_path: Path) -> None:
    target = tmp_path / "uploads" / "post" / "hero.png"
    target.parent.mkdir(parents=True)
    target.write_bytes(b"old image")
    client = FakeClient(snapshots=[[ready()]])

    result = await run_generation_saga(
        REQUEST,
        SagaConfig(payload_ceiling_bytes=1000),
        client=client,
        applier=_uploads_applier(tmp_path, b"\x89PNG" + b"\x00" * 5000),
        poll_loop=FakeClock().poll_loop(),
    )

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.APPLY
    assert isinstance(result.error, PayloadTooLargeError)
    assert result.error.limit_bytes == 1000
    assert target.read_bytes() == b"old image"
    assert client.deleted == [JobHandle("conv-1")]


@pytest.mark.asyncio
async def test_deleted_target_fails_apply_without_writing(tmp_path: Path) -> None:
    (tmp_path / "uploads" / "post").mkdir(parents=True)
    client = FakeClient(snapshots=[[ready()]])

    result = await run_generation_saga(
        GenerationRequest(prompt="p", target_ref="/images/uploads/post/deleted.png"),
        SagaConfig(),
        client=client,
        applier=_uploads_applier(tmp_path, b"\x89PNG" + b"\x00" * 16),
        poll_loop=FakeClock().poll_loop(),
    )

    assert isinstance(result, Failed)
    assert result.stage is SagaStage.APPLY
    assert isinstance(result.error, NotFoundError)
    assert not (tmp_path / "uploads" / "post" / "deleted.png").exists()
    assert client.deleted == [JobHandle("conv-1")]
