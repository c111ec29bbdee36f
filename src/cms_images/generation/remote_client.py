"""Transport adapter for the remote image generation service."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import httpx

from .generation_errors import ProtocolError, TransportError
from .generation_models import Artifact, ArtifactReadiness, DeleteOutcome, JobHandle

logger = logging.getLogger(__name__)

PENDING_STATUSES = frozenset(
    {"pending", "processing", "in_progress", "queued", "generating", "rendering"}
)


class RemoteJobClient(ABC):
    """Submit, inspect and delete remote generation jobs.

    Every method performs exactly one network call and never retries; retry
    and polling policy belong to the caller.
    """

    @abstractmethod
    async def submit(self, prompt: str) -> JobHandle:
        """Submit a generation request and return its handle."""

    @abstractmethod
    async def status(self, handle: JobHandle) -> tuple[Artifact, ...]:
        """Return the current artifact snapshot; empty means nothing yet."""

    @abstractmethod
    async def delete(self, handle: JobHandle) -> DeleteOutcome:
        """Delete the job and report the raw outcome."""


@dataclass(slots=True)
class HttpRemoteJobClient(RemoteJobClient):
    """Talk to the conversation-based generation API over HTTP."""

    base_url: str
    username: str | None = None
    password: str | None = None
    auth_token: str | None = None
    timeout_seconds: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def submit(self, prompt: str) -> JobHandle:
        response = await self._request(
            "POST", "/send-message", operation="submit", json={"message": prompt}
        )
        if response.status_code != 200:
            raise TransportError(
                f"Generation service submit failed with status {response.status_code}",
                status_code=response.status_code,
            )
        body = _json_object(response, operation="submit")
        if not body.get("success"):
            message = body.get("error") or body.get("message") or "success flag missing"
            raise ProtocolError(f"Generation service rejected submit: {message}")
        conversation_id = body.get("conversation_id")
        if not conversation_id or not isinstance(conversation_id, (str, int)):
            raise ProtocolError("Generation service did not return conversation_id")
        handle = JobHandle(str(conversation_id))
        self.log.info("generation.remote.submitted", extra={"handle": handle.value})
        return handle

    async def status(self, handle: JobHandle) -> tuple[Artifact, ...]:
        response = await self._request(
            "GET",
            f"/conversation/{handle.value}/images",
            operation="status",
            params=self._auth_params(),
        )
        if response.status_code != 200:
            raise TransportError(
                f"Generation service status failed with status {response.status_code}",
                status_code=response.status_code,
            )
        body = _json_object(response, operation="status")
        images = body.get("images")
        if images is None:
            return ()
        if not isinstance(images, list):
            raise ProtocolError("Generation service returned non-list images")
        artifacts = tuple(_parse_artifact(index, item) for index, item in enumerate(images))
        self.log.debug(
            "generation.remote.status",
            extra={
                "handle": handle.value,
                "total": len(artifacts),
                "images_completed": body.get("images_completed"),
                "images_in_progress": body.get("images_in_progress"),
            },
        )
        return artifacts

    async def delete(self, handle: JobHandle) -> DeleteOutcome:
        response = await self._request(
            "DELETE",
            f"/conversation/{handle.value}",
            operation="delete",
            params=self._auth_params(),
        )
        if 200 <= response.status_code < 300:
            return DeleteOutcome(deleted=True, status_code=response.status_code)
        return DeleteOutcome(
            deleted=False,
            status_code=response.status_code,
            detail=response.text[:500],
        )

    async def _request(
        self, method: str, path: str, *, operation: str, **kwargs: Any
    ) -> httpx.Response:
        url = f"{self.base_url.rstrip('/')}{path}"
        auth = (self.username, self.password or "") if self.username else None
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport, auth=auth
            ) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"Generation service {operation} failed: {exc}") from exc

    def _auth_params(self) -> dict[str, str]:
        return {"auth_token": self.auth_token} if self.auth_token else {}


def _json_object(response: httpx.Response, *, operation: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as exc:
        raise ProtocolError(f"Generation service {operation} returned invalid JSON") from exc
    if not isinstance(body, dict):
        raise ProtocolError(f"Generation service {operation} returned a non-object body")
    return body


def _parse_artifact(index: int, item: Any) -> Artifact:
    if not isinstance(item, dict):
        raise ProtocolError(f"Image entry {index} is not an object")

    download_url = item.get("download_url") or None
    status = item.get("status")
    if download_url:
        readiness = ArtifactReadiness.READY
    elif status is None or str(status).lower() in PENDING_STATUSES:
        readiness = ArtifactReadiness.PENDING
    else:
        readiness = ArtifactReadiness.UNKNOWN

    dimensions = item.get("dimensions") or {}
    if not isinstance(dimensions, dict):
        dimensions = {}
    artifact_id = item.get("image_id") or item.get("message_id") or f"image-{index}"
    return Artifact(
        artifact_id=str(artifact_id),
        readiness=readiness,
        download_url=str(download_url) if download_url else None,
        width=_optional_int(dimensions.get("width")),
        height=_optional_int(dimensions.get("height")),
        size_bytes=_optional_int(item.get("size_bytes")),
        alt_text=item.get("alt_text"),
    )


def _optional_int(value: Any) -> int | None:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


__all__ = ["RemoteJobClient", "HttpRemoteJobClient", "PENDING_STATUSES"]
