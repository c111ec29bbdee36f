"""Apply a generated artifact by replacing an image inside a blog repository."""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

import httpx

from ..generation.generation_errors import (
    NotFoundError,
    PayloadTooLargeError,
    TransportError,
    ValidationError,
)
from ..generation.generation_models import Artifact

logger = logging.getLogger(__name__)

DEFAULT_PAYLOAD_CEILING_BYTES = 10 * 1024 * 1024
CHUNK_SIZE = 64 * 1024


class ReplacementApplier(ABC):
    """Domain step that persists an artifact in place of an existing resource.

    Not idempotent: a second call may duplicate side effects, so callers must
    invoke it at most once per run.
    """

    @abstractmethod
    async def apply(self, target_ref: str, artifact: Artifact, *, ceiling_bytes: int) -> str:
        """Replace ``target_ref`` with the artifact payload and return the new reference.

        Payloads larger than ``ceiling_bytes`` raise ``PayloadTooLargeError``;
        a ``target_ref`` that no longer exists raises ``NotFoundError``.
        """


@dataclass(slots=True)
class UploadsReplacementApplier(ReplacementApplier):
    """Overwrite ``<repo>/uploads/<slug>/<filename>`` with the downloaded image.

    The file keeps the old name so that MDX references stay valid. Writes go
    through a temporary file in the same directory, so a failed download or
    write never leaves a half-replaced image behind.
    """

    repo_path: Path
    slug: str
    timeout_seconds: float = 30.0
    bearer_token: str | None = None
    bearer_hosts: tuple[str, ...] = ("chatgpt.com",)
    transport: httpx.AsyncBaseTransport | None = None
    log: logging.Logger = field(default_factory=lambda: logger)

    async def apply(self, target_ref: str, artifact: Artifact, *, ceiling_bytes: int) -> str:
        if not artifact.download_url:
            raise ValidationError(f"Artifact '{artifact.artifact_id}' has no download URL")
        filename = _target_filename(target_ref)
        destination = self.repo_path / "uploads" / self.slug / filename
        if not destination.is_file():
            raise NotFoundError(f"Target image '{target_ref}' no longer exists")

        payload, content_type = await self.fetch(artifact.download_url, ceiling_bytes=ceiling_bytes)
        _atomic_write(destination, payload)

        applied_ref = f"/images/uploads/{self.slug}/{filename}"
        self.log.info(
            "media.replacement.applied",
            extra={
                "artifact_id": artifact.artifact_id,
                "target_ref": target_ref,
                "applied_ref": applied_ref,
                "size_bytes": len(payload),
                "content_type": content_type,
            },
        )
        return applied_ref

    async def fetch(
        self, url: str, *, ceiling_bytes: int = DEFAULT_PAYLOAD_CEILING_BYTES
    ) -> tuple[bytes, str]:
        """Download ``url`` without ever buffering more than the ceiling."""

        try:
            parsed = httpx.URL(url)
        except httpx.InvalidURL as exc:
            raise ValidationError(f"Invalid download URL: {url}") from exc
        if parsed.scheme not in {"http", "https"}:
            raise ValidationError("Only HTTP and HTTPS URLs are allowed")

        headers = {
            "User-Agent": "cms-images/1.0 (Image Fetcher)",
            "Accept": "image/*",
        }
        if _host_matches(parsed.host, self.bearer_hosts):
            if not self.bearer_token:
                raise ValidationError(f"A download token is required for host '{parsed.host}'")
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport, follow_redirects=True
            ) as client:
                async with client.stream("GET", url, headers=headers) as response:
                    if response.status_code != 200:
                        raise TransportError(
                            f"Image download failed with status {response.status_code}",
                            status_code=response.status_code,
                        )
                    content_type = response.headers.get("Content-Type", "")
                    if not content_type.lower().startswith("image/"):
                        raise ValidationError(
                            f"Download is not an image (content type '{content_type or 'missing'}')"
                        )
                    declared = _declared_length(response)
                    if declared is not None and declared > ceiling_bytes:
                        raise PayloadTooLargeError(declared, ceiling_bytes)

                    buffer = bytearray()
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        buffer.extend(chunk)
                        if len(buffer) > ceiling_bytes:
                            raise PayloadTooLargeError(len(buffer), ceiling_bytes)
        except httpx.HTTPError as exc:
            raise TransportError(f"Image download failed: {exc}") from exc

        if not buffer:
            raise ValidationError("Downloaded image is empty")
        return bytes(buffer), content_type.split(";")[0].strip()


def _target_filename(target_ref: str) -> str:
    name = PurePosixPath(target_ref).name
    if name in {"", ".", ".."}:
        raise ValidationError(f"Target '{target_ref}' does not name a file")
    return name


def _host_matches(host: str, suffixes: tuple[str, ...]) -> bool:
    host = host.lower()
    return any(host == suffix or host.endswith(f".{suffix}") for suffix in suffixes)


def _declared_length(response: httpx.Response) -> int | None:
    raw = response.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _atomic_write(destination: Path, payload: bytes) -> None:
    fd, temp_name = tempfile.mkstemp(dir=destination.parent, prefix=".replace-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as sink:
            sink.write(payload)
        os.replace(temp_name, destination)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


__all__ = [
    "ReplacementApplier",
    "UploadsReplacementApplier",
    "DEFAULT_PAYLOAD_CEILING_BYTES",
]
