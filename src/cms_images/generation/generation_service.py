"""Resolve a blog image to regenerate and run the generation saga for it."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import structlog

from ..config import AppConfig
from ..media.replacement import ReplacementApplier, UploadsReplacementApplier
from ..posts.post_images import Post, PostImage, PostNotFoundError, read_post
from ..repositories.job_handle_repository import JobHandleRepository
from .generation_errors import InvalidTargetError, TargetNotFoundError
from .generation_models import Applied, GenerationRequest, ImageKind, SagaResult
from .handle_journal import HandleJournal
from .poll_loop import PollLoop
from .prompt_builder import PromptBuilder
from .remote_client import HttpRemoteJobClient, RemoteJobClient
from .saga import GenerationSaga

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str | None], RemoteJobClient]
ApplierFactory = Callable[[Path, str], ReplacementApplier]


@dataclass(slots=True)
class GenerationTarget:
    """The concrete image picked for regeneration."""

    repo_name: str
    repo_path: Path
    post: Post
    image: PostImage
    kind: ImageKind
    placeholder_index: int = 0

    @property
    def request_key(self) -> str:
        return f"{self.repo_name}/{self.post.slug}/{self.kind.value}/{self.placeholder_index}"


@dataclass(slots=True)
class GenerationOutcome:
    target: GenerationTarget
    result: SagaResult


class GenerationService:
    """Thin adapter between HTTP callers and :class:`GenerationSaga`."""

    def __init__(
        self,
        *,
        config: AppConfig,
        handle_repo: JobHandleRepository | None = None,
        client_factory: ClientFactory | None = None,
        applier_factory: ApplierFactory | None = None,
        poll_loop: PollLoop | None = None,
    ) -> None:
        self.config = config
        self.handle_repo = handle_repo
        self.prompt_builder = PromptBuilder(config.prompts_dir)
        self._client_factory = client_factory or self._default_client
        self._applier_factory = applier_factory or self._default_applier
        self._poll_loop = poll_loop or PollLoop()

    def resolve_target(
        self,
        repo_name: str,
        slug: str,
        kind: ImageKind,
        placeholder_number: int | None = None,
    ) -> GenerationTarget:
        _ensure_plain_name(repo_name, field="repoName")
        _ensure_plain_name(slug, field="slug")

        repo_path = self.config.repos_dir / repo_name
        if not repo_path.is_dir():
            raise TargetNotFoundError("Repository not found")
        try:
            post = read_post(repo_path, slug)
        except PostNotFoundError as exc:
            raise TargetNotFoundError(f"MDX file not found or could not be parsed: {exc}") from exc

        if kind is ImageKind.HERO:
            hero = post.hero_image()
            if hero is None:
                raise TargetNotFoundError("No hero image found in this post")
            return GenerationTarget(repo_name, repo_path, post, hero, kind)

        inblog = post.inblog_images()
        if not inblog:
            raise TargetNotFoundError("No in-blog images found in this post")
        if placeholder_number is None or not 0 <= placeholder_number < len(inblog):
            raise InvalidTargetError(
                f"Invalid placeholder_number: {placeholder_number}. Only {len(inblog)} "
                f"in-blog images available (0-{len(inblog) - 1})"
            )
        return GenerationTarget(
            repo_name,
            repo_path,
            post,
            inblog[placeholder_number],
            kind,
            placeholder_index=placeholder_number,
        )

    async def generate_and_replace(
        self,
        target: GenerationTarget,
        *,
        auth_token: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        prompt = self.prompt_builder.build(
            target.post.content, target.kind, placeholder_index=target.placeholder_index
        )
        request = GenerationRequest(prompt=prompt, target_ref=target.image.path, kind=target.kind)
        observer = (
            HandleJournal(repo=self.handle_repo, request_key=target.request_key)
            if self.handle_repo is not None
            else None
        )
        saga = GenerationSaga(
            client=self._client_factory(auth_token),
            applier=self._applier_factory(target.repo_path, target.post.slug),
            config=self.config.saga_config(),
            poll_loop=self._poll_loop,
            observer=observer,
        )

        with structlog.contextvars.bound_contextvars(request_key=target.request_key):
            logger.info("generation.service.started", target_ref=request.target_ref, kind=target.kind.value)
            result = await saga.run(request, cancel=cancel)
            if isinstance(result, Applied):
                logger.info("generation.service.succeeded", applied_ref=result.applied_ref)
            else:
                logger.warning(
                    "generation.service.failed", stage=result.stage.value, reason=result.reason
                )
        return GenerationOutcome(target=target, result=result)

    def _default_client(self, auth_token: str | None) -> RemoteJobClient:
        return HttpRemoteJobClient(
            base_url=self.config.generation_base_url,
            username=self.config.generation_username,
            password=self.config.generation_password,
            auth_token=auth_token or self.config.generation_auth_token,
            timeout_seconds=self.config.request_timeout_seconds,
        )

    def _default_applier(self, repo_path: Path, slug: str) -> ReplacementApplier:
        return UploadsReplacementApplier(
            repo_path=repo_path,
            slug=slug,
            timeout_seconds=self.config.request_timeout_seconds,
            bearer_token=self.config.download_bearer_token,
            bearer_hosts=tuple(self.config.download_bearer_hosts),
        )


def _ensure_plain_name(value: str, *, field: str) -> None:
    if not value or value in {".", ".."} or "/" in value or "\\" in value:
        raise InvalidTargetError(f"Invalid {field}: {value!r}")


__all__ = ["GenerationService", "GenerationTarget", "GenerationOutcome"]
