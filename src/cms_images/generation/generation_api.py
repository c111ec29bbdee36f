"""HTTP routes for remote image generation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from .generation_errors import InvalidTargetError, TargetNotFoundError
from .generation_models import Applied, ImageKind
from .generation_schemas import (
    GenerateAndReplaceRequest,
    GenerateAndReplaceResponse,
    GenerationErrorSchema,
    SagaResultSchema,
    TargetImageSchema,
)
from .generation_service import GenerationOutcome, GenerationService

router = APIRouter(prefix="/api/images", tags=["images"])
logger = logging.getLogger(__name__)


def get_generation_service(request: Request) -> GenerationService:
    """Fetch generation service from application state."""
    try:
        return request.app.state.generation_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - wiring error
        raise RuntimeError("GenerationService is not configured") from exc


def _error(status_code: int, message: str, failure_reason: str) -> HTTPException:
    detail = GenerationErrorSchema(error=message, failure_reason=failure_reason)
    return HTTPException(status_code=status_code, detail=detail.model_dump())


@router.post("/generate-and-replace")
async def generate_and_replace(
    payload: GenerateAndReplaceRequest,
    service: GenerationService = Depends(get_generation_service),
) -> dict:
    """Regenerate a hero or in-blog image and replace it in the repository."""
    if not payload.repo_name or not payload.slug:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "Missing required parameters: repoName and slug are required",
            "invalid_request",
        )
    try:
        kind = ImageKind(payload.type or "")
    except ValueError:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            'Missing or invalid type parameter: must be "hero" or "inblog"',
            "invalid_request",
        ) from None
    if kind is ImageKind.INBLOG and (
        payload.placeholder_number is None or payload.placeholder_number < 0
    ):
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "placeholder_number is required and must be >= 0 for inblog type",
            "invalid_request",
        )

    try:
        target = service.resolve_target(
            payload.repo_name, payload.slug, kind, payload.placeholder_number
        )
    except TargetNotFoundError as exc:
        logger.warning(
            "generation.api.target_not_found",
            extra={"repo_name": payload.repo_name, "slug": payload.slug, "detail": str(exc)},
        )
        raise _error(status.HTTP_404_NOT_FOUND, str(exc), "target_not_found") from exc
    except InvalidTargetError as exc:
        raise _error(status.HTTP_400_BAD_REQUEST, str(exc), "invalid_request") from exc

    outcome = await service.generate_and_replace(target, auth_token=payload.auth_token)
    response = _build_response(outcome)
    return response.model_dump(by_alias=True)


def _build_response(outcome: GenerationOutcome) -> GenerateAndReplaceResponse:
    target = outcome.target
    result = outcome.result
    kind = target.kind.value
    handle = result.handle.value if result.handle is not None else None
    warnings = [warning.message for warning in result.warnings]

    if isinstance(result, Applied):
        result_schema = SagaResultSchema(
            success=True,
            conversation_id=handle,
            replaced_image_path=result.applied_ref,
            warnings=warnings,
        )
        message = f"{kind} image processed successfully"
    else:
        result_schema = SagaResultSchema(
            success=False,
            conversation_id=handle,
            error=result.reason,
            stage=result.stage.value,
            error_type=result.error_type,
            warnings=warnings,
        )
        message = f"Failed to process {kind} image"

    return GenerateAndReplaceResponse(
        success=result.succeeded,
        message=message,
        type=kind,
        placeholder_number=target.placeholder_index if target.kind is ImageKind.INBLOG else None,
        target_image=TargetImageSchema(path=target.image.path, type=kind),
        result=result_schema,
    )
