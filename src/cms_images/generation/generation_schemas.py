"""Pydantic schemas for the generate-and-replace API."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class GenerateAndReplaceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_name: str | None = Field(default=None, alias="repoName")
    slug: str | None = None
    type: str | None = None
    placeholder_number: int | None = None
    auth_token: str | None = Field(default=None, alias="authToken")


class TargetImageSchema(BaseModel):
    path: str
    type: str


class SagaResultSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    conversation_id: str | None = Field(default=None, alias="conversationId")
    replaced_image_path: str | None = Field(default=None, alias="replacedImagePath")
    error: str | None = None
    stage: str | None = None
    error_type: str | None = Field(default=None, alias="errorType")
    warnings: list[str] = Field(default_factory=list)


class GenerateAndReplaceResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    type: str
    placeholder_number: int | None = None
    target_image: TargetImageSchema = Field(alias="targetImage")
    result: SagaResultSchema


class GenerationErrorSchema(BaseModel):
    status: str = "error"
    error: str
    failure_reason: str
