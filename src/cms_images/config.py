"""Application configuration for cms-images.

Defaults follow the behaviour of the editor's generate-and-replace flow: a
60 second poll interval, a five minute polling budget and a 10 MiB ceiling
for downloaded images. Secrets are injected via ``CMS_IMAGES_*`` environment
variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .generation.generation_models import SagaConfig


class AppConfig(BaseSettings):
    """Pydantic settings container for the service layer."""

    model_config = SettingsConfigDict(env_prefix="CMS_IMAGES_", env_file=".env", extra="ignore")

    log_level: str = Field(
        default="INFO",
        description="Level applied to the cms_images loggers (DEBUG, INFO, WARNING, ...).",
    )
    repos_dir: Path = Field(
        default=Path("repositories"),
        description="Directory holding cloned blog repositories.",
    )
    prompts_dir: Path = Field(
        default=Path("sys_prompt"),
        description="Directory with prompt.txt and inblogimageprompt.txt.",
    )
    database_url: str = Field(
        default="sqlite:///cms_images.db",
        description="Database used to journal in-flight generation handles.",
    )
    generation_base_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the remote generation service.",
    )
    generation_username: str | None = Field(
        default=None,
        description="HTTP Basic username for the generation service.",
    )
    generation_password: str | None = Field(
        default=None,
        description="HTTP Basic password for the generation service.",
    )
    generation_auth_token: str | None = Field(
        default=None,
        description="Default auth_token passed to the generation service.",
    )
    poll_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Delay between status polls.",
    )
    deadline_seconds: float = Field(
        default=5 * 60.0,
        gt=0,
        description="Overall polling budget per generation run.",
    )
    payload_ceiling_bytes: int = Field(
        default=10 * 1024 * 1024,
        gt=0,
        description="Largest image accepted from the generation service.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout applied to every outbound HTTP request.",
    )
    download_bearer_token: str | None = Field(
        default=None,
        description="Bearer token attached to image downloads from bearer hosts.",
    )
    download_bearer_hosts: tuple[str, ...] = Field(
        default=("chatgpt.com",),
        description="Hosts (and their subdomains) that require the bearer token.",
    )

    def saga_config(self) -> SagaConfig:
        return SagaConfig(
            poll_interval_seconds=self.poll_interval_seconds,
            deadline_seconds=self.deadline_seconds,
            payload_ceiling_bytes=self.payload_ceiling_bytes,
        )


def load_config() -> AppConfig:
    """Load configuration from the environment."""
    return AppConfig()


__all__ = ["AppConfig", "load_config"]
