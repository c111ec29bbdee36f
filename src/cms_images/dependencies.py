"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .db.db_init import build_session_factory
from .generation.generation_api import router as generation_router
from .generation.generation_service import GenerationService
from .repositories.job_handle_repository import JobHandleRepository


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    session_factory = build_session_factory(config.database_url)
    handle_repo = JobHandleRepository(session_factory)
    generation_service = GenerationService(config=config, handle_repo=handle_repo)

    app.state.config = config
    app.state.handle_repo = handle_repo
    app.state.generation_service = generation_service

    app.include_router(generation_router)

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}
