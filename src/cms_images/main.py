"""FastAPI application entry point.

Serve with ``uvicorn src.cms_images.main:app``.
"""

from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .logging import configure_logging


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    cfg = config or load_config()
    configure_logging(cfg.log_level)
    app = FastAPI(title="cms-images", description="Regenerate blog images through the remote generator.")
    include_routers(app, cfg)
    return app


app = create_app()
