"""FastAPI application exposing the agent pipeline routers."""

from __future__ import annotations

import logging
import os
from typing import Final

from fastapi import FastAPI

from routes.agent import router as agent_router
from routes.errors import install_exception_handlers
from routes.metrics import router as metrics_router
from routes.voice import router as voice_router

LOGGER: Final[logging.Logger] = logging.getLogger("agent_api")


def _configure_logging() -> None:
    level = os.environ.get("AGENT_API_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))
    LOGGER.info("Agent API logging configured", extra={"level": level})


def create_app() -> FastAPI:
    """Instantiate the FastAPI application with every agent router."""

    _configure_logging()
    app = FastAPI(title="Sui Agent API", version="0.1.0", docs_url="/docs")
    install_exception_handlers(app)

    app.include_router(agent_router)
    app.include_router(voice_router)
    app.include_router(metrics_router)

    @app.get("/healthz", tags=["health"])
    def root_health() -> dict[str, bool]:
        return {"ok": True}

    return app


app = create_app()
