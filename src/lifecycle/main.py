"""FastAPI application entry point for the branch lifecycle orchestrator.

This module serves the GitHub webhook endpoint outside Lambda, for local
development against an emulator or for container deployments. Actions run
in process when IS_LOCAL is set and as Lambda invocations otherwise.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response

from .config import LifecycleSettings, get_settings
from .dispatch.dispatcher import InProcessDispatcher
from .factory import Orchestrator, build_orchestrator, log_configuration
from .metrics import get_metrics

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: LifecycleSettings
orchestrator: Optional[Orchestrator] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Dependency wiring for the gateway and actions
    - Waiting for in-process actions on shutdown
    """
    global settings, orchestrator

    logger.info("Lifecycle orchestrator starting up...")

    settings = get_settings()
    log_configuration(settings)
    orchestrator = build_orchestrator(settings, metrics=get_metrics())

    logger.info("Lifecycle orchestrator started successfully")

    yield

    logger.info("Lifecycle orchestrator shutting down...")

    if orchestrator is not None and isinstance(orchestrator.dispatcher, InProcessDispatcher):
        await orchestrator.dispatcher.drain()

    logger.info("Lifecycle orchestrator shutdown complete")


app = FastAPI(
    title="Branch Lifecycle Orchestrator",
    description="Per-branch deployment provisioning and teardown driven by GitHub events",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=get_metrics().generate(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )


@app.post("/webhooks/github", response_class=PlainTextResponse)
async def github_webhook(request: Request):
    """GitHub webhook receiver endpoint.

    Verifies the signature, classifies the event and dispatches the
    lifecycle action without waiting for it.

    Returns:
        "accepted" with status 200, or an error message with status 500.
    """
    if orchestrator is None:
        logger.error("Orchestrator not initialized")
        return PlainTextResponse("Orchestrator not initialized", status_code=500)

    body = await request.body()
    response = await orchestrator.gateway.handle(body, dict(request.headers))
    return PlainTextResponse(response.body, status_code=response.status_code)


if __name__ == "__main__":
    import uvicorn

    dev_settings = get_settings()
    uvicorn.run(
        "src.lifecycle.main:app",
        host=dev_settings.host,
        port=dev_settings.port,
        reload=True,
    )
