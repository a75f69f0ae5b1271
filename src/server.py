"""FastAPI server for the Linear weather agent.

Run with:
    uvicorn src.server:app --host 0.0.0.0 --port 8000

Linear delivers agent-session webhooks to ``/api/webhook``; workspaces
install the agent through ``/api/oauth/authorize``.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, Response

from src.agent import _build_llm
from src.api.routes import router
from src.config import (
    SERVER_HOST,
    SERVER_PORT,
    SERVER_RELOAD,
    TOKEN_STORE_PATH,
    configure_logging,
)
from src.services.metrics import metrics
from src.services.oauth import JsonFileTokenStore, LinearCredentialProvider, LinearOAuthClient
from src.services.open_data_client import close_open_data_client

SERVICE_NAME = "Linear Weather Agent"
VERSION = "1.0.0"

configure_logging(root_level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the chat model and the Linear credential provider once.

    Each turn compiles its own session graph around these; nothing
    turn-specific is kept in app state.
    """
    oauth = LinearOAuthClient()
    application.state.oauth = oauth
    application.state.credentials = LinearCredentialProvider(
        JsonFileTokenStore(TOKEN_STORE_PATH), oauth,
    )
    application.state.llm = _build_llm()
    logger.info("%s %s ready (tokens in %s)", SERVICE_NAME, VERSION, TOKEN_STORE_PATH)
    try:
        yield
    finally:
        await close_open_data_client()
        metrics.flush()
        logger.info("Shut down cleanly")


app = FastAPI(
    title=SERVICE_NAME,
    description="Answers weather and local-time questions inside Linear agent sessions.",
    version=VERSION,
    lifespan=lifespan,
)


@app.middleware("http")
async def tag_request(request: Request, call_next) -> Response:
    """Give every request an ``X-Request-ID`` and log its outcome.

    A caller-supplied ID is reused so Linear retries can be correlated.
    """
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "[%s] %s %s -> %d (%.0fms)",
        request_id, request.method, request.url.path, response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    """Where to find things."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "docs": "/docs",
        "health": "/api/health",
        "install": "/api/oauth/authorize",
        "webhook": "/api/webhook",
    }


if __name__ == "__main__":
    uvicorn.run("src.server:app", host=SERVER_HOST, port=SERVER_PORT, reload=SERVER_RELOAD)
