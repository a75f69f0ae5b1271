"""FastAPI route definitions for the Linear weather agent API."""

from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from src.agent import SessionLoop
from src.api.schemas import HealthResponse, PromptRequest, PromptResponse, WebhookAck
from src.config import LINEAR_WEBHOOK_SECRET
from src.services.linear_client import LinearActivitySink, LinearAPIError, LinearClient
from src.services.oauth import OAuthError
from src.services.webhooks import (
    AGENT_SESSION_EVENT,
    SIGNATURE_HEADER,
    AgentSessionEventPayload,
    WebhookVerificationError,
    build_user_prompt,
    verify_signature,
    verify_timestamp,
)
from src.sinks import CollectingActivitySink

logger = logging.getLogger(__name__)

router = APIRouter()

# Agent-session webhook actions that start a new turn.
TURN_ACTIONS = frozenset({"created", "prompted"})


def _get_resource(request: Request, name: str):
    """Retrieve a shared resource (model, OAuth client, credentials) from app state.

    Resources are created once during the FastAPI lifespan (see
    ``server.py``); until then the API answers 503.
    """
    resource = getattr(request.app.state, name, None)
    if resource is None:
        raise HTTPException(
            status_code=503,
            detail="The agent is still starting up. Please try again in a moment.",
        )
    return resource


async def _run_turn(access_token: str, session_id: str, prompt: str, llm) -> None:
    """Run one session turn against Linear (scheduled as a background task)."""
    try:
        async with LinearClient(access_token) as client:
            loop = SessionLoop(LinearActivitySink(client), llm=llm)
            await loop.handle_prompt(session_id, prompt)
    except Exception:
        logger.exception("[%s] Session turn crashed before completing", session_id)


# ── Endpoints ────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


@router.post("/webhook", response_model=WebhookAck)
async def linear_webhook(http_request: Request, background_tasks: BackgroundTasks):
    """Receive a Linear webhook delivery and start a turn for agent-session events.

    Linear expects a quick acknowledgement, so the turn itself runs as a
    background task after the response has been sent.
    """
    request_id = getattr(http_request.state, "request_id", "?")
    body = await http_request.body()

    try:
        verify_signature(body, http_request.headers.get(SIGNATURE_HEADER), LINEAR_WEBHOOK_SECRET)
    except WebhookVerificationError as e:
        logger.warning("[%s] Rejected webhook: %s", request_id, e)
        raise HTTPException(status_code=401, detail=str(e)) from e

    try:
        data = json.loads(body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON.") from e
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object.")

    try:
        verify_timestamp(data.get("webhookTimestamp"))
    except WebhookVerificationError as e:
        logger.warning("[%s] Rejected webhook: %s", request_id, e)
        raise HTTPException(status_code=401, detail=str(e)) from e

    if data.get("type") != AGENT_SESSION_EVENT:
        logger.info("[%s] Ignoring %s webhook", request_id, data.get("type"))
        return WebhookAck(status="ignored")

    try:
        event = AgentSessionEventPayload.model_validate(data)
    except ValidationError as e:
        logger.warning("[%s] Malformed agent session event: %s", request_id, e)
        raise HTTPException(status_code=400, detail="Malformed agent session event.") from e

    if event.action not in TURN_ACTIONS:
        logger.info("[%s] Ignoring agent session action %r", request_id, event.action)
        return WebhookAck(status="ignored", session_id=event.agentSession.id)

    credentials = _get_resource(http_request, "credentials")
    llm = _get_resource(http_request, "llm")

    access_token = await credentials.get_access_token(event.organizationId)
    if access_token is None:
        logger.error(
            "[%s] No usable OAuth token for workspace %s", request_id, event.organizationId,
        )
        raise HTTPException(status_code=500, detail="Linear OAuth token not found.")

    session_id = event.agentSession.id
    background_tasks.add_task(_run_turn, access_token, session_id, build_user_prompt(event), llm)
    logger.info("[%s] Accepted %s event for session %s", request_id, event.action, session_id)
    return WebhookAck(status="accepted", session_id=session_id)


@router.get("/oauth/authorize")
async def oauth_authorize(http_request: Request):
    """Redirect to Linear's consent screen to install the agent."""
    oauth = _get_resource(http_request, "oauth")
    return RedirectResponse(url=oauth.authorize_url(), status_code=302)


@router.get("/oauth/callback", response_class=HTMLResponse)
async def oauth_callback(
    http_request: Request,
    code: str | None = None,
    error: str | None = None,
):
    """Finish the OAuth install: exchange the code and store the workspace token."""
    if error:
        raise HTTPException(status_code=400, detail=f"OAuth error: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code.")

    oauth = _get_resource(http_request, "oauth")
    credentials = _get_resource(http_request, "credentials")
    request_id = getattr(http_request.state, "request_id", "?")

    try:
        token = await oauth.exchange_code(code)
        async with LinearClient(token.access_token) as client:
            organization = await client.get_organization()
        await credentials.save(organization["id"], token)
    except (OAuthError, LinearAPIError) as e:
        logger.exception("[%s] OAuth callback failed", request_id)
        raise HTTPException(
            status_code=500,
            detail="Could not complete the Linear installation. Please try again.",
        ) from e

    logger.info("Installed for workspace %s (%s)", organization["name"], organization["id"])
    return HTMLResponse(
        "<html><body>"
        "<h1>Weather agent installed</h1>"
        f"<p>Workspace: {organization['name']}</p>"
        "<p>You can now mention the agent in Linear issues.</p>"
        "</body></html>"
    )


@router.post("/prompt", response_model=PromptResponse)
async def run_prompt(request: PromptRequest, http_request: Request):
    """Run one turn locally and return every activity it published.

    Activities are collected in memory instead of being sent to Linear,
    which makes this endpoint handy for trying prompts during development.
    """
    llm = _get_resource(http_request, "llm")
    request_id = getattr(http_request.state, "request_id", "?")
    session_id = request.session_id or str(uuid.uuid4())

    sink = CollectingActivitySink()
    try:
        result = await SessionLoop(sink, llm=llm).handle_prompt(session_id, request.prompt)
    except Exception as e:
        # Log the full traceback server-side but do not leak it to the client.
        logger.exception("[%s] Error processing prompt", request_id)
        raise HTTPException(
            status_code=500,
            detail="An internal error occurred. Please try again.",
        ) from e

    return PromptResponse(
        session_id=session_id,
        status=result.status,
        iterations=result.iterations,
        activities=[activity.to_content() for activity in sink.activities(session_id)],
    )
