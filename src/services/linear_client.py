"""Async GraphQL client for the Linear API, plus the Linear activity sink.

Linear docs: https://linear.app/developers/agents
Requests authenticate with the workspace's OAuth access token passed as a
Bearer token.  GraphQL reports most failures inside a 200 response, so the
``errors`` array and each mutation's ``success`` flag are checked as well as
the HTTP status.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from src.activities import Activity
from src.config import LINEAR_API_URL
from src.services.metrics import metrics
from src.sinks import ActivityPublishError

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

AGENT_ACTIVITY_CREATE_MUTATION = """
mutation AgentActivityCreate($input: AgentActivityCreateInput!) {
  agentActivityCreate(input: $input) {
    success
    agentActivity { id }
  }
}
"""

VIEWER_ORGANIZATION_QUERY = """
query ViewerOrganization {
  viewer {
    organization { id name }
  }
}
"""


class LinearAPIError(Exception):
    """Raised when a Linear API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class LinearClient:
    """Minimal Linear GraphQL client with automatic retries."""

    def __init__(self, access_token: str, *, api_url: str | None = None):
        self._api_url = api_url or LINEAR_API_URL
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> LinearClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── Internal helpers ─────────────────────────────────────────────

    async def _graphql(
        self,
        operation: str,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST a GraphQL document with exponential-backoff retries."""
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            t0 = time.perf_counter()
            try:
                response = await self._client.post(
                    self._api_url,
                    json={"query": query, "variables": variables or {}},
                )
                if response.status_code >= 500:
                    raise LinearAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise LinearAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                payload = response.json()
                errors = payload.get("errors")
                if errors:
                    messages = "; ".join(e.get("message", "unknown error") for e in errors)
                    raise LinearAPIError(f"GraphQL error in {operation}: {messages}")

                metrics.record_success(
                    "linear", operation, latency_ms=(time.perf_counter() - t0) * 1000,
                )
                return payload.get("data") or {}

            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "Linear API attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except LinearAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Linear API server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    metrics.record_failure(
                        "linear", operation, error_type=type(exc).__name__,
                        latency_ms=(time.perf_counter() - t0) * 1000,
                    )
                    raise  # 4xx and GraphQL errors are not retried
            except ValueError as exc:
                raise LinearAPIError(f"Malformed response from Linear for {operation}") from exc

            metrics.record_failure(
                "linear", operation, error_type=type(last_error).__name__,
            )
            if attempt < MAX_RETRIES:
                await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise LinearAPIError(
            f"Linear API request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    async def create_agent_activity(
        self, agent_session_id: str, content: dict[str, Any],
    ) -> str | None:
        """Create an agent activity in *agent_session_id*; returns its id."""
        data = await self._graphql(
            "agentActivityCreate",
            AGENT_ACTIVITY_CREATE_MUTATION,
            {"input": {"agentSessionId": agent_session_id, "content": content}},
        )
        result = data.get("agentActivityCreate") or {}
        if not result.get("success"):
            raise LinearAPIError("Linear did not accept the agent activity")
        return (result.get("agentActivity") or {}).get("id")

    async def get_organization(self) -> dict[str, str]:
        """Return ``{"id", "name"}`` of the workspace the token belongs to."""
        data = await self._graphql("viewerOrganization", VIEWER_ORGANIZATION_QUERY)
        organization = (data.get("viewer") or {}).get("organization")
        if not organization:
            raise LinearAPIError("No organization found in response")
        return {"id": organization["id"], "name": organization["name"]}


class LinearActivitySink:
    """Publishes activities to a Linear agent session."""

    def __init__(self, client: LinearClient):
        self._client = client

    async def publish(self, session_id: str, activity: Activity) -> None:
        try:
            activity_id = await self._client.create_agent_activity(
                session_id, activity.to_content(),
            )
        except (LinearAPIError, httpx.HTTPError) as e:
            logger.error(
                "Failed to publish %s activity to session %s: %s",
                activity.type.value, session_id, e,
            )
            raise ActivityPublishError(str(e)) from e
        logger.debug(
            "Published %s activity %s to session %s",
            activity.type.value, activity_id, session_id,
        )
