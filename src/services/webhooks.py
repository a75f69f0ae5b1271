"""Linear webhook verification and agent-session event parsing.

Linear signs each delivery with HMAC-SHA256 over the raw request body using
the app's webhook secret, sent hex-encoded in the ``Linear-Signature``
header.  The payload's ``webhookTimestamp`` (milliseconds) guards against
replays.
"""

from __future__ import annotations

import hashlib
import hmac
import time

from pydantic import BaseModel, ConfigDict

SIGNATURE_HEADER = "linear-signature"
TIMESTAMP_TOLERANCE_SECONDS = 60
AGENT_SESSION_EVENT = "AgentSessionEvent"


class WebhookVerificationError(Exception):
    """Raised when a webhook delivery fails signature or freshness checks."""


def verify_signature(body: bytes, signature: str | None, secret: str) -> None:
    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured")
    if not signature:
        raise WebhookVerificationError("Missing webhook signature")

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise WebhookVerificationError("Invalid webhook signature")


def verify_timestamp(
    timestamp_ms: int | None,
    *,
    now: float | None = None,
    tolerance_seconds: float = TIMESTAMP_TOLERANCE_SECONDS,
) -> None:
    if timestamp_ms is None:
        raise WebhookVerificationError("Missing webhook timestamp")
    current = time.time() if now is None else now
    if abs(current - timestamp_ms / 1000) > tolerance_seconds:
        raise WebhookVerificationError("Webhook timestamp is outside the allowed window")


# ── Payload models ───────────────────────────────────────────────────


class _Model(BaseModel):
    model_config = ConfigDict(extra="ignore")


class IssueRef(_Model):
    title: str | None = None


class CommentRef(_Model):
    body: str | None = None


class AgentSessionRef(_Model):
    id: str
    issue: IssueRef | None = None
    comment: CommentRef | None = None


class ActivityContentRef(_Model):
    body: str | None = None


class AgentActivityRef(_Model):
    content: ActivityContentRef | None = None


class AgentSessionEventPayload(_Model):
    type: str
    action: str
    organizationId: str
    webhookTimestamp: int | None = None
    agentSession: AgentSessionRef
    agentActivity: AgentActivityRef | None = None


def build_user_prompt(event: AgentSessionEventPayload) -> str:
    """Derive the user prompt for a new turn from an agent-session event.

    ``created`` events carry the issue and the comment that mentioned the
    agent; ``prompted`` events carry the user's follow-up message.
    """
    if event.action == "created":
        issue_title = event.agentSession.issue.title if event.agentSession.issue else None
        comment_body = event.agentSession.comment.body if event.agentSession.comment else None
        return f"Issue: {issue_title or ''}\n\nTask: {comment_body or ''}"

    content = event.agentActivity.content if event.agentActivity else None
    return f"Task: {content.body if content and content.body else ''}"
