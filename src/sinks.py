"""Activity sinks: where the session loop publishes what the agent does.

The loop awaits every ``publish`` before taking its next step, so a sink
sees one session's activities strictly in order.
"""

from __future__ import annotations

import logging
from typing import Protocol

from src.activities import Activity, ActionActivity, ActivityType

logger = logging.getLogger(__name__)


class ActivityPublishError(Exception):
    """Raised when an activity could not be recorded.  Ends the turn."""


class ActivitySink(Protocol):
    async def publish(self, session_id: str, activity: Activity) -> None:
        """Durably record *activity* against *session_id*."""
        ...


class CollectingActivitySink:
    """Keeps every published activity in memory, in publish order."""

    def __init__(self) -> None:
        self.published: list[tuple[str, Activity]] = []

    async def publish(self, session_id: str, activity: Activity) -> None:
        self.published.append((session_id, activity))

    def activities(self, session_id: str | None = None) -> list[Activity]:
        return [
            activity for sid, activity in self.published
            if session_id is None or sid == session_id
        ]


_LABELS = {
    ActivityType.THOUGHT: "💭 Thinking",
    ActivityType.RESPONSE: "🌤️  Response",
    ActivityType.ELICITATION: "❓ Question",
    ActivityType.ERROR: "⚠️  Error",
}


def format_activity(activity: Activity) -> str:
    """Render one activity as a single terminal line."""
    if isinstance(activity, ActionActivity):
        call = f"{activity.action.value}({activity.parameter or ''})"
        if activity.result is None:
            return f"🔧 Action: {call}"
        return f"✅ Result: {call} → {activity.result}"
    return f"{_LABELS[activity.type]}: {activity.body}"


class ConsoleActivitySink:
    """Prints activities to stdout (CLI mode)."""

    async def publish(self, session_id: str, activity: Activity) -> None:
        logger.debug("[%s] publishing %s activity", session_id, activity.type.value)
        print(format_activity(activity))
