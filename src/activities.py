"""Activity data model shared by the classifier, the loop and the sinks.

An *activity* is one unit of agent output shown to the user in Linear.  The
``type`` values match Linear's ``AgentActivityType`` so ``to_content()`` can be
sent to the API unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

from langchain_core.messages import AnyMessage
from pydantic import BaseModel, ConfigDict


class ActivityType(str, Enum):
    THOUGHT = "thought"
    ACTION = "action"
    RESPONSE = "response"
    ELICITATION = "elicitation"
    ERROR = "error"


class ToolName(str, Enum):
    """The closed set of tools the model may request by name.

    Extending this enum requires a matching entry in
    ``src.tools.registry.TOOL_REGISTRY``; the registry refuses to import
    otherwise.
    """

    COORDINATES_LOOKUP = "coordinatesLookup"
    WEATHER_LOOKUP = "weatherLookup"
    TIME_LOOKUP = "timeLookup"

    @classmethod
    def parse(cls, value: str) -> ToolName | None:
        """Return the member whose value is *value*, or ``None``."""
        try:
            return cls(value)
        except ValueError:
            return None


class SessionStatus(str, Enum):
    RUNNING = "running"
    AWAITING_INPUT = "awaiting_input"
    COMPLETED = "completed"
    FAILED = "failed"
    EXHAUSTED = "exhausted"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


# ── Activity variants ────────────────────────────────────────────────


class _BaseActivity(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def is_terminal(self) -> bool:
        return False

    def to_content(self) -> dict[str, Any]:
        """Render the Linear ``AgentActivityCreateInput.content`` payload."""
        return self.model_dump(mode="json", exclude_none=True)


class ThoughtActivity(_BaseActivity):
    type: Literal[ActivityType.THOUGHT] = ActivityType.THOUGHT
    body: str


class ActionActivity(_BaseActivity):
    """A tool invocation; published once without and once with ``result``."""

    type: Literal[ActivityType.ACTION] = ActivityType.ACTION
    action: ToolName
    parameter: str | None = None
    result: str | None = None

    def with_result(self, result: str) -> ActionActivity:
        return self.model_copy(update={"result": result})

    def to_content(self) -> dict[str, Any]:
        # Linear requires ``parameter`` to be present on action content.
        content = super().to_content()
        content.setdefault("parameter", "")
        return content


class ResponseActivity(_BaseActivity):
    type: Literal[ActivityType.RESPONSE] = ActivityType.RESPONSE
    body: str

    @property
    def is_terminal(self) -> bool:
        return True


class ElicitationActivity(_BaseActivity):
    type: Literal[ActivityType.ELICITATION] = ActivityType.ELICITATION
    body: str

    @property
    def is_terminal(self) -> bool:
        return True


class ErrorActivity(_BaseActivity):
    type: Literal[ActivityType.ERROR] = ActivityType.ERROR
    body: str

    @property
    def is_terminal(self) -> bool:
        return True


Activity = Union[
    ThoughtActivity,
    ActionActivity,
    ResponseActivity,
    ElicitationActivity,
    ErrorActivity,
]

# Status the loop moves to after publishing a terminal activity.
TERMINAL_STATUS: dict[ActivityType, SessionStatus] = {
    ActivityType.RESPONSE: SessionStatus.COMPLETED,
    ActivityType.ELICITATION: SessionStatus.AWAITING_INPUT,
    ActivityType.ERROR: SessionStatus.FAILED,
}


@dataclass
class TurnResult:
    """Outcome of one session turn, returned by ``SessionLoop.handle_prompt``."""

    session_id: str
    status: SessionStatus
    iterations: int
    messages: list[AnyMessage] = field(default_factory=list)
