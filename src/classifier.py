"""Turn a raw model reply into exactly one typed activity.

The model is prompted to start every reply with one of five literal keyword
prefixes.  The prefixes and their order are part of the prompt contract, so
they live here as a single ordered table that both the classifier and the
prompt examples read from.
"""

from __future__ import annotations

import logging
import re

from src.activities import (
    Activity,
    ActionActivity,
    ActivityType,
    ElicitationActivity,
    ErrorActivity,
    ResponseActivity,
    ThoughtActivity,
    ToolName,
)

logger = logging.getLogger(__name__)

# Ordered: the first prefix the reply starts with wins.
KEYWORD_PREFIXES: tuple[tuple[str, ActivityType], ...] = (
    ("THINKING:", ActivityType.THOUGHT),
    ("ACTION:", ActivityType.ACTION),
    ("RESPONSE:", ActivityType.RESPONSE),
    ("ELICITATION:", ActivityType.ELICITATION),
    ("ERROR:", ActivityType.ERROR),
)

# ``ACTION: toolName(argText)``: identifier directly followed by an argument
# list that runs to the last ``)`` on the line, so arguments may hold parentheses.
_ACTION_RE = re.compile(r"^ACTION:\s*(\w+)\((.*)\)")

_BODY_ACTIVITIES = {
    ActivityType.THOUGHT: ThoughtActivity,
    ActivityType.RESPONSE: ResponseActivity,
    ActivityType.ELICITATION: ElicitationActivity,
    ActivityType.ERROR: ErrorActivity,
}


class ClassificationError(ValueError):
    """Raised when a model reply cannot be mapped to a valid activity."""


class UnrecognizedActivityError(ClassificationError):
    """Raised when a reply starts with none of the keyword prefixes."""

    def __init__(self, raw: str):
        self.raw = raw
        preview = raw.strip()[:80]
        super().__init__(f"Unrecognized activity in model response: {preview!r}")


def classify_response(raw: str) -> Activity:
    """Classify *raw* model text into a single activity.

    Raises:
        UnrecognizedActivityError: no keyword prefix matched.
        ClassificationError: an ``ACTION:`` reply is malformed or names a tool
            outside :class:`ToolName`.
    """
    text = raw.lstrip()
    for prefix, activity_type in KEYWORD_PREFIXES:
        if not text.startswith(prefix):
            continue
        if activity_type is ActivityType.ACTION:
            return _parse_action(text)
        body = text[len(prefix):].strip()
        return _BODY_ACTIVITIES[activity_type](body=body)

    raise UnrecognizedActivityError(raw)


def _parse_action(text: str) -> ActionActivity:
    match = _ACTION_RE.match(text)
    if match is None:
        raise ClassificationError(
            f"Malformed action, expected 'ACTION: toolName(parameter)': {text[:80]!r}"
        )

    tool_name_raw, parameter = match.groups()
    tool_name = ToolName.parse(tool_name_raw)
    if tool_name is None:
        raise ClassificationError(f"Invalid tool name: {tool_name_raw}")

    logger.debug("Parsed action %s(%s)", tool_name.value, parameter)
    return ActionActivity(
        action=tool_name,
        parameter=parameter if parameter.strip() else None,
    )
