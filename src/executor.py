"""Parse an action's raw parameter text and run the requested tool.

``ActionExecutor.execute`` always returns text.  A missing or malformed
parameter is reported back to the model as an ``Invalid parameter ...``
message without calling any tool, so the loop can continue and the model can
correct itself.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from src.activities import ToolName
from src.tools.registry import ParameterKind, ToolSpec, get_tool_spec

logger = logging.getLogger(__name__)

_QUOTE_CHARS = "\"'"


class ParameterError(ValueError):
    """Raised when an action parameter does not match its tool's shape."""


def parse_city_name(parameter: str) -> str:
    """Strip whitespace and surrounding quotes from a city-name parameter."""
    city = parameter.strip().strip(_QUOTE_CHARS).strip()
    if not city:
        raise ParameterError("expected a quoted city name, e.g. \"Paris\"")
    return city


def parse_coordinates(parameter: str) -> tuple[float, float]:
    """Parse ``"latitude, longitude"`` into two floats.

    The first two comma-separated fields are used and any further fields are
    ignored; both must be finite numbers within the valid latitude /
    longitude ranges.
    """
    fields = [part.strip() for part in parameter.split(",")]
    if len(fields) < 2:
        raise ParameterError(
            f"expected 'latitude, longitude' but got {len(fields)} field(s)"
        )
    if len(fields) > 2:
        logger.debug("Ignoring extra coordinate fields: %s", fields[2:])

    try:
        latitude, longitude = (float(value) for value in fields[:2])
    except ValueError as exc:
        raise ParameterError(f"coordinates must be numbers: {parameter.strip()!r}") from exc

    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        raise ParameterError("coordinates must be finite numbers")
    if not -90.0 <= latitude <= 90.0:
        raise ParameterError(f"latitude {latitude} is outside -90..90")
    if not -180.0 <= longitude <= 180.0:
        raise ParameterError(f"longitude {longitude} is outside -180..180")
    return latitude, longitude


def build_tool_input(tool_spec: ToolSpec, parameter: str) -> dict[str, Any]:
    """Map raw parameter text to the keyword arguments of *tool_spec*'s tool."""
    if tool_spec.parameter_kind is ParameterKind.CITY_NAME:
        return {"city_name": parse_city_name(parameter)}
    latitude, longitude = parse_coordinates(parameter)
    return {"latitude": latitude, "longitude": longitude}


class ActionExecutor:
    """Executes classified actions against the tool registry."""

    async def execute(self, tool_name: ToolName, parameter: str | None) -> str:
        tool_spec = get_tool_spec(tool_name)

        if parameter is None or not parameter.strip():
            logger.warning("Action %s called without a parameter", tool_name.value)
            return f"Invalid parameter for {tool_name.value}: a parameter is required."

        try:
            tool_input = build_tool_input(tool_spec, parameter)
        except ParameterError as e:
            logger.warning("Invalid parameter for %s: %s", tool_name.value, e)
            return f"Invalid parameter for {tool_spec.signature}: {e}."

        logger.debug("Executing tool %s with %s", tool_name.value, tool_input)
        try:
            result = await tool_spec.tool.ainvoke(tool_input)
        except Exception as e:
            # Tools already catch upstream errors; this is a tool bug.
            logger.exception("Tool %s raised unexpectedly", tool_name.value)
            return f"Tool {tool_name.value} failed: {e}"

        return str(result)
