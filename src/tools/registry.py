"""The fixed tool registry: one ``ToolSpec`` per ``ToolName``.

The enum, this registry and the tool list in the system prompt must always
agree.  The prompt is rendered from :func:`describe_tools`, and
:func:`_check_registry` runs at import so a tool added to one place but not
the other fails loudly instead of drifting.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from langchain_core.tools import BaseTool

from src.activities import ToolName
from src.tools.weather import coordinates_lookup, time_lookup, weather_lookup


class ParameterKind(str, Enum):
    """Shape of the raw parameter text the model writes inside ``(...)``."""

    CITY_NAME = "city_name"      # a quoted city name: "Paris"
    COORDINATES = "coordinates"  # latitude, longitude: 48.85, 2.35


@dataclass(frozen=True)
class ToolSpec:
    name: ToolName
    signature: str
    summary: str
    parameter_kind: ParameterKind
    tool: BaseTool
    example: str


TOOL_REGISTRY: dict[ToolName, ToolSpec] = {
    ToolName.COORDINATES_LOOKUP: ToolSpec(
        name=ToolName.COORDINATES_LOOKUP,
        signature="coordinatesLookup(city_name)",
        summary="Get coordinates (latitude, longitude) for a city",
        parameter_kind=ParameterKind.CITY_NAME,
        tool=coordinates_lookup,
        example='coordinatesLookup("New York")',
    ),
    ToolName.WEATHER_LOOKUP: ToolSpec(
        name=ToolName.WEATHER_LOOKUP,
        signature="weatherLookup(latitude, longitude)",
        summary="Get the current weather for given coordinates",
        parameter_kind=ParameterKind.COORDINATES,
        tool=weather_lookup,
        example="weatherLookup(40.7128, -74.0060)",
    ),
    ToolName.TIME_LOOKUP: ToolSpec(
        name=ToolName.TIME_LOOKUP,
        signature="timeLookup(latitude, longitude)",
        summary="Get the current local time for given coordinates",
        parameter_kind=ParameterKind.COORDINATES,
        tool=time_lookup,
        example="timeLookup(40.7128, -74.0060)",
    ),
}


def _check_registry() -> None:
    missing = set(ToolName) - set(TOOL_REGISTRY)
    if missing:
        raise RuntimeError(
            f"ToolName members without a registry entry: {sorted(m.value for m in missing)}"
        )
    for name, tool_spec in TOOL_REGISTRY.items():
        if tool_spec.name is not name or tool_spec.tool.name != name.value:
            raise RuntimeError(
                f"Registry entry {name.value!r} is bound to tool {tool_spec.tool.name!r}"
            )
        if not tool_spec.signature.startswith(f"{name.value}("):
            raise RuntimeError(f"Signature {tool_spec.signature!r} does not match {name.value!r}")


_check_registry()


def get_tool_spec(name: ToolName) -> ToolSpec:
    return TOOL_REGISTRY[name]


def describe_tools() -> str:
    """Render the ``Available tools`` list for the system prompt."""
    return "\n".join(
        f"- {tool_spec.signature}: {tool_spec.summary}" for tool_spec in TOOL_REGISTRY.values()
    )
