"""LangChain tools for coordinates, weather and local-time lookups.

Each tool wraps an ``OpenDataClient`` method and returns a plain string the
model can read back as ``Tool result: ...``.  Upstream failures are part of
the conversation, not exceptions: every tool catches ``OpenDataAPIError`` and
answers with a ``Failed to get ...`` message instead.

Tool names are the exact ``ToolName`` values the model is prompted with.
"""

from __future__ import annotations

import json
import logging

from langchain_core.tools import tool

from src.services.open_data_client import OpenDataAPIError, get_open_data_client

logger = logging.getLogger(__name__)

# WMO weather interpretation codes used by Open-Meteo.
WMO_WEATHER_CODES: dict[int, str] = {
    0: "clear sky",
    1: "mainly clear",
    2: "partly cloudy",
    3: "overcast",
    45: "fog",
    48: "depositing rime fog",
    51: "light drizzle",
    53: "moderate drizzle",
    55: "dense drizzle",
    56: "light freezing drizzle",
    57: "dense freezing drizzle",
    61: "slight rain",
    63: "moderate rain",
    65: "heavy rain",
    66: "light freezing rain",
    67: "heavy freezing rain",
    71: "slight snow",
    73: "moderate snow",
    75: "heavy snow",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "thunderstorm",
    96: "thunderstorm with slight hail",
    99: "thunderstorm with heavy hail",
}


def describe_weather_code(code: int) -> str:
    return WMO_WEATHER_CODES.get(code, "unknown weather")


# ── Tool 1: Coordinates for a city ──────────────────────────────────


@tool("coordinatesLookup")
async def coordinates_lookup(city_name: str) -> str:
    """Get the latitude and longitude of a city.

    Args:
        city_name: The city to look up, e.g. "Paris" or "Portland, Oregon".
    """
    try:
        location = await get_open_data_client().geocode(city_name)
    except OpenDataAPIError as e:
        logger.error("Failed to get coordinates for %r: %s", city_name, e)
        return json.dumps({"error": f"Failed to get coordinates: {e}"})

    if location is None:
        return json.dumps({"error": "Location not found"})
    return json.dumps(location, ensure_ascii=False)


# ── Tool 2: Current weather ─────────────────────────────────────────


@tool("weatherLookup")
async def weather_lookup(latitude: float, longitude: float) -> str:
    """Get the current temperature and conditions at a coordinate.

    Args:
        latitude: Latitude in decimal degrees (-90 to 90).
        longitude: Longitude in decimal degrees (-180 to 180).
    """
    try:
        weather = await get_open_data_client().current_weather(latitude, longitude)
    except OpenDataAPIError as e:
        logger.error("Failed to get weather for (%s, %s): %s", latitude, longitude, e)
        return f"Failed to get weather: {e}"

    description = describe_weather_code(weather["weather_code"])
    return f"{weather['temperature']}°C, {description}"


# ── Tool 3: Current local time ──────────────────────────────────────


@tool("timeLookup")
async def time_lookup(latitude: float, longitude: float) -> str:
    """Get the current local date and time at a coordinate.

    Args:
        latitude: Latitude in decimal degrees (-90 to 90).
        longitude: Longitude in decimal degrees (-180 to 180).
    """
    try:
        data = await get_open_data_client().current_time(latitude, longitude)
    except OpenDataAPIError as e:
        logger.error("Failed to get time for (%s, %s): %s", latitude, longitude, e)
        return f"Failed to get time: {e}"

    dst_status = " (DST active)" if data.get("dstActive") else ""
    return f"{data['dayOfWeek']}, {data['date']} at {data['time']} {data['timeZone']}{dst_status}"
