"""Tests for the weather tools, the tool registry and the system prompt."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.activities import ToolName
from src.prompts import get_system_prompt
from src.services.open_data_client import OpenDataAPIError
from src.tools.registry import TOOL_REGISTRY, ParameterKind, describe_tools, get_tool_spec
from src.tools.weather import (
    coordinates_lookup,
    describe_weather_code,
    time_lookup,
    weather_lookup,
)


def _mock_client(**methods) -> MagicMock:
    client = MagicMock()
    for name, value in methods.items():
        if isinstance(value, Exception):
            setattr(client, name, AsyncMock(side_effect=value))
        else:
            setattr(client, name, AsyncMock(return_value=value))
    return client


# ── Tools ───────────────────────────────────────────────────────────


class TestCoordinatesLookup:
    @pytest.mark.asyncio
    async def test_returns_location_json(self):
        client = _mock_client(
            geocode={"lat": 48.8566, "lon": 2.3522, "displayName": "Paris, France"},
        )
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await coordinates_lookup.ainvoke({"city_name": "Paris"})

        assert json.loads(result) == {
            "lat": 48.8566, "lon": 2.3522, "displayName": "Paris, France",
        }
        client.geocode.assert_awaited_once_with("Paris")

    @pytest.mark.asyncio
    async def test_unknown_city(self):
        client = _mock_client(geocode=None)
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await coordinates_lookup.ainvoke({"city_name": "Atlantis"})

        assert json.loads(result) == {"error": "Location not found"}

    @pytest.mark.asyncio
    async def test_api_error_returned_as_text(self):
        client = _mock_client(geocode=OpenDataAPIError("nominatim timed out after 15s"))
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await coordinates_lookup.ainvoke({"city_name": "Paris"})

        assert json.loads(result) == {
            "error": "Failed to get coordinates: nominatim timed out after 15s",
        }


class TestWeatherLookup:
    @pytest.mark.asyncio
    async def test_formats_temperature_and_description(self):
        client = _mock_client(current_weather={"temperature": 22.5, "weather_code": 0})
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await weather_lookup.ainvoke({"latitude": 48.85, "longitude": 2.35})

        assert result == "22.5°C, clear sky"
        client.current_weather.assert_awaited_once_with(48.85, 2.35)

    @pytest.mark.asyncio
    async def test_api_error_returned_as_text(self):
        client = _mock_client(current_weather=OpenDataAPIError("open-meteo API error: 503"))
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await weather_lookup.ainvoke({"latitude": 1.0, "longitude": 2.0})

        assert result == "Failed to get weather: open-meteo API error: 503"

    def test_unknown_weather_code(self):
        assert describe_weather_code(12345) == "unknown weather"
        assert describe_weather_code(95) == "thunderstorm"


class TestTimeLookup:
    @pytest.mark.asyncio
    async def test_formats_local_time_with_dst(self):
        client = _mock_client(
            current_time={
                "date": "07/14/2025",
                "time": "15:30",
                "timeZone": "Europe/Paris",
                "dayOfWeek": "Monday",
                "dstActive": True,
            },
        )
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await time_lookup.ainvoke({"latitude": 48.85, "longitude": 2.35})

        assert result == "Monday, 07/14/2025 at 15:30 Europe/Paris (DST active)"

    @pytest.mark.asyncio
    async def test_without_dst(self):
        client = _mock_client(
            current_time={
                "date": "01/14/2025",
                "time": "09:05",
                "timeZone": "Asia/Tokyo",
                "dayOfWeek": "Tuesday",
                "dstActive": False,
            },
        )
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await time_lookup.ainvoke({"latitude": 35.68, "longitude": 139.69})

        assert result == "Tuesday, 01/14/2025 at 09:05 Asia/Tokyo"

    @pytest.mark.asyncio
    async def test_timeout_returned_as_text(self):
        client = _mock_client(current_time=OpenDataAPIError("timeapi timed out after 60s"))
        with patch("src.tools.weather.get_open_data_client", return_value=client):
            result = await time_lookup.ainvoke({"latitude": 1.0, "longitude": 2.0})

        assert result == "Failed to get time: timeapi timed out after 60s"


# ── Registry and prompt ─────────────────────────────────────────────


class TestToolRegistry:
    def test_every_tool_name_is_registered(self):
        assert set(TOOL_REGISTRY) == set(ToolName)

    def test_tool_objects_carry_the_prompted_names(self):
        for name, spec in TOOL_REGISTRY.items():
            assert spec.tool.name == name.value
            assert spec.signature.startswith(f"{name.value}(")

    def test_parameter_kinds(self):
        assert get_tool_spec(ToolName.COORDINATES_LOOKUP).parameter_kind is ParameterKind.CITY_NAME
        assert get_tool_spec(ToolName.WEATHER_LOOKUP).parameter_kind is ParameterKind.COORDINATES
        assert get_tool_spec(ToolName.TIME_LOOKUP).parameter_kind is ParameterKind.COORDINATES

    def test_describe_tools_lists_every_signature(self):
        lines = describe_tools().splitlines()
        assert lines == [
            "- coordinatesLookup(city_name): Get coordinates (latitude, longitude) for a city",
            "- weatherLookup(latitude, longitude): Get the current weather for given coordinates",
            "- timeLookup(latitude, longitude): Get the current local time for given coordinates",
        ]


class TestSystemPrompt:
    def test_prompt_lists_all_tools_and_keywords(self):
        prompt = get_system_prompt()
        for spec in TOOL_REGISTRY.values():
            assert spec.signature in prompt
            assert f"ACTION: {spec.example}" in prompt
        assert "THINKING:, ACTION:, RESPONSE:, ELICITATION:, ERROR:" in prompt

    def test_prompt_has_no_unfilled_placeholders(self):
        prompt = get_system_prompt()
        assert "{tool_list}" not in prompt
        assert "{keywords}" not in prompt
        assert "{action_examples}" not in prompt

    def test_prompt_states_coordinate_order(self):
        assert "latitude first, then longitude" in get_system_prompt()
