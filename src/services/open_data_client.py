"""Async HTTP client for the free open-data APIs behind the agent's tools.

* **Nominatim** (OpenStreetMap) — city name → coordinates.  The usage policy
  requires an identifying ``User-Agent`` and discourages repeated identical
  queries, so results are kept in an expiring LRU cache.
* **Open-Meteo** — current temperature and WMO weather code.
* **timeapi.io** — current local time for a coordinate.  This API is slow
  (tens of seconds is common), so it gets a 60 s ceiling and a single attempt
  instead of the usual three.

Coordinates are always passed as *latitude, longitude* and sent to the
upstream APIs as named query parameters.

Every failure (timeout, transport error, non-2xx status, malformed payload)
surfaces as :class:`OpenDataAPIError`; the tools turn it into text for the
model.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any

import httpx

from src.config import (
    HTTP_USER_AGENT,
    NOMINATIM_BASE_URL,
    OPEN_METEO_BASE_URL,
    TIME_API_BASE_URL,
)
from src.services.cache import LRUCache
from src.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry / timeout configuration ───────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0
TIME_API_TIMEOUT_SECONDS = 60.0

_CK_GEOCODE = "geocode:"


class OpenDataAPIError(Exception):
    """Raised when an open-data API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class OpenDataClient:
    """Thin async wrapper around Nominatim, Open-Meteo and timeapi.io."""

    def __init__(
        self,
        *,
        user_agent: str | None = None,
        cache: LRUCache | None = None,
    ):
        self._client = httpx.AsyncClient(
            headers={
                "User-Agent": user_agent or HTTP_USER_AGENT,
                "Accept": "application/json",
            },
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        self._cache = cache or LRUCache()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ── Internal helpers ─────────────────────────────────────────────

    async def _get_json(
        self,
        service: str,
        url: str,
        *,
        params: dict[str, Any],
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_attempts: int = MAX_RETRIES,
    ) -> Any:
        """GET *url* and decode JSON, retrying timeouts and 5xx responses.

        *timeout* bounds each attempt as a whole, not only each socket phase,
        so a server trickling its body cannot hold the call open.
        """
        operation = f"GET {httpx.URL(url).path}"
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            t0 = time.perf_counter()
            try:
                response = await asyncio.wait_for(
                    self._client.request("GET", url, params=params, timeout=timeout),
                    timeout,
                )
                if response.status_code >= 400:
                    raise OpenDataAPIError(
                        f"{service} API error: {response.status_code} {response.reason_phrase}",
                        status_code=response.status_code,
                    )
                try:
                    data = response.json()
                except ValueError as exc:
                    raise OpenDataAPIError(f"{service} returned malformed JSON") from exc

                metrics.record_success(
                    service, operation, latency_ms=(time.perf_counter() - t0) * 1000,
                )
                return data

            except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
                last_error = OpenDataAPIError(f"{service} timed out after {timeout:.0f}s")
                logger.warning(
                    "%s attempt %d/%d timed out (%s)",
                    service, attempt, max_attempts, type(exc).__name__,
                )
            except httpx.TransportError as exc:
                last_error = exc
                logger.warning(
                    "%s attempt %d/%d failed (%s)",
                    service, attempt, max_attempts, type(exc).__name__,
                )
            except OpenDataAPIError as exc:
                if not (exc.status_code and exc.status_code >= 500):
                    metrics.record_failure(
                        service, operation, error_type=type(exc).__name__,
                        latency_ms=(time.perf_counter() - t0) * 1000,
                    )
                    raise  # 4xx and malformed payloads are not retried
                last_error = exc
                logger.warning(
                    "%s server error on attempt %d/%d", service, attempt, max_attempts,
                )

            metrics.record_failure(
                service, operation, error_type=type(last_error).__name__,
                latency_ms=(time.perf_counter() - t0) * 1000,
            )
            if attempt < max_attempts:
                await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        if max_attempts == 1:
            raise OpenDataAPIError(str(last_error))
        raise OpenDataAPIError(
            f"{service} request failed after {max_attempts} attempts: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    async def geocode(self, city_name: str) -> dict[str, Any] | None:
        """Return ``{"lat", "lon", "displayName"}`` for *city_name* (cached).

        Returns ``None`` when Nominatim knows no such place.
        """
        cache_key = f"{_CK_GEOCODE}{city_name.strip().lower()}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Cache: hit %s", cache_key)
            return cached

        data = await self._get_json(
            "nominatim",
            f"{NOMINATIM_BASE_URL}/search",
            params={"q": city_name, "format": "jsonv2", "limit": 1},
        )
        if not data:
            return None

        try:
            first = data[0]
            result = {
                "lat": float(first["lat"]),
                "lon": float(first["lon"]),
                "displayName": first["display_name"],
            }
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise OpenDataAPIError("nominatim returned an unexpected payload") from exc

        self._cache.put(cache_key, result)
        return result

    async def current_weather(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Return ``{"temperature": °C, "weather_code": WMO code}``."""
        data = await self._get_json(
            "open-meteo",
            f"{OPEN_METEO_BASE_URL}/v1/forecast",
            params={
                "latitude": latitude,
                "longitude": longitude,
                "current": "temperature_2m,weather_code",
            },
        )
        current = data.get("current") if isinstance(data, dict) else None
        if not current:
            raise OpenDataAPIError("weather data not available")

        try:
            return {
                "temperature": float(current["temperature_2m"]),
                "weather_code": int(current.get("weather_code", current.get("weathercode"))),
            }
        except (KeyError, TypeError, ValueError) as exc:
            raise OpenDataAPIError("open-meteo returned an unexpected payload") from exc

    async def current_time(self, latitude: float, longitude: float) -> dict[str, Any]:
        """Return the timeapi.io payload (date, time, timeZone, dayOfWeek, dstActive)."""
        data = await self._get_json(
            "timeapi",
            f"{TIME_API_BASE_URL}/api/Time/current/coordinate",
            params={"latitude": latitude, "longitude": longitude},
            timeout=TIME_API_TIMEOUT_SECONDS,
            max_attempts=1,
        )
        required = ("date", "time", "timeZone", "dayOfWeek")
        if not isinstance(data, dict) or any(key not in data for key in required):
            raise OpenDataAPIError("time data not available")
        return data


# ── Module-level singleton (thread-safe) ────────────────────────────
_client: OpenDataClient | None = None
_client_lock = threading.Lock()


def get_open_data_client() -> OpenDataClient:
    """Return a module-level OpenDataClient singleton."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = OpenDataClient()
    return _client


async def close_open_data_client() -> None:
    """Close the singleton's connection pool (server shutdown)."""
    global _client
    with _client_lock:
        client, _client = _client, None
    if client is not None:
        await client.aclose()
