"""Centralized configuration for the Linear weather agent.

Every value is read once from the environment (a ``.env`` file is loaded
first for local development).  Only the model provider key is mandatory;
the Linear OAuth / webhook settings are checked where they are used so the
CLI can run without a Linear app.
"""

from __future__ import annotations

import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _require_env(name: str) -> str:
    """Return a config value from the environment, or raise a clear error."""
    value = os.getenv(name)
    if value and not value.startswith("your_"):
        return value

    raise OSError(
        f"Missing required configuration: {name}. "
        "Set it in the environment or in a local .env file."
    )


def _optional_env(name: str, default: str = "") -> str:
    """Return a config value, treating ``your_*`` placeholders as unset."""
    value = os.getenv(name, default)
    if value.startswith("your_"):
        logger.debug("Ignoring placeholder value for %s", name)
        return default
    return value


# ── LLM ─────────────────────────────────────────────────────────────
ANTHROPIC_API_KEY: str = _require_env("ANTHROPIC_API_KEY")
MODEL_NAME: str = os.getenv("MODEL_NAME", "claude-sonnet-4-5")
MODEL_TEMPERATURE: float = float(os.getenv("MODEL_TEMPERATURE", "0.1"))
MODEL_MAX_TOKENS: int = int(os.getenv("MODEL_MAX_TOKENS", "1024"))

# ── Session loop ────────────────────────────────────────────────────
MAX_ITERATIONS: int = int(os.getenv("MAX_ITERATIONS", "10"))
PACING_SECONDS: float = float(os.getenv("PACING_SECONDS", "1.0"))

# ── Linear ──────────────────────────────────────────────────────────
LINEAR_CLIENT_ID: str = _optional_env("LINEAR_CLIENT_ID")
LINEAR_CLIENT_SECRET: str = _optional_env("LINEAR_CLIENT_SECRET")
LINEAR_WEBHOOK_SECRET: str = _optional_env("LINEAR_WEBHOOK_SECRET")
LINEAR_API_URL: str = "https://api.linear.app/graphql"
LINEAR_OAUTH_AUTHORIZE_URL: str = "https://linear.app/oauth/authorize"
LINEAR_OAUTH_TOKEN_URL: str = "https://api.linear.app/oauth/token"
PUBLIC_URL: str = os.getenv("PUBLIC_URL", "http://localhost:8000").rstrip("/")
TOKEN_STORE_PATH: str = os.getenv("TOKEN_STORE_PATH", ".linear_tokens.json")

# ── Open data APIs (no keys required) ───────────────────────────────
NOMINATIM_BASE_URL: str = "https://nominatim.openstreetmap.org"
OPEN_METEO_BASE_URL: str = "https://api.open-meteo.com"
TIME_API_BASE_URL: str = "https://timeapi.io"
HTTP_USER_AGENT: str = os.getenv(
    "HTTP_USER_AGENT", "Linear-Weather-Agent/1.0 (+https://linear.app)",
)

# ── Server ──────────────────────────────────────────────────────────
SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
SERVER_RELOAD: bool = os.getenv("SERVER_RELOAD", "false").lower() == "true"

# ── Logging ─────────────────────────────────────────────────────────
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
_HTTP_LOGGERS = ("httpx", "httpcore")


def configure_logging(app_level: int = logging.INFO, root_level: int = logging.WARNING) -> None:
    """Install the shared log format.

    Our own ``src.*`` loggers log at *app_level*; everything else, notably
    the per-request lines from httpx, stays at *root_level*.
    """
    logging.basicConfig(level=root_level, format=LOG_FORMAT)
    http_level = logging.DEBUG if root_level <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)
    logging.getLogger("src").setLevel(app_level)
