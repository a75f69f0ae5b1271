"""Shared test fixtures for the Linear weather agent test suite."""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.messages import AIMessage


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ.setdefault("LINEAR_CLIENT_ID", "test-linear-client-id")
    os.environ.setdefault("LINEAR_CLIENT_SECRET", "test-linear-client-secret")
    os.environ.setdefault("LINEAR_WEBHOOK_SECRET", "test-webhook-secret")
    os.environ.setdefault("PACING_SECONDS", "0")
    os.environ["METRICS_ENABLED"] = "false"


@pytest.fixture
def mock_http_response():
    """Factory fixture for creating mock httpx responses."""

    def _make(data, status_code: int = 200, reason: str = "OK"):
        mock = MagicMock()
        mock.status_code = status_code
        mock.reason_phrase = reason
        mock.json.return_value = data
        mock.text = str(data)
        return mock

    return _make


@pytest.fixture
def scripted_llm():
    """Factory fixture for a chat model that replies with a fixed script.

    Each ``ainvoke`` call returns the next reply as an ``AIMessage``.
    """

    def _make(*replies: str):
        llm = MagicMock()
        llm.ainvoke = AsyncMock(side_effect=[AIMessage(content=r) for r in replies])
        return llm

    return _make
