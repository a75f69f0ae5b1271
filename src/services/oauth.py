"""Linear OAuth: code exchange, token refresh, token storage and lookup.

Tokens are stored per Linear workspace (organization id) behind the
``TokenStore`` protocol; the session loop only ever sees the access-token
string returned by :meth:`LinearCredentialProvider.get_access_token`.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Protocol
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, ValidationError

from src.config import (
    LINEAR_CLIENT_ID,
    LINEAR_CLIENT_SECRET,
    LINEAR_OAUTH_AUTHORIZE_URL,
    LINEAR_OAUTH_TOKEN_URL,
    PUBLIC_URL,
)

logger = logging.getLogger(__name__)

OAUTH_SCOPE = "read,write,app:assignable,app:mentionable"
OAUTH_TOKEN_KEY_PREFIX = "linear_oauth_token_"
REQUEST_TIMEOUT_SECONDS = 15.0
# Refresh tokens this long before they actually expire.
EXPIRY_BUFFER_SECONDS = 5 * 60


class OAuthError(Exception):
    """Raised when Linear rejects a code exchange or token refresh."""


class OAuthTokenResponse(BaseModel):
    access_token: str
    token_type: str = "Bearer"
    expires_in: int
    refresh_token: str | None = None
    scope: str | None = None


class StoredToken(BaseModel):
    access_token: str
    refresh_token: str | None = None
    expires_at: float  # Unix timestamp, seconds
    token_type: str = "Bearer"
    scope: str | None = None

    @classmethod
    def from_response(
        cls, response: OAuthTokenResponse, *, now: float | None = None,
    ) -> StoredToken:
        issued_at = time.time() if now is None else now
        return cls(
            access_token=response.access_token,
            refresh_token=response.refresh_token,
            expires_at=issued_at + response.expires_in,
            token_type=response.token_type,
            scope=response.scope,
        )

    def is_expired(self, *, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at - EXPIRY_BUFFER_SECONDS


def token_key(account_id: str) -> str:
    return f"{OAUTH_TOKEN_KEY_PREFIX}{account_id}"


# ── Token stores ─────────────────────────────────────────────────────


class TokenStore(Protocol):
    async def get(self, account_id: str) -> StoredToken | None: ...

    async def put(self, account_id: str, token: StoredToken) -> None: ...


class InMemoryTokenStore:
    def __init__(self) -> None:
        self._tokens: dict[str, StoredToken] = {}

    async def get(self, account_id: str) -> StoredToken | None:
        return self._tokens.get(token_key(account_id))

    async def put(self, account_id: str, token: StoredToken) -> None:
        self._tokens[token_key(account_id)] = token


class JsonFileTokenStore:
    """Keeps tokens in a local JSON file, one entry per workspace.

    Entries that no longer parse as a ``StoredToken`` (e.g. written by an
    older version) are treated as absent, forcing a fresh OAuth install.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, object]:
        try:
            return json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.error("Token store %s is corrupt; ignoring its contents", self._path)
            return {}

    def _write_entry(self, key: str, value: dict[str, object]) -> None:
        data = self._read_all()
        data[key] = value
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    async def get(self, account_id: str) -> StoredToken | None:
        async with self._lock:
            raw = (await asyncio.to_thread(self._read_all)).get(token_key(account_id))
        if raw is None:
            return None
        try:
            return StoredToken.model_validate(raw)
        except ValidationError:
            logger.warning("Found legacy token format for %s, treating as expired", account_id)
            return None

    async def put(self, account_id: str, token: StoredToken) -> None:
        async with self._lock:
            await asyncio.to_thread(self._write_entry, token_key(account_id), token.model_dump())


# ── OAuth client ─────────────────────────────────────────────────────


class LinearOAuthClient:
    """Talks to Linear's OAuth endpoints."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        redirect_uri: str | None = None,
    ):
        self._client_id = client_id or LINEAR_CLIENT_ID
        self._client_secret = client_secret or LINEAR_CLIENT_SECRET
        self.redirect_uri = redirect_uri or f"{PUBLIC_URL}/api/oauth/callback"

    def authorize_url(self) -> str:
        """URL of Linear's consent screen for installing the agent as an app actor."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": OAUTH_SCOPE,
            "actor": "app",
        }
        return f"{LINEAR_OAUTH_AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, form: dict[str, str]) -> OAuthTokenResponse:
        try:
            async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as client:
                response = await client.post(LINEAR_OAUTH_TOKEN_URL, data=form)
        except httpx.HTTPError as exc:
            raise OAuthError(f"Token request failed: {exc}") from exc

        if response.status_code >= 400:
            raise OAuthError(f"Token request failed: {response.status_code} {response.text}")
        try:
            return OAuthTokenResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise OAuthError("Malformed token response from Linear") from exc

    async def exchange_code(self, code: str) -> OAuthTokenResponse:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "code": code,
                "redirect_uri": self.redirect_uri,
            }
        )

    async def refresh(self, refresh_token: str) -> OAuthTokenResponse:
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "refresh_token": refresh_token,
            }
        )


# ── Credential provider ──────────────────────────────────────────────


class LinearCredentialProvider:
    """Resolves a usable access token for a workspace, refreshing when needed."""

    def __init__(self, store: TokenStore, oauth_client: LinearOAuthClient):
        self._store = store
        self._oauth = oauth_client

    async def save(self, account_id: str, response: OAuthTokenResponse) -> StoredToken:
        token = StoredToken.from_response(response)
        await self._store.put(account_id, token)
        return token

    async def get_access_token(self, account_id: str) -> str | None:
        """Return a valid access token for *account_id*, or ``None``.

        ``None`` means the workspace has not installed the app, or its token
        expired and could not be refreshed.
        """
        token = await self._store.get(account_id)
        if token is None:
            logger.info("No OAuth token stored for workspace %s", account_id)
            return None

        if not token.is_expired():
            return token.access_token

        if not token.refresh_token:
            logger.error("Token for %s expired and no refresh token is available", account_id)
            return None

        logger.info("Access token for %s expired, refreshing…", account_id)
        try:
            refreshed = await self._oauth.refresh(token.refresh_token)
        except OAuthError as e:
            logger.error("Failed to refresh token for %s: %s", account_id, e)
            return None

        if refreshed.refresh_token is None:
            refreshed = refreshed.model_copy(update={"refresh_token": token.refresh_token})
        new_token = await self.save(account_id, refreshed)
        logger.info("Token for %s refreshed successfully", account_id)
        return new_token.access_token
