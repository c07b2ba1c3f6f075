"""Shared fixtures for the admission layer tests."""

import json
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.requests import Request

from edugate.app.core.config import Settings

_ENV_VARS = (
    "NODE_ENV",
    "APP_ENV",
    "ENVIRONMENT",
    "REDIS_URL",
    "AUTH_RATE_LIMIT_MAX",
    "AI_RATE_LIMIT_MAX",
    "RATE_LIMIT_WINDOW_MS",
    "RATE_LIMIT_MAX_REQUESTS",
    "TRUST_PROXY",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the host environment from leaking into Settings()."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


def make_request(
    path: str = "/api/test",
    method: str = "GET",
    client_host: Optional[str] = "1.2.3.4",
    headers: Optional[dict[str, str]] = None,
    json_body: Any = None,
    user: Any = None,
    user_id: Any = None,
) -> Request:
    """Build a bare Starlette request, optionally with a JSON body and identity."""
    raw_headers = []
    body = b""
    if json_body is not None:
        body = json.dumps(json_body).encode()
        raw_headers.append((b"content-type", b"application/json"))
    for name, value in (headers or {}).items():
        raw_headers.append((name.lower().encode(), value.encode()))

    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": raw_headers,
        "client": (client_host, 50000) if client_host else None,
        "server": ("testserver", 80),
        "state": {},
    }

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    request = Request(scope, receive)
    if user is not None:
        request.state.user = user
    if user_id is not None:
        request.state.user_id = user_id
    return request


@pytest.fixture
def mock_redis():
    """Redis client double: ping/eval/zrem/aclose are AsyncMocks."""
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=[1, 9, 60000])
    client.zrem = AsyncMock(return_value=1)
    client.aclose = AsyncMock()
    return client
