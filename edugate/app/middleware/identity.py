"""Caller identity helpers.

Authentication runs upstream and attaches the caller to the request as
``request.state.user`` (a mapping or an object with ``id``/``_id``, ``role``
and ``subscription``) and optionally ``request.state.user_id``. These
helpers read that identity without assuming which shape is present.
"""

import json
from typing import Any, Mapping, Optional

from fastapi import Request

from edugate.app.core.config import settings


def client_address(request: Request, trust_proxy: Optional[bool] = None) -> str:
    """Network origin of the request.

    Uses the first X-Forwarded-For hop when proxies are trusted, otherwise
    the socket peer. Always returns a value so it can serve as the last
    resort of every key derivation chain.
    """
    if trust_proxy is None:
        trust_proxy = settings.trust_proxy
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first = forwarded.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else "unknown"


def get_user(request: Request) -> Any:
    return getattr(request.state, "user", None)


def user_attr(user: Any, name: str) -> Any:
    """Read ``name`` from a user given as a mapping or an object."""
    if user is None:
        return None
    if isinstance(user, Mapping):
        return user.get(name)
    return getattr(user, name, None)


def user_identifier(request: Request) -> Optional[str]:
    """Best available identifier for the authenticated caller, if any."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return str(user_id)
    user = get_user(request)
    for field in ("id", "_id"):
        value = user_attr(user, field)
        if value:
            return str(value)
    return None


async def read_json_body(request: Request) -> dict[str, Any]:
    """Parsed JSON body as a dict; empty when absent or unparseable."""
    content_type = request.headers.get("content-type", "")
    if "json" not in content_type:
        return {}
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}
