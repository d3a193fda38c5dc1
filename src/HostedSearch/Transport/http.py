# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.http",
#   "purpose": "HTTPX client factory, per-attempt timeouts and authentication headers",
#   "sections": [
#     {"id": "build-http-client", "name": "build_http_client", "anchor": "function-build-http-client", "kind": "function"},
#     {"id": "timeout-for", "name": "timeout_for", "anchor": "function-timeout-for", "kind": "function"},
#     {"id": "apply-authentication", "name": "apply_authentication", "anchor": "function-apply-authentication", "kind": "function"},
#     {"id": "render-user-agent", "name": "render_user_agent", "anchor": "function-render-user-agent", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX plumbing for request dispatch.

**Purpose**
-----------
- Build the connection-pooled ``httpx.Client`` a search client sends through
- Translate a :class:`RequestDescriptor` into per-attempt ``httpx.Timeout``
- Assemble authentication headers, moving oversized API keys into the body

**Oversized API keys**
----------------------
Some HTTP intermediaries silently truncate very long header values. API keys
longer than :data:`MAX_API_KEY_LENGTH` are therefore sent as an ``apiKey``
field of the JSON body when the method can carry one. A POST/PUT without a
body gets ``{"apiKey": ...}`` as its body. GET/DELETE requests cannot carry a
body and keep the key in the header.
"""

from __future__ import annotations

import json
import logging
import platform
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import httpx

from .errors import InvalidRequestError
from .types import HttpMethod, LibraryVersion, RequestDescriptor

LOGGER = logging.getLogger(__name__)

APPLICATION_ID_HEADER = "X-Algolia-Application-Id"
API_KEY_HEADER = "X-Algolia-API-Key"
API_KEY_BODY_FIELD = "apiKey"
JSON_CONTENT_TYPE = "application/json; charset=UTF-8"

MAX_API_KEY_LENGTH = 500
"""Longest API key sent as a header; longer keys go in the request body."""


# ============================================================================
# Client Construction
# ============================================================================


def build_http_client(
    *,
    max_connections: int = 10,
    max_keepalive_connections: int = 5,
    verify_tls: bool = True,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Build the shared HTTPX client for one search client.

    Timeouts are not set here: every attempt passes its own
    :func:`timeout_for` value. Redirects are not followed.
    """
    limits = httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_keepalive_connections,
    )
    client = httpx.Client(
        transport=transport,
        limits=limits,
        verify=verify_tls,
        headers={"Accept": "application/json", "Accept-Encoding": "gzip"},
        follow_redirects=False,
    )
    LOGGER.debug(
        "HTTPX client created: max_connections=%s keepalive=%s verify=%s",
        max_connections,
        max_keepalive_connections,
        verify_tls,
    )
    return client


def timeout_for(descriptor: RequestDescriptor) -> httpx.Timeout:
    """Per-attempt timeout: connect tier plus the descriptor's read tier."""
    read_s = descriptor.request_timeout_ms / 1000.0
    return httpx.Timeout(
        read_s,
        connect=descriptor.connect_timeout_ms / 1000.0,
    )


# ============================================================================
# Headers
# ============================================================================


def default_user_agents() -> Tuple[LibraryVersion, ...]:
    from HostedSearch import __version__

    return (
        LibraryVersion("HostedSearch for Python", __version__),
        LibraryVersion(platform.python_implementation(), platform.python_version()),
    )


def render_user_agent(versions: Iterable[LibraryVersion]) -> str:
    """Render ``"Name (x.y); Other (z)"``."""
    return "; ".join(str(v) for v in versions)


def _patch_body(body: Optional[str], api_key: str) -> str:
    if body is None or not body.strip():
        payload: Dict[str, Any] = {}
    else:
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise InvalidRequestError(f"Failed to patch JSON body: {exc}") from exc
        if not isinstance(payload, dict):
            raise InvalidRequestError("Failed to patch JSON body: body is not a JSON object")
    payload[API_KEY_BODY_FIELD] = api_key
    return json.dumps(payload)


def apply_authentication(
    method: HttpMethod,
    body: Optional[str],
    *,
    application_id: str,
    api_key: Optional[str],
) -> Tuple[Dict[str, str], Optional[str]]:
    """Return ``(auth_headers, body)`` for one request.

    Raises:
        InvalidRequestError: the key must go in the body but the body is not a JSON object.
    """
    headers = {APPLICATION_ID_HEADER: application_id}
    if api_key and len(api_key) > MAX_API_KEY_LENGTH and method.allows_body:
        return headers, _patch_body(body, api_key)
    if api_key:
        headers[API_KEY_HEADER] = api_key
    return headers, body


def build_headers(
    *,
    auth_headers: Mapping[str, str],
    client_headers: Mapping[str, str],
    request_headers: Mapping[str, str],
    user_agent: str,
    has_body: bool,
) -> Dict[str, str]:
    """Merge header layers; later layers win, auth headers always win."""
    headers: Dict[str, str] = {}
    headers.update(client_headers)
    headers.update(request_headers)
    headers.update(auth_headers)
    headers["User-Agent"] = user_agent
    if has_body:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    return headers


__all__ = [
    "API_KEY_BODY_FIELD",
    "API_KEY_HEADER",
    "APPLICATION_ID_HEADER",
    "MAX_API_KEY_LENGTH",
    "apply_authentication",
    "build_headers",
    "build_http_client",
    "default_user_agents",
    "render_user_agent",
    "timeout_for",
]
