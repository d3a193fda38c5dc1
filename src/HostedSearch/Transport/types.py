"""Core value types for multi-host request dispatch.

This module defines the small, immutable values that flow between the host
pool, the dispatcher, and the asynchronous request wrapper:

- HostRole: which configured host list a request targets
- HttpMethod: supported HTTP verbs and whether they may carry a body
- OperationKind: tagged variant selecting host role and read-timeout tier
- RequestDescriptor: one logical API call, constructed per call
- RequestAttempt: outcome of one try against one host
- CompletionResult: payload-or-error pair delivered to completion handlers
- LibraryVersion: one entry of the ``User-Agent`` header

All dataclasses are frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Mapping, Optional, Union

from .errors import ConfigurationError, InvalidRequestError

# ============================================================================
# Roles, methods, operation kinds
# ============================================================================


class HostRole(str, Enum):
    """Host list a request is routed to."""

    READ = "read"
    WRITE = "write"


class HttpMethod(str, Enum):
    """HTTP methods understood by the dispatcher."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"

    @property
    def allows_body(self) -> bool:
        return self in (HttpMethod.POST, HttpMethod.PUT)


class OperationKind(str, Enum):
    """Kind of API operation.

    The kind decides both the host list (read vs. write) and the read timeout
    tier (search vs. standard).
    """

    SEARCH = "search"  # Interactive reads, short read timeout
    READ = "read"  # Non-interactive reads (objects, settings, tasks)
    WRITE = "write"  # Indexing and administration

    @property
    def role(self) -> HostRole:
        return HostRole.WRITE if self is OperationKind.WRITE else HostRole.READ

    @property
    def is_search(self) -> bool:
        return self is OperationKind.SEARCH


Payload = Union[Mapping[str, Any], bytes]

AttemptOutcome = Literal[
    "success",  # 2xx with a decodable body
    "transport_error",  # Network-level failure before a status was read
    "http_error",  # Non-2xx status
]

# ============================================================================
# RequestDescriptor
# ============================================================================


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one logical API call.

    Attributes:
        method: HTTP method
        path: URL path including the query string (e.g. ``/1/indexes/foo?query=bar``)
        body: Optional JSON text sent as the request entity
        kind: Operation kind (selects timeout tier)
        connect_timeout_ms: Connection timeout per attempt
        request_timeout_ms: Read timeout per attempt
        headers: Extra per-request headers

    Example:
        ```python
        descriptor = RequestDescriptor(
            method=HttpMethod.GET,
            path="/1/indexes/contacts?query=jim",
            kind=OperationKind.SEARCH,
            connect_timeout_ms=2000,
            request_timeout_ms=5000,
        )
        ```
    """

    method: HttpMethod = field()
    path: str = field()
    body: Optional[str] = field(default=None)
    kind: OperationKind = field(default=OperationKind.READ)
    connect_timeout_ms: int = field(default=2000)
    request_timeout_ms: int = field(default=30000)
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate descriptor fields."""
        if not self.path.startswith("/"):
            msg = f"path must start with '/', got {self.path!r}"
            raise InvalidRequestError(msg)
        if self.connect_timeout_ms <= 0 or self.request_timeout_ms <= 0:
            msg = (
                "timeouts must be positive, got "
                f"connect={self.connect_timeout_ms} request={self.request_timeout_ms}"
            )
            raise ConfigurationError(msg)

    @property
    def is_search(self) -> bool:
        return self.kind.is_search

    @property
    def role(self) -> HostRole:
        return self.kind.role


# ============================================================================
# RequestAttempt
# ============================================================================


@dataclass(frozen=True)
class RequestAttempt:
    """Outcome of a single attempt against one host."""

    host: str
    elapsed_ms: int
    outcome: AttemptOutcome
    error: Optional[BaseException] = None
    status: Optional[int] = None

    def describe(self) -> str:
        return f"{self.host}: {self.error!r}" if self.error else f"{self.host}: {self.outcome}"


# ============================================================================
# CompletionResult
# ============================================================================


@dataclass(frozen=True)
class CompletionResult:
    """Payload-or-error pair delivered to a completion handler.

    Exactly one of ``payload`` / ``error`` is set.
    """

    payload: Optional[Payload] = None
    error: Optional[BaseException] = None

    def __post_init__(self) -> None:
        if (self.payload is None) == (self.error is None):
            msg = "exactly one of payload/error must be set"
            raise ValueError(msg)

    @property
    def ok(self) -> bool:
        return self.error is None


# ============================================================================
# LibraryVersion
# ============================================================================


@dataclass(frozen=True)
class LibraryVersion:
    """A software library name and version, rendered into ``User-Agent``."""

    name: str
    version: str

    def __str__(self) -> str:
        return f"{self.name} ({self.version})"


__all__ = [
    "AttemptOutcome",
    "CompletionResult",
    "HostRole",
    "HttpMethod",
    "LibraryVersion",
    "OperationKind",
    "Payload",
    "RequestAttempt",
    "RequestDescriptor",
]
