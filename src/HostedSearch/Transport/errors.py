# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.errors",
#   "purpose": "Error taxonomy for request dispatch: fatal vs. retryable failures.",
#   "sections": [
#     {"id": "searcherror", "name": "SearchError", "anchor": "class-searcherror", "kind": "class"},
#     {"id": "hostfailure", "name": "HostFailure", "anchor": "class-hostfailure", "kind": "class"},
#     {"id": "aggregatedfailure", "name": "AggregatedFailure", "anchor": "class-aggregatedfailure", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for request dispatch.

Responsibilities
----------------
- Separate **fatal** errors (the request itself is wrong, or the response is
  corrupt) from **retryable host failures** (the host is unreachable or
  broken). Only host failures trigger failover to the next host.
- Carry the HTTP status code when the error originates from the server.
- Aggregate per-host failures into a single terminal error once every
  candidate host has been tried.

Design Notes
------------
- ``HostFailure`` subclasses never escape the dispatcher individually; they
  are recorded and surfaced only through :class:`AggregatedFailure`.
- ``ConfigurationError`` also derives from ``ValueError`` so setters behave
  like ordinary argument validation for callers that catch ``ValueError``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from .types import RequestAttempt

__all__ = (
    "SearchError",
    "ConfigurationError",
    "InvalidRequestError",
    "ClientRequestError",
    "HostFailure",
    "TransportError",
    "ServerError",
    "DecodeError",
    "AggregatedFailure",
    "RequestCancelled",
)


class SearchError(Exception):
    """Any error encountered while processing a request."""

    def __init__(self, message: str, *, status_code: int = 0) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return False


class ConfigurationError(SearchError, ValueError):
    """Invalid client setup: empty host list, non-positive timeout, missing credentials."""


class InvalidRequestError(SearchError):
    """Request could not be built locally (e.g. body on a GET)."""


class ClientRequestError(SearchError):
    """Server rejected the request with a 4xx status."""

    def __init__(self, message: str, *, status_code: int, host: Optional[str] = None) -> None:
        super().__init__(message, status_code=status_code)
        self.host = host


class HostFailure(SearchError):
    """Retryable failure attributable to one host."""

    def __init__(self, message: str, *, host: str, status_code: int = 0) -> None:
        super().__init__(message, status_code=status_code)
        self.host = host

    @property
    def retryable(self) -> bool:
        return True


class TransportError(HostFailure):
    """DNS failure, refused/reset connection, timeout, TLS failure."""


class ServerError(HostFailure):
    """Server answered with a 5xx (or otherwise unusable) status."""


class DecodeError(SearchError):
    """Nominally successful response whose body could not be decoded."""

    def __init__(self, message: str, *, host: Optional[str] = None, status_code: int = 0) -> None:
        super().__init__(message, status_code=status_code)
        self.host = host


class AggregatedFailure(SearchError):
    """Every candidate host failed.

    Attributes:
        attempts: Per-host attempts in the order they were made
        last_error: The last host failure, also set as ``__cause__``
    """

    def __init__(self, attempts: Sequence["RequestAttempt"]) -> None:
        self.attempts = tuple(attempts)
        details = ", ".join(attempt.describe() for attempt in self.attempts)
        super().__init__(f"All hosts failed: [{details}]")
        self.last_error: Optional[BaseException] = (
            self.attempts[-1].error if self.attempts else None
        )
        self.__cause__ = self.last_error

    @property
    def errors(self) -> tuple[BaseException, ...]:
        return tuple(a.error for a in self.attempts if a.error is not None)

    @property
    def hosts(self) -> tuple[str, ...]:
        return tuple(a.host for a in self.attempts)


class RequestCancelled(SearchError):
    """Request was cancelled before it could complete."""
