"""
HostedSearch

Python client for a hosted, multi-tenant search REST service. Every API call
is dispatched across an ordered list of hosts with failover, short-term host
health tracking, tiered timeouts, and optional background execution with
cancellation.

Public API:
  SearchClient - Application-level client and endpoints
  Index - Per-index endpoints
  Query - Search parameters
  RequestOptions - Per-request headers
"""

__version__ = "1.0.0"

from HostedSearch.cache import ExpiringCache
from HostedSearch.client import RequestOptions, SearchClient
from HostedSearch.config import ClientConfig
from HostedSearch.index import Index
from HostedSearch.logging_config import configure_logging
from HostedSearch.query import Query
from HostedSearch.Transport import (
    AggregatedFailure,
    ClientRequestError,
    CompletionResult,
    ConfigurationError,
    DecodeError,
    FutureRequest,
    HostFailure,
    InlineExecutor,
    InvalidRequestError,
    LibraryVersion,
    RequestCancelled,
    SearchError,
    ServerError,
    TransportError,
)

__all__ = [
    "AggregatedFailure",
    "ClientConfig",
    "ClientRequestError",
    "CompletionResult",
    "ConfigurationError",
    "DecodeError",
    "ExpiringCache",
    "FutureRequest",
    "HostFailure",
    "Index",
    "InlineExecutor",
    "InvalidRequestError",
    "LibraryVersion",
    "Query",
    "RequestCancelled",
    "RequestOptions",
    "SearchClient",
    "SearchError",
    "ServerError",
    "TransportError",
    "__version__",
    "configure_logging",
]
