# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.__init__",
#   "purpose": "Multi-host request dispatch and failover.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Multi-host Request Dispatch & Failover

Turns one logical API call into ordered attempts against a pool of hosts:
- Role-scoped host lists (read vs. write), primary first
- Short-term host health tracking with a cool-down window
- Tiered timeouts (connect, standard read, search read)
- Fatal vs. retryable outcome classification
- Background execution with cancellable, serialized completion delivery

Public API:
  RequestDispatcher - Ordered dispatch with failover
  HostPool - Read/write host lists
  HostHealthTracker - Per-host up/down bookkeeping
  ResponseClassifier - Outcome classification
  FutureRequest - Cancellable background request
"""

from .classifier import Classification, ResponseClassifier, Verdict
from .dispatcher import RequestDispatcher
from .errors import (
    AggregatedFailure,
    ClientRequestError,
    ConfigurationError,
    DecodeError,
    HostFailure,
    InvalidRequestError,
    RequestCancelled,
    SearchError,
    ServerError,
    TransportError,
)
from .health import HostHealthTracker, HostStatus
from .hosts import HostPool, default_hosts
from .requests import FutureRequest, InlineExecutor
from .types import (
    CompletionResult,
    HostRole,
    HttpMethod,
    LibraryVersion,
    OperationKind,
    RequestAttempt,
    RequestDescriptor,
)

__all__ = [
    "AggregatedFailure",
    "Classification",
    "ClientRequestError",
    "CompletionResult",
    "ConfigurationError",
    "DecodeError",
    "FutureRequest",
    "HostFailure",
    "HostHealthTracker",
    "HostPool",
    "HostRole",
    "HostStatus",
    "HttpMethod",
    "InlineExecutor",
    "InvalidRequestError",
    "LibraryVersion",
    "OperationKind",
    "RequestAttempt",
    "RequestCancelled",
    "RequestDispatcher",
    "RequestDescriptor",
    "ResponseClassifier",
    "SearchError",
    "ServerError",
    "TransportError",
    "Verdict",
    "default_hosts",
]
