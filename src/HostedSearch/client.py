# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.client",
#   "purpose": "Search client owning the transport components and client-level endpoints.",
#   "sections": [
#     {"id": "requestoptions", "name": "RequestOptions", "anchor": "class-requestoptions", "kind": "class"},
#     {"id": "searchclient", "name": "SearchClient", "anchor": "class-searchclient", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""
Search Client

Entry point of the SDK. A :class:`SearchClient` owns, for one application:

- the validated :class:`ClientConfig` (timeouts, hosts, pool sizes)
- a :class:`HostPool` with the read and write host lists
- a :class:`HostHealthTracker` shared by every request it sends
- one pooled ``httpx.Client`` and the :class:`RequestDispatcher` wrapping it
- a request executor and a completion executor for asynchronous calls

Every endpoint exists in a blocking form, which returns the decoded payload
or raises, and in an ``*_async`` form, which returns a :class:`FutureRequest`
and reports ``(payload, None)`` or ``(None, error)`` to a completion handler.

Example:
    ```python
    with SearchClient("APPID", "key") as client:
        index = client.init_index("contacts")
        hits = index.search(Query("jimmie"))
    ```
"""

from __future__ import annotations

import json
import logging
import random
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import httpx

from HostedSearch.cache import ExpiringCache
from HostedSearch.config import ClientConfig, load_client_config, update_client_config
from HostedSearch.query import Query
from HostedSearch.Transport.dispatcher import CancelSignal, RequestDispatcher
from HostedSearch.Transport.errors import ConfigurationError, InvalidRequestError
from HostedSearch.Transport.health import HostHealthTracker
from HostedSearch.Transport.hosts import HostPool
from HostedSearch.Transport.http import build_http_client, default_user_agents, render_user_agent
from HostedSearch.Transport.requests import (
    COMPLETION_THREAD_PREFIX,
    REQUEST_THREAD_PREFIX,
    CompletionHandler,
    FutureRequest,
    new_completion_executor,
    new_request_executor,
)
from HostedSearch.Transport.types import (
    HttpMethod,
    LibraryVersion,
    OperationKind,
    Payload,
    RequestDescriptor,
)

LOGGER = logging.getLogger(__name__)

Body = Union[str, Mapping[str, Any], Sequence[Any], None]

INDEX_HANDLE_CACHE_SIZE = 64
INDEX_HANDLE_TTL_S = 3600.0

MULTIPLE_QUERIES_STRATEGIES = ("none", "stopIfEnoughMatches")


def encode_path_segment(value: str) -> str:
    """Percent-encode one URL path segment (``/`` included)."""
    return quote(value, safe="")


def _encode_body(body: Body) -> Optional[str]:
    if body is None or isinstance(body, str):
        return body
    try:
        return json.dumps(body)
    except (TypeError, ValueError) as exc:
        raise InvalidRequestError(f"Request body is not JSON serializable: {exc}") from exc


class RequestOptions:
    """Per-request parameters that are not part of the endpoint's arguments.

    Currently only extra HTTP headers. Headers set here override the client's
    own custom headers for that request; authentication headers always win.
    """

    def __init__(self, headers: Optional[Mapping[str, str]] = None) -> None:
        self.headers: Dict[str, str] = dict(headers or {})

    def set_header(self, name: str, value: Optional[str]) -> "RequestOptions":
        if value is None:
            self.headers.pop(name, None)
        else:
            self.headers[name] = value
        return self

    def get_header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    def __repr__(self) -> str:
        return f"RequestOptions(headers={self.headers!r})"


class SearchClient:
    """Client for one search application.

    Args:
        application_id: Application identifier.
        api_key: API key; keys longer than 500 characters travel in the body
            of POST/PUT requests.
        hosts: Same hosts for reads and writes (overrides the defaults).
        read_hosts: Explicit read hosts.
        write_hosts: Explicit write hosts.
        http_client: Pre-built ``httpx.Client``; the caller keeps ownership.
        request_executor: Executor running asynchronous requests.
        completion_executor: Executor delivering completion handlers.
        rng: Random source used to shuffle the default fallback hosts.
        tracker: Host health tracker to share or to drive with a custom clock.
        **settings: Any other :class:`ClientConfig` field
            (``search_timeout_ms``, ``host_down_delay_ms``, ...).

    Raises:
        ConfigurationError: missing credentials, empty host lists, or an
            invalid setting.
    """

    def __init__(
        self,
        application_id: str,
        api_key: str,
        *,
        hosts: Optional[Sequence[str]] = None,
        read_hosts: Optional[Sequence[str]] = None,
        write_hosts: Optional[Sequence[str]] = None,
        http_client: Optional[httpx.Client] = None,
        request_executor: Optional[Executor] = None,
        completion_executor: Optional[Executor] = None,
        rng: Optional[random.Random] = None,
        tracker: Optional[HostHealthTracker] = None,
        **settings: Any,
    ) -> None:
        if hosts is not None:
            read_hosts = read_hosts if read_hosts is not None else list(hosts)
            write_hosts = write_hosts if write_hosts is not None else list(hosts)
        self.config: ClientConfig = load_client_config(
            application_id=application_id,
            api_key=api_key,
            read_hosts=list(read_hosts) if read_hosts is not None else None,
            write_hosts=list(write_hosts) if write_hosts is not None else None,
            **settings,
        )

        defaults = HostPool.default(self.config.application_id, rng)
        self.pool = HostPool(
            self.config.read_hosts or defaults.read_hosts,
            self.config.write_hosts or defaults.write_hosts,
        )
        self.tracker = tracker if tracker is not None else HostHealthTracker()

        self._headers: Dict[str, str] = dict(self.config.headers)
        self._user_agents: List[LibraryVersion] = list(default_user_agents())
        self._user_agent = render_user_agent(self._user_agents)
        self._lock = threading.Lock()

        self._owns_http_client = http_client is None
        self._http_client = http_client or build_http_client(
            max_connections=self.config.max_connections,
            verify_tls=self.config.verify_tls,
        )
        self.dispatcher = RequestDispatcher(
            self._http_client,
            application_id=self.config.application_id,
            api_key=self.config.api_key,
            tracker=self.tracker,
            headers=self._headers,
            user_agent=lambda: self._user_agent,
            scheme=self.config.scheme,
        )

        # (executor, thread name prefix) pairs shut down by close()
        self._owned_executors: List[Tuple[ThreadPoolExecutor, str]] = []
        if request_executor is None:
            request_executor = new_request_executor(self.config.request_workers)
            self._owned_executors.append((request_executor, REQUEST_THREAD_PREFIX))
        self._request_executor: Executor = request_executor
        if completion_executor is None:
            completion_executor = new_completion_executor()
            self._owned_executors.append((completion_executor, COMPLETION_THREAD_PREFIX))
        self._completion_executor: Executor = completion_executor

        self._indices: ExpiringCache[str, Any] = ExpiringCache(
            ttl_s=INDEX_HANDLE_TTL_S, max_size=INDEX_HANDLE_CACHE_SIZE
        )
        self._closed = False
        LOGGER.debug("Search client created for %s: %r", self.config.application_id, self.pool)

    # ── Accessors ─────────────────────────────────────────────────────────

    @property
    def application_id(self) -> str:
        return self.config.application_id

    @property
    def read_hosts(self) -> Tuple[str, ...]:
        return self.pool.read_hosts

    @property
    def write_hosts(self) -> Tuple[str, ...]:
        return self.pool.write_hosts

    def set_read_hosts(self, hosts: Iterable[str]) -> None:
        self.pool.set_read_hosts(hosts)

    def set_write_hosts(self, hosts: Iterable[str]) -> None:
        self.pool.set_write_hosts(hosts)

    def set_hosts(self, hosts: Iterable[str]) -> None:
        """Use the same hosts for reads and writes."""
        self.pool.set_hosts(hosts)

    @property
    def connect_timeout_ms(self) -> int:
        return self.config.connect_timeout_ms

    def set_connect_timeout(self, timeout_ms: int) -> None:
        update_client_config(self.config, "connect_timeout_ms", timeout_ms)

    @property
    def read_timeout_ms(self) -> int:
        return self.config.read_timeout_ms

    def set_read_timeout(self, timeout_ms: int) -> None:
        update_client_config(self.config, "read_timeout_ms", timeout_ms)

    @property
    def search_timeout_ms(self) -> int:
        return self.config.search_timeout_ms

    def set_search_timeout(self, timeout_ms: int) -> None:
        update_client_config(self.config, "search_timeout_ms", timeout_ms)

    @property
    def host_down_delay_ms(self) -> int:
        return self.config.host_down_delay_ms

    def set_host_down_delay(self, delay_ms: int) -> None:
        update_client_config(self.config, "host_down_delay_ms", delay_ms)

    # ── Headers & user agent ──────────────────────────────────────────────

    def set_header(self, name: str, value: Optional[str]) -> None:
        """Set a header sent with every request; ``None`` removes it."""
        with self._lock:
            if value is None:
                self._headers.pop(name, None)
            else:
                self._headers[name] = value

    def get_header(self, name: str) -> Optional[str]:
        return self._headers.get(name)

    @property
    def user_agents(self) -> Tuple[LibraryVersion, ...]:
        return tuple(self._user_agents)

    @property
    def user_agent(self) -> str:
        return self._user_agent

    def add_user_agent(self, version: LibraryVersion) -> None:
        """Append a library to the ``User-Agent`` header (no duplicates)."""
        with self._lock:
            if version not in self._user_agents:
                self._user_agents.append(version)
                self._user_agent = render_user_agent(self._user_agents)

    def remove_user_agent(self, version: LibraryVersion) -> None:
        with self._lock:
            if version in self._user_agents:
                self._user_agents.remove(version)
                self._user_agent = render_user_agent(self._user_agents)

    def has_user_agent(self, version: LibraryVersion) -> bool:
        return version in self._user_agents

    # ── Executors ─────────────────────────────────────────────────────────

    @property
    def completion_executor(self) -> Executor:
        return self._completion_executor

    def set_completion_executor(self, executor: Executor) -> None:
        """Deliver completion handlers on ``executor`` from now on."""
        self._completion_executor = executor

    # ── Dispatch ──────────────────────────────────────────────────────────

    def _descriptor(
        self,
        method: HttpMethod,
        path: str,
        body: Body = None,
        *,
        kind: OperationKind,
        options: Optional[RequestOptions] = None,
    ) -> RequestDescriptor:
        timeout_ms = (
            self.config.search_timeout_ms if kind.is_search else self.config.read_timeout_ms
        )
        return RequestDescriptor(
            method=method,
            path=path,
            body=_encode_body(body),
            kind=kind,
            connect_timeout_ms=self.config.connect_timeout_ms,
            request_timeout_ms=timeout_ms,
            headers=dict(options.headers) if options is not None else {},
        )

    def _execute(
        self,
        descriptor: RequestDescriptor,
        *,
        raw: bool = False,
        cancel_event: Optional[CancelSignal] = None,
    ) -> Payload:
        if self._closed:
            raise ConfigurationError("client is closed")
        hosts = self.pool.eligible_hosts(
            descriptor.role, self.tracker, self.config.host_down_delay_ms
        )
        return self.dispatcher.dispatch(descriptor, hosts, raw=raw, cancel_event=cancel_event)

    def _execute_async(
        self,
        build: Callable[[], RequestDescriptor],
        completion_handler: Optional[CompletionHandler],
        *,
        raw: bool = False,
        evict: Optional[str] = None,
    ) -> FutureRequest:
        """Build and send a request in the background.

        ``build`` runs on the request executor, so a request that fails
        validation reaches ``completion_handler`` like any other error.
        ``evict`` names an index handle dropped once the request succeeds.
        """

        def work(cancel_event: threading.Event) -> Payload:
            payload = self._execute(build(), raw=raw, cancel_event=cancel_event)
            if evict is not None:
                self._indices.pop(evict)
            return payload

        return self._future(work, completion_handler)

    def _future(
        self,
        work: Callable[[threading.Event], Payload],
        completion_handler: Optional[CompletionHandler],
    ) -> FutureRequest:
        return FutureRequest(
            work, completion_handler, self._request_executor, self._completion_executor
        ).start()

    def submit(
        self, work: Callable[[], Payload], on_complete: Optional[CompletionHandler]
    ) -> FutureRequest:
        """Run arbitrary blocking ``work`` in the background.

        ``on_complete`` receives ``(payload, None)`` or ``(None, error)``.
        """
        return self._future(lambda _cancel_event: work(), on_complete)

    # ── Low-level verbs ───────────────────────────────────────────────────

    def get_request(
        self,
        path: str,
        *,
        search: bool = False,
        raw: bool = False,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """GET ``path`` from the read hosts."""
        kind = OperationKind.SEARCH if search else OperationKind.READ
        return self._execute(
            self._descriptor(HttpMethod.GET, path, kind=kind, options=options), raw=raw
        )

    def post_request(
        self,
        path: str,
        body: Body,
        *,
        read_operation: bool = False,
        raw: bool = False,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """POST ``body`` to ``path``.

        Read operations (multi-gets, multi-queries) go to the read hosts with
        the search timeout; everything else goes to the write hosts.
        """
        kind = OperationKind.SEARCH if read_operation else OperationKind.WRITE
        return self._execute(
            self._descriptor(HttpMethod.POST, path, body, kind=kind, options=options), raw=raw
        )

    def put_request(
        self, path: str, body: Body, *, options: Optional[RequestOptions] = None
    ) -> Payload:
        return self._execute(
            self._descriptor(
                HttpMethod.PUT, path, body, kind=OperationKind.WRITE, options=options
            )
        )

    def delete_request(self, path: str, *, options: Optional[RequestOptions] = None) -> Payload:
        return self._execute(
            self._descriptor(HttpMethod.DELETE, path, kind=OperationKind.WRITE, options=options)
        )

    # ── Indexes ───────────────────────────────────────────────────────────

    def init_index(self, index_name: str) -> "Index":
        """Return a handle on ``index_name``; handles are cached and reused."""
        from HostedSearch.index import Index

        if not index_name:
            raise InvalidRequestError("index name cannot be empty")
        index = self._indices.get(index_name)
        if index is None:
            index = Index(self, index_name)
            self._indices.put(index_name, index)
        return index

    get_index = init_index

    def _list_indexes(self, options: Optional[RequestOptions]) -> RequestDescriptor:
        return self._descriptor(
            HttpMethod.GET, "/1/indexes", kind=OperationKind.READ, options=options
        )

    def list_indexes(self, *, options: Optional[RequestOptions] = None) -> Payload:
        """List all indexes of the application."""
        return self._execute(self._list_indexes(options))

    def list_indexes_async(
        self,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(lambda: self._list_indexes(options), completion_handler)

    def _delete_index(self, index_name: str, options: Optional[RequestOptions]) -> RequestDescriptor:
        return self._descriptor(
            HttpMethod.DELETE,
            f"/1/indexes/{encode_path_segment(index_name)}",
            kind=OperationKind.WRITE,
            options=options,
        )

    def delete_index(self, index_name: str, *, options: Optional[RequestOptions] = None) -> Payload:
        """Delete an index and all its settings."""
        payload = self._execute(self._delete_index(index_name, options))
        self._indices.pop(index_name)
        return payload

    def delete_index_async(
        self,
        index_name: str,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(
            lambda: self._delete_index(index_name, options), completion_handler, evict=index_name
        )

    def _index_operation(
        self,
        operation: str,
        src_index_name: str,
        dst_index_name: str,
        options: Optional[RequestOptions],
    ) -> RequestDescriptor:
        return self._descriptor(
            HttpMethod.POST,
            f"/1/indexes/{encode_path_segment(src_index_name)}/operation",
            {"operation": operation, "destination": dst_index_name},
            kind=OperationKind.WRITE,
            options=options,
        )

    def move_index(
        self,
        src_index_name: str,
        dst_index_name: str,
        *,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """Move (rename) an index; the destination is overwritten if it exists."""
        payload = self._execute(
            self._index_operation("move", src_index_name, dst_index_name, options)
        )
        self._indices.pop(src_index_name)
        return payload

    def move_index_async(
        self,
        src_index_name: str,
        dst_index_name: str,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(
            lambda: self._index_operation("move", src_index_name, dst_index_name, options),
            completion_handler,
            evict=src_index_name,
        )

    def copy_index(
        self,
        src_index_name: str,
        dst_index_name: str,
        *,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """Copy an index; the destination is overwritten if it exists."""
        return self._execute(self._index_operation("copy", src_index_name, dst_index_name, options))

    def copy_index_async(
        self,
        src_index_name: str,
        dst_index_name: str,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(
            lambda: self._index_operation("copy", src_index_name, dst_index_name, options),
            completion_handler,
        )

    def _multiple_queries(
        self,
        queries: Iterable[Tuple[str, Query]],
        strategy: Optional[str],
        options: Optional[RequestOptions],
    ) -> RequestDescriptor:
        if strategy is not None and strategy not in MULTIPLE_QUERIES_STRATEGIES:
            raise InvalidRequestError(f"unknown multiple queries strategy: {strategy!r}")
        requests = [
            {"indexName": index_name, "params": query.build()} for index_name, query in queries
        ]
        body: Dict[str, Any] = {"requests": requests}
        if strategy is not None:
            body["strategy"] = strategy
        return self._descriptor(
            HttpMethod.POST,
            "/1/indexes/*/queries",
            body,
            kind=OperationKind.SEARCH,
            options=options,
        )

    def multiple_queries(
        self,
        queries: Iterable[Tuple[str, Query]],
        strategy: Optional[str] = None,
        *,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """Run several ``(index_name, query)`` searches in one API call.

        Args:
            queries: Pairs of index name and query.
            strategy: ``"none"`` (run all) or ``"stopIfEnoughMatches"``.
        """
        return self._execute(self._multiple_queries(queries, strategy, options))

    def multiple_queries_async(
        self,
        queries: Iterable[Tuple[str, Query]],
        completion_handler: Optional[CompletionHandler],
        strategy: Optional[str] = None,
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(
            lambda: self._multiple_queries(queries, strategy, options), completion_handler
        )

    def _batch(
        self, operations: Sequence[Mapping[str, Any]], options: Optional[RequestOptions]
    ) -> RequestDescriptor:
        return self._descriptor(
            HttpMethod.POST,
            "/1/indexes/*/batch",
            {"requests": list(operations)},
            kind=OperationKind.WRITE,
            options=options,
        )

    def batch(
        self,
        operations: Sequence[Mapping[str, Any]],
        *,
        options: Optional[RequestOptions] = None,
    ) -> Payload:
        """Run write operations targeting several indexes in one call.

        Each operation is a mapping with ``action``, ``indexName`` and ``body``.
        """
        return self._execute(self._batch(operations, options))

    def batch_async(
        self,
        operations: Sequence[Mapping[str, Any]],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional[RequestOptions] = None,
    ) -> FutureRequest:
        return self._execute_async(lambda: self._batch(operations, options), completion_handler)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def close(self) -> None:
        """Shut down owned executors and close an owned HTTP client.

        Safe to call from a completion handler or from background work: an
        executor is not waited on from one of its own threads.
        """
        if self._closed:
            return
        self._closed = True
        current = threading.current_thread().name
        for executor, thread_prefix in self._owned_executors:
            executor.shutdown(wait=not current.startswith(thread_prefix))
        if self._owns_http_client:
            self._http_client.close()
        self._indices.clear()
        LOGGER.debug("Search client closed for %s", self.config.application_id)

    def __enter__(self) -> "SearchClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SearchClient(application_id={self.config.application_id!r}, pool={self.pool!r})"


__all__ = ["RequestOptions", "SearchClient", "encode_path_segment"]
