# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.index",
#   "purpose": "Per-index endpoints: search, object CRUD, settings, tasks.",
#   "sections": [
#     {"id": "index", "name": "Index", "anchor": "class-index", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Per-index API.

An :class:`Index` is a thin handle obtained from
:meth:`SearchClient.init_index`; it maps each call to a URL template under
``/1/indexes/{name}`` and sends it through the owning client, so it shares the
client's hosts, health tracker, timeouts and executors.

Searches go to the read hosts with the search timeout. Object and settings
reads go to the read hosts with the standard timeout. Everything else goes to
the write hosts.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    cast,
)

from HostedSearch.cache import DEFAULT_MAX_SIZE, DEFAULT_TTL_S, ExpiringCache
from HostedSearch.client import encode_path_segment
from HostedSearch.query import Query
from HostedSearch.Transport.errors import InvalidRequestError, SearchError
from HostedSearch.Transport.requests import CompletionHandler, FutureRequest
from HostedSearch.Transport.types import HttpMethod, OperationKind, Payload, RequestDescriptor

if TYPE_CHECKING:
    from HostedSearch.client import RequestOptions, SearchClient

LOGGER = logging.getLogger(__name__)

# built query string and the per-request headers
SearchKey = Tuple[str, Tuple[Tuple[str, str], ...]]

TASK_PUBLISHED = "published"
MAX_TASK_POLL_INTERVAL_MS = 10000
INITIAL_TASK_POLL_INTERVAL_MS = 100


def _object_id(obj: Mapping[str, Any]) -> str:
    object_id = obj.get("objectID")
    if not object_id:
        raise InvalidRequestError("object must contain an objectID attribute")
    return str(object_id)


def _require_id(object_id: str) -> str:
    if not object_id:
        raise InvalidRequestError("Invalid objectID")
    return object_id


class Index:
    """Handle on one index of a :class:`SearchClient`.

    Attributes:
        client: Owning client
        name: Index name (unencoded)
    """

    def __init__(
        self,
        client: "SearchClient",
        name: str,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not name:
            raise InvalidRequestError("index name cannot be empty")
        self.client = client
        self.name = name
        self._encoded_name = encode_path_segment(name)
        self._search_cache: Optional[ExpiringCache[SearchKey, Payload]] = None
        self._sleep = sleep

    def __repr__(self) -> str:
        return f"Index(name={self.name!r})"

    # ── Helpers ───────────────────────────────────────────────────────────

    def _path(self, *segments: str) -> str:
        suffix = "".join(f"/{encode_path_segment(segment)}" for segment in segments)
        return f"/1/indexes/{self._encoded_name}{suffix}"

    def _request(
        self,
        method: HttpMethod,
        path: str,
        body: Any = None,
        *,
        kind: OperationKind,
        options: Optional["RequestOptions"] = None,
    ) -> RequestDescriptor:
        return self.client._descriptor(method, path, body, kind=kind, options=options)

    def _call(self, descriptor: RequestDescriptor, *, raw: bool = False) -> Payload:
        return self.client._execute(descriptor, raw=raw)

    def _call_async(
        self,
        build: Callable[[], RequestDescriptor],
        completion_handler: Optional[CompletionHandler],
        *,
        raw: bool = False,
    ) -> FutureRequest:
        return self.client._execute_async(build, completion_handler, raw=raw)

    # ── Search ────────────────────────────────────────────────────────────

    def enable_search_cache(
        self, ttl_s: float = DEFAULT_TTL_S, max_size: int = DEFAULT_MAX_SIZE
    ) -> None:
        """Cache search results for ``ttl_s`` seconds, keeping at most ``max_size`` entries."""
        self._search_cache = ExpiringCache(ttl_s=ttl_s, max_size=max_size)

    def disable_search_cache(self) -> None:
        self._search_cache = None

    def clear_search_cache(self) -> None:
        if self._search_cache is not None:
            self._search_cache.clear()

    def _search(self, query: Optional[Query], options: Optional["RequestOptions"]) -> RequestDescriptor:
        params = query.build() if query is not None else ""
        path = self._path() + (f"?{params}" if params else "")
        return self._request(HttpMethod.GET, path, kind=OperationKind.SEARCH, options=options)

    def _cached_search(
        self,
        query: Optional[Query],
        options: Optional["RequestOptions"],
        cancel_event: Optional[threading.Event] = None,
    ) -> Payload:
        cache = self._search_cache
        headers = tuple(sorted(options.headers.items())) if options is not None else ()
        key: SearchKey = (query.build() if query is not None else "", headers)
        if cache is not None:
            cached = cache.get(key)
            if cached is not None:
                LOGGER.debug("Search cache hit on %s for %r", self.name, key[0])
                return copy.deepcopy(cached)
        payload = self.client._execute(self._search(query, options), cancel_event=cancel_event)
        if cache is not None:
            cache.put(key, copy.deepcopy(payload))
        return payload

    def search(
        self, query: Optional[Query] = None, *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        """Search the index.

        Results are served from the search cache when it is enabled and holds
        a live entry for the same parameters and request headers. Each caller
        gets its own copy of a cached result.
        """
        return self._cached_search(query, options)

    def search_async(
        self,
        query: Optional[Query],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        def work(cancel_event: threading.Event) -> Payload:
            return self._cached_search(query, options, cancel_event)

        return self.client._future(work, completion_handler)

    def search_raw(
        self, query: Optional[Query] = None, *, options: Optional["RequestOptions"] = None
    ) -> bytes:
        """Search the index and return the undecoded response body."""
        return cast(bytes, self._call(self._search(query, options), raw=True))

    def search_raw_async(
        self,
        query: Optional[Query],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._search(query, options), completion_handler, raw=True
        )

    # ── Objects ───────────────────────────────────────────────────────────

    def _get_object(
        self,
        object_id: str,
        attributes_to_retrieve: Optional[Sequence[str]],
        options: Optional["RequestOptions"],
    ) -> RequestDescriptor:
        path = self._path(_require_id(object_id))
        if attributes_to_retrieve:
            attributes = ",".join(encode_path_segment(a) for a in attributes_to_retrieve)
            path = f"{path}?attributes={attributes}"
        return self._request(HttpMethod.GET, path, kind=OperationKind.READ, options=options)

    def get_object(
        self,
        object_id: str,
        attributes_to_retrieve: Optional[Sequence[str]] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> Payload:
        """Fetch one object, optionally restricted to some attributes."""
        return self._call(self._get_object(object_id, attributes_to_retrieve, options))

    def get_object_async(
        self,
        object_id: str,
        completion_handler: Optional[CompletionHandler],
        attributes_to_retrieve: Optional[Sequence[str]] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._get_object(object_id, attributes_to_retrieve, options), completion_handler
        )

    def _get_objects(
        self, object_ids: Iterable[str], options: Optional["RequestOptions"]
    ) -> RequestDescriptor:
        requests = [{"indexName": self.name, "objectID": object_id} for object_id in object_ids]
        return self._request(
            HttpMethod.POST,
            "/1/indexes/*/objects",
            {"requests": requests},
            kind=OperationKind.SEARCH,
            options=options,
        )

    def get_objects(
        self, object_ids: Iterable[str], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        """Fetch several objects in one call."""
        return self._call(self._get_objects(object_ids, options))

    def get_objects_async(
        self,
        object_ids: Iterable[str],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(lambda: self._get_objects(object_ids, options), completion_handler)

    def _add_object(
        self,
        obj: Mapping[str, Any],
        object_id: Optional[str],
        options: Optional["RequestOptions"],
    ) -> RequestDescriptor:
        if object_id is None:
            return self._request(
                HttpMethod.POST, self._path(), dict(obj), kind=OperationKind.WRITE, options=options
            )
        return self._request(
            HttpMethod.PUT,
            self._path(_require_id(object_id)),
            dict(obj),
            kind=OperationKind.WRITE,
            options=options,
        )

    def add_object(
        self,
        obj: Mapping[str, Any],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> Payload:
        """Add an object; the server assigns an ``objectID`` unless one is given."""
        return self._call(self._add_object(obj, object_id, options))

    def add_object_async(
        self,
        obj: Mapping[str, Any],
        completion_handler: Optional[CompletionHandler],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._add_object(obj, object_id, options), completion_handler
        )

    def _save_object(
        self, obj: Mapping[str, Any], object_id: Optional[str], options: Optional["RequestOptions"]
    ) -> RequestDescriptor:
        object_id = object_id if object_id is not None else _object_id(obj)
        return self._request(
            HttpMethod.PUT,
            self._path(_require_id(object_id)),
            dict(obj),
            kind=OperationKind.WRITE,
            options=options,
        )

    def save_object(
        self,
        obj: Mapping[str, Any],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> Payload:
        """Replace an object; ``object_id`` defaults to ``obj["objectID"]``."""
        return self._call(self._save_object(obj, object_id, options))

    def save_object_async(
        self,
        obj: Mapping[str, Any],
        completion_handler: Optional[CompletionHandler],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._save_object(obj, object_id, options), completion_handler
        )

    def _partial_update_object(
        self,
        partial_object: Mapping[str, Any],
        object_id: Optional[str],
        options: Optional["RequestOptions"],
    ) -> RequestDescriptor:
        object_id = object_id if object_id is not None else _object_id(partial_object)
        return self._request(
            HttpMethod.POST,
            self._path(_require_id(object_id), "partial"),
            dict(partial_object),
            kind=OperationKind.WRITE,
            options=options,
        )

    def partial_update_object(
        self,
        partial_object: Mapping[str, Any],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> Payload:
        """Update only the attributes present in ``partial_object``."""
        return self._call(self._partial_update_object(partial_object, object_id, options))

    def partial_update_object_async(
        self,
        partial_object: Mapping[str, Any],
        completion_handler: Optional[CompletionHandler],
        object_id: Optional[str] = None,
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._partial_update_object(partial_object, object_id, options),
            completion_handler,
        )

    def _delete_object(self, object_id: str, options: Optional["RequestOptions"]) -> RequestDescriptor:
        return self._request(
            HttpMethod.DELETE,
            self._path(_require_id(object_id)),
            kind=OperationKind.WRITE,
            options=options,
        )

    def delete_object(self, object_id: str, *, options: Optional["RequestOptions"] = None) -> Payload:
        """Delete one object.

        Raises:
            InvalidRequestError: ``object_id`` is empty (deleting the index by
                accident is refused).
        """
        return self._call(self._delete_object(object_id, options))

    def delete_object_async(
        self,
        object_id: str,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(lambda: self._delete_object(object_id, options), completion_handler)

    # ── Batches ───────────────────────────────────────────────────────────

    def _batch(
        self, actions: Sequence[Mapping[str, Any]], options: Optional["RequestOptions"]
    ) -> RequestDescriptor:
        return self._request(
            HttpMethod.POST,
            self._path("batch"),
            {"requests": list(actions)},
            kind=OperationKind.WRITE,
            options=options,
        )

    def batch(
        self, actions: Sequence[Mapping[str, Any]], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        """Run several write actions on this index in one call."""
        return self._call(self._batch(actions, options))

    def batch_async(
        self,
        actions: Sequence[Mapping[str, Any]],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(lambda: self._batch(actions, options), completion_handler)

    @staticmethod
    def _add_actions(objects: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        return [{"action": "addObject", "body": dict(obj)} for obj in objects]

    @staticmethod
    def _update_actions(objects: Iterable[Mapping[str, Any]], action: str) -> List[Dict[str, Any]]:
        return [
            {"action": action, "objectID": _object_id(obj), "body": dict(obj)} for obj in objects
        ]

    @staticmethod
    def _delete_actions(object_ids: Iterable[str]) -> List[Dict[str, Any]]:
        return [
            {"action": "deleteObject", "body": {"objectID": _require_id(object_id)}}
            for object_id in object_ids
        ]

    def add_objects(
        self, objects: Iterable[Mapping[str, Any]], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        return self.batch(self._add_actions(objects), options=options)

    def add_objects_async(
        self,
        objects: Iterable[Mapping[str, Any]],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._batch(self._add_actions(objects), options), completion_handler
        )

    def save_objects(
        self, objects: Iterable[Mapping[str, Any]], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        """Replace several objects; each must carry an ``objectID``."""
        return self.batch(self._update_actions(objects, "updateObject"), options=options)

    def save_objects_async(
        self,
        objects: Iterable[Mapping[str, Any]],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._batch(self._update_actions(objects, "updateObject"), options),
            completion_handler,
        )

    def partial_update_objects(
        self, objects: Iterable[Mapping[str, Any]], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        return self.batch(self._update_actions(objects, "partialUpdateObject"), options=options)

    def partial_update_objects_async(
        self,
        objects: Iterable[Mapping[str, Any]],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._batch(self._update_actions(objects, "partialUpdateObject"), options),
            completion_handler,
        )

    def delete_objects(
        self, object_ids: Iterable[str], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        return self.batch(self._delete_actions(object_ids), options=options)

    def delete_objects_async(
        self,
        object_ids: Iterable[str],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(
            lambda: self._batch(self._delete_actions(object_ids), options), completion_handler
        )

    # ── Settings & maintenance ────────────────────────────────────────────

    def _get_settings(self, options: Optional["RequestOptions"]) -> RequestDescriptor:
        return self._request(
            HttpMethod.GET, self._path("settings"), kind=OperationKind.READ, options=options
        )

    def get_settings(self, *, options: Optional["RequestOptions"] = None) -> Payload:
        return self._call(self._get_settings(options))

    def get_settings_async(
        self,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(lambda: self._get_settings(options), completion_handler)

    def _set_settings(
        self, settings: Mapping[str, Any], options: Optional["RequestOptions"]
    ) -> RequestDescriptor:
        return self._request(
            HttpMethod.PUT,
            self._path("settings"),
            dict(settings),
            kind=OperationKind.WRITE,
            options=options,
        )

    def set_settings(
        self, settings: Mapping[str, Any], *, options: Optional["RequestOptions"] = None
    ) -> Payload:
        return self._call(self._set_settings(settings, options))

    def set_settings_async(
        self,
        settings: Mapping[str, Any],
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        return self._call_async(lambda: self._set_settings(settings, options), completion_handler)

    def _clear_index(self, options: Optional["RequestOptions"]) -> RequestDescriptor:
        return self._request(
            HttpMethod.POST, self._path("clear"), kind=OperationKind.WRITE, options=options
        )

    def clear_index(self, *, options: Optional["RequestOptions"] = None) -> Payload:
        """Delete every object of the index; settings are kept."""
        payload = self._call(self._clear_index(options))
        self.clear_search_cache()
        return payload

    def clear_index_async(
        self,
        completion_handler: Optional[CompletionHandler],
        *,
        options: Optional["RequestOptions"] = None,
    ) -> FutureRequest:
        def work(cancel_event: threading.Event) -> Payload:
            payload = self.client._execute(self._clear_index(options), cancel_event=cancel_event)
            self.clear_search_cache()
            return payload

        return self.client._future(work, completion_handler)

    # ── Tasks ─────────────────────────────────────────────────────────────

    def _wait_task(
        self,
        task_id: Any,
        poll_interval_ms: int,
        wait: Callable[[float], Any],
        cancel_event: Optional[threading.Event] = None,
    ) -> Payload:
        descriptor = self._request(
            HttpMethod.GET, self._path("task", str(task_id)), kind=OperationKind.READ
        )
        delay_ms = max(1, poll_interval_ms)
        while True:
            payload = self.client._execute(descriptor, cancel_event=cancel_event)
            if not isinstance(payload, Mapping) or "status" not in payload:
                raise SearchError(f"Task {task_id} status response has no status field")
            if payload["status"] == TASK_PUBLISHED:
                return payload
            LOGGER.debug("Task %s on %s is %s", task_id, self.name, payload["status"])
            wait(min(delay_ms, MAX_TASK_POLL_INTERVAL_MS) / 1000.0)
            delay_ms *= 2

    def wait_task(
        self, task_id: Any, poll_interval_ms: int = INITIAL_TASK_POLL_INTERVAL_MS
    ) -> Payload:
        """Block until the server reports task ``task_id`` as published.

        The poll interval doubles after every check, capped at 10 seconds.
        """
        return self._wait_task(task_id, poll_interval_ms, self._sleep)

    def wait_task_async(
        self,
        task_id: Any,
        completion_handler: Optional[CompletionHandler],
        poll_interval_ms: int = INITIAL_TASK_POLL_INTERVAL_MS,
    ) -> FutureRequest:
        def work(cancel_event: threading.Event) -> Payload:
            return self._wait_task(task_id, poll_interval_ms, cancel_event.wait, cancel_event)

        return self.client._future(work, completion_handler)


__all__ = ["Index"]
