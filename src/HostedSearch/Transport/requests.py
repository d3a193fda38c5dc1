# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.requests",
#   "purpose": "Background execution of dispatched requests with cancellable completion delivery.",
#   "sections": [
#     {"id": "inlineexecutor", "name": "InlineExecutor", "anchor": "class-inlineexecutor", "kind": "class"},
#     {"id": "futurerequest", "name": "FutureRequest", "anchor": "class-futurerequest", "kind": "class"},
#     {"id": "executor-factories", "name": "new_request_executor", "anchor": "function-new-request-executor", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Asynchronous request execution.

A :class:`FutureRequest` runs blocking dispatch work on a request executor (a
small thread pool; requests are I/O bound) and hands the outcome to a
completion handler on a separate completion executor. By default the
completion executor is a single worker thread, so handlers never run
concurrently with each other.

Guarantees
----------
- The handler is called at most once, with ``(payload, None)`` or
  ``(None, error)``; when the request is not cancelled it is called exactly once.
- ``cancel()`` is best effort: a pending request never starts; a running one
  stops before its next host attempt; a finished one has its delivery
  suppressed. A request already sent may still have been executed by the
  server; cancelling never undoes anything.
- Delivery and cancellation are arbitrated under one lock: exactly one of
  them wins.
- Work rejected by a shut-down request executor is reported to the handler
  as a :class:`SearchError`. If the completion executor is shut down too, the
  handler runs on the thread that finished the work.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import CancelledError, Executor, Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

from .errors import RequestCancelled, SearchError
from .types import CompletionResult, Payload

LOGGER = logging.getLogger(__name__)

CompletionHandler = Callable[[Optional[Payload], Optional[BaseException]], None]
RequestWork = Callable[[threading.Event], Payload]

DEFAULT_REQUEST_WORKERS = 4
REQUEST_THREAD_PREFIX = "hostedsearch-request"
COMPLETION_THREAD_PREFIX = "hostedsearch-completion"


def new_request_executor(max_workers: int = DEFAULT_REQUEST_WORKERS) -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=REQUEST_THREAD_PREFIX)


def new_completion_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(max_workers=1, thread_name_prefix=COMPLETION_THREAD_PREFIX)


def _rejection(exc: BaseException) -> CompletionResult:
    error = SearchError(f"Request could not be scheduled: {exc}")
    error.__cause__ = exc
    return CompletionResult(error=error)


def _completed(outcome: CompletionResult) -> Future:
    future: Future = Future()
    future.set_running_or_notify_cancel()
    future.set_result(outcome)
    return future


class InlineExecutor(Executor):
    """Executor that runs callables immediately on the submitting thread."""

    def submit(self, fn: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Future:
        future: Future = Future()
        if not future.set_running_or_notify_cancel():  # pragma: no cover - fresh future
            return future
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future


class FutureRequest:
    """A cancellable request running in the background.

    Example:
        >>> request = FutureRequest(work, handler, request_executor, completion_executor).start()
        >>> request.cancel()  # handler will not be called
    """

    def __init__(
        self,
        work: RequestWork,
        completion_handler: Optional[CompletionHandler],
        request_executor: Executor,
        completion_executor: Executor,
    ) -> None:
        self._work = work
        self._handler = completion_handler
        self._request_executor = request_executor
        self._completion_executor = completion_executor
        self._cancel_event = threading.Event()
        self._lock = threading.Lock()
        self._future: Optional[Future] = None
        self._cancelled = False
        self._delivered = False

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> "FutureRequest":
        """Schedule the work on the request executor."""
        with self._lock:
            if self._future is not None:
                raise RuntimeError("request already started")
            if self._cancelled:
                return self
            try:
                self._future = self._request_executor.submit(self._run)
            except RuntimeError as exc:
                LOGGER.warning("Request executor rejected work: %s", exc)
                self._future = _completed(_rejection(exc))
        self._future.add_done_callback(self._on_done)
        return self

    def cancel(self) -> bool:
        """Cancel the request.

        Returns:
            True if the completion handler is now guaranteed not to run,
            False if delivery already happened.
        """
        with self._lock:
            if self._delivered:
                return False
            if self._cancelled:
                return True
            self._cancelled = True
            future = self._future
        self._cancel_event.set()
        if future is not None:
            future.cancel()
        LOGGER.debug("Request cancelled")
        return True

    def is_finished(self) -> bool:
        """True once the request completed or was cancelled."""
        with self._lock:
            if self._cancelled:
                return True
            return self._future is not None and self._future.done()

    def is_cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def result(self, timeout: Optional[float] = None) -> CompletionResult:
        """Block until the work completes and return its outcome.

        Raises:
            RequestCancelled: the request was cancelled
            RuntimeError: the request was never started
            concurrent.futures.TimeoutError: ``timeout`` elapsed
        """
        if self.is_cancelled():
            raise RequestCancelled("request cancelled")
        if self._future is None:
            raise RuntimeError("request not started")
        try:
            outcome = self._future.result(timeout)
        except CancelledError as exc:
            raise RequestCancelled("request cancelled") from exc
        if self.is_cancelled():
            raise RequestCancelled("request cancelled")
        return outcome

    # ── Internals ─────────────────────────────────────────────────────────

    def _run(self) -> CompletionResult:
        try:
            return CompletionResult(payload=self._work(self._cancel_event))
        except SearchError as exc:
            return CompletionResult(error=exc)
        except Exception as exc:
            LOGGER.error("Unexpected error while processing request in background", exc_info=True)
            error = SearchError(f"Unexpected error: {exc}")
            error.__cause__ = exc
            return CompletionResult(error=error)

    def _on_done(self, future: Future) -> None:
        if future.cancelled() or self._handler is None:
            return
        outcome: CompletionResult = future.result()
        if isinstance(outcome.error, RequestCancelled):
            return
        try:
            self._completion_executor.submit(self._deliver, outcome)
        except RuntimeError:
            LOGGER.warning("Completion executor shut down; delivering on the calling thread")
            self._deliver(outcome)

    def _deliver(self, outcome: CompletionResult) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._delivered = True
        handler = self._handler
        if handler is None:
            return
        try:
            handler(outcome.payload, outcome.error)
        except Exception:
            LOGGER.exception("Completion handler raised")


__all__ = [
    "COMPLETION_THREAD_PREFIX",
    "CompletionHandler",
    "DEFAULT_REQUEST_WORKERS",
    "FutureRequest",
    "InlineExecutor",
    "REQUEST_THREAD_PREFIX",
    "RequestWork",
    "new_completion_executor",
    "new_request_executor",
]
