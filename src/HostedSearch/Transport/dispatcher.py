# === NAVMAP v1 ===
# {
#   "module": "HostedSearch.Transport.dispatcher",
#   "purpose": "Ordered multi-host dispatch with failover on retryable host failures.",
#   "sections": [
#     {"id": "requestdispatcher", "name": "RequestDispatcher", "anchor": "class-requestdispatcher", "kind": "class"},
#     {"id": "build-host-controller", "name": "_build_host_controller", "anchor": "function-build-host-controller", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Multi-host request dispatch.

Turns one logical API call into a sequence of attempts against an ordered host
list and returns the first success.

Flow per host (strictly in list order):
1. Send ``https://{host}{path}`` with the descriptor's connect/read timeouts
2. Classify the outcome (:mod:`.classifier`)
3. Success → mark host up, return payload; no further hosts are tried
4. Fatal (4xx, undecodable body) → raise immediately
5. Host failure (transport error, 5xx) → mark host down, try the next host

If every host fails, :class:`AggregatedFailure` is raised with one attempt per
host, in the order attempted, and the last error as its cause.

Host iteration is driven by a Tenacity ``Retrying`` controller: the attempt
budget equals the host list width, attempts never sleep, and only
:class:`HostFailure` is retried. There are no additional per-host retries.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Sequence, cast

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_none,
)

from .classifier import ResponseClassifier
from .errors import (
    AggregatedFailure,
    ConfigurationError,
    HostFailure,
    InvalidRequestError,
    RequestCancelled,
    ServerError,
)
from .health import HostHealthTracker
from .http import apply_authentication, build_headers, timeout_for
from .types import Payload, RequestAttempt, RequestDescriptor

LOGGER = logging.getLogger(__name__)


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


def _failover_logger(
    descriptor: RequestDescriptor, hosts: Sequence[str]
) -> Callable[[RetryCallState], None]:
    """Build a ``before_sleep`` callback logging the failover from one host to the next."""
    hosts = tuple(hosts)

    def _before_next_host(retry_state: RetryCallState) -> None:
        index = retry_state.attempt_number - 1
        failed = hosts[index] if index < len(hosts) else "?"
        following = hosts[index + 1] if index + 1 < len(hosts) else "?"
        exc = retry_state.outcome.exception() if retry_state.outcome is not None else None
        LOGGER.warning(
            "%s %s failed on %s (%s); failing over to %s (attempt %s/%s)",
            descriptor.method.value,
            descriptor.path,
            failed,
            exc,
            following,
            retry_state.attempt_number + 1,
            len(hosts),
        )

    return _before_next_host


def _build_host_controller(descriptor: RequestDescriptor, hosts: Sequence[str]) -> Retrying:
    return Retrying(
        retry=retry_if_exception_type(HostFailure),
        stop=stop_after_attempt(len(hosts)),
        wait=wait_none(),
        sleep=lambda _seconds: None,
        before_sleep=_failover_logger(descriptor, hosts),
        reraise=True,
    )


class RequestDispatcher:
    """Sends requests across an ordered host list.

    Attributes:
        client: HTTPX client used for every attempt
        tracker: Host health tracker updated after each attempt
        classifier: Maps responses/exceptions to verdicts
        scheme: URL scheme (``https`` outside tests)
    """

    def __init__(
        self,
        client: httpx.Client,
        *,
        application_id: str,
        api_key: Optional[str],
        tracker: HostHealthTracker,
        classifier: Optional[ResponseClassifier] = None,
        headers: Optional[Mapping[str, str]] = None,
        user_agent: Callable[[], str] = lambda: "",
        scheme: str = "https",
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        if not application_id:
            raise ConfigurationError("application_id is required")
        self.client = client
        self.application_id = application_id
        self.api_key = api_key
        self.tracker = tracker
        self.classifier = classifier or ResponseClassifier()
        self.headers: Mapping[str, str] = headers if headers is not None else {}
        self.user_agent = user_agent
        self.scheme = scheme
        self._clock = clock

    def dispatch(
        self,
        descriptor: RequestDescriptor,
        hosts: Sequence[str],
        *,
        raw: bool = False,
        cancel_event: Optional[CancelSignal] = None,
    ) -> Payload:
        """Send ``descriptor`` to ``hosts`` in order and return the first success.

        Args:
            descriptor: The call to make
            hosts: Candidate hosts, primary first
            raw: Return the undecoded body bytes instead of a JSON object
            cancel_event: Checked before each attempt; when set, stop with
                :class:`RequestCancelled`

        Returns:
            Decoded JSON object, or body bytes when ``raw`` is true

        Raises:
            ClientRequestError: server answered 4xx
            DecodeError: 2xx body could not be decoded
            InvalidRequestError: request cannot be built
            AggregatedFailure: every host failed
            RequestCancelled: ``cancel_event`` was set
        """
        hosts = list(hosts)
        if not hosts:
            raise ConfigurationError("no hosts to dispatch to")
        if descriptor.body is not None and not descriptor.method.allows_body:
            raise InvalidRequestError(
                f"Method {descriptor.method.value} cannot enclose entity"
            )

        auth_headers, body = apply_authentication(
            descriptor.method,
            descriptor.body,
            application_id=self.application_id,
            api_key=self.api_key,
        )
        headers = build_headers(
            auth_headers=auth_headers,
            client_headers=dict(self.headers),
            request_headers=descriptor.headers,
            user_agent=self.user_agent(),
            has_body=body is not None,
        )
        content = body.encode("utf-8") if body is not None else None
        timeout = timeout_for(descriptor)

        attempts: List[RequestAttempt] = []
        payload: Optional[Payload] = None
        try:
            for attempt in _build_host_controller(descriptor, hosts):
                with attempt:
                    host = hosts[attempt.retry_state.attempt_number - 1]
                    if cancel_event is not None and cancel_event.is_set():
                        raise RequestCancelled(
                            f"{descriptor.method.value} {descriptor.path} cancelled"
                        )
                    payload = self._attempt(host, descriptor, headers, content, timeout, raw, attempts)
        except HostFailure:
            raise AggregatedFailure(attempts) from attempts[-1].error

        return cast(Payload, payload)

    def _attempt(
        self,
        host: str,
        descriptor: RequestDescriptor,
        headers: Dict[str, str],
        content: Optional[bytes],
        timeout: httpx.Timeout,
        raw: bool,
        attempts: List[RequestAttempt],
    ) -> Payload:
        url = f"{self.scheme}://{host}{descriptor.path}"
        started = self._clock()
        try:
            response = self.client.request(
                descriptor.method.value,
                url,
                content=content,
                headers=headers,
                timeout=timeout,
            )
        except httpx.RequestError as exc:
            classification = self.classifier.classify_exception(host, exc)
        else:
            classification = self.classifier.classify_response(host, response, raw=raw)
        elapsed_ms = max(0, int((self._clock() - started) * 1000))

        if classification.is_success:
            self.tracker.record_success(host)
            attempts.append(
                RequestAttempt(host, elapsed_ms, "success", status=classification.status)
            )
            LOGGER.debug(
                "%s %s succeeded on %s in %sms",
                descriptor.method.value,
                descriptor.path,
                host,
                elapsed_ms,
            )
            return cast(Payload, classification.payload)

        error = classification.error
        if error is None:
            raise TypeError(f"classification {classification.verdict} carries no error")
        if classification.is_fatal:
            # The host answered, so it is reachable.
            self.tracker.record_success(host)
            raise error

        self.tracker.record_failure(host)
        outcome = "http_error" if isinstance(error, ServerError) else "transport_error"
        attempts.append(
            RequestAttempt(host, elapsed_ms, outcome, error=error, status=classification.status)
        )
        raise error


__all__ = ["CancelSignal", "RequestDispatcher"]
