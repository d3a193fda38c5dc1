"""Outcome classification for single-host attempts.

Every attempt ends in exactly one of three verdicts:

- ``SUCCESS``: 2xx with a decodable body; return the payload.
- ``FATAL``: the request is invalid (4xx) or the response is corrupt
  (undecodable 2xx body); stop without trying other hosts.
- ``HOST_FAILURE``: the host is unreachable or broken (transport exception,
  5xx, any other non-2xx status); fail over to the next host.

A 4xx is never retried elsewhere: it reflects a client-side problem (bad index
name, malformed JSON, auth failure) that reproduces identically on every host.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import httpx

from .errors import ClientRequestError, DecodeError, SearchError, ServerError, TransportError
from .types import Payload

LOGGER = logging.getLogger(__name__)


class Verdict(str, Enum):
    SUCCESS = "success"
    FATAL = "fatal"
    HOST_FAILURE = "host_failure"


@dataclass(frozen=True)
class Classification:
    """Verdict for one attempt, with its payload or error."""

    verdict: Verdict
    payload: Optional[Payload] = None
    error: Optional[SearchError] = None
    status: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.verdict is Verdict.SUCCESS

    @property
    def is_fatal(self) -> bool:
        return self.verdict is Verdict.FATAL

    @property
    def is_host_failure(self) -> bool:
        return self.verdict is Verdict.HOST_FAILURE


def decode_json_object(content: bytes, *, host: Optional[str] = None, status: int = 0) -> dict:
    """Decode a UTF-8 JSON object, raising :class:`DecodeError` on any failure."""
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(
            f"Invalid encoding returned by server: {exc}", host=host, status_code=status
        ) from exc
    try:
        decoded: Any = json.loads(text)
    except ValueError as exc:
        raise DecodeError(
            f"Invalid JSON returned by server: {exc}", host=host, status_code=status
        ) from exc
    if not isinstance(decoded, dict):
        raise DecodeError(
            f"Expected a JSON object, got {type(decoded).__name__}",
            host=host,
            status_code=status,
        )
    return decoded


def _error_message(response: httpx.Response) -> str:
    """Best-effort server message for an error response."""
    try:
        body = response.json()
    except (ValueError, UnicodeDecodeError):
        body = None
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    text = response.text.strip()
    return text or response.reason_phrase or f"HTTP {response.status_code}"


class ResponseClassifier:
    """Maps transport exceptions and HTTP responses to verdicts."""

    def classify_exception(self, host: str, exc: BaseException) -> Classification:
        """Classify an exception raised while sending or reading.

        Only ``httpx.RequestError`` (connect/read timeouts, refused or reset
        connections, DNS and TLS failures, broken compression) is a host
        failure; anything else is a bug and is re-raised by the caller.
        """
        if isinstance(exc, httpx.RequestError):
            error = TransportError(f"{type(exc).__name__}: {exc}", host=host)
            error.__cause__ = exc
            return Classification(Verdict.HOST_FAILURE, error=error)
        raise TypeError(f"not a transport exception: {exc!r}")

    def classify_response(
        self, host: str, response: httpx.Response, *, raw: bool = False
    ) -> Classification:
        status = response.status_code

        if 200 <= status < 300:
            if raw:
                return Classification(Verdict.SUCCESS, payload=response.content, status=status)
            try:
                payload = decode_json_object(response.content, host=host, status=status)
            except DecodeError as error:
                LOGGER.debug("Undecodable %s response from %s: %s", status, host, error)
                return Classification(Verdict.FATAL, error=error, status=status)
            return Classification(Verdict.SUCCESS, payload=payload, status=status)

        if 400 <= status < 500:
            error = ClientRequestError(_error_message(response), status_code=status, host=host)
            LOGGER.debug("Client error %s from %s: %s", status, host, error)
            return Classification(Verdict.FATAL, error=error, status=status)

        message = response.text.strip() or response.reason_phrase or f"HTTP {status}"
        return Classification(
            Verdict.HOST_FAILURE,
            error=ServerError(message, host=host, status_code=status),
            status=status,
        )


__all__ = ["Classification", "ResponseClassifier", "Verdict", "decode_json_object"]
