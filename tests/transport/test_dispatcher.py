# === NAVMAP v1 ===
# {
#   "module": "tests.transport.test_dispatcher",
#   "purpose": "Ordered multi-host dispatch, failover and request assembly",
#   "sections": [
#     {"id": "testfailover", "name": "TestFailover", "anchor": "class-testfailover", "kind": "class"},
#     {"id": "testrequestassembly", "name": "TestRequestAssembly", "anchor": "class-testrequestassembly", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Tests for RequestDispatcher."""

import gzip
import json
import logging
import threading

import httpx
import pytest

from HostedSearch.Transport.dispatcher import RequestDispatcher
from HostedSearch.Transport.errors import (
    AggregatedFailure,
    ClientRequestError,
    ConfigurationError,
    DecodeError,
    InvalidRequestError,
    RequestCancelled,
    ServerError,
    TransportError,
)
from HostedSearch.Transport.health import HostHealthTracker
from HostedSearch.Transport.http import API_KEY_HEADER, APPLICATION_ID_HEADER
from HostedSearch.Transport.types import HttpMethod, OperationKind, RequestDescriptor


def _descriptor(method=HttpMethod.GET, path="/1/indexes", body=None, **kwargs):
    return RequestDescriptor(method=method, path=path, body=body, **kwargs)


@pytest.fixture
def tracker(fake_clock):
    return HostHealthTracker(now_monotonic=fake_clock)


@pytest.fixture
def dispatcher(mock_http_client, tracker):
    return RequestDispatcher(
        mock_http_client,
        application_id="APPID",
        api_key="secret-key",
        tracker=tracker,
        headers={"X-Custom": "client"},
        user_agent=lambda: "HostedSearch for Python (1.0.0)",
    )


class TestFailover:
    """Host ordering, fatal errors and exhaustion."""

    def test_first_success_stops_iteration(self, dispatcher, host_script, tracker):
        """The first host that succeeds wins; later hosts are never contacted."""
        host_script.json("a.test", {"from": "a"}).json("b.test", {"from": "b"})

        payload = dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])

        assert payload == {"from": "a"}
        assert host_script.hosts_hit() == ["a.test"]
        assert tracker.status("a.test").is_up

    def test_refused_host_fails_over_to_next(self, dispatcher, host_script, tracker):
        """Connection refused on A, 200 on B: B's payload, A marked down."""
        host_script.fail("a.test").json("b.test", {"from": "b"})

        payload = dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])

        assert payload == {"from": "b"}
        assert host_script.hosts_hit() == ["a.test", "b.test"]
        assert not tracker.status("a.test").is_up
        assert tracker.status("b.test").is_up

    def test_server_error_fails_over(self, dispatcher, host_script, tracker):
        host_script.status("a.test", 503).json("b.test", {"ok": True})

        assert dispatcher.dispatch(_descriptor(), ["a.test", "b.test"]) == {"ok": True}
        assert not tracker.status("a.test").is_up

    def test_client_error_is_not_retried(self, dispatcher, host_script, tracker):
        """A 4xx on A stops the dispatch; B is never contacted."""
        host_script.status("a.test", 400, b'{"message": "bad query"}').json("b.test", {})

        with pytest.raises(ClientRequestError) as excinfo:
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])

        assert excinfo.value.message == "bad query"
        assert excinfo.value.status_code == 400
        assert host_script.hosts_hit() == ["a.test"]
        assert tracker.status("a.test").is_up

    def test_malformed_success_body_is_fatal(self, dispatcher, host_script):
        host_script.status("a.test", 200, b"<html>").json("b.test", {})

        with pytest.raises(DecodeError):
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])
        assert host_script.hosts_hit() == ["a.test"]

    def test_exhaustion_aggregates_attempts_in_order(self, dispatcher, host_script, tracker):
        """Timeout on A, 503 on B: one aggregated error listing both."""
        host_script.fail("a.test", httpx.ConnectTimeout, "connect timed out")
        host_script.status("b.test", 503, b"Service Unavailable")

        with pytest.raises(AggregatedFailure) as excinfo:
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])

        failure = excinfo.value
        assert failure.hosts == ("a.test", "b.test")
        assert [a.outcome for a in failure.attempts] == ["transport_error", "http_error"]
        assert isinstance(failure.errors[0], TransportError)
        assert isinstance(failure.errors[1], ServerError)
        assert failure.last_error is failure.errors[1]
        assert failure.__cause__ is failure.last_error
        assert str(failure).startswith("All hosts failed: [a.test: ")
        assert "b.test: " in str(failure)
        assert not tracker.status("a.test").is_up
        assert not tracker.status("b.test").is_up

    def test_each_host_tried_once(self, dispatcher, host_script):
        """The host list is the whole retry budget."""
        for host in ("a.test", "b.test", "c.test"):
            host_script.status(host, 500)

        with pytest.raises(AggregatedFailure):
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test", "c.test"])
        assert host_script.hosts_hit() == ["a.test", "b.test", "c.test"]

    def test_corrupt_gzip_counts_as_host_failure(self, dispatcher, host_script):
        host_script.handler(
            "a.test",
            lambda request: httpx.Response(
                200, content=b"not gzip", headers={"Content-Encoding": "gzip"}
            ),
        )
        host_script.json("b.test", {"ok": True})

        assert dispatcher.dispatch(_descriptor(), ["a.test", "b.test"]) == {"ok": True}

    def test_failover_logged_at_warning(self, dispatcher, host_script, caplog):
        host_script.fail("a.test").json("b.test", {})

        with caplog.at_level(logging.WARNING, logger="HostedSearch.Transport.dispatcher"):
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test"])

        messages = [r.getMessage() for r in caplog.records]
        assert any("a.test" in m and "b.test" in m for m in messages)

    def test_cancel_event_stops_before_attempt(self, dispatcher, host_script):
        host_script.json("a.test", {})
        cancel_event = threading.Event()
        cancel_event.set()

        with pytest.raises(RequestCancelled):
            dispatcher.dispatch(_descriptor(), ["a.test"], cancel_event=cancel_event)
        assert host_script.requests == []

    def test_cancel_between_hosts(self, dispatcher, host_script):
        """Cancellation observed after a failed host stops further attempts."""
        cancel_event = threading.Event()

        def refuse_and_cancel(request):
            cancel_event.set()
            raise httpx.ConnectError("refused", request=request)

        host_script.handler("a.test", refuse_and_cancel).json("b.test", {})

        with pytest.raises(RequestCancelled):
            dispatcher.dispatch(_descriptor(), ["a.test", "b.test"], cancel_event=cancel_event)
        assert host_script.hosts_hit() == ["a.test"]

    def test_empty_host_list_rejected(self, dispatcher):
        with pytest.raises(ConfigurationError):
            dispatcher.dispatch(_descriptor(), [])


class TestRequestAssembly:
    """URLs, headers, bodies and timeouts sent on the wire."""

    def test_headers(self, dispatcher, host_script):
        host_script.json("a.test", {})

        descriptor = _descriptor(
            method=HttpMethod.POST,
            path="/1/indexes/foo",
            body='{"name": "x"}',
            kind=OperationKind.WRITE,
            headers={"X-Request": "per-call"},
        )
        dispatcher.dispatch(descriptor, ["a.test"])

        request = host_script.requests[0]
        assert str(request.url) == "https://a.test/1/indexes/foo"
        assert request.headers[APPLICATION_ID_HEADER] == "APPID"
        assert request.headers[API_KEY_HEADER] == "secret-key"
        assert request.headers["User-Agent"] == "HostedSearch for Python (1.0.0)"
        assert request.headers["Content-Type"] == "application/json; charset=UTF-8"
        assert request.headers["X-Custom"] == "client"
        assert request.headers["X-Request"] == "per-call"
        assert json.loads(request.content) == {"name": "x"}

    def test_no_content_type_without_body(self, dispatcher, host_script):
        host_script.json("a.test", {})
        dispatcher.dispatch(_descriptor(), ["a.test"])
        assert "Content-Type" not in host_script.requests[0].headers

    def test_timeouts_follow_descriptor(self, dispatcher, host_script):
        host_script.json("a.test", {})
        descriptor = _descriptor(
            kind=OperationKind.SEARCH, connect_timeout_ms=2000, request_timeout_ms=5000
        )
        dispatcher.dispatch(descriptor, ["a.test"])

        timeout = host_script.requests[0].extensions["timeout"]
        assert timeout["connect"] == 2.0
        assert timeout["read"] == 5.0

    def test_body_on_get_rejected_before_io(self, dispatcher, host_script):
        host_script.json("a.test", {})
        with pytest.raises(InvalidRequestError):
            dispatcher.dispatch(_descriptor(body="{}"), ["a.test"])
        assert host_script.requests == []

    def test_relative_path_rejected(self):
        with pytest.raises(InvalidRequestError, match="must start with '/'"):
            _descriptor(path="1/indexes")

    @pytest.mark.parametrize(
        "timeouts",
        [{"connect_timeout_ms": 0}, {"request_timeout_ms": -5}],
    )
    def test_non_positive_timeouts_rejected(self, timeouts):
        with pytest.raises(ConfigurationError, match="timeouts must be positive"):
            _descriptor(**timeouts)

    def test_oversized_key_moves_into_body(self, mock_http_client, tracker, host_script):
        long_key = "k" * 501
        dispatcher = RequestDispatcher(
            mock_http_client, application_id="APPID", api_key=long_key, tracker=tracker
        )
        host_script.json("a.test", {})

        dispatcher.dispatch(
            _descriptor(method=HttpMethod.POST, path="/1/indexes/foo", body='{"a": 1}'),
            ["a.test"],
        )

        request = host_script.requests[0]
        assert API_KEY_HEADER not in request.headers
        assert json.loads(request.content) == {"a": 1, "apiKey": long_key}

    def test_oversized_key_without_body_gets_object_body(
        self, mock_http_client, tracker, host_script
    ):
        long_key = "k" * 501
        dispatcher = RequestDispatcher(
            mock_http_client, application_id="APPID", api_key=long_key, tracker=tracker
        )
        host_script.json("a.test", {})

        dispatcher.dispatch(_descriptor(method=HttpMethod.POST, path="/1/indexes/foo/clear"), ["a.test"])

        assert json.loads(host_script.requests[0].content) == {"apiKey": long_key}

    def test_oversized_key_stays_in_header_on_get(self, mock_http_client, tracker, host_script):
        long_key = "k" * 501
        dispatcher = RequestDispatcher(
            mock_http_client, application_id="APPID", api_key=long_key, tracker=tracker
        )
        host_script.json("a.test", {})

        dispatcher.dispatch(_descriptor(), ["a.test"])

        assert host_script.requests[0].headers[API_KEY_HEADER] == long_key

    def test_oversized_key_with_array_body_rejected(self, mock_http_client, tracker, host_script):
        dispatcher = RequestDispatcher(
            mock_http_client, application_id="APPID", api_key="k" * 501, tracker=tracker
        )
        with pytest.raises(InvalidRequestError):
            dispatcher.dispatch(_descriptor(method=HttpMethod.POST, body="[1, 2]"), ["a.test"])
        assert host_script.requests == []

    def test_gzip_response_is_decoded(self, dispatcher, host_script):
        compressed = gzip.compress(json.dumps({"hits": [1, 2]}).encode("utf-8"))
        host_script.handler(
            "a.test",
            lambda request: httpx.Response(
                200, content=compressed, headers={"Content-Encoding": "gzip"}
            ),
        )

        assert dispatcher.dispatch(_descriptor(), ["a.test"]) == {"hits": [1, 2]}
        assert "gzip" in host_script.requests[0].headers["Accept-Encoding"]

    def test_raw_returns_body_bytes(self, dispatcher, host_script):
        host_script.status("a.test", 200, b'{"hits": []}')
        assert dispatcher.dispatch(_descriptor(), ["a.test"], raw=True) == b'{"hits": []}'

    def test_application_id_required(self, mock_http_client, tracker):
        with pytest.raises(ConfigurationError):
            RequestDispatcher(mock_http_client, application_id="", api_key="k", tracker=tracker)
