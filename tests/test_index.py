"""Tests for Index endpoints."""

import json

import httpx
import pytest

from HostedSearch import Index, InvalidRequestError, Query, RequestOptions, SearchError


def _body(request):
    return json.loads(request.content)


@pytest.fixture
def index(make_client):
    client = make_client(hosts=["a.test"])
    return client.init_index("contacts")


class TestSearch:
    def test_search_builds_query_string(self, index, host_script):
        host_script.json("a.test", {"hits": []})

        index.search(Query("jimmie paint", hits_per_page=10))

        request = host_script.requests[0]
        assert request.method == "GET"
        assert request.url.raw_path == b"/1/indexes/contacts?hitsPerPage=10&query=jimmie%20paint"

    def test_search_without_parameters(self, index, host_script):
        host_script.json("a.test", {"hits": []})
        index.search()
        assert host_script.requests[0].url.raw_path == b"/1/indexes/contacts"

    def test_search_raw(self, index, host_script):
        host_script.status("a.test", 200, b'{"hits": []}')
        assert index.search_raw(Query("x")) == b'{"hits": []}'

    def test_search_cache_serves_repeated_queries(self, index, host_script):
        host_script.json("a.test", {"hits": ["first"]})
        index.enable_search_cache(ttl_s=60, max_size=10)

        assert index.search(Query("a")) == {"hits": ["first"]}
        host_script.json("a.test", {"hits": ["second"]})
        assert index.search(Query("a")) == {"hits": ["first"]}
        assert index.search(Query("b")) == {"hits": ["second"]}
        assert len(host_script.requests) == 2

        index.clear_search_cache()
        assert index.search(Query("a")) == {"hits": ["second"]}

    def test_search_cache_disabled_by_default(self, index, host_script):
        host_script.json("a.test", {"hits": []})
        index.search(Query("a"))
        index.search(Query("a"))
        assert len(host_script.requests) == 2

    def test_search_cache_keyed_by_request_headers(self, index, host_script):
        forwarded = RequestOptions({"X-Forwarded-For": "10.0.0.1"})
        host_script.json("a.test", {"hits": ["first"]})
        index.enable_search_cache(ttl_s=60, max_size=10)

        index.search(Query("a"), options=forwarded)
        host_script.json("a.test", {"hits": ["second"]})

        assert index.search(Query("a")) == {"hits": ["second"]}
        assert index.search(Query("a"), options=forwarded) == {"hits": ["first"]}
        assert len(host_script.requests) == 2

    def test_search_cache_returns_copies(self, index, host_script):
        """Mutating a result does not alter what later callers receive."""
        host_script.json("a.test", {"hits": ["first"]})
        index.enable_search_cache(ttl_s=60, max_size=10)

        index.search(Query("a"))["hits"].append("mutated")
        cached = index.search(Query("a"))
        assert cached == {"hits": ["first"]}
        cached["hits"].clear()

        assert index.search(Query("a")) == {"hits": ["first"]}
        assert len(host_script.requests) == 1

    def test_failed_clear_keeps_search_cache(self, index, host_script):
        host_script.json("a.test", {"hits": ["first"]})
        index.enable_search_cache(ttl_s=60, max_size=10)
        index.search(Query("a"))

        host_script.status("a.test", 403, b'{"message": "forbidden"}')
        calls = []
        index.clear_index_async(lambda payload, error: calls.append(error))

        assert len(calls) == 1 and calls[0] is not None
        assert index.search(Query("a")) == {"hits": ["first"]}

    def test_search_async(self, index, host_script):
        host_script.json("a.test", {"hits": [1]})
        calls = []
        index.search_async(Query("a"), lambda payload, error: calls.append((payload, error)))
        assert calls == [({"hits": [1]}, None)]


class TestObjects:
    def test_get_object_with_attributes(self, index, host_script):
        host_script.json("a.test", {"objectID": "1"})

        index.get_object("1", ["name", "email"])

        assert host_script.requests[0].url.raw_path == b"/1/indexes/contacts/1?attributes=name,email"

    def test_get_objects(self, index, host_script):
        host_script.json("a.test", {"results": []})

        index.get_objects(["1", "2"])

        request = host_script.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/1/indexes/*/objects"
        assert _body(request) == {
            "requests": [
                {"indexName": "contacts", "objectID": "1"},
                {"indexName": "contacts", "objectID": "2"},
            ]
        }

    def test_add_object_without_id_posts(self, index, host_script):
        host_script.json("a.test", {"objectID": "generated"})
        index.add_object({"name": "Jimmie"})
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("POST", "/1/indexes/contacts")
        assert _body(request) == {"name": "Jimmie"}

    def test_add_object_with_id_puts(self, index, host_script):
        host_script.json("a.test", {})
        index.add_object({"name": "Jimmie"}, "42")
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("PUT", "/1/indexes/contacts/42")

    def test_save_object_uses_object_id(self, index, host_script):
        host_script.json("a.test", {})
        index.save_object({"objectID": "7", "name": "x"})
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("PUT", "/1/indexes/contacts/7")

    def test_save_object_requires_id(self, index):
        with pytest.raises(InvalidRequestError):
            index.save_object({"name": "x"})

    def test_save_object_async_reports_missing_id(self, index, host_script):
        calls = []

        index.save_object_async(
            {"name": "x"}, lambda payload, error: calls.append((payload, error))
        )

        [(payload, error)] = calls
        assert payload is None
        assert isinstance(error, InvalidRequestError)
        assert host_script.requests == []

    def test_partial_update_object(self, index, host_script):
        host_script.json("a.test", {})
        index.partial_update_object({"city": "Paris"}, "7")
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("POST", "/1/indexes/contacts/7/partial")
        assert _body(request) == {"city": "Paris"}

    def test_delete_object(self, index, host_script):
        host_script.json("a.test", {})
        index.delete_object("7")
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("DELETE", "/1/indexes/contacts/7")

    def test_delete_object_empty_id_rejected(self, index, host_script):
        with pytest.raises(InvalidRequestError):
            index.delete_object("")
        assert host_script.requests == []


class TestBatches:
    def test_add_objects(self, index, host_script):
        host_script.json("a.test", {"taskID": 1})
        index.add_objects([{"a": 1}, {"a": 2}])
        request = host_script.requests[0]
        assert request.url.path == "/1/indexes/contacts/batch"
        assert _body(request) == {
            "requests": [
                {"action": "addObject", "body": {"a": 1}},
                {"action": "addObject", "body": {"a": 2}},
            ]
        }

    def test_save_objects(self, index, host_script):
        host_script.json("a.test", {"taskID": 1})
        index.save_objects([{"objectID": "1", "a": 1}])
        assert _body(host_script.requests[0]) == {
            "requests": [
                {"action": "updateObject", "objectID": "1", "body": {"objectID": "1", "a": 1}}
            ]
        }

    def test_partial_update_objects(self, index, host_script):
        host_script.json("a.test", {"taskID": 1})
        index.partial_update_objects([{"objectID": "1", "a": 1}])
        [action] = _body(host_script.requests[0])["requests"]
        assert action["action"] == "partialUpdateObject"

    def test_save_objects_async_reports_missing_id(self, index, host_script):
        calls = []

        index.save_objects_async(
            [{"objectID": "1"}, {"name": "no id"}],
            lambda payload, error: calls.append((payload, error)),
        )

        [(payload, error)] = calls
        assert payload is None
        assert isinstance(error, InvalidRequestError)
        assert host_script.requests == []

    def test_delete_objects(self, index, host_script):
        host_script.json("a.test", {"taskID": 1})
        index.delete_objects(["1", "2"])
        assert _body(host_script.requests[0]) == {
            "requests": [
                {"action": "deleteObject", "body": {"objectID": "1"}},
                {"action": "deleteObject", "body": {"objectID": "2"}},
            ]
        }


class TestSettingsAndTasks:
    def test_get_and_set_settings(self, index, host_script):
        host_script.json("a.test", {"hitsPerPage": 20})

        assert index.get_settings() == {"hitsPerPage": 20}
        index.set_settings({"hitsPerPage": 50})

        get, put = host_script.requests
        assert (get.method, get.url.path) == ("GET", "/1/indexes/contacts/settings")
        assert (put.method, put.url.path) == ("PUT", "/1/indexes/contacts/settings")
        assert _body(put) == {"hitsPerPage": 50}

    def test_clear_index(self, index, host_script):
        host_script.json("a.test", {"taskID": 3})
        index.clear_index()
        request = host_script.requests[0]
        assert (request.method, request.url.path) == ("POST", "/1/indexes/contacts/clear")
        assert request.content == b""

    def test_wait_task_polls_until_published(self, make_client, host_script):
        statuses = iter(["notPublished", "notPublished", "published"])
        host_script.handler(
            "a.test",
            lambda request: httpx.Response(
                200, json={"status": next(statuses), "pendingTask": False}
            ),
        )
        sleeps = []
        index = Index(make_client(hosts=["a.test"]), "contacts", sleep=sleeps.append)

        assert index.wait_task(99)["status"] == "published"

        assert [r.url.path for r in host_script.requests] == ["/1/indexes/contacts/task/99"] * 3
        assert sleeps == [0.1, 0.2]

    def test_wait_task_rejects_malformed_status(self, index, host_script):
        host_script.json("a.test", {"pendingTask": False})
        with pytest.raises(SearchError):
            index.wait_task(1)

    def test_index_name_is_encoded(self, make_client, host_script):
        host_script.json("a.test", {})
        make_client(hosts=["a.test"]).init_index("a b").get_settings()
        assert host_script.requests[0].url.raw_path == b"/1/indexes/a%20b/settings"
