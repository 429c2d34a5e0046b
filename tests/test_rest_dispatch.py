from __future__ import annotations

import base64
import json
from datetime import datetime, timezone

import httpx
import pytest

from jira_bridge.client import JiraClient
from jira_bridge.config import JiraSettings, Mode
from jira_bridge.errors import RemoteError, TransportError, UnsupportedOperationError

BASE = "https://jira.example.com"


class FakeJira:
    """Routes mock HTTP requests by (method, path) and records them."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], httpx.Response] = {}

    def api_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.startswith("/rest/")]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/secure/Dashboard.jspa":
            return httpx.Response(200, text="<html/>")
        response = self.routes.get((request.method, request.url.path))
        if response is None:
            return httpx.Response(404, json={"errorMessages": ["not found"], "errors": {}})
        return response


def _make_client(fake: FakeJira) -> JiraClient:
    return JiraClient(
        JiraSettings(url=BASE, mode=Mode.STRUCTURED_REST),
        credential_provider=lambda: ("alice", "secret"),
        http_transport=httpx.MockTransport(fake),
    )


def test_login_builds_basic_credential_without_api_round_trip():
    fake = FakeJira()
    client = _make_client(fake)

    session = client.login("alice", "secret")

    assert session.mode is Mode.STRUCTURED_REST
    assert session.credential == base64.b64encode(b"alice:secret").decode()
    assert fake.api_requests() == []


def test_get_issue_sends_credential_and_returns_body():
    fake = FakeJira()
    body = {"key": "PROJ-1", "fields": {"summary": "Broken", "labels": ["a", "b"]}}
    fake.routes[("GET", "/rest/api/2/issue/PROJ-1")] = httpx.Response(200, json=body)
    client = _make_client(fake)
    client.login("alice", "secret")

    result = client.call("getIssue", "PROJ-1")

    assert result == body
    (request,) = fake.api_requests()
    assert request.method == "GET"
    assert request.headers["Authorization"] == "Basic " + base64.b64encode(b"alice:secret").decode()


def test_jql_search_posts_body_and_returns_flat_issue_list():
    fake = FakeJira()
    fake.routes[("POST", "/rest/api/2/search")] = httpx.Response(
        200,
        json={"startAt": 0, "maxResults": 50, "total": 2, "issues": [{"key": "X-1"}, {"key": "X-2"}]},
    )
    client = _make_client(fake)

    result = client.call("getIssuesFromJqlSearch", "project = X", 50)

    assert result == [{"key": "X-1"}, {"key": "X-2"}]
    (request,) = fake.api_requests()
    assert json.loads(request.content) == {"jql": "project = X", "maxResults": 50}


def test_call_logs_in_lazily_from_provider():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/status")] = httpx.Response(200, json=[])
    client = _make_client(fake)
    assert client.sessions.current is None

    client.call("getStatuses")

    assert client.sessions.current is not None
    assert client.sessions.current.principal == "alice"


def test_update_issue_ignores_body_and_sends_fields():
    fake = FakeJira()
    fake.routes[("PUT", "/rest/api/2/issue/X-1")] = httpx.Response(204)
    client = _make_client(fake)

    assert client.call("updateIssue", "X-1", {"summary": "New"}) is None
    (request,) = fake.api_requests()
    assert json.loads(request.content) == {"fields": {"summary": "New"}}


def test_edit_comment_uses_put_on_comment_path():
    fake = FakeJira()
    fake.routes[("PUT", "/rest/api/2/issue/X-1/comment/100")] = httpx.Response(
        200, json={"id": "100", "body": "edited"}
    )
    client = _make_client(fake)

    result = client.edit_comment("X-1", 100, "edited")

    assert result == {"id": "100", "body": "edited"}
    assert json.loads(fake.api_requests()[0].content) == {"body": "edited"}


def test_add_comment_posts_body_and_ignores_created_record():
    fake = FakeJira()
    fake.routes[("POST", "/rest/api/2/issue/X-1/comment")] = httpx.Response(
        201, json={"id": "10", "body": "hi"}
    )
    client = _make_client(fake)

    assert client.add_comment("X-1", "hi") is None
    assert json.loads(fake.api_requests()[0].content) == {"body": "hi"}


def test_missing_single_record_raises_remote_error():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/issue/X-1")] = httpx.Response(
        200, content=b"null", headers={"Content-Type": "application/json"}
    )
    client = _make_client(fake)

    with pytest.raises(RemoteError) as exc_info:
        client.get_issue("X-1")

    assert exc_info.value.fault_code == "unexpected_shape"


def test_path_arguments_are_quoted():
    fake = FakeJira()
    client = _make_client(fake)

    with pytest.raises(RemoteError):
        client.call("getComponents", "A/B")

    assert fake.api_requests()[0].url.raw_path == b"/rest/api/2/project/A%2FB/components"


def test_filter_search_uses_query_parameters():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/search")] = httpx.Response(200, json={"issues": []})
    client = _make_client(fake)

    assert client.issues_from_filter(10100, 20) == []
    request = fake.api_requests()[0]
    assert request.url.params["jql"] == "filter = 10100"
    assert request.url.params["maxResults"] == "20"


def test_subtask_types_are_filtered_from_issue_types():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/issuetype")] = httpx.Response(
        200,
        json=[
            {"id": "1", "name": "Bug", "subtask": False},
            {"id": "5", "name": "Sub-task", "subtask": True},
        ],
    )
    client = _make_client(fake)

    assert client.call("getSubTaskIssueTypes") == [{"id": "5", "name": "Sub-task", "subtask": True}]


def test_fields_for_action_flattens_transition_fields():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/issue/X-1/transitions")] = httpx.Response(
        200,
        json={
            "transitions": [
                {
                    "id": "5",
                    "name": "Resolve",
                    "fields": {"resolution": {"name": "Resolution", "required": True}},
                }
            ]
        },
    )
    client = _make_client(fake)

    assert client.get_transition_fields("X-1", 5) == [
        {"id": "resolution", "name": "Resolution"}
    ]
    assert fake.api_requests()[0].url.params["transitionId"] == "5"


def test_error_status_raises_remote_error_with_context_but_no_credentials():
    fake = FakeJira()
    fake.routes[("POST", "/rest/api/2/issue")] = httpx.Response(
        400, json={"errorMessages": [], "errors": {"summary": "required"}}
    )
    client = _make_client(fake)

    with pytest.raises(RemoteError) as exc_info:
        client.create_issue({"project": {"key": "X"}})

    error = exc_info.value
    assert error.status == 400
    assert error.operation == "createIssue"
    assert "summary: required" in error.message
    assert "secret" not in str(error)
    assert base64.b64encode(b"alice:secret").decode() not in str(error)


def test_unauthorized_is_not_retried():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/issue/X-1")] = httpx.Response(401, text="")
    client = _make_client(fake)

    with pytest.raises(RemoteError) as exc_info:
        client.get_issue("X-1")

    assert exc_info.value.status == 401
    assert exc_info.value.auth_expired is False
    assert len(fake.api_requests()) == 1


def test_network_failure_raises_transport_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/rest/"):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200)

    client = JiraClient(
        JiraSettings(url=BASE, mode=Mode.STRUCTURED_REST),
        credential_provider=lambda: ("alice", "secret"),
        http_transport=httpx.MockTransport(handler),
    )

    with pytest.raises(TransportError) as exc_info:
        client.get_issue("X-1")
    assert exc_info.value.operation == "getIssue"


def test_non_json_body_raises_remote_error():
    fake = FakeJira()
    fake.routes[("GET", "/rest/api/2/serverInfo")] = httpx.Response(200, text="<html>login</html>")
    client = _make_client(fake)

    with pytest.raises(RemoteError) as exc_info:
        client.call("getServerInfo")
    assert exc_info.value.fault_code == "invalid_json"


def test_missing_container_field_raises_remote_error():
    fake = FakeJira()
    fake.routes[("POST", "/rest/api/2/search")] = httpx.Response(200, json={"total": 0})
    client = _make_client(fake)

    with pytest.raises(RemoteError) as exc_info:
        client.search_issues("project = X")
    assert exc_info.value.fault_code == "unexpected_shape"


def test_worklogs_are_unsupported_in_rest_mode():
    fake = FakeJira()
    client = _make_client(fake)

    with pytest.raises(UnsupportedOperationError) as exc_info:
        client.get_worklogs("X-1")

    assert exc_info.value.operation == "getWorklogs"
    assert exc_info.value.mode == "rest"
    assert fake.requests == []


def test_unknown_operation_is_unsupported():
    client = _make_client(FakeJira())
    with pytest.raises(UnsupportedOperationError):
        client.call("getEverything")


def test_add_worklog_formats_start_time():
    fake = FakeJira()
    fake.routes[("POST", "/rest/api/2/issue/X-1/worklog")] = httpx.Response(201, json={"id": "7"})
    client = _make_client(fake)

    started = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
    assert client.add_worklog("X-1", started, "1h", "pairing") == {"id": "7"}

    request = fake.api_requests()[0]
    assert request.url.params["adjustEstimate"] == "auto"
    assert json.loads(request.content) == {
        "started": "2024-03-01T09:30:00.000+0000",
        "timeSpent": "1h",
        "comment": "pairing",
    }


