from __future__ import annotations

from typing import Any

import pytest

from jira_bridge import server
from jira_bridge.web import UnconfirmedResult


class FakeClient:
    def __init__(self):
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def search_issues(self, jql: str, max_results: int = 50) -> list[dict[str, Any]]:
        self.calls.append(("search_issues", (jql, max_results)))
        return [{"key": "X-1"}]

    def create_issue(self, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_issue", (fields,)))
        return {"key": "X-2"}

    def create_subtask(self, parent_key: str, fields: dict[str, Any]) -> dict[str, Any]:
        self.calls.append(("create_subtask", (parent_key, fields)))
        return {"key": "X-3"}

    def link_issue(self, source_id: Any, link_type: str, target_key: str) -> UnconfirmedResult:
        self.calls.append(("link_issue", (source_id, link_type, target_key)))
        return UnconfirmedResult(action="linkIssue", path="secure/LinkExistingIssue.jspa")

    def call(self, name: str, *args: Any) -> Any:
        self.calls.append(("call", (name, *args)))
        return {"ok": True}

    def close(self) -> None:
        pass


@pytest.fixture
def fake_client(monkeypatch: pytest.MonkeyPatch) -> FakeClient:
    client = FakeClient()
    monkeypatch.setattr(server, "_client", client)
    return client


def test_search_issues_tool_delegates(fake_client: FakeClient):
    assert server.search_issues("project = X", 5) == [{"key": "X-1"}]
    assert fake_client.calls == [("search_issues", ("project = X", 5))]


def test_create_issue_tool_creates_subtask_with_parent(fake_client: FakeClient):
    assert server.create_issue({"summary": "s"}) == {"key": "X-2"}
    assert server.create_issue({"summary": "c"}, parent_key="X-1") == {"key": "X-3"}
    assert [name for name, _ in fake_client.calls] == ["create_issue", "create_subtask"]


def test_link_issue_tool_reports_unconfirmed(fake_client: FakeClient):
    assert server.link_issue("10001", "blocks", "X-2") == {"action": "linkIssue", "confirmed": False}


def test_call_operation_passes_positional_args(fake_client: FakeClient):
    server.call_operation("getIssue", ["X-1"])
    assert fake_client.calls == [("call", ("getIssue", "X-1"))]


def test_package_main_runs_server(monkeypatch: pytest.MonkeyPatch):
    import jira_bridge

    ran: list[bool] = []
    monkeypatch.setattr(server, "main", lambda: ran.append(True))

    jira_bridge.main()

    assert ran == [True]
