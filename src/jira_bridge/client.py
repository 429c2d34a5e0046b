"""
JiraClient: the owned context object tying session, transports, dispatcher,
reference cache and web fallback together, plus convenience wrappers.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

import httpx

from .cache import ReferenceCache
from .config import CredentialProvider, JiraSettings, Mode, default_credential_provider
from .dispatcher import OperationDispatcher
from .legacy import LegacyAdapter
from .rest import RestAdapter
from .session import Session, SessionManager
from .web import UnconfirmedResult, WebFallbackExecutor

logger = logging.getLogger(__name__)

REST_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.000%z"


def issue_field(issue: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Read a field from either a REST issue (nested `fields`) or a SOAP issue (flat)."""
    fields = issue.get("fields")
    if isinstance(fields, Mapping) and name in fields:
        return fields[name]
    return issue.get(name, default)


def _ref_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        ident = value.get("id")
        return None if ident is None else str(ident)
    return str(value)


def issue_key(issue: Mapping[str, Any]) -> str | None:
    return issue.get("key")


def issue_summary(issue: Mapping[str, Any]) -> str | None:
    return issue_field(issue, "summary")


def issue_status_id(issue: Mapping[str, Any]) -> str | None:
    return _ref_id(issue_field(issue, "status"))


def issue_priority_id(issue: Mapping[str, Any]) -> str | None:
    return _ref_id(issue_field(issue, "priority"))


def issue_type_id(issue: Mapping[str, Any]) -> str | None:
    # SOAP issues call it `type`, REST issues `issuetype`.
    return _ref_id(issue_field(issue, "issuetype") or issue_field(issue, "type"))


class JiraClient:
    """One independent client: construct, login (or let calls log in), use, close."""

    def __init__(
        self,
        settings: JiraSettings | None = None,
        *,
        credential_provider: CredentialProvider | None = None,
        legacy_service: Any = None,
        http_transport: httpx.BaseTransport | None = None,
    ):
        self.settings = settings or JiraSettings.from_env()
        provider = credential_provider or default_credential_provider(self.settings)

        self._legacy: LegacyAdapter | None = None
        self._rest: RestAdapter | None = None
        if self.settings.mode is Mode.LEGACY_RPC:
            self._legacy = LegacyAdapter(
                self.settings.effective_wsdl_url,
                timeout_seconds=self.settings.timeout_seconds,
                service=legacy_service,
            )
        else:
            self._rest = RestAdapter(
                self.settings.rest_base_url,
                timeout_seconds=self.settings.timeout_seconds,
                transport=http_transport,
            )
        self._web_client = httpx.Client(
            base_url=self.settings.url,
            timeout=self.settings.timeout_seconds,
            transport=http_transport,
            follow_redirects=True,
        )

        self.sessions = SessionManager(self.settings, self._legacy, self._web_client, provider)
        self.dispatcher = OperationDispatcher(self.sessions, self._legacy, self._rest)
        self.cache = ReferenceCache(self.dispatcher)
        self.web = WebFallbackExecutor(self.sessions, self._web_client)

    def __enter__(self) -> JiraClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def mode(self) -> Mode:
        return self.settings.mode

    def login(self, username: str, secret: str) -> Session:
        return self.sessions.login(username, secret)

    def call(self, operation: str, *args: Any) -> Any:
        return self.dispatcher.call(operation, *args)

    # Issues

    def get_issue(self, key: str) -> dict[str, Any]:
        return self.call("getIssue", key)

    def search_issues(self, jql: str, max_results: int = 50) -> list[dict[str, Any]]:
        return self.call("getIssuesFromJqlSearch", jql, max_results)

    def issues_from_filter(self, filter_id: Any, max_results: int = 50) -> list[dict[str, Any]]:
        return self.call("getIssuesFromFilter", filter_id, max_results)

    def text_search(self, text: str, max_results: int = 50) -> list[dict[str, Any]]:
        return self.call("getIssuesFromTextSearch", text, max_results)

    def create_issue(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        return self.call("createIssue", dict(fields))

    def create_subtask(self, parent_key: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        return self.call("createIssueWithParent", dict(fields), parent_key)

    def update_issue(self, key: str, fields: Mapping[str, Any]) -> None:
        self.call("updateIssue", key, dict(fields))

    # Comments

    def get_comments(self, key: str) -> list[dict[str, Any]]:
        return self.call("getComments", key)

    def add_comment(self, key: str, body: str) -> None:
        self.call("addComment", key, body)

    def edit_comment(self, key: str, comment_id: Any, body: str) -> dict[str, Any]:
        return self.call("editComment", key, comment_id, body)

    def delete_comment(self, key: str, comment_id: Any) -> None:
        self.call("deleteComment", key, comment_id)

    # Workflow

    def get_transitions(self, key: str) -> list[dict[str, Any]]:
        return self.call("getAvailableActions", key)

    def get_transition_fields(self, key: str, action_id: Any) -> list[dict[str, Any]]:
        return self.call("getFieldsForAction", key, action_id)

    def resolve_transition(self, key: str, action: Any) -> str:
        """Return the transition id for `action`, given either its id or its name."""
        transitions = self.get_transitions(key)
        wanted = str(action)
        for transition in transitions:
            if str(transition.get("id")) == wanted:
                return wanted
        for transition in transitions:
            if str(transition.get("name", "")).casefold() == wanted.casefold():
                return str(transition.get("id"))
        available = ", ".join(str(t.get("name")) for t in transitions)
        raise ValueError(f"no transition '{action}' on {key} (available: {available})")

    def transition_issue(self, key: str, action: Any, fields: Mapping[str, Any] | None = None) -> None:
        action_id = self.resolve_transition(key, action)
        self.call("progressWorkflowAction", key, action_id, dict(fields or {}))

    # Worklogs

    def get_worklogs(self, key: str) -> list[dict[str, Any]]:
        return self.call("getWorklogs", key)

    def add_worklog(
        self,
        key: str,
        started: datetime,
        time_spent: str,
        comment: str | None = None,
    ) -> dict[str, Any]:
        if self.mode is Mode.LEGACY_RPC:
            worklog: dict[str, Any] = {"startDate": started, "timeSpent": time_spent}
        else:
            if started.tzinfo is None:
                started = started.astimezone()
            worklog = {"started": started.strftime(REST_DATETIME_FORMAT), "timeSpent": time_spent}
        if comment:
            worklog["comment"] = comment
        return self.call("addWorklogAndAutoAdjustRemainingEstimate", key, worklog)

    # Projects

    def get_components(self, project_key: str) -> list[dict[str, Any]]:
        return self.call("getComponents", project_key)

    def get_versions(self, project_key: str) -> list[dict[str, Any]]:
        return self.call("getVersions", project_key)

    # Reference data

    def statuses(self) -> Mapping[str, str]:
        return self.cache.get("statuses")

    def priorities(self) -> Mapping[str, str]:
        return self.cache.get("priorities")

    def issue_types(self) -> Mapping[str, str]:
        return self.cache.get("issue_types")

    def subtask_types(self) -> Mapping[str, str]:
        return self.cache.get("subtask_types")

    def resolutions(self) -> Mapping[str, str]:
        return self.cache.get("resolutions")

    def projects(self) -> Mapping[str, str]:
        return self.cache.get("projects")

    def filters(self) -> Mapping[str, str]:
        return self.cache.get("filters")

    def status_name(self, status_id: Any) -> str | None:
        return self.cache.name_for("statuses", status_id)

    def priority_name(self, priority_id: Any) -> str | None:
        return self.cache.name_for("priorities", priority_id)

    def issue_type_name(self, type_id: Any) -> str | None:
        return self.cache.name_for("issue_types", type_id)

    def resolution_name(self, resolution_id: Any) -> str | None:
        return self.cache.name_for("resolutions", resolution_id)

    def user_fullname(self, username: str) -> str:
        return self.cache.user_fullname(username)

    def issue_key_regexp(self):
        return self.cache.issue_key_regexp()

    # Web-only actions

    def link_issue(self, source_id: Any, link_type: str, target_key: str) -> UnconfirmedResult:
        return self.web.link_issue(source_id, link_type, target_key)

    def get_health(self) -> dict[str, Any]:
        return {
            "url": self.settings.url,
            "session": self.sessions.get_health(),
            "dispatcher": self.dispatcher.get_health(),
            "cache": self.cache.get_health(),
        }

    def close(self) -> None:
        if self._legacy is not None:
            self._legacy.close()
        if self._rest is not None:
            self._rest.close()
        self._web_client.close()
        self.sessions.invalidate()
