"""
Static registry of every operation the client knows, with its legacy SOAP and
REST mappings.

Each descriptor names its positional parameters once; both transports bind
the caller's positional arguments to those names before encoding them.
"""

from __future__ import annotations

import string
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

ONE = "one"
MANY = "many"
NONE = "none"

CARDINALITIES = {ONE, MANY, NONE}


@dataclass(frozen=True)
class LegacyMapping:
    method: str
    encode: Callable[..., list[Any]] | None = None


@dataclass(frozen=True)
class RestMapping:
    method: str
    path: str
    params: Callable[..., dict[str, Any]] | None = None
    body: Callable[..., Any] | None = None
    unwrap: str | None = None
    transform: Callable[..., Any] | None = None
    no_body: bool = False


@dataclass(frozen=True)
class OperationDescriptor:
    name: str
    params: tuple[str, ...] = ()
    defaults: Mapping[str, Any] = field(default_factory=dict)
    cardinality: str = ONE
    legacy: LegacyMapping | None = None
    rest: RestMapping | None = None
    # A `one` operation that may legitimately find nothing.
    optional: bool = False

    def bind(self, args: tuple[Any, ...]) -> dict[str, Any]:
        """Map positional arguments onto parameter names, filling defaults."""
        required = len(self.params) - len(self.defaults)
        if len(args) < required or len(args) > len(self.params):
            raise TypeError(
                f"{self.name}() takes {required} to {len(self.params)} positional "
                f"arguments but {len(args)} were given"
            )
        bound = dict(self.defaults)
        bound.update(zip(self.params, args))
        return bound


class RegistryError(ValueError):
    """Raised at import when the operation table is inconsistent."""


def field_value_list(fields: Mapping[str, Any]) -> list[dict[str, Any]]:
    """Encode a field mapping the way the SOAP service expects updates."""
    encoded = []
    for field_id, value in fields.items():
        values = value if isinstance(value, (list, tuple)) else [value]
        encoded.append({"id": field_id, "values": [str(v) for v in values]})
    return encoded


def _subtasks_only(payload: list[dict[str, Any]], **_bound: Any) -> list[dict[str, Any]]:
    return [item for item in payload if item.get("subtask")]


def _transition_fields(payload: list[dict[str, Any]], **_bound: Any) -> list[dict[str, Any]]:
    if not payload:
        return []
    fields = payload[0].get("fields") or {}
    return [
        {"id": field_id, "name": meta.get("name", field_id)}
        for field_id, meta in fields.items()
    ]


def _quote_jql(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _with_parent(fields: Mapping[str, Any], parent_key: str) -> dict[str, Any]:
    return {"fields": {**fields, "parent": {"key": parent_key}}}


def _transition_body(key: str, action_id: Any, fields: Mapping[str, Any]) -> dict[str, Any]:
    body: dict[str, Any] = {"transition": {"id": str(action_id)}}
    if fields:
        body["fields"] = dict(fields)
    return body


_DESCRIPTORS = (
    OperationDescriptor(
        "getServerInfo",
        legacy=LegacyMapping("getServerInfo"),
        rest=RestMapping("GET", "serverInfo"),
    ),
    OperationDescriptor(
        "getStatuses",
        cardinality=MANY,
        legacy=LegacyMapping("getStatuses"),
        rest=RestMapping("GET", "status"),
    ),
    OperationDescriptor(
        "getPriorities",
        cardinality=MANY,
        legacy=LegacyMapping("getPriorities"),
        rest=RestMapping("GET", "priority"),
    ),
    OperationDescriptor(
        "getIssueTypes",
        cardinality=MANY,
        legacy=LegacyMapping("getIssueTypes"),
        rest=RestMapping("GET", "issuetype"),
    ),
    OperationDescriptor(
        "getSubTaskIssueTypes",
        cardinality=MANY,
        legacy=LegacyMapping("getSubTaskIssueTypes"),
        rest=RestMapping("GET", "issuetype", transform=_subtasks_only),
    ),
    OperationDescriptor(
        "getResolutions",
        cardinality=MANY,
        legacy=LegacyMapping("getResolutions"),
        rest=RestMapping("GET", "resolution"),
    ),
    OperationDescriptor(
        "getProjectsNoSchemes",
        cardinality=MANY,
        legacy=LegacyMapping("getProjectsNoSchemes"),
        rest=RestMapping("GET", "project"),
    ),
    OperationDescriptor(
        "getComponents",
        params=("project_key",),
        cardinality=MANY,
        legacy=LegacyMapping("getComponents"),
        rest=RestMapping("GET", "project/{project_key}/components"),
    ),
    OperationDescriptor(
        "getVersions",
        params=("project_key",),
        cardinality=MANY,
        legacy=LegacyMapping("getVersions"),
        rest=RestMapping("GET", "project/{project_key}/versions"),
    ),
    OperationDescriptor(
        "getUser",
        params=("username",),
        optional=True,
        legacy=LegacyMapping("getUser"),
        rest=RestMapping("GET", "user", params=lambda username: {"username": username}),
    ),
    OperationDescriptor(
        "getFavouriteFilters",
        cardinality=MANY,
        legacy=LegacyMapping("getFavouriteFilters"),
        rest=RestMapping("GET", "filter/favourite"),
    ),
    OperationDescriptor(
        "getIssue",
        params=("key",),
        legacy=LegacyMapping("getIssue"),
        rest=RestMapping("GET", "issue/{key}"),
    ),
    OperationDescriptor(
        "getIssuesFromJqlSearch",
        params=("jql", "max_results"),
        defaults={"max_results": 50},
        cardinality=MANY,
        legacy=LegacyMapping("getIssuesFromJqlSearch"),
        rest=RestMapping(
            "POST",
            "search",
            body=lambda jql, max_results: {"jql": jql, "maxResults": max_results},
            unwrap="issues",
        ),
    ),
    OperationDescriptor(
        "getIssuesFromFilter",
        params=("filter_id", "max_results"),
        defaults={"max_results": 50},
        cardinality=MANY,
        legacy=LegacyMapping(
            "getIssuesFromFilterWithLimit",
            encode=lambda filter_id, max_results: [str(filter_id), 0, max_results],
        ),
        rest=RestMapping(
            "GET",
            "search",
            params=lambda filter_id, max_results: {
                "jql": f"filter = {filter_id}",
                "maxResults": max_results,
            },
            unwrap="issues",
        ),
    ),
    OperationDescriptor(
        "getIssuesFromTextSearch",
        params=("text", "max_results"),
        defaults={"max_results": 50},
        cardinality=MANY,
        legacy=LegacyMapping(
            "getIssuesFromTextSearchWithLimit",
            encode=lambda text, max_results: [text, 0, max_results],
        ),
        rest=RestMapping(
            "POST",
            "search",
            body=lambda text, max_results: {
                "jql": f"text ~ {_quote_jql(text)}",
                "maxResults": max_results,
            },
            unwrap="issues",
        ),
    ),
    OperationDescriptor(
        "createIssue",
        params=("fields",),
        legacy=LegacyMapping("createIssue"),
        rest=RestMapping("POST", "issue", body=lambda fields: {"fields": dict(fields)}),
    ),
    OperationDescriptor(
        "createIssueWithParent",
        params=("fields", "parent_key"),
        legacy=LegacyMapping("createIssueWithParent"),
        rest=RestMapping("POST", "issue", body=_with_parent),
    ),
    OperationDescriptor(
        "updateIssue",
        params=("key", "fields"),
        cardinality=NONE,
        legacy=LegacyMapping(
            "updateIssue",
            encode=lambda key, fields: [key, field_value_list(fields)],
        ),
        rest=RestMapping(
            "PUT",
            "issue/{key}",
            body=lambda key, fields: {"fields": dict(fields)},
            no_body=True,
        ),
    ),
    OperationDescriptor(
        "getComments",
        params=("key",),
        cardinality=MANY,
        legacy=LegacyMapping("getComments"),
        rest=RestMapping("GET", "issue/{key}/comment", unwrap="comments"),
    ),
    OperationDescriptor(
        "addComment",
        params=("key", "body"),
        cardinality=NONE,
        legacy=LegacyMapping("addComment", encode=lambda key, body: [key, {"body": body}]),
        rest=RestMapping(
            "POST",
            "issue/{key}/comment",
            body=lambda key, body: {"body": body},
            no_body=True,
        ),
    ),
    OperationDescriptor(
        "editComment",
        params=("key", "comment_id", "body"),
        legacy=LegacyMapping(
            "editComment",
            encode=lambda key, comment_id, body: [{"id": str(comment_id), "body": body}],
        ),
        rest=RestMapping(
            "PUT",
            "issue/{key}/comment/{comment_id}",
            body=lambda key, comment_id, body: {"body": body},
        ),
    ),
    OperationDescriptor(
        "deleteComment",
        params=("key", "comment_id"),
        cardinality=NONE,
        legacy=LegacyMapping("deleteComment", encode=lambda key, comment_id: [str(comment_id)]),
        rest=RestMapping("DELETE", "issue/{key}/comment/{comment_id}", no_body=True),
    ),
    OperationDescriptor(
        "getAvailableActions",
        params=("key",),
        cardinality=MANY,
        legacy=LegacyMapping("getAvailableActions"),
        rest=RestMapping("GET", "issue/{key}/transitions", unwrap="transitions"),
    ),
    OperationDescriptor(
        "getFieldsForAction",
        params=("key", "action_id"),
        cardinality=MANY,
        legacy=LegacyMapping(
            "getFieldsForAction",
            encode=lambda key, action_id: [key, str(action_id)],
        ),
        rest=RestMapping(
            "GET",
            "issue/{key}/transitions",
            params=lambda key, action_id: {
                "transitionId": str(action_id),
                "expand": "transitions.fields",
            },
            unwrap="transitions",
            transform=_transition_fields,
        ),
    ),
    OperationDescriptor(
        "progressWorkflowAction",
        params=("key", "action_id", "fields"),
        defaults={"fields": {}},
        cardinality=NONE,
        legacy=LegacyMapping(
            "progressWorkflowAction",
            encode=lambda key, action_id, fields: [key, str(action_id), field_value_list(fields)],
        ),
        rest=RestMapping(
            "POST",
            "issue/{key}/transitions",
            body=_transition_body,
            no_body=True,
        ),
    ),
    OperationDescriptor(
        "getWorklogs",
        params=("key",),
        cardinality=MANY,
        legacy=LegacyMapping("getWorklogs"),
    ),
    OperationDescriptor(
        "addWorklogAndAutoAdjustRemainingEstimate",
        params=("key", "worklog"),
        legacy=LegacyMapping("addWorklogAndAutoAdjustRemainingEstimate"),
        rest=RestMapping(
            "POST",
            "issue/{key}/worklog",
            params=lambda key, worklog: {"adjustEstimate": "auto"},
            body=lambda key, worklog: dict(worklog),
        ),
    ),
)


def _path_fields(template: str) -> set[str]:
    return {name for _, name, _, _ in string.Formatter().parse(template) if name}


def validate_registry(descriptors: Mapping[str, OperationDescriptor]) -> None:
    """Reject descriptors that could never be dispatched correctly."""
    for name, descriptor in descriptors.items():
        if name != descriptor.name:
            raise RegistryError(f"operation '{descriptor.name}' registered as '{name}'")
        if descriptor.legacy is None and descriptor.rest is None:
            raise RegistryError(f"operation '{name}' has no transport mapping")
        if descriptor.cardinality not in CARDINALITIES:
            raise RegistryError(f"operation '{name}' has unknown cardinality '{descriptor.cardinality}'")
        if len(set(descriptor.params)) != len(descriptor.params):
            raise RegistryError(f"operation '{name}' repeats a parameter name")
        unknown_defaults = set(descriptor.defaults) - set(descriptor.params)
        if unknown_defaults:
            raise RegistryError(f"operation '{name}' has defaults for unknown params: {sorted(unknown_defaults)}")
        # Defaults may only cover a trailing run of params.
        trailing = descriptor.params[len(descriptor.params) - len(descriptor.defaults):]
        if set(descriptor.defaults) != set(trailing):
            raise RegistryError(f"operation '{name}' has non-trailing defaults")
        if descriptor.rest is not None:
            if descriptor.rest.method not in {"GET", "POST", "PUT", "DELETE"}:
                raise RegistryError(f"operation '{name}' uses unsupported HTTP method")
            missing = _path_fields(descriptor.rest.path) - set(descriptor.params)
            if missing:
                raise RegistryError(f"operation '{name}' path refers to unknown params: {sorted(missing)}")
            if descriptor.rest.no_body and descriptor.cardinality != NONE:
                raise RegistryError(f"operation '{name}' expects no body but returns a result")
        if descriptor.optional and descriptor.cardinality != ONE:
            raise RegistryError(f"operation '{name}' is optional but does not return a single record")


def build_registry(descriptors: tuple[OperationDescriptor, ...]) -> Mapping[str, OperationDescriptor]:
    registry: dict[str, OperationDescriptor] = {}
    for descriptor in descriptors:
        if descriptor.name in registry:
            raise RegistryError(f"operation '{descriptor.name}' defined twice")
        registry[descriptor.name] = descriptor
    validate_registry(registry)
    return MappingProxyType(registry)


OPERATIONS = build_registry(_DESCRIPTORS)
