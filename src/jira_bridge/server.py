"""
MCP server exposing the JIRA client as tools.
"""

from __future__ import annotations

import atexit
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from mcp.server.fastmcp import FastMCP

from .client import JiraClient
from .errors import AuthError, JiraBridgeError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Log in eagerly when credentials are configured; calls log in lazily otherwise."""
    try:
        get_client().sessions.ensure_session()
    except AuthError as exc:
        logger.info("No eager login: %s", exc)
    except JiraBridgeError as exc:
        logger.warning("Eager login failed, will retry on first call: %s", exc)
    try:
        yield
    finally:
        _shutdown()


mcp = FastMCP(
    "JIRA Bridge",
    instructions=(
        "JIRA issue tracker access over either the REST API or the legacy SOAP "
        "service, selected by JIRA_USE_REST. Reference data (statuses, priorities, "
        "issue types, resolutions, projects, filters) is cached for the life of "
        "the server. link_issue goes through the web UI and its result is never "
        "confirmed by the server."
    ),
    lifespan=_lifespan,
)

_client: JiraClient | None = None


def get_client() -> JiraClient:
    global _client
    if _client is None:
        _client = JiraClient()
    return _client


def _shutdown() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None


atexit.register(_shutdown)


@mcp.tool()
def get_issue(key: str) -> dict[str, Any]:
    """Retrieve an issue by key.

    Args:
        key: Issue key (e.g., "PROJ-123").
    """
    return get_client().get_issue(key)


@mcp.tool()
def search_issues(jql: str, max_results: int = 50) -> list[dict[str, Any]]:
    """Run a JQL search.

    Args:
        jql: JQL query string.
        max_results: Upper bound on returned issues (default 50).

    Returns:
        Flat list of issue records.
    """
    return get_client().search_issues(jql, max_results)


@mcp.tool()
def create_issue(fields: dict[str, Any], parent_key: str | None = None) -> dict[str, Any]:
    """Create an issue, or a subtask when parent_key is given."""
    client = get_client()
    if parent_key:
        return client.create_subtask(parent_key, fields)
    return client.create_issue(fields)


@mcp.tool()
def update_issue(key: str, fields: dict[str, Any]) -> dict[str, Any]:
    """Update fields of an issue."""
    get_client().update_issue(key, fields)
    return {"key": key, "updated": sorted(fields)}


@mcp.tool()
def add_comment(key: str, body: str) -> dict[str, Any]:
    """Add a comment to an issue."""
    get_client().add_comment(key, body)
    return {"key": key, "commented": True}


@mcp.tool()
def edit_comment(key: str, comment_id: str, body: str) -> dict[str, Any]:
    """Replace the body of an existing comment."""
    return get_client().edit_comment(key, comment_id, body)


@mcp.tool()
def list_transitions(key: str) -> list[dict[str, Any]]:
    """List workflow transitions currently available on an issue."""
    return get_client().get_transitions(key)


@mcp.tool()
def transition_issue(key: str, action: str, fields: dict[str, Any] | None = None) -> dict[str, Any]:
    """Execute a workflow transition.

    Args:
        key: Issue key.
        action: Transition id or name (case-insensitive).
        fields: Optional fields to set during the transition.
    """
    get_client().transition_issue(key, action, fields)
    return {"key": key, "action": action}


@mcp.tool()
def list_reference(kind: str) -> dict[str, str]:
    """Return a cached id -> name table.

    Args:
        kind: One of statuses, priorities, issue_types, subtask_types,
            resolutions, projects, filters.
    """
    return dict(get_client().cache.get(kind))


@mcp.tool()
def link_issue(source_id: str, link_type: str, target_key: str) -> dict[str, Any]:
    """Link two issues through the web UI.

    The server only confirms that it accepted the form; the link itself is
    unconfirmed.
    """
    result = get_client().link_issue(source_id, link_type, target_key)
    return {"action": result.action, "confirmed": result.confirmed}


@mcp.tool()
def call_operation(name: str, args: list[Any] | None = None) -> Any:
    """Call any supported operation by name with positional arguments."""
    return get_client().call(name, *(args or []))


@mcp.tool()
def relogin() -> dict[str, Any]:
    """Drop the current session and log in again."""
    client = get_client()
    client.sessions.relogin()
    return client.sessions.get_health()


@mcp.tool()
def get_client_health() -> dict[str, Any]:
    """Return session, dispatcher and cache state."""
    return get_client().get_health()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    mcp.run()
