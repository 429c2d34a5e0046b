"""
Web-fallback executor for actions that only the web UI offers.

The response body is never inspected; an accepted form POST only tells the
caller the server took the request, not that the action happened.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import WebSessionError
from .session import SessionManager

logger = logging.getLogger(__name__)

LINK_ISSUE_PATH = "secure/LinkExistingIssue.jspa"


@dataclass(frozen=True)
class UnconfirmedResult:
    """Outcome of a web-only action: accepted over HTTP, never confirmed."""

    action: str
    path: str
    confirmed: bool = False


class WebFallbackExecutor:
    def __init__(self, sessions: SessionManager, web_client: httpx.Client):
        self._sessions = sessions
        self._web_client = web_client

    def post_form(self, path: str, fields: Mapping[str, Any]) -> None:
        self._sessions.ensure_web_session()
        try:
            response = self._web_client.post(
                path,
                data={k: str(v) for k, v in fields.items()},
                headers={"X-Atlassian-Token": "no-check"},
            )
        except httpx.RequestError as exc:
            raise WebSessionError(f"form post to {path} failed: {exc.__class__.__name__}") from exc
        if response.status_code > 299:
            raise WebSessionError(
                f"form post to {path} failed with HTTP {response.status_code}",
                status=response.status_code,
            )
        logger.debug("Form post to %s accepted (HTTP %d)", path, response.status_code)

    def link_issue(self, source_id: Any, link_type: str, target_key: str) -> UnconfirmedResult:
        """Link two issues through the web UI.

        `source_id` is the numeric id of the source issue, `link_type` the
        link description as shown in the UI (e.g. "blocks").
        """
        self.post_form(
            LINK_ISSUE_PATH,
            {
                "id": source_id,
                "linkDesc": link_type,
                "linkKey": target_key,
                "Link": "Link",
            },
        )
        return UnconfirmedResult(action="linkIssue", path=LINK_ISSUE_PATH)
