from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _clear_jira_env(monkeypatch: pytest.MonkeyPatch):
    keys = [
        "JIRA_URL",
        "JIRA_WSDL_URL",
        "JIRA_USE_REST",
        "JIRA_HOST",
        "JIRA_USERNAME",
        "JIRA_PASSWORD",
        "JIRA_TIMEOUT_SECONDS",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
