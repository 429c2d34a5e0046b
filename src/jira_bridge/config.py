"""
Client settings read from the environment, plus credential lookup.
"""

from __future__ import annotations

import enum
import logging
import netrc
import os
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlparse

from .errors import AuthError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_WSDL_PATH = "rpc/soap/jirasoapservice-v2?wsdl"

TRUTHY = {"1", "true", "yes", "on"}

CredentialProvider = Callable[[], "tuple[str, str] | None"]


class Mode(str, enum.Enum):
    LEGACY_RPC = "legacy"
    STRUCTURED_REST = "rest"


def _parse_bool_env(var_name: str, default: bool) -> bool:
    raw = os.getenv(var_name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in TRUTHY


def _parse_float_env(var_name: str, default: float) -> float:
    raw = os.getenv(var_name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s value", var_name)
        return default


@dataclass(frozen=True)
class JiraSettings:
    """Connection settings for one client instance."""

    url: str
    mode: Mode = Mode.STRUCTURED_REST
    wsdl_url: str | None = None
    host: str | None = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("JIRA_URL must be set")
        # Relative paths resolve against the base, so it always ends with '/'.
        if not self.url.endswith("/"):
            object.__setattr__(self, "url", self.url + "/")

    @classmethod
    def from_env(cls) -> JiraSettings:
        use_rest = _parse_bool_env("JIRA_USE_REST", True)
        return cls(
            url=os.getenv("JIRA_URL", ""),
            mode=Mode.STRUCTURED_REST if use_rest else Mode.LEGACY_RPC,
            wsdl_url=os.getenv("JIRA_WSDL_URL") or None,
            host=os.getenv("JIRA_HOST") or None,
            timeout_seconds=_parse_float_env("JIRA_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        )

    @property
    def rest_base_url(self) -> str:
        return self.url + "rest/api/2/"

    @property
    def effective_wsdl_url(self) -> str:
        return self.wsdl_url or self.url + DEFAULT_WSDL_PATH

    @property
    def lookup_host(self) -> str:
        """Host used as the key when looking up stored credentials."""
        return self.host or urlparse(self.url).hostname or ""


def env_credentials() -> tuple[str, str] | None:
    username = os.getenv("JIRA_USERNAME")
    password = os.getenv("JIRA_PASSWORD")
    if username and password:
        return username, password
    return None


def netrc_credentials(host: str, path: str | None = None) -> tuple[str, str] | None:
    try:
        entry = netrc.netrc(path).authenticators(host)
    except FileNotFoundError:
        return None
    except netrc.NetrcParseError as exc:
        logger.warning("Ignoring unreadable netrc file: %s", exc.msg)
        return None
    if not entry:
        return None
    login, _account, password = entry
    if not login or not password:
        return None
    return login, password


def default_credential_provider(settings: JiraSettings) -> CredentialProvider:
    """Environment first, then the netrc entry for the lookup host."""

    def _provide() -> tuple[str, str] | None:
        return env_credentials() or netrc_credentials(settings.lookup_host)

    return _provide


def require_credentials(provider: CredentialProvider) -> tuple[str, str]:
    credentials = provider()
    if credentials is None:
        raise AuthError("no credentials configured (set JIRA_USERNAME/JIRA_PASSWORD or ~/.netrc)")
    return credentials
