"""
Session manager: owns the primary credential and the browser-style cookie
session used for web-only actions.

At most one session is live per manager. Logins are serialized so that
concurrent callers who find no session share a single login round trip.
"""

from __future__ import annotations

import base64
import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx

from .config import CredentialProvider, JiraSettings, Mode, require_credentials
from .errors import WebSessionError
from .legacy import LegacyAdapter

logger = logging.getLogger(__name__)

WEB_LOGIN_PATH = "secure/Dashboard.jspa"


@dataclass(frozen=True)
class Session:
    mode: Mode
    credential: str
    principal: str
    web_session_established: bool = False

    @property
    def auth_header(self) -> str:
        return f"Basic {self.credential}"

    def __repr__(self) -> str:
        return (
            f"Session(mode={self.mode.value!r}, principal={self.principal!r}, "
            f"web_session_established={self.web_session_established!r})"
        )


def basic_credential(username: str, secret: str) -> str:
    return base64.b64encode(f"{username}:{secret}".encode()).decode("ascii")


class SessionManager:
    """Thread-safe holder of the single live session."""

    def __init__(
        self,
        settings: JiraSettings,
        legacy: LegacyAdapter | None,
        web_client: httpx.Client,
        credential_provider: CredentialProvider,
    ):
        self._settings = settings
        self._legacy = legacy
        self._web_client = web_client
        self._credential_provider = credential_provider

        self._session: Session | None = None
        self._credentials: tuple[str, str] | None = None
        self._login_lock = threading.Lock()
        self._state_lock = threading.RLock()

        self._login_count = 0
        self._last_login_at: float | None = None
        self._last_error: str | None = None

    @property
    def mode(self) -> Mode:
        return self._settings.mode

    @property
    def current(self) -> Session | None:
        with self._state_lock:
            return self._session

    def _primary_login(self, username: str, secret: str) -> Session:
        if self.mode is Mode.STRUCTURED_REST:
            credential = basic_credential(username, secret)
        else:
            if self._legacy is None:
                raise RuntimeError("legacy mode requires a legacy adapter")
            credential = self._legacy.login(username, secret)
        return Session(mode=self.mode, credential=credential, principal=username)

    def _web_login(self, username: str, secret: str) -> None:
        try:
            response = self._web_client.post(
                WEB_LOGIN_PATH,
                data={
                    "os_username": username,
                    "os_password": secret,
                    "os_destination": "",
                    "login": "Log In",
                },
            )
        except httpx.RequestError as exc:
            raise WebSessionError(f"web login failed: {exc.__class__.__name__}") from exc
        if response.status_code > 299:
            raise WebSessionError(
                f"web login failed with HTTP {response.status_code}",
                status=response.status_code,
            )

    def _commit(self, session: Session) -> None:
        with self._state_lock:
            self._session = session

    def _mark_web_session(self) -> None:
        with self._state_lock:
            if self._session is not None:
                self._session = dataclasses.replace(self._session, web_session_established=True)

    def login(self, username: str, secret: str) -> Session:
        """Log in and commit a session, then try to open the web session.

        Raises WebSessionError if only the web session failed; the primary
        session is committed regardless.
        """
        with self._login_lock:
            return self._login_locked(username, secret)

    def _login_locked(self, username: str, secret: str) -> Session:
        try:
            session = self._primary_login(username, secret)
        except Exception as exc:
            self._last_error = f"{exc.__class__.__name__}: {exc}"
            raise
        self._commit(session)
        self._credentials = (username, secret)
        self._login_count += 1
        self._last_login_at = time.time()
        self._last_error = None
        logger.info("Logged in as %s (%s mode)", username, self.mode.value)

        try:
            self._web_login(username, secret)
        except WebSessionError as exc:
            self._last_error = f"{exc.__class__.__name__}: {exc}"
            raise
        self._mark_web_session()
        return self.current  # type: ignore[return-value]

    def ensure_session(self) -> Session:
        session = self.current
        if session is not None:
            return session
        with self._login_lock:
            # Another caller may have finished logging in while we waited.
            session = self.current
            if session is not None:
                return session
            username, secret = self._credentials or require_credentials(self._credential_provider)
            try:
                return self._login_locked(username, secret)
            except WebSessionError as exc:
                logger.warning("Web session unavailable, continuing without it: %s", exc)
                return self.current  # type: ignore[return-value]

    def ensure_web_session(self) -> Session:
        session = self.ensure_session()
        if session.web_session_established:
            return session
        with self._login_lock:
            session = self.current
            if session is not None and session.web_session_established:
                return session
            username, secret = self._credentials or require_credentials(self._credential_provider)
            if session is None:
                return self._login_locked(username, secret)
            self._web_login(username, secret)
            self._mark_web_session()
            return self.current  # type: ignore[return-value]

    def invalidate(self, expected: Session | None = None) -> None:
        """Drop the credential; with `expected`, only if it is still current."""
        with self._state_lock:
            if self._session is None:
                return
            # A newer login already replaced the expired credential.
            if expected is not None and self._session.credential != expected.credential:
                return
            logger.info("Invalidating session for %s", self._session.principal)
            self._session = None

    def relogin(self, expired: Session | None = None) -> Session:
        self.invalidate(expired)
        return self.ensure_session()

    def get_health(self) -> dict[str, Any]:
        with self._state_lock:
            session = self._session
            return {
                "mode": self.mode.value,
                "loggedIn": session is not None,
                "principal": session.principal if session else None,
                "webSession": bool(session and session.web_session_established),
                "loginCount": self._login_count,
                "lastLoginAt": self._last_login_at,
                "lastError": self._last_error,
            }
