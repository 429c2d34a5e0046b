"""
Legacy SOAP transport.

Every remote procedure takes the session token as its first argument; the
remaining arguments follow the fixed order of the operation's parameters.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

import requests
import zeep
from zeep.exceptions import Fault
from zeep.exceptions import TransportError as ZeepTransportError
from zeep.helpers import serialize_object
from zeep.transports import Transport

from .config import Mode
from .errors import AuthError, RemoteError, TransportError, UnsupportedOperationError
from .operations import OperationDescriptor

logger = logging.getLogger(__name__)

AUTH_EXPIRED_MARKER = "RemoteAuthenticationException"


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def _fault_code(exc: Fault) -> str:
    code = getattr(exc, "code", None)
    if code:
        return str(code)
    # JIRA reports the exception class as the prefix of the fault string.
    message = str(getattr(exc, "message", "") or exc)
    return message.split(":", 1)[0].strip() or "soap_fault"


def is_auth_expired(exc: Fault) -> bool:
    parts = (
        getattr(exc, "message", None),
        getattr(exc, "code", None),
        getattr(exc, "detail", None),
    )
    return any(part is not None and AUTH_EXPIRED_MARKER in str(part) for part in parts)


class LegacyAdapter:
    """Invokes SOAP operations through zeep and returns plain Python data."""

    def __init__(
        self,
        wsdl_url: str,
        timeout_seconds: float = 30.0,
        service: Any = None,
    ):
        self._wsdl_url = wsdl_url
        self._timeout_seconds = timeout_seconds
        self._service = service
        self._transport: Transport | None = None
        self._lock = threading.Lock()

    def _get_service(self) -> Any:
        with self._lock:
            if self._service is None:
                logger.info("Loading legacy service descriptor from %s", self._wsdl_url)
                transport = Transport(
                    timeout=self._timeout_seconds,
                    operation_timeout=self._timeout_seconds,
                )
                try:
                    client = zeep.Client(self._wsdl_url, transport=transport)
                except requests.RequestException as exc:
                    transport.session.close()
                    raise TransportError(f"cannot load legacy service descriptor: {exc}") from exc
                self._transport = transport
                self._service = client.service
            return self._service

    def login(self, username: str, secret: str) -> str:
        service = self._get_service()
        try:
            token = service.login(username, secret)
        except Fault as exc:
            raise AuthError(
                f"legacy login rejected for user '{username}' ({_fault_code(exc)})"
            ) from exc
        except ZeepTransportError as exc:
            raise RemoteError(
                f"legacy login failed with HTTP {exc.status_code}",
                operation="login",
                status=exc.status_code,
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(f"legacy login failed: {exc.__class__.__name__}", operation="login") from exc
        if not token:
            raise AuthError(f"legacy login for user '{username}' returned no token")
        return str(token)

    def encode(self, descriptor: OperationDescriptor, bound: dict[str, Any]) -> list[Any]:
        mapping = descriptor.legacy
        if mapping is None:
            raise UnsupportedOperationError(descriptor.name, Mode.LEGACY_RPC.value)
        if mapping.encode is not None:
            return list(mapping.encode(**bound))
        return [bound[name] for name in descriptor.params]

    def invoke(self, token: str, descriptor: OperationDescriptor, bound: dict[str, Any]) -> Any:
        args = self.encode(descriptor, bound)
        method_name = descriptor.legacy.method  # type: ignore[union-attr]
        service = self._get_service()
        try:
            method = getattr(service, method_name)
        except AttributeError as exc:
            raise UnsupportedOperationError(descriptor.name, Mode.LEGACY_RPC.value) from exc

        try:
            result = method(token, *args)
        except Fault as exc:
            code = _fault_code(exc)
            expired = is_auth_expired(exc)
            raise RemoteError(
                f"{descriptor.name} failed with fault {code}",
                operation=descriptor.name,
                fault_code=code,
                auth_expired=expired,
            ) from exc
        except ZeepTransportError as exc:
            raise RemoteError(
                f"{descriptor.name} failed with HTTP {exc.status_code}",
                operation=descriptor.name,
                status=exc.status_code,
            ) from exc
        except requests.RequestException as exc:
            raise TransportError(
                f"{descriptor.name} failed: {exc.__class__.__name__}",
                operation=descriptor.name,
            ) from exc

        return _plain(serialize_object(result, dict))

    def close(self) -> None:
        """Release the HTTP session of a service this adapter built itself."""
        with self._lock:
            if self._transport is not None:
                self._transport.session.close()
                self._transport = None
                self._service = None
