"""
Operation dispatcher: the single entry point for every remote operation.

Routes a named operation to the transport of the active mode, never mixing
the two, and returns the same result shape whichever transport served it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from typing import Any

from .config import Mode
from .errors import RemoteError, UnsupportedOperationError
from .legacy import LegacyAdapter
from .operations import MANY, NONE, OPERATIONS, OperationDescriptor
from .rest import RestAdapter
from .session import SessionManager

logger = logging.getLogger(__name__)


def shape_result(descriptor: OperationDescriptor, payload: Any) -> Any:
    if descriptor.cardinality == NONE:
        return None
    if descriptor.cardinality == MANY:
        if payload is None:
            return []
        if isinstance(payload, list):
            return payload
        if isinstance(payload, Mapping):
            return [dict(payload)]
        raise RemoteError(
            f"{descriptor.name} returned {type(payload).__name__}, expected a list",
            operation=descriptor.name,
            fault_code="unexpected_shape",
        )
    if payload is None:
        if descriptor.optional:
            return None
        raise RemoteError(
            f"{descriptor.name} returned nothing, expected a record",
            operation=descriptor.name,
            fault_code="unexpected_shape",
        )
    if not isinstance(payload, Mapping):
        raise RemoteError(
            f"{descriptor.name} returned {type(payload).__name__}, expected a record",
            operation=descriptor.name,
            fault_code="unexpected_shape",
        )
    return payload


class OperationDispatcher:
    """Routes operation calls between the legacy and REST adapters."""

    def __init__(
        self,
        sessions: SessionManager,
        legacy: LegacyAdapter | None,
        rest: RestAdapter | None,
        operations: Mapping[str, OperationDescriptor] = OPERATIONS,
    ):
        self._sessions = sessions
        self._legacy = legacy
        self._rest = rest
        self._operations = operations
        self._call_count = 0
        self._relogin_count = 0
        self._stats_lock = threading.Lock()

    @property
    def mode(self) -> Mode:
        return self._sessions.mode

    def supports(self, name: str) -> bool:
        descriptor = self._operations.get(name)
        if descriptor is None:
            return False
        if self.mode is Mode.LEGACY_RPC:
            return descriptor.legacy is not None
        return descriptor.rest is not None

    def descriptor_for(self, name: str) -> OperationDescriptor:
        if not self.supports(name):
            raise UnsupportedOperationError(name, self.mode.value)
        return self._operations[name]

    def call(self, name: str, *args: Any) -> Any:
        descriptor = self.descriptor_for(name)
        bound = descriptor.bind(args)
        with self._stats_lock:
            self._call_count += 1
        logger.debug("Dispatching %s (%s mode)", name, self.mode.value)
        if self.mode is Mode.LEGACY_RPC:
            payload = self._call_legacy(descriptor, bound)
        else:
            payload = self._call_rest(descriptor, bound)
        return shape_result(descriptor, payload)

    def _call_legacy(self, descriptor: OperationDescriptor, bound: dict[str, Any]) -> Any:
        if self._legacy is None:
            raise RuntimeError("legacy mode requires a legacy adapter")
        session = self._sessions.ensure_session()
        try:
            return self._legacy.invoke(session.credential, descriptor, bound)
        except RemoteError as exc:
            if not exc.auth_expired:
                raise
            logger.warning("Session expired during %s, logging in again", descriptor.name)

        with self._stats_lock:
            self._relogin_count += 1
        session = self._sessions.relogin(expired=session)
        # A second expiry here propagates; there is no further retry.
        return self._legacy.invoke(session.credential, descriptor, bound)

    def _call_rest(self, descriptor: OperationDescriptor, bound: dict[str, Any]) -> Any:
        if self._rest is None:
            raise RuntimeError("REST mode requires a REST adapter")
        session = self._sessions.ensure_session()
        return self._rest.invoke(session.auth_header, descriptor, bound)

    def get_health(self) -> dict[str, Any]:
        with self._stats_lock:
            call_count, relogin_count = self._call_count, self._relogin_count
        return {
            "mode": self.mode.value,
            "callCount": call_count,
            "reloginCount": relogin_count,
            "operations": sorted(n for n in self._operations if self.supports(n)),
        }
