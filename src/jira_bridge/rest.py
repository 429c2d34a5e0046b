"""
REST v2 transport.

Builds requests from an operation's REST mapping, attaches the stored
authorization header and decodes JSON bodies.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import Mode
from .errors import RemoteError, TransportError, UnsupportedOperationError
from .operations import OperationDescriptor, RestMapping

logger = logging.getLogger(__name__)

MAX_ERROR_DETAIL_CHARS = 300


def _error_detail(response: httpx.Response) -> str:
    """Pull JIRA's errorMessages/errors out of an error body, if any."""
    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ""
    if not isinstance(payload, dict):
        return ""
    messages = [str(m) for m in payload.get("errorMessages") or []]
    errors = payload.get("errors") or {}
    if isinstance(errors, dict):
        messages.extend(f"{k}: {v}" for k, v in errors.items())
    return "; ".join(messages)[:MAX_ERROR_DETAIL_CHARS]


class RestAdapter:
    """Thin request builder over a shared httpx client."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._base_url = base_url
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_seconds,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @staticmethod
    def build_path(mapping: RestMapping, bound: dict[str, Any]) -> str:
        quoted = {name: quote(str(value), safe="") for name, value in bound.items()}
        return mapping.path.format(**quoted)

    def build_request(
        self, auth_header: str, descriptor: OperationDescriptor, bound: dict[str, Any]
    ) -> httpx.Request:
        mapping = descriptor.rest
        if mapping is None:
            raise UnsupportedOperationError(descriptor.name, Mode.STRUCTURED_REST.value)
        kwargs: dict[str, Any] = {"headers": {"Authorization": auth_header}}
        if mapping.params is not None:
            kwargs["params"] = mapping.params(**bound)
        if mapping.body is not None:
            kwargs["json"] = mapping.body(**bound)
        return self._client.build_request(mapping.method, self.build_path(mapping, bound), **kwargs)

    def invoke(self, auth_header: str, descriptor: OperationDescriptor, bound: dict[str, Any]) -> Any:
        request = self.build_request(auth_header, descriptor, bound)
        mapping: RestMapping = descriptor.rest  # type: ignore[assignment]
        try:
            response = self._client.send(request)
        except httpx.RequestError as exc:
            raise TransportError(
                f"{descriptor.name} failed: {exc.__class__.__name__}",
                operation=descriptor.name,
            ) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            message = f"{descriptor.name} failed with HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise RemoteError(message, operation=descriptor.name, status=response.status_code)

        if mapping.no_body:
            return None

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RemoteError(
                f"{descriptor.name} returned a body that is not JSON",
                operation=descriptor.name,
                status=response.status_code,
                fault_code="invalid_json",
            ) from exc

        if mapping.unwrap is not None:
            if not isinstance(payload, dict) or mapping.unwrap not in payload:
                raise RemoteError(
                    f"{descriptor.name} response has no '{mapping.unwrap}' field",
                    operation=descriptor.name,
                    status=response.status_code,
                    fault_code="unexpected_shape",
                )
            payload = payload[mapping.unwrap]
        if mapping.transform is not None:
            payload = mapping.transform(payload, **bound)
        return payload

    def close(self) -> None:
        self._client.close()
