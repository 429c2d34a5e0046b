"""
Error taxonomy shared by the session, dispatch and transport layers.
"""

from __future__ import annotations


class JiraBridgeError(RuntimeError):
    """Base class for all client errors."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class AuthError(JiraBridgeError):
    """Raised when credentials are rejected at login."""

    def __init__(self, message: str):
        super().__init__("auth_failed", message)


class TransportError(JiraBridgeError):
    """Raised when the service could not be reached at all."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__("transport_failed", message)
        self.operation = operation


class RemoteError(JiraBridgeError):
    """Raised when the service answered with a fault or an error status."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        status: int | None = None,
        fault_code: str | None = None,
        auth_expired: bool = False,
    ):
        super().__init__("auth_expired" if auth_expired else "remote_error", message)
        self.operation = operation
        self.status = status
        self.fault_code = fault_code
        self.auth_expired = auth_expired


class WebSessionError(JiraBridgeError):
    """Raised when the browser-style session or a form action is refused."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__("web_session_failed", message)
        self.status = status


class UnsupportedOperationError(JiraBridgeError):
    """Raised when an operation has no mapping for the active transport."""

    def __init__(self, operation: str, mode: str):
        super().__init__(
            "unsupported_operation",
            f"operation '{operation}' is not available in {mode} mode",
        )
        self.operation = operation
        self.mode = mode
