"""
Dual-transport JIRA client: legacy SOAP and REST behind one call surface.
"""

from .client import JiraClient
from .config import JiraSettings, Mode
from .errors import (
    AuthError,
    JiraBridgeError,
    RemoteError,
    TransportError,
    UnsupportedOperationError,
    WebSessionError,
)
from .web import UnconfirmedResult

__all__ = [
    "AuthError",
    "JiraBridgeError",
    "JiraClient",
    "JiraSettings",
    "Mode",
    "RemoteError",
    "TransportError",
    "UnconfirmedResult",
    "UnsupportedOperationError",
    "WebSessionError",
    "main",
]


def main() -> None:
    from .server import main as server_main

    server_main()
