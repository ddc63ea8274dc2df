from __future__ import annotations

import asyncio


class WsdError(Exception):
    """Base error for wsd."""


class ConnectionError(WsdError):
    """Raised when the TCP/TLS connection to the endpoint fails."""


class TLSNegotiationError(ConnectionError):
    """Raised when the TLS handshake fails."""


class HandshakeError(ConnectionError):
    """Raised when the server refuses the WebSocket upgrade."""


class ProtocolError(WsdError):
    """Raised when a malformed frame is read from an open connection."""


class ConnectionClosed(WsdError):
    """Raised when the remote end has closed the connection."""

    def __init__(self, code: int | None = None, reason: str = "") -> None:
        self.code = code
        self.reason = reason
        if code is None:
            message = reason or "EOF"
        else:
            message = f"close {code}" + (f" ({reason})" if reason else "")
        super().__init__(message)


def is_remote_close(exc: BaseException) -> bool:
    """Return True when ``exc`` means the peer ended the connection."""
    return isinstance(exc, (ConnectionClosed, EOFError, asyncio.IncompleteReadError))
