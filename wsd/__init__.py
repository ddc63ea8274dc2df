__version__ = "0.1.0"

from wsd.async_websocket import AsyncWebSocket, dial
from wsd.console import Console
from wsd.errors import (
    ConnectionClosed,
    ConnectionError,
    HandshakeError,
    ProtocolError,
    TLSNegotiationError,
    WsdError,
)
from wsd.models import RenderMode, SessionConfig, TransportError
from wsd.session import Session, SessionResult

__all__ = [
    "AsyncWebSocket",
    "dial",
    "Console",
    "ConnectionClosed",
    "ConnectionError",
    "HandshakeError",
    "ProtocolError",
    "TLSNegotiationError",
    "WsdError",
    "RenderMode",
    "SessionConfig",
    "TransportError",
    "Session",
    "SessionResult",
]
