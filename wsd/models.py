from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Literal

from .errors import is_remote_close

DEFAULT_ORIGIN = "http://localhost/"
DEFAULT_URL = "ws://localhost:1337/ws"
DEFAULT_BUF_SIZE = 1024


class RenderMode(enum.Enum):
    RAW = "raw"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class SessionConfig:
    """
    Everything needed to open and drive one session.

    Args:
        url: WebSocket endpoint to connect to
        origin: Origin header sent during the handshake
        protocol: Subprotocol to request, omitted when empty
        user_agent: User-Agent header override, omitted when empty
        insecure_skip_verify: Disable TLS certificate and hostname checks
        buf_size: Maximum number of bytes delivered per inbound read
        raw: Pass received bytes through untouched and disable the prompt
        timeout: Dial timeout in seconds
    """

    url: str = DEFAULT_URL
    origin: str = DEFAULT_ORIGIN
    protocol: str = ""
    user_agent: str = ""
    insecure_skip_verify: bool = False
    buf_size: int = DEFAULT_BUF_SIZE
    raw: bool = False
    timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.buf_size <= 0:
            raise ValueError(f"buffer size must be positive, got {self.buf_size}")

    @property
    def mode(self) -> RenderMode:
        return RenderMode.RAW if self.raw else RenderMode.INTERACTIVE


@dataclass(frozen=True)
class TransportError:
    """An I/O failure observed by the inbound reader or the outbound writer."""

    error: Exception
    direction: Literal["inbound", "outbound"]

    @property
    def terminal(self) -> bool:
        return is_remote_close(self.error)

    def __str__(self) -> str:
        return str(self.error) or type(self.error).__name__
