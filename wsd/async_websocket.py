from __future__ import annotations

import asyncio
import base64
import hashlib
import logging
import os
import ssl
import struct
from collections.abc import Iterable

from .errors import (
    ConnectionClosed,
    ConnectionError,
    HandshakeError,
    ProtocolError,
    TLSNegotiationError,
)
from .headers import handshake_headers
from .models import SessionConfig
from .utils import is_tls, parse_url

log = logging.getLogger(__name__)

OP_CONTINUATION = 0x0
OP_TEXT = 0x1
OP_BINARY = 0x2
OP_CLOSE = 0x8
OP_PING = 0x9
OP_PONG = 0xA

CLOSE_NORMAL = 1000

_GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"


async def _abort(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await writer.wait_closed()
    except Exception:
        pass


def _parse_response_headers(head: bytes) -> tuple[str, dict[str, str]]:
    lines = head.decode("latin-1").split("\r\n")
    headers: dict[str, str] = {}
    for line in lines[1:]:
        if ":" in line:
            name, value = line.split(":", 1)
            headers[name.strip().lower()] = value.strip()
    return lines[0], headers


_DATA_OPCODES = (OP_CONTINUATION, OP_TEXT, OP_BINARY)
_CONTROL_OPCODES = (OP_CLOSE, OP_PING, OP_PONG)
_MAX_CONTROL_PAYLOAD = 125
_DISCARD_CHUNK = 1 << 16


def _unmask(data: bytes, mask_key: bytes | None, offset: int = 0) -> bytes:
    if not mask_key:
        return data
    return bytes(b ^ mask_key[(offset + i) % 4] for i, b in enumerate(data))


def _build_request(
    host_header: str,
    resource: str,
    key: str,
    headers: Iterable[tuple[str, str]],
) -> bytes:
    req_lines = [
        f"GET {resource} HTTP/1.1\r\n",
        f"Host: {host_header}\r\n",
        "Upgrade: websocket\r\n",
        "Connection: Upgrade\r\n",
        f"Sec-WebSocket-Key: {key}\r\n",
        "Sec-WebSocket-Version: 13\r\n",
    ]
    for name, value in headers:
        req_lines.append(f"{name}: {value}\r\n")
    req_lines.append("\r\n")
    try:
        return "".join(req_lines).encode("ascii")
    except UnicodeEncodeError as exc:
        bad = exc.object[exc.start:exc.end]
        raise ConnectionError(f"Handshake request must be ASCII, got {bad!r}") from exc


class AsyncWebSocket:
    """
    Async WebSocket client (RFC6455) over asyncio streams.

    Data frames are exposed as a byte stream through :meth:`read`: payloads
    are pulled off the socket in pieces no larger than the caller's buffer,
    so a huge frame never has to fit in memory. Ping, pong and close frames
    are answered here so that callers only ever see payload bytes or
    :class:`ConnectionClosed`. No extensions; no permessage-deflate.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        subprotocol: str | None = None,
    ):
        self.reader = reader
        self.writer = writer
        self.subprotocol = subprotocol
        self._closed = False
        # Payload bytes of the current data frame still on the socket.
        self._remaining = 0
        self._mask_key: bytes | None = None
        self._offset = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        resource: str,
        headers: Iterable[tuple[str, str]],
        tls: bool = False,
        timeout: float = 10.0,
        ssl_context: ssl.SSLContext | None = None,
    ) -> AsyncWebSocket:
        """Open the TCP/TLS stream and perform the upgrade handshake."""
        host_header = host if port in (80, 443) else f"{host}:{port}"
        key = base64.b64encode(os.urandom(16)).decode()
        # Built before dialing so a bad header never leaves a socket behind.
        request = _build_request(host_header, resource, key, headers)

        if tls and ssl_context is None:
            ssl_context = ssl.create_default_context()

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(
                    host=host,
                    port=port,
                    ssl=ssl_context if tls else None,
                    server_hostname=host if tls else None,
                ),
                timeout=timeout,
            )
        except ssl.SSLError as exc:
            raise TLSNegotiationError(f"TLS handshake failed: {exc}") from exc
        except asyncio.TimeoutError as exc:
            raise ConnectionError(f"Timed out connecting to {host}:{port}") from exc
        except OSError as exc:
            raise ConnectionError(f"Connect to {host}:{port} failed: {exc}") from exc

        try:
            subprotocol = await cls._handshake(reader, writer, request, key, timeout)
        except BaseException:
            await _abort(writer)
            raise
        return cls(reader, writer, subprotocol)

    @staticmethod
    async def _handshake(
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        request: bytes,
        key: str,
        timeout: float,
    ) -> str | None:
        """Send the upgrade request and validate the response; return the subprotocol."""
        try:
            writer.write(request)
            await writer.drain()
            # readuntil leaves any frame sent right after the headers buffered.
            head = await asyncio.wait_for(reader.readuntil(b"\r\n\r\n"), timeout=timeout)
        except asyncio.IncompleteReadError as exc:
            raise HandshakeError(f"Connection closed during handshake: {exc.partial!r}") from exc
        except asyncio.LimitOverrunError as exc:
            raise HandshakeError("Handshake response headers too large") from exc
        except asyncio.TimeoutError as exc:
            raise ConnectionError("Timed out waiting for handshake response") from exc
        except OSError as exc:
            raise ConnectionError(f"Handshake failed: {exc}") from exc

        status_line, resp_headers = _parse_response_headers(head)
        if " 101 " not in f"{status_line} ":
            raise HandshakeError(f"WebSocket upgrade failed: {status_line!r}")

        accept = base64.b64encode(hashlib.sha1((key + _GUID).encode()).digest()).decode()
        if resp_headers.get("sec-websocket-accept") != accept:
            raise HandshakeError("WebSocket accept mismatch")

        return resp_headers.get("sec-websocket-protocol") or None

    async def read(self, max_size: int) -> bytes:
        """
        Return at most ``max_size`` bytes of inbound payload.

        A data frame larger than ``max_size`` is handed out over successive
        calls. Empty data frames are skipped. A rejected frame is consumed
        whole before :class:`ProtocolError` is raised, so the next call
        starts on a frame boundary.
        """
        while not self._remaining:
            opcode, length, mask_key, rsv = await self._recv_header()
            if rsv:
                await self._discard(length)
                raise ProtocolError("Reserved bits set without a negotiated extension")
            if opcode in _DATA_OPCODES:
                self._remaining, self._mask_key, self._offset = length, mask_key, 0
            elif opcode in _CONTROL_OPCODES:
                if length > _MAX_CONTROL_PAYLOAD:
                    await self._discard(length)
                    raise ProtocolError(f"Control frame payload too long: {length}")
                payload = _unmask(await self._recv_exact(length), mask_key)
                if opcode == OP_PING:
                    await self._send_frame(OP_PONG, payload)
                elif opcode == OP_CLOSE:
                    await self._on_close_frame(payload)
            else:
                await self._discard(length)
                raise ProtocolError(f"Unknown opcode {opcode:#x}")

        n = min(max_size, self._remaining)
        chunk = _unmask(await self._recv_exact(n), self._mask_key, self._offset)
        self._remaining -= n
        self._offset += n
        return chunk

    async def recv(self) -> bytes:
        """Receive the whole payload of the next data frame."""
        chunks = [await self.read(_DISCARD_CHUNK)]
        while self._remaining:
            chunks.append(await self.read(_DISCARD_CHUNK))
        return b"".join(chunks)

    async def write(self, data: bytes) -> None:
        """Send ``data`` as one text frame."""
        await self._send_frame(OP_TEXT, data)

    async def send_text(self, text: str) -> None:
        await self._send_frame(OP_TEXT, text.encode("utf-8"))

    async def send_bytes(self, data: bytes) -> None:
        await self._send_frame(OP_BINARY, data)

    async def close(self) -> None:
        """Close the WebSocket connection."""
        if self._closed:
            return
        try:
            await self._send_frame(OP_CLOSE, struct.pack("!H", CLOSE_NORMAL))
        except Exception:
            pass
        self._closed = True
        await _abort(self.writer)

    async def _on_close_frame(self, payload: bytes) -> None:
        code = None
        reason = ""
        if len(payload) >= 2:
            code = struct.unpack("!H", payload[:2])[0]
            reason = payload[2:].decode("utf-8", errors="replace")
        log.debug("close frame received: code=%s reason=%r", code, reason)
        # Echo the close frame before tearing the stream down.
        await self.close()
        raise ConnectionClosed(code, reason)

    async def _send_frame(self, opcode: int, payload: bytes) -> None:
        """Send a WebSocket frame."""
        if self._closed:
            raise ConnectionClosed(reason="WebSocket is closed")

        fin_opcode = 0x80 | opcode
        mask_bit = 0x80
        length = len(payload)
        header = bytearray([fin_opcode])

        if length < 126:
            header.append(mask_bit | length)
        elif length < (1 << 16):
            header.append(mask_bit | 126)
            header.extend(struct.pack("!H", length))
        else:
            header.append(mask_bit | 127)
            header.extend(struct.pack("!Q", length))

        mask = os.urandom(4)
        header.extend(mask)
        masked = bytes(b ^ mask[i % 4] for i, b in enumerate(payload))

        self.writer.write(header + masked)
        await self.writer.drain()

    async def _recv_header(self) -> tuple[int, int, bytes | None, int]:
        """Receive a frame header: (opcode, payload length, mask key, RSV bits)."""
        if self._closed:
            raise ConnectionClosed(reason="WebSocket is closed")

        b1, b2 = await self._recv_exact(2)
        opcode = b1 & 0x0F
        rsv = b1 & 0x70
        masked = (b2 & 0x80) != 0
        length = b2 & 0x7F

        if length == 126:
            length = struct.unpack("!H", await self._recv_exact(2))[0]
        elif length == 127:
            length = struct.unpack("!Q", await self._recv_exact(8))[0]

        mask_key = await self._recv_exact(4) if masked else None
        return opcode, length, mask_key, rsv

    async def _discard(self, length: int) -> None:
        """Skip ``length`` payload bytes without holding them all in memory."""
        while length:
            n = min(length, _DISCARD_CHUNK)
            await self._recv_exact(n)
            length -= n

    async def _recv_exact(self, n: int) -> bytes:
        """Read exactly n bytes."""
        buf = bytearray()
        while len(buf) < n:
            try:
                chunk = await self.reader.read(n - len(buf))
            except ConnectionResetError as exc:
                self._closed = True
                raise ConnectionClosed(reason=str(exc) or "connection reset") from exc
            if not chunk:
                self._closed = True
                raise ConnectionClosed()
            buf.extend(chunk)
        return bytes(buf)

    async def __aenter__(self) -> AsyncWebSocket:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


async def dial(config: SessionConfig) -> AsyncWebSocket:
    """Open the single connection described by ``config``."""
    try:
        _, host, port, resource = parse_url(config.url)
    except ValueError as exc:
        raise ConnectionError(str(exc)) from exc

    tls = is_tls(config.url)
    ssl_context = None
    if tls:
        ssl_context = ssl.create_default_context()
        if config.insecure_skip_verify:
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

    headers = handshake_headers(config.origin, config.protocol, config.user_agent)
    log.debug("dialing %s:%d%s (tls=%s)", host, port, resource, tls)
    ws = await AsyncWebSocket.connect(
        host,
        port,
        resource,
        headers,
        tls=tls,
        timeout=config.timeout,
        ssl_context=ssl_context,
    )
    log.debug("connected, subprotocol=%r", ws.subprotocol)
    return ws
