"""
The concurrent loops that move messages between the terminal and the socket.

Every loop owns one direction and talks to its neighbours through
``asyncio.Queue`` instances; ``None`` marks the end of a queue. Failures are
never handled where they happen: both I/O loops publish a
:class:`~wsd.models.TransportError` to the error queue and :func:`error_sink`
decides what happens next.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import IO, Protocol

from .console import Console
from .models import TransportError

log = logging.getLogger(__name__)


class Connection(Protocol):
    async def read(self, max_size: int) -> bytes: ...

    async def write(self, data: bytes) -> None: ...


async def inbound_reader(
    conn: Connection,
    buf_size: int,
    messages: asyncio.Queue,
    errors: asyncio.Queue,
) -> None:
    """Read frames of at most ``buf_size`` bytes and publish them in order."""
    log.debug("inbound reader started (buf_size=%d)", buf_size)
    while True:
        try:
            message = await conn.read(buf_size)
        except Exception as exc:
            failure = TransportError(exc, "inbound")
            await errors.put(failure)
            if failure.terminal:
                # Nothing more will ever arrive; the error sink ends the session.
                log.debug("inbound reader stopped: %s", failure)
                return
            continue
        await messages.put(message)


async def outbound_writer(
    conn: Connection,
    outbound: asyncio.Queue,
    errors: asyncio.Queue,
) -> None:
    """Write queued messages in submission order until the queue is closed."""
    log.debug("outbound writer started")
    while True:
        message = await outbound.get()
        if message is None:
            log.debug("outbound queue closed")
            return
        try:
            await conn.write(message)
        except Exception as exc:
            await errors.put(TransportError(exc, "outbound"))


async def message_presenter(messages: asyncio.Queue, console: Console) -> None:
    """
    Render inbound messages in order.

    Returns early if the output stream goes away (for example a closed
    pipe); the orchestrator treats that as the end of the session.
    """
    while True:
        message = await messages.get()
        if message is None:
            return
        try:
            console.received(message)
        except OSError as exc:
            log.debug("output stream closed: %r", exc)
            return


async def error_sink(
    errors: asyncio.Queue,
    console: Console,
    shutdown: asyncio.Event,
) -> None:
    """
    Report transport errors.

    Transient errors are printed and the session carries on. A remote close
    is printed as a closure notice and turns into a shutdown request; the
    orchestrator performs the actual teardown.
    """
    while True:
        failure: TransportError = await errors.get()
        if failure.terminal:
            log.debug("terminal %s error: %r", failure.direction, failure.error)
            console.remote_closed(failure)
            shutdown.set()
            return
        log.debug("transient %s error: %r", failure.direction, failure.error)
        console.transient_error(failure)


def _strip_delimiter(line: bytes) -> bytes:
    if line.endswith(b"\n"):
        line = line[:-1]
        if line.endswith(b"\r"):
            line = line[:-1]
    return line


class LineReader:
    """
    Feed lines from a blocking input stream into an asyncio queue.

    Lines are read as bytes (from ``stream.buffer`` when the stream is a text
    wrapper) so they are forwarded exactly as typed, whatever their encoding.
    The stream is read on a daemon thread so a pending ``readline`` can never
    hold up shutdown. A read failure is queued as the exception itself, and
    ``None`` is always queued last.
    """

    def __init__(self, stream: IO) -> None:
        self.stream = stream
        self.lines: asyncio.Queue = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> asyncio.Queue:
        self._loop = asyncio.get_running_loop()
        self._thread = threading.Thread(target=self._run, name="wsd-stdin", daemon=True)
        self._thread.start()
        return self.lines

    def _publish(self, item: bytes | Exception | None) -> bool:
        assert self._loop is not None
        try:
            self._loop.call_soon_threadsafe(self.lines.put_nowait, item)
        except RuntimeError:
            # Event loop already closed: the session is over.
            return False
        return True

    def _readline(self) -> bytes:
        binary = getattr(self.stream, "buffer", None)
        if binary is not None:
            return binary.readline()
        line = self.stream.readline()
        if isinstance(line, str):
            line = line.encode("utf-8", errors="surrogateescape")
        return line

    def _run(self) -> None:
        try:
            for line in iter(self._readline, b""):
                if not self._publish(_strip_delimiter(line)):
                    return
        except Exception as exc:
            self._publish(exc)
        finally:
            self._publish(None)


async def operator_input(
    stream: IO,
    outbound: asyncio.Queue,
    console: Console,
) -> None:
    """Queue one outbound message per input line until end of input."""
    lines = LineReader(stream).start()
    console.prompt()
    while True:
        line = await lines.get()
        if line is None:
            log.debug("end of operator input")
            return
        if isinstance(line, Exception):
            log.debug("operator input failed: %r", line)
            console.transient_error(f"reading input: {line}")
            continue
        await outbound.put(line)
        console.prompt()
