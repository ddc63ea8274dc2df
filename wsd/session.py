from __future__ import annotations

import asyncio
import enum
import logging
import sys
from collections.abc import Awaitable, Callable
from typing import IO

from . import async_websocket
from .async_websocket import AsyncWebSocket
from .console import Console
from .models import RenderMode, SessionConfig
from .pump import (
    error_sink,
    inbound_reader,
    message_presenter,
    operator_input,
    outbound_writer,
)

log = logging.getLogger(__name__)


class SessionResult(enum.Enum):
    REMOTE_CLOSED = "remote-closed"
    INPUT_EXHAUSTED = "input-exhausted"
    STOPPED = "stopped"
    OUTPUT_CLOSED = "output-closed"


class Session:
    """
    One connection and the tasks that pump messages through it.

    Args:
        config: Connection and rendering options
        stdin: Text stream operator lines are read from (interactive mode only)
        console: Where output is rendered (defaults to the process streams)
        dialer: Coroutine opening the connection (defaults to ``async_websocket.dial``)
    """

    def __init__(
        self,
        config: SessionConfig,
        stdin: IO[str] | None = None,
        console: Console | None = None,
        dialer: Callable[[SessionConfig], Awaitable[AsyncWebSocket]] | None = None,
    ) -> None:
        self.config = config
        self.stdin = stdin if stdin is not None else sys.stdin
        self.console = console or Console(raw=config.raw)
        self._dialer = dialer or async_websocket.dial
        self._shutdown: asyncio.Event | None = None
        self._stop_requested = False

    def request_shutdown(self) -> None:
        """Ask a running session to stop; safe to call more than once."""
        self._stop_requested = True
        if self._shutdown is not None:
            self._shutdown.set()

    async def run(self) -> SessionResult:
        """
        Dial, pump messages until the session ends, then close the connection.

        Dial failures propagate as :class:`wsd.errors.ConnectionError` before
        any task is started.
        """
        config = self.config
        console = self.console
        self._shutdown = shutdown = asyncio.Event()
        if self._stop_requested:
            shutdown.set()

        console.connecting(config.url, config.protocol, config.origin)
        async with await self._dialer(config) as conn:
            console.connected(config.url)

            messages: asyncio.Queue = asyncio.Queue()
            errors: asyncio.Queue = asyncio.Queue()

            async with asyncio.TaskGroup() as tg:
                tasks = [
                    tg.create_task(error_sink(errors, console, shutdown), name="error-sink"),
                    tg.create_task(
                        inbound_reader(conn, config.buf_size, messages, errors),
                        name="inbound-reader",
                    ),
                    tg.create_task(message_presenter(messages, console), name="presenter"),
                ]
                presenter = tasks[-1]
                stop = tg.create_task(shutdown.wait(), name="shutdown")
                tasks.append(stop)

                if config.mode is RenderMode.INTERACTIVE:
                    outbound: asyncio.Queue = asyncio.Queue()
                    writer = tg.create_task(
                        outbound_writer(conn, outbound, errors), name="outbound-writer"
                    )
                    done = tg.create_task(self._converse(outbound, writer), name="operator")
                    tasks.extend([writer, done])
                else:
                    done = stop

                await asyncio.wait({done, stop, presenter}, return_when=asyncio.FIRST_COMPLETED)
                if self._stop_requested:
                    result = SessionResult.STOPPED
                elif shutdown.is_set():
                    result = SessionResult.REMOTE_CLOSED
                elif presenter.done():
                    result = SessionResult.OUTPUT_CLOSED
                else:
                    result = SessionResult.INPUT_EXHAUSTED

                log.debug("shutting down: %s", result.value)
                for task in tasks:
                    task.cancel()

        log.debug("connection closed")
        return result

    async def _converse(self, outbound: asyncio.Queue, writer: asyncio.Task) -> None:
        await operator_input(self.stdin, outbound, self.console)
        # Close the outbound queue and let the writer drain it.
        await outbound.put(None)
        await writer
