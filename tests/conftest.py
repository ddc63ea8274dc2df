"""Pytest configuration and fixtures."""

import asyncio
import io

import pytest

from wsd.console import Console
from wsd.errors import ConnectionClosed


class FakeConnection:
    """
    Scripted stand-in for AsyncWebSocket.

    Reads take the next inbox entry: bytes are returned (bounded by
    max_size), exceptions are raised. An empty inbox blocks the read until
    ``feed`` or ``close_remote`` is called.
    """

    def __init__(self, script=(), write_errors=()):
        self.inbox = asyncio.Queue()
        for item in script:
            self.inbox.put_nowait(item)
        self.write_errors = list(write_errors)
        self.written = []
        self.read_sizes = []
        self.close_calls = 0

    def feed(self, item):
        self.inbox.put_nowait(item)

    def close_remote(self):
        self.inbox.put_nowait(ConnectionClosed())

    async def read(self, max_size):
        self.read_sizes.append(max_size)
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item[:max_size]

    async def write(self, data):
        if self.write_errors:
            error = self.write_errors.pop(0)
            if error is not None:
                raise error
        self.written.append(data)

    async def close(self):
        self.close_calls += 1

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


@pytest.fixture
def fake_connection():
    return FakeConnection


@pytest.fixture
def text_console():
    """Interactive console writing to in-memory streams."""
    return Console(raw=False, out=io.StringIO(), err=io.StringIO())


@pytest.fixture
def raw_console():
    """Raw console writing to in-memory streams."""
    return Console(raw=True, out=io.BytesIO(), err=io.StringIO())
