"""
Pytest configuration.
Provides a scripted fake aiohttp session/websocket pair and fast client timings.
"""

import asyncio
import json
from types import SimpleNamespace

import aiohttp
import pytest

from feed_viewer.config import FeedConfig


class ServerClose:
    """Queue marker: the server closed the socket with `code`."""

    def __init__(self, code):
        self.code = code


class FakeWebSocket:
    """Just enough of aiohttp.ClientWebSocketResponse for FeedClient."""

    def __init__(self):
        self.incoming = asyncio.Queue()
        self.sent = []
        self.pings = 0
        self.pongs = []
        self.closed = False
        self.close_code = None
        self._exception = None

    # Inbound scripting
    def feed(self, message):
        data = message if isinstance(message, str) else json.dumps(message)
        self.incoming.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.TEXT, data=data))

    def feed_ping(self, data=b"hi"):
        self.incoming.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.PING, data=data))

    def feed_pong(self):
        self.incoming.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.PONG, data=b""))

    def feed_error(self, exc):
        self._exception = exc
        self.incoming.put_nowait(SimpleNamespace(type=aiohttp.WSMsgType.ERROR, data=exc))

    def server_close(self, code):
        self.incoming.put_nowait(ServerClose(code))

    # aiohttp surface
    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        item = await self.incoming.get()
        if isinstance(item, ServerClose):
            self.closed = True
            self.close_code = item.code
            raise StopAsyncIteration
        return item

    async def send_str(self, data):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.sent.append(data)

    async def ping(self, message=b""):
        if self.closed:
            raise ConnectionResetError("Cannot write to closing transport")
        self.pings += 1

    async def pong(self, message=b""):
        self.pongs.append(message)

    async def close(self, *, code=1000, message=b""):
        if not self.closed:
            self.closed = True
            self.close_code = code
        return True

    def exception(self):
        return self._exception

    # Test helpers
    def sent_messages(self):
        return [json.loads(s) for s in self.sent]


class _FakeConnect:
    def __init__(self, session):
        self._session = session
        self._ws = None

    async def __aenter__(self):
        session = self._session
        if session.hang:
            await asyncio.Event().wait()
        if session.failures:
            raise session.failures.pop(0)
        self._ws = FakeWebSocket()
        session.sockets.append(self._ws)
        session.socket_opened.set()
        return self._ws

    async def __aexit__(self, *exc_info):
        await self._ws.close()


class FakeSession:
    """Stands in for aiohttp.ClientSession; records every ws_connect."""

    def __init__(self):
        self.sockets = []
        self.connect_calls = 0
        self.connect_kwargs = []
        self.failures = []         # Exceptions raised by the next handshakes, in order
        self.hang = False          # Handshake never completes
        self.socket_opened = asyncio.Event()

    def ws_connect(self, url, **kwargs):
        self.connect_calls += 1
        self.connect_kwargs.append(kwargs)
        return _FakeConnect(self)

    @property
    def ws(self):
        return self.sockets[-1]


async def wait_until(predicate, timeout=2.0):
    """Poll predicate on the event loop until true, or fail."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def fast_config():
    """Timings short enough for tests; behaviour identical to production."""
    return FeedConfig(
        products=("BTC-USD", "ETH-USD", "SOL-USD"),
        book_depth=10,
        trade_capacity=50,
        connect_timeout_sec=5.0,
        subscribe_delay_sec=0.0,
        ping_interval_sec=60.0,
        max_reconnect_attempts=10,
        backoff_unit_sec=0.001,
        snapshot_interval_ms=0,
    )


@pytest.fixture
def fake_session():
    return FakeSession()
