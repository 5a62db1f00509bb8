"""
Coinbase Exchange WebSocket feed client with async orchestration.

Handles:
1. Connection lifecycle (connect / disconnect / product switch) as a state machine
2. Subscription after a short settle delay once the socket is open
3. Local order book, trade tape and ticker for the active product
4. Ping round-trip quality probe
5. Reconnection with exponential backoff and an attempt ceiling

Concurrency:
- Everything runs on one asyncio loop; socket reads, timers and user commands are
  all coroutines on it, so FeedClient is the single writer of its own state
- Each timer captures the generation it was armed in and does nothing if the
  generation moved on (disconnect, new connect, fatal error) before it fired
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Coroutine

import aiohttp

from ..config import NORMAL_CLOSE_CODES, RECONNECT_HINT_CLOSE_CODES, FeedConfig
from ..engine.quality import QualityMonitor
from ..engine.reconnect import ReconnectPolicy
from ..engine.trades import TradeLog
from ..errors import NotConnectedError, UnknownProductError
from ..types import (
    CONNECTED, CONNECTING, DISCONNECTED, RECONNECTING,
    ConnectionQuality, ConnectionState, ConnectionStatus, FeedView, TickerSnapshot, Trade,
)
from .codec import (
    BookSnapshotMessage, BookUpdate, Heartbeat, ServerError, SubscriptionAck, decode,
)
from .orderbook import OrderBookReplica
from .subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)

# Transport-level failures; all of them end in a reconnect. aiohttp.InvalidURL is
# caught ahead of these and fails the client instead.
TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class FeedClient:
    """
    Async client for the Coinbase ticker / level2 / matches / heartbeat channels.

    Usage:
        async with aiohttp.ClientSession() as session:
            client = FeedClient(FeedConfig(), "BTC-USD", session=session)
            await client.connect()
            view = await client.snapshot_queue.get()
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        product_id: str | None = None,
        session: Any = None,
    ) -> None:
        self.config = (config or FeedConfig()).validate()

        product_id = product_id or self.config.default_product
        if product_id not in self.config.products:
            raise UnknownProductError(product_id)
        self.product_id = product_id

        # Market state for the active product
        self.orderbook = OrderBookReplica(product_id, depth=self.config.book_depth)
        self.trades = TradeLog(self.config.trade_capacity)
        self.ticker: TickerSnapshot | None = None

        # Connection machinery
        self.monitor = QualityMonitor()
        self.reconnect = ReconnectPolicy(
            max_attempts=self.config.max_reconnect_attempts,
            max_backoff=self.config.max_backoff,
        )
        self.subscriptions = SubscriptionManager(
            self.config.products, self._send_text, self.config.channels,
        )

        # State
        self.state: ConnectionState = DISCONNECTED
        self._session = session
        self._owns_session = session is None
        self._ws: Any = None
        self._generation: int = 0
        self._subscription_epoch: int = 0
        self._tasks: set[asyncio.Task] = set()
        self.discarded_messages: int = 0

        # Output queue for UI (same event loop)
        self._last_publish_time: float = 0.0
        self.snapshot_queue: asyncio.Queue[FeedView] = asyncio.Queue(maxsize=5)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def quality(self) -> ConnectionQuality:
        return self.monitor.quality

    @property
    def last_heartbeat(self) -> datetime | None:
        return self.monitor.last_heartbeat

    @property
    def is_connected(self) -> bool:
        return self.state.is_connected

    def view(self) -> FeedView:
        """Current state as one immutable record."""
        return FeedView(
            product_id=self.product_id,
            state=self.state,
            quality=self.monitor.quality,
            latency_ms=self.monitor.latency_ms,
            ticker=self.ticker,
            book=self.orderbook.snapshot,
            trades=self.trades.recent(),
            last_heartbeat=self.monitor.last_heartbeat,
            updates_per_sec=self.orderbook.get_updates_per_sec(),
            timestamp_ms=int(time.time() * 1000),
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open a fresh session. Valid from any state.

        Tears down any existing socket first and resets the reconnect counter,
        so this is also how a FAILED client is brought back.
        """
        self.reconnect.reset()
        await self._open()

    async def disconnect(self) -> None:
        """Close with a normal code. No automatic reconnect follows."""
        self._generation += 1
        await self._teardown()
        self.reconnect.reset()
        self._set_state(DISCONNECTED)

    async def change_product(self, product_id: str) -> None:
        """
        Switch the active product and drop all market state.

        Resubscribes right away if connected; otherwise the next successful
        connect subscribes to the new product.

        Pending reconnect and connect-timeout timers are left armed: they never
        refer to a product, and the session they open subscribes to whatever
        product is active when it settles. Only the settle-delay subscribe is
        product-bound, so it is the one invalidated here (via the subscription epoch).
        """
        if product_id not in self.config.products:
            raise UnknownProductError(product_id)

        previous, self.product_id = self.product_id, product_id
        self._subscription_epoch += 1
        self._reset_market_state()
        logger.info(f"Active product {previous} -> {product_id}")

        if self.state.is_connected:
            await self.subscriptions.switch_to(product_id)
        self._publish()

    async def aclose(self) -> None:
        """Disconnect and release the HTTP session if we created it."""
        await self.disconnect()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Lifecycle internals
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_tasks(self) -> None:
        """Cancel every timer/session task except the one we are running in."""
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    async def _teardown(self) -> None:
        """Stop all tasks (closing the socket with them) and drop session state."""
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        self._ws = None
        self.subscriptions.reset()
        self.monitor.reset()
        self._reset_market_state()

    async def _open(self) -> None:
        self._generation += 1
        generation = self._generation
        await self._teardown()

        if self._session is None:
            self._session = aiohttp.ClientSession()

        self._set_state(CONNECTING)
        self._spawn(self._run_session(generation))
        self._spawn(self._connect_watchdog(generation))

    async def _run_session(self, generation: int) -> None:
        """Own one socket from handshake to close."""
        close_code: int | None = None
        error: BaseException | None = None

        try:
            async with self._session.ws_connect(
                self.config.url,
                autoping=False,   # PING/PONG surface here for latency timing
                heartbeat=None,
            ) as ws:
                if generation != self._generation:
                    return
                self._on_open(ws, generation)
                error = await self._receive_loop(ws, generation)
                close_code = ws.close_code
        except asyncio.CancelledError:
            raise
        except aiohttp.InvalidURL:
            # Permanent: no reconnect
            if generation != self._generation:
                return
            logger.error(f"Invalid feed URL: {self.config.url}")
            self._fail(f"Invalid feed URL: {self.config.url}")
            return
        except TRANSPORT_ERRORS as e:
            error = e

        self._on_session_end(generation, close_code, error)

    async def _receive_loop(self, ws: Any, generation: int) -> BaseException | None:
        """
        Dispatch frames until the socket closes.

        Returns the transport error that ended the session, if any.
        """
        async for msg in ws:
            if generation != self._generation:
                return None

            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self._handle_ws_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.PING:
                try:
                    await ws.pong(msg.data)
                except TRANSPORT_ERRORS as e:
                    return e
            elif msg.type == aiohttp.WSMsgType.PONG:
                self._on_pong()
            elif msg.type == aiohttp.WSMsgType.ERROR:
                return ws.exception() or ConnectionError("WebSocket error")

            # A fatal server error retires this session
            if generation != self._generation:
                return None
        return None

    def _on_open(self, ws: Any, generation: int) -> None:
        self._ws = ws
        self.reconnect.reset()
        self.monitor.reset()
        self._set_state(CONNECTED)
        logger.info(f"Connected to {self.config.url}")

        self._spawn(self._subscribe_after_settle(generation, self._subscription_epoch))
        self._spawn(self._ping_loop(generation))

    def _on_session_end(
        self,
        generation: int,
        close_code: int | None,
        error: BaseException | None,
    ) -> None:
        if generation != self._generation:
            return

        self._ws = None
        self._cancel_tasks()
        self.subscriptions.reset()
        self._reset_market_state()

        if error is not None:
            logger.warning(f"Transport error: {error!r}")
            self._schedule_reconnect(f"transport error: {error}")
        elif close_code in NORMAL_CLOSE_CODES:
            logger.info(f"Feed closed normally (code {close_code})")
            self.monitor.reset()
            self._set_state(DISCONNECTED)
        elif close_code in RECONNECT_HINT_CLOSE_CODES:
            logger.info(f"Server suggested reconnection (code {close_code})")
            self._schedule_reconnect(f"server reconnect hint {close_code}")
        else:
            logger.warning(f"Feed closed abnormally (code {close_code})")
            self._schedule_reconnect(f"abnormal close {close_code}")

    def _schedule_reconnect(self, reason: str) -> None:
        delay = self.reconnect.next_delay()
        if delay is None:
            message = f"Max reconnect attempts exceeded ({self.reconnect.max_attempts})"
            logger.error(f"{message}; last failure: {reason}")
            self._set_state(ConnectionState.failed(message))
            return

        logger.info(
            f"Reconnection attempt {self.reconnect.attempts}/{self.reconnect.max_attempts} "
            f"in {delay} ({reason})"
        )
        self._set_state(RECONNECTING)
        self._spawn(self._reconnect_after(delay * self.config.backoff_unit_sec, self._generation))

    def _fail(self, message: str) -> None:
        """Enter FAILED. Only a manual connect() leaves it."""
        self._generation += 1
        self._cancel_tasks()
        self._ws = None
        self.subscriptions.reset()
        self.monitor.reset()
        self._reset_market_state()
        self._set_state(ConnectionState.failed(message))

    def _reset_market_state(self) -> None:
        self.orderbook.clear(self.product_id)
        self.trades.clear()
        self.ticker = None

    def _set_state(self, state: ConnectionState) -> None:
        if state == self.state:
            return
        logger.info(f"Connection state: {self.state} -> {state}")
        self.state = state
        self._publish()

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _connect_watchdog(self, generation: int) -> None:
        await asyncio.sleep(self.config.connect_timeout_sec)
        if generation != self._generation or self.state.status is not ConnectionStatus.CONNECTING:
            return

        timeout = self.config.connect_timeout_sec
        logger.warning(f"Connection timeout ({timeout:g}s)")
        # Retire the hanging handshake
        self._generation += 1
        self._cancel_tasks()
        self._set_state(ConnectionState.failed(f"Connection timeout ({timeout:g}s)"))
        self._schedule_reconnect("timeout")

    async def _reconnect_after(self, delay_sec: float, generation: int) -> None:
        await asyncio.sleep(delay_sec)
        if generation != self._generation:
            return
        await self._open()

    async def _subscribe_after_settle(self, generation: int, epoch: int) -> None:
        await asyncio.sleep(self.config.subscribe_delay_sec)
        if generation != self._generation or not self.state.is_connected:
            return
        # change_product() already resubscribed for a newer product
        if epoch != self._subscription_epoch:
            return
        await self.subscriptions.switch_to(self.product_id)

    async def _ping_loop(self, generation: int) -> None:
        """Periodic probe while connected. Failures never trigger a reconnect."""
        while True:
            await asyncio.sleep(self.config.ping_interval_sec)
            ws = self._ws
            if generation != self._generation or not self.state.is_connected or ws is None:
                return
            # Mark before writing: the pong can arrive before ping() returns
            self.monitor.probe_sent()
            try:
                await ws.ping()
            except TRANSPORT_ERRORS as e:
                self.monitor.probe_failed()
                logger.warning(f"Ping failed: {e!r}")

    # ------------------------------------------------------------------
    # Socket I/O
    # ------------------------------------------------------------------

    async def _send_text(self, text: str) -> None:
        """The only outbound write path; used by SubscriptionManager."""
        ws = self._ws
        if ws is None or ws.closed:
            raise NotConnectedError()
        await ws.send_str(text)

    def _on_pong(self) -> None:
        quality = self.monitor.pong_received()
        if quality is None:
            logger.debug("Unsolicited pong")
            return
        logger.debug(f"Pong after {self.monitor.latency_ms:.1f}ms: {quality.value}")
        self._publish()

    def _handle_ws_message(self, raw: str | bytes) -> None:
        """
        Apply one inbound frame.

        HOT PATH - called for every message.
        """
        payload = decode(raw)
        if payload is None:
            return

        # In-flight messages for a previous product
        product_id = getattr(payload, "product_id", None)
        if product_id is not None and product_id != self.product_id:
            self.discarded_messages += 1
            logger.debug(f"Dropping {type(payload).__name__} for inactive product {product_id}")
            return

        if isinstance(payload, BookUpdate):
            self.orderbook.apply_changes(payload.changes)
        elif isinstance(payload, Trade):
            self.trades.add(payload)
        elif isinstance(payload, TickerSnapshot):
            self.ticker = payload
        elif isinstance(payload, BookSnapshotMessage):
            self.orderbook.load_snapshot(payload.bids, payload.asks)
        elif isinstance(payload, Heartbeat):
            self.monitor.record_heartbeat(datetime.now(timezone.utc))
            logger.debug(f"Heartbeat for {payload.product_id}")
        elif isinstance(payload, SubscriptionAck):
            self.subscriptions.handle_ack(payload)
        elif isinstance(payload, ServerError):
            self._handle_server_error(payload)
            return

        self._maybe_publish()

    def _handle_server_error(self, error: ServerError) -> None:
        if error.is_subscription_only(self.config.subscription_error_pattern):
            logger.warning(f"Subscription error (non-fatal): {error.message}")
            return
        logger.error(f"Feed error: {error.message} ({error.reason})")
        self._fail(f"Feed error: {error.message}")

    # ------------------------------------------------------------------
    # UI output
    # ------------------------------------------------------------------

    def _maybe_publish(self) -> None:
        """Push a view if snapshot_interval_ms elapsed since the last one."""
        elapsed_ms = (time.perf_counter() - self._last_publish_time) * 1000
        if elapsed_ms < self.config.snapshot_interval_ms:
            return
        self._publish()

    def _publish(self) -> None:
        self._last_publish_time = time.perf_counter()
        view = self.view()
        try:
            self.snapshot_queue.put_nowait(view)
        except asyncio.QueueFull:
            # Drop oldest, put newest
            self.snapshot_queue.get_nowait()
            self.snapshot_queue.put_nowait(view)
