"""
Feed TUI using Textual.

Displays:
- Top: Product, connection state, quality, ticker
- Left: Order book ladder (asks above, bids below)
- Right: Recent trades, newest first

Key bindings call FeedClient commands on the same event loop as the feed.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from rich.console import RenderableType
from rich.style import Style
from rich.table import Table
from rich.text import Text

from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Footer, Static

from ..types import ConnectionQuality, ConnectionStatus

if TYPE_CHECKING:
    from ..datafeed.coinbase_client import FeedClient
    from ..types import FeedView

# Color scheme (dark theme)
BID_COLOR = "#22c55e"      # Green
ASK_COLOR = "#ef4444"      # Red
PRICE_COLOR = "#f8fafc"
HEADER_COLOR = "#94a3b8"
BAR_BG = "#1e293b"

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: ("Connected", "green"),
    ConnectionStatus.CONNECTING: ("Connecting...", "yellow"),
    ConnectionStatus.RECONNECTING: ("Reconnecting...", "dark_orange"),
    ConnectionStatus.DISCONNECTED: ("Disconnected", "red"),
    ConnectionStatus.FAILED: ("Error", "bold red"),
}

QUALITY_STYLES = {
    ConnectionQuality.EXCELLENT: ("Excellent", "green"),
    ConnectionQuality.GOOD: ("Good", "blue"),
    ConnectionQuality.FAIR: ("Fair", "yellow"),
    ConnectionQuality.POOR: ("Slow", "red"),
    ConnectionQuality.UNKNOWN: ("Unknown", "grey50"),
}


def format_price(price: Decimal | None) -> str:
    """Format price for display."""
    if price is None:
        return "-"
    return f"${price:,.2f}"


def format_size(size: Decimal) -> str:
    return f"{size:.4f}"


def format_volume(volume: Decimal) -> str:
    """Format 24h volume with B/M/K suffixes."""
    if volume > 1_000_000_000:
        return f"{volume / 1_000_000_000:.1f}B"
    elif volume > 1_000_000:
        return f"{volume / 1_000_000:.1f}M"
    elif volume > 1_000:
        return f"{volume / 1_000:.1f}K"
    return f"{volume:.0f}"


def make_bar(value: Decimal, max_value: Decimal, width: int, color: str) -> Text:
    """Create a horizontal bar using block characters."""
    if max_value <= 0:
        return Text(" " * width)

    fill_width = int(min(Decimal(1), value / max_value) * width)
    bar = "█" * fill_width + " " * (width - fill_width)
    return Text(bar, style=Style(color=color, bgcolor=BAR_BG))


class StatusBar(Static):
    """Status bar showing product, connection and ticker."""

    DEFAULT_CSS = """
    StatusBar {
        dock: top;
        height: 3;
        padding: 0 2;
        background: #0f172a;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: FeedView | None = None

    def update_view(self, view: FeedView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None:
            return Text("Starting...", style="dim")

        view = self._view
        label, color = STATUS_STYLES[view.state.status]
        if view.state.status is ConnectionStatus.FAILED and view.state.message:
            label = f"{label}: {view.state.message}"
        quality, quality_color = QUALITY_STYLES[view.quality]

        result = Text()
        result.append(f" {view.product_id} ", style="bold white on #1e40af")
        result.append("  ")
        result.append(label, style=color)
        result.append("  │  ", style="dim")
        result.append(quality, style=quality_color)
        if view.latency_ms is not None:
            result.append(f" ({view.latency_ms:.0f}ms)", style="dim")

        ticker = view.ticker
        if ticker is not None:
            change = ticker.change_24h_pct
            result.append("\n")
            result.append(format_price(ticker.price), style="bold")
            result.append(f"  {change:+.2f}%", style=BID_COLOR if change >= 0 else ASK_COLOR)
            result.append("  Vol 24h: ", style="dim")
            result.append(format_volume(ticker.volume_24h))
            result.append("  Bid: ", style="dim")
            result.append(format_price(ticker.best_bid), style=BID_COLOR)
            result.append("  Ask: ", style="dim")
            result.append(format_price(ticker.best_ask), style=ASK_COLOR)

        if view.last_heartbeat is not None:
            age = (datetime.now(timezone.utc) - view.last_heartbeat).total_seconds()
            result.append(f"  │  heartbeat {age:.0f}s ago", style="dim")
        return result


class BookTable(Static):
    """Order book ladder widget."""

    DEFAULT_CSS = """
    BookTable {
        width: 1fr;
        height: 100%;
    }
    """

    def __init__(self) -> None:
        super().__init__()
        self._view: FeedView | None = None

    def update_view(self, view: FeedView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or not self._view.book.levels:
            return Text("Waiting for order book...", style="dim")

        book = self._view.book
        max_size = max(level.size for level in book.levels)

        table = Table(show_header=True, header_style=HEADER_COLOR, box=None, padding=(0, 1))
        table.add_column("Price", justify="right", width=14)
        table.add_column("Size", justify="right", width=12)
        table.add_column("", justify="left", width=16, no_wrap=True)

        # Asks highest first so the spread sits in the middle
        for level in reversed(book.asks):
            table.add_row(
                Text(format_price(level.price), style=ASK_COLOR),
                Text(format_size(level.size)),
                make_bar(level.size, max_size, 16, ASK_COLOR),
            )
        for level in book.bids:
            table.add_row(
                Text(format_price(level.price), style=BID_COLOR),
                Text(format_size(level.size)),
                make_bar(level.size, max_size, 16, BID_COLOR),
            )
        return table


class TradesTable(Static):
    """Recent trades widget."""

    DEFAULT_CSS = """
    TradesTable {
        width: 1fr;
        height: 100%;
    }
    """

    def __init__(self, rows: int = 30) -> None:
        super().__init__()
        self.rows = rows
        self._view: FeedView | None = None

    def update_view(self, view: FeedView) -> None:
        self._view = view
        self.refresh()

    def render(self) -> RenderableType:
        if self._view is None or not self._view.trades:
            return Text("Waiting for trades...", style="dim")

        table = Table(show_header=True, header_style=HEADER_COLOR, box=None, padding=(0, 1))
        table.add_column("Time", width=10)
        table.add_column("Side", width=5)
        table.add_column("Price", justify="right", width=14)
        table.add_column("Size", justify="right", width=12)

        for trade in self._view.trades[:self.rows]:
            color = BID_COLOR if trade.side == "buy" else ASK_COLOR
            table.add_row(
                Text(trade.time.astimezone().strftime("%H:%M:%S"), style="dim"),
                Text(trade.side, style=color),
                Text(format_price(trade.price), style=PRICE_COLOR),
                Text(format_size(trade.size)),
            )
        return table


class FeedApp(App):
    """Main Feed Viewer application."""

    CSS = """
    Screen {
        background: #0f172a;
    }

    #main-container {
        width: 100%;
        height: 100%;
        padding: 1 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("c", "connect", "Connect"),
        ("d", "disconnect", "Disconnect"),
        ("n", "next_product", "Next"),
        ("p", "previous_product", "Previous"),
    ]

    def __init__(self, client: FeedClient) -> None:
        super().__init__()
        self.client = client
        self._status_bar: StatusBar | None = None
        self._book_table: BookTable | None = None
        self._trades_table: TradesTable | None = None

    def compose(self) -> ComposeResult:
        self._status_bar = StatusBar()
        self._book_table = BookTable()
        self._trades_table = TradesTable()

        yield self._status_bar
        yield Horizontal(self._book_table, self._trades_table, id="main-container")
        yield Footer()

    async def on_mount(self) -> None:
        """Start the view consumer task."""
        self._show(self.client.view())
        self.run_worker(self._consume_views(), exclusive=True)

    def _show(self, view: FeedView) -> None:
        for widget in (self._status_bar, self._book_table, self._trades_table):
            if widget is not None:
                widget.update_view(view)

    async def _consume_views(self) -> None:
        """Consume views from the queue and update UI."""
        while True:
            try:
                view = await asyncio.wait_for(self.client.snapshot_queue.get(), timeout=1.0)
                self._show(view)
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    async def action_connect(self) -> None:
        await self.client.connect()

    async def action_disconnect(self) -> None:
        await self.client.disconnect()

    async def _step_product(self, step: int) -> None:
        products = self.client.config.products
        index = products.index(self.client.product_id)
        await self.client.change_product(products[(index + step) % len(products)])

    async def action_next_product(self) -> None:
        await self._step_product(1)

    async def action_previous_product(self) -> None:
        await self._step_product(-1)


async def run_ui(client: FeedClient) -> None:
    """Run the TUI application."""
    app = FeedApp(client)
    await app.run_async()
