"""
Feed Viewer - live order book, ticker and trade tape for the Coinbase Exchange feed.

Architecture:
- datafeed/: WebSocket connection lifecycle, message codec, subscriptions, local order book
- engine/: Trade log, connection quality and reconnection policy
- ui/: Ticker + order book + trades view (Textual TUI)
"""

__version__ = "0.1.0"
