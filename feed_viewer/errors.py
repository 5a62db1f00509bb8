"""
Exception taxonomy for the feed client.

Transport failures never surface as exceptions to callers (they are routed to
reconnection); these cover caller errors, config errors and internal decode/send paths.
"""

from __future__ import annotations


class FeedError(Exception):
    """Base exception for Feed Viewer."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigError(FeedError):
    """Invalid FeedConfig."""


class UnknownProductError(FeedError):
    """Product id is not part of the configured catalog."""

    def __init__(self, product_id: str) -> None:
        self.product_id = product_id
        super().__init__(f"Unknown product: {product_id}")


class NotConnectedError(FeedError):
    """Write attempted while no socket is open."""

    def __init__(self, message: str = "Socket not connected") -> None:
        super().__init__(message)


class DecodeError(FeedError):
    """Frame is valid JSON but does not match the expected message structure."""
