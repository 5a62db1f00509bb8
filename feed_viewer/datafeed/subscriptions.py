"""
Subscription control messages.

A product switch is always unsubscribe-all (every catalog product, every channel)
followed by subscribe-to-active. Unsubscribing everything clears stale server-side
subscriptions too; the ordering, not the server's ack, is what makes the switch clean.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Sequence

import aiohttp
import orjson

from ..config import CHANNELS
from ..errors import FeedError
from .codec import SubscriptionAck, json_dumps

logger = logging.getLogger(__name__)

# Anything a write can fail with that leaves the client usable
SEND_ERRORS = (orjson.JSONEncodeError, aiohttp.ClientError, ConnectionError, FeedError)


def build_control_message(
    kind: str,
    product_ids: Sequence[str],
    channels: Sequence[str] = CHANNELS,
) -> dict[str, Any]:
    """{type, channels: [{name, product_ids}, ...]}"""
    return {
        "type": kind,
        "channels": [
            {"name": name, "product_ids": list(product_ids)}
            for name in channels
        ],
    }


class SubscriptionManager:
    """
    Builds and sends subscribe/unsubscribe messages.

    Writes go through `send`, which belongs to the connection owner.
    """

    def __init__(
        self,
        catalog: Sequence[str],
        send: Callable[[str], Awaitable[None]],
        channels: Sequence[str] = CHANNELS,
    ) -> None:
        self.catalog = tuple(catalog)
        self.channels = tuple(channels)
        self._send = send
        self.subscribed_product: str | None = None

    def unsubscribe_all_message(self) -> dict[str, Any]:
        return build_control_message("unsubscribe", self.catalog, self.channels)

    def subscribe_message(self, product_id: str) -> dict[str, Any]:
        return build_control_message("subscribe", [product_id], self.channels)

    async def _send_message(self, message: dict[str, Any]) -> bool:
        try:
            await self._send(json_dumps(message))
        except SEND_ERRORS as e:
            logger.warning(f"Failed to send {message.get('type')} message: {e}")
            return False
        return True

    async def switch_to(self, product_id: str) -> bool:
        """
        Unsubscribe from everything, then subscribe to product_id.

        Returns False if either write failed. Connection state is never touched.
        """
        if not await self._send_message(self.unsubscribe_all_message()):
            # Subscribing without a clean slate could leave old channels running
            return False

        self.subscribed_product = None
        if not await self._send_message(self.subscribe_message(product_id)):
            return False

        self.subscribed_product = product_id
        logger.info(f"Subscribed to {', '.join(self.channels)} for {product_id}")
        return True

    def handle_ack(self, ack: SubscriptionAck) -> None:
        """Acks are informational only."""
        logger.info(f"Subscription confirmed: {ack.summary() or '(none)'}")

    def reset(self) -> None:
        self.subscribed_product = None
