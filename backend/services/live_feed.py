"""
Redis-based live change feed

Fans committed inquiry writes out to every API process:

    engine ──publish──▶ redis channel 'inquiries:changes' ──listen──▶ LiveViewSynchronizer (each process)

Each process publishes what it commits and feeds everything it hears
(its own writes included) into its local synchronizer, which handles
per-document ordering and filtering.

If the connection drops, the synchronizer fails every open subscription
with TransportError and refuses new ones until connect() runs again.
Nothing reconnects automatically.
"""
import asyncio
import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from quoteflow.errors import TransportError
from quoteflow.sync import ChangePublisher, LiveViewSynchronizer
from quoteflow.types import Inquiry

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL = "inquiries:changes"
MESSAGE_TYPE = "inquiry_changed"


def encode_change(inquiry: Inquiry) -> str:
    """Serialize a committed inquiry for the channel."""
    return json.dumps({"type": MESSAGE_TYPE, "inquiry": inquiry.to_dict()})


def decode_change(data: str) -> Inquiry:
    """
    Parse a channel message back into an Inquiry.

    Raises:
        ValueError / KeyError if the message is not an inquiry change
    """
    message = json.loads(data)
    if message.get("type") != MESSAGE_TYPE:
        raise ValueError(f"Unexpected message type: {message.get('type')}")
    return Inquiry.from_dict(message["inquiry"])


class RedisChangeFeed(ChangePublisher):
    """
    Redis pub/sub bridge for the live view synchronizer.

    Engine publishes here instead of directly to the synchronizer when
    more than one API process is running.
    """

    def __init__(self, redis_url: str, synchronizer: LiveViewSynchronizer,
                 channel: str = DEFAULT_CHANNEL):
        self.redis = None
        self.redis_url = redis_url
        self.synchronizer = synchronizer
        self.channel = channel
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    async def connect(self):
        """Initialize Redis connection and start listening"""
        self.redis = await redis.from_url(self.redis_url, decode_responses=True)
        self._pubsub = self.redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._listen())
        self.synchronizer.recover()
        logger.info(f"🎯 Live feed subscribed to {self.channel}")

    async def close(self):
        """Stop listening and close Redis connection"""
        if self._listener:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    async def publish(self, inquiry: Inquiry) -> None:
        """Announce a committed write to every process."""
        try:
            await self.redis.publish(self.channel, encode_change(inquiry))
        except (RedisError, OSError) as e:
            logger.error(f"❌ Could not publish change for {inquiry.id}: {e}", exc_info=True)
            self.synchronizer.fail(TransportError(f"Live feed unavailable: {e}"))

    async def _listen(self):
        """Feed channel messages into the local synchronizer until cancelled."""
        try:
            async for message in self._pubsub.listen():
                if message['type'] != 'message':
                    continue

                try:
                    inquiry = decode_change(message['data'])
                except (ValueError, KeyError) as e:
                    logger.warning(f"⚠️  Skipping malformed change message: {e}")
                    continue

                await self.synchronizer.publish(inquiry)

        except (RedisError, OSError) as e:
            logger.error(f"❌ Live feed listener stopped: {e}", exc_info=True)
            self.synchronizer.fail(TransportError(f"Live feed connection lost: {e}"), permanent=True)
