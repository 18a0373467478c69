"""
Real-time order events over Redis pub/sub.

Socket gateways subscribe to ``order_<id>`` / ``rider_<id>`` channels and
push the JSON payloads to connected clients.  Delivery is at-most-once:
a failed publish is logged and dropped, never raised into the caller.

Workers that commit in batches publish through an ``OutboxNotifier`` so
that no event describes a change that was rolled back.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisNotifier:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        try:
            await self.redis.publish(topic, json.dumps(payload, default=str))
        except RedisError as exc:
            logger.warning("Dropped %s event on %s: %s", payload.get("type"), topic, exc)


class OutboxNotifier:
    """Holds events until the transaction that produced them has committed.

    ``flush`` forwards the pending events to *target*; ``discard`` drops
    them when the transaction rolled back.
    """

    def __init__(self, target):
        self.target = target
        self.pending: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        self.pending.append((topic, payload))

    async def flush(self) -> None:
        pending, self.pending = self.pending, []
        for topic, payload in pending:
            await self.target.publish(topic, payload)

    def discard(self) -> None:
        if self.pending:
            logger.info("Discarded %d uncommitted events", len(self.pending))
        self.pending = []
