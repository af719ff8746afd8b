"""
Redis connection pool and realtime change feed.

Channels
--------
* ``jobs:{job_id}``            -- status updates for one job (requester and
  assignee screens subscribe here)
* ``locations:{assignee_id}``  -- live position broadcasts; ephemeral,
  at-most-once, nothing is stored
* ``notifications:{user_id}``  -- per-user push messages

Payloads are JSON objects.  Job updates always carry ``version`` so
consumers can drop duplicates and stale events.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import redis.asyncio as aioredis

from kangga.config import settings
from kangga.domain.entities import LocationSample

logger = logging.getLogger(__name__)

_pool = aioredis.ConnectionPool.from_url(
    settings.redis_url, decode_responses=True
)


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_pool)


def job_channel(job_id: int) -> str:
    return f"jobs:{job_id}"


def location_channel(assignee_id: int) -> str:
    return f"locations:{assignee_id}"


def notification_channel(user_id: int) -> str:
    return f"notifications:{user_id}"


def job_event(job) -> dict[str, Any]:
    """Serialise the fields every job subscriber cares about."""
    return {
        "job_id": job.id,
        "kind": job.kind,
        "status": job.status,
        "version": job.version,
        "assignee_id": job.assignee_id,
        "negotiation_status": job.negotiation_status,
        "proposed_top_up_fare": job.proposed_top_up_fare,
        "total_fare": job.total_fare,
    }


class RealtimeBroker:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def publish_job_update(self, job) -> None:
        await self.redis.publish(job_channel(job.id), json.dumps(job_event(job)))

    async def publish_location(self, assignee_id: int, sample: LocationSample) -> None:
        recorded_at = sample.recorded_at or datetime.now(timezone.utc)
        payload = {
            "assignee_id": assignee_id,
            "lat": sample.latitude,
            "lng": sample.longitude,
            "accuracy": sample.accuracy_m,
            "timestamp": recorded_at.isoformat(),
        }
        await self.redis.publish(location_channel(assignee_id), json.dumps(payload))

    async def subscribe_job(self, job_id: int) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded job events until the caller stops iterating."""
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(job_channel(job_id))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Dropping malformed event on job %s", job_id)
        finally:
            await pubsub.unsubscribe(job_channel(job_id))
            await pubsub.aclose()
