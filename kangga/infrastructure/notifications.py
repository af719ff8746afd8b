"""
Notification dispatcher (fire-and-forget).

Messages are published on the recipient's Redis channel, where the push
gateway picks them up.  Delivery problems are logged and swallowed here:
no matching, fee or status flow may fail because a push did not go out.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable

import redis.asyncio as aioredis

from kangga.domain.entities import Candidate

from .realtime import RealtimeBroker, notification_channel

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, client: aioredis.Redis):
        self.redis = client
        self.broker = RealtimeBroker(client)

    async def _send(self, user_id: int, payload: dict) -> bool:
        try:
            await self.redis.publish(notification_channel(user_id), json.dumps(payload))
            return True
        except Exception:
            logger.exception(
                "Notification to user %s failed (type=%s)", user_id, payload.get("type")
            )
            return False

    async def notify_candidates(self, job, candidates: Iterable[Candidate]) -> int:
        """Tell each candidate about a new job nearby; returns how many went out."""
        sent = 0
        for c in candidates:
            ok = await self._send(
                c.user_id,
                {
                    "type": "new_job",
                    "job_id": job.id,
                    "kind": job.kind,
                    "pickup_address": job.pickup_address,
                    "distance_m": round(c.distance_m),
                    "base_fare": job.base_fare,
                },
            )
            sent += int(ok)
        return sent

    async def notify_requester(self, job, message: str) -> None:
        await self._send(
            job.requester_id,
            {
                "type": "status_changed",
                "job_id": job.id,
                "status": job.status,
                "message": message,
            },
        )
        try:
            await self.broker.publish_job_update(job)
        except Exception:
            logger.exception("Change-feed publish failed for job %s", job.id)
