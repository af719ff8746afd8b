"""
Live tracking: assignee positions in, job updates out.

Positions are persisted as "last known" (with their H3 cell, which the
beaming search filters on) and broadcast once on the assignee's channel.
Broadcasts are ephemeral; a subscriber that misses one waits for the
next reading.

Job updates reach a screen two ways, the Redis change feed and periodic
polling of the job row.  :class:`JobUpdateWatcher` merges both into one
queue and forwards each ``version`` at most once.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kangga.domain.entities import LocationSample
from kangga.domain.exceptions import AssigneeNotFound, InvalidInput
from kangga.domain.matching import assignee_h3_cell
from kangga.infrastructure.models import AssigneeModel
from kangga.infrastructure.realtime import RealtimeBroker, job_event
from kangga.infrastructure.repositories import AssigneeRepository, JobRepository

logger = logging.getLogger(__name__)

JobEvent = dict[str, Any]


class TrackingService:
    def __init__(
        self,
        session: AsyncSession,
        broker: Optional[RealtimeBroker] = None,
        h3_resolution: int = 8,
    ):
        self.session = session
        self.assignees = AssigneeRepository(session)
        self.broker = broker
        self.h3_resolution = h3_resolution

    async def update_location(
        self, assignee_id: int, sample: LocationSample
    ) -> AssigneeModel:
        if not (-90 <= sample.latitude <= 90 and -180 <= sample.longitude <= 180):
            raise InvalidInput("Coordinates out of range")

        assignee = await self.assignees.get_by_id(assignee_id)
        if assignee is None:
            raise AssigneeNotFound(f"Assignee {assignee_id} not found")

        recorded_at = sample.recorded_at or datetime.now(timezone.utc)
        assignee.current_lat = sample.latitude
        assignee.current_lng = sample.longitude
        assignee.location_accuracy_m = sample.accuracy_m
        assignee.location_updated_at = recorded_at
        assignee.h3_cell = assignee_h3_cell(
            sample.latitude, sample.longitude, self.h3_resolution
        )
        await self.session.commit()

        if self.broker is not None:
            try:
                await self.broker.publish_location(assignee_id, sample)
            except Exception:
                logger.exception("Location broadcast failed for assignee %s", assignee_id)
        return assignee


class JobUpdateWatcher:
    """
    Deduplicating fan-in for one job's updates.

    *poll* returns the current event for the job (or ``None`` if it is
    gone); *feed* is an async iterator of change-feed events.  Either may
    deliver the same version, in any order; consumers read
    :attr:`queue` and see strictly increasing versions.
    """

    def __init__(
        self,
        poll: Callable[[], Awaitable[Optional[JobEvent]]],
        feed: Optional[AsyncIterator[JobEvent]] = None,
        poll_interval_s: float = 5.0,
    ):
        self.poll = poll
        self.feed = feed
        self.poll_interval_s = poll_interval_s
        self.queue: asyncio.Queue[JobEvent] = asyncio.Queue()
        self.last_version = -1
        self._tasks: list[asyncio.Task] = []

    def offer(self, event: JobEvent) -> bool:
        """Enqueue *event* unless its version was already seen."""
        version = event.get("version")
        if version is None or version <= self.last_version:
            return False
        self.last_version = version
        self.queue.put_nowait(event)
        return True

    async def poll_once(self) -> bool:
        event = await self.poll()
        return event is not None and self.offer(event)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Job poll failed")
            await asyncio.sleep(self.poll_interval_s)

    async def _feed_loop(self, feed: AsyncIterator[JobEvent]) -> None:
        async for event in feed:
            self.offer(event)

    def start(self) -> None:
        self._tasks.append(asyncio.create_task(self._poll_loop()))
        if self.feed is not None:
            self._tasks.append(asyncio.create_task(self._feed_loop(self.feed)))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()


def watch_job(
    session_factory: async_sessionmaker[AsyncSession],
    job_id: int,
    broker: Optional[RealtimeBroker] = None,
    poll_interval_s: float = 5.0,
) -> JobUpdateWatcher:
    """Watcher for *job_id* fed by row polling and, with a broker, the change feed."""

    async def poll() -> Optional[JobEvent]:
        async with session_factory() as session:
            job = await JobRepository(session).get_fresh(job_id)
        return job_event(job) if job is not None else None

    feed = broker.subscribe_job(job_id) if broker is not None else None
    return JobUpdateWatcher(poll, feed=feed, poll_interval_s=poll_interval_s)
