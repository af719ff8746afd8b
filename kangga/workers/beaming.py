"""
Background Beaming Worker
=========================

Runs one expanding-radius search per new job as an asyncio task.

Concurrency safety
------------------
* **Redis distributed lock** (``lock:beaming:{job_id}``) ensures only one
  API process searches for a given job, however many times the search is
  requested.  The TTL is extended after every wave.
* Within a process, a job id maps to at most one live task.
* The search itself only writes through compare-and-set updates, so an
  acceptance or cancellation racing a wave always wins cleanly.

Shutdown cancels in-flight searches; the jobs stay ``requested`` and can
be searched again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from kangga.config import settings
from kangga.domain.entities import BeamingResult
from kangga.infrastructure.database import async_session_factory
from kangga.infrastructure.locks import DistributedLock
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.realtime import get_redis
from kangga.services.matching import BeamingEngine

logger = logging.getLogger(__name__)

_tasks: dict[int, asyncio.Task] = {}
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_beaming_worker() -> None:
    global _stop_event
    _stop_event = asyncio.Event()
    logger.info(
        "Beaming worker started (radius %d-%dm, %.0fs per wave)",
        settings.initial_radius_m,
        settings.max_radius_m,
        settings.timeout_per_radius_s,
    )


async def stop_beaming_worker() -> None:
    if _stop_event:
        _stop_event.set()
    tasks = list(_tasks.values())
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await asyncio.wait_for(task, timeout=5)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
    _tasks.clear()
    logger.info("Beaming worker stopped")


def schedule_beaming(job_id: int) -> bool:
    """Start searching for *job_id* in the background.

    Returns ``False`` if this process is already searching for it or the
    worker is shutting down.
    """
    if _stop_event is not None and _stop_event.is_set():
        return False
    existing = _tasks.get(job_id)
    if existing is not None and not existing.done():
        return False

    task = asyncio.create_task(_run(job_id))
    _tasks[job_id] = task
    task.add_done_callback(lambda t: _forget(job_id, t))
    return True


def is_searching(job_id: int) -> bool:
    task = _tasks.get(job_id)
    return task is not None and not task.done()


async def run_beaming(
    job_id: int, engine: Optional[BeamingEngine] = None
) -> Optional[BeamingResult]:
    """Run one search to completion under the job's lock.

    Returns ``None`` when another worker holds the lock.
    """
    redis = await get_redis()
    lock = DistributedLock.for_job(redis, job_id)

    if not await lock.acquire():
        logger.debug("Beaming lock for job %s held elsewhere; skipping", job_id)
        return None

    async def _extend_lock() -> None:
        if not await lock.extend():
            logger.warning("Beaming lock for job %s expired mid-search", job_id)

    if engine is None:
        engine = BeamingEngine(
            async_session_factory,
            settings.beaming_config(),
            notifier=Notifier(redis),
            on_wave=_extend_lock,
        )
    else:
        engine.on_wave = _extend_lock

    try:
        result = await engine.start_beaming(job_id)
        logger.info(
            "Beaming for job %s finished: %s (radius=%s)",
            job_id, result.message, result.final_radius_m,
        )
        return result
    finally:
        await lock.release()


# ── Internals ─────────────────────────────────────────────────────────


async def _run(job_id: int) -> None:
    try:
        await run_beaming(job_id)
    except asyncio.CancelledError:
        logger.info("Beaming for job %s cancelled", job_id)
        raise
    except Exception:
        logger.exception("Unhandled error while beaming job %s", job_id)


def _forget(job_id: int, task: asyncio.Task) -> None:
    if _tasks.get(job_id) is task:
        del _tasks[job_id]
