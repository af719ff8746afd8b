"""
Driver / Courier Matching ("Beaming")
=====================================

There is no central dispatcher.  A new job is "beamed" to the nearest
available assignees in waves of a widening radius:

1. ``radius = initial_radius`` (200 m).
2. Each wave: find up to 3 unseen, available assignees of the right
   vehicle class within ``radius`` of the pickup, nearest first.
3. If any were found: record the wave on the job, notify them, then wait
   ``timeout_per_radius`` (45 s) for bids.
4. Re-read the job.  Bids present, or the job already assigned, ends the
   search successfully; the requester now picks a bid.  A cancelled job
   ends it immediately, with no fee involved.
5. Otherwise ``radius += radius_increment`` and repeat up to
   ``max_radius`` (10 km).  Running out of radius is a normal outcome:
   the job is cancelled with ``max_radius_reached = true``.

The wait is an ``await`` on an injectable sleep, so bids, reads and
cancellations from other requests interleave freely.  Each wave uses its
own short DB session; no connection is held while sleeping.

Complexity per wave: one grid-disk query plus O(A log A) ranking, where
A = assignees in the covering H3 cells.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kangga.domain.entities import BeamingConfig, BeamingResult, Candidate
from kangga.domain.enums import (
    ASSIGNED_STATUS,
    ASSIGNEE_ROLE,
    CancellationReason,
    JobKind,
    JobStatus,
    NegotiationStatus,
)
from kangga.domain.exceptions import (
    InvalidInput,
    JobNoLongerAvailable,
    ProposalNotFound,
)
from kangga.domain.matching import build_proposal, cells_within, rank_candidates
from kangga.infrastructure.models import JobModel, ProposalModel
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.repositories import (
    AssigneeRepository,
    JobRepository,
    ProposalRepository,
)

from .jobs import load_assignee_for, load_job, transition_job, utcnow
from .platform_fee import PlatformFeeService, charge_fee_best_effort

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class CandidateSource(Protocol):
    async def find_candidates(
        self,
        session: AsyncSession,
        job: JobModel,
        radius_m: int,
        exclude: list[int],
        limit: int,
    ) -> list[Candidate]: ...


class NearbyAssignees:
    """Default candidate source: H3 grid-disk prefilter + Haversine ranking."""

    def __init__(self, h3_resolution: int = 8):
        self.h3_resolution = h3_resolution

    async def find_candidates(
        self,
        session: AsyncSession,
        job: JobModel,
        radius_m: int,
        exclude: list[int],
        limit: int,
    ) -> list[Candidate]:
        cells = cells_within(job.pickup_lat, job.pickup_lng, radius_m, self.h3_resolution)
        rows = await AssigneeRepository(session).find_available_in_cells(
            ASSIGNEE_ROLE[JobKind(job.kind)].value,
            cells,
            vehicle_type=job.vehicle_type,
            exclude=exclude,
        )
        return rank_candidates(
            job.pickup_lat, job.pickup_lng, rows, radius_m, limit, exclude
        )


class BeamingEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: BeamingConfig,
        candidates: Optional[CandidateSource] = None,
        notifier: Optional[Notifier] = None,
        sleep: Sleep = asyncio.sleep,
        on_wave: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.session_factory = session_factory
        self.config = config
        self.candidates = candidates or NearbyAssignees(config.h3_resolution)
        self.notifier = notifier
        self.sleep = sleep
        self.on_wave = on_wave

    async def _settled(self, session: AsyncSession, job: JobModel) -> Optional[BeamingResult]:
        """A finished search outcome if the job no longer needs one."""
        if job.status == JobStatus.CANCELLED.value:
            return BeamingResult(False, "Job was cancelled", job.search_radius_m)
        if job.status != JobStatus.REQUESTED.value:
            return BeamingResult(True, "Job already assigned", job.search_radius_m)
        if job.assignee_id is not None:
            return BeamingResult(True, "Negotiation in progress", job.search_radius_m)
        if await ProposalRepository(session).count_for_job(job.id):
            return BeamingResult(True, "Proposals received", job.search_radius_m)
        return None

    async def start_beaming(self, job_id: int) -> BeamingResult:
        cfg = self.config
        radius = cfg.initial_radius_m
        notified: list[int] = []

        async with self.session_factory() as session:
            job = await load_job(JobRepository(session), job_id)
            if job.pickup_lat is None or job.pickup_lng is None:
                raise InvalidInput("Cannot search without pickup coordinates")

        while radius <= cfg.max_radius_m:
            async with self.session_factory() as session:
                repo = JobRepository(session)
                job = await load_job(repo, job_id)
                settled = await self._settled(session, job)
                if settled:
                    return settled

                found = await self.candidates.find_candidates(
                    session, job, radius, list(notified), cfg.max_candidates_per_wave
                )
                if found:
                    notified.extend(c.assignee_id for c in found)
                    await repo.update_search_progress(job_id, radius, list(notified))
                    await session.commit()

            if found:
                logger.info(
                    "Beamed job %s to %d assignee(s) at %dm", job_id, len(found), radius
                )
                if self.notifier is not None:
                    await self.notifier.notify_candidates(job, found)
                if self.on_wave is not None:
                    await self.on_wave()
                await self.sleep(cfg.timeout_per_radius_s)

                async with self.session_factory() as session:
                    job = await load_job(JobRepository(session), job_id)
                    settled = await self._settled(session, job)
                    if settled:
                        return BeamingResult(
                            settled.success, settled.message, radius, tuple(notified)
                        )

            radius += cfg.radius_increment_m

        return await self._exhaust(job_id, notified)

    async def _exhaust(self, job_id: int, notified: list[int]) -> BeamingResult:
        async with self.session_factory() as session:
            job = await load_job(JobRepository(session), job_id)
            settled = await self._settled(session, job)
            if settled:
                return settled
            try:
                job = await transition_job(
                    session,
                    job,
                    JobStatus.CANCELLED,
                    {
                        "max_radius_reached": True,
                        "cancellation_reason": CancellationReason.NO_ASSIGNEE_FOUND.value,
                    },
                    require_unassigned=True,
                )
            except JobNoLongerAvailable:
                job = await load_job(JobRepository(session), job_id)
                return await self._settled(session, job) or BeamingResult(
                    False, "Job changed during search"
                )

        logger.info("Job %s: no assignees within %dm", job_id, self.config.max_radius_m)
        if self.notifier is not None:
            await self.notifier.notify_requester(job, "No drivers available nearby")
        return BeamingResult(
            False,
            "No assignees found within maximum search radius",
            self.config.max_radius_m,
            tuple(notified),
        )


class MatchingService:
    """Bid submission and acceptance, one request / session at a time."""

    def __init__(
        self,
        session: AsyncSession,
        fees: Optional[PlatformFeeService] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session = session
        self.jobs = JobRepository(session)
        self.assignees = AssigneeRepository(session)
        self.proposals = ProposalRepository(session)
        self.fees = fees
        self.notifier = notifier

    async def list_proposals(self, job_id: int) -> list[ProposalModel]:
        await load_job(self.jobs, job_id)
        return await self.proposals.list_for_job(job_id)

    async def submit_proposal(
        self,
        job_id: int,
        assignee_id: int,
        top_up_fare: float = 0.0,
        notes: Optional[str] = None,
    ) -> ProposalModel:
        """Add (or replace) an assignee's bid on an open job."""
        if top_up_fare < 0:
            raise InvalidInput("Top-up fare must be non-negative")

        job = await load_job(self.jobs, job_id)
        if job.status != JobStatus.REQUESTED.value or job.assignee_id is not None:
            raise JobNoLongerAvailable()

        await load_assignee_for(self.assignees, job, assignee_id)
        assignee, name = await self.assignees.get_with_name(assignee_id)

        proposal = build_proposal(
            assignee=assignee,
            assignee_name=name,
            pickup_lat=job.pickup_lat,
            pickup_lng=job.pickup_lng,
            base_fare=job.base_fare,
            top_up_fare=top_up_fare,
            now=utcnow(),
            notes=notes,
        )
        row = await self.proposals.upsert(job_id, proposal)

        # Version bump keeps the job open and wakes change-feed subscribers
        if not await self.jobs.compare_and_set(
            job_id,
            expected_status=JobStatus.REQUESTED,
            values={"negotiation_notes": notes},
            require_unassigned=True,
        ):
            await self.session.rollback()
            raise JobNoLongerAvailable()
        await self.session.commit()

        logger.info(
            "Proposal on job %s from assignee %s (top-up %.2f)",
            job_id, assignee_id, proposal.proposed_top_up_fare,
        )
        if self.notifier is not None:
            job = await load_job(self.jobs, job_id)
            await self.notifier.notify_requester(job, "A driver sent a proposal")
        return row

    async def accept_proposal(
        self, job_id: int, assignee_id: int, actor_user_id: Optional[int] = None
    ) -> JobModel:
        """Turn the chosen bid into the job's assignment."""
        job = await load_job(self.jobs, job_id)
        proposal = await self.proposals.get(job_id, assignee_id)
        if proposal is None:
            raise ProposalNotFound("Proposal not found")
        if job.status != JobStatus.REQUESTED.value or job.assignee_id is not None:
            raise JobNoLongerAvailable()

        job = await transition_job(
            self.session,
            job,
            ASSIGNED_STATUS[JobKind(job.kind)],
            {
                "assignee_id": assignee_id,
                "top_up_fare": proposal.proposed_top_up_fare,
                "total_fare": proposal.total_fare,
                "negotiation_status": NegotiationStatus.ACCEPTED.value,
            },
            require_unassigned=True,
        )
        logger.info("Job %s: proposal from assignee %s accepted", job_id, assignee_id)

        if self.fees is not None:
            await charge_fee_best_effort(self.fees, job_id, actor_user_id)
            job = await load_job(self.jobs, job_id)
        if self.notifier is not None:
            await self.notifier.notify_requester(job, "Proposal accepted")
        return job
