"""
Counter-offer negotiation.

An assignee may answer an open job with a top-up instead of a plain
bid.  The job then carries one pending counter-offer::

    none --propose--> pending --accept--> accepted   (job assigned)
                         |
                         +----reject--> rejected     (job open again)

While pending, the proposing assignee is held on the job as a tentative
assignee so that nobody else can grab it.  Accepting makes that binding
final; rejecting clears it.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kangga.domain.enums import ASSIGNED_STATUS, JobKind, JobStatus, NegotiationStatus
from kangga.domain.exceptions import (
    InvalidInput,
    JobNoLongerAvailable,
    NegotiationStateError,
)
from kangga.domain.pricing import round_money
from kangga.infrastructure.models import JobModel
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.repositories import AssigneeRepository, JobRepository

from .jobs import load_assignee_for, load_job, transition_job
from .platform_fee import PlatformFeeService, charge_fee_best_effort

logger = logging.getLogger(__name__)


class NegotiationService:
    def __init__(
        self,
        session: AsyncSession,
        fees: Optional[PlatformFeeService] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session = session
        self.jobs = JobRepository(session)
        self.assignees = AssigneeRepository(session)
        self.fees = fees
        self.notifier = notifier

    async def _notify(self, job: JobModel, message: str) -> None:
        if self.notifier is not None:
            await self.notifier.notify_requester(job, message)

    async def propose_counter_offer(
        self,
        job_id: int,
        assignee_id: int,
        proposed_top_up_fare: float,
        notes: Optional[str] = None,
    ) -> JobModel:
        if proposed_top_up_fare < 0:
            raise InvalidInput("Top-up fare must be non-negative")

        job = await load_job(self.jobs, job_id)
        await load_assignee_for(self.assignees, job, assignee_id)

        if job.status != JobStatus.REQUESTED.value:
            raise JobNoLongerAvailable()
        # The same assignee may revise a pending offer; anyone else is locked out
        if job.assignee_id is not None and job.assignee_id != assignee_id:
            raise JobNoLongerAvailable()

        conditions = (
            {"expected_assignee_id": assignee_id}
            if job.assignee_id is not None
            else {"require_unassigned": True}
        )
        ok = await self.jobs.compare_and_set(
            job_id,
            expected_status=JobStatus.REQUESTED,
            values={
                "assignee_id": assignee_id,
                "proposed_top_up_fare": round_money(proposed_top_up_fare),
                "negotiation_status": NegotiationStatus.PENDING.value,
                "negotiation_notes": notes,
            },
            **conditions,
        )
        if not ok:
            await self.session.rollback()
            raise JobNoLongerAvailable()
        await self.session.commit()

        job = await load_job(self.jobs, job_id)
        logger.info(
            "Counter-offer on job %s from assignee %s: +%.2f",
            job_id, assignee_id, job.proposed_top_up_fare,
        )
        await self._notify(job, "You received a counter-offer")
        return job

    async def accept_negotiation(
        self, job_id: int, actor_user_id: Optional[int] = None
    ) -> JobModel:
        job = await load_job(self.jobs, job_id)
        if job.negotiation_status != NegotiationStatus.PENDING.value:
            raise NegotiationStateError("No pending counter-offer on this job")

        top_up = job.proposed_top_up_fare or 0.0
        job = await transition_job(
            self.session,
            job,
            ASSIGNED_STATUS[JobKind(job.kind)],
            {
                "top_up_fare": top_up,
                "total_fare": round_money((job.base_fare or 0.0) + top_up),
                "negotiation_status": NegotiationStatus.ACCEPTED.value,
            },
            expected_assignee_id=job.assignee_id,
            expected_negotiation=NegotiationStatus.PENDING.value,
        )
        logger.info(
            "Job %s: counter-offer accepted, total fare %.2f", job_id, job.total_fare
        )

        if self.fees is not None:
            await charge_fee_best_effort(self.fees, job_id, actor_user_id)
            job = await load_job(self.jobs, job_id)
        await self._notify(job, "Counter-offer accepted")
        return job

    async def reject_negotiation(self, job_id: int) -> JobModel:
        job = await load_job(self.jobs, job_id)
        if job.negotiation_status != NegotiationStatus.PENDING.value:
            raise NegotiationStateError("No pending counter-offer on this job")

        ok = await self.jobs.compare_and_set(
            job_id,
            expected_status=JobStatus.REQUESTED,
            values={
                "assignee_id": None,
                "proposed_top_up_fare": None,
                "negotiation_status": NegotiationStatus.REJECTED.value,
            },
            expected_assignee_id=job.assignee_id,
            expected_negotiation=NegotiationStatus.PENDING.value,
        )
        if not ok:
            await self.session.rollback()
            raise JobNoLongerAvailable()
        await self.session.commit()

        job = await load_job(self.jobs, job_id)
        logger.info("Job %s: counter-offer rejected", job_id)
        await self._notify(job, "Counter-offer declined")
        return job
