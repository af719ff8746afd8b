"""
Job lifecycle operations.

All business logic for creating, accepting, advancing and cancelling
rides and deliveries lives here, not in the route handlers.

Every status write is the same three steps:

1. ``ensure_transition`` against the state machine (nothing written yet)
2. ``compare_and_set`` conditioned on the status we read
3. commit, then re-read the row and publish the change

A lost compare-and-set surfaces as :class:`JobNoLongerAvailable`; the
caller re-fetches and decides again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kangga.domain.distance import haversine_km
from kangga.domain.entities import RefundResult
from kangga.domain.enums import (
    ASSIGNED_STATUS,
    ASSIGNEE_ROLE,
    NO_SHOW_REASONS,
    PHASE_TIMESTAMPS,
    CancellationReason,
    JobKind,
    JobStatus,
    NegotiationStatus,
)
from kangga.domain.exceptions import (
    AssigneeNotFound,
    InvalidInput,
    JobNoLongerAvailable,
    JobNotFound,
)
from kangga.domain.pricing import FareConfig, estimate_fare
from kangga.domain.state_machine import ensure_transition
from kangga.infrastructure.models import AssigneeModel, JobModel
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.repositories import (
    AssigneeRepository,
    FareConfigRepository,
    JobRepository,
    ProposalRepository,
)

from .platform_fee import PlatformFeeService, charge_fee_best_effort

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CancelOutcome:
    job: JobModel
    refund: Optional[RefundResult] = None


async def load_job(repo: JobRepository, job_id: int) -> JobModel:
    job = await repo.get_fresh(job_id)
    if job is None:
        raise JobNotFound(f"Job {job_id} not found")
    return job


async def load_assignee_for(
    repo: AssigneeRepository, job: JobModel, assignee_id: int
) -> AssigneeModel:
    """Fetch the assignee and check it can serve this kind of job."""
    assignee = await repo.get_by_id(assignee_id)
    if assignee is None:
        raise AssigneeNotFound(f"Assignee {assignee_id} not found")
    expected_role = ASSIGNEE_ROLE[JobKind(job.kind)].value
    if assignee.role != expected_role:
        raise InvalidInput(f"A {assignee.role} cannot take a {job.kind}")
    return assignee


async def transition_job(
    session: AsyncSession,
    job: JobModel,
    new_status: JobStatus,
    values: Optional[dict[str, Any]] = None,
    **conditions: Any,
) -> JobModel:
    """Move *job* to *new_status* with a compare-and-set; commits on success."""
    # rollback expires ORM state, so keep plain copies
    job_id, kind, current = job.id, JobKind(job.kind), JobStatus(job.status)
    new_status = JobStatus(new_status)
    ensure_transition(kind, current, new_status)

    updates = dict(values or {})
    updates["status"] = new_status.value
    stamp = PHASE_TIMESTAMPS.get(new_status)
    if stamp:
        updates[stamp] = utcnow()

    repo = JobRepository(session)
    if not await repo.compare_and_set(
        job_id, expected_status=current, values=updates, **conditions
    ):
        await session.rollback()
        logger.info(
            "Lost race moving job %s from %s to %s",
            job_id, current.value, new_status.value,
        )
        raise JobNoLongerAvailable()

    if new_status in (JobStatus.CANCELLED, ASSIGNED_STATUS[kind]):
        await ProposalRepository(session).clear(job_id)

    await session.commit()
    return await load_job(repo, job_id)


class JobService:
    def __init__(
        self,
        session: AsyncSession,
        fees: Optional[PlatformFeeService] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session = session
        self.jobs = JobRepository(session)
        self.assignees = AssigneeRepository(session)
        self.fares = FareConfigRepository(session)
        self.fees = fees
        self.notifier = notifier

    async def _notify(self, job: JobModel, message: str) -> None:
        if self.notifier is not None:
            await self.notifier.notify_requester(job, message)

    async def _quote(
        self, service_type: Optional[str], region_code: str, fields: dict[str, Any]
    ) -> float:
        """Base fare from the fare config when the client did not send one."""
        coords = [fields.get(k) for k in ("pickup_lat", "pickup_lng", "dropoff_lat", "dropoff_lng")]
        if service_type is None or any(c is None for c in coords):
            return 0.0
        row = await self.fares.get(service_type, region_code)
        if row is None:
            return 0.0
        config = FareConfig(
            base_fare=row.base_fare,
            per_km=row.per_km,
            per_min=row.per_min,
            min_fare=row.min_fare,
            platform_fee_type=row.platform_fee_type,
            platform_fee_value=row.platform_fee_value,
        )
        return estimate_fare(config, haversine_km(*coords)).subtotal

    # ── Creation & reads ──────────────────────────────────────────

    async def create_job(
        self,
        *,
        kind: JobKind,
        requester_id: int,
        pickup_address: str,
        dropoff_address: str,
        base_fare: Optional[float] = None,
        service_type: Optional[str] = None,
        region_code: str = "DEFAULT",
        **fields: Any,
    ) -> JobModel:
        if base_fare is not None and base_fare < 0:
            raise InvalidInput("Base fare must be non-negative")
        if base_fare is None:
            base_fare = await self._quote(service_type, region_code, fields)

        job = await self.jobs.create(
            kind=JobKind(kind).value,
            requester_id=requester_id,
            pickup_address=pickup_address,
            dropoff_address=dropoff_address,
            service_type=service_type,
            base_fare=base_fare,
            top_up_fare=0.0,
            total_fare=base_fare,
            status=JobStatus.REQUESTED.value,
            **fields,
        )
        await self.session.commit()
        logger.info("Created %s %s for requester %s", job.kind, job.id, requester_id)
        return await load_job(self.jobs, job.id)

    async def get_job(self, job_id: int) -> JobModel:
        return await load_job(self.jobs, job_id)

    async def list_open(self, kind: JobKind) -> list[JobModel]:
        return await self.jobs.list_open(kind)

    async def list_for_requester(self, requester_id: int) -> list[JobModel]:
        return await self.jobs.list_for_requester(requester_id)

    async def list_for_assignee(self, assignee_id: int) -> list[JobModel]:
        return await self.jobs.list_for_assignee(assignee_id)

    # ── Mutations ─────────────────────────────────────────────────

    async def accept_job(
        self, job_id: int, assignee_id: int, actor_user_id: Optional[int] = None
    ) -> JobModel:
        """Bind an assignee to an open job; exactly one concurrent caller wins."""
        job = await load_job(self.jobs, job_id)
        await load_assignee_for(self.assignees, job, assignee_id)

        if job.status != JobStatus.REQUESTED.value or job.assignee_id is not None:
            raise JobNoLongerAvailable()

        job = await transition_job(
            self.session,
            job,
            ASSIGNED_STATUS[JobKind(job.kind)],
            {
                "assignee_id": assignee_id,
                "total_fare": (job.base_fare or 0.0) + (job.top_up_fare or 0.0),
            },
            require_unassigned=True,
        )
        logger.info("Job %s accepted by assignee %s", job_id, assignee_id)

        if self.fees is not None:
            await charge_fee_best_effort(self.fees, job_id, actor_user_id)
            job = await load_job(self.jobs, job_id)
        await self._notify(job, "Your request has been accepted")
        return job

    async def update_status(
        self,
        job_id: int,
        new_status: JobStatus | str,
        actor_user_id: Optional[int] = None,
    ) -> JobModel:
        """Advance an assigned job (pickup, in transit, completion)."""
        try:
            new_status = JobStatus(new_status)
        except ValueError:
            raise InvalidInput(f"Unknown status {new_status!r}") from None

        job = await load_job(self.jobs, job_id)
        if new_status == JobStatus.CANCELLED:
            raise InvalidInput("Cancellation requires a reason")
        if new_status == ASSIGNED_STATUS[JobKind(job.kind)]:
            raise InvalidInput("Assignment goes through acceptance")

        job = await transition_job(
            self.session, job, new_status, expected_assignee_id=job.assignee_id
        )
        logger.info(
            "Job %s -> %s (actor=%s)", job_id, new_status.value, actor_user_id
        )
        await self._notify(job, f"Status changed to {new_status.value}")
        return job

    async def cancel_job(
        self,
        job_id: int,
        reason: CancellationReason | str | None,
        actor_user_id: Optional[int] = None,
    ) -> CancelOutcome:
        if not reason:
            raise InvalidInput("Cancellation requires a reason")
        try:
            reason = CancellationReason(reason)
        except ValueError:
            raise InvalidInput(f"Unknown cancellation reason {reason!r}") from None

        job = await load_job(self.jobs, job_id)
        if reason in NO_SHOW_REASONS and job.assignee_id is None:
            raise InvalidInput("A no-show needs an assigned driver or courier")

        values: dict[str, Any] = {"cancellation_reason": reason.value}
        if job.negotiation_status == NegotiationStatus.PENDING.value:
            # a pending counter-offer dies with the job, tentative assignee included
            values.update(
                negotiation_status=NegotiationStatus.REJECTED.value,
                proposed_top_up_fare=None,
                assignee_id=None,
            )
            conditions = {
                "expected_assignee_id": job.assignee_id,
                "expected_negotiation": NegotiationStatus.PENDING.value,
            }
        else:
            conditions = {}

        job = await transition_job(
            self.session, job, JobStatus.CANCELLED, values, **conditions
        )
        logger.info(
            "Job %s cancelled (reason=%s, actor=%s)", job_id, reason.value, actor_user_id
        )

        refund = None
        if reason in NO_SHOW_REASONS and self.fees is not None:
            try:
                refund = await self.fees.refund_for_job(job_id, actor_user_id)
            except Exception:
                logger.exception(
                    "Platform fee refund failed: job=%s actor=%s", job_id, actor_user_id
                )
            job = await load_job(self.jobs, job_id)

        await self._notify(job, "Your request was cancelled")
        return CancelOutcome(job=job, refund=refund)
