"""
Platform Fee Engine
===================

A fixed fee is deducted from the assignee's wallet once per job, at the
moment the job is assigned.  It is returned only when the job is later
cancelled because the assignee never showed up.

Per-job state::

    charged=False, refunded=False --charge--> charged=True
    charged=True,  refunded=False --refund--> refunded=True   (no-show only)

``platform_fee_charged`` is the single source of truth for idempotence:
it is checked before the ledger is touched, and the ledger row plus the
flag flip are committed in one database transaction.  A retry of the
whole operation after any failure is therefore safe.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kangga.domain.entities import FeeResult, RefundResult
from kangga.domain.enums import NO_SHOW_REASONS, JobStatus, TransactionType
from kangga.domain.exceptions import AssigneeNotFound, JobNotFound
from kangga.infrastructure.repositories import AssigneeRepository, JobRepository

from .wallet import WalletService

logger = logging.getLogger(__name__)


class PlatformFeeService:
    def __init__(self, session: AsyncSession, fee: float = 5.0):
        self.session = session
        self.fee = fee
        self.jobs = JobRepository(session)
        self.assignees = AssigneeRepository(session)
        self.wallet = WalletService(session)

    async def _resolve_user_id(self, assignee_id: int) -> int:
        assignee = await self.assignees.get_by_id(assignee_id)
        if assignee is None:
            raise AssigneeNotFound(f"Assignee {assignee_id} not found")
        return assignee.user_id

    async def charge_for_job(
        self,
        job_id: int,
        assignee_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
    ) -> FeeResult:
        """Deduct the fee from the assignee's wallet unless already done."""
        job = await self.jobs.get_fresh(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")

        if job.platform_fee_charged:
            return FeeResult(charged=False, reason="already charged")

        assignee_id = assignee_id if assignee_id is not None else job.assignee_id
        if assignee_id is None:
            return FeeResult(charged=False, reason="no assignee")

        user_id = await self._resolve_user_id(assignee_id)

        try:
            await self.wallet.apply_transaction(
                user_id=user_id,
                amount=-self.fee,
                tx_type=TransactionType.DEDUCT,
                reference=f"Platform fee ({job.kind})",
                job_id=job_id,
                actor_user_id=actor_user_id,
            )
            if not await self.jobs.mark_fee_charged(job_id):
                # Someone else flipped the flag after our read: undo our ledger row
                await self.session.rollback()
                return FeeResult(charged=False, reason="already charged")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Platform fee %.2f charged: job=%s assignee=%s user=%s",
            self.fee, job_id, assignee_id, user_id,
        )
        return FeeResult(charged=True, reason=f"{self.fee:.2f} platform fee charged")

    async def refund_for_job(
        self, job_id: int, actor_user_id: Optional[int] = None
    ) -> RefundResult:
        """Return the fee for a no-show cancellation; a no-op otherwise."""
        job = await self.jobs.get_fresh(job_id)
        if job is None:
            raise JobNotFound(f"Job {job_id} not found")

        if job.status != JobStatus.CANCELLED.value:
            return RefundResult(refunded=False, reason="job is not cancelled")
        if job.cancellation_reason not in {r.value for r in NO_SHOW_REASONS}:
            return RefundResult(
                refunded=False, reason="cancellation reason is not a no-show"
            )
        if not job.platform_fee_charged:
            return RefundResult(refunded=False, reason="fee was never charged")
        if job.platform_fee_refunded:
            return RefundResult(refunded=False, reason="already refunded")
        if job.assignee_id is None:
            return RefundResult(refunded=False, reason="no assignee")

        user_id = await self._resolve_user_id(job.assignee_id)

        try:
            await self.wallet.apply_transaction(
                user_id=user_id,
                amount=self.fee,
                tx_type=TransactionType.ADJUST,
                reference=f"Platform fee refund ({job.kind}, no-show)",
                job_id=job_id,
                actor_user_id=actor_user_id,
            )
            if not await self.jobs.mark_fee_refunded(job_id):
                await self.session.rollback()
                return RefundResult(refunded=False, reason="already refunded")
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

        logger.info(
            "Platform fee %.2f refunded: job=%s user=%s", self.fee, job_id, user_id
        )
        return RefundResult(refunded=True, reason=f"{self.fee:.2f} platform fee refunded")


async def charge_fee_best_effort(
    fees: PlatformFeeService, job_id: int, actor_user_id: Optional[int] = None
) -> Optional[FeeResult]:
    """Charge after an assignment without ever failing the assignment itself.

    Failures are logged for manual reconciliation; the job keeps
    ``platform_fee_charged = false`` so a later retry picks it up.
    """
    try:
        return await fees.charge_for_job(job_id, actor_user_id=actor_user_id)
    except Exception:
        logger.exception(
            "Platform fee charge failed: job=%s actor=%s (left for reconciliation)",
            job_id, actor_user_id,
        )
        return None
