"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Commits belong to the caller.

Concurrency control
-------------------
Job status writes go through :meth:`JobRepository.compare_and_set`, an
``UPDATE ... WHERE status = :expected`` that also bumps ``version``.  A
zero row count means another writer got there first.  Wallet balances
are only ever changed with an in-place ``balance = balance + :amount``
so concurrent ledger writes never lose an update.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AssigneeModel,
    FareConfigModel,
    JobModel,
    ProposalModel,
    UserModel,
    WalletAccountModel,
    WalletTransactionModel,
)
from kangga.domain.entities import Proposal
from kangga.domain.enums import JobKind, JobStatus


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **fields: Any) -> JobModel:
        job = JobModel(**fields)
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: int) -> Optional[JobModel]:
        return await self.session.get(JobModel, job_id)

    async def get_fresh(self, job_id: int) -> Optional[JobModel]:
        """Re-read a job, bypassing whatever the identity map holds."""
        result = await self.session.execute(
            select(JobModel)
            .where(JobModel.id == job_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def compare_and_set(
        self,
        job_id: int,
        *,
        expected_status: JobStatus,
        values: dict[str, Any],
        require_unassigned: bool = False,
        expected_assignee_id: Optional[int] = None,
        expected_negotiation: Optional[str] = None,
    ) -> bool:
        """
        Apply *values* only if the row still matches the expectations.

        Returns ``True`` when exactly one row was written.
        """
        stmt = update(JobModel).where(
            JobModel.id == job_id,
            JobModel.status == JobStatus(expected_status).value,
        )
        if require_unassigned:
            stmt = stmt.where(JobModel.assignee_id.is_(None))
        if expected_assignee_id is not None:
            stmt = stmt.where(JobModel.assignee_id == expected_assignee_id)
        if expected_negotiation is not None:
            stmt = stmt.where(JobModel.negotiation_status == expected_negotiation)

        stmt = stmt.values(**values, version=JobModel.version + 1)
        result = await self.session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_search_progress(
        self, job_id: int, radius_m: int, notified: list[int]
    ) -> bool:
        """Record the current beaming wave while the job is still open."""
        result = await self.session.execute(
            update(JobModel)
            .where(
                JobModel.id == job_id,
                JobModel.status == JobStatus.REQUESTED.value,
            )
            .values(search_radius_m=radius_m, notified_assignee_ids=notified)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_fee_charged(self, job_id: int) -> bool:
        result = await self.session.execute(
            update(JobModel)
            .where(
                JobModel.id == job_id,
                JobModel.platform_fee_charged.is_(False),
            )
            .values(platform_fee_charged=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_fee_refunded(self, job_id: int) -> bool:
        result = await self.session.execute(
            update(JobModel)
            .where(
                JobModel.id == job_id,
                JobModel.platform_fee_charged.is_(True),
                JobModel.platform_fee_refunded.is_(False),
            )
            .values(platform_fee_refunded=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def list_open(self, kind: JobKind) -> list[JobModel]:
        result = await self.session.execute(
            select(JobModel)
            .where(
                JobModel.kind == JobKind(kind).value,
                JobModel.status == JobStatus.REQUESTED.value,
                JobModel.assignee_id.is_(None),
            )
            .order_by(JobModel.created_at, JobModel.id)
        )
        return list(result.scalars().all())

    async def list_for_requester(self, requester_id: int) -> list[JobModel]:
        result = await self.session.execute(
            select(JobModel)
            .where(JobModel.requester_id == requester_id)
            .order_by(JobModel.created_at.desc(), JobModel.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_assignee(self, assignee_id: int) -> list[JobModel]:
        result = await self.session.execute(
            select(JobModel)
            .where(JobModel.assignee_id == assignee_id)
            .order_by(JobModel.created_at.desc(), JobModel.id.desc())
        )
        return list(result.scalars().all())


class ProposalRepository:
    """Child collection of bids, keyed by job id (one row per assignee)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, job_id: int, assignee_id: int) -> Optional[ProposalModel]:
        result = await self.session.execute(
            select(ProposalModel).where(
                ProposalModel.job_id == job_id,
                ProposalModel.assignee_id == assignee_id,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, job_id: int, proposal: Proposal) -> ProposalModel:
        """Insert, or replace the assignee's earlier bid on the same job."""
        row = await self.get(job_id, proposal.assignee_id)
        if row is None:
            row = ProposalModel(job_id=job_id, assignee_id=proposal.assignee_id)
            self.session.add(row)

        row.assignee_name = proposal.assignee_name
        row.vehicle_type = proposal.vehicle_type
        row.vehicle_plate = proposal.vehicle_plate
        row.rating = proposal.rating
        row.distance_m = proposal.distance_m
        row.proposed_top_up_fare = proposal.proposed_top_up_fare
        row.total_fare = proposal.total_fare
        row.notes = proposal.notes
        row.proposed_at = proposal.proposed_at
        await self.session.flush()
        return row

    async def list_for_job(self, job_id: int) -> list[ProposalModel]:
        result = await self.session.execute(
            select(ProposalModel)
            .where(ProposalModel.job_id == job_id)
            .order_by(ProposalModel.proposed_at, ProposalModel.id)
        )
        return list(result.scalars().all())

    async def count_for_job(self, job_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(ProposalModel)
            .where(ProposalModel.job_id == job_id)
        )
        return result.scalar() or 0

    async def clear(self, job_id: int) -> None:
        await self.session.execute(
            delete(ProposalModel).where(ProposalModel.job_id == job_id)
        )


class AssigneeRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, assignee_id: int) -> Optional[AssigneeModel]:
        return await self.session.get(AssigneeModel, assignee_id)

    async def get_with_name(
        self, assignee_id: int
    ) -> tuple[Optional[AssigneeModel], Optional[str]]:
        result = await self.session.execute(
            select(AssigneeModel, UserModel.full_name)
            .join(UserModel, UserModel.id == AssigneeModel.user_id)
            .where(AssigneeModel.id == assignee_id)
        )
        row = result.first()
        if row is None:
            return None, None
        return row[0], row[1]

    async def find_available_in_cells(
        self,
        role: str,
        cells: Iterable[str],
        vehicle_type: Optional[str] = None,
        exclude: Iterable[int] = (),
    ) -> list[AssigneeModel]:
        query = select(AssigneeModel).where(
            AssigneeModel.role == role,
            AssigneeModel.is_available.is_(True),
            AssigneeModel.h3_cell.in_(list(cells)),
        )
        if vehicle_type:
            query = query.where(AssigneeModel.vehicle_type == vehicle_type)
        excluded = list(exclude)
        if excluded:
            query = query.where(AssigneeModel.id.not_in(excluded))
        result = await self.session.execute(query)
        return list(result.scalars().all())


class WalletRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_account(self, user_id: int) -> Optional[WalletAccountModel]:
        return await self.session.get(WalletAccountModel, user_id)

    async def create_account(self, user_id: int, role: str) -> WalletAccountModel:
        account = WalletAccountModel(user_id=user_id, role=role, balance=0.0)
        self.session.add(account)
        await self.session.flush()
        return account

    async def increment_balance(self, user_id: int, amount: float) -> Optional[float]:
        """Atomically add *amount*; returns the new balance or ``None`` if absent."""
        result = await self.session.execute(
            update(WalletAccountModel)
            .where(WalletAccountModel.user_id == user_id)
            .values(balance=WalletAccountModel.balance + amount)
            .returning(WalletAccountModel.balance)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def add_transaction(self, tx: WalletTransactionModel) -> WalletTransactionModel:
        self.session.add(tx)
        await self.session.flush()
        return tx

    async def list_transactions(
        self, user_id: int, limit: int = 10
    ) -> list[WalletTransactionModel]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.user_id == user_id)
            .order_by(WalletTransactionModel.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_for_job(self, job_id: int) -> list[WalletTransactionModel]:
        result = await self.session.execute(
            select(WalletTransactionModel)
            .where(WalletTransactionModel.related_job_id == job_id)
            .order_by(WalletTransactionModel.id)
        )
        return list(result.scalars().all())

    async def sum_transactions(self, user_id: int) -> float:
        result = await self.session.execute(
            select(func.coalesce(func.sum(WalletTransactionModel.amount), 0.0)).where(
                WalletTransactionModel.user_id == user_id
            )
        )
        return float(result.scalar() or 0.0)


class FareConfigRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, service_type: str, region_code: str = "DEFAULT"
    ) -> Optional[FareConfigModel]:
        """Region-specific config first, then the service's DEFAULT region."""
        for region in dict.fromkeys([region_code, "DEFAULT"]):
            result = await self.session.execute(
                select(FareConfigModel).where(
                    FareConfigModel.service_type == service_type,
                    FareConfigModel.region_code == region,
                )
            )
            config = result.scalar_one_or_none()
            if config is not None:
                return config
        return None

