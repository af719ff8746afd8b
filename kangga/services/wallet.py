"""
Wallet ledger
=============

Single entry point for every balance change: :meth:`WalletService.apply_transaction`
updates the account balance in place and appends exactly one
``wallet_transactions`` row, both inside the caller's unit of work.  They
commit together or not at all, which keeps the reconciliation invariant

    balance(user) == sum(transaction.amount for user)

Sign conventions
----------------
* ``load``   -- credit, amount > 0
* ``deduct`` -- debit, amount < 0 (the balance may go negative)
* ``adjust`` -- admin correction or fee refund, any non-zero amount
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kangga.domain.enums import AssigneeRole, TransactionType
from kangga.domain.exceptions import InvalidInput, WalletAccountNotFound
from kangga.infrastructure.models import WalletAccountModel, WalletTransactionModel
from kangga.infrastructure.repositories import WalletRepository

logger = logging.getLogger(__name__)

# Balances are stored as floats; anything below a cent is rounding noise
RECONCILE_TOLERANCE = 0.005


@dataclass(frozen=True)
class Reconciliation:
    user_id: int
    balance: float
    ledger_total: float

    @property
    def balanced(self) -> bool:
        return abs(self.balance - self.ledger_total) < RECONCILE_TOLERANCE


def generate_account_number(role: AssigneeRole | str, seed: str) -> str:
    """Deterministic display number: ``KXD-########`` / ``KXC-########``."""
    prefix = "KXD" if AssigneeRole(role) == AssigneeRole.DRIVER else "KXC"
    h = 0
    for ch in seed:
        # 32-bit signed wrap-around, same as the mobile client
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return f"{prefix}-{abs(h) % 100_000_000:08d}"


def _validate(amount: float, tx_type: TransactionType) -> None:
    if amount == 0:
        raise InvalidInput("Transaction amount must be non-zero")
    if tx_type == TransactionType.DEDUCT and amount > 0:
        raise InvalidInput("A deduction must carry a negative amount")
    if tx_type == TransactionType.LOAD and amount < 0:
        raise InvalidInput("A load must carry a positive amount")


class WalletService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.repo = WalletRepository(session)

    async def open_account(self, user_id: int, role: AssigneeRole | str) -> WalletAccountModel:
        existing = await self.repo.get_account(user_id)
        if existing is not None:
            return existing
        return await self.repo.create_account(user_id, AssigneeRole(role).value)

    async def get_account(self, user_id: int) -> WalletAccountModel:
        account = await self.repo.get_account(user_id)
        if account is None:
            raise WalletAccountNotFound(f"No wallet for user {user_id}")
        return account

    async def get_transactions(
        self, user_id: int, limit: int = 10
    ) -> list[WalletTransactionModel]:
        return await self.repo.list_transactions(user_id, limit)

    async def apply_transaction(
        self,
        *,
        user_id: int,
        amount: float,
        tx_type: TransactionType | str,
        reference: Optional[str] = None,
        job_id: Optional[int] = None,
        actor_user_id: Optional[int] = None,
    ) -> float:
        """Apply a signed *amount* and return the new balance.

        Does not commit: the caller decides the transaction boundary so
        that related writes (e.g. the job's fee flag) land atomically with
        the ledger row.
        """
        tx_type = TransactionType(tx_type)
        _validate(amount, tx_type)

        new_balance = await self.repo.increment_balance(user_id, amount)
        if new_balance is None:
            raise WalletAccountNotFound(f"No wallet for user {user_id}")

        await self.repo.add_transaction(
            WalletTransactionModel(
                user_id=user_id,
                amount=amount,
                type=tx_type.value,
                reference=reference,
                related_job_id=job_id,
                balance_after=new_balance,
                created_by=actor_user_id,
            )
        )
        logger.info(
            "Wallet %s: %s %.2f (job=%s, actor=%s) -> balance %.2f",
            user_id, tx_type.value, amount, job_id, actor_user_id, new_balance,
        )
        return new_balance

    async def post_transaction(self, **kwargs) -> float:
        """:meth:`apply_transaction` as its own committed unit of work."""
        try:
            balance = await self.apply_transaction(**kwargs)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return balance

    async def reconcile(self, user_id: int) -> Reconciliation:
        account = await self.get_account(user_id)
        await self.session.refresh(account)
        total = await self.repo.sum_transactions(user_id)
        result = Reconciliation(
            user_id=user_id, balance=account.balance, ledger_total=total
        )
        if not result.balanced:
            logger.warning(
                "Wallet %s out of balance: balance=%.2f ledger=%.2f",
                user_id, result.balance, result.ledger_total,
            )
        return result
