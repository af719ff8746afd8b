"""Wallet ledger: sign rules, atomic balance updates and reconciliation."""

import re

import pytest
from sqlalchemy import select

from kangga.domain.enums import TransactionType
from kangga.domain.exceptions import InvalidInput, WalletAccountNotFound
from kangga.infrastructure.models import UserModel, WalletTransactionModel
from kangga.services.wallet import WalletService, generate_account_number


async def _user(session, role="driver") -> int:
    user = UserModel(full_name="Ramon Dela Cruz", email=f"{role}@example.com", role=role)
    session.add(user)
    await session.flush()
    return user.id


class TestAccountNumber:
    def test_driver_prefix(self):
        assert re.fullmatch(r"KXD-\d{8}", generate_account_number("driver", "42"))

    def test_courier_prefix(self):
        assert re.fullmatch(r"KXC-\d{8}", generate_account_number("courier", "42"))

    def test_deterministic(self):
        assert generate_account_number("driver", "abc-123") == generate_account_number(
            "driver", "abc-123"
        )

    def test_different_seeds_differ(self):
        assert generate_account_number("driver", "1") != generate_account_number(
            "driver", "2"
        )

    def test_known_value(self):
        # h("a") = 97
        assert generate_account_number("driver", "a") == "KXD-00000097"


class TestWalletService:
    @pytest.mark.asyncio
    async def test_open_account_is_idempotent(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        first = await wallet.open_account(user_id, "driver")
        second = await wallet.open_account(user_id, "driver")
        assert first is second
        assert first.balance == 0.0

    @pytest.mark.asyncio
    async def test_load_then_deduct(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")

        assert await wallet.apply_transaction(
            user_id=user_id, amount=100.0, tx_type=TransactionType.LOAD
        ) == 100.0
        assert await wallet.apply_transaction(
            user_id=user_id, amount=-5.0, tx_type=TransactionType.DEDUCT, job_id=None
        ) == 95.0
        await db_session.commit()

        txs = await wallet.get_transactions(user_id)
        assert [t.amount for t in txs] == [-5.0, 100.0]  # newest first
        assert txs[0].balance_after == 95.0

    @pytest.mark.asyncio
    async def test_balance_may_go_negative(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "courier")
        balance = await wallet.apply_transaction(
            user_id=user_id, amount=-5.0, tx_type="deduct"
        )
        assert balance == -5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount, tx_type",
        [
            (0.0, TransactionType.ADJUST),
            (5.0, TransactionType.DEDUCT),
            (-5.0, TransactionType.LOAD),
        ],
    )
    async def test_sign_rules(self, db_session, amount, tx_type):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")
        with pytest.raises(InvalidInput):
            await wallet.apply_transaction(user_id=user_id, amount=amount, tx_type=tx_type)

    @pytest.mark.asyncio
    async def test_missing_wallet(self, db_session):
        wallet = WalletService(db_session)
        with pytest.raises(WalletAccountNotFound):
            await wallet.apply_transaction(
                user_id=999, amount=10.0, tx_type=TransactionType.LOAD
            )
        with pytest.raises(WalletAccountNotFound):
            await wallet.get_account(999)

    @pytest.mark.asyncio
    async def test_transaction_limit(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")
        for i in range(1, 13):
            await wallet.apply_transaction(
                user_id=user_id, amount=float(i), tx_type=TransactionType.LOAD
            )
        await db_session.commit()

        txs = await wallet.get_transactions(user_id)
        assert len(txs) == 10
        assert txs[0].amount == 12.0
        assert len(await wallet.get_transactions(user_id, limit=3)) == 3

    @pytest.mark.asyncio
    async def test_balance_equals_ledger_sum(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")

        moves = [
            (200.0, TransactionType.LOAD),
            (-5.0, TransactionType.DEDUCT),
            (-5.0, TransactionType.DEDUCT),
            (5.0, TransactionType.ADJUST),
            (-12.5, TransactionType.ADJUST),
            (0.75, TransactionType.LOAD),
        ]
        for amount, tx_type in moves:
            await wallet.apply_transaction(user_id=user_id, amount=amount, tx_type=tx_type)
        await db_session.commit()

        result = await wallet.reconcile(user_id)
        assert result.balanced
        assert result.balance == pytest.approx(sum(a for a, _ in moves))
        assert result.ledger_total == pytest.approx(result.balance)

    @pytest.mark.asyncio
    async def test_rollback_discards_balance_and_row(self, db_session):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")
        await db_session.commit()

        await wallet.apply_transaction(
            user_id=user_id, amount=50.0, tx_type=TransactionType.LOAD
        )
        await db_session.rollback()

        account = await wallet.get_account(user_id)
        await db_session.refresh(account)
        assert account.balance == 0.0
        rows = await db_session.execute(
            select(WalletTransactionModel).where(WalletTransactionModel.user_id == user_id)
        )
        assert rows.scalars().all() == []

    @pytest.mark.asyncio
    async def test_post_transaction_commits(self, db_session, session_factory):
        user_id = await _user(db_session)
        wallet = WalletService(db_session)
        await wallet.open_account(user_id, "driver")
        await wallet.post_transaction(
            user_id=user_id, amount=30.0, tx_type=TransactionType.LOAD
        )

        async with session_factory() as other:
            assert (await WalletService(other).get_account(user_id)).balance == 30.0
