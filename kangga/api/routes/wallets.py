"""
Wallet endpoints
================

POST /api/v1/wallets                            -- open a driver / courier wallet
GET  /api/v1/wallets/{user_id}                  -- balance and account number
GET  /api/v1/wallets/{user_id}/transactions     -- newest first
POST /api/v1/wallets/{user_id}/transactions     -- load / deduct / adjust
"""

from fastapi import APIRouter, Depends, Query, Request

from kangga.api.dependencies import get_wallet_service
from kangga.api.middleware import limiter
from kangga.api.schemas import (
    BalanceResponse,
    TransactionResponse,
    WalletOpenRequest,
    WalletResponse,
    WalletTransactionRequest,
)
from kangga.infrastructure.models import WalletAccountModel
from kangga.services.wallet import WalletService, generate_account_number

router = APIRouter(prefix="/wallets", tags=["wallets"])


def _wallet_response(account: WalletAccountModel) -> WalletResponse:
    return WalletResponse(
        user_id=account.user_id,
        role=account.role,
        balance=account.balance,
        account_number=generate_account_number(account.role, str(account.user_id)),
    )


@router.post("", status_code=201, response_model=WalletResponse, summary="Open a wallet")
@limiter.limit("30/minute")
async def open_wallet(
    request: Request,
    body: WalletOpenRequest,
    service: WalletService = Depends(get_wallet_service),
):
    account = await service.open_account(body.user_id, body.role)
    await service.session.commit()
    return _wallet_response(account)


@router.get("/{user_id}", response_model=WalletResponse, summary="Get a wallet")
@limiter.limit("100/minute")
async def get_wallet(
    request: Request,
    user_id: int,
    service: WalletService = Depends(get_wallet_service),
):
    return _wallet_response(await service.get_account(user_id))


@router.get(
    "/{user_id}/transactions",
    response_model=list[TransactionResponse],
    summary="Recent wallet transactions",
)
@limiter.limit("100/minute")
async def list_transactions(
    request: Request,
    user_id: int,
    limit: int = Query(10, ge=1, le=100),
    service: WalletService = Depends(get_wallet_service),
):
    await service.get_account(user_id)
    return await service.get_transactions(user_id, limit)


@router.post(
    "/{user_id}/transactions",
    status_code=201,
    response_model=BalanceResponse,
    summary="Post a wallet transaction",
)
@limiter.limit("30/minute")
async def post_transaction(
    request: Request,
    user_id: int,
    body: WalletTransactionRequest,
    service: WalletService = Depends(get_wallet_service),
):
    balance = await service.post_transaction(
        user_id=user_id,
        amount=body.amount,
        tx_type=body.type,
        reference=body.reference,
        job_id=body.job_id,
        actor_user_id=body.actor_user_id,
    )
    return BalanceResponse(user_id=user_id, balance=balance)
