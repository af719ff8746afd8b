"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                          -- simple health check
GET  /api/v1/admin/wallets/{user_id}/reconcile     -- balance vs. ledger sum
POST /api/v1/admin/jobs/{job_id}/platform-fee/charge  -- retry a failed charge
POST /api/v1/admin/jobs/{job_id}/platform-fee/refund  -- retry a no-show refund
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request

from kangga.api.dependencies import get_fee_service, get_wallet_service
from kangga.api.middleware import limiter
from kangga.api.schemas import HealthResponse, ReconcileResponse, RefundResponse
from kangga.services.platform_fee import PlatformFeeService
from kangga.services.wallet import WalletService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/wallets/{user_id}/reconcile",
    response_model=ReconcileResponse,
    summary="Check a wallet balance against its ledger",
)
@limiter.limit("100/minute")
async def reconcile_wallet(
    request: Request,
    user_id: int,
    service: WalletService = Depends(get_wallet_service),
):
    result = await service.reconcile(user_id)
    return ReconcileResponse(
        user_id=result.user_id,
        balance=result.balance,
        ledger_total=result.ledger_total,
        balanced=result.balanced,
    )


@router.post(
    "/jobs/{job_id}/platform-fee/charge",
    summary="Charge the platform fee for an assigned job (idempotent)",
)
@limiter.limit("30/minute")
async def charge_platform_fee(
    request: Request,
    job_id: int,
    actor_user_id: Optional[int] = None,
    fees: PlatformFeeService = Depends(get_fee_service),
):
    result = await fees.charge_for_job(job_id, actor_user_id=actor_user_id)
    return {"charged": result.charged, "reason": result.reason}


@router.post(
    "/jobs/{job_id}/platform-fee/refund",
    response_model=RefundResponse,
    summary="Refund the platform fee after a no-show (idempotent)",
)
@limiter.limit("30/minute")
async def refund_platform_fee(
    request: Request,
    job_id: int,
    actor_user_id: Optional[int] = None,
    fees: PlatformFeeService = Depends(get_fee_service),
):
    result = await fees.refund_for_job(job_id, actor_user_id)
    return RefundResponse(refunded=result.refunded, reason=result.reason)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
