"""FastAPI dependency injection helpers."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kangga.config import settings
from kangga.infrastructure.database import async_session_factory
from kangga.infrastructure.notifications import Notifier
from kangga.infrastructure.realtime import RealtimeBroker, get_redis
from kangga.services.jobs import JobService
from kangga.services.matching import MatchingService
from kangga.services.negotiation import NegotiationService
from kangga.services.platform_fee import PlatformFeeService
from kangga.services.tracking import TrackingService
from kangga.services.wallet import WalletService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_notifier() -> Notifier:
    return Notifier(await get_redis())


async def get_broker() -> RealtimeBroker:
    return RealtimeBroker(await get_redis())


def get_fee_service(db: AsyncSession = Depends(get_db)) -> PlatformFeeService:
    return PlatformFeeService(db, fee=settings.platform_fee)


def get_job_service(
    db: AsyncSession = Depends(get_db),
    fees: PlatformFeeService = Depends(get_fee_service),
    notifier: Notifier = Depends(get_notifier),
) -> JobService:
    return JobService(db, fees=fees, notifier=notifier)


def get_matching_service(
    db: AsyncSession = Depends(get_db),
    fees: PlatformFeeService = Depends(get_fee_service),
    notifier: Notifier = Depends(get_notifier),
) -> MatchingService:
    return MatchingService(db, fees=fees, notifier=notifier)


def get_negotiation_service(
    db: AsyncSession = Depends(get_db),
    fees: PlatformFeeService = Depends(get_fee_service),
    notifier: Notifier = Depends(get_notifier),
) -> NegotiationService:
    return NegotiationService(db, fees=fees, notifier=notifier)


def get_wallet_service(db: AsyncSession = Depends(get_db)) -> WalletService:
    return WalletService(db)


def get_tracking_service(
    db: AsyncSession = Depends(get_db),
    broker: RealtimeBroker = Depends(get_broker),
) -> TrackingService:
    return TrackingService(db, broker=broker, h3_resolution=settings.h3_resolution)
