"""
Fare endpoints
==============

GET  /api/v1/fares/{service_type}   -- active fare config (region falls back to DEFAULT)
POST /api/v1/fares/estimate         -- price and ETA for a trip
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kangga.api.dependencies import get_db
from kangga.api.middleware import limiter
from kangga.api.schemas import EtaResponse, FareEstimateRequest, FareEstimateResponse
from kangga.config import settings
from kangga.domain.distance import calculate_eta
from kangga.domain.enums import FeeType, ServiceType
from kangga.domain.exceptions import FareConfigNotFound
from kangga.domain.pricing import FareConfig, estimate_fare
from kangga.infrastructure.repositories import FareConfigRepository

router = APIRouter(prefix="/fares", tags=["fares"])


async def _load_config(
    db: AsyncSession, service_type: ServiceType, region_code: str
) -> FareConfig:
    row = await FareConfigRepository(db).get(service_type.value, region_code)
    if row is None:
        raise FareConfigNotFound(f"No fare configuration for {service_type.value}")
    return FareConfig(
        base_fare=row.base_fare,
        per_km=row.per_km,
        per_min=row.per_min,
        min_fare=row.min_fare,
        platform_fee_type=FeeType(row.platform_fee_type),
        platform_fee_value=row.platform_fee_value,
        service_type=row.service_type,
        region_code=row.region_code,
    )


@router.post(
    "/estimate", response_model=FareEstimateResponse, summary="Estimate a fare"
)
@limiter.limit("100/minute")
async def estimate(
    request: Request,
    body: FareEstimateRequest,
    db: AsyncSession = Depends(get_db),
):
    config = await _load_config(db, body.service_type, body.region_code)
    fare = estimate_fare(config, body.distance_km, body.time_min)
    eta = calculate_eta(body.distance_km, settings.average_speed_kmh)
    return FareEstimateResponse(
        service_type=config.service_type,
        region_code=config.region_code,
        subtotal=fare.subtotal,
        platform_fee=fare.platform_fee,
        total=fare.total,
        driver_take=fare.driver_take,
        eta=EtaResponse(
            distance_km=eta.distance_km,
            duration_minutes=eta.duration_minutes,
            eta_text=eta.eta_text,
        ),
    )


@router.get("/{service_type}", summary="Get the fare configuration")
@limiter.limit("100/minute")
async def get_fare_config(
    request: Request,
    service_type: ServiceType,
    region_code: str = "DEFAULT",
    db: AsyncSession = Depends(get_db),
):
    config = await _load_config(db, service_type, region_code)
    return {
        "service_type": config.service_type,
        "region_code": config.region_code,
        "base_fare": config.base_fare,
        "per_km": config.per_km,
        "per_min": config.per_min,
        "min_fare": config.min_fare,
        "platform_fee_type": config.platform_fee_type.value,
        "platform_fee_value": config.platform_fee_value,
    }
