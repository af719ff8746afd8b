"""
Fare Estimator  (Strategy Pattern)
==================================

Formula
-------
Subtotal = max(Base_Fare + Distance x Per_KM + Minutes x Per_Min, Min_Fare)

* **Platform fee** is a strategy chosen by the fare config: a flat amount
  or a percentage of the subtotal.
* The rider pays the subtotal; the driver keeps ``subtotal - platform_fee``.
* Every output figure is rounded half-up to 2 decimal places.

Complexity: O(1) per estimate.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .enums import FeeType
from .exceptions import InvalidInput

_CENT = Decimal("0.01")


def round_money(value: float) -> float:
    """Round half-up to 2 dp (``round()`` would use banker's rounding)."""
    return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))


# ── Value objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FareConfig:
    base_fare: float
    per_km: float
    per_min: float
    min_fare: float
    platform_fee_type: FeeType = FeeType.FLAT
    platform_fee_value: float = 0.0
    service_type: str = "CAR"
    region_code: str = "DEFAULT"


@dataclass(frozen=True)
class FareEstimate:
    subtotal: float
    platform_fee: float
    total: float
    driver_take: float


# ── Strategy hierarchy ────────────────────────────────────────────────


class PlatformFeeStrategy(ABC):
    @abstractmethod
    def calculate(self, subtotal: float) -> float: ...


class FlatFee(PlatformFeeStrategy):
    def __init__(self, amount: float):
        self.amount = amount

    def calculate(self, subtotal: float) -> float:
        return self.amount


class PercentageFee(PlatformFeeStrategy):
    def __init__(self, percent: float):
        self.percent = percent

    def calculate(self, subtotal: float) -> float:
        return round_money(subtotal * (self.percent / 100))


def fee_strategy_for(config: FareConfig) -> PlatformFeeStrategy:
    if FeeType(config.platform_fee_type) == FeeType.FLAT:
        return FlatFee(config.platform_fee_value)
    return PercentageFee(config.platform_fee_value)


# ── Estimator ─────────────────────────────────────────────────────────


def estimate_fare(
    config: FareConfig, distance_km: float, time_min: float = 0.0
) -> FareEstimate:
    """Price a trip of *distance_km* / *time_min* under *config*."""
    if distance_km < 0:
        raise InvalidInput("Distance must be non-negative")
    if time_min < 0:
        raise InvalidInput("Time must be non-negative")

    subtotal = max(
        config.base_fare + config.per_km * distance_km + config.per_min * time_min,
        config.min_fare,
    )
    platform_fee = fee_strategy_for(config).calculate(subtotal)

    return FareEstimate(
        subtotal=round_money(subtotal),
        platform_fee=round_money(platform_fee),
        total=round_money(subtotal),
        driver_take=round_money(subtotal - platform_fee),
    )
