"""
Domain value objects shared by the matching, fee and wallet services.

These are plain dataclasses: persistence lives in
``kangga.infrastructure.models`` and never leaks into the domain layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class LocationSample:
    """One reading from an assignee's device."""

    latitude: float
    longitude: float
    accuracy_m: Optional[float] = None
    recorded_at: Optional[datetime] = None


@dataclass(frozen=True)
class BeamingConfig:
    initial_radius_m: int = 200
    max_radius_m: int = 10_000
    radius_increment_m: int = 200
    timeout_per_radius_s: float = 45.0
    max_candidates_per_wave: int = 3
    h3_resolution: int = 8


@dataclass(frozen=True)
class Candidate:
    """An available assignee ranked for one beaming wave."""

    assignee_id: int
    user_id: int
    vehicle_type: str
    rating: float
    distance_m: float


@dataclass(frozen=True)
class Proposal:
    assignee_id: int
    assignee_name: str
    vehicle_type: str
    vehicle_plate: str
    rating: float
    distance_m: int
    proposed_top_up_fare: float
    total_fare: float
    proposed_at: datetime
    notes: Optional[str] = None


@dataclass(frozen=True)
class FeeResult:
    """Outcome of a platform-fee charge attempt."""

    charged: bool
    reason: str


@dataclass(frozen=True)
class RefundResult:
    refunded: bool
    reason: str


@dataclass(frozen=True)
class BeamingResult:
    success: bool
    message: str
    final_radius_m: Optional[int] = None
    notified: tuple[int, ...] = ()
