"""
Distance and ETA calculation using the Haversine formula.

Assumption
----------
We use great-circle (Haversine) distance instead of a real routing engine
to keep matching self-contained.  ETA assumes a constant average city
speed, so it is a rough figure for display, never for billing.

Complexity: O(1) per call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6_371.0


def haversine_km(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Return the great-circle distance in **km** between two points."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)

    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def haversine_m(
    lat1: float, lng1: float, lat2: float, lng2: float
) -> float:
    """Same as :func:`haversine_km` but in **metres** (used for search radii)."""
    return haversine_km(lat1, lng1, lat2, lng2) * 1000.0


@dataclass(frozen=True)
class EtaResult:
    distance_km: float
    duration_minutes: int
    eta_text: str


def calculate_eta(distance_km: float, average_speed_kmh: float = 30.0) -> EtaResult:
    """Whole-minute ETA (rounded up) for *distance_km* at a constant speed."""
    duration_minutes = math.ceil(distance_km * 60 / average_speed_kmh)

    if duration_minutes < 1:
        eta_text = "Less than a minute"
    elif duration_minutes == 1:
        eta_text = "1 minute"
    elif duration_minutes < 60:
        eta_text = f"{duration_minutes} minutes"
    else:
        hours, mins = divmod(duration_minutes, 60)
        if mins:
            eta_text = f"{hours}h {mins}m"
        else:
            eta_text = f"{hours} hour{'s' if hours > 1 else ''}"

    return EtaResult(
        distance_km=round(distance_km, 1),
        duration_minutes=duration_minutes,
        eta_text=eta_text,
    )


def calculate_eta_between(
    from_lat: float,
    from_lng: float,
    to_lat: float,
    to_lng: float,
    average_speed_kmh: float = 30.0,
) -> EtaResult:
    distance = haversine_km(from_lat, from_lng, to_lat, to_lng)
    return calculate_eta(distance, average_speed_kmh)
