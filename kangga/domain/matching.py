"""
Expanding-Radius ("Beaming") Candidate Selection
================================================

1. **Spatial Binning**   -- every assignee's last-known position is
   stored with its H3 cell (resolution 8, ~0.74 km²).
2. **Grid-disk prefilter** -- for a search radius *r* around the pickup,
   only assignees whose cell lies in the k-ring that covers *r* are
   loaded from the database.
3. **Exact ranking**     -- survivors are measured with Haversine (metres),
   filtered to ``distance <= r``, sorted ascending and capped per wave.

Complexity
----------
Let A = assignees in the grid disk.

* Prefilter:  O(k²) cells, one indexed ``IN`` query
* Ranking:    O(A log A)

Assignees without a last-known location have no cell and never appear
in a wave.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Optional

import h3

from .distance import haversine_m
from .entities import Candidate, Proposal
from .pricing import round_money


def assignee_h3_cell(lat: float, lng: float, resolution: int = 8) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def grid_disk_k(radius_m: float, resolution: int = 8) -> int:
    """
    Number of rings needed so the disk fully covers *radius_m*.

    Adjacent hexagon centres are ``sqrt(3) x edge`` apart; one extra ring
    absorbs the offset of the pickup inside its own cell.
    """
    edge_m = h3.average_hexagon_edge_length(resolution, unit="km") * 1000.0
    return math.ceil(radius_m / (math.sqrt(3) * edge_m)) + 1


def cells_within(
    lat: float, lng: float, radius_m: float, resolution: int = 8
) -> list[str]:
    center = assignee_h3_cell(lat, lng, resolution)
    return list(h3.grid_disk(center, grid_disk_k(radius_m, resolution)))


def rank_candidates(
    pickup_lat: float,
    pickup_lng: float,
    assignees: Iterable,
    radius_m: float,
    limit: int,
    exclude: Iterable[int] = (),
) -> list[Candidate]:
    """
    Pick at most *limit* assignees within *radius_m*, nearest first.

    *assignees* are any objects exposing ``id``, ``user_id``,
    ``vehicle_type``, ``rating``, ``current_lat`` and ``current_lng``.
    """
    excluded = set(exclude)
    ranked: list[Candidate] = []
    for a in assignees:
        if a.id in excluded:
            continue
        if a.current_lat is None or a.current_lng is None:
            continue
        distance = haversine_m(pickup_lat, pickup_lng, a.current_lat, a.current_lng)
        if distance > radius_m:
            continue
        ranked.append(
            Candidate(
                assignee_id=a.id,
                user_id=a.user_id,
                vehicle_type=getattr(a.vehicle_type, "value", a.vehicle_type),
                rating=a.rating if a.rating is not None else 5.0,
                distance_m=distance,
            )
        )
    ranked.sort(key=lambda c: (c.distance_m, c.assignee_id))
    return ranked[:limit]


def build_proposal(
    *,
    assignee,
    assignee_name: Optional[str],
    pickup_lat: Optional[float],
    pickup_lng: Optional[float],
    base_fare: Optional[float],
    top_up_fare: float,
    now: datetime,
    notes: Optional[str] = None,
) -> Proposal:
    """
    Snapshot an assignee's bid on a job.

    Distance is 0 when either end has no coordinates, matching what the
    requester's screen shows for a bidder with location sharing off.
    """
    distance = 0.0
    if (
        assignee.current_lat is not None
        and assignee.current_lng is not None
        and pickup_lat is not None
        and pickup_lng is not None
    ):
        distance = haversine_m(
            pickup_lat, pickup_lng, assignee.current_lat, assignee.current_lng
        )

    return Proposal(
        assignee_id=assignee.id,
        assignee_name=assignee_name or "Driver",
        vehicle_type=getattr(assignee.vehicle_type, "value", assignee.vehicle_type),
        vehicle_plate=assignee.vehicle_plate or "",
        rating=float(assignee.rating if assignee.rating is not None else 5.0),
        distance_m=round(distance),
        proposed_top_up_fare=round_money(top_up_fare),
        total_fare=round_money((base_fare or 0.0) + top_up_fare),
        proposed_at=now,
        notes=notes,
    )
