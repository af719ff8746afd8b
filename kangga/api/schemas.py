"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from kangga.domain.enums import (
    AssigneeRole,
    CancellationReason,
    PackageSize,
    ServiceType,
    TransactionType,
    VehicleType,
)


# ── Requests ──────────────────────────────────────────────────────────


class _JobCreateBase(BaseModel):
    requester_id: int
    pickup_address: str = Field(..., min_length=1, max_length=255)
    dropoff_address: str = Field(..., min_length=1, max_length=255)
    pickup_lat: Optional[float] = Field(None, ge=-90, le=90)
    pickup_lng: Optional[float] = Field(None, ge=-180, le=180)
    dropoff_lat: Optional[float] = Field(None, ge=-90, le=90)
    dropoff_lng: Optional[float] = Field(None, ge=-180, le=180)
    vehicle_type: Optional[VehicleType] = None
    service_type: Optional[ServiceType] = None
    region_code: str = "DEFAULT"
    base_fare: Optional[float] = Field(
        None, description="Omit to quote from the fare configuration."
    )
    start_search: bool = Field(
        True, description="Begin beaming to nearby assignees right away."
    )


class RideCreateRequest(_JobCreateBase):
    passenger_count: int = Field(1, ge=1, le=6)
    notes: Optional[str] = Field(None, max_length=500)


class DeliveryCreateRequest(_JobCreateBase):
    package_description: str = Field(..., min_length=1, max_length=500)
    package_size: PackageSize = PackageSize.SMALL
    receiver_name: str = Field(..., min_length=1, max_length=120)
    receiver_phone: str = Field(..., min_length=1, max_length=32)
    cod_amount: Optional[float] = Field(None, ge=0)


class AcceptRequest(BaseModel):
    assignee_id: int
    actor_user_id: Optional[int] = None


class StatusUpdateRequest(BaseModel):
    status: str
    actor_user_id: Optional[int] = None


class CancelRequest(BaseModel):
    reason: Optional[CancellationReason] = None
    actor_user_id: Optional[int] = None


class ProposalCreateRequest(BaseModel):
    assignee_id: int
    top_up_fare: float = 0.0
    notes: Optional[str] = Field(None, max_length=500)


class CounterOfferRequest(BaseModel):
    assignee_id: int
    proposed_top_up_fare: float
    notes: Optional[str] = Field(None, max_length=500)


class NegotiationDecisionRequest(BaseModel):
    actor_user_id: Optional[int] = None


class WalletOpenRequest(BaseModel):
    user_id: int
    role: AssigneeRole


class WalletTransactionRequest(BaseModel):
    amount: float
    type: TransactionType
    reference: Optional[str] = Field(None, max_length=255)
    job_id: Optional[int] = None
    actor_user_id: Optional[int] = None


class FareEstimateRequest(BaseModel):
    service_type: ServiceType
    region_code: str = "DEFAULT"
    distance_km: float
    time_min: float = 0.0


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy_m: Optional[float] = Field(None, ge=0)
    recorded_at: Optional[datetime] = None


# ── Responses ─────────────────────────────────────────────────────────


class JobResponse(BaseModel):
    id: int
    kind: str
    requester_id: int
    assignee_id: Optional[int] = None
    status: str
    version: int
    service_type: Optional[str] = None
    vehicle_type: Optional[str] = None
    pickup_address: str
    dropoff_address: str
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    base_fare: float
    top_up_fare: float
    total_fare: float
    negotiation_status: str
    proposed_top_up_fare: Optional[float] = None
    platform_fee_charged: bool
    platform_fee_refunded: bool
    cancellation_reason: Optional[str] = None
    search_radius_m: Optional[int] = None
    max_radius_reached: bool
    passenger_count: Optional[int] = None
    notes: Optional[str] = None
    package_description: Optional[str] = None
    package_size: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_phone: Optional[str] = None
    cod_amount: Optional[float] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    in_transit_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RefundResponse(BaseModel):
    refunded: bool
    reason: str

    model_config = {"from_attributes": True}


class CancelResponse(BaseModel):
    job: JobResponse
    refund: Optional[RefundResponse] = None


class ProposalResponse(BaseModel):
    id: int
    job_id: int
    assignee_id: int
    assignee_name: str
    vehicle_type: str
    vehicle_plate: Optional[str] = None
    rating: Optional[float] = None
    distance_m: int
    proposed_top_up_fare: float
    total_fare: float
    notes: Optional[str] = None
    proposed_at: datetime

    model_config = {"from_attributes": True}


class SearchResponse(BaseModel):
    job_id: int
    scheduled: bool


class WalletResponse(BaseModel):
    user_id: int
    role: str
    balance: float
    account_number: str


class TransactionResponse(BaseModel):
    id: int
    user_id: int
    amount: float
    type: str
    reference: Optional[str] = None
    related_job_id: Optional[int] = None
    balance_after: float
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    user_id: int
    balance: float


class ReconcileResponse(BaseModel):
    user_id: int
    balance: float
    ledger_total: float
    balanced: bool


class EtaResponse(BaseModel):
    distance_km: float
    duration_minutes: int
    eta_text: str


class FareEstimateResponse(BaseModel):
    service_type: str
    region_code: str
    subtotal: float
    platform_fee: float
    total: float
    driver_take: float
    eta: EtaResponse


class LocationResponse(BaseModel):
    assignee_id: int
    lat: float
    lng: float
    accuracy_m: Optional[float] = None
    h3_cell: Optional[str] = None
    updated_at: Optional[datetime] = None


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
