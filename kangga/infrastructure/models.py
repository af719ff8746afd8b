"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``               -- passengers, senders, drivers, couriers
* ``assignees``           -- driver / courier profiles with last-known location
* ``jobs``                -- rides and deliveries (``kind`` column)
* ``job_proposals``       -- open bids, one row per (job, assignee)
* ``wallet_accounts``     -- one balance per driver / courier
* ``wallet_transactions`` -- append-only ledger rows
* ``fare_configs``        -- pricing per service type and region

Status / kind / type columns hold the enum *values* as plain strings so
the same schema works on PostgreSQL and on SQLite in tests.

Indexes
-------
* **B-Tree** on ``assignees.h3_cell`` for the beaming grid-disk prefilter.
* **B-Tree** on ``jobs.status``, ``requester_id``, ``assignee_id`` for the
  listings and the conditional updates.
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)

from .database import Base
from kangga.domain.enums import JobStatus, NegotiationStatus


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    full_name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(String(16), nullable=False)
    account_number = Column(String(16), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AssigneeModel(Base):
    __tablename__ = "assignees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String(16), nullable=False)  # driver | courier
    vehicle_type = Column(String(16), nullable=False)
    vehicle_plate = Column(String(16), nullable=True)
    vehicle_model = Column(String(64), nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    rating = Column(Float, default=5.0)

    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    location_accuracy_m = Column(Float, nullable=True)
    location_updated_at = Column(DateTime(timezone=True), nullable=True)
    h3_cell = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_assignees_cell", "h3_cell"),
        Index("idx_assignees_available", "role", "is_available"),
        Index("idx_assignees_user", "user_id"),
    )


class JobModel(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(16), nullable=False)  # ride | delivery
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("assignees.id"), nullable=True)
    status = Column(String(16), default=JobStatus.REQUESTED.value, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    service_type = Column(String(16), nullable=True)
    vehicle_type = Column(String(16), nullable=True)

    pickup_address = Column(String(255), nullable=False)
    dropoff_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    # Fares
    base_fare = Column(Float, default=0.0, nullable=False)
    top_up_fare = Column(Float, default=0.0, nullable=False)
    total_fare = Column(Float, default=0.0, nullable=False)

    # Negotiation
    negotiation_status = Column(
        String(16), default=NegotiationStatus.NONE.value, nullable=False
    )
    proposed_top_up_fare = Column(Float, nullable=True)
    negotiation_notes = Column(Text, nullable=True)

    # Platform fee ledger flags (false -> true at most once each)
    platform_fee_charged = Column(Boolean, default=False, nullable=False)
    platform_fee_refunded = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String(48), nullable=True)

    # Beaming
    search_radius_m = Column(Integer, nullable=True)
    notified_assignee_ids = Column(JSON, default=lambda: [], nullable=False)
    max_radius_reached = Column(Boolean, default=False, nullable=False)

    # Ride details
    passenger_count = Column(Integer, default=1, nullable=True)
    notes = Column(Text, nullable=True)

    # Delivery details
    package_description = Column(Text, nullable=True)
    package_size = Column(String(8), nullable=True)
    receiver_name = Column(String(120), nullable=True)
    receiver_phone = Column(String(32), nullable=True)
    cod_amount = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    in_transit_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_jobs_status", "kind", "status"),
        Index("idx_jobs_requester", "requester_id"),
        Index("idx_jobs_assignee", "assignee_id"),
    )


class ProposalModel(Base):
    __tablename__ = "job_proposals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("assignees.id"), nullable=False)
    assignee_name = Column(String(120), nullable=False)
    vehicle_type = Column(String(16), nullable=False)
    vehicle_plate = Column(String(16), nullable=True)
    rating = Column(Float, default=5.0)
    distance_m = Column(Integer, default=0, nullable=False)
    proposed_top_up_fare = Column(Float, default=0.0, nullable=False)
    total_fare = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    proposed_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("job_id", "assignee_id", name="uq_proposal_job_assignee"),
        Index("idx_proposals_job", "job_id"),
    )


class WalletAccountModel(Base):
    __tablename__ = "wallet_accounts"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    role = Column(String(16), nullable=False)
    balance = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WalletTransactionModel(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("wallet_accounts.user_id"), nullable=False)
    amount = Column(Float, nullable=False)  # signed
    type = Column(String(8), nullable=False)  # load | deduct | adjust
    reference = Column(String(255), nullable=True)
    related_job_id = Column(Integer, ForeignKey("jobs.id"), nullable=True)
    balance_after = Column(Float, nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_wallet_tx_user", "user_id", "id"),
        Index("idx_wallet_tx_job", "related_job_id"),
    )


class FareConfigModel(Base):
    __tablename__ = "fare_configs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    service_type = Column(String(16), nullable=False)
    region_code = Column(String(16), default="DEFAULT", nullable=False)
    base_fare = Column(Float, nullable=False)
    per_km = Column(Float, default=0.0, nullable=False)
    per_min = Column(Float, default=0.0, nullable=False)
    min_fare = Column(Float, default=0.0, nullable=False)
    platform_fee_type = Column(String(4), default="FLAT", nullable=False)
    platform_fee_value = Column(Float, default=0.0, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("service_type", "region_code", name="uq_fare_service_region"),
    )
