"""Initial schema: users, assignees, jobs, proposals, wallets, fare configs.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("account_number", sa.String(16), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── assignees (drivers & couriers) ────────────────────────────────
    op.create_table(
        "assignees",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("vehicle_type", sa.String(16), nullable=False),
        sa.Column("vehicle_plate", sa.String(16), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("rating", sa.Float, server_default="5.0"),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("location_accuracy_m", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_assignees_cell", "assignees", ["h3_cell"])
    op.create_index("idx_assignees_available", "assignees", ["role", "is_available"])
    op.create_index("idx_assignees_user", "assignees", ["user_id"])

    # ── jobs (rides & deliveries) ─────────────────────────────────────
    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("requester_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assignee_id", sa.Integer, sa.ForeignKey("assignees.id"), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="requested"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("service_type", sa.String(16), nullable=True),
        sa.Column("vehicle_type", sa.String(16), nullable=True),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=True),
        sa.Column("dropoff_lng", sa.Float, nullable=True),
        sa.Column("base_fare", sa.Float, nullable=False, server_default="0"),
        sa.Column("top_up_fare", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_fare", sa.Float, nullable=False, server_default="0"),
        sa.Column("negotiation_status", sa.String(16), nullable=False, server_default="none"),
        sa.Column("proposed_top_up_fare", sa.Float, nullable=True),
        sa.Column("negotiation_notes", sa.Text, nullable=True),
        sa.Column("platform_fee_charged", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("platform_fee_refunded", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("cancellation_reason", sa.String(48), nullable=True),
        sa.Column("search_radius_m", sa.Integer, nullable=True),
        sa.Column("notified_assignee_ids", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("max_radius_reached", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("passenger_count", sa.Integer, nullable=True, server_default="1"),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("package_description", sa.Text, nullable=True),
        sa.Column("package_size", sa.String(8), nullable=True),
        sa.Column("receiver_name", sa.String(120), nullable=True),
        sa.Column("receiver_phone", sa.String(32), nullable=True),
        sa.Column("cod_amount", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("in_transit_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_jobs_status", "jobs", ["kind", "status"])
    op.create_index("idx_jobs_requester", "jobs", ["requester_id"])
    op.create_index("idx_jobs_assignee", "jobs", ["assignee_id"])

    # ── job_proposals ─────────────────────────────────────────────────
    op.create_table(
        "job_proposals",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("job_id", sa.Integer, sa.ForeignKey("jobs.id"), nullable=False),
        sa.Column("assignee_id", sa.Integer, sa.ForeignKey("assignees.id"), nullable=False),
        sa.Column("assignee_name", sa.String(120), nullable=False),
        sa.Column("vehicle_type", sa.String(16), nullable=False),
        sa.Column("vehicle_plate", sa.String(16), nullable=True),
        sa.Column("rating", sa.Float, server_default="5.0"),
        sa.Column("distance_m", sa.Integer, nullable=False, server_default="0"),
        sa.Column("proposed_top_up_fare", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_fare", sa.Float, nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("proposed_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("job_id", "assignee_id", name="uq_proposal_job_assignee"),
    )
    op.create_index("idx_proposals_job", "job_proposals", ["job_id"])

    # ── wallets ───────────────────────────────────────────────────────
    op.create_table(
        "wallet_accounts",
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("wallet_accounts.user_id"),
            nullable=False,
        ),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("type", sa.String(8), nullable=False),
        sa.Column("reference", sa.String(255), nullable=True),
        sa.Column("related_job_id", sa.Integer, sa.ForeignKey("jobs.id"), nullable=True),
        sa.Column("balance_after", sa.Float, nullable=False),
        sa.Column("created_by", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_wallet_tx_user", "wallet_transactions", ["user_id", "id"])
    op.create_index("idx_wallet_tx_job", "wallet_transactions", ["related_job_id"])

    # ── fare_configs ──────────────────────────────────────────────────
    op.create_table(
        "fare_configs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("service_type", sa.String(16), nullable=False),
        sa.Column("region_code", sa.String(16), nullable=False, server_default="DEFAULT"),
        sa.Column("base_fare", sa.Float, nullable=False),
        sa.Column("per_km", sa.Float, nullable=False, server_default="0"),
        sa.Column("per_min", sa.Float, nullable=False, server_default="0"),
        sa.Column("min_fare", sa.Float, nullable=False, server_default="0"),
        sa.Column("platform_fee_type", sa.String(4), nullable=False, server_default="FLAT"),
        sa.Column("platform_fee_value", sa.Float, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("service_type", "region_code", name="uq_fare_service_region"),
    )


def downgrade() -> None:
    op.drop_table("fare_configs")
    op.drop_table("wallet_transactions")
    op.drop_table("wallet_accounts")
    op.drop_table("job_proposals")
    op.drop_table("jobs")
    op.drop_table("assignees")
    op.drop_table("users")
