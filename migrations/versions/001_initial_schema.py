"""Initial schema: riders, drivers, rides, pricing configuration, promotions.

Revision ID: 001
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ACTIVE_RIDE_PREDICATE = "status IN ('requested', 'accepted', 'ongoing')"


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade() -> None:
    # ── riders ────────────────────────────────────────────────────────
    op.create_table(
        "riders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("vehicle_type", sa.String(20), nullable=True),
        sa.Column(
            "status",
            _enum("driver_status", "active", "inactive", "suspended", "blocked"),
            nullable=False,
        ),
        sa.Column("rides_completed", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_drivers_status", "drivers", ["status"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("rider_id", sa.String(36), sa.ForeignKey("riders.id"), nullable=False),
        sa.Column("driver_id", sa.String(36), sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("pickup", sa.JSON, nullable=False),
        sa.Column("drops", sa.JSON, nullable=False),
        sa.Column("vehicle_type", sa.String(20), nullable=False),
        sa.Column(
            "status",
            _enum(
                "ride_status",
                "requested",
                "accepted",
                "rejected",
                "ongoing",
                "completed",
                "cancelled",
            ),
            nullable=False,
        ),
        sa.Column("pin", sa.String(6), nullable=False),
        sa.Column("is_pin_verified", sa.Boolean, nullable=False),
        sa.Column("fare", sa.Numeric(12, 2), nullable=True),
        sa.Column("distance_km", sa.Numeric(10, 3), nullable=True),
        sa.Column("surge_multiplier", sa.Numeric(6, 2), nullable=True),
        sa.Column("penalty_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("penalty_carried", sa.Boolean, nullable=False),
        sa.Column("promo_code", sa.String(40), nullable=True),
        sa.Column("promo_application", sa.JSON(none_as_null=True), nullable=True),
        sa.Column("payment_mode", _enum("payment_mode", "cash", "online"), nullable=True),
        sa.Column(
            "cancelled_by",
            _enum("cancel_actor", "rider", "driver", "admin"),
            nullable=True,
        ),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("driver_reached_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    # One non-terminal ride per rider
    op.create_index(
        "uq_rides_rider_active",
        "rides",
        ["rider_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_RIDE_PREDICATE),
        sqlite_where=sa.text(ACTIVE_RIDE_PREDICATE),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])

    # ── fare_slabs ────────────────────────────────────────────────────
    op.create_table(
        "fare_slabs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("vehicle_type", sa.String(20), nullable=False),
        sa.Column("distance_from", sa.Numeric(10, 3), nullable=False),
        sa.Column("distance_to", sa.Numeric(10, 3), nullable=False),
        sa.Column("base_fare", sa.Numeric(10, 2), nullable=False),
        sa.Column("per_unit_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
    )
    op.create_index(
        "idx_fare_slabs_vehicle", "fare_slabs", ["vehicle_type", "is_active"]
    )

    # ── surge_rules ───────────────────────────────────────────────────
    op.create_table(
        "surge_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("days", sa.JSON, nullable=False),
        sa.Column("start_time", sa.String(5), nullable=False),
        sa.Column("end_time", sa.String(5), nullable=False),
        sa.Column("distance_from", sa.Numeric(10, 3), nullable=False),
        sa.Column("distance_to", sa.Numeric(10, 3), nullable=False),
        sa.Column("multiplier", sa.Numeric(6, 2), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
    )
    op.create_index("idx_surge_rules_active", "surge_rules", ["is_active"])

    # ── promotions ────────────────────────────────────────────────────
    op.create_table(
        "promotions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("code", sa.String(40), unique=True, nullable=False),
        sa.Column("kind", _enum("promotion_kind", "flat", "percentage"), nullable=False),
        sa.Column("value", sa.Numeric(10, 2), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("valid_to", sa.DateTime(timezone=True), nullable=False),
        sa.Column("min_ride_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("usage_limit_per_user", sa.Integer, nullable=False),
        sa.Column("global_usage_limit", sa.Integer, nullable=True),
        sa.Column("max_discount_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("used_by", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("idx_promotions_active", "promotions", ["is_active"])


def downgrade() -> None:
    op.drop_table("promotions")
    op.drop_table("surge_rules")
    op.drop_table("fare_slabs")
    op.drop_table("rides")
    op.drop_table("drivers")
    op.drop_table("riders")
