"""Initial schema with PostGIS extension, riders and orders.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from geoalchemy2 import Geometry


revision = "001"
down_revision = None
branch_labels = None
depends_on = None

ORDER_STATUSES = (
    "PENDING",
    "ASSIGNED",
    "PICKED_UP",
    "CONFIRMED",
    "SHOPPING",
    "PURCHASED",
    "IN_TRANSIT",
    "DELIVERED",
    "CANCELLED",
)


def upgrade() -> None:
    # Enable PostGIS extension
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    # ── riders ────────────────────────────────────────────────────────
    op.create_table(
        "riders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column(
            "status",
            sa.Enum("ONLINE", "OFFLINE", "BUSY", name="riderstatus"),
            default="OFFLINE",
            nullable=False,
        ),
        sa.Column(
            "location",
            Geometry("POINT", srid=4326, spatial_index=False),
            nullable=True,
        ),
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lng", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("current_points", sa.Integer, default=0, nullable=False),
        sa.Column("lifetime_points", sa.Integer, default=0, nullable=False),
        sa.Column(
            "tier",
            sa.Enum("BRONZE", "SILVER", "GOLD", "PLATINUM", name="tier"),
            default="BRONZE",
            nullable=False,
        ),
        sa.Column("bonus_history", sa.JSON, nullable=False),
        sa.Column("achievements", sa.JSON, nullable=False),
        sa.Column("version", sa.Integer, default=0, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_riders_location", "riders", ["location"], postgresql_using="gist"
    )
    op.create_index("idx_riders_status", "riders", ["status"])
    op.create_index("idx_riders_cell", "riders", ["h3_cell"])

    # ── orders ────────────────────────────────────────────────────────
    op.create_table(
        "orders",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, nullable=False),
        sa.Column(
            "type",
            sa.Enum("DELIVERY", "SHOPPING", "ERRAND", name="ordertype"),
            default="DELIVERY",
            nullable=False,
        ),
        sa.Column(
            "pickup_point",
            Geometry("POINT", srid=4326, spatial_index=False),
            nullable=True,
        ),
        sa.Column(
            "delivery_point",
            Geometry("POINT", srid=4326, spatial_index=False),
            nullable=False,
        ),
        sa.Column("pickup_lat", sa.Float, nullable=True),
        sa.Column("pickup_lng", sa.Float, nullable=True),
        sa.Column("delivery_lat", sa.Float, nullable=False),
        sa.Column("delivery_lng", sa.Float, nullable=False),
        sa.Column("package", sa.JSON, nullable=False),
        sa.Column("fee_breakdown", sa.JSON, nullable=False),
        sa.Column("timestamps", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*ORDER_STATUSES, name="orderstatus"),
            default="PENDING",
            nullable=False,
        ),
        sa.Column(
            "payment_status",
            sa.Enum(
                "PENDING_PAYMENT", "PAID", "FAILED", "REFUNDED", name="paymentstatus"
            ),
            default="PENDING_PAYMENT",
            nullable=False,
        ),
        sa.Column(
            "processing_status",
            sa.Enum(
                "PENDING_CONFIRMATION",
                "PROCESSING",
                "READY_FOR_PICKUP",
                "COMPLETED",
                "CANCELLED",
                name="processingstatus",
            ),
            default="PENDING_CONFIRMATION",
            nullable=False,
        ),
        sa.Column(
            "rider_id", sa.Integer, sa.ForeignKey("riders.id"), nullable=True
        ),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("version", sa.Integer, default=0, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_orders_pickup", "orders", ["pickup_point"], postgresql_using="gist"
    )
    op.create_index(
        "idx_orders_delivery", "orders", ["delivery_point"], postgresql_using="gist"
    )
    op.create_index("idx_orders_status", "orders", ["status"])
    op.create_index("idx_orders_rider", "orders", ["rider_id"])
    op.create_index(
        "idx_orders_cleanup", "orders", ["created_at", "payment_status"]
    )


def downgrade() -> None:
    op.drop_table("orders")
    op.drop_table("riders")
    for enum_name in (
        "processingstatus",
        "paymentstatus",
        "orderstatus",
        "ordertype",
        "tier",
        "riderstatus",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
