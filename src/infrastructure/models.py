"""
SQLAlchemy ORM models  (maps to PostgreSQL + PostGIS).

Tables
------
* ``riders``  -- couriers with status, last known position and incentives
* ``orders``  -- delivery / shopping / errand orders with fee breakdown

Indexes
-------
* **GIST** on geometry columns (pickup_point, delivery_point, location).
* **B-Tree** on ``status``, ``h3_cell`` (rider search) and the composite
  ``(created_at, payment_status)`` used by the cleanup sweep.

Both tables carry an integer ``version`` that repositories bump on every
write; an UPDATE with a stale version matches no row.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from geoalchemy2 import Geometry

from .database import Base
from src.domain.enums import (
    OrderStatus,
    OrderType,
    PaymentStatus,
    ProcessingStatus,
    RiderStatus,
    Tier,
)


class RiderModel(Base):
    __tablename__ = "riders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    status = Column(Enum(RiderStatus), default=RiderStatus.OFFLINE, nullable=False)

    # NULL location means "unknown", never the origin
    location = Column(
        Geometry("POINT", srid=4326, spatial_index=False), nullable=True
    )
    lat = Column(Float, nullable=True)
    lng = Column(Float, nullable=True)
    h3_cell = Column(String(20), nullable=True)

    current_points = Column(Integer, default=0, nullable=False)
    lifetime_points = Column(Integer, default=0, nullable=False)
    tier = Column(Enum(Tier), default=Tier.BRONZE, nullable=False)
    bonus_history = Column(JSON, default=list, nullable=False)
    achievements = Column(JSON, default=list, nullable=False)

    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_riders_location", "location", postgresql_using="gist"),
        Index("idx_riders_status", "status"),
        Index("idx_riders_cell", "h3_cell"),
    )


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    type = Column(Enum(OrderType), default=OrderType.DELIVERY, nullable=False)

    # Errands have no pickup: distance is measured from the hub
    pickup_point = Column(
        Geometry("POINT", srid=4326, spatial_index=False), nullable=True
    )
    delivery_point = Column(
        Geometry("POINT", srid=4326, spatial_index=False), nullable=False
    )

    # Also stored as plain floats for fast reads (avoids ST_X / ST_Y)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    delivery_lat = Column(Float, nullable=False)
    delivery_lng = Column(Float, nullable=False)

    package = Column(JSON, nullable=False)
    fee_breakdown = Column(JSON, nullable=False)
    timestamps = Column(JSON, nullable=False)

    status = Column(Enum(OrderStatus), default=OrderStatus.PENDING, nullable=False)
    payment_status = Column(
        Enum(PaymentStatus), default=PaymentStatus.PENDING_PAYMENT, nullable=False
    )
    processing_status = Column(
        Enum(ProcessingStatus),
        default=ProcessingStatus.PENDING_CONFIRMATION,
        nullable=False,
    )
    rider_id = Column(Integer, ForeignKey("riders.id"), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    rating = Column(Integer, nullable=True)

    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_orders_pickup", "pickup_point", postgresql_using="gist"),
        Index("idx_orders_delivery", "delivery_point", postgresql_using="gist"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_rider", "rider_id"),
        Index("idx_orders_cleanup", "created_at", "payment_status"),
    )
