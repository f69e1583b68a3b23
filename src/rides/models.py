"""Ride database models."""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import JSONB

from src.core.database import Base
from src.users.models import BigIntegerPK


class Ride(Base):
    """A recorded ride.

    Only distance, average speed, moving time, elevation gain, activity date
    and coins feed the statistics engine; the rest is stored for display.
    """

    __tablename__ = "rides"
    __table_args__ = (Index("ix_rides_user_activity_date", "user_id", "activity_date"),)

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)

    user_id = Column(
        BigIntegerPK,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Metadata
    ride_name = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    recorded_from = Column(String, nullable=False, default="Mobile")  # ESP32, Mobile, Laptop

    # Metrics
    distance = Column(Float, nullable=False)  # km
    average_speed = Column(Float, nullable=False)  # km/h
    max_speed = Column(Float, nullable=False, default=0.0)  # km/h
    moving_time = Column(Integer, nullable=False)  # seconds
    elapsed_time = Column(Integer, nullable=False)  # seconds
    elevation_gained = Column(Float, nullable=False, default=0.0)  # meters

    activity_date = Column(DateTime(timezone=True), nullable=False)  # UTC

    # Derived from distance and average speed at creation time
    coins_earned = Column(Integer, nullable=False, default=0)

    # [{latitude, longitude, altitude, timestamp}, ...]
    gps_path = Column(JSONB, nullable=True)

    is_flagged = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<Ride(id={self.id}, user_id={self.user_id}, distance={self.distance}, coins={self.coins_earned})>"
