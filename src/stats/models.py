"""Weekly rollup database models."""

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    UniqueConstraint,
)

from src.core.database import Base
from src.users.models import BigIntegerPK


class WeeklyStats(Base):
    """Per-user totals for one ISO week.

    Created lazily by the first ride of the week and kept afterwards so the
    weekly graph has history. The (user_id, iso_year, iso_week) constraint is
    what makes concurrent get-or-create safe.
    """

    __tablename__ = "weekly_stats"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "iso_year", "iso_week", name="uq_weekly_stats_user_week"
        ),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)

    user_id = Column(
        BigIntegerPK,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # ISO week-year, which can differ from the calendar year around New Year
    iso_year = Column(Integer, nullable=False)
    iso_week = Column(Integer, nullable=False)  # 1-53

    total_distance = Column(Float, nullable=False, default=0.0)  # km
    total_rides = Column(Integer, nullable=False, default=0)
    total_coins = Column(Integer, nullable=False, default=0)
    total_moving_time = Column(Integer, nullable=False, default=0)  # seconds

    # Always derived from the totals above, never accumulated
    average_speed = Column(Float, nullable=False, default=0.0)  # km/h

    # Fixed at creation: Monday 00:00:00.000 to Sunday 23:59:59.999 UTC
    week_start_date = Column(DateTime(timezone=True), nullable=False)
    week_end_date = Column(DateTime(timezone=True), nullable=False)

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
        return (
            f"<WeeklyStats(user_id={self.user_id}, week={self.iso_year}-W{self.iso_week:02d}, "
            f"distance={self.total_distance}, rides={self.total_rides})>"
        )
