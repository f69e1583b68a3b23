from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Float, Integer, String

from src.core.database import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")


class User(Base):
    """Rider account.

    The running statistics live directly on the user row and are owned by
    the stats engine (see ``src.stats.user_aggregates``); nothing else
    should write them.
    """

    __tablename__ = "users"

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)

    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    city = Column(String, nullable=True, index=True)

    # Running aggregates
    total_distance = Column(Float, nullable=False, default=0.0)  # km
    distance_this_year = Column(Float, nullable=False, default=0.0)  # km
    total_coins = Column(Integer, nullable=False, default=0, index=True)
    longest_ride_distance = Column(Float, nullable=False, default=0.0)  # km
    longest_ride_time = Column(Integer, nullable=False, default=0)  # seconds
    max_elevation_gained = Column(Float, nullable=False, default=0.0)  # meters

    # Best efforts in seconds, NULL until a ride covers the distance
    best_10km_time = Column(Float, nullable=True)
    best_20km_time = Column(Float, nullable=True)
    best_25km_time = Column(Float, nullable=True)
    best_50km_time = Column(Float, nullable=True)
    best_75km_time = Column(Float, nullable=True)
    best_100km_time = Column(Float, nullable=True)

    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', total_coins={self.total_coins})>"
