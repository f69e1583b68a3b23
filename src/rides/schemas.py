"""Pydantic schemas for ride requests and responses."""

from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.stats.calculator import to_utc


class GpsPoint(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: float = 0.0
    timestamp: datetime


class RideCreate(BaseModel):
    """Request body for recording a ride.

    ``distance`` and ``elevation_gained`` may be omitted when a GPS path
    with at least two points is supplied; they are then derived from it.
    """

    user_id: int
    ride_name: str = Field("Unnamed Ride", max_length=100)
    description: str = Field("", max_length=1000)
    recorded_from: Literal["ESP32", "Mobile", "Laptop"] = "Mobile"

    distance: Optional[float] = Field(None, ge=0, description="Kilometers")
    average_speed: float = Field(..., ge=0, description="km/h")
    max_speed: float = Field(0.0, ge=0, description="km/h")
    moving_time: int = Field(..., ge=0, description="Seconds")
    elapsed_time: Optional[int] = Field(None, ge=0, description="Seconds")
    elevation_gained: Optional[float] = Field(None, ge=0, description="Meters")

    activity_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    gps_path: list[GpsPoint] = Field(default_factory=list)

    @field_validator("activity_date")
    @classmethod
    def normalize_activity_date(cls, value: datetime) -> datetime:
        return to_utc(value)

    @model_validator(mode="after")
    def check_distance_source(self) -> "RideCreate":
        if self.distance is None and len(self.gps_path) < 2:
            raise ValueError("distance is required unless a GPS path is provided")
        return self


class RideResponse(BaseModel):
    id: int
    user_id: int
    ride_name: str
    description: str
    recorded_from: str
    distance: float
    average_speed: float
    max_speed: float
    moving_time: int
    elapsed_time: int
    elevation_gained: float
    activity_date: datetime
    coins_earned: int
    is_flagged: bool

    model_config = ConfigDict(from_attributes=True)


class RideDeletedResponse(BaseModel):
    ride_id: int
    coins_reversed: int
    full_recompute: bool
