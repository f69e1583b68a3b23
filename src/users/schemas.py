from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254)
    city: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    city: Optional[str] = None
    total_coins: int
    total_distance: float
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LeaderboardEntry(BaseModel):
    """Single entry in the coin leaderboard.

    Attributes
    ----------
    rank : int
        1-based position
    user_id : int
        User ID
    name : str
        Display name
    city : str | None
        Home city
    total_coins : int
        Coins currently held
    """

    rank: int
    user_id: int
    name: str
    city: Optional[str] = None
    total_coins: int
