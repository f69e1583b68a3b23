"""User endpoints: registration, lookup and the coin leaderboard."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.dependencies import get_session
from src.users.schemas import LeaderboardEntry, UserCreate, UserResponse
from src.users.service import user_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(user_data: UserCreate, db: AsyncSession = Depends(get_session)):
    """Register a user. Returns 400 if the email is taken."""
    return await user_service.create_user(db, user_data)


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def get_leaderboard(
    limit: int | None = Query(None, ge=1, le=100, description="Number of entries"),
    city: str | None = Query(None, description="Only rank users from this city"),
    db: AsyncSession = Depends(get_session),
):
    """Top users by coins held.

    Parameters
    ----------
    limit : int | None
        Number of entries (default: LEADERBOARD_LIMIT)
    city : str | None
        Optional city filter
    """
    return await user_service.get_leaderboard(
        db, limit or get_settings().LEADERBOARD_LIMIT, city
    )


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: AsyncSession = Depends(get_session)):
    user = await user_service.get_user(db, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user
