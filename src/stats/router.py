"""API endpoints for rider statistics."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.dependencies import get_session, verify_admin_api_key
from src.stats.schemas import (
    LongestRidesResponse,
    RecomputeResponse,
    UserAggregate,
    UserStatsResponse,
    WeeklyGraphPoint,
    WeeklyStatsEntry,
    YearSummary,
)
from src.stats.service import stats_service

# Public router (no auth required)
public_router = APIRouter(
    prefix="/stats",
    tags=["stats"],
)

# Protected router (requires admin API key)
router = APIRouter(
    prefix="/stats",
    tags=["stats"],
    dependencies=[Depends(verify_admin_api_key)],
)


@public_router.get("/user/{user_id}", response_model=UserStatsResponse)
async def get_user_stats(user_id: int, db: AsyncSession = Depends(get_session)):
    """Lifetime and this-year totals, records and best efforts of a user."""
    return await stats_service.get_user_stats(db, user_id)


@public_router.get("/best-efforts/{user_id}", response_model=dict[str, float | None])
async def get_best_efforts(user_id: int, db: AsyncSession = Depends(get_session)):
    """Best estimated times in seconds for 10/20/25/50/75/100 km.

    A distance the user has never covered in one ride maps to null.
    """
    return await stats_service.get_best_efforts(db, user_id)


@public_router.get("/longest-rides/{user_id}", response_model=LongestRidesResponse)
async def get_longest_rides(user_id: int, db: AsyncSession = Depends(get_session)):
    return await stats_service.get_longest_rides(db, user_id)


@public_router.get("/weekly/{user_id}", response_model=list[WeeklyStatsEntry])
async def get_weekly_stats(
    user_id: int,
    weeks: int | None = Query(None, ge=1, le=520, description="Number of most recent weeks"),
    db: AsyncSession = Depends(get_session),
):
    """Stored weekly rollups, most recent week first."""
    return await stats_service.get_weekly_stats(db, user_id, weeks)


@public_router.get("/weekly-graph/{user_id}", response_model=list[WeeklyGraphPoint])
async def get_weekly_graph(
    user_id: int,
    weeks: int | None = Query(None, ge=1, le=520, description="Number of most recent weeks"),
    db: AsyncSession = Depends(get_session),
):
    """Weekly distance series for charting, oldest week first.

    Parameters
    ----------
    user_id : int
        User ID
    weeks : int | None
        Number of most recent weeks to include
    db : AsyncSession
        Database session (injected)

    Returns
    -------
    list[WeeklyGraphPoint]
        One point per week that has a rollup
    """
    return await stats_service.get_weekly_graph(db, user_id, weeks)


@public_router.get("/year-summary/{user_id}", response_model=YearSummary)
async def get_year_summary(
    user_id: int,
    year: int | None = Query(
        None, ge=2000, le=2100, description="Calendar year. Defaults to the current year."
    ),
    db: AsyncSession = Depends(get_session),
):
    return await stats_service.get_year_summary(db, user_id, year)


@router.post("/recompute/{user_id}", response_model=RecomputeResponse)
async def recompute_user_stats(user_id: int, db: AsyncSession = Depends(get_session)):
    """Rebuild a user's statistics and weekly rollups from their rides.

    Use after corrective deletions (moderation, bulk deletes) to bring
    distance totals, records and best efforts back in line.

    Raises
    ------
    HTTPException
        403 if the API key is invalid
        404 if the user does not exist
    """
    return await stats_service.recompute_all(db, user_id)


@router.get("/verify/{user_id}", response_model=UserAggregate)
async def verify_user_stats(user_id: int, db: AsyncSession = Depends(get_session)):
    """Compare stored statistics with the ride history without changing them.

    Returns the stored statistics when consistent, 409 listing the drifted
    fields otherwise. Right after New Year, a this-year distance last written
    in the previous year is not reported.
    """
    return await stats_service.verify(db, user_id)
