"""Ride endpoints: recording, lookup and deletion."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.dependencies import get_session
from src.rides.schemas import RideCreate, RideDeletedResponse, RideResponse
from src.rides.service import ride_service
from src.stats.service import stats_service

router = APIRouter(prefix="/rides", tags=["rides"])


@router.post("", response_model=RideResponse, status_code=201)
async def create_ride(ride_data: RideCreate, db: AsyncSession = Depends(get_session)):
    """Record a ride, credit its coins and update the rider's statistics.

    Coins are ``round(distance x average_speed / 2)``. Returns 404 if the
    user does not exist.
    """
    return await stats_service.on_ride_created(db, ride_data)


@router.get("/user/{user_id}", response_model=list[RideResponse])
async def get_user_rides(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    """Rides of a user, most recent first.

    Parameters
    ----------
    user_id : int
        User ID
    limit : int
        Maximum number of rides to return (default: 20)
    offset : int
        Number of rides to skip (default: 0)
    """
    return await ride_service.get_user_rides(db, user_id, limit=limit, offset=offset)


@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(ride_id: int, db: AsyncSession = Depends(get_session)):
    ride = await ride_service.get_ride(db, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")
    return ride


@router.delete("/{ride_id}", response_model=RideDeletedResponse)
async def delete_ride(
    ride_id: int,
    full_recompute: bool = Query(
        False,
        description="Rebuild the rider's statistics from the remaining rides "
        "instead of only taking the coins back.",
    ),
    db: AsyncSession = Depends(get_session),
):
    """Delete a ride.

    Without ``full_recompute`` only the ride's coins are reversed; distance
    totals, records and best efforts keep counting the ride until the next
    recompute.
    """
    ride = await ride_service.get_ride(db, ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    coins = ride.coins_earned
    await stats_service.on_ride_deleted(db, ride, full_recompute=full_recompute)

    return RideDeletedResponse(
        ride_id=ride_id, coins_reversed=coins, full_recompute=full_recompute
    )
