"""FastAPI dependencies for accessing application state."""

import secrets
from typing import AsyncIterator, cast

from fastapi import HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings

# Define API key header scheme for Swagger UI
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Get a database session from the session maker created at startup.

    Usage:
        @router.get("/rides/{ride_id}")
        async def get_ride(ride_id: int, db: AsyncSession = Depends(get_session)):
            ...
    """
    session_maker = cast(async_sessionmaker, request.state.session_maker)
    async with session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def verify_admin_api_key(api_key: str | None = Security(api_key_header)) -> None:
    """
    Verify admin API key from X-API-Key header.

    Usage (on entire router):
        router = APIRouter(prefix="/stats", dependencies=[Depends(verify_admin_api_key)])

    Raises
    ------
    HTTPException
        403 if API key is invalid or missing
    """
    settings = get_settings()
    if api_key is None or not secrets.compare_digest(api_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=403, detail="Invalid API key")
