from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.stats.exceptions import InvalidInput
from src.users.models import User
from src.users.schemas import LeaderboardEntry, UserCreate


class UserService:
    async def get_user(self, db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).filter(User.id == user_id))
        return result.scalar_one_or_none()

    async def create_user(self, db: AsyncSession, user_data: UserCreate) -> User:
        """Create a user with zeroed statistics.

        Raises
        ------
        InvalidInput
            If the email is already registered
        """
        try:
            user = User(
                name=user_data.name,
                email=user_data.email.lower(),
                city=user_data.city,
            )
            db.add(user)
            await db.commit()
            await db.refresh(user)
        except IntegrityError as e:
            await db.rollback()
            raise InvalidInput(f"Email {user_data.email} is already registered") from e
        except Exception:
            await db.rollback()
            raise

        logger.info("Created user", user_id=user.id)
        return user

    async def get_leaderboard(
        self, db: AsyncSession, limit: int, city: Optional[str] = None
    ) -> list[LeaderboardEntry]:
        """Top users by coins held, optionally within one city.

        Parameters
        ----------
        db : AsyncSession
            Database session
        limit : int
            Number of entries
        city : str | None
            Only rank users from this city (case-insensitive)

        Returns
        -------
        list[LeaderboardEntry]
            Entries sorted by total coins (descending), ties by user ID
        """
        query = select(User).order_by(User.total_coins.desc(), User.id).limit(limit)
        if city:
            query = query.filter(User.city.ilike(city))

        result = await db.execute(query)
        return [
            LeaderboardEntry(
                rank=rank,
                user_id=user.id,
                name=user.name,
                city=user.city,
                total_coins=user.total_coins,
            )
            for rank, user in enumerate(result.scalars().all(), start=1)
        ]


user_service = UserService()
