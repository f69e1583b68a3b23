#!/usr/bin/env python3
"""
Recompute statistics and weekly rollups for every user.

Replays each user's ride history and overwrites the stored totals, records,
best efforts and weekly rollups. Run after bulk ride deletions or data fixes.

Usage:
    poetry run python scripts/recompute_all_stats.py
    poetry run python scripts/recompute_all_stats.py --verify-only

Features:
- One transaction per user (a failure only skips that user)
- Reports which users had drifted before the rewrite
- --verify-only checks every user without writing anything
"""
import argparse
import asyncio
import sys
from pathlib import Path

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import get_settings  # noqa: E402
from src.stats.exceptions import AggregateInconsistent  # noqa: E402
from src.stats.service import stats_service  # noqa: E402
from src.users.models import User  # noqa: E402

# Configure logger
logger.remove()  # Remove default handler
logger.add(
    sys.stdout,
    format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
    level="INFO",
)

# Create database engine and session maker
settings = get_settings()
engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)


async def load_user_ids() -> list[int]:
    async with async_session_maker() as db:
        result = await db.execute(select(User.id).order_by(User.id))
        return list(result.scalars().all())


async def recompute_all_users(verify_only: bool) -> tuple[int, list[dict]]:
    """Verify, and unless ``verify_only`` rebuild, every user's statistics."""
    user_ids = await load_user_ids()

    total = len(user_ids)
    if total == 0:
        logger.info("No users to process")
        return 0, []

    logger.info(f"Processing {total} users")

    drifted = 0
    errors = []

    for i, user_id in enumerate(user_ids, 1):
        async with async_session_maker() as db:
            try:
                await stats_service.verify(db, user_id)
                logger.info(f"[{i}/{total}] User {user_id} consistent")
                continue
            except AggregateInconsistent as e:
                drifted += 1
                logger.warning(f"[{i}/{total}] User {user_id} drifted: {', '.join(sorted(e.fields))}")
            except Exception as e:
                logger.error(f"✗ Failed to verify user {user_id}: {e}")
                errors.append({"user_id": user_id, "error": str(e)})
                continue

            if verify_only:
                continue

            try:
                result = await stats_service.recompute_all(db, user_id)
                logger.success(f"✓ Rebuilt user {user_id} from {result.rides_replayed} rides")
            except Exception as e:
                logger.error(f"✗ Failed to rebuild user {user_id}: {e}")
                errors.append({"user_id": user_id, "error": str(e)})

    # Summary
    logger.info("\n" + "=" * 60)
    logger.info("Recompute complete:")
    logger.info(f"  Drifted: {drifted}/{total}")
    logger.info(f"  Errors: {len(errors)}/{total}")

    if errors:
        logger.warning("\nFailed users (can retry manually):")
        for err in errors:
            logger.warning(f"  User {err['user_id']}: {err['error']}")

    return drifted, errors


async def main(verify_only: bool) -> int:
    """Main entry point for the recompute script."""
    try:
        logger.info("Statistics Recompute Script")
        logger.info("=" * 60)

        drifted, errors = await recompute_all_users(verify_only)

        if verify_only and drifted:
            return 1
        return 0 if len(errors) == 0 else 1
    finally:
        # Clean up database connection
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Report drifted users without rewriting their statistics",
    )
    args = parser.parse_args()

    exit_code = asyncio.run(main(args.verify_only))
    sys.exit(exit_code)
