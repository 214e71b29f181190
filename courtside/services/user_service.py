"""
User and court directory lookups.

The reservation core reads users and courts by id and never mutates them;
the only writes here are to a user's rating snapshot (UserStats).
"""

from typing import Optional, Dict
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from courtside.database.models import User, Court, UserStats
from courtside.services.errors import NotFound
from courtside.utils.constants import INITIAL_ELO
import logging

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: int) -> User:
    """
    Get a user by id.

    Raises:
        NotFound: If the user does not exist
    """
    user = await session.get(User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


async def get_user_by_token(session: AsyncSession, token: str) -> Optional[User]:
    """
    Resolve an opaque API bearer token to its user.

    Args:
        session: Database session
        token: Token presented in the Authorization header

    Returns:
        User or None if the token is unknown
    """
    if not token:
        return None
    result = await session.execute(select(User).where(User.api_token == token))
    return result.scalar_one_or_none()


async def get_court(session: AsyncSession, court_id: int) -> Court:
    """
    Get a court by id.

    Raises:
        NotFound: If the court does not exist
    """
    court = await session.get(Court, court_id)
    if not court:
        raise NotFound(f"Court {court_id} not found")
    return court


async def get_or_create_stats(
    session: AsyncSession, user_id: int, for_update: bool = False
) -> UserStats:
    """
    Get a user's rating snapshot, creating it at the initial rating if missing.

    Args:
        session: Database session
        user_id: User ID
        for_update: Lock the row until the transaction ends (rating updates)

    Returns:
        UserStats row
    """
    query = select(UserStats).where(UserStats.user_id == user_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    stats = result.scalar_one_or_none()
    if stats:
        return stats

    stats = UserStats(
        user_id=user_id,
        singles_elo=float(INITIAL_ELO),
        doubles_elo=float(INITIAL_ELO),
        win_streak_singles=0,
        win_streak_doubles=0,
        total_matches=0,
        total_wins=0,
        total_losses=0,
        cancelled_matches=0,
    )
    session.add(stats)
    await session.flush()
    logger.debug(f"Created rating snapshot for user {user_id}")
    return stats


async def increment_cancelled_matches(session: AsyncSession, user_id: int) -> None:
    """Count one cancellation of a confirmed match against the user."""
    stats = await get_or_create_stats(session, user_id, for_update=True)
    stats.cancelled_matches += 1
    await session.flush()


def user_to_dict(user: User) -> Dict:
    """Public view of a user."""
    return {
        "id": user.id,
        "full_name": user.full_name,
        "gender": user.gender,
        "is_admin": user.is_admin,
    }
