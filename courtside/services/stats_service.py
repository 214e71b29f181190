"""
Read-only rating views: current snapshot, ELO history and head-to-head.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from courtside.database.models import EloLog, MatchFormat, Result, UserStats
from courtside.services import user_service
from courtside.utils.constants import INITIAL_ELO
from courtside.utils.datetime_utils import to_iso


def _stats_to_dict(user_id: int, stats: Optional[UserStats]) -> Dict:
    if stats is None:
        return {
            "user_id": user_id,
            "singles_elo": float(INITIAL_ELO),
            "doubles_elo": float(INITIAL_ELO),
            "win_streak_singles": 0,
            "win_streak_doubles": 0,
            "total_matches": 0,
            "total_wins": 0,
            "total_losses": 0,
            "cancelled_matches": 0,
            "win_rate": 0.0,
        }
    return {
        "user_id": user_id,
        "singles_elo": stats.singles_elo,
        "doubles_elo": stats.doubles_elo,
        "win_streak_singles": stats.win_streak_singles,
        "win_streak_doubles": stats.win_streak_doubles,
        "total_matches": stats.total_matches,
        "total_wins": stats.total_wins,
        "total_losses": stats.total_losses,
        "cancelled_matches": stats.cancelled_matches,
        "win_rate": round(stats.win_rate, 1),
    }


async def get_user_stats(session: AsyncSession, user_id: int) -> Dict:
    """
    Current rating snapshot for a user.

    Users who have not played yet report the initial rating; nothing is
    written.

    Raises:
        NotFound: If the user does not exist
    """
    await user_service.get_user(session, user_id)
    stats = await session.get(UserStats, user_id)
    return _stats_to_dict(user_id, stats)


async def get_elo_history(
    session: AsyncSession,
    user_id: int,
    match_type: Optional[MatchFormat] = None,
    limit: int = 50,
) -> List[Dict]:
    """
    Rating history for a user, newest first.

    Args:
        session: Database session
        user_id: User ID
        match_type: Only singles or only doubles entries
        limit: Maximum entries

    Returns:
        List of dicts with before/after ratings and the change
    """
    await user_service.get_user(session, user_id)
    query = select(EloLog).where(EloLog.user_id == user_id)
    if match_type is not None:
        query = query.where(EloLog.match_type == MatchFormat(match_type))
    result = await session.execute(
        query.order_by(EloLog.created_at.desc(), EloLog.id.desc()).limit(limit)
    )
    return [
        {
            "match_id": log.match_id,
            "opponent_user_id": log.opponent_user_id,
            "match_type": log.match_type.value,
            "elo_before": log.elo_before,
            "elo_after": log.elo_after,
            "elo_change": round(log.elo_change, 2),
            "created_at": to_iso(log.created_at),
        }
        for log in result.scalars().all()
    ]


async def get_elo_change_for_match(
    session: AsyncSession, user_id: int, match_id: int
) -> Optional[float]:
    """Rating change a user got from one match, or None if they have no entry."""
    result = await session.execute(
        select(EloLog).where(and_(EloLog.user_id == user_id, EloLog.match_id == match_id))
    )
    log = result.scalar_one_or_none()
    return round(log.elo_change, 2) if log else None


async def get_head_to_head(session: AsyncSession, user_id: int, other_user_id: int) -> Dict:
    """
    Record between two users across all their reported matches.

    Returns:
        Dict with match count, wins for each side and the results, newest first
    """
    await user_service.get_user(session, user_id)
    await user_service.get_user(session, other_user_id)

    result = await session.execute(
        select(Result)
        .where(
            or_(
                and_(Result.player1_user_id == user_id, Result.player2_user_id == other_user_id),
                and_(Result.player1_user_id == other_user_id, Result.player2_user_id == user_id),
            )
        )
        .order_by(Result.created_at.desc(), Result.id.desc())
    )
    results = result.scalars().all()

    wins = sum(1 for r in results if r.winner_user_id == user_id)
    return {
        "user_id": user_id,
        "other_user_id": other_user_id,
        "matches": len(results),
        "wins": wins,
        "losses": len(results) - wins,
        "results": [
            {
                "match_id": r.match_id,
                "winner_user_id": r.winner_user_id,
                "score": r.score,
                "outcome": r.outcome.value,
                "disputed": r.disputed,
            }
            for r in results
        ],
    }
