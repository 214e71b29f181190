"""User rating and history route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import to_http_exception
from courtside.database.db import get_db_session
from courtside.database.models import MatchFormat
from courtside.services import stats_service
from courtside.services.errors import MatchmakingError
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import (
    UserStatsResponse,
    EloHistoryEntry,
    HeadToHeadResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/users/{user_id}/stats", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Current ratings, win/loss totals and streaks."""
    try:
        return await stats_service.get_user_stats(session, user_id)
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching stats for user {user_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching user stats")


@router.get("/api/users/{user_id}/elo-history", response_model=List[EloHistoryEntry])
async def get_elo_history(
    user_id: int,
    match_type: Optional[MatchFormat] = None,
    limit: int = 50,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Rating history, newest first."""
    try:
        return await stats_service.get_elo_history(
            session, user_id, match_type=match_type, limit=min(limit, 500)
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching ELO history for user {user_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching ELO history")


@router.get("/api/users/{user_id}/head-to-head/{other_user_id}", response_model=HeadToHeadResponse)
async def get_head_to_head(
    user_id: int,
    other_user_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Record between two users."""
    try:
        return await stats_service.get_head_to_head(session, user_id, other_user_id)
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching head-to-head {user_id} vs {other_user_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching head-to-head")
