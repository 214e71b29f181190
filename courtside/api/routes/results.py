"""Match result route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import to_http_exception
from courtside.database.db import get_db_session
from courtside.services import result_service
from courtside.services.errors import MatchmakingError
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import SubmitResultRequest, ResultResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches/{match_id}/result", response_model=ResultResponse)
async def submit_result(
    match_id: int,
    payload: SubmitResultRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Report the score of a confirmed match and update both players' ratings.

    Request body:
        {
            "score": "6-4 3-6 6-2",      // creator's games first
            "outcome": "completed"       // or "won_by_default" / "opponent_retired"
        }
    """
    try:
        return await result_service.submit_result(
            session,
            match_id,
            user["id"],
            payload.score,
            outcome=payload.outcome,
            creator_partner_name=payload.creator_partner_name,
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error submitting result for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error submitting result")


@router.get("/api/matches/{match_id}/result", response_model=ResultResponse)
async def get_result(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a match result with rating changes."""
    try:
        return await result_service.get_result(session, match_id)
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching result for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching result")


@router.post("/api/matches/{match_id}/result/dispute", response_model=ResultResponse)
async def dispute_result(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Flag a result as disputed (players only)."""
    try:
        return await result_service.dispute_result(session, match_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error disputing result for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error disputing result")
