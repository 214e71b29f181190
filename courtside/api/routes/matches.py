"""Match creation, listing, editing and cancellation route handlers."""

import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import limiter, to_http_exception
from courtside.database.db import get_db_session
from courtside.database.models import MatchFormat, MatchStatus
from courtside.services import match_service
from courtside.services.errors import MatchmakingError
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import (
    CreateMatchRequest,
    UpdateMatchRequest,
    CancelMatchRequest,
    MatchResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/matches", response_model=MatchResponse)
@limiter.limit("30/minute")
async def create_match(
    request: Request,
    payload: CreateMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Create a match with one or more bookable slots.

    Request body:
        {
            "court_id": 1,
            "date": "2026-05-02",
            "format": "singles",
            "slots": [{"start_time": "08:00", "end_time": "09:00"}],
            "skill_level_min": 3.0,   // Optional filters
            "skill_level_max": 4.5
        }
    """
    try:
        return await match_service.create_match(
            session,
            creator_user_id=user["id"],
            court_id=payload.court_id,
            match_date=payload.date,
            match_format=payload.format,
            slots=[s.as_tuple() for s in payload.slots],
            skill_level_min=payload.skill_level_min,
            skill_level_max=payload.skill_level_max,
            gender_filter=payload.gender_filter,
            surface_filter=payload.surface_filter,
            max_distance=payload.max_distance,
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error creating match: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error creating match")


@router.get("/api/matches", response_model=List[MatchResponse])
async def list_matches(
    match_date: Optional[date] = None,
    format: Optional[MatchFormat] = None,
    status: Optional[MatchStatus] = None,
    creator_user_id: Optional[int] = None,
    court_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """List matches, soonest first, with optional filters."""
    try:
        return await match_service.list_matches(
            session,
            match_date=match_date,
            match_format=format,
            status=status,
            creator_user_id=creator_user_id,
            court_id=court_id,
            limit=min(limit, 200),
            offset=offset,
        )
    except Exception as e:
        logger.error(f"Error listing matches: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error listing matches")


@router.get("/api/matches/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a match with its slots and application counts."""
    try:
        return await match_service.get_match_detail(session, match_id)
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching match")


@router.patch("/api/matches/{match_id}", response_model=MatchResponse)
async def update_match(
    match_id: int,
    payload: UpdateMatchRequest,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Edit a pending match (creator only, before anyone is confirmed)."""
    try:
        changes = payload.model_dump(exclude_unset=True)
        if payload.add_slots is not None:
            changes["add_slots"] = [s.as_tuple() for s in payload.add_slots]
        return await match_service.update_match(session, match_id, user["id"], changes)
    except MatchmakingError as e:
        raise to_http_exception(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error updating match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating match")


@router.post("/api/matches/{match_id}/cancel", response_model=MatchResponse)
async def cancel_match(
    match_id: int,
    payload: Optional[CancelMatchRequest] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a match (creator or admin). Cancelling twice is a no-op."""
    try:
        return await match_service.force_cancel(
            session, match_id, user["id"], reason=payload.reason if payload else None
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error cancelling match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error cancelling match")
