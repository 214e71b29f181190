"""Slot application route handlers."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.api.routes import limiter, to_http_exception
from courtside.database.db import get_db_session
from courtside.database.models import ApplicationStatus
from courtside.services import application_service
from courtside.services.errors import MatchmakingError
from courtside.api.auth_dependencies import require_user
from courtside.models.schemas import (
    ApplyRequest,
    ApplicationResponse,
    CancelApplicationResponse,
    ReleaseSlotResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/slots/{slot_id}/apply", response_model=ApplicationResponse)
@limiter.limit("30/minute")
async def apply_to_slot(
    request: Request,
    slot_id: int,
    payload: Optional[ApplyRequest] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Apply to a slot.

    Returns the application as ``pending`` if the caller got the slot's hold,
    or ``waitlisted`` if someone else holds or has been confirmed for it.
    """
    try:
        return await application_service.apply_to_slot(
            session,
            slot_id,
            user["id"],
            guest_partner_name=payload.guest_partner_name if payload else None,
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error applying to slot {slot_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error applying to slot")


@router.post("/api/slots/{slot_id}/release", response_model=ReleaseSlotResponse)
async def release_slot(
    slot_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Abandon an in-progress apply. Safe to call after the hold has lapsed."""
    try:
        return await application_service.release_slot(session, slot_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error releasing slot {slot_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error releasing slot")


@router.get("/api/applications/mine", response_model=List[ApplicationResponse])
async def get_my_applications(
    status: Optional[ApplicationStatus] = None,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """The caller's applications, newest first."""
    try:
        return await application_service.get_my_applications(
            session, user["id"], [status] if status else None
        )
    except Exception as e:
        logger.error(f"Error fetching applications: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching applications")


@router.get("/api/matches/{match_id}/applications", response_model=List[ApplicationResponse])
async def get_match_applications(
    match_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """All applications on a match (creator only)."""
    try:
        return await application_service.get_match_applications(session, match_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error fetching applications for match {match_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching applications")


@router.post("/api/applications/{application_id}/confirm", response_model=ApplicationResponse)
async def confirm_application(
    application_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Confirm an application (creator only). Every other application on the slot is rejected."""
    try:
        return await application_service.confirm_application(session, application_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error confirming application {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error confirming application")


@router.post("/api/applications/{application_id}/reject", response_model=ApplicationResponse)
async def reject_application(
    application_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Reject a pending or waitlisted application (creator only)."""
    try:
        return await application_service.reject_application(session, application_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error rejecting application {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error rejecting application")


@router.post("/api/applications/{application_id}/cancel", response_model=CancelApplicationResponse)
async def cancel_confirmed_application(
    application_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Cancel a confirmed application (creator or applicant); the waitlist moves up."""
    try:
        return await application_service.cancel_confirmed_application(
            session, application_id, user["id"]
        )
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error cancelling application {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error cancelling application")


@router.post("/api/applications/{application_id}/withdraw", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Withdraw your own application."""
    try:
        return await application_service.withdraw_application(session, application_id, user["id"])
    except MatchmakingError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error withdrawing application {application_id}: {str(e)}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error withdrawing application")
