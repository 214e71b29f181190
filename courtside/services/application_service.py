"""
Application engine: exclusivity and waitlist logic on top of the slot store.

Rules maintained by every function here:

- At most one ``confirmed`` application per slot (also enforced by the
  ``uq_applications_slot_confirmed`` partial unique index).
- At most one ``pending`` application per slot, and it belongs to the user
  holding the slot's lock. Everyone else queues as ``waitlisted``.
- Applications are never deleted; ``rejected`` and ``expired`` are the
  terminal states.

All functions flush but never commit. The caller's transaction is the atomic
unit: confirm + reject siblings, or cancel + promote, either all land or
none do.
"""

from datetime import datetime
from typing import Dict, List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, or_
from courtside.database.models import (
    Application,
    ApplicationStatus,
    Match,
    MatchSlot,
    MatchStatus,
    SlotStatus,
    NotificationType,
)
from courtside.services import slot_store, match_service, user_service, notification_service
from courtside.services.errors import (
    NotFound,
    Forbidden,
    SlotUnavailable,
    AlreadyConfirmed,
    EditNotAllowed,
    ApplicationNotAllowed,
    InvalidApplicationState,
)
from courtside.utils.constants import OVERLAP_BUFFER_HOURS
from courtside.utils.datetime_utils import utcnow, windows_overlap, to_iso
import logging

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (
    ApplicationStatus.PENDING,
    ApplicationStatus.WAITLISTED,
    ApplicationStatus.CONFIRMED,
)
OPEN_STATUSES = (ApplicationStatus.PENDING, ApplicationStatus.WAITLISTED)


def application_to_dict(application: Application, slot: Optional[MatchSlot] = None) -> Dict:
    data = {
        "id": application.id,
        "slot_id": application.slot_id,
        "applicant_user_id": application.applicant_user_id,
        "guest_partner_name": application.guest_partner_name,
        "status": application.status.value,
        "created_at": to_iso(application.created_at),
        "updated_at": to_iso(application.updated_at),
    }
    if slot is not None:
        data["match_id"] = slot.match_id
        data["start_time"] = slot.start_time.strftime("%H:%M")
        data["end_time"] = slot.end_time.strftime("%H:%M")
        data["slot_status"] = slot.status.value
    return data


def _set_status(application: Application, status: ApplicationStatus, now: datetime) -> None:
    logger.info(f"Application {application.id}: {application.status.value} -> {status.value}")
    application.status = status
    application.updated_at = now


# ============================================================================
# Lookups
# ============================================================================

async def get_application(session: AsyncSession, application_id: int) -> Application:
    """
    Get an application by id.

    Raises:
        NotFound: If the application does not exist
    """
    application = await session.get(Application, application_id)
    if not application:
        raise NotFound(f"Application {application_id} not found")
    return application


async def _slot_applications(
    session: AsyncSession,
    slot_id: int,
    statuses: Optional[Sequence[ApplicationStatus]] = None,
) -> List[Application]:
    """Applications on a slot, oldest first."""
    query = select(Application).where(Application.slot_id == slot_id)
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))
    result = await session.execute(query.order_by(Application.created_at, Application.id))
    return list(result.scalars().all())


async def _load(session: AsyncSession, application_id: int):
    application = await get_application(session, application_id)
    slot = await slot_store.get_slot(session, application.slot_id)
    match = await match_service.get_match(session, slot.match_id)
    return application, slot, match


async def _holder_application(session: AsyncSession, slot: MatchSlot) -> Optional[Application]:
    """The pending application of the user holding the slot's lock."""
    if slot.status != SlotStatus.LOCKED or slot.locked_by_user_id is None:
        return None
    result = await session.execute(
        select(Application).where(
            and_(
                Application.slot_id == slot.id,
                Application.applicant_user_id == slot.locked_by_user_id,
                Application.status == ApplicationStatus.PENDING,
            )
        )
    )
    return result.scalars().first()


# ============================================================================
# Waitlist promotion and lazy expiry
# ============================================================================

async def promote_next_waitlisted(
    session: AsyncSession, slot_id: int, now: Optional[datetime] = None
) -> Optional[Application]:
    """
    Advance the oldest waitlisted application on an open slot to ``pending``.

    The promoted applicant takes the slot's lock. Idempotent: does nothing if
    the slot is not available, its match is not pending, or the slot already
    has a pending application.

    Returns:
        The promoted application, or None
    """
    now = now or utcnow()
    slot = await slot_store.get_slot(session, slot_id)
    match = await match_service.get_match(session, slot.match_id)
    if slot.status != SlotStatus.AVAILABLE or match.status != MatchStatus.PENDING:
        return None
    if await _slot_applications(session, slot_id, [ApplicationStatus.PENDING]):
        return None

    waitlisted = await _slot_applications(session, slot_id, [ApplicationStatus.WAITLISTED])
    if not waitlisted:
        return None

    candidate = waitlisted[0]
    try:
        await slot_store.try_lock(session, slot_id, candidate.applicant_user_id, now=now)
    except SlotUnavailable:
        logger.info(f"Slot {slot_id} was taken before application {candidate.id} could be promoted")
        return None

    _set_status(candidate, ApplicationStatus.PENDING, now)
    await session.flush()

    await notification_service.emit_event(
        session,
        NotificationType.APPLICATION_PROMOTED,
        match.id,
        [candidate.applicant_user_id, match.creator_user_id],
        {"application_id": candidate.id, "slot_id": slot_id},
    )
    logger.info(f"Promoted application {candidate.id} (user {candidate.applicant_user_id}) on slot {slot_id}")
    return candidate


async def _settle_slot(
    session: AsyncSession, slot: MatchSlot, now: datetime
) -> List[Application]:
    """
    Apply lazy expiry to one slot, then refill it from the waitlist.

    Returns:
        Applications that expired
    """
    expired: List[Application] = []
    if slot_store.is_lock_expired(slot, now):
        holder_app = await _holder_application(session, slot)
        holder = await slot_store.expire_lock(session, slot.id, now)
        if holder is not None and holder_app is not None:
            _set_status(holder_app, ApplicationStatus.EXPIRED, now)
            expired.append(holder_app)
            await session.flush()
    await promote_next_waitlisted(session, slot.id, now)
    return expired


async def expire_stale_applications(
    session: AsyncSession, now: Optional[datetime] = None
) -> int:
    """
    Expire pending applications whose slot hold has lapsed.

    Each freed slot is offered to its oldest waitlisted applicant.

    Returns:
        Number of applications expired
    """
    now = now or utcnow()
    result = await session.execute(
        select(MatchSlot).where(MatchSlot.status == SlotStatus.LOCKED).order_by(MatchSlot.id)
    )
    expired = 0
    for slot in result.scalars().all():
        if slot_store.is_lock_expired(slot, now):
            expired += len(await _settle_slot(session, slot, now))
    if expired:
        logger.info(f"Expired {expired} stale application(s)")
    return expired


# ============================================================================
# Apply
# ============================================================================

async def _active_application_for_match(
    session: AsyncSession, match_id: int, user_id: int
) -> Optional[Application]:
    result = await session.execute(
        select(Application)
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .where(
            and_(
                MatchSlot.match_id == match_id,
                Application.applicant_user_id == user_id,
                Application.status.in_(list(ACTIVE_STATUSES)),
            )
        )
    )
    return result.scalars().first()


async def _confirmed_slots_for_user(
    session: AsyncSession, user_id: int, match: Match
) -> List[MatchSlot]:
    """Confirmed slots on the same day where the user plays, as creator or applicant."""
    confirmed_as_applicant = select(Application.slot_id).where(
        and_(
            Application.applicant_user_id == user_id,
            Application.status == ApplicationStatus.CONFIRMED,
        )
    )
    result = await session.execute(
        select(MatchSlot)
        .join(Match, Match.id == MatchSlot.match_id)
        .where(
            and_(
                Match.date == match.date,
                Match.id != match.id,
                MatchSlot.status == SlotStatus.CONFIRMED,
                or_(
                    Match.creator_user_id == user_id,
                    MatchSlot.id.in_(confirmed_as_applicant),
                ),
            )
        )
    )
    return list(result.scalars().all())


async def apply_to_slot(
    session: AsyncSession,
    slot_id: int,
    applicant_user_id: int,
    guest_partner_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Apply to a slot.

    The first applicant to take the slot's lock becomes ``pending``; anyone
    arriving while the slot is held or confirmed is ``waitlisted``. Losing a
    race is not an error. Re-applying to the slot you already applied to
    returns the existing application (and extends your hold).

    Args:
        session: Database session
        slot_id: Slot to apply to
        applicant_user_id: Applying user
        guest_partner_name: Non-platform doubles partner
        now: Current time (for tests)

    Returns:
        Application dict

    Raises:
        NotFound: If the slot or user does not exist
        ApplicationNotAllowed: Own match, closed slot, another active
            application on the match, or a time conflict
    """
    now = now or utcnow()
    await user_service.get_user(session, applicant_user_id)
    slot = await slot_store.get_slot(session, slot_id)
    match = await match_service.get_match(session, slot.match_id)

    if match.creator_user_id == applicant_user_id:
        raise ApplicationNotAllowed("You cannot apply to your own match")
    if match.status in (MatchStatus.CANCELLED, MatchStatus.COMPLETED) or slot.status in (
        SlotStatus.CANCELLED,
        SlotStatus.COMPLETED,
    ):
        raise ApplicationNotAllowed("This slot is no longer accepting applications")

    await _settle_slot(session, slot, now)

    existing = await _active_application_for_match(session, match.id, applicant_user_id)
    if existing is not None:
        if existing.slot_id != slot_id:
            raise ApplicationNotAllowed("You already have an active application for this match")
        if existing.status == ApplicationStatus.PENDING and slot.locked_by_user_id == applicant_user_id:
            await slot_store.try_lock(session, slot_id, applicant_user_id, now=now)
        return application_to_dict(existing, slot)

    for other in await _confirmed_slots_for_user(session, applicant_user_id, match):
        if windows_overlap(slot.start_time, slot.end_time, other.start_time, other.end_time):
            raise ApplicationNotAllowed(
                f"You already have a confirmed match from {other.start_time.strftime('%H:%M')} "
                f"to {other.end_time.strftime('%H:%M')} that day"
            )

    status = ApplicationStatus.WAITLISTED
    if match.status == MatchStatus.PENDING and slot.status == SlotStatus.AVAILABLE:
        try:
            await slot_store.try_lock(session, slot_id, applicant_user_id, now=now)
            status = ApplicationStatus.PENDING
        except SlotUnavailable:
            if slot.status in (SlotStatus.CANCELLED, SlotStatus.COMPLETED):
                raise ApplicationNotAllowed("This slot is no longer accepting applications")
            logger.info(f"User {applicant_user_id} lost the race for slot {slot_id}; waitlisting")

    application = Application(
        slot_id=slot_id,
        applicant_user_id=applicant_user_id,
        guest_partner_name=guest_partner_name,
        status=status,
    )
    session.add(application)
    await session.flush()

    await notification_service.emit_event(
        session,
        NotificationType.SLOT_APPLIED,
        match.id,
        [match.creator_user_id],
        {"application_id": application.id, "slot_id": slot_id, "applicant_user_id": applicant_user_id, "status": status.value},
    )
    if status == ApplicationStatus.WAITLISTED:
        await notification_service.emit_event(
            session,
            NotificationType.APPLICATION_WAITLISTED,
            match.id,
            [applicant_user_id],
            {"application_id": application.id, "slot_id": slot_id},
        )

    logger.info(f"User {applicant_user_id} applied to slot {slot_id} (match {match.id}): {status.value}")
    return application_to_dict(application, slot)


async def release_slot(
    session: AsyncSession, slot_id: int, user_id: int, now: Optional[datetime] = None
) -> Dict:
    """
    Abandon an in-progress apply.

    Withdraws the caller's pending application on the slot (which frees the
    hold for the waitlist) or simply drops a hold with no application behind
    it. Safe to call after the hold has already lapsed.

    Returns:
        Dict with ``released`` flag and the slot status
    """
    now = now or utcnow()
    slot = await slot_store.get_slot(session, slot_id)
    holder_app = await _holder_application(session, slot)
    if holder_app is not None and holder_app.applicant_user_id == user_id:
        await withdraw_application(session, holder_app.id, user_id, now)
        released = True
    else:
        released = await slot_store.release_lock(session, slot_id, user_id)
        if released:
            await promote_next_waitlisted(session, slot_id, now)
    return {"slot_id": slot_id, "released": released, "status": slot.status.value}


# ============================================================================
# Creator decisions
# ============================================================================

async def confirm_application(
    session: AsyncSession,
    application_id: int,
    acting_user_id: int,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Confirm an application. Creator only.

    Atomically: the application becomes ``confirmed``, every other
    application on the slot becomes ``rejected``, and the slot moves to
    ``confirmed``. Pending applications on the match's other slots are
    moved back to the waitlist, and the applicant's overlapping open
    applications elsewhere that day are withdrawn.

    Raises:
        Forbidden: If the caller is not the match creator
        AlreadyConfirmed: If the slot (or another slot of the match) already
            has a confirmed application, including losing a concurrent confirm
        InvalidApplicationState: If the application is rejected/expired or
            the match is closed
    """
    now = now or utcnow()
    application, slot, match = await _load(session, application_id)

    if match.creator_user_id != acting_user_id:
        raise Forbidden("Only the match creator can confirm applications")
    if application.status == ApplicationStatus.CONFIRMED or slot.status == SlotStatus.CONFIRMED:
        raise AlreadyConfirmed("This slot already has a confirmed application")
    if match.status in (MatchStatus.CANCELLED, MatchStatus.COMPLETED) or slot.status in (
        SlotStatus.CANCELLED,
        SlotStatus.COMPLETED,
    ):
        raise InvalidApplicationState(f"Match {match.id} is {match.status.value}")
    if application.status not in OPEN_STATUSES:
        raise InvalidApplicationState(f"Cannot confirm a {application.status.value} application")

    other_slots = [s for s in await match_service.get_match_slots(session, match.id) if s.id != slot.id]
    if any(s.status in (SlotStatus.CONFIRMED, SlotStatus.COMPLETED) for s in other_slots):
        raise AlreadyConfirmed("Another slot of this match is already confirmed")

    try:
        if slot.status == SlotStatus.AVAILABLE:
            await slot_store.try_lock(session, slot.id, application.applicant_user_id, now=now)
        await slot_store.confirm(session, slot.id, application.applicant_user_id, now)
    except SlotUnavailable:
        if slot.status == SlotStatus.CONFIRMED:
            raise AlreadyConfirmed("Another application was confirmed first")
        raise
    if not await match_service.claim_confirmation(session, match):
        raise AlreadyConfirmed("Another slot of this match was confirmed first")

    _set_status(application, ApplicationStatus.CONFIRMED, now)

    rejected: List[Application] = []
    for sibling in await _slot_applications(session, slot.id):
        if sibling.id != application.id and sibling.status != ApplicationStatus.REJECTED:
            _set_status(sibling, ApplicationStatus.REJECTED, now)
            rejected.append(sibling)

    demoted: List[Application] = []
    for other in other_slots:
        for pending in await _slot_applications(session, other.id, [ApplicationStatus.PENDING]):
            _set_status(pending, ApplicationStatus.WAITLISTED, now)
            demoted.append(pending)
            await slot_store.release_lock(session, other.id, pending.applicant_user_id)
    await session.flush()

    withdrawn = await _withdraw_overlapping(session, application, slot, match, now)

    await match_service.refresh_match_status(session, match, now)

    await notification_service.emit_event(
        session,
        NotificationType.APPLICATION_CONFIRMED,
        match.id,
        [application.applicant_user_id, match.creator_user_id],
        {"application_id": application.id, "slot_id": slot.id},
    )
    if rejected:
        await notification_service.emit_event(
            session,
            NotificationType.APPLICATION_REJECTED,
            match.id,
            [a.applicant_user_id for a in rejected],
            {"slot_id": slot.id, "application_ids": [a.id for a in rejected], "reason": "slot_filled"},
        )
    if demoted:
        await notification_service.emit_event(
            session,
            NotificationType.APPLICATION_WAITLISTED,
            match.id,
            [a.applicant_user_id for a in demoted],
            {"application_ids": [a.id for a in demoted], "reason": "match_confirmed"},
        )

    logger.info(
        f"Application {application.id} confirmed on slot {slot.id} by user {acting_user_id}; "
        f"{len(rejected)} rejected, {len(demoted)} waitlisted, {withdrawn} overlapping withdrawn"
    )
    return application_to_dict(application, slot)


async def _withdraw_overlapping(
    session: AsyncSession,
    application: Application,
    slot: MatchSlot,
    match: Match,
    now: datetime,
) -> int:
    """Reject the applicant's open applications elsewhere that clash with the confirmed slot."""
    result = await session.execute(
        select(Application, MatchSlot)
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .join(Match, Match.id == MatchSlot.match_id)
        .where(
            and_(
                Application.applicant_user_id == application.applicant_user_id,
                Application.status.in_(list(OPEN_STATUSES)),
                Application.id != application.id,
                Match.date == match.date,
                Match.id != match.id,
            )
        )
    )
    withdrawn = 0
    for other, other_slot in result.all():
        if not windows_overlap(
            slot.start_time, slot.end_time, other_slot.start_time, other_slot.end_time,
            buffer_hours=OVERLAP_BUFFER_HOURS,
        ):
            continue
        was_holder = other.status == ApplicationStatus.PENDING
        _set_status(other, ApplicationStatus.REJECTED, now)
        withdrawn += 1
        await session.flush()
        await notification_service.emit_event(
            session,
            NotificationType.APPLICATION_REJECTED,
            other_slot.match_id,
            [other.applicant_user_id],
            {"application_id": other.id, "slot_id": other_slot.id, "reason": "time_conflict"},
        )
        if was_holder and await slot_store.release_lock(session, other_slot.id, other.applicant_user_id):
            await promote_next_waitlisted(session, other_slot.id, now)
    return withdrawn


async def reject_application(
    session: AsyncSession,
    application_id: int,
    acting_user_id: int,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Reject a pending or waitlisted application. Creator only.

    If the applicant held the slot's lock, the lock is released and the
    oldest waitlisted applicant takes it.

    Raises:
        Forbidden: If the caller is not the match creator
        InvalidApplicationState: If the application is not pending/waitlisted
    """
    now = now or utcnow()
    application, slot, match = await _load(session, application_id)

    if match.creator_user_id != acting_user_id:
        raise Forbidden("Only the match creator can reject applications")
    if application.status not in OPEN_STATUSES:
        raise InvalidApplicationState(
            f"Cannot reject a {application.status.value} application"
            + ("; cancel it instead" if application.status == ApplicationStatus.CONFIRMED else "")
        )

    was_holder = (
        application.status == ApplicationStatus.PENDING
        and slot.locked_by_user_id == application.applicant_user_id
    )
    _set_status(application, ApplicationStatus.REJECTED, now)
    await session.flush()

    if was_holder and await slot_store.release_lock(session, slot.id, application.applicant_user_id):
        await promote_next_waitlisted(session, slot.id, now)

    await notification_service.emit_event(
        session,
        NotificationType.APPLICATION_REJECTED,
        match.id,
        [application.applicant_user_id],
        {"application_id": application.id, "slot_id": slot.id},
    )
    return application_to_dict(application, slot)


# ============================================================================
# Cancellation and withdrawal
# ============================================================================

async def cancel_confirmed_application(
    session: AsyncSession,
    application_id: int,
    acting_user_id: int,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Undo a confirmation before the match is played. Either party may cancel.

    The application becomes ``rejected``, the slot returns to ``available``
    and the oldest waitlisted application (if any) is promoted to
    ``pending`` in the same transaction. The cancelling party's cancellation
    count goes up by one.

    Returns:
        Dict with the cancelled application and the promoted one (or None)

    Raises:
        Forbidden: If the caller is neither the creator nor the applicant
        InvalidApplicationState: If the application is not confirmed
        EditNotAllowed: If the match is already completed
    """
    now = now or utcnow()
    application, slot, match = await _load(session, application_id)

    if acting_user_id not in (match.creator_user_id, application.applicant_user_id):
        raise Forbidden("Only the match creator or the confirmed player can cancel")
    if application.status != ApplicationStatus.CONFIRMED:
        raise InvalidApplicationState(f"Cannot cancel a {application.status.value} application")
    if match.status == MatchStatus.COMPLETED or slot.status == SlotStatus.COMPLETED:
        raise EditNotAllowed("A completed match cannot be cancelled")

    _set_status(application, ApplicationStatus.REJECTED, now)
    await session.flush()
    await slot_store.reopen(session, slot.id)
    await user_service.increment_cancelled_matches(session, acting_user_id)
    await match_service.refresh_match_status(session, match, now)

    promoted = await promote_next_waitlisted(session, slot.id, now)
    for other in await match_service.get_match_slots(session, match.id):
        if other.id != slot.id:
            await promote_next_waitlisted(session, other.id, now)

    await notification_service.emit_event(
        session,
        NotificationType.APPLICATION_CANCELLED,
        match.id,
        [match.creator_user_id, application.applicant_user_id],
        {"application_id": application.id, "slot_id": slot.id, "cancelled_by_user_id": acting_user_id},
    )

    logger.info(
        f"Confirmed application {application.id} on slot {slot.id} cancelled by user {acting_user_id}; "
        f"promoted {promoted.id if promoted else None}"
    )
    return {
        "application": application_to_dict(application, slot),
        "promoted_application_id": promoted.id if promoted else None,
        "slot_status": slot.status.value,
    }


async def withdraw_application(
    session: AsyncSession,
    application_id: int,
    acting_user_id: int,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Applicant withdraws their own application.

    Open applications become ``rejected`` (freeing the hold for the
    waitlist); a confirmed one is cancelled as in
    ``cancel_confirmed_application``.

    Raises:
        Forbidden: If the caller is not the applicant
        InvalidApplicationState: If the application is already closed
    """
    now = now or utcnow()
    application, slot, match = await _load(session, application_id)

    if application.applicant_user_id != acting_user_id:
        raise Forbidden("Only the applicant can withdraw an application")
    if application.status == ApplicationStatus.CONFIRMED:
        result = await cancel_confirmed_application(session, application_id, acting_user_id, now)
        return result["application"]
    if application.status not in OPEN_STATUSES:
        raise InvalidApplicationState(f"Cannot withdraw a {application.status.value} application")

    was_holder = (
        application.status == ApplicationStatus.PENDING
        and slot.locked_by_user_id == acting_user_id
    )
    _set_status(application, ApplicationStatus.REJECTED, now)
    await session.flush()

    if was_holder and await slot_store.release_lock(session, slot.id, acting_user_id):
        await promote_next_waitlisted(session, slot.id, now)

    await notification_service.emit_event(
        session,
        NotificationType.APPLICATION_CANCELLED,
        match.id,
        [match.creator_user_id],
        {"application_id": application.id, "slot_id": slot.id, "withdrawn": True},
    )
    return application_to_dict(application, slot)


# ============================================================================
# Queries
# ============================================================================

async def get_my_applications(
    session: AsyncSession,
    user_id: int,
    statuses: Optional[Sequence[ApplicationStatus]] = None,
) -> List[Dict]:
    """A user's applications with their slot, newest first."""
    query = (
        select(Application, MatchSlot)
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .where(Application.applicant_user_id == user_id)
    )
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))
    result = await session.execute(
        query.order_by(Application.created_at.desc(), Application.id.desc())
    )
    return [application_to_dict(a, s) for a, s in result.all()]


async def get_match_applications(
    session: AsyncSession, match_id: int, acting_user_id: int
) -> List[Dict]:
    """
    All applications on a match, oldest first. Creator only.

    Raises:
        Forbidden: If the caller is not the match creator
    """
    match = await match_service.get_match(session, match_id)
    if match.creator_user_id != acting_user_id:
        raise Forbidden("Only the match creator can view applications")

    result = await session.execute(
        select(Application, MatchSlot)
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .where(MatchSlot.match_id == match_id)
        .order_by(Application.created_at, Application.id)
    )
    return [application_to_dict(a, s) for a, s in result.all()]
