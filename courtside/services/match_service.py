"""
Match lifecycle coordinator.

Creates matches, derives the match status from its slots, and owns the
match-wide operations: force-cancel, edit eligibility and edits.
"""

from datetime import date, datetime, time
from typing import Dict, List, Optional, Sequence, Tuple, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from courtside.database.models import (
    Match,
    MatchSlot,
    MatchFormat,
    MatchStatus,
    SlotStatus,
    Application,
    ApplicationStatus,
    Result,
    NotificationType,
)
from courtside.services import slot_store, user_service, notification_service
from courtside.services.errors import NotFound, Forbidden, EditNotAllowed
from courtside.utils.datetime_utils import utcnow, parse_match_date, to_iso
import logging

logger = logging.getLogger(__name__)

SlotWindow = Tuple[time, time]

# Fields a creator may change while the match is still open
EDITABLE_FIELDS = (
    "skill_level_min",
    "skill_level_max",
    "gender_filter",
    "surface_filter",
    "max_distance",
)


# ============================================================================
# Serialization
# ============================================================================

def slot_to_dict(slot: MatchSlot, application_counts: Optional[Dict[str, int]] = None) -> Dict:
    data = {
        "id": slot.id,
        "match_id": slot.match_id,
        "start_time": slot.start_time.strftime("%H:%M"),
        "end_time": slot.end_time.strftime("%H:%M"),
        "status": slot.status.value,
        "locked_by_user_id": slot.locked_by_user_id,
        "expires_at": to_iso(slot.expires_at),
        "confirmed_at": to_iso(slot.confirmed_at),
        "version": slot.version,
    }
    if application_counts is not None:
        data["application_counts"] = application_counts
    return data


def match_to_dict(
    match: Match,
    slots: Sequence[MatchSlot],
    application_counts: Optional[Dict[int, Dict[str, int]]] = None,
) -> Dict:
    return {
        "id": match.id,
        "creator_user_id": match.creator_user_id,
        "court_id": match.court_id,
        "date": match.date.isoformat(),
        "format": match.format.value,
        "skill_level_min": match.skill_level_min,
        "skill_level_max": match.skill_level_max,
        "gender_filter": match.gender_filter,
        "surface_filter": match.surface_filter,
        "max_distance": match.max_distance,
        "status": match.status.value,
        "cancelled_at": to_iso(match.cancelled_at),
        "cancellation_reason": match.cancellation_reason,
        "completed_at": to_iso(match.completed_at),
        "created_at": to_iso(match.created_at),
        "slots": [
            slot_to_dict(
                s, application_counts.get(s.id, {}) if application_counts is not None else None
            )
            for s in slots
        ],
    }


# ============================================================================
# Lookups
# ============================================================================

async def get_match(session: AsyncSession, match_id: int) -> Match:
    """
    Get a match by id.

    Raises:
        NotFound: If the match does not exist
    """
    match = await session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return match


async def get_match_slots(session: AsyncSession, match_id: int) -> List[MatchSlot]:
    """Slots of a match, earliest first."""
    result = await session.execute(
        select(MatchSlot)
        .where(MatchSlot.match_id == match_id)
        .order_by(MatchSlot.start_time, MatchSlot.id)
    )
    return list(result.scalars().all())


async def claim_confirmation(session: AsyncSession, match: Match) -> bool:
    """
    Bump ``match.version`` if it still holds the value this transaction read.

    Every confirmation goes through here, so of two requests confirming
    different slots of the same match only one commits.

    Returns:
        True if this call won; False if another confirmation got there first
    """
    await session.flush()
    expected = match.version
    result = await session.execute(
        update(Match)
        .where(and_(Match.id == match.id, Match.version == expected))
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(match)
    if result.rowcount != 1:
        logger.info(f"Match {match.id} confirmed concurrently (expected version {expected}, now {match.version})")
        return False
    return True


async def get_match_applications(
    session: AsyncSession,
    match_id: int,
    statuses: Optional[Sequence[ApplicationStatus]] = None,
) -> List[Application]:
    """Applications on any slot of a match, oldest first."""
    query = (
        select(Application)
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .where(MatchSlot.match_id == match_id)
    )
    if statuses:
        query = query.where(Application.status.in_(list(statuses)))
    result = await session.execute(query.order_by(Application.created_at, Application.id))
    return list(result.scalars().all())


async def _application_counts(session: AsyncSession, match_id: int) -> Dict[int, Dict[str, int]]:
    result = await session.execute(
        select(Application.slot_id, Application.status, func.count(Application.id))
        .join(MatchSlot, MatchSlot.id == Application.slot_id)
        .where(MatchSlot.match_id == match_id)
        .group_by(Application.slot_id, Application.status)
    )
    counts: Dict[int, Dict[str, int]] = {}
    for slot_id, status, count in result.all():
        counts.setdefault(slot_id, {})[status.value] = count
    return counts


# ============================================================================
# Status derivation
# ============================================================================

def derive_match_status(
    current: MatchStatus, slot_statuses: Sequence[SlotStatus], has_result: bool
) -> MatchStatus:
    """
    Match status as a function of its slots.

    - cancelled and completed are terminal
    - completed once a result is accepted
    - cancelled once every slot is cancelled
    - confirmed while any slot is confirmed
    - pending otherwise
    """
    if current in (MatchStatus.CANCELLED, MatchStatus.COMPLETED):
        return current
    if has_result:
        return MatchStatus.COMPLETED
    if slot_statuses and all(s == SlotStatus.CANCELLED for s in slot_statuses):
        return MatchStatus.CANCELLED
    if any(s in (SlotStatus.CONFIRMED, SlotStatus.COMPLETED) for s in slot_statuses):
        return MatchStatus.CONFIRMED
    return MatchStatus.PENDING


async def refresh_match_status(
    session: AsyncSession, match: Match, now: Optional[datetime] = None
) -> MatchStatus:
    """
    Recompute and store ``match.status`` from its slots.

    Returns:
        The new status
    """
    slots = await get_match_slots(session, match.id)
    result = await session.execute(select(Result.id).where(Result.match_id == match.id))
    has_result = result.scalar_one_or_none() is not None

    status = derive_match_status(match.status, [s.status for s in slots], has_result)
    if status != match.status:
        logger.info(f"Match {match.id}: {match.status.value} -> {status.value}")
        match.status = status
        if status == MatchStatus.CANCELLED and match.cancelled_at is None:
            match.cancelled_at = now or utcnow()
        await session.flush()
    return status


# ============================================================================
# Creation
# ============================================================================

def _validate_windows(windows: Sequence[SlotWindow]) -> None:
    if not windows:
        raise ValueError("At least one time slot is required")
    for start, end in windows:
        if start >= end:
            raise ValueError(
                f"Slot start time {start.strftime('%H:%M')} must be before end time {end.strftime('%H:%M')}"
            )
    ordered = sorted(windows)
    for (_, prev_end), (next_start, _) in zip(ordered, ordered[1:]):
        if next_start < prev_end:
            raise ValueError("Time slots of a match must not overlap")


def _validate_skill_range(skill_min: Optional[float], skill_max: Optional[float]) -> None:
    if skill_min is not None and skill_max is not None and skill_min > skill_max:
        raise ValueError("skill_level_min cannot be greater than skill_level_max")


async def create_match(
    session: AsyncSession,
    creator_user_id: int,
    court_id: int,
    match_date: Union[str, date],
    match_format: MatchFormat,
    slots: Sequence[SlotWindow],
    skill_level_min: Optional[float] = None,
    skill_level_max: Optional[float] = None,
    gender_filter: Optional[str] = None,
    surface_filter: Optional[str] = None,
    max_distance: Optional[int] = None,
    today: Optional[date] = None,
) -> Dict:
    """
    Create a match with its slots, all ``available``.

    Args:
        session: Database session
        creator_user_id: Creating user
        court_id: Court from the directory
        match_date: Day of play (today or later)
        match_format: Singles or doubles
        slots: (start, end) windows; non-empty, start < end, non-overlapping
        skill_level_min / skill_level_max / gender_filter / surface_filter /
            max_distance: Optional applicant filters
        today: Override for the current date (tests)

    Returns:
        Match dict including its slots

    Raises:
        ValueError: If the date or slots are invalid
        NotFound: If the creator or court does not exist
    """
    await user_service.get_user(session, creator_user_id)
    await user_service.get_court(session, court_id)

    match_date = parse_match_date(match_date)
    if match_date < (today or utcnow().date()):
        raise ValueError("Match date cannot be in the past")
    _validate_windows(slots)
    _validate_skill_range(skill_level_min, skill_level_max)

    match = Match(
        creator_user_id=creator_user_id,
        court_id=court_id,
        date=match_date,
        format=MatchFormat(match_format),
        skill_level_min=skill_level_min,
        skill_level_max=skill_level_max,
        gender_filter=gender_filter,
        surface_filter=surface_filter,
        max_distance=max_distance,
        status=MatchStatus.PENDING,
    )
    session.add(match)
    await session.flush()

    for start, end in sorted(slots):
        session.add(
            MatchSlot(
                match_id=match.id,
                start_time=start,
                end_time=end,
                status=SlotStatus.AVAILABLE,
                version=0,
            )
        )
    await session.flush()

    logger.info(
        f"Match {match.id} created by user {creator_user_id} at court {court_id} "
        f"on {match_date} with {len(slots)} slot(s)"
    )
    return match_to_dict(match, await get_match_slots(session, match.id))


# ============================================================================
# Cancellation
# ============================================================================

async def force_cancel(
    session: AsyncSession,
    match_id: int,
    acting_user_id: int,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Cancel a match: every open slot is cancelled and every application rejected.

    Irreversible. Cancelling an already cancelled match is a no-op.

    Args:
        session: Database session
        match_id: Match to cancel
        acting_user_id: The creator or an admin
        reason: Optional reason recorded on the match
        now: Current time (for tests)

    Returns:
        Match dict after cancellation

    Raises:
        Forbidden: If the caller is neither the creator nor an admin
        EditNotAllowed: If the match is already completed
    """
    now = now or utcnow()
    match = await get_match(session, match_id)
    actor = await user_service.get_user(session, acting_user_id)
    if match.creator_user_id != acting_user_id and not actor.is_admin:
        raise Forbidden("Only the match creator or an admin can cancel this match")

    if match.status == MatchStatus.CANCELLED:
        logger.info(f"Match {match_id} already cancelled; nothing to do")
        return match_to_dict(match, await get_match_slots(session, match_id))
    if match.status == MatchStatus.COMPLETED:
        raise EditNotAllowed("A completed match cannot be cancelled")

    was_confirmed = match.status == MatchStatus.CONFIRMED

    for slot in await get_match_slots(session, match_id):
        if slot.status not in (SlotStatus.COMPLETED, SlotStatus.CANCELLED):
            await slot_store.cancel(session, slot.id)

    applications = await get_match_applications(session, match_id)
    affected = {match.creator_user_id}
    for application in applications:
        affected.add(application.applicant_user_id)
        if application.status != ApplicationStatus.REJECTED:
            application.status = ApplicationStatus.REJECTED
            application.updated_at = now

    match.status = MatchStatus.CANCELLED
    match.cancelled_at = now
    match.cancelled_by_user_id = acting_user_id
    match.cancellation_reason = reason
    match.updated_at = now
    await session.flush()

    if was_confirmed and acting_user_id == match.creator_user_id:
        await user_service.increment_cancelled_matches(session, acting_user_id)

    await notification_service.emit_event(
        session,
        NotificationType.MATCH_CANCELLED,
        match_id,
        affected - {acting_user_id},
        {"reason": reason, "cancelled_by_user_id": acting_user_id},
    )

    logger.info(
        f"Match {match_id} cancelled by user {acting_user_id}"
        f"{' (admin)' if actor.is_admin and acting_user_id != match.creator_user_id else ''}: {reason}"
    )
    return match_to_dict(match, await get_match_slots(session, match_id))


# ============================================================================
# Editing
# ============================================================================

async def check_edit_eligibility(session: AsyncSession, match: Match) -> None:
    """
    Raise EditNotAllowed unless the match is pending with no confirmed application.
    """
    if match.status != MatchStatus.PENDING:
        raise EditNotAllowed(f"Match {match.id} is {match.status.value} and can no longer be edited")

    confirmed = await get_match_applications(session, match.id, [ApplicationStatus.CONFIRMED])
    if confirmed:
        raise EditNotAllowed(f"Match {match.id} has a confirmed player and can no longer be edited")


async def update_match(
    session: AsyncSession,
    match_id: int,
    acting_user_id: int,
    changes: Dict,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Edit a pending match.

    ``changes`` may contain ``date``, any of EDITABLE_FIELDS, ``add_slots``
    (list of (start, end) windows) and ``cancel_slot_ids``. Cancelling a held
    slot rejects its pending and waitlisted applications.

    Raises:
        Forbidden: If the caller is not the creator
        EditNotAllowed: If the match is not editable
        ValueError: If the new values are invalid
    """
    now = now or utcnow()
    match = await get_match(session, match_id)
    if match.creator_user_id != acting_user_id:
        raise Forbidden("Only the match creator can edit this match")
    await check_edit_eligibility(session, match)

    if changes.get("date") is not None:
        new_date = parse_match_date(changes["date"])
        if new_date < (today or utcnow().date()):
            raise ValueError("Match date cannot be in the past")
        match.date = new_date

    for field in EDITABLE_FIELDS:
        if field in changes:
            setattr(match, field, changes[field])
    _validate_skill_range(match.skill_level_min, match.skill_level_max)

    slots = await get_match_slots(session, match_id)
    slots_by_id = {s.id: s for s in slots}
    rejected: List[Application] = []

    for slot_id in changes.get("cancel_slot_ids") or []:
        slot = slots_by_id.get(slot_id)
        if slot is None:
            raise ValueError(f"Slot {slot_id} does not belong to match {match_id}")
        if slot.status == SlotStatus.CANCELLED:
            continue
        result = await session.execute(
            select(Application).where(
                and_(
                    Application.slot_id == slot_id,
                    Application.status.in_([ApplicationStatus.PENDING, ApplicationStatus.WAITLISTED]),
                )
            )
        )
        for application in result.scalars().all():
            application.status = ApplicationStatus.REJECTED
            application.updated_at = now
            rejected.append(application)
        await slot_store.cancel(session, slot_id)

    new_windows = list(changes.get("add_slots") or [])
    if new_windows:
        remaining = [
            (s.start_time, s.end_time) for s in slots if s.status != SlotStatus.CANCELLED
        ]
        _validate_windows(remaining + new_windows)
        for start, end in new_windows:
            session.add(
                MatchSlot(
                    match_id=match_id,
                    start_time=start,
                    end_time=end,
                    status=SlotStatus.AVAILABLE,
                    version=0,
                )
            )

    match.updated_at = now
    await session.flush()
    await refresh_match_status(session, match, now)

    for application in rejected:
        await notification_service.emit_event(
            session,
            NotificationType.APPLICATION_REJECTED,
            match_id,
            [application.applicant_user_id],
            {"application_id": application.id, "slot_id": application.slot_id, "reason": "slot_cancelled"},
        )

    logger.info(f"Match {match_id} updated by user {acting_user_id}: {sorted(changes.keys())}")
    return await get_match_detail(session, match_id)


# ============================================================================
# Queries
# ============================================================================

async def get_match_detail(session: AsyncSession, match_id: int) -> Dict:
    """Match dict with its slots and per-slot application counts by status."""
    match = await get_match(session, match_id)
    slots = await get_match_slots(session, match_id)
    counts = await _application_counts(session, match_id)
    return match_to_dict(match, slots, counts)


async def list_matches(
    session: AsyncSession,
    match_date: Optional[Union[str, date]] = None,
    match_format: Optional[MatchFormat] = None,
    status: Optional[MatchStatus] = None,
    creator_user_id: Optional[int] = None,
    court_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict]:
    """
    List matches, soonest first.

    Args:
        session: Database session
        match_date: Only this day
        match_format: Only singles or doubles
        status: Only this status
        creator_user_id: Only matches created by this user
        court_id: Only this court
        limit: Page size
        offset: Page offset

    Returns:
        List of match dicts with slots
    """
    query = select(Match)
    if match_date is not None:
        query = query.where(Match.date == parse_match_date(match_date))
    if match_format is not None:
        query = query.where(Match.format == MatchFormat(match_format))
    if status is not None:
        query = query.where(Match.status == MatchStatus(status))
    if creator_user_id is not None:
        query = query.where(Match.creator_user_id == creator_user_id)
    if court_id is not None:
        query = query.where(Match.court_id == court_id)

    result = await session.execute(
        query.order_by(Match.date, Match.id).limit(limit).offset(offset)
    )
    matches = result.scalars().all()
    if not matches:
        return []

    slot_result = await session.execute(
        select(MatchSlot)
        .where(MatchSlot.match_id.in_([m.id for m in matches]))
        .order_by(MatchSlot.start_time, MatchSlot.id)
    )
    slots_by_match: Dict[int, List[MatchSlot]] = {}
    for slot in slot_result.scalars().all():
        slots_by_match.setdefault(slot.match_id, []).append(slot)

    return [match_to_dict(m, slots_by_match.get(m.id, [])) for m in matches]
