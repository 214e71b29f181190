"""
Slot store: owns match slot state and arbitrates the reservation hold.

State machine::

    available -> locked -> confirmed -> completed
        |          |           |
        +----------+-----------+--> cancelled

plus ``locked -> available`` (release/expiry) and ``confirmed -> available``
(a confirmed application was cancelled before the match was played).

Every write is a compare-and-swap on ``MatchSlot.version``: the UPDATE only
matches the row version this transaction read, so of two concurrent writers
exactly one changes the row and the other sees ``SlotUnavailable``.

Lock expiry is lazy. Nothing here runs on a timer; callers check
``is_lock_expired`` when they touch a slot.
"""

from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update, and_
from courtside.database.models import MatchSlot, SlotStatus
from courtside.services.errors import NotFound, SlotUnavailable, InvalidSlotTransition
from courtside.utils.constants import SLOT_LOCK_EXPIRATION_HOURS
from courtside.utils.datetime_utils import utcnow, ensure_utc
import logging

logger = logging.getLogger(__name__)

_TRANSITIONS = {
    SlotStatus.AVAILABLE: {SlotStatus.LOCKED, SlotStatus.CANCELLED},
    SlotStatus.LOCKED: {
        SlotStatus.LOCKED,
        SlotStatus.AVAILABLE,
        SlotStatus.CONFIRMED,
        SlotStatus.CANCELLED,
    },
    SlotStatus.CONFIRMED: {SlotStatus.COMPLETED, SlotStatus.CANCELLED, SlotStatus.AVAILABLE},
    SlotStatus.COMPLETED: set(),
    SlotStatus.CANCELLED: set(),
}

_CLEARED_HOLD = {"locked_by_user_id": None, "locked_at": None, "expires_at": None}


def can_transition(current: SlotStatus, target: SlotStatus) -> bool:
    """Whether ``current -> target`` is an edge of the slot state machine."""
    return target in _TRANSITIONS[current]


def is_lock_expired(slot: MatchSlot, now: Optional[datetime] = None) -> bool:
    """True if the slot is locked and its hold has lapsed."""
    if slot.status != SlotStatus.LOCKED or slot.expires_at is None:
        return False
    return ensure_utc(slot.expires_at) <= (now or utcnow())


async def get_slot(session: AsyncSession, slot_id: int) -> MatchSlot:
    """
    Get a slot by id.

    Raises:
        NotFound: If the slot does not exist
    """
    slot = await session.get(MatchSlot, slot_id)
    if not slot:
        raise NotFound(f"Slot {slot_id} not found")
    return slot


async def _swap(session: AsyncSession, slot: MatchSlot, **values) -> bool:
    """
    Write ``values`` if the row still has the version we read.

    Returns:
        True if this call changed the row; False if another transaction got
        there first (the slot is reloaded either way)
    """
    expected = slot.version
    result = await session.execute(
        update(MatchSlot)
        .where(and_(MatchSlot.id == slot.id, MatchSlot.version == expected))
        .values(version=expected + 1, **values)
        .execution_options(synchronize_session=False)
    )
    await session.refresh(slot)
    if result.rowcount != 1:
        logger.info(f"Slot {slot.id} changed concurrently (expected version {expected}, now {slot.version})")
        return False
    return True


def _require_transition(slot: MatchSlot, target: SlotStatus) -> None:
    if not can_transition(slot.status, target):
        raise InvalidSlotTransition(
            f"Slot {slot.id} cannot move from {slot.status.value} to {target.value}"
        )


async def try_lock(
    session: AsyncSession,
    slot_id: int,
    user_id: int,
    ttl: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> MatchSlot:
    """
    Place a reservation hold on a slot for ``user_id``.

    Succeeds if the slot is available, its current hold has expired, or the
    caller already holds it (the hold is then extended).

    Args:
        session: Database session
        slot_id: Slot to lock
        user_id: User taking the hold
        ttl: Hold duration, SLOT_LOCK_EXPIRATION_HOURS by default
        now: Current time (for tests)

    Returns:
        The locked slot

    Raises:
        SlotUnavailable: If someone else holds an unexpired lock, the slot is
            confirmed/completed/cancelled, or a concurrent writer won the race
    """
    now = now or utcnow()
    ttl = ttl if ttl is not None else timedelta(hours=SLOT_LOCK_EXPIRATION_HOURS)
    slot = await get_slot(session, slot_id)

    free = slot.status == SlotStatus.AVAILABLE or is_lock_expired(slot, now)
    own_hold = slot.status == SlotStatus.LOCKED and slot.locked_by_user_id == user_id
    if not (free or own_hold):
        raise SlotUnavailable(f"Slot {slot_id} is {slot.status.value}")

    swapped = await _swap(
        session,
        slot,
        status=SlotStatus.LOCKED,
        locked_by_user_id=user_id,
        locked_at=now,
        expires_at=now + ttl,
    )
    if not swapped:
        raise SlotUnavailable(f"Slot {slot_id} was taken by another request")

    logger.info(f"Slot {slot_id} locked by user {user_id} until {slot.expires_at}")
    return slot


async def release_lock(session: AsyncSession, slot_id: int, user_id: int) -> bool:
    """
    Return a locked slot to ``available`` if ``user_id`` holds the lock.

    Idempotent: releasing a hold you do not own (or that already lapsed and
    was taken over) is a no-op.

    Returns:
        True if the hold was released
    """
    slot = await get_slot(session, slot_id)
    if slot.status != SlotStatus.LOCKED or slot.locked_by_user_id != user_id:
        return False

    released = await _swap(session, slot, status=SlotStatus.AVAILABLE, **_CLEARED_HOLD)
    if released:
        logger.info(f"Slot {slot_id} released by user {user_id}")
    return released


async def expire_lock(
    session: AsyncSession, slot_id: int, now: Optional[datetime] = None
) -> Optional[int]:
    """
    Free a slot whose hold has lapsed.

    Returns:
        User id of the expired holder, or None if there was nothing to expire
    """
    slot = await get_slot(session, slot_id)
    if not is_lock_expired(slot, now):
        return None

    holder = slot.locked_by_user_id
    if not await _swap(session, slot, status=SlotStatus.AVAILABLE, **_CLEARED_HOLD):
        return None

    logger.info(f"Slot {slot_id} hold by user {holder} expired")
    return holder


async def confirm(
    session: AsyncSession,
    slot_id: int,
    user_id: int,
    now: Optional[datetime] = None,
) -> MatchSlot:
    """
    Move a locked slot to ``confirmed`` for ``user_id``.

    The hold passes to ``user_id`` even if another applicant held the lock;
    the creator's choice overrides the hold.

    Raises:
        InvalidSlotTransition: If the slot is not locked
        SlotUnavailable: If a concurrent writer changed the slot first
    """
    now = now or utcnow()
    slot = await get_slot(session, slot_id)
    if slot.status != SlotStatus.LOCKED:
        raise InvalidSlotTransition(f"Cannot confirm slot {slot_id}: it is {slot.status.value}, not locked")

    swapped = await _swap(
        session,
        slot,
        status=SlotStatus.CONFIRMED,
        locked_by_user_id=user_id,
        expires_at=None,
        confirmed_at=now,
    )
    if not swapped:
        raise SlotUnavailable(f"Slot {slot_id} changed before it could be confirmed")

    logger.info(f"Slot {slot_id} confirmed for user {user_id}")
    return slot


async def _transition(session: AsyncSession, slot_id: int, target: SlotStatus, **values) -> MatchSlot:
    slot = await get_slot(session, slot_id)
    _require_transition(slot, target)
    if not await _swap(session, slot, status=target, **values):
        raise SlotUnavailable(f"Slot {slot_id} changed before it could become {target.value}")
    logger.info(f"Slot {slot_id} -> {target.value}")
    return slot


async def cancel(session: AsyncSession, slot_id: int) -> MatchSlot:
    """
    Cancel an available, locked or confirmed slot. Terminal.

    Raises:
        InvalidSlotTransition: If the slot is already completed or cancelled
    """
    return await _transition(session, slot_id, SlotStatus.CANCELLED, expires_at=None)


async def complete(session: AsyncSession, slot_id: int) -> MatchSlot:
    """
    Mark a confirmed slot as played. Terminal.

    Raises:
        InvalidSlotTransition: If the slot is not confirmed
    """
    return await _transition(session, slot_id, SlotStatus.COMPLETED)


async def reopen(session: AsyncSession, slot_id: int) -> MatchSlot:
    """
    Return a confirmed slot to ``available`` after its application was cancelled.

    Raises:
        InvalidSlotTransition: If the slot is not confirmed
    """
    slot = await get_slot(session, slot_id)
    if slot.status != SlotStatus.CONFIRMED:
        raise InvalidSlotTransition(f"Cannot reopen slot {slot_id}: it is {slot.status.value}, not confirmed")
    return await _transition(
        session, slot_id, SlotStatus.AVAILABLE, confirmed_at=None, **_CLEARED_HOLD
    )
