"""
Concurrency tests: racing transactions against the same slot or match.

Each simulated request runs in its own session. Every session first reads the
rows it will act on (so it holds the same, soon to be stale, slot version a
concurrent request would), then the writes are committed one session at a
time in a shuffled order. The slot version check must let exactly one writer
through no matter the order.
"""

import random
from datetime import time
import pytest
import pytest_asyncio
from sqlalchemy import select

from courtside.database.models import Application, ApplicationStatus, SlotStatus
from courtside.services import application_service, match_service, slot_store
from courtside.services.errors import AlreadyConfirmed, SlotUnavailable


SEEDS = [1, 7, 42, 1234, 9001]


async def _preload(session, slot_id, application_id=None):
    """Read the slot, its match and optionally an application into the session."""
    slot = await slot_store.get_slot(session, slot_id)
    await match_service.get_match(session, slot.match_id)
    if application_id is not None:
        await application_service.get_application(session, application_id)


async def _applications(session_factory, slot_id, status):
    async with session_factory() as session:
        result = await session.execute(
            select(Application).where(Application.slot_id == slot_id, Application.status == status)
        )
        return result.scalars().all()


@pytest_asyncio.fixture
async def open_slot(db_session, make_match):
    match = await make_match()
    await db_session.commit()
    return match["slots"][0]["id"]


@pytest_asyncio.fixture
async def players(db_session, make_user):
    users = [await make_user(f"Racer {i}") for i in range(6)]
    await db_session.commit()
    return users


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", SEEDS)
async def test_concurrent_applies_yield_one_pending(session_factory, open_slot, players, seed):
    rng = random.Random(seed)
    sessions = [session_factory() for _ in players]
    try:
        for session in sessions:
            await _preload(session, open_slot)

        order = list(range(len(players)))
        rng.shuffle(order)
        statuses = {}
        for i in order:
            app = await application_service.apply_to_slot(sessions[i], open_slot, players[i].id)
            await sessions[i].commit()
            statuses[players[i].id] = app["status"]
    finally:
        for session in sessions:
            await session.close()

    assert list(statuses.values()).count(ApplicationStatus.PENDING.value) == 1
    assert list(statuses.values()).count(ApplicationStatus.WAITLISTED.value) == len(players) - 1
    # The first writer wins
    assert statuses[players[order[0]].id] == ApplicationStatus.PENDING.value

    pending = await _applications(session_factory, open_slot, ApplicationStatus.PENDING)
    assert len(pending) == 1
    async with session_factory() as session:
        slot = await slot_store.get_slot(session, open_slot)
        assert slot.status == SlotStatus.LOCKED
        assert slot.locked_by_user_id == pending[0].applicant_user_id


@pytest.mark.asyncio
async def test_concurrent_try_lock_only_one_wins(session_factory, open_slot, players):
    first, second = session_factory(), session_factory()
    try:
        await _preload(first, open_slot)
        await _preload(second, open_slot)

        await slot_store.try_lock(first, open_slot, players[0].id)
        await first.commit()

        with pytest.raises(SlotUnavailable):
            await slot_store.try_lock(second, open_slot, players[1].id)
        await second.rollback()
    finally:
        await first.close()
        await second.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", SEEDS)
async def test_racing_confirms_leave_one_confirmed(session_factory, db_session, open_slot, players, creator, seed):
    rng = random.Random(seed)
    apps = [
        await application_service.apply_to_slot(db_session, open_slot, user.id)
        for user in players[:4]
    ]
    await db_session.commit()

    sessions = [session_factory() for _ in apps]
    winners, losers = [], []
    try:
        preload_order = list(range(len(apps)))
        rng.shuffle(preload_order)
        for i in preload_order:
            await _preload(sessions[i], open_slot, apps[i]["id"])

        commit_order = list(range(len(apps)))
        rng.shuffle(commit_order)
        for i in commit_order:
            try:
                await application_service.confirm_application(sessions[i], apps[i]["id"], creator.id)
                await sessions[i].commit()
                winners.append(apps[i]["id"])
            except AlreadyConfirmed:
                await sessions[i].rollback()
                losers.append(apps[i]["id"])
    finally:
        for session in sessions:
            await session.close()

    assert len(winners) == 1
    assert len(losers) == len(apps) - 1

    confirmed = await _applications(session_factory, open_slot, ApplicationStatus.CONFIRMED)
    assert [a.id for a in confirmed] == winners
    rejected = await _applications(session_factory, open_slot, ApplicationStatus.REJECTED)
    assert sorted(a.id for a in rejected) == sorted(losers)


@pytest.mark.asyncio
@pytest.mark.parametrize("cancel_first", [True, False])
async def test_cancel_racing_apply_leaves_at_most_one_pending(
    session_factory, db_session, open_slot, players, creator, cancel_first
):
    confirmed = await application_service.apply_to_slot(db_session, open_slot, players[0].id)
    await application_service.confirm_application(db_session, confirmed["id"], creator.id)
    waiting = await application_service.apply_to_slot(db_session, open_slot, players[1].id)
    await db_session.commit()

    canceller, applicant = session_factory(), session_factory()
    try:
        await _preload(canceller, open_slot, confirmed["id"])
        await _preload(applicant, open_slot)

        async def cancel():
            await application_service.cancel_confirmed_application(canceller, confirmed["id"], creator.id)
            await canceller.commit()

        async def apply():
            await application_service.apply_to_slot(applicant, open_slot, players[2].id)
            await applicant.commit()

        steps = [cancel, apply] if cancel_first else [apply, cancel]
        for step in steps:
            await step()
    finally:
        await canceller.close()
        await applicant.close()

    pending = await _applications(session_factory, open_slot, ApplicationStatus.PENDING)
    assert [a.id for a in pending] == [waiting["id"]]
    waitlisted = await _applications(session_factory, open_slot, ApplicationStatus.WAITLISTED)
    assert [a.applicant_user_id for a in waitlisted] == [players[2].id]
    async with session_factory() as session:
        slot = await slot_store.get_slot(session, open_slot)
        assert slot.status == SlotStatus.LOCKED
        assert slot.locked_by_user_id == players[1].id


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", SEEDS)
async def test_confirms_on_different_slots_leave_one_confirmed(
    session_factory, db_session, make_match, players, creator, seed
):
    rng = random.Random(seed)
    match = await make_match(slots=[(time(8, 0), time(9, 0)), (time(10, 0), time(11, 0))])
    slot_ids = [s["id"] for s in match["slots"]]
    # Waitlisted claims on free slots: confirming one never touches the other slot's row
    waiting = [
        Application(slot_id=slot_id, applicant_user_id=user.id, status=ApplicationStatus.WAITLISTED)
        for slot_id, user in zip(slot_ids, players)
    ]
    db_session.add_all(waiting)
    await db_session.commit()

    sessions = [session_factory() for _ in waiting]
    winners, losers = [], []
    try:
        for session, application in zip(sessions, waiting):
            await _preload(session, application.slot_id, application.id)
            await match_service.get_match_slots(session, match["id"])

        order = list(range(len(waiting)))
        rng.shuffle(order)
        for i in order:
            try:
                await application_service.confirm_application(sessions[i], waiting[i].id, creator.id)
                await sessions[i].commit()
                winners.append(waiting[i].id)
            except AlreadyConfirmed:
                await sessions[i].rollback()
                losers.append(waiting[i].id)
    finally:
        for session in sessions:
            await session.close()

    assert winners == [waiting[order[0]].id]
    assert losers == [waiting[order[1]].id]
    async with session_factory() as session:
        statuses = [s.status for s in await match_service.get_match_slots(session, match["id"])]
        assert statuses.count(SlotStatus.CONFIRMED) == 1
        assert SlotStatus.LOCKED not in statuses
