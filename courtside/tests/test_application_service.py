"""
Tests for the application engine: apply, confirm, reject, cancel, withdraw,
waitlist promotion and lazy expiry.
"""

import pytest
import pytest_asyncio
from datetime import time, timedelta
from sqlalchemy import select

from courtside.database.models import (
    Application,
    ApplicationStatus,
    MatchStatus,
    Notification,
    NotificationType,
    SlotStatus,
)
from courtside.services import application_service, match_service, slot_store, stats_service
from courtside.services.errors import (
    Forbidden,
    AlreadyConfirmed,
    EditNotAllowed,
    ApplicationNotAllowed,
    InvalidApplicationState,
)
from courtside.utils.datetime_utils import utcnow, ensure_utc


# ---------------------------------------------------------------------------
# Fixtures and helpers
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def applicants(make_user):
    return [await make_user(f"Applicant {i}") for i in range(4)]


@pytest_asyncio.fixture
async def match(make_match):
    return await make_match()


@pytest_asyncio.fixture
async def slot_id(match):
    return match["slots"][0]["id"]


async def _status(session, application_id):
    application = await application_service.get_application(session, application_id)
    return application.status


async def _slot_applications(session, slot_id, status):
    result = await session.execute(
        select(Application).where(Application.slot_id == slot_id, Application.status == status)
    )
    return result.scalars().all()


async def _event_types(session, match_id):
    result = await session.execute(
        select(Notification.type).where(Notification.match_id == match_id).order_by(Notification.id)
    )
    return list(result.scalars().all())


async def _events(session, match_id, event_type):
    result = await session.execute(
        select(Notification)
        .where(Notification.match_id == match_id, Notification.type == event_type.value)
        .order_by(Notification.id)
    )
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


class TestApply:
    @pytest.mark.asyncio
    async def test_first_applicant_takes_the_hold(self, db_session, match, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)

        assert app["status"] == ApplicationStatus.PENDING.value
        assert app["match_id"] == match["id"]
        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.status == SlotStatus.LOCKED
        assert slot.locked_by_user_id == applicants[0].id

        events = await _events(db_session, match["id"], NotificationType.SLOT_APPLIED)
        assert len(events) == 1
        assert events[0].user_ids == [creator.id]
        assert events[0].data["applicant_user_id"] == applicants[0].id

    @pytest.mark.asyncio
    async def test_later_applicants_are_waitlisted(self, db_session, match, slot_id, applicants):
        first = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        second = await application_service.apply_to_slot(
            db_session, slot_id, applicants[1].id, guest_partner_name="Sam"
        )

        assert first["status"] == ApplicationStatus.PENDING.value
        assert second["status"] == ApplicationStatus.WAITLISTED.value
        assert second["guest_partner_name"] == "Sam"

        waitlisted = await _events(db_session, match["id"], NotificationType.APPLICATION_WAITLISTED)
        assert [e.user_ids for e in waitlisted] == [[applicants[1].id]]

    @pytest.mark.asyncio
    async def test_resubmission_returns_existing_and_refreshes_hold(self, db_session, slot_id, applicants):
        t0 = utcnow()
        first = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id, now=t0)
        again = await application_service.apply_to_slot(
            db_session, slot_id, applicants[0].id, now=t0 + timedelta(hours=1)
        )

        assert again["id"] == first["id"]
        slot = await slot_store.get_slot(db_session, slot_id)
        assert ensure_utc(slot.expires_at) == t0 + timedelta(hours=3)
        assert len(await _slot_applications(db_session, slot_id, ApplicationStatus.PENDING)) == 1

    @pytest.mark.asyncio
    async def test_cannot_apply_to_own_match(self, db_session, slot_id, creator):
        with pytest.raises(ApplicationNotAllowed):
            await application_service.apply_to_slot(db_session, slot_id, creator.id)

    @pytest.mark.asyncio
    async def test_one_active_application_per_match(self, db_session, make_match, applicants):
        match = await make_match(slots=[(time(8, 0), time(9, 0)), (time(10, 0), time(11, 0))])
        first_slot, second_slot = [s["id"] for s in match["slots"]]

        await application_service.apply_to_slot(db_session, first_slot, applicants[0].id)
        with pytest.raises(ApplicationNotAllowed):
            await application_service.apply_to_slot(db_session, second_slot, applicants[0].id)

    @pytest.mark.asyncio
    async def test_cannot_apply_to_cancelled_match(self, db_session, match, slot_id, applicants, creator):
        await match_service.force_cancel(db_session, match["id"], creator.id)
        with pytest.raises(ApplicationNotAllowed):
            await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)

    @pytest.mark.asyncio
    async def test_time_conflict_with_confirmed_match(self, db_session, make_match, make_user, slot_id, applicants, creator):
        # Applicant 0 is confirmed 08:00-09:00 on this match
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)

        other_creator = await make_user("Other Creator")
        clash = await make_match(slots=[(time(8, 30), time(9, 30))], creator_user=other_creator)
        later = await make_match(slots=[(time(12, 0), time(13, 0))], creator_user=other_creator)

        with pytest.raises(ApplicationNotAllowed) as exc_info:
            await application_service.apply_to_slot(db_session, clash["slots"][0]["id"], applicants[0].id)
        assert "08:00" in str(exc_info.value)

        ok = await application_service.apply_to_slot(db_session, later["slots"][0]["id"], applicants[0].id)
        assert ok["status"] == ApplicationStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_apply_to_confirmed_match_is_waitlisted(self, db_session, make_match, applicants, creator):
        match = await make_match(slots=[(time(8, 0), time(9, 0)), (time(10, 0), time(11, 0))])
        first_slot, second_slot = [s["id"] for s in match["slots"]]

        app = await application_service.apply_to_slot(db_session, first_slot, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)

        late = await application_service.apply_to_slot(db_session, second_slot, applicants[1].id)
        assert late["status"] == ApplicationStatus.WAITLISTED.value
        slot = await slot_store.get_slot(db_session, second_slot)
        assert slot.status == SlotStatus.AVAILABLE


# ---------------------------------------------------------------------------
# Confirm
# ---------------------------------------------------------------------------


class TestConfirm:
    @pytest.mark.asyncio
    async def test_confirm_rejects_every_sibling(self, db_session, match, slot_id, applicants, creator):
        apps = [
            await application_service.apply_to_slot(db_session, slot_id, user.id)
            for user in applicants
        ]
        chosen = apps[2]  # a waitlisted application; the creator may pick anyone

        confirmed = await application_service.confirm_application(db_session, chosen["id"], creator.id)

        assert confirmed["status"] == ApplicationStatus.CONFIRMED.value
        for other in apps:
            if other["id"] != chosen["id"]:
                assert await _status(db_session, other["id"]) == ApplicationStatus.REJECTED

        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.status == SlotStatus.CONFIRMED
        assert slot.locked_by_user_id == applicants[2].id
        m = await match_service.get_match(db_session, match["id"])
        assert m.status == MatchStatus.CONFIRMED

        types = await _event_types(db_session, match["id"])
        assert NotificationType.APPLICATION_CONFIRMED.value in types
        rejected = await _events(db_session, match["id"], NotificationType.APPLICATION_REJECTED)
        assert sorted(rejected[0].user_ids) == sorted(u.id for i, u in enumerate(applicants) if i != 2)

    @pytest.mark.asyncio
    async def test_only_creator_can_confirm(self, db_session, slot_id, applicants):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        with pytest.raises(Forbidden):
            await application_service.confirm_application(db_session, app["id"], applicants[0].id)

    @pytest.mark.asyncio
    async def test_second_confirm_on_slot_fails(self, db_session, slot_id, applicants, creator):
        first = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)
        await application_service.confirm_application(db_session, first["id"], creator.id)

        with pytest.raises(AlreadyConfirmed):
            await application_service.confirm_application(db_session, first["id"], creator.id)

        late = await application_service.apply_to_slot(db_session, slot_id, applicants[2].id)
        with pytest.raises(AlreadyConfirmed):
            await application_service.confirm_application(db_session, late["id"], creator.id)

        confirmed = await _slot_applications(db_session, slot_id, ApplicationStatus.CONFIRMED)
        assert len(confirmed) == 1

    @pytest.mark.asyncio
    async def test_cannot_confirm_rejected_application(self, db_session, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.reject_application(db_session, app["id"], creator.id)
        with pytest.raises(InvalidApplicationState):
            await application_service.confirm_application(db_session, app["id"], creator.id)

    @pytest.mark.asyncio
    async def test_confirm_demotes_pending_on_other_slots(self, db_session, make_match, applicants, creator):
        match = await make_match(slots=[(time(8, 0), time(9, 0)), (time(10, 0), time(11, 0))])
        first_slot, second_slot = [s["id"] for s in match["slots"]]

        chosen = await application_service.apply_to_slot(db_session, first_slot, applicants[0].id)
        other = await application_service.apply_to_slot(db_session, second_slot, applicants[1].id)
        await application_service.confirm_application(db_session, chosen["id"], creator.id)

        assert await _status(db_session, other["id"]) == ApplicationStatus.WAITLISTED
        slot = await slot_store.get_slot(db_session, second_slot)
        assert slot.status == SlotStatus.AVAILABLE
        assert slot.locked_by_user_id is None

        # At most one confirmed slot per match
        with pytest.raises(AlreadyConfirmed):
            await application_service.confirm_application(db_session, other["id"], creator.id)

    @pytest.mark.asyncio
    async def test_confirm_withdraws_overlapping_applications(self, db_session, make_match, make_user, slot_id, applicants, creator):
        other_creator = await make_user("Other Creator")
        near = await make_match(slots=[(time(10, 0), time(11, 0))], creator_user=other_creator)
        far = await make_match(slots=[(time(14, 0), time(15, 0))], creator_user=other_creator)
        near_slot = near["slots"][0]["id"]

        chosen = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        near_app = await application_service.apply_to_slot(db_session, near_slot, applicants[0].id)
        near_waiting = await application_service.apply_to_slot(db_session, near_slot, applicants[1].id)
        far_app = await application_service.apply_to_slot(db_session, far["slots"][0]["id"], applicants[0].id)

        await application_service.confirm_application(db_session, chosen["id"], creator.id)

        # 10:00 is within two hours of the 08:00-09:00 slot; 14:00 is not
        assert await _status(db_session, near_app["id"]) == ApplicationStatus.REJECTED
        assert await _status(db_session, far_app["id"]) == ApplicationStatus.PENDING
        # The freed hold went to the next in line
        assert await _status(db_session, near_waiting["id"]) == ApplicationStatus.PENDING
        slot = await slot_store.get_slot(db_session, near_slot)
        assert slot.locked_by_user_id == applicants[1].id

        # The withdrawn applicant hears about it on the other match
        rejected = await _events(db_session, near["id"], NotificationType.APPLICATION_REJECTED)
        assert len(rejected) == 1
        assert rejected[0].user_ids == [applicants[0].id]
        assert rejected[0].data == {
            "application_id": near_app["id"],
            "slot_id": near_slot,
            "reason": "time_conflict",
        }
        assert await _events(db_session, far["id"], NotificationType.APPLICATION_REJECTED) == []


# ---------------------------------------------------------------------------
# Reject, cancel, withdraw and promotion
# ---------------------------------------------------------------------------


class TestRejectAndCancel:
    @pytest.mark.asyncio
    async def test_reject_holder_promotes_next(self, db_session, match, slot_id, applicants, creator):
        holder = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)
        last = await application_service.apply_to_slot(db_session, slot_id, applicants[2].id)

        rejected = await application_service.reject_application(db_session, holder["id"], creator.id)

        assert rejected["status"] == ApplicationStatus.REJECTED.value
        assert await _status(db_session, waiting["id"]) == ApplicationStatus.PENDING
        assert await _status(db_session, last["id"]) == ApplicationStatus.WAITLISTED
        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.locked_by_user_id == applicants[1].id

        promoted = await _events(db_session, match["id"], NotificationType.APPLICATION_PROMOTED)
        assert applicants[1].id in promoted[0].user_ids

    @pytest.mark.asyncio
    async def test_reject_waitlisted_keeps_hold(self, db_session, slot_id, applicants, creator):
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)

        await application_service.reject_application(db_session, waiting["id"], creator.id)

        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.locked_by_user_id == applicants[0].id

    @pytest.mark.asyncio
    async def test_reject_confirmed_is_refused(self, db_session, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)
        with pytest.raises(InvalidApplicationState):
            await application_service.reject_application(db_session, app["id"], creator.id)

    @pytest.mark.asyncio
    async def test_cancel_confirmed_without_waitlist_reopens_slot(self, db_session, match, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)

        result = await application_service.cancel_confirmed_application(db_session, app["id"], applicants[0].id)

        assert result["application"]["status"] == ApplicationStatus.REJECTED.value
        assert result["promoted_application_id"] is None
        assert result["slot_status"] == SlotStatus.AVAILABLE.value
        assert await _slot_applications(db_session, slot_id, ApplicationStatus.PENDING) == []

        m = await match_service.get_match(db_session, match["id"])
        assert m.status == MatchStatus.PENDING
        stats = await stats_service.get_user_stats(db_session, applicants[0].id)
        assert stats["cancelled_matches"] == 1

    @pytest.mark.asyncio
    async def test_cancel_confirmed_promotes_exactly_one(self, db_session, match, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)
        first_waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)
        await application_service.apply_to_slot(db_session, slot_id, applicants[2].id)

        result = await application_service.cancel_confirmed_application(db_session, app["id"], creator.id)

        assert result["promoted_application_id"] == first_waiting["id"]
        assert result["slot_status"] == SlotStatus.LOCKED.value
        pending = await _slot_applications(db_session, slot_id, ApplicationStatus.PENDING)
        assert [a.id for a in pending] == [first_waiting["id"]]
        assert len(await _slot_applications(db_session, slot_id, ApplicationStatus.WAITLISTED)) == 1

        creator_stats = await stats_service.get_user_stats(db_session, creator.id)
        assert creator_stats["cancelled_matches"] == 1

    @pytest.mark.asyncio
    async def test_cancel_promotes_on_other_slots(self, db_session, make_match, applicants, creator):
        match = await make_match(slots=[(time(8, 0), time(9, 0)), (time(10, 0), time(11, 0))])
        first_slot, second_slot = [s["id"] for s in match["slots"]]
        chosen = await application_service.apply_to_slot(db_session, first_slot, applicants[0].id)
        demoted = await application_service.apply_to_slot(db_session, second_slot, applicants[1].id)
        await application_service.confirm_application(db_session, chosen["id"], creator.id)
        assert await _status(db_session, demoted["id"]) == ApplicationStatus.WAITLISTED

        await application_service.cancel_confirmed_application(db_session, chosen["id"], creator.id)

        assert await _status(db_session, demoted["id"]) == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_cancel_by_stranger_forbidden(self, db_session, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)
        with pytest.raises(Forbidden):
            await application_service.cancel_confirmed_application(db_session, app["id"], applicants[3].id)

    @pytest.mark.asyncio
    async def test_cancel_requires_confirmed(self, db_session, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        with pytest.raises(InvalidApplicationState):
            await application_service.cancel_confirmed_application(db_session, app["id"], creator.id)

    @pytest.mark.asyncio
    async def test_withdraw_pending_promotes_next(self, db_session, slot_id, applicants):
        holder = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)

        withdrawn = await application_service.withdraw_application(db_session, holder["id"], applicants[0].id)

        assert withdrawn["status"] == ApplicationStatus.REJECTED.value
        assert await _status(db_session, waiting["id"]) == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_withdraw_confirmed_cancels(self, db_session, match, slot_id, applicants, creator):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.confirm_application(db_session, app["id"], creator.id)

        withdrawn = await application_service.withdraw_application(db_session, app["id"], applicants[0].id)

        assert withdrawn["status"] == ApplicationStatus.REJECTED.value
        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.status == SlotStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_withdraw_someone_elses_application(self, db_session, slot_id, applicants):
        app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        with pytest.raises(Forbidden):
            await application_service.withdraw_application(db_session, app["id"], applicants[1].id)

    @pytest.mark.asyncio
    async def test_release_slot(self, db_session, slot_id, applicants):
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)

        # Not the holder: nothing to release
        result = await application_service.release_slot(db_session, slot_id, applicants[2].id)
        assert result["released"] is False

        result = await application_service.release_slot(db_session, slot_id, applicants[0].id)
        assert result["released"] is True
        assert result["status"] == SlotStatus.LOCKED.value
        assert await _status(db_session, waiting["id"]) == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_release_last_hold_frees_slot(self, db_session, slot_id, applicants):
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        result = await application_service.release_slot(db_session, slot_id, applicants[0].id)
        assert result["status"] == SlotStatus.AVAILABLE.value

    @pytest.mark.asyncio
    async def test_promotion_is_idempotent(self, db_session, slot_id, applicants):
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)

        # Slot is held: nothing to promote, however often it is asked
        assert await application_service.promote_next_waitlisted(db_session, slot_id) is None
        assert await application_service.promote_next_waitlisted(db_session, slot_id) is None
        assert len(await _slot_applications(db_session, slot_id, ApplicationStatus.PENDING)) == 1


# ---------------------------------------------------------------------------
# Lazy expiry
# ---------------------------------------------------------------------------


class TestExpiry:
    @pytest.mark.asyncio
    async def test_expire_stale_applications(self, db_session, slot_id, applicants):
        t0 = utcnow()
        holder = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id, now=t0)
        waiting = await application_service.apply_to_slot(db_session, slot_id, applicants[1].id, now=t0)

        assert await application_service.expire_stale_applications(db_session, now=t0 + timedelta(hours=1)) == 0

        expired = await application_service.expire_stale_applications(db_session, now=t0 + timedelta(hours=3))
        assert expired == 1
        assert await _status(db_session, holder["id"]) == ApplicationStatus.EXPIRED
        assert await _status(db_session, waiting["id"]) == ApplicationStatus.PENDING
        slot = await slot_store.get_slot(db_session, slot_id)
        assert slot.locked_by_user_id == applicants[1].id

    @pytest.mark.asyncio
    async def test_lapsed_hold_is_settled_on_next_apply(self, db_session, slot_id, applicants):
        t0 = utcnow()
        holder = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id, now=t0)

        newcomer = await application_service.apply_to_slot(
            db_session, slot_id, applicants[1].id, now=t0 + timedelta(hours=3)
        )

        assert await _status(db_session, holder["id"]) == ApplicationStatus.EXPIRED
        assert newcomer["status"] == ApplicationStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_expired_applicant_may_apply_again(self, db_session, slot_id, applicants):
        t0 = utcnow()
        first = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id, now=t0)
        await application_service.expire_stale_applications(db_session, now=t0 + timedelta(hours=3))

        again = await application_service.apply_to_slot(
            db_session, slot_id, applicants[0].id, now=t0 + timedelta(hours=3)
        )
        assert again["id"] != first["id"]
        assert again["status"] == ApplicationStatus.PENDING.value


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    @pytest.mark.asyncio
    async def test_match_applications_creator_only(self, db_session, match, slot_id, applicants, creator):
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.apply_to_slot(db_session, slot_id, applicants[1].id)

        apps = await application_service.get_match_applications(db_session, match["id"], creator.id)
        assert [a["applicant_user_id"] for a in apps] == [applicants[0].id, applicants[1].id]

        with pytest.raises(Forbidden):
            await application_service.get_match_applications(db_session, match["id"], applicants[0].id)

    @pytest.mark.asyncio
    async def test_my_applications(self, db_session, make_match, make_user, match, slot_id, applicants):
        other_creator = await make_user("Other Creator")
        other = await make_match(slots=[(time(18, 0), time(19, 0))], creator_user=other_creator)
        await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
        await application_service.apply_to_slot(db_session, other["slots"][0]["id"], applicants[0].id)

        mine = await application_service.get_my_applications(db_session, applicants[0].id)
        assert len(mine) == 2
        assert {a["match_id"] for a in mine} == {match["id"], other["id"]}

        waitlisted = await application_service.get_my_applications(
            db_session, applicants[0].id, [ApplicationStatus.WAITLISTED]
        )
        assert waitlisted == []


@pytest.mark.asyncio
async def test_edit_blocked_once_confirmed(db_session, match, slot_id, applicants, creator):
    app = await application_service.apply_to_slot(db_session, slot_id, applicants[0].id)
    await application_service.confirm_application(db_session, app["id"], creator.id)

    with pytest.raises(EditNotAllowed):
        await match_service.update_match(db_session, match["id"], creator.id, {"gender_filter": "F"})
