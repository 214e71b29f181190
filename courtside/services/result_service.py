"""
Result & rating pipeline.

Accepting a result is one atomic unit: the Result row, one EloLog per
participant, both rating snapshots, the slot (-> completed) and the match
(-> completed) are written in the caller's transaction. Rating snapshots are
read with SELECT ... FOR UPDATE so two results touching the same player
serialize instead of overwriting each other.
"""

from datetime import datetime
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from courtside.database.models import (
    Application,
    ApplicationStatus,
    EloLog,
    MatchFormat,
    MatchStatus,
    Result,
    ResultOutcome,
    SlotStatus,
    UserStats,
    NotificationType,
)
from courtside.services import (
    match_service,
    notification_service,
    rating_service,
    score_parser,
    slot_store,
    stats_service,
    user_service,
)
from courtside.services.errors import (
    NotFound,
    Forbidden,
    ResultAlreadySubmitted,
    ResultNotAllowed,
)
from courtside.utils.datetime_utils import utcnow, to_iso
import logging

logger = logging.getLogger(__name__)


def result_to_dict(result: Result) -> Dict:
    return {
        "id": result.id,
        "match_id": result.match_id,
        "player1_user_id": result.player1_user_id,
        "player2_user_id": result.player2_user_id,
        "winner_user_id": result.winner_user_id,
        "loser_user_id": result.loser_user_id,
        "guest_player1_name": result.guest_player1_name,
        "guest_player2_name": result.guest_player2_name,
        "score": result.score,
        "outcome": result.outcome.value,
        "disputed": result.disputed,
        "submitted_by_user_id": result.submitted_by_user_id,
        "created_at": to_iso(result.created_at),
    }


def _apply_outcome(stats: UserStats, match_format: MatchFormat, new_elo: float, won: bool) -> None:
    """Update a rating snapshot after one decided match."""
    if match_format == MatchFormat.SINGLES:
        stats.singles_elo = new_elo
        stats.win_streak_singles = stats.win_streak_singles + 1 if won else 0
    else:
        stats.doubles_elo = new_elo
        stats.win_streak_doubles = stats.win_streak_doubles + 1 if won else 0
    stats.total_matches += 1
    if won:
        stats.total_wins += 1
    else:
        stats.total_losses += 1


async def _get_result_row(session: AsyncSession, match_id: int) -> Optional[Result]:
    result = await session.execute(select(Result).where(Result.match_id == match_id))
    return result.scalar_one_or_none()


async def submit_result(
    session: AsyncSession,
    match_id: int,
    submitter_user_id: int,
    score: str,
    outcome: ResultOutcome = ResultOutcome.COMPLETED,
    creator_partner_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict:
    """
    Report the score of a confirmed match and update both ratings.

    Args:
        session: Database session
        match_id: Match being reported
        submitter_user_id: The creator or the confirmed applicant
        score: Score text with the creator's games first in each set
        outcome: COMPLETED, WON_BY_DEFAULT or OPPONENT_RETIRED (the latter
            two make the submitter the winner)
        creator_partner_name: Creator's guest partner in doubles
        now: Current time (for tests)

    Returns:
        Result dict with ``elo_changes`` keyed by user id

    Raises:
        ResultAlreadySubmitted: If the match already has a result
        ResultNotAllowed: If the match does not have exactly one confirmed slot
        Forbidden: If the submitter did not play in the match
        InvalidScore: If the score is malformed or decides no winner
    """
    now = now or utcnow()
    match = await match_service.get_match(session, match_id)

    if await _get_result_row(session, match_id) is not None:
        raise ResultAlreadySubmitted(f"A result was already submitted for match {match_id}")
    if match.status != MatchStatus.CONFIRMED:
        raise ResultNotAllowed(f"Match {match_id} is {match.status.value}; only confirmed matches take results")

    confirmed_slots = [
        s for s in await match_service.get_match_slots(session, match_id)
        if s.status == SlotStatus.CONFIRMED
    ]
    if len(confirmed_slots) != 1:
        raise ResultNotAllowed(
            f"Match {match_id} has {len(confirmed_slots)} confirmed slots; exactly one is required"
        )
    slot = confirmed_slots[0]

    app_result = await session.execute(
        select(Application).where(
            and_(
                Application.slot_id == slot.id,
                Application.status == ApplicationStatus.CONFIRMED,
            )
        )
    )
    application = app_result.scalar_one()

    creator_id = match.creator_user_id
    opponent_id = application.applicant_user_id
    if submitter_user_id not in (creator_id, opponent_id):
        raise Forbidden("Only the players of this match can submit a result")

    parsed = score_parser.parse_score(score, outcome)
    submitter_side = score_parser.CREATOR if submitter_user_id == creator_id else score_parser.OPPONENT
    winning_side = score_parser.winning_side(parsed, submitter_side)
    winner_id, loser_id = (
        (creator_id, opponent_id) if winning_side == score_parser.CREATOR else (opponent_id, creator_id)
    )

    # Lock snapshots in id order so concurrent results cannot deadlock
    locked = {}
    for user_id in sorted((winner_id, loser_id)):
        locked[user_id] = await user_service.get_or_create_stats(session, user_id, for_update=True)
    winner_stats, loser_stats = locked[winner_id], locked[loser_id]

    match_format = match.format
    update = rating_service.calculate_rating_update(
        winner_stats.elo_for(match_format), loser_stats.elo_for(match_format), match_format
    )

    result = Result(
        match_id=match_id,
        player1_user_id=creator_id,
        player2_user_id=opponent_id,
        winner_user_id=winner_id,
        guest_player1_name=creator_partner_name,
        guest_player2_name=application.guest_partner_name,
        score=score_parser.format_score(parsed),
        outcome=score_parser.outcome_of(parsed),
        disputed=False,
        submitted_by_user_id=submitter_user_id,
    )
    session.add(result)

    session.add_all([
        EloLog(
            user_id=winner_id,
            match_id=match_id,
            opponent_user_id=loser_id,
            match_type=match_format,
            elo_before=update.winner_before,
            elo_after=update.winner_after,
        ),
        EloLog(
            user_id=loser_id,
            match_id=match_id,
            opponent_user_id=winner_id,
            match_type=match_format,
            elo_before=update.loser_before,
            elo_after=update.loser_after,
        ),
    ])

    _apply_outcome(winner_stats, match_format, update.winner_after, won=True)
    _apply_outcome(loser_stats, match_format, update.loser_after, won=False)
    winner_stats.updated_at = now
    loser_stats.updated_at = now

    await slot_store.complete(session, slot.id)
    match.status = MatchStatus.COMPLETED
    match.completed_at = now
    match.updated_at = now
    await session.flush()

    elo_changes = {
        winner_id: round(update.winner_delta, 2),
        loser_id: round(update.loser_delta, 2),
    }
    await notification_service.emit_event(
        session,
        NotificationType.RESULT_ACCEPTED,
        match_id,
        [creator_id, opponent_id],
        {
            "result_id": result.id,
            "score": result.score,
            "winner_user_id": winner_id,
            "elo_changes": {str(k): v for k, v in elo_changes.items()},
        },
    )

    logger.info(
        f"Result for match {match_id} accepted ({result.score}); winner {winner_id} "
        f"{update.winner_before} -> {update.winner_after}, loser {loser_id} "
        f"{update.loser_before} -> {update.loser_after}"
    )
    data = result_to_dict(result)
    data["elo_changes"] = elo_changes
    return data


async def get_result(session: AsyncSession, match_id: int) -> Dict:
    """
    Get the result of a match with each player's rating change.

    Raises:
        NotFound: If no result has been submitted
    """
    result = await _get_result_row(session, match_id)
    if result is None:
        raise NotFound(f"No result for match {match_id}")

    data = result_to_dict(result)
    data["elo_changes"] = {}
    for user_id in (result.player1_user_id, result.player2_user_id):
        change = await stats_service.get_elo_change_for_match(session, user_id, match_id)
        if change is not None:
            data["elo_changes"][user_id] = change
    return data


async def dispute_result(session: AsyncSession, match_id: int, user_id: int) -> Dict:
    """
    Flag a result as disputed. Players of the match only; idempotent.

    Ratings are not reverted; a disputed result is left for an admin.

    Raises:
        NotFound: If no result has been submitted
        Forbidden: If the caller did not play in the match
    """
    result = await _get_result_row(session, match_id)
    if result is None:
        raise NotFound(f"No result for match {match_id}")
    if user_id not in (result.player1_user_id, result.player2_user_id):
        raise Forbidden("Only the players of this match can dispute its result")

    if not result.disputed:
        result.disputed = True
        await session.flush()
        logger.info(f"Result for match {match_id} disputed by user {user_id}")
    return result_to_dict(result)
