"""
Pydantic models for API request/response validation.
"""

import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, model_validator

from courtside.database.models import (
    MatchFormat,
    ResultOutcome,
    NotificationChannel,
    DeliveryStatus,
)


# ============================================================================
# Matches and slots
# ============================================================================

class SlotWindow(BaseModel):
    """A bookable time window."""

    start_time: datetime.time
    end_time: datetime.time

    @model_validator(mode="after")
    def check_order(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    def as_tuple(self):
        return (self.start_time, self.end_time)


class CreateMatchRequest(BaseModel):
    """Request to create a match with its slots."""

    court_id: int
    date: datetime.date
    format: MatchFormat
    slots: List[SlotWindow] = Field(min_length=1)
    skill_level_min: Optional[float] = None
    skill_level_max: Optional[float] = None
    gender_filter: Optional[str] = None
    surface_filter: Optional[str] = None
    max_distance: Optional[int] = Field(default=None, ge=0)


class UpdateMatchRequest(BaseModel):
    """Partial edit of a pending match. Only fields that are sent are changed."""

    date: Optional[datetime.date] = None
    skill_level_min: Optional[float] = None
    skill_level_max: Optional[float] = None
    gender_filter: Optional[str] = None
    surface_filter: Optional[str] = None
    max_distance: Optional[int] = Field(default=None, ge=0)
    add_slots: Optional[List[SlotWindow]] = None
    cancel_slot_ids: Optional[List[int]] = None


class CancelMatchRequest(BaseModel):
    """Request to cancel a match."""

    reason: Optional[str] = None


class SlotResponse(BaseModel):
    """Match slot."""

    id: int
    match_id: int
    start_time: str
    end_time: str
    status: str
    locked_by_user_id: Optional[int] = None
    expires_at: Optional[str] = None
    confirmed_at: Optional[str] = None
    version: int
    application_counts: Optional[Dict[str, int]] = None


class MatchResponse(BaseModel):
    """Match with its slots."""

    id: int
    creator_user_id: int
    court_id: int
    date: str
    format: str
    skill_level_min: Optional[float] = None
    skill_level_max: Optional[float] = None
    gender_filter: Optional[str] = None
    surface_filter: Optional[str] = None
    max_distance: Optional[int] = None
    status: str
    cancelled_at: Optional[str] = None
    cancellation_reason: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    slots: List[SlotResponse]


# ============================================================================
# Applications
# ============================================================================

class ApplyRequest(BaseModel):
    """Request to apply to a slot."""

    guest_partner_name: Optional[str] = Field(default=None, max_length=100)


class ApplicationResponse(BaseModel):
    """Application, with slot details when listed."""

    id: int
    slot_id: int
    applicant_user_id: int
    guest_partner_name: Optional[str] = None
    status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    match_id: Optional[int] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    slot_status: Optional[str] = None


class CancelApplicationResponse(BaseModel):
    """Result of cancelling a confirmed application."""

    application: ApplicationResponse
    promoted_application_id: Optional[int] = None
    slot_status: str


class ReleaseSlotResponse(BaseModel):
    """Result of releasing a slot hold."""

    slot_id: int
    released: bool
    status: str


# ============================================================================
# Results and ratings
# ============================================================================

class SubmitResultRequest(BaseModel):
    """Reported score, creator's games first in every set (e.g. "6-4 3-6 6-2")."""

    score: str = ""
    outcome: ResultOutcome = ResultOutcome.COMPLETED
    creator_partner_name: Optional[str] = None

    @model_validator(mode="after")
    def require_score_for_played_match(self):
        if self.outcome == ResultOutcome.COMPLETED and not self.score.strip():
            raise ValueError("score is required unless the match was won by default")
        return self


class ResultResponse(BaseModel):
    """Accepted result with rating changes keyed by user id."""

    id: int
    match_id: int
    player1_user_id: int
    player2_user_id: int
    winner_user_id: int
    loser_user_id: int
    guest_player1_name: Optional[str] = None
    guest_player2_name: Optional[str] = None
    score: str
    outcome: str
    disputed: bool
    submitted_by_user_id: int
    created_at: Optional[str] = None
    elo_changes: Optional[Dict[int, float]] = None


class UserStatsResponse(BaseModel):
    """Current rating snapshot."""

    user_id: int
    singles_elo: float
    doubles_elo: float
    win_streak_singles: int
    win_streak_doubles: int
    total_matches: int
    total_wins: int
    total_losses: int
    cancelled_matches: int
    win_rate: float


class EloHistoryEntry(BaseModel):
    """One rating history row."""

    match_id: int
    opponent_user_id: Optional[int] = None
    match_type: str
    elo_before: float
    elo_after: float
    elo_change: float
    created_at: Optional[str] = None


class HeadToHeadResult(BaseModel):
    match_id: int
    winner_user_id: int
    score: str
    outcome: str
    disputed: bool


class HeadToHeadResponse(BaseModel):
    """Record between two users."""

    user_id: int
    other_user_id: int
    matches: int
    wins: int
    losses: int
    results: List[HeadToHeadResult]


# ============================================================================
# Notification collaborator
# ============================================================================

class NotificationEventResponse(BaseModel):
    """Domain event awaiting delivery."""

    id: int
    type: str
    match_id: Optional[int] = None
    affected_user_ids: List[int]
    payload: Optional[dict] = None
    created_at: Optional[str] = None
    attempts: int = 0


class DeliveryAttemptRequest(BaseModel):
    """One delivery attempt reported by the notification collaborator."""

    channel: NotificationChannel
    status: DeliveryStatus
    error: Optional[str] = None


class DeliveryAttemptResponse(BaseModel):
    """Recorded delivery attempt."""

    id: int
    notification_id: int
    channel: str
    status: str
    retry_count: int
    error: Optional[str] = None
    sent_at: Optional[str] = None
