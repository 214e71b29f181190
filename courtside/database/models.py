"""
SQLAlchemy ORM models for the court match reservation and ELO system.
"""

import enum
import json
from typing import List, Optional
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    Date,
    Time,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from courtside.database.db import Base


def _enum_values(enum_cls):
    """Persist enum values ("confirmed") rather than member names ("CONFIRMED")."""
    return [member.value for member in enum_cls]


class MatchFormat(str, enum.Enum):
    """Match format enum. Also used as the rating type of an ELO log entry."""

    SINGLES = "singles"
    DOUBLES = "doubles"


class MatchStatus(str, enum.Enum):
    """Match status enum (derived from slot states)."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SlotStatus(str, enum.Enum):
    """Match slot status enum."""

    AVAILABLE = "available"
    LOCKED = "locked"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ApplicationStatus(str, enum.Enum):
    """Application status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    WAITLISTED = "waitlisted"
    EXPIRED = "expired"


class ResultOutcome(str, enum.Enum):
    """How a reported match ended."""

    COMPLETED = "completed"
    WON_BY_DEFAULT = "won_by_default"
    OPPONENT_RETIRED = "opponent_retired"


class NotificationType(str, enum.Enum):
    """Domain event types handed to the notification collaborator."""

    SLOT_APPLIED = "slot_applied"
    APPLICATION_CONFIRMED = "application_confirmed"
    APPLICATION_REJECTED = "application_rejected"
    APPLICATION_WAITLISTED = "application_waitlisted"
    APPLICATION_PROMOTED = "application_promoted"
    APPLICATION_CANCELLED = "application_cancelled"
    MATCH_CANCELLED = "match_cancelled"
    RESULT_ACCEPTED = "result_accepted"


class NotificationChannel(str, enum.Enum):
    """Delivery channel chosen by the notification collaborator."""

    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class DeliveryStatus(str, enum.Enum):
    """Outcome of a single delivery attempt."""

    SENT = "sent"
    FAILED = "failed"


MATCH_FORMAT_ENUM = Enum(MatchFormat, name="match_format", values_callable=_enum_values)


class User(Base):
    """User directory record (read-only to the reservation core)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True)
    full_name = Column(String, nullable=False)
    gender = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    api_token = Column(String, nullable=True, unique=True)  # Opaque bearer token
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    stats = relationship("UserStats", back_populates="user", uselist=False)
    elo_logs = relationship(
        "EloLog", foreign_keys="EloLog.user_id", back_populates="user"
    )

    __table_args__ = (Index("idx_users_api_token", "api_token"),)


class Court(Base):
    """Court directory record (read-only to the reservation core)."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    surface_type = Column(String(50), nullable=True)  # hard, clay, grass
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    matches = relationship("Match", back_populates="court")


class UserStats(Base):
    """Denormalized current rating snapshot per user."""

    __tablename__ = "user_stats"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    singles_elo = Column(Float, default=1500.0, nullable=False)
    doubles_elo = Column(Float, default=1500.0, nullable=False)
    win_streak_singles = Column(Integer, default=0, nullable=False)
    win_streak_doubles = Column(Integer, default=0, nullable=False)
    total_matches = Column(Integer, default=0, nullable=False)
    total_wins = Column(Integer, default=0, nullable=False)
    total_losses = Column(Integer, default=0, nullable=False)
    cancelled_matches = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="stats")

    @property
    def win_rate(self) -> float:
        """Win percentage across all formats."""
        if not self.total_matches:
            return 0.0
        return self.total_wins / self.total_matches * 100

    def elo_for(self, match_format: "MatchFormat") -> float:
        """Current rating for the given format."""
        if match_format == MatchFormat.SINGLES:
            return self.singles_elo
        return self.doubles_elo


class Match(Base):
    """
    A proposed session at a court with one or more bookable slots.

    ``version`` is bumped when a slot of the match is confirmed, so two
    confirmations racing on different slots cannot both commit.
    """

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    creator_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False)
    date = Column(Date, nullable=False)
    format = Column(MATCH_FORMAT_ENUM, nullable=False)
    skill_level_min = Column(Float, nullable=True)
    skill_level_max = Column(Float, nullable=True)
    gender_filter = Column(String, nullable=True)
    surface_filter = Column(String(50), nullable=True)
    max_distance = Column(Integer, nullable=True)  # in meters
    status = Column(
        Enum(MatchStatus, name="match_status", values_callable=_enum_values),
        default=MatchStatus.PENDING,
        nullable=False,
    )
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    version = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    creator = relationship("User", foreign_keys=[creator_user_id])
    cancelled_by = relationship("User", foreign_keys=[cancelled_by_user_id])
    court = relationship("Court", back_populates="matches")
    slots = relationship(
        "MatchSlot",
        back_populates="match",
        cascade="all, delete-orphan",
        order_by="MatchSlot.start_time",
    )
    result = relationship("Result", back_populates="match", uselist=False)

    __table_args__ = (
        Index("idx_matches_creator", "creator_user_id"),
        Index("idx_matches_court", "court_id"),
        Index("idx_matches_date", "date"),
        Index("idx_matches_status", "status"),
    )


class MatchSlot(Base):
    """
    One bookable time window within a match.

    ``version`` is bumped by every state change; writers compare-and-swap on
    it so two concurrent transitions can never both succeed.
    """

    __tablename__ = "match_slots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    status = Column(
        Enum(SlotStatus, name="slot_status", values_callable=_enum_values),
        default=SlotStatus.AVAILABLE,
        nullable=False,
    )
    locked_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    locked_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    match = relationship("Match", back_populates="slots")
    locked_by = relationship("User", foreign_keys=[locked_by_user_id])
    applications = relationship(
        "Application",
        back_populates="slot",
        order_by=lambda: [Application.created_at, Application.id],
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_match_slots_window"),
        Index("idx_match_slots_match", "match_id"),
        Index("idx_match_slots_status", "status"),
        Index("idx_match_slots_locked_by", "locked_by_user_id"),
    )


class Application(Base):
    """One user's claim on a slot. Never deleted; status records the outcome."""

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slot_id = Column(Integer, ForeignKey("match_slots.id", ondelete="CASCADE"), nullable=False)
    applicant_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    guest_partner_name = Column(String, nullable=True)  # Non-platform doubles partner
    status = Column(
        Enum(ApplicationStatus, name="application_status", values_callable=_enum_values),
        default=ApplicationStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    slot = relationship("MatchSlot", back_populates="applications")
    applicant = relationship("User", foreign_keys=[applicant_user_id])

    __table_args__ = (
        Index("idx_applications_slot", "slot_id"),
        Index("idx_applications_applicant", "applicant_user_id"),
        Index("idx_applications_status", "status"),
        # At most one confirmed application per slot, enforced by the database too
        Index(
            "uq_applications_slot_confirmed",
            "slot_id",
            unique=True,
            postgresql_where=text("status = 'confirmed'"),
            sqlite_where=text("status = 'confirmed'"),
        ),
    )


class Result(Base):
    """Reported outcome of a completed match."""

    __tablename__ = "results"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, unique=True)
    player1_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Match creator
    player2_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)  # Confirmed applicant
    winner_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    guest_player1_name = Column(String, nullable=True)
    guest_player2_name = Column(String, nullable=True)
    score = Column(Text, nullable=False)  # Canonical form, e.g. "6-4 3-6 6-2"
    outcome = Column(
        Enum(ResultOutcome, name="result_outcome", values_callable=_enum_values),
        default=ResultOutcome.COMPLETED,
        nullable=False,
    )
    disputed = Column(Boolean, default=False, nullable=False)
    submitted_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    match = relationship("Match", back_populates="result")
    player1 = relationship("User", foreign_keys=[player1_user_id])
    player2 = relationship("User", foreign_keys=[player2_user_id])
    submitted_by = relationship("User", foreign_keys=[submitted_by_user_id])

    @property
    def loser_user_id(self) -> int:
        """The participant who did not win."""
        if self.winner_user_id == self.player1_user_id:
            return self.player2_user_id
        return self.player1_user_id

    __table_args__ = (
        Index("idx_results_player1", "player1_user_id"),
        Index("idx_results_player2", "player2_user_id"),
    )


class EloLog(Base):
    """Append-only rating history: one row per participant per completed match."""

    __tablename__ = "elo_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    opponent_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    match_type = Column(MATCH_FORMAT_ENUM, nullable=False)
    elo_before = Column(Float, nullable=False)
    elo_after = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", foreign_keys=[user_id], back_populates="elo_logs")
    opponent = relationship("User", foreign_keys=[opponent_user_id])
    match = relationship("Match")

    @property
    def elo_change(self) -> float:
        """Rating delta recorded by this entry."""
        return self.elo_after - self.elo_before

    __table_args__ = (
        UniqueConstraint("user_id", "match_id", name="uq_elo_logs_user_match"),
        Index("idx_elo_logs_user", "user_id"),
        Index("idx_elo_logs_match", "match_id"),
        Index("idx_elo_logs_user_type_created", "user_id", "match_type", "created_at"),
    )


class Notification(Base):
    """
    Logical domain event for the notification collaborator.

    Written in the same transaction as the state change it describes, so an
    event exists if and only if the change committed.
    """

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String, nullable=False)  # NotificationType enum value
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=True)
    affected_user_ids = Column(Text, nullable=False)  # JSON list of user ids
    payload = Column(Text, nullable=True)  # JSON object
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    deliveries = relationship(
        "NotificationDelivery",
        back_populates="notification",
        order_by="NotificationDelivery.id",
    )

    @property
    def user_ids(self) -> List[int]:
        """Decoded affected user ids."""
        return json.loads(self.affected_user_ids) if self.affected_user_ids else []

    @property
    def data(self) -> Optional[dict]:
        """Decoded payload."""
        return json.loads(self.payload) if self.payload else None

    __table_args__ = (
        Index("idx_notifications_type", "type"),
        Index("idx_notifications_match", "match_id"),
        Index("idx_notifications_created", "created_at"),
    )


class NotificationDelivery(Base):
    """Append-only delivery attempt log, one row per (notification, channel, attempt)."""

    __tablename__ = "notification_deliveries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(
        Integer, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False
    )
    channel = Column(
        Enum(NotificationChannel, name="notification_channel", values_callable=_enum_values),
        nullable=False,
    )
    status = Column(
        Enum(DeliveryStatus, name="delivery_status", values_callable=_enum_values),
        nullable=False,
    )
    retry_count = Column(Integer, default=0, nullable=False)  # 0 for the first attempt
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    notification = relationship("Notification", back_populates="deliveries")

    __table_args__ = (
        UniqueConstraint(
            "notification_id", "channel", "retry_count", name="uq_notification_deliveries_attempt"
        ),
        Index("idx_notification_deliveries_notification", "notification_id"),
        Index("idx_notification_deliveries_status", "status"),
    )
