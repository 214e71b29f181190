"""
ELO rating engine.
Pure functions computing new ratings from a reported outcome; no I/O.
"""

from typing import NamedTuple
from courtside.database.models import MatchFormat
from courtside.utils.constants import K_SINGLES, K_DOUBLES, MIN_ELO


# ============================================================================
# Helper Functions (ELO Calculations)
# ============================================================================

def expected_score(elo_a: float, elo_b: float) -> float:
    """
    Calculate expected score for player A against player B using ELO formula.

    Formula: P(A beats B) = 1 / (1 + 10^((elo_B - elo_A) / 400))
    If elo_A > elo_B, result > 0.5 (A is favored)
    """
    return 1 / (1 + 10**((elo_b - elo_a) / 400))


def elo_change(k: float, expected_score: float, actual_score: float) -> float:
    """Calculate ELO rating change."""
    return k * (actual_score - expected_score)


def k_factor(match_format: MatchFormat) -> float:
    """K-factor for a match format."""
    if match_format == MatchFormat.SINGLES:
        return K_SINGLES
    return K_DOUBLES


def new_rating(rating: float, opponent_rating: float, won: bool, k: float) -> float:
    """
    Rating after one game: ``rating + K * (actual - expected)``.

    Floored at MIN_ELO.
    """
    actual = 1.0 if won else 0.0
    updated = rating + elo_change(k, expected_score(rating, opponent_rating), actual)
    return max(updated, MIN_ELO)


# ============================================================================
# Match Outcome
# ============================================================================

class RatingUpdate(NamedTuple):
    """New ratings for both sides of a decided match."""

    winner_before: float
    winner_after: float
    loser_before: float
    loser_after: float

    @property
    def winner_delta(self) -> float:
        return self.winner_after - self.winner_before

    @property
    def loser_delta(self) -> float:
        return self.loser_after - self.loser_before


def calculate_rating_update(
    winner_rating: float, loser_rating: float, match_format: MatchFormat
) -> RatingUpdate:
    """
    Compute the rating update for a decided match.

    Both players share the same K, so the loser gives up exactly what the
    winner gains (unless the loser hits the rating floor). Results are
    rounded to two decimals to match the stored precision.

    Args:
        winner_rating: Winner's rating before the match
        loser_rating: Loser's rating before the match
        match_format: Singles or doubles (selects K)

    Returns:
        RatingUpdate with before/after values for both players
    """
    k = k_factor(match_format)
    winner_after = new_rating(winner_rating, loser_rating, True, k)
    loser_after = new_rating(loser_rating, winner_rating, False, k)
    return RatingUpdate(
        winner_before=winner_rating,
        winner_after=round(winner_after, 2),
        loser_before=loser_rating,
        loser_after=round(loser_after, 2),
    )
