"""
Tennis score parsing and validation.

A reported score is parsed exactly once into one of three shapes:

- ``CompletedSets``: a best-of-3 match played to the end
- ``RetiredAfter``: the opponent retired; the last set may be unfinished
- ``WonByDefault``: walkover, no games needed

Games are always listed from the match creator's perspective
("creator games - opponent games"). The result pipeline only ever sees these
objects, never the raw string.
"""

import re
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple, Union

from courtside.database.models import ResultOutcome
from courtside.services.errors import InvalidScore
from courtside.utils.constants import SETS_TO_WIN

CREATOR = "creator"
OPPONENT = "opponent"

MAX_SETS = 2 * SETS_TO_WIN - 1

_SET_PATTERN = re.compile(r"(\d+)\s*-\s*(\d+)")
_SEPARATORS = re.compile(r"[\s,;]+")
_WON_BY_DEFAULT_PHRASES = ("won by default", "walkover", "w/o")
_RETIRED_PHRASES = ("opponent retired", "retired", "ret.")


class SetScore(NamedTuple):
    """Games in one set, creator first."""

    creator_games: int
    opponent_games: int

    def __str__(self) -> str:
        return f"{self.creator_games}-{self.opponent_games}"

    @property
    def is_complete(self) -> bool:
        """6-0 through 6-4, 7-5 and 7-6 (either way round)."""
        high = max(self.creator_games, self.opponent_games)
        low = min(self.creator_games, self.opponent_games)
        if high == 6:
            return low <= 4
        if high == 7:
            return low in (5, 6)
        return False

    @property
    def is_unfinished(self) -> bool:
        """A set that could still be played on (e.g. 4-3, 6-5, 6-6)."""
        high = max(self.creator_games, self.opponent_games)
        low = min(self.creator_games, self.opponent_games)
        if high < 6:
            return True
        return high == 6 and low >= 5

    @property
    def winner(self) -> Optional[str]:
        """Side that won a complete set, None otherwise."""
        if not self.is_complete:
            return None
        return CREATOR if self.creator_games > self.opponent_games else OPPONENT


@dataclass(frozen=True)
class CompletedSets:
    sets: Tuple[SetScore, ...]


@dataclass(frozen=True)
class RetiredAfter:
    sets: Tuple[SetScore, ...]


@dataclass(frozen=True)
class WonByDefault:
    pass


Score = Union[CompletedSets, RetiredAfter, WonByDefault]


def _parse_sets(raw: str) -> List[SetScore]:
    """Extract "a-b" tokens; anything else left in the string is an error."""
    sets = [SetScore(int(a), int(b)) for a, b in _SET_PATTERN.findall(raw)]
    leftover = _SEPARATORS.sub("", _SET_PATTERN.sub("", raw))
    if leftover:
        raise InvalidScore(
            'Invalid score format. Use format like "6-4 3-6 6-2" or "6-4, 6-3"'
        )
    return sets


def _strip_phrases(raw: str, phrases: Tuple[str, ...]) -> Tuple[str, bool]:
    lowered = raw.lower()
    for phrase in phrases:
        if phrase in lowered:
            start = lowered.index(phrase)
            return raw[:start] + raw[start + len(phrase):], True
    return raw, False


def _sets_won(sets) -> Tuple[int, int]:
    creator = sum(1 for s in sets if s.winner == CREATOR)
    opponent = sum(1 for s in sets if s.winner == OPPONENT)
    return creator, opponent


def parse_score(
    raw: str, outcome: ResultOutcome = ResultOutcome.COMPLETED
) -> Score:
    """
    Parse and validate a reported score.

    The outcome may be passed explicitly or embedded in the text
    ("6-4 2-1 opponent retired", "won by default").

    Args:
        raw: Score text, creator's games first in every set
        outcome: Explicit outcome flag

    Returns:
        CompletedSets, RetiredAfter or WonByDefault

    Raises:
        InvalidScore: If the text is malformed, a set score is impossible, or
            a completed match does not produce a winner
    """
    raw = (raw or "").strip()

    raw, default_phrase = _strip_phrases(raw, _WON_BY_DEFAULT_PHRASES)
    if default_phrase:
        outcome = ResultOutcome.WON_BY_DEFAULT
    else:
        raw, retired_phrase = _strip_phrases(raw, _RETIRED_PHRASES)
        if retired_phrase:
            outcome = ResultOutcome.OPPONENT_RETIRED

    sets = _parse_sets(raw)
    if len(sets) > MAX_SETS:
        raise InvalidScore(f"A match has at most {MAX_SETS} sets")

    for s in sets:
        if not s.is_complete and not s.is_unfinished:
            raise InvalidScore(
                f"Invalid set score: {s}. A set must be won by at least 2 games "
                f"(e.g., 6-4, 7-5, or 7-6 for tiebreak). Scores like 6-5 are not valid."
            )

    if outcome == ResultOutcome.WON_BY_DEFAULT:
        return WonByDefault()

    if outcome == ResultOutcome.OPPONENT_RETIRED:
        # Only the final set may be unfinished
        for s in sets[:-1]:
            if not s.is_complete:
                raise InvalidScore(f"Only the last set may be unfinished, got {s}")
        return RetiredAfter(sets=tuple(sets))

    if not sets:
        raise InvalidScore("Score is required")

    for s in sets:
        if not s.is_complete:
            raise InvalidScore(
                f"Set {s} is not complete. Incomplete scores require indicating "
                f"opponent retired or won by default"
            )

    creator_sets = opponent_sets = 0
    for index, s in enumerate(sets):
        if max(creator_sets, opponent_sets) >= SETS_TO_WIN:
            raise InvalidScore(f"Set {index + 1} was played after the match was decided")
        if s.winner == CREATOR:
            creator_sets += 1
        else:
            opponent_sets += 1

    if max(creator_sets, opponent_sets) < SETS_TO_WIN:
        raise InvalidScore(
            f"No winner: a best-of-{MAX_SETS} match needs {SETS_TO_WIN} sets won"
        )
    return CompletedSets(sets=tuple(sets))


def winning_side(score: Score, submitter_side: str) -> str:
    """
    Side (CREATOR or OPPONENT) that won.

    For retirements and walkovers the submitter is the winner.
    """
    if isinstance(score, CompletedSets):
        creator_sets, opponent_sets = _sets_won(score.sets)
        return CREATOR if creator_sets > opponent_sets else OPPONENT
    if isinstance(score, (RetiredAfter, WonByDefault)):
        return submitter_side
    raise InvalidScore(f"Unknown score type {type(score).__name__}")


def outcome_of(score: Score) -> ResultOutcome:
    """ResultOutcome stored alongside the canonical score."""
    if isinstance(score, CompletedSets):
        return ResultOutcome.COMPLETED
    if isinstance(score, RetiredAfter):
        return ResultOutcome.OPPONENT_RETIRED
    if isinstance(score, WonByDefault):
        return ResultOutcome.WON_BY_DEFAULT
    raise InvalidScore(f"Unknown score type {type(score).__name__}")


def format_score(score: Score) -> str:
    """Canonical text form, e.g. "6-4 3-6 6-2" or "6-4 2-1 (opponent retired)"."""
    if isinstance(score, CompletedSets):
        return " ".join(str(s) for s in score.sets)
    if isinstance(score, RetiredAfter):
        played = " ".join(str(s) for s in score.sets)
        return f"{played} (opponent retired)".strip()
    if isinstance(score, WonByDefault):
        return "won by default"
    raise InvalidScore(f"Unknown score type {type(score).__name__}")
