"""
Typed, user-facing outcomes of the reservation core.

Every error carries the HTTP status the API layer should answer with and
whether the caller may simply try again. Infrastructure failures are not
modelled here; they propagate as SQLAlchemy errors and the enclosing
transaction is rolled back.
"""


class MatchmakingError(Exception):
    """Base class for expected reservation/result failures."""

    status_code = 400
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class SlotUnavailable(MatchmakingError):
    """The slot is held by someone else or no longer open. Re-poll and retry."""

    status_code = 409
    retryable = True


class InvalidSlotTransition(MatchmakingError):
    """A slot state-machine edge that does not exist was requested."""

    status_code = 500


class Forbidden(MatchmakingError):
    """The acting user may not perform this operation."""

    status_code = 403


class AlreadyConfirmed(MatchmakingError):
    """Another application on the slot (or match) won the confirmation."""

    status_code = 409


class EditNotAllowed(MatchmakingError):
    """The match can no longer be edited or cancelled."""

    status_code = 409


class InvalidScore(MatchmakingError):
    """The reported score is malformed or does not decide a winner."""

    status_code = 400


class NotFound(MatchmakingError):
    """A referenced match, slot, application, user or court does not exist."""

    status_code = 404


class ApplicationNotAllowed(MatchmakingError):
    """Business rules reject this apply (own match, duplicate, time conflict)."""

    status_code = 400


class InvalidApplicationState(MatchmakingError):
    """The application is not in a state that allows this operation."""

    status_code = 409


class ResultAlreadySubmitted(MatchmakingError):
    """A result already exists for the match."""

    status_code = 409


class ResultNotAllowed(MatchmakingError):
    """The match has no single confirmed pairing to report a result for."""

    status_code = 409
