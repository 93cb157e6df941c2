# domain/errors.py
from __future__ import annotations

from typing import Optional


class BracketError(Exception):
    """
    Root of every error the bracket core raises.

    All of them describe a bad request rather than a defect, so callers
    can catch BracketError and report `str(err)` back to the user.
    The stage/match context is kept on the instance for callers that
    want to react programmatically.
    """

    def __init__(
        self,
        message: str,
        *,
        stage_id: Optional[int] = None,
        match_id: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage_id = stage_id
        self.match_id = match_id

    def context(self) -> dict:
        out: dict = {"error": type(self).__name__, "message": self.message}
        if self.stage_id is not None:
            out["stage_id"] = self.stage_id
        if self.match_id is not None:
            out["match_id"] = self.match_id
        return out


# -------------------------
# Validation (bad input)
# -------------------------

class ValidationError(BracketError):
    pass


class InsufficientParticipants(ValidationError):
    pass


class InvalidParticipantCount(ValidationError):
    pass


class InvalidResult(ValidationError):
    pass


class InvalidSettings(ValidationError):
    pass


class UnknownFormat(ValidationError):
    pass


# -------------------------
# Lookups
# -------------------------

class NotFoundError(BracketError):
    pass


class StageNotFound(NotFoundError):
    pass


class MatchNotFound(NotFoundError):
    pass


class AliasNotFound(NotFoundError):
    pass


# -------------------------
# State machine
# -------------------------

class StateError(BracketError):
    pass


class MatchNotReady(StateError):
    pass


class StageCompleted(StateError):
    pass


# -------------------------
# Structure / identifiers
# -------------------------

class IntegrityError(BracketError):
    pass


class AliasCollision(IntegrityError):
    pass


class MalformedBracket(IntegrityError):
    pass
