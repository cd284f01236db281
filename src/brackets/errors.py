"""
Error taxonomy for bracket construction and result reporting.

Configuration and result-reporting errors are returned to the caller.
StructuralError means the builder produced a bracket that fails validation;
it is never recoverable and the tournament must not become active.
ConcurrencyConflict is retried by the service before it reaches a caller.
"""
from typing import List, Optional


class BracketError(Exception):
    """Base class for every error raised by the bracket engine."""

    code = 'bracket_error'

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {'error': self.code, 'message': self.message}


class ConfigurationError(BracketError):
    """Invalid construction input or settings."""

    code = 'configuration_error'


class StructuralError(BracketError):
    """The builder's own output failed validation."""

    code = 'structural_error'

    def __init__(self, message: str, violations: Optional[List] = None):
        super().__init__(message)
        self.violations = list(violations or [])

    def to_dict(self) -> dict:
        data = super().to_dict()
        data['violations'] = [v.to_dict() for v in self.violations]
        return data


class InvalidParticipant(BracketError):
    """The reported winner does not occupy the match."""

    code = 'invalid_participant'


class ResultConflict(BracketError):
    """A different winner was already recorded for the match."""

    code = 'result_conflict'


class MatchNotReady(BracketError):
    """The match does not have two participants yet."""

    code = 'match_not_ready'


class MatchNotFound(BracketError):
    code = 'match_not_found'


class TournamentNotFound(BracketError):
    code = 'tournament_not_found'


class TournamentClosed(BracketError):
    """The tournament no longer accepts results (completed or aborted)."""

    code = 'tournament_closed'


class ConcurrencyConflict(BracketError):
    """Another writer changed a match this batch depends on."""

    code = 'concurrency_conflict'
