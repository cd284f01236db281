"""Single and double elimination bracket engine."""
from .advancement import AdvancementEngine
from .config import configure_logging, get_default_settings, load_settings
from .double_elimination import build_double_elimination
from .elimination import build_single_elimination, seed_participants
from .errors import (
    BracketError,
    ConcurrencyConflict,
    ConfigurationError,
    InvalidParticipant,
    MatchNotFound,
    MatchNotReady,
    ResultConflict,
    StructuralError,
    TournamentClosed,
    TournamentNotFound,
)
from .models import (
    BracketFormat,
    BracketRole,
    Match,
    MatchSet,
    MatchStatus,
    Participant,
    Slot,
    TournamentStatus,
    Violation,
)
from .service import TournamentService, build_bracket
from .state import TournamentState
from .store import TournamentStore
from .validation import format_report, validate
