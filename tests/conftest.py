"""
Shared pytest fixtures for bracket engine tests.

Running tests:
    pytest tests/                  - full suite
    pytest tests/ -m "not slow"   - fast subset (skips the roster size sweeps)
"""
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from brackets.advancement import AdvancementEngine
from brackets.config import get_default_settings
from brackets.models import BracketFormat, Participant
from brackets.service import TournamentService
from brackets.store import TournamentStore


def make_roster(count):
    """Participants p1..pN seeded 1..N."""
    return [Participant(f"p{i}", f"Player {i}", seed=i) for i in range(1, count + 1)]


def play(service, tournament_id, match_id, slot=0):
    """Report the occupant of the given slot as the winner of a ready match."""
    match = service.get_tournament(tournament_id).get_match(match_id)
    return service.report_result(tournament_id, match_id, match.slots[slot].participant_id)


@pytest.fixture
def settings(tmp_path):
    """Default settings with the data directory moved to a temp location."""
    data = get_default_settings()
    data['data_dir'] = str(tmp_path / "data")
    return data


@pytest.fixture
def service(settings):
    """In-memory service (no persistence)."""
    return TournamentService(settings)


@pytest.fixture
def store(settings):
    return TournamentStore(settings['data_dir'], lock_timeout=settings['lock_timeout'])


@pytest.fixture
def stored_service(settings, store):
    """Service that saves every change to a YAML store."""
    return TournamentService(settings, store=store)


@pytest.fixture
def single_engine():
    return AdvancementEngine(BracketFormat.SINGLE)


@pytest.fixture
def double_engine():
    return AdvancementEngine(BracketFormat.DOUBLE)
