"""
Operations exposed to callers: create a bracket, report results, read the
bracket and its validation report.

Every operation returns plain dicts/lists so any transport can serialize
them. Errors are BracketError subclasses with a to_dict() form.
"""
import logging
import random
import threading
import uuid
from typing import Dict, List, Optional

from .advancement import AdvancementEngine
from .config import get_default_settings
from .elimination import dedupe_by_name, seed_participants
from .errors import ConcurrencyConflict, ConfigurationError, TournamentClosed, TournamentNotFound
from .models import BracketFormat, MatchSet, MutationBatch, Participant, TournamentStatus
from .state import TournamentState
from .store import TournamentStore
from .validation import validate

logger = logging.getLogger(__name__)


def as_participant(record, index: int) -> Participant:
    """Accept a Participant, a {'id', 'name', 'seed'} mapping or a bare name."""
    if isinstance(record, Participant):
        return record
    if isinstance(record, dict):
        if 'id' not in record and 'name' not in record:
            raise ConfigurationError(f"Participant record {record!r} needs an id or a name.")
        data = dict(record)
        data.setdefault('id', f"p{index + 1}")
        return Participant.from_dict(data)
    if isinstance(record, str) and record.strip():
        return Participant(f"p{index + 1}", record.strip())
    raise ConfigurationError(f"Cannot make a participant out of {record!r}.")


def build_bracket(participants: List[Participant], bracket_format) -> MatchSet:
    """Build and certify a bracket of the given format for an ordered roster."""
    bracket_format = BracketFormat.parse(bracket_format)
    if bracket_format == BracketFormat.DOUBLE:
        from .double_elimination import build_double_elimination
        return build_double_elimination(participants)
    from .elimination import build_single_elimination
    return build_single_elimination(participants)


class TournamentService:
    def __init__(self, settings: Optional[dict] = None, store: Optional[TournamentStore] = None):
        self.settings = settings or get_default_settings()
        self.store = store
        self._tournaments: Dict[str, TournamentState] = {}
        self._registry_lock = threading.Lock()

    def _commit_hook(self):
        return self.store.save if self.store is not None else None

    def _exists(self, tournament_id: str) -> bool:
        if tournament_id in self._tournaments:
            return True
        return self.store is not None and self.store.load(tournament_id) is not None

    def create_bracket(self, participants, bracket_format=None, tournament_id: Optional[str] = None,
                       name: Optional[str] = None, mode: str = 'seeded',
                       ordered_ids: Optional[List[str]] = None,
                       rng: Optional[random.Random] = None,
                       dedupe: bool = True) -> TournamentState:
        """
        Build, certify and activate a tournament.

        The structure depends only on the ordered roster and the format. The
        tournament is registered only once it is active; a StructuralError
        from the builder means nothing is registered or stored.
        With dedupe, participants whose name repeats an earlier one are dropped.
        """
        bracket_format = BracketFormat.parse(bracket_format or self.settings['default_format'])
        roster = [as_participant(record, index) for index, record in enumerate(participants)]
        if dedupe:
            roster = dedupe_by_name(roster)
        ordered = seed_participants(roster, mode=mode, ordered_ids=ordered_ids, rng=rng)
        match_set = build_bracket(ordered, bracket_format)

        tournament_id = tournament_id or uuid.uuid4().hex
        with self._registry_lock:
            if self._exists(tournament_id):
                raise ConfigurationError(f"Tournament '{tournament_id}' already exists.")
            state = TournamentState.create(tournament_id, match_set, name=name)
            state.activate(commit=self._commit_hook())
            self._tournaments[tournament_id] = state

        logger.info("Created %s elimination tournament %s with %d participants",
                    bracket_format.value, tournament_id, len(ordered))
        return state

    def get_tournament(self, tournament_id: str) -> TournamentState:
        state = self._tournaments.get(tournament_id)
        if state is not None:
            return state
        if self.store is not None:
            data = self.store.load(tournament_id)
            if data is not None:
                with self._registry_lock:
                    state = self._tournaments.setdefault(tournament_id, TournamentState.from_snapshot(data))
                return state
        raise TournamentNotFound(f"No tournament '{tournament_id}'.")

    def report_result(self, tournament_id: str, match_id: str, winner_id: str) -> dict:
        """
        Record winner_id as the winner of match_id.

        Safe to call more than once with the same winner. Concurrency
        conflicts are retried up to max_result_retries times.
        """
        state = self.get_tournament(tournament_id)
        if state.status != TournamentStatus.ACTIVE and state.get_match(match_id).winner_id is None:
            raise TournamentClosed(
                f"Tournament {tournament_id} is {state.status.value} and no longer accepts results."
            )
        engine = AdvancementEngine(state.bracket_format)
        retries = self.settings['max_result_retries']

        for attempt in range(1, retries + 1):
            batch = engine.record_result(state.matches, match_id, winner_id)
            if batch.already_decided:
                logger.info("Duplicate result for %s/%s ignored", tournament_id, match_id)
                return self._result(state, batch)
            try:
                state.apply(batch, commit=self._commit_hook())
            except ConcurrencyConflict as e:
                logger.warning("Attempt %d/%d to record %s/%s conflicted: %s",
                               attempt, retries, tournament_id, match_id, e)
                continue
            return self._result(state, batch)

        raise ConcurrencyConflict(
            f"Could not record the result of {match_id} after {retries} attempts; please retry."
        )

    def _result(self, state: TournamentState, batch: MutationBatch) -> dict:
        result = batch.to_dict()
        result['tournament_id'] = state.tournament_id
        result['status'] = state.status.value
        result['champion_id'] = state.champion_id
        return result

    def get_bracket(self, tournament_id: str) -> dict:
        return self.get_tournament(tournament_id).snapshot()

    def get_validation_report(self, tournament_id: str) -> List[dict]:
        return [v.to_dict() for v in validate(self.get_tournament(tournament_id))]

    def abort_tournament(self, tournament_id: str) -> dict:
        state = self.get_tournament(tournament_id)
        state.abort(commit=self._commit_hook())
        return state.snapshot()

    def delete_tournament(self, tournament_id: str):
        with self._registry_lock:
            removed = self._tournaments.pop(tournament_id, None) is not None
            if self.store is not None:
                removed = self.store.delete(tournament_id) or removed
        if not removed:
            raise TournamentNotFound(f"No tournament '{tournament_id}'.")
        logger.info("Deleted tournament %s", tournament_id)

    def list_tournaments(self) -> List[dict]:
        ids = set(self._tournaments)
        if self.store is not None:
            ids.update(self.store.list_ids())
        summaries = []
        for tournament_id in sorted(ids):
            state = self.get_tournament(tournament_id)
            summaries.append({
                'tournament_id': state.tournament_id,
                'name': state.name,
                'format': state.bracket_format.value,
                'status': state.status.value,
                'participants': len(state.participants),
                'champion_id': state.champion_id,
            })
        return summaries
