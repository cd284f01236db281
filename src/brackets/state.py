"""
Authoritative state of one tournament.

A TournamentState owns the roster and the match collection. Matches are only
changed by applying a MutationBatch, which happens all-or-nothing under a
per-tournament lock. Applied matches are replaced, never edited in place, so
a mapping handed out by ``matches`` stays a consistent snapshot.
"""
import logging
import threading
from collections import Counter
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .advancement import AdvancementEngine
from .double_elimination import round_name
from .elimination import calculate_bracket_size
from .errors import ConcurrencyConflict, MatchNotFound, TournamentClosed
from .models import (
    BracketFormat,
    BracketRole,
    Match,
    MatchSet,
    MatchStatus,
    Mutation,
    MutationBatch,
    Participant,
    Slot,
    TournamentStatus,
    round_code,
)
from .validation import loss_counts

logger = logging.getLogger(__name__)

Snapshot = dict


class TournamentState:
    def __init__(self, tournament_id: str, bracket_format: BracketFormat, participants: List[Participant],
                 matches: Dict[str, Match], name: Optional[str] = None,
                 status: TournamentStatus = TournamentStatus.DRAFT, champion_id: Optional[str] = None,
                 results: Optional[List[dict]] = None, version: int = 0):
        self.tournament_id = tournament_id
        self.name = name or tournament_id
        self.bracket_format = bracket_format
        self.status = status
        self.champion_id = champion_id
        self.version = version
        self._participants = tuple(participants)
        self._matches = dict(matches)
        self._results = list(results or [])
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[Snapshot], None]] = []

    @classmethod
    def create(cls, tournament_id: str, match_set: MatchSet, name: Optional[str] = None) -> 'TournamentState':
        """Wrap a freshly built bracket as a draft tournament."""
        return cls(tournament_id, match_set.bracket_format, match_set.participants, match_set.matches, name=name)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def participants(self) -> Tuple[Participant, ...]:
        return self._participants

    @property
    def matches(self) -> Mapping[str, Match]:
        return MappingProxyType(self._matches)

    @property
    def bracket_size(self) -> int:
        return calculate_bracket_size(len(self._participants))

    @property
    def results(self) -> List[dict]:
        """Audit trail of reported results, oldest first."""
        return [dict(entry) for entry in self._results]

    @property
    def champion(self) -> Optional[Participant]:
        if self.champion_id is None:
            return None
        return self.get_participant(self.champion_id)

    def get_participant(self, participant_id: str) -> Optional[Participant]:
        for participant in self._participants:
            if participant.id == participant_id:
                return participant
        return None

    def get_match(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise MatchNotFound(f"No match '{match_id}' in tournament {self.tournament_id}.")
        return match

    def matches_by_round(self, role: BracketRole, round_number: int = 1) -> List[Match]:
        matches = [m for m in self._matches.values() if m.role == role and m.round == round_number]
        return sorted(matches, key=lambda m: m.position)

    def rounds(self) -> Dict[str, List[Match]]:
        """All matches grouped by round code (W1, W2, L1, GF, BR) in bracket order."""
        grouped: Dict[str, List[Match]] = {}
        for match in sorted(self._matches.values(), key=lambda m: m.round_key):
            grouped.setdefault(round_code(match.role, match.round), []).append(match)
        return grouped

    def ready_matches(self) -> List[Match]:
        ready = [m for m in self._matches.values() if m.status == MatchStatus.READY]
        return sorted(ready, key=lambda m: m.round_key)

    def decisive_matches(self) -> List[Match]:
        decided = [m for m in self._matches.values() if m.is_decisive]
        return sorted(decided, key=lambda m: m.round_key)

    def loss_counts(self) -> Counter:
        return loss_counts(self._matches)

    def round_counts(self) -> Dict[Tuple[BracketRole, int], int]:
        return Counter((m.role, m.round) for m in self._matches.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self, engine: Optional[AdvancementEngine] = None,
                 commit: Optional[Callable[[Snapshot], None]] = None):
        """DRAFT -> ACTIVE, resolving opening walkovers in the same step."""
        with self._lock:
            if self.status != TournamentStatus.DRAFT:
                raise TournamentClosed(
                    f"Tournament {self.tournament_id} is {self.status.value}; only a draft can be activated."
                )
            engine = engine or AdvancementEngine(self.bracket_format)
            batch = engine.resolve_byes(self._matches)
            self._commit(batch, TournamentStatus.ACTIVE, commit)
            logger.info("Tournament %s active: %d participants, %d matches, %d walkover(s)",
                        self.tournament_id, len(self._participants), len(self._matches),
                        len(batch.resolved_match_ids))
        self._notify()

    def abort(self, commit: Optional[Callable[[Snapshot], None]] = None):
        """Stop accepting results. Recorded results are kept."""
        with self._lock:
            if self.status == TournamentStatus.ABORTED:
                return
            if self.status == TournamentStatus.COMPLETED:
                raise TournamentClosed(f"Tournament {self.tournament_id} is already completed.")
            if commit is not None:
                commit(self._build_snapshot(self._matches, TournamentStatus.ABORTED,
                                            self.champion_id, self._results, self.version + 1))
            self.status = TournamentStatus.ABORTED
            self.version += 1
            logger.info("Tournament %s aborted after %d result(s)", self.tournament_id, len(self._results))
        self._notify()

    def apply(self, batch: MutationBatch, commit: Optional[Callable[[Snapshot], None]] = None):
        """
        Apply a batch all-or-nothing.

        Raises ConcurrencyConflict if any match the batch was computed from has
        changed since, TournamentClosed if the tournament is not active. The
        optional commit callback receives the candidate snapshot before it
        becomes visible; if it raises, nothing changes.
        Subscribers are notified after the lock is released.
        """
        if batch.already_decided or not batch.mutations:
            return
        with self._lock:
            if self.status != TournamentStatus.ACTIVE:
                raise TournamentClosed(
                    f"Tournament {self.tournament_id} is {self.status.value} and no longer accepts results."
                )
            self._commit(batch, self.status, commit)
        self._notify()

    def _commit(self, batch: MutationBatch, status: TournamentStatus,
                commit: Optional[Callable[[Snapshot], None]]):
        for match_id, version in batch.expected_versions.items():
            current = self._matches.get(match_id)
            if current is None or current.version != version:
                raise ConcurrencyConflict(
                    f"Match {match_id} changed while the result for {batch.match_id} was being computed."
                )

        candidate = dict(self._matches)
        changed: Dict[str, Match] = {}
        champion_id = self.champion_id
        for mutation in batch.mutations:
            if mutation.kind == Mutation.SET_CHAMPION:
                champion_id = mutation.participant_id
                continue
            match = changed.get(mutation.match_id)
            if match is None:
                match = candidate[mutation.match_id].copy()
                changed[match.id] = match
            if mutation.kind == Mutation.FILL_SLOT:
                match.slots[mutation.slot] = Slot.of(mutation.participant_id)
            elif mutation.kind == Mutation.SET_WINNER:
                match.winner_id = mutation.participant_id
        for match in changed.values():
            match.version += 1
            candidate[match.id] = match

        if champion_id is not None and status == TournamentStatus.ACTIVE:
            status = TournamentStatus.COMPLETED

        results = list(self._results)
        if batch.match_id is not None:
            results.append({
                'match_id': batch.match_id,
                'winner_id': batch.winner_id,
                'loser_id': candidate[batch.match_id].loser_id,
                'walkovers': [mid for mid in batch.resolved_match_ids if mid != batch.match_id],
                'recorded_at': datetime.now().isoformat(),
            })

        if commit is not None:
            commit(self._build_snapshot(candidate, status, champion_id, results, self.version + 1))

        self._matches = candidate
        self.status = status
        self.champion_id = champion_id
        self._results = results
        self.version += 1
        logger.debug("Tournament %s applied %d mutation(s) (version %d)",
                     self.tournament_id, len(batch), self.version)
        if status == TournamentStatus.COMPLETED:
            logger.info("Tournament %s completed; champion %s", self.tournament_id, champion_id)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[Snapshot], None]) -> Callable[[], None]:
        """Call callback with a fresh snapshot after every change. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _notify(self):
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed for tournament %s", self.tournament_id)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._build_snapshot(self._matches, self.status, self.champion_id, self._results, self.version)

    def _build_snapshot(self, matches: Dict[str, Match], status: TournamentStatus,
                        champion_id: Optional[str], results: List[dict], version: int) -> Snapshot:
        round_counts = Counter((m.role, m.round) for m in matches.values())
        match_rows = []
        for match in sorted(matches.values(), key=lambda m: m.round_key):
            row = match.to_dict()
            row['round_name'] = round_name(match, self.bracket_format, round_counts)
            match_rows.append(row)
        return {
            'tournament_id': self.tournament_id,
            'name': self.name,
            'format': self.bracket_format.value,
            'status': status.value,
            'bracket_size': self.bracket_size,
            'champion_id': champion_id,
            'version': version,
            'participants': [p.to_dict() for p in self._participants],
            'matches': match_rows,
            'results': [dict(entry) for entry in results],
        }

    @classmethod
    def from_snapshot(cls, data: Snapshot) -> 'TournamentState':
        matches = {}
        for row in data.get('matches', []):
            match = Match.from_dict(row)
            matches[match.id] = match
        return cls(
            data['tournament_id'],
            BracketFormat.parse(data['format']),
            [Participant.from_dict(p) for p in data.get('participants', [])],
            matches,
            name=data.get('name'),
            status=TournamentStatus(data.get('status', TournamentStatus.DRAFT.value)),
            champion_id=data.get('champion_id'),
            results=data.get('results') or [],
            version=int(data.get('version', 0)),
        )

    def __repr__(self):
        return (f"TournamentState(id={self.tournament_id}, format={self.bracket_format.value}, "
                f"status={self.status.value}, participants={len(self._participants)})")
