"""
Data model for elimination brackets: participants, slots, matches and the
mutation records the advancement engine produces.
"""
import math
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError

# (match_id, slot_index) a winner or loser is sent to
Feed = Tuple[str, int]


class BracketFormat(Enum):
    SINGLE = 'single'
    DOUBLE = 'double'

    @classmethod
    def parse(cls, value) -> 'BracketFormat':
        """Accept a BracketFormat or its name/value in any case."""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for fmt in cls:
            if text in (fmt.value, fmt.name.lower()):
                return fmt
        raise ConfigurationError(f"Unknown bracket format '{value}'. Use 'single' or 'double'.")


class BracketRole(Enum):
    WINNERS = 'winners'
    LOSERS = 'losers'
    GRAND_FINAL = 'grand_final'
    BRACKET_RESET = 'bracket_reset'


ROLE_ORDER = {
    BracketRole.WINNERS: 0,
    BracketRole.LOSERS: 1,
    BracketRole.GRAND_FINAL: 2,
    BracketRole.BRACKET_RESET: 3,
}

ROLE_PREFIX = {
    BracketRole.WINNERS: 'W',
    BracketRole.LOSERS: 'L',
    BracketRole.GRAND_FINAL: 'GF',
    BracketRole.BRACKET_RESET: 'BR',
}


def round_code(role: BracketRole, round_number: int) -> str:
    """Short code for a round: W1, L3, GF, BR."""
    if role in (BracketRole.GRAND_FINAL, BracketRole.BRACKET_RESET):
        return ROLE_PREFIX[role]
    return f"{ROLE_PREFIX[role]}{round_number}"


def match_code(role: BracketRole, round_number: int, position: int) -> str:
    """Match identifier: W1-M3, L2-M1, GF, BR."""
    if role in (BracketRole.GRAND_FINAL, BracketRole.BRACKET_RESET):
        return ROLE_PREFIX[role]
    return f"{round_code(role, round_number)}-M{position}"


class MatchStatus(Enum):
    PENDING = 'pending'
    READY = 'ready'
    COMPLETE = 'complete'


class TournamentStatus(Enum):
    DRAFT = 'draft'
    ACTIVE = 'active'
    COMPLETED = 'completed'
    ABORTED = 'aborted'


class SlotKind(Enum):
    EMPTY = 'empty'
    BYE = 'bye'
    PARTICIPANT = 'participant'


class Slot:
    __slots__ = ('kind', 'participant_id')

    def __init__(self, kind: SlotKind = SlotKind.EMPTY, participant_id: Optional[str] = None):
        self.kind = kind
        self.participant_id = participant_id if kind == SlotKind.PARTICIPANT else None

    @classmethod
    def empty(cls) -> 'Slot':
        return cls(SlotKind.EMPTY)

    @classmethod
    def bye(cls) -> 'Slot':
        return cls(SlotKind.BYE)

    @classmethod
    def of(cls, participant_id: str) -> 'Slot':
        return cls(SlotKind.PARTICIPANT, participant_id)

    @property
    def is_empty(self) -> bool:
        return self.kind == SlotKind.EMPTY

    @property
    def is_bye(self) -> bool:
        return self.kind == SlotKind.BYE

    @property
    def is_filled(self) -> bool:
        return self.kind == SlotKind.PARTICIPANT

    def to_dict(self) -> dict:
        return {'kind': self.kind.value, 'participant_id': self.participant_id}

    @classmethod
    def from_dict(cls, data: dict) -> 'Slot':
        return cls(SlotKind(data['kind']), data.get('participant_id'))

    def __eq__(self, other):
        if not isinstance(other, Slot):
            return NotImplemented
        return self.kind == other.kind and self.participant_id == other.participant_id

    def __repr__(self):
        if self.is_filled:
            return f"Slot({self.participant_id})"
        return f"Slot({self.kind.value})"


class Participant:
    def __init__(self, id: str, name: str, seed: Optional[int] = None):
        self.id = id
        self.name = name
        self.seed = seed

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'seed': self.seed}

    @classmethod
    def from_dict(cls, data: dict) -> 'Participant':
        return cls(str(data['id']), data.get('name') or str(data['id']), data.get('seed'))

    def __eq__(self, other):
        if not isinstance(other, Participant):
            return NotImplemented
        return (self.id, self.name, self.seed) == (other.id, other.name, other.seed)

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"Participant(id={self.id}, name={self.name}, seed={self.seed})"


class Match:
    """
    One match of a bracket.

    Slots hold a participant, a bye or nothing yet. ``winner_to`` and
    ``loser_to`` are the feed links the builder wires up; the engine follows
    them when a result is recorded. ``version`` is bumped on every applied
    change and lets a mutation batch detect that it was computed from stale
    data.
    """

    def __init__(self, match_id: str, role: BracketRole, round_number: int, position: int,
                 slots: Optional[List[Slot]] = None, winner_id: Optional[str] = None,
                 winner_to: Optional[Feed] = None, loser_to: Optional[Feed] = None,
                 version: int = 0):
        self.id = match_id
        self.role = role
        self.round = round_number
        self.position = position
        self.slots = list(slots) if slots else [Slot.empty(), Slot.empty()]
        self.winner_id = winner_id
        self.winner_to = winner_to
        self.loser_to = loser_to
        self.version = version

    @property
    def participant_ids(self) -> List[str]:
        return [s.participant_id for s in self.slots if s.is_filled]

    @property
    def has_bye(self) -> bool:
        return any(s.is_bye for s in self.slots)

    @property
    def status(self) -> MatchStatus:
        if self.winner_id is not None:
            return MatchStatus.COMPLETE
        if len(self.participant_ids) == 2:
            return MatchStatus.READY
        return MatchStatus.PENDING

    @property
    def is_decisive(self) -> bool:
        """Completed by a played result rather than a walkover."""
        return self.winner_id is not None and not self.has_bye

    @property
    def loser_id(self) -> Optional[str]:
        if self.winner_id is None:
            return None
        for pid in self.participant_ids:
            if pid != self.winner_id:
                return pid
        return None

    @property
    def round_code(self) -> str:
        return round_code(self.role, self.round)

    @property
    def round_key(self) -> Tuple[int, int, int]:
        return (ROLE_ORDER[self.role], self.round, self.position)

    def slot_of(self, participant_id: str) -> Optional[int]:
        for index, slot in enumerate(self.slots):
            if slot.is_filled and slot.participant_id == participant_id:
                return index
        return None

    def copy(self) -> 'Match':
        return Match(self.id, self.role, self.round, self.position,
                     [Slot(s.kind, s.participant_id) for s in self.slots],
                     self.winner_id, self.winner_to, self.loser_to, self.version)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'role': self.role.value,
            'round': self.round,
            'position': self.position,
            'slots': [s.to_dict() for s in self.slots],
            'winner_id': self.winner_id,
            'loser_id': self.loser_id,
            'status': self.status.value,
            'winner_to': list(self.winner_to) if self.winner_to else None,
            'loser_to': list(self.loser_to) if self.loser_to else None,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Match':
        winner_to = data.get('winner_to')
        loser_to = data.get('loser_to')
        return cls(
            data['id'],
            BracketRole(data['role']),
            int(data['round']),
            int(data['position']),
            [Slot.from_dict(s) for s in data['slots']],
            data.get('winner_id'),
            (winner_to[0], int(winner_to[1])) if winner_to else None,
            (loser_to[0], int(loser_to[1])) if loser_to else None,
            int(data.get('version', 0)),
        )

    def __repr__(self):
        return f"Match(id={self.id}, slots={self.slots}, winner={self.winner_id})"


class MatchSet:
    """The matches a builder produced for an ordered roster."""

    def __init__(self, bracket_format: BracketFormat, participants: List[Participant],
                 matches: Optional[Dict[str, Match]] = None):
        self.bracket_format = bracket_format
        self.participants = list(participants)
        self.matches = matches if matches is not None else {}

    @property
    def bracket_size(self) -> int:
        n = len(self.participants)
        if n <= 0:
            return 0
        return 2 ** math.ceil(math.log2(n))

    def add(self, match: Match) -> Match:
        self.matches[match.id] = match
        return match


class Mutation:
    FILL_SLOT = 'fill_slot'
    SET_WINNER = 'set_winner'
    SET_CHAMPION = 'set_champion'

    def __init__(self, kind: str, match_id: Optional[str] = None, slot: Optional[int] = None,
                 participant_id: Optional[str] = None):
        self.kind = kind
        self.match_id = match_id
        self.slot = slot
        self.participant_id = participant_id

    def to_dict(self) -> dict:
        data = {'kind': self.kind, 'participant_id': self.participant_id}
        if self.match_id is not None:
            data['match_id'] = self.match_id
        if self.slot is not None:
            data['slot'] = self.slot
        return data

    def __repr__(self):
        return f"Mutation({self.kind}, match={self.match_id}, slot={self.slot}, participant={self.participant_id})"


class MutationBatch:
    """
    All changes caused by one reported result, including cascaded walkovers.

    ``expected_versions`` holds the version of every match the engine read or
    wrote while computing the batch.
    """

    def __init__(self, match_id: Optional[str] = None, winner_id: Optional[str] = None):
        self.match_id = match_id
        self.winner_id = winner_id
        self.mutations: List[Mutation] = []
        self.expected_versions: Dict[str, int] = {}
        self.already_decided = False

    @property
    def champion_id(self) -> Optional[str]:
        for mutation in reversed(self.mutations):
            if mutation.kind == Mutation.SET_CHAMPION:
                return mutation.participant_id
        return None

    @property
    def resolved_match_ids(self) -> List[str]:
        return [m.match_id for m in self.mutations if m.kind == Mutation.SET_WINNER]

    def __len__(self):
        return len(self.mutations)

    def to_dict(self) -> dict:
        return {
            'match_id': self.match_id,
            'winner_id': self.winner_id,
            'already_decided': self.already_decided,
            'mutations': [m.to_dict() for m in self.mutations],
            'champion_id': self.champion_id,
        }


class Violation:
    def __init__(self, code: str, round: Optional[str], message: str):
        self.code = code
        self.round = round
        self.message = message

    def to_dict(self) -> dict:
        return {'code': self.code, 'round': self.round, 'message': self.message}

    def __eq__(self, other):
        if not isinstance(other, Violation):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        where = f" [{self.round}]" if self.round else ""
        return f"Violation({self.code}{where}: {self.message})"
