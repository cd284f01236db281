"""
Single elimination bracket generation and the helpers shared with double
elimination: bracket sizing, roster ordering and the winners bracket layout.
"""
import logging
import math
import random
from typing import List, Optional, Tuple

from .errors import ConfigurationError
from .models import (
    BracketFormat,
    BracketRole,
    Match,
    MatchSet,
    Participant,
    Slot,
    match_code,
)

logger = logging.getLogger(__name__)

SEEDING_MODES = ('seeded', 'shuffle')


def get_round_name(teams_in_round: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    else:
        return f"Round of {teams_in_round}"


def calculate_bracket_size(num_participants: int) -> int:
    """Calculate the bracket size (next power of 2)."""
    if num_participants <= 0:
        return 0
    return 2 ** math.ceil(math.log2(num_participants))


def calculate_byes(num_participants: int) -> int:
    """Calculate number of byes needed."""
    bracket_size = calculate_bracket_size(num_participants)
    return bracket_size - num_participants


def calculate_total_rounds(num_participants: int) -> int:
    """Rounds needed to reduce the bracket to one winner (log2 of bracket size)."""
    bracket_size = calculate_bracket_size(num_participants)
    if bracket_size < 2:
        return 0
    return int(math.log2(bracket_size))


def _check_roster(participants: List[Participant]):
    seen = set()
    for participant in participants:
        if not isinstance(participant.id, str) or not participant.id.strip():
            raise ConfigurationError(f"Participant {participant!r} needs a non-empty string id.")
        if participant.id in seen:
            raise ConfigurationError(f"Participant id '{participant.id}' appears more than once.")
        seen.add(participant.id)


def _require_participants(participants: List[Participant]):
    if len(participants) < 2:
        raise ConfigurationError(
            f"An elimination bracket needs at least 2 participants, got {len(participants)}."
        )
    _check_roster(participants)


def seed_participants(participants: List[Participant], mode: str = 'seeded',
                      ordered_ids: Optional[List[str]] = None,
                      rng: Optional[random.Random] = None) -> List[Participant]:
    """
    Order a roster for bracket construction (strongest first).

    - ordered_ids: explicit order; participants not listed follow in arrival order
    - 'seeded': participants with a seed in seed order, then unseeded ones in arrival order
    - 'shuffle': random order drawn from rng
    """
    _check_roster(participants)

    if ordered_ids:
        by_id = {p.id: p for p in participants}
        unknown = [pid for pid in ordered_ids if pid not in by_id]
        if unknown:
            raise ConfigurationError(f"Unknown participant ids in ordering: {', '.join(unknown)}")
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ConfigurationError("Participant ordering lists the same id more than once.")
        listed = set(ordered_ids)
        ordered = [by_id[pid] for pid in ordered_ids]
        ordered.extend(p for p in participants if p.id not in listed)
        return ordered

    if mode == 'shuffle':
        shuffled = list(participants)
        (rng or random.Random()).shuffle(shuffled)
        return shuffled

    if mode != 'seeded':
        raise ConfigurationError(f"Unknown seeding mode '{mode}'. Use one of: {', '.join(SEEDING_MODES)}")

    seeds = []
    for participant in participants:
        if participant.seed is None:
            continue
        if isinstance(participant.seed, bool) or not isinstance(participant.seed, int) or participant.seed < 1:
            raise ConfigurationError(f"Seed for '{participant.name}' must be a positive integer.")
        seeds.append(participant.seed)
    if len(set(seeds)) != len(seeds):
        raise ConfigurationError("Two participants share the same seed.")

    seeded = sorted((p for p in participants if p.seed is not None), key=lambda p: p.seed)
    unseeded = [p for p in participants if p.seed is None]
    return seeded + unseeded


def dedupe_by_name(participants: List[Participant]) -> List[Participant]:
    """Drop participants whose name repeats an earlier one (case-insensitive), keeping the first."""
    seen = set()
    kept = []
    for participant in participants:
        key = (participant.name or '').strip().lower()
        if not key:
            continue
        if key in seen:
            logger.warning("Dropping duplicate participant %s (%s)", participant.id, participant.name)
            continue
        seen.add(key)
        kept.append(participant)
    return kept


def _opening_slots(ordered: List[Participant], bracket_size: int) -> List[Tuple[Slot, Slot]]:
    """
    Slot pairs for the opening round, in position order.

    The top seeds get a walkover against a bye; everyone else is paired with
    the adjacent seed. Bye match i and contested match i are siblings, so each
    bye holder meets a first-round winner in round 2. Leftover byes (or
    leftover contested matches) pair among themselves.
    """
    byes = bracket_size - len(ordered)
    bye_pairs = [(Slot.of(p.id), Slot.bye()) for p in ordered[:byes]]
    contested = ordered[byes:]
    pairs = [(Slot.of(contested[i].id), Slot.of(contested[i + 1].id))
             for i in range(0, len(contested), 2)]

    layout = []
    for i in range(max(len(bye_pairs), len(pairs))):
        if i < len(bye_pairs):
            layout.append(bye_pairs[i])
        if i < len(pairs):
            layout.append(pairs[i])
    return layout


def _build_winners_bracket(match_set: MatchSet, total_rounds: int,
                           final_is_grand_final: bool) -> List[List[Match]]:
    """
    Add the winners bracket to match_set and return its rounds.

    Round r has bracket_size / 2**r matches. The winner of match i in one
    round goes to match i // 2 of the next, slot i % 2. In single elimination
    the last round is the grand final.
    """
    bracket_size = match_set.bracket_size
    rounds = []

    for round_number in range(1, total_rounds + 1):
        if final_is_grand_final and round_number == total_rounds:
            role, number = BracketRole.GRAND_FINAL, 1
        else:
            role, number = BracketRole.WINNERS, round_number

        round_matches = []
        for position in range(1, (bracket_size >> round_number) + 1):
            match = Match(match_code(role, number, position), role, number, position)
            round_matches.append(match_set.add(match))

        if rounds:
            for index, previous in enumerate(rounds[-1]):
                previous.winner_to = (round_matches[index // 2].id, index % 2)
        rounds.append(round_matches)

    for match, (first, second) in zip(rounds[0], _opening_slots(match_set.participants, bracket_size)):
        match.slots = [first, second]

    return rounds


def build_single_elimination(participants: List[Participant]) -> MatchSet:
    """
    Build a single elimination bracket for participants ordered by seed.

    Raises ConfigurationError for fewer than 2 participants and
    StructuralError if the result fails validation.
    """
    from .validation import certify

    _require_participants(participants)
    match_set = MatchSet(BracketFormat.SINGLE, participants)
    total_rounds = calculate_total_rounds(len(participants))
    _build_winners_bracket(match_set, total_rounds, final_is_grand_final=True)

    certify(match_set)
    logger.debug("Built single elimination bracket: %d participants, %d matches",
                 len(participants), len(match_set.matches))
    return match_set
