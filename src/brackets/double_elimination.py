"""
Double elimination bracket generation.

In double elimination:
- Participants must lose twice to be eliminated
- Winners Bracket: participants that haven't lost yet
- Losers Bracket: participants that have lost once
- Grand Final: Winners bracket champion vs Losers bracket champion
- Bracket Reset: If the losers bracket champion wins the Grand Final, one more match decides the champion

The losers bracket is derived from the roster size at build time. The losers
of contested first-round matches are its first entrants. Each later winners
round drops its losers in once the losers bracket has been whittled down to
no more survivors than there are incoming losers; survivors-only rounds are
played until then. An odd number of entrants gives the last one a bye.
"""
import logging
from typing import Dict, List, Tuple

from .elimination import (
    _build_winners_bracket,
    _require_participants,
    calculate_bracket_size,
    calculate_total_rounds,
    get_round_name,
)
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

# A participant source feeding a losers bracket slot: (match, 'winner' | 'loser')
Entrant = Tuple[Match, str]


def get_losers_round_name(round_num: int, total_losers_rounds: int) -> str:
    """Get the name for a losers bracket round (0-indexed)."""
    rounds_from_end = total_losers_rounds - round_num - 1
    if rounds_from_end == 0:
        return "Losers Final"
    elif rounds_from_end == 1:
        return "Losers Semifinal"
    else:
        return f"Losers Round {round_num + 1}"


def get_winners_round_name(teams_in_round: int) -> str:
    """Get the name for a winners bracket round."""
    if teams_in_round == 2:
        return "Winners Final"
    elif teams_in_round == 4:
        return "Winners Semifinal"
    elif teams_in_round == 8:
        return "Winners Quarterfinal"
    else:
        return f"Winners Round of {teams_in_round}"


def calculate_losers_round_sizes(num_participants: int) -> List[int]:
    """
    Match count of every losers bracket round, in order.

    Mirrors the construction in build_double_elimination using counts only,
    so the validator can check a built bracket against it.
    """
    bracket_size = calculate_bracket_size(num_participants)
    if bracket_size < 2:
        return []
    total_rounds = calculate_total_rounds(num_participants)

    survivors = num_participants - bracket_size // 2
    sizes = []
    for wb_round in range(2, total_rounds + 1):
        incoming = bracket_size >> wb_round
        while survivors > incoming:
            survivors = (survivors + 1) // 2
            sizes.append(survivors)
        survivors = (survivors + incoming + 1) // 2
        sizes.append(survivors)
    while survivors > 1:
        survivors = (survivors + 1) // 2
        sizes.append(survivors)
    return sizes


def _link(entrant: Entrant, target: Match, slot: int):
    source, outcome = entrant
    if outcome == 'winner':
        source.winner_to = (target.id, slot)
    else:
        source.loser_to = (target.id, slot)


def _drop_in_order(incoming: List[Entrant], survivors: List[Entrant]) -> List[Entrant]:
    """Pair each incoming winners bracket loser with a survivor; extras pair among themselves."""
    ordered = []
    for i in range(max(len(incoming), len(survivors))):
        if i < len(incoming):
            ordered.append(incoming[i])
        if i < len(survivors):
            ordered.append(survivors[i])
    return ordered


def _add_losers_round(match_set: MatchSet, round_number: int, entrants: List[Entrant]) -> List[Entrant]:
    """Add one losers bracket round pairing entrants in order; return its winners."""
    survivors = []
    for index in range(0, len(entrants), 2):
        position = index // 2 + 1
        match = match_set.add(Match(match_code(BracketRole.LOSERS, round_number, position),
                                    BracketRole.LOSERS, round_number, position))
        _link(entrants[index], match, 0)
        if index + 1 < len(entrants):
            _link(entrants[index + 1], match, 1)
        else:
            match.slots[1] = Slot.bye()
        survivors.append((match, 'winner'))
    return survivors


def _build_losers_bracket(match_set: MatchSet, winners: List[List[Match]]) -> Entrant:
    """Add the losers bracket and return the source of its champion."""
    survivors = [(m, 'loser') for m in winners[0] if not m.has_bye]
    round_number = 0

    for wb_round in winners[1:]:
        incoming = [(m, 'loser') for m in wb_round]
        while len(survivors) > len(incoming):
            round_number += 1
            survivors = _add_losers_round(match_set, round_number, survivors)
        round_number += 1
        survivors = _add_losers_round(match_set, round_number, _drop_in_order(incoming, survivors))

    while len(survivors) > 1:
        round_number += 1
        survivors = _add_losers_round(match_set, round_number, survivors)

    return survivors[0]


def build_double_elimination(participants: List[Participant]) -> MatchSet:
    """
    Build a double elimination bracket for participants ordered by seed.

    Grand Final slot 0 is the winners bracket champion, slot 1 the losers
    bracket champion. The Bracket Reset is filled only if slot 1 wins.
    Raises ConfigurationError for fewer than 2 participants and
    StructuralError if the result fails validation.
    """
    from .validation import certify

    _require_participants(participants)
    match_set = MatchSet(BracketFormat.DOUBLE, participants)
    total_rounds = calculate_total_rounds(len(participants))

    winners = _build_winners_bracket(match_set, total_rounds, final_is_grand_final=False)
    losers_champion = _build_losers_bracket(match_set, winners)

    grand_final = match_set.add(Match(match_code(BracketRole.GRAND_FINAL, 1, 1),
                                      BracketRole.GRAND_FINAL, 1, 1))
    winners[-1][0].winner_to = (grand_final.id, 0)
    _link(losers_champion, grand_final, 1)
    match_set.add(Match(match_code(BracketRole.BRACKET_RESET, 1, 1), BracketRole.BRACKET_RESET, 1, 1))

    certify(match_set)
    logger.debug("Built double elimination bracket: %d participants, %d matches",
                 len(participants), len(match_set.matches))
    return match_set


def round_name(match: Match, bracket_format: BracketFormat,
               round_counts: Dict[Tuple[BracketRole, int], int]) -> str:
    """Display name for the round a match belongs to."""
    if match.role == BracketRole.GRAND_FINAL:
        return "Final" if bracket_format == BracketFormat.SINGLE else "Grand Final"
    if match.role == BracketRole.BRACKET_RESET:
        return "Bracket Reset"
    if match.role == BracketRole.LOSERS:
        total_losers_rounds = max(r for role, r in round_counts if role == BracketRole.LOSERS)
        return get_losers_round_name(match.round - 1, total_losers_rounds)

    teams_in_round = 2 * round_counts[(match.role, match.round)]
    if bracket_format == BracketFormat.SINGLE:
        return get_round_name(teams_in_round)
    return get_winners_round_name(teams_in_round)
