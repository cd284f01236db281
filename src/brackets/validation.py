"""
Structural validation of a bracket.

validate() works on anything exposing bracket_format, participants (ordered
by seed) and matches (dict of match id -> Match): a freshly built MatchSet or
a TournamentState in the middle of play. It returns a list of violations;
an empty list means the bracket is sound.
"""
import logging
from collections import Counter, defaultdict
from typing import Dict, List, Tuple

from .double_elimination import calculate_losers_round_sizes
from .elimination import calculate_bracket_size, calculate_total_rounds
from .errors import StructuralError
from .models import (
    ROLE_ORDER,
    BracketFormat,
    BracketRole,
    Match,
    Violation,
    round_code,
)

logger = logging.getLogger(__name__)

ROUND_COUNT = 'ROUND_COUNT'
DUPLICATE_POSITION = 'DUPLICATE_POSITION'
OPENING_SLOTS = 'OPENING_SLOTS'
BYE_ALLOCATION = 'BYE_ALLOCATION'
EMPTY_OPENING_MATCH = 'EMPTY_OPENING_MATCH'
LOSS_LIMIT = 'LOSS_LIMIT'
FINALS_COUNT = 'FINALS_COUNT'
FEED = 'FEED'
INVALID_WINNER = 'INVALID_WINNER'

FINAL_ROLES = (BracketRole.GRAND_FINAL, BracketRole.BRACKET_RESET)


def max_losses(bracket_format: BracketFormat) -> int:
    return 1 if bracket_format == BracketFormat.SINGLE else 2


def expected_round_sizes(bracket_format: BracketFormat, num_participants: int) -> Dict[Tuple[BracketRole, int], int]:
    """Match count per (role, round) the builders produce for this roster size."""
    sizes = {}
    if num_participants < 2:
        return sizes
    bracket_size = calculate_bracket_size(num_participants)
    total_rounds = calculate_total_rounds(num_participants)

    winners_rounds = total_rounds - 1 if bracket_format == BracketFormat.SINGLE else total_rounds
    for round_number in range(1, winners_rounds + 1):
        sizes[(BracketRole.WINNERS, round_number)] = bracket_size >> round_number

    if bracket_format == BracketFormat.DOUBLE:
        for round_number, size in enumerate(calculate_losers_round_sizes(num_participants), start=1):
            sizes[(BracketRole.LOSERS, round_number)] = size

    sizes[(BracketRole.GRAND_FINAL, 1)] = 1
    if bracket_format == BracketFormat.DOUBLE:
        sizes[(BracketRole.BRACKET_RESET, 1)] = 1
    return sizes


def opening_matches(matches: Dict[str, Match]) -> List[Match]:
    """First-round matches; a two-player single elimination bracket opens with its final."""
    first_round = [m for m in matches.values() if m.role == BracketRole.WINNERS and m.round == 1]
    if not first_round:
        first_round = [m for m in matches.values() if m.role == BracketRole.GRAND_FINAL]
    return sorted(first_round, key=lambda m: m.position)


def loss_counts(matches: Dict[str, Match]) -> Counter:
    """Losses per participant from decided, non-walkover matches."""
    counts = Counter()
    for match in matches.values():
        if match.is_decisive and match.loser_id is not None:
            counts[match.loser_id] += 1
    return counts


def _round_sort_key(key: Tuple[BracketRole, int]):
    return (ROLE_ORDER[key[0]], key[1])


def _check_round_counts(bracket_format, num_participants, matches) -> List[Violation]:
    violations = []
    expected = expected_round_sizes(bracket_format, num_participants)
    actual = Counter((m.role, m.round) for m in matches.values())

    for key in sorted(set(expected) | set(actual), key=_round_sort_key):
        role, number = key
        if role in FINAL_ROLES:
            continue
        want, got = expected.get(key, 0), actual.get(key, 0)
        if want != got:
            violations.append(Violation(
                ROUND_COUNT, round_code(role, number),
                f"Round {round_code(role, number)} should have {want} matches, found {got}"
            ))
    return violations


def _check_positions(matches) -> List[Violation]:
    violations = []
    positions = defaultdict(list)
    for match in matches.values():
        positions[(match.role, match.round)].append(match.position)

    for key in sorted(positions, key=_round_sort_key):
        seen = positions[key]
        duplicates = sorted(p for p, count in Counter(seen).items() if count > 1)
        if duplicates:
            violations.append(Violation(
                DUPLICATE_POSITION, round_code(*key),
                f"Round {round_code(*key)} has duplicate positions: {duplicates}"
            ))
    return violations


def _check_opening(participants, matches) -> List[Violation]:
    violations = []
    opening = opening_matches(matches)
    label = opening[0].round_code if opening else None
    roster_ids = [p.id for p in participants]

    placed = Counter()
    bye_slots = 0
    for match in opening:
        for slot in match.slots:
            if slot.is_filled:
                placed[slot.participant_id] += 1
            elif slot.is_bye:
                bye_slots += 1
        if not match.participant_ids:
            violations.append(Violation(
                EMPTY_OPENING_MATCH, match.round_code,
                f"Opening match {match.id} has no participant"
            ))

    for pid in roster_ids:
        if placed[pid] != 1:
            violations.append(Violation(
                OPENING_SLOTS, label,
                f"Participant {pid} occupies {placed[pid]} opening slots, expected exactly 1"
            ))
    for pid in sorted(set(placed) - set(roster_ids)):
        violations.append(Violation(
            OPENING_SLOTS, label, f"Unknown participant {pid} in opening round"
        ))

    byes = calculate_bracket_size(len(participants)) - len(participants)
    if bye_slots != byes:
        violations.append(Violation(
            BYE_ALLOCATION, label, f"Opening round has {bye_slots} bye slots, expected {byes}"
        ))
    bye_holders = set()
    for match in opening:
        if match.has_bye:
            bye_holders.update(match.participant_ids)
    top_seeds = set(roster_ids[:byes])
    if bye_holders != top_seeds:
        wrong = sorted(bye_holders ^ top_seeds)
        violations.append(Violation(
            BYE_ALLOCATION, label,
            f"Byes must go to the top {byes} seeds; mismatched participants: {wrong}"
        ))
    return violations


def _check_losses(bracket_format, matches) -> List[Violation]:
    violations = []
    limit = max_losses(bracket_format)
    for pid, count in sorted(loss_counts(matches).items()):
        if count > limit:
            violations.append(Violation(
                LOSS_LIMIT, None,
                f"Participant {pid} has {count} losses; a {bracket_format.value} elimination allows {limit}"
            ))
    return violations


def _check_finals(bracket_format, matches) -> List[Violation]:
    violations = []
    roles = Counter(m.role for m in matches.values())
    expected = {
        BracketRole.GRAND_FINAL: 1,
        BracketRole.BRACKET_RESET: 1 if bracket_format == BracketFormat.DOUBLE else 0,
    }
    for role, want in expected.items():
        if roles.get(role, 0) != want:
            violations.append(Violation(
                FINALS_COUNT, round_code(role, 1),
                f"Expected {want} {role.value} match(es), found {roles.get(role, 0)}"
            ))
    return violations


def _check_feeds(matches) -> List[Violation]:
    violations = []
    fed = Counter()
    for match in matches.values():
        for link in (match.winner_to, match.loser_to):
            if link is None:
                continue
            target_id, slot = link
            if target_id not in matches or slot not in (0, 1):
                violations.append(Violation(
                    FEED, match.round_code, f"Match {match.id} links to missing slot {target_id}[{slot}]"
                ))
                continue
            fed[(target_id, slot)] += 1

    opening_ids = {m.id for m in opening_matches(matches)}
    for match in matches.values():
        if match.role == BracketRole.BRACKET_RESET:
            continue
        for index, slot in enumerate(match.slots):
            count = fed[(match.id, index)]
            if match.id in opening_ids or slot.is_bye:
                if count:
                    violations.append(Violation(
                        FEED, match.round_code, f"Slot {match.id}[{index}] cannot be fed but has {count} feed(s)"
                    ))
            elif count != 1:
                violations.append(Violation(
                    FEED, match.round_code, f"Slot {match.id}[{index}] has {count} feeds, expected 1"
                ))
    return violations


def _check_winners(matches) -> List[Violation]:
    violations = []
    for match in matches.values():
        if match.winner_id is not None and match.winner_id not in match.participant_ids:
            violations.append(Violation(
                INVALID_WINNER, match.round_code,
                f"Match {match.id} records winner {match.winner_id} who does not occupy it"
            ))
    return violations


def validate(tournament) -> List[Violation]:
    """Check every structural invariant of a bracket and return the violations found."""
    bracket_format = tournament.bracket_format
    participants = list(tournament.participants)
    matches = tournament.matches

    violations = []
    violations.extend(_check_round_counts(bracket_format, len(participants), matches))
    violations.extend(_check_positions(matches))
    violations.extend(_check_opening(participants, matches))
    violations.extend(_check_losses(bracket_format, matches))
    violations.extend(_check_finals(bracket_format, matches))
    violations.extend(_check_feeds(matches))
    violations.extend(_check_winners(matches))
    return violations


def certify(match_set):
    """Raise StructuralError unless match_set validates cleanly."""
    violations = validate(match_set)
    if violations:
        logger.error("Bracket for %d participants failed validation: %s",
                     len(match_set.participants), violations)
        raise StructuralError(
            f"Built {match_set.bracket_format.value} elimination bracket for "
            f"{len(match_set.participants)} participants has {len(violations)} structural violation(s); "
            f"first: {violations[0].message}",
            violations,
        )


def format_report(violations: List[Violation]) -> str:
    """Operator-facing text report."""
    if not violations:
        return "No structural problems detected."
    lines = [f"{len(violations)} problem(s) found:"]
    for violation in violations:
        where = f" [{violation.round}]" if violation.round else ""
        lines.append(f"  - {violation.code}{where}: {violation.message}")
    return "\n".join(lines)
