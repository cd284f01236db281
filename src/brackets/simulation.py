"""
Play a tournament to completion with random winners.

Used by the bracket_tool CLI and the regression tests to exercise the
builder, the engine and the validator together.
"""
import logging
import random
from typing import List, Optional

from .models import BracketRole, Violation
from .validation import validate

logger = logging.getLogger(__name__)


def play_out(service, tournament_id: str, rng: Optional[random.Random] = None,
             check_each_step: bool = False) -> dict:
    """
    Report a random winner for every ready match until none is left.

    With check_each_step the validator runs after every result and the
    violations found are collected in the summary.
    """
    rng = rng or random.Random()
    state = service.get_tournament(tournament_id)
    violations: List[Violation] = []
    reported = 0

    while True:
        ready = state.ready_matches()
        if not ready:
            break
        match = ready[0]
        winner_id = rng.choice(match.participant_ids)
        service.report_result(tournament_id, match.id, winner_id)
        reported += 1
        if check_each_step:
            violations.extend(validate(state))

    violations.extend(validate(state))
    finals_played = [m for m in state.decisive_matches()
                     if m.role in (BracketRole.GRAND_FINAL, BracketRole.BRACKET_RESET)]
    summary = {
        'tournament_id': tournament_id,
        'status': state.status.value,
        'champion_id': state.champion_id,
        'reported': reported,
        'decisive_matches': len(state.decisive_matches()),
        'losses': dict(state.loss_counts()),
        'finals_played': len(finals_played),
        'bracket_reset_played': any(m.role == BracketRole.BRACKET_RESET for m in finals_played),
        'violations': [v.to_dict() for v in violations],
    }
    logger.info("Played out %s: %d results, champion %s", tournament_id, reported, state.champion_id)
    return summary
