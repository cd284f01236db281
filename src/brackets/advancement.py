"""
Result advancement.

The engine never mutates the matches it is given. It works on copies of the
matches it touches and returns a MutationBatch describing every change a
result causes, including walkovers that resolve as a consequence. The caller
(TournamentState) applies the batch atomically.
"""
import logging
from typing import Dict, Mapping

from .errors import (
    InvalidParticipant,
    MatchNotFound,
    MatchNotReady,
    ResultConflict,
    StructuralError,
)
from .models import (
    BracketFormat,
    BracketRole,
    Feed,
    Match,
    MatchStatus,
    Mutation,
    MutationBatch,
    Slot,
    match_code,
)

logger = logging.getLogger(__name__)

BRACKET_RESET_ID = match_code(BracketRole.BRACKET_RESET, 1, 1)


class _Workspace:
    """Copy-on-write view of the matches, recording mutations into a batch."""

    def __init__(self, matches: Mapping[str, Match], batch: MutationBatch):
        self._source = matches
        self._copies: Dict[str, Match] = {}
        self.batch = batch

    def get(self, match_id: str) -> Match:
        if match_id in self._copies:
            return self._copies[match_id]
        original = self._source.get(match_id)
        if original is None:
            raise MatchNotFound(f"No match '{match_id}' in this bracket.")
        self.batch.expected_versions[match_id] = original.version
        working = original.copy()
        self._copies[match_id] = working
        return working

    def fill_slot(self, match: Match, slot: int, participant_id: str):
        match.slots[slot] = Slot.of(participant_id)
        self.batch.mutations.append(Mutation(Mutation.FILL_SLOT, match.id, slot, participant_id))

    def set_winner(self, match: Match, participant_id: str):
        match.winner_id = participant_id
        self.batch.mutations.append(Mutation(Mutation.SET_WINNER, match.id, participant_id=participant_id))

    def set_champion(self, participant_id: str):
        self.batch.mutations.append(Mutation(Mutation.SET_CHAMPION, participant_id=participant_id))


class AdvancementEngine:
    def __init__(self, bracket_format):
        self.bracket_format = BracketFormat.parse(bracket_format)

    def record_result(self, matches: Mapping[str, Match], match_id: str, winner_id: str) -> MutationBatch:
        """
        Compute the mutations caused by winner_id winning match_id.

        Re-reporting the recorded winner returns an empty batch flagged
        already_decided; reporting a different one raises ResultConflict.
        """
        batch = MutationBatch(match_id, winner_id)
        work = _Workspace(matches, batch)
        match = work.get(match_id)

        if match.winner_id is not None:
            if match.winner_id == winner_id:
                batch.already_decided = True
                return batch
            raise ResultConflict(
                f"Match {match_id} already has winner {match.winner_id}; "
                f"refusing to record {winner_id} instead."
            )

        if match.status != MatchStatus.READY:
            raise MatchNotReady(
                f"Match {match_id} is not ready: both participants must be known before reporting a result."
            )
        if winner_id not in match.participant_ids:
            raise InvalidParticipant(
                f"'{winner_id}' is not playing in match {match_id} "
                f"({' vs '.join(match.participant_ids)})."
            )

        self._decide(work, match, winner_id)
        logger.debug("Result %s -> %s produced %d mutation(s)", match_id, winner_id, len(batch))
        return batch

    def resolve_byes(self, matches: Mapping[str, Match]) -> MutationBatch:
        """Resolve every walkover whose participant is already known."""
        batch = MutationBatch()
        work = _Workspace(matches, batch)
        for match_id, original in matches.items():
            if original.winner_id is not None or not original.has_bye:
                continue
            if len(original.participant_ids) != 1:
                continue
            match = work.get(match_id)
            if match.winner_id is None:
                self._decide(work, match, match.participant_ids[0])
        return batch

    def _decide(self, work: _Workspace, match: Match, winner_id: str):
        work.set_winner(match, winner_id)
        loser_id = match.loser_id

        if match.role == BracketRole.GRAND_FINAL and self.bracket_format == BracketFormat.DOUBLE:
            if match.slot_of(winner_id) == 1:
                # Losers bracket champion took the first set: play the reset.
                for index, slot in enumerate(match.slots):
                    self._place(work, (BRACKET_RESET_ID, index), slot.participant_id)
            else:
                work.set_champion(winner_id)
            return

        if match.winner_to is None:
            work.set_champion(winner_id)
            return

        self._place(work, match.winner_to, winner_id)
        if loser_id is not None and match.loser_to is not None:
            self._place(work, match.loser_to, loser_id)

    def _place(self, work: _Workspace, feed: Feed, participant_id: str):
        target_id, slot = feed
        target = work.get(target_id)
        if not target.slots[slot].is_empty:
            raise StructuralError(
                f"Slot {target_id}[{slot}] is already occupied by {target.slots[slot]!r}; "
                f"cannot place {participant_id}."
            )
        work.fill_slot(target, slot, participant_id)

        other = target.slots[1 - slot]
        if other.is_bye and target.winner_id is None:
            self._decide(work, target, participant_id)
