"""
Tests for TournamentState: lifecycle, atomic application of result batches,
snapshots and subscriptions.
"""
import threading

import pytest

from brackets.advancement import AdvancementEngine
from brackets.double_elimination import build_double_elimination
from brackets.elimination import build_single_elimination
from brackets.errors import ConcurrencyConflict, TournamentClosed
from brackets.models import BracketFormat, BracketRole, TournamentStatus
from brackets.state import TournamentState
from conftest import make_roster


def new_state(count=4, builder=build_single_elimination):
    return TournamentState.create("cup", builder(make_roster(count)), name="Spring Cup")


def report(state, match_id, winner_id, commit=None):
    batch = AdvancementEngine(state.bracket_format).record_result(state.matches, match_id, winner_id)
    state.apply(batch, commit=commit)
    return batch


class TestLifecycle:
    def test_create_is_draft(self):
        state = new_state()
        assert state.status == TournamentStatus.DRAFT
        assert state.name == "Spring Cup"
        assert state.version == 0
        assert state.bracket_size == 4

    def test_activate_resolves_walkovers(self):
        state = new_state(24)
        state.activate()
        assert state.status == TournamentStatus.ACTIVE
        assert state.version == 1
        walkovers = [m for m in state.matches_by_round(BracketRole.WINNERS, 1) if m.has_bye]
        assert len(walkovers) == 8
        assert all(m.winner_id is not None for m in walkovers)
        assert len(state.ready_matches()) == 8
        assert state.results == []

    def test_activate_twice(self):
        state = new_state()
        state.activate()
        with pytest.raises(TournamentClosed):
            state.activate()

    def test_apply_requires_active(self):
        state = new_state()
        batch = AdvancementEngine(BracketFormat.SINGLE).record_result(state.matches, "W1-M1", "p1")
        with pytest.raises(TournamentClosed):
            state.apply(batch)

    def test_completion(self):
        state = new_state(2)
        state.activate()
        report(state, "GF", "p2")
        assert state.status == TournamentStatus.COMPLETED
        assert state.champion.name == "Player 2"
        with pytest.raises(TournamentClosed):
            state.abort()

    def test_abort_keeps_results(self):
        state = new_state()
        state.activate()
        report(state, "W1-M1", "p1")
        state.abort()
        assert state.status == TournamentStatus.ABORTED
        assert [r['match_id'] for r in state.results] == ["W1-M1"]
        with pytest.raises(TournamentClosed):
            report(state, "W1-M2", "p3")
        state.abort()
        assert state.status == TournamentStatus.ABORTED


class TestApply:
    """All-or-nothing application of result batches."""

    def test_views_are_snapshots(self):
        state = new_state()
        state.activate()
        before = state.matches
        report(state, "W1-M1", "p2")
        assert before["W1-M1"].winner_id is None
        assert state.matches["W1-M1"].winner_id == "p2"
        assert state.get_match("GF").version == 1

    def test_matches_view_is_read_only(self):
        state = new_state()
        with pytest.raises(TypeError):
            state.matches["W1-M1"] = None

    def test_stale_batch_conflicts(self):
        """Two results computed from the same view both write the final."""
        state = new_state()
        state.activate()
        engine = AdvancementEngine(BracketFormat.SINGLE)
        view = state.matches
        first = engine.record_result(view, "W1-M1", "p1")
        second = engine.record_result(view, "W1-M2", "p3")
        state.apply(first)
        with pytest.raises(ConcurrencyConflict):
            state.apply(second)
        assert state.get_match("W1-M2").winner_id is None
        assert state.get_match("GF").participant_ids == ["p1"]

    def test_failed_commit_changes_nothing(self):
        state = new_state()
        state.activate()

        def failing_commit(snapshot):
            raise OSError("disk full")

        with pytest.raises(OSError):
            report(state, "W1-M1", "p1", commit=failing_commit)
        assert state.get_match("W1-M1").winner_id is None
        assert state.version == 1
        assert state.results == []

    def test_commit_sees_candidate(self):
        state = new_state()
        state.activate()
        seen = []
        report(state, "W1-M1", "p1", commit=seen.append)
        assert seen[0]['version'] == 2
        row = next(r for r in seen[0]['matches'] if r['id'] == "W1-M1")
        assert row['winner_id'] == "p1"

    def test_audit_entry(self):
        state = new_state(5, build_double_elimination)
        state.activate()
        report(state, "W2-M2", "p2")
        entry = state.results[-1]
        assert entry['match_id'] == "W2-M2"
        assert entry['winner_id'] == "p2"
        assert entry['loser_id'] == "p3"
        assert entry['walkovers'] == ["L1-M2"]
        assert 'recorded_at' in entry


class TestQueries:
    def test_rounds_in_bracket_order(self):
        state = new_state(5, build_double_elimination)
        assert list(state.rounds()) == ["W1", "W2", "W3", "L1", "L2", "L3", "GF", "BR"]

    def test_loss_counts_and_decisive(self):
        state = new_state(4, build_double_elimination)
        state.activate()
        report(state, "W1-M1", "p1")
        report(state, "W1-M2", "p3")
        report(state, "L1-M1", "p2")
        assert state.loss_counts() == {"p2": 1, "p4": 2}
        assert [m.id for m in state.decisive_matches()] == ["W1-M1", "W1-M2", "L1-M1"]


class TestSnapshots:
    def test_snapshot_round_trip(self):
        state = new_state(6, build_double_elimination)
        state.activate()
        report(state, "W1-M2", "p3")
        data = state.snapshot()
        assert data['format'] == "double"
        assert data['status'] == "active"
        assert data['bracket_size'] == 8

        restored = TournamentState.from_snapshot(data)
        assert restored.version == state.version
        assert restored.status == TournamentStatus.ACTIVE
        assert restored.participants == state.participants
        assert [m.to_dict() for m in restored.matches.values()] == \
            [m.to_dict() for m in state.matches.values()]
        assert restored.results == state.results

    def test_round_names_in_snapshot(self):
        data = new_state(8).snapshot()
        names = {row['id']: row['round_name'] for row in data['matches']}
        assert names["W1-M1"] == "Quarterfinal"
        assert names["GF"] == "Final"

    def test_subscribers(self):
        state = new_state()
        received = []
        unsubscribe = state.subscribe(received.append)
        state.activate()
        report(state, "W1-M1", "p1")
        unsubscribe()
        report(state, "W1-M2", "p3")
        assert [s['version'] for s in received] == [1, 2]

    def test_subscriber_can_hand_off_to_another_thread(self):
        """Subscribers run after the lock is released, so other threads can apply."""
        state = new_state()
        workers = []

        def hand_off(snapshot):
            if snapshot['version'] != 2:
                return
            worker = threading.Thread(target=report, args=(state, "W1-M2", "p3"))
            worker.start()
            worker.join(timeout=5)
            workers.append(worker)

        state.subscribe(hand_off)
        state.activate()
        report(state, "W1-M1", "p1")
        assert len(workers) == 1
        assert not workers[0].is_alive()
        assert state.get_match("W1-M2").winner_id == "p3"
        assert state.version == 3

    def test_failing_subscriber_does_not_break_apply(self, caplog):
        state = new_state()

        def broken(snapshot):
            raise ValueError("boom")

        state.subscribe(broken)
        state.activate()
        assert state.status == TournamentStatus.ACTIVE
        assert "Snapshot subscriber failed" in caplog.text
