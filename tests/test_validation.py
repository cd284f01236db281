"""
Tests for the structural validator. Each test breaks a freshly built bracket
in one way and checks that the matching violation is reported.
"""
import pytest

from brackets.double_elimination import build_double_elimination
from brackets.elimination import build_single_elimination
from brackets.errors import StructuralError
from brackets.models import BracketFormat, BracketRole, Slot, Violation
from brackets import validation
from brackets.validation import certify, expected_round_sizes, format_report, validate
from conftest import make_roster


def codes(violations):
    return {v.code for v in violations}


class TestExpectedSizes:
    def test_single_twenty_four(self):
        sizes = expected_round_sizes(BracketFormat.SINGLE, 24)
        assert sizes[(BracketRole.WINNERS, 1)] == 16
        assert sizes[(BracketRole.WINNERS, 4)] == 2
        assert (BracketRole.WINNERS, 5) not in sizes
        assert sizes[(BracketRole.GRAND_FINAL, 1)] == 1
        assert (BracketRole.BRACKET_RESET, 1) not in sizes

    def test_double_includes_losers_and_reset(self):
        sizes = expected_round_sizes(BracketFormat.DOUBLE, 4)
        assert sizes[(BracketRole.WINNERS, 2)] == 1
        assert sizes[(BracketRole.LOSERS, 1)] == 1
        assert sizes[(BracketRole.LOSERS, 2)] == 1
        assert sizes[(BracketRole.BRACKET_RESET, 1)] == 1

    def test_max_losses(self):
        assert validation.max_losses(BracketFormat.SINGLE) == 1
        assert validation.max_losses(BracketFormat.DOUBLE) == 2


class TestViolations:
    """Every structural invariant has its own violation code."""

    def test_clean_bracket(self):
        assert validate(build_double_elimination(make_roster(11))) == []

    def test_round_count(self):
        match_set = build_single_elimination(make_roster(8))
        del match_set.matches["W2-M2"]
        found = validate(match_set)
        assert Violation(validation.ROUND_COUNT, "W2", "Round W2 should have 2 matches, found 1") in found
        # the semifinal's feeders now point at a missing match
        assert validation.FEED in codes(found)

    def test_duplicate_position(self):
        match_set = build_single_elimination(make_roster(8))
        match_set.matches["W1-M2"].position = 1
        assert validation.DUPLICATE_POSITION in codes(validate(match_set))

    def test_participant_placed_twice(self):
        match_set = build_single_elimination(make_roster(4))
        match_set.matches["W1-M2"].slots[1] = Slot.of("p1")
        found = validate(match_set)
        messages = [v.message for v in found if v.code == validation.OPENING_SLOTS]
        assert "Participant p1 occupies 2 opening slots, expected exactly 1" in messages
        assert "Participant p4 occupies 0 opening slots, expected exactly 1" in messages

    def test_byes_must_go_to_top_seeds(self):
        match_set = build_single_elimination(make_roster(5))
        m = match_set.matches
        m["W1-M1"].slots[0] = Slot.of("p5")
        m["W1-M2"].slots[1] = Slot.of("p1")
        found = [v for v in validate(match_set) if v.code == validation.BYE_ALLOCATION]
        assert len(found) == 1
        assert "p1" in found[0].message and "p5" in found[0].message

    def test_bye_count(self):
        match_set = build_single_elimination(make_roster(6))
        match_set.matches["W1-M2"].slots[1] = Slot.bye()
        messages = [v.message for v in validate(match_set) if v.code == validation.BYE_ALLOCATION]
        assert "Opening round has 3 bye slots, expected 2" in messages

    def test_empty_opening_match(self):
        match_set = build_single_elimination(make_roster(4))
        match_set.matches["W1-M2"].slots = [Slot.empty(), Slot.empty()]
        assert validation.EMPTY_OPENING_MATCH in codes(validate(match_set))

    def test_loss_limit(self):
        match_set = build_single_elimination(make_roster(4))
        m = match_set.matches
        m["W1-M1"].winner_id = "p1"
        m["GF"].slots = [Slot.of("p1"), Slot.of("p2")]
        m["GF"].winner_id = "p1"
        found = [v for v in validate(match_set) if v.code == validation.LOSS_LIMIT]
        assert len(found) == 1
        assert "p2 has 2 losses" in found[0].message

    def test_finals_count(self):
        match_set = build_double_elimination(make_roster(4))
        del match_set.matches["BR"]
        found = validate(match_set)
        assert Violation(validation.FINALS_COUNT, "BR", "Expected 1 bracket_reset match(es), found 0") in found

    def test_unfed_slot(self):
        match_set = build_double_elimination(make_roster(4))
        match_set.matches["L1-M1"].winner_to = None
        messages = [v.message for v in validate(match_set) if v.code == validation.FEED]
        assert messages == ["Slot L2-M1[1] has 0 feeds, expected 1"]

    def test_invalid_winner(self):
        match_set = build_single_elimination(make_roster(4))
        match_set.matches["W1-M1"].winner_id = "p9"
        assert validation.INVALID_WINNER in codes(validate(match_set))


class TestCertify:
    def test_certify_raises_with_violations(self):
        match_set = build_single_elimination(make_roster(4))
        match_set.matches["W1-M1"].winner_id = "p9"
        with pytest.raises(StructuralError) as excinfo:
            certify(match_set)
        assert [v.code for v in excinfo.value.violations] == [validation.INVALID_WINNER]
        assert excinfo.value.to_dict()['error'] == 'structural_error'

    def test_format_report(self):
        assert format_report([]) == "No structural problems detected."
        report = format_report([Violation("FEED", "W2", "bad link"), Violation("LOSS_LIMIT", None, "too many")])
        assert report.splitlines() == [
            "2 problem(s) found:",
            "  - FEED [W2]: bad link",
            "  - LOSS_LIMIT: too many",
        ]
