"""
Tests for the bracket_tool command line.
"""
import pytest
import yaml

import bracket_tool
from brackets.config import ENV_OVERRIDES
from brackets.service import TournamentService
from conftest import make_roster, play


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv('BRACKETS_CONFIG', raising=False)
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


class TestBuildCommand:
    def test_numbered_roster(self, capsys):
        assert bracket_tool.main(['build', '5', '--format', 'single']) == 0
        out = capsys.readouterr().out
        assert "Single elimination: 5 participants, bracket size 8, 3 bye(s)" in out
        assert "W1-M1: Player 1 vs BYE" in out
        assert "W1-M2: Player 4 vs Player 5" in out
        assert "GF - Final (1 matches)" in out

    def test_roster_file(self, tmp_path, capsys):
        roster = tmp_path / "roster.yaml"
        roster.write_text(yaml.dump({'participants': [
            {'id': 'ann', 'name': 'Ann', 'seed': 2},
            {'id': 'bob', 'name': 'Bob', 'seed': 1},
            'Cy',
        ]}))
        assert bracket_tool.main(['build', '--roster', str(roster), '--format', 'double']) == 0
        out = capsys.readouterr().out
        assert "W1-M1: Bob vs BYE" in out
        assert "W1-M2: Ann vs Cy" in out
        assert "BR - Bracket Reset" in out

    def test_roster_file_repeated_names(self, tmp_path, capsys):
        roster = tmp_path / "roster.yaml"
        roster.write_text(yaml.dump(["Ann", "Bob", "ann", "Cy"]))
        assert bracket_tool.main(['build', '--roster', str(roster), '--format', 'single']) == 0
        out = capsys.readouterr().out
        assert "Single elimination: 3 participants, bracket size 4, 1 bye(s)" in out
        assert "W1-M2: Bob vs Cy" in out

    def test_missing_roster(self, capsys):
        assert bracket_tool.main(['build']) == 2
        assert "Give a participant count or --roster." in capsys.readouterr().err

    def test_bad_format(self, capsys):
        assert bracket_tool.main(['build', '4', '--format', 'swiss']) == 2
        assert "Unknown bracket format" in capsys.readouterr().err


class TestSimulateCommand:
    def test_runs_clean(self, capsys):
        assert bracket_tool.main(['simulate', '--participants', '6', '--format', 'double',
                                  '--runs', '3', '--seed', '1']) == 0
        assert "3/3 runs completed without violations" in capsys.readouterr().out

    def test_too_few_participants(self, capsys):
        assert bracket_tool.main(['simulate', '--participants', '1']) == 2


class TestValidateCommand:
    def _stored(self, tmp_path):
        data_dir = tmp_path / "data"
        settings = {'data_dir': str(data_dir), 'max_result_retries': 3, 'lock_timeout': 10,
                    'log_level': 'INFO', 'default_format': 'double'}
        from brackets.store import TournamentStore
        service = TournamentService(settings, store=TournamentStore(str(data_dir)))
        service.create_bracket(make_roster(6), tournament_id="cup")
        play(service, "cup", "W1-M2")
        return data_dir

    def test_stored_tournament_is_clean(self, tmp_path, capsys):
        data_dir = self._stored(tmp_path)
        assert bracket_tool.main(['validate', '--tournament', 'cup', '--data-dir', str(data_dir)]) == 0
        out = capsys.readouterr().out
        assert "Tournament cup (double, active)" in out
        assert "No structural problems detected." in out

    def test_tampered_snapshot(self, tmp_path, capsys):
        data_dir = self._stored(tmp_path)
        snapshot_path = data_dir / "cup.yaml"
        data = yaml.safe_load(snapshot_path.read_text())
        for row in data['matches']:
            if row['id'] == "W1-M4":
                row['winner_id'] = "p1"
        tampered = tmp_path / "tampered.yaml"
        tampered.write_text(yaml.safe_dump(data))
        assert bracket_tool.main(['validate', '--snapshot', str(tampered)]) == 1
        assert "INVALID_WINNER" in capsys.readouterr().out

    def test_missing_snapshot(self, tmp_path, capsys):
        assert bracket_tool.main(['validate', '--snapshot', str(tmp_path / "none.yaml")]) == 2
        assert "does not exist" in capsys.readouterr().err

    def test_unknown_tournament(self, tmp_path):
        assert bracket_tool.main(['validate', '--tournament', 'ghost', '--data-dir', str(tmp_path)]) == 2
