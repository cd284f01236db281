#!/usr/bin/env python3
"""
Bracket operator tool

Builds, plays out and checks elimination brackets from the command line.

Usage:
    python src/bracket_tool.py build 24 --format single
    python src/bracket_tool.py build --roster roster.yaml --format double
    python src/bracket_tool.py simulate --participants 5 --format double --runs 20 --seed 7
    python src/bracket_tool.py validate --snapshot data/cup.yaml
    python src/bracket_tool.py validate --tournament cup --data-dir data

A roster file is a YAML list of names or of {id, name, seed} mappings, or a
mapping with such a list under 'participants'.

Exit codes:
    0: Success
    1: Structural violations found
    2: Configuration or input error
"""
import argparse
import logging
import os
import random
import sys
from collections import Counter

import yaml

from brackets.config import configure_logging, load_settings
from brackets.double_elimination import round_name
from brackets.elimination import dedupe_by_name, seed_participants
from brackets.errors import BracketError, ConfigurationError, StructuralError
from brackets.models import BracketFormat, Participant
from brackets.service import TournamentService, as_participant, build_bracket
from brackets.simulation import play_out
from brackets.state import TournamentState
from brackets.store import TournamentStore
from brackets.validation import format_report, validate

logger = logging.getLogger('bracket_tool')


def load_roster(path):
    """Read participants from a roster YAML file."""
    if not os.path.exists(path):
        raise ConfigurationError(f"Roster file {path} does not exist.")
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Roster file {path} is not valid YAML: {e}")
    if isinstance(data, dict):
        data = data.get('participants')
    if not isinstance(data, list):
        raise ConfigurationError(f"Roster file {path} must contain a list of participants.")
    return [as_participant(record, index) for index, record in enumerate(data)]


def numbered_roster(count):
    return [Participant(f"p{i}", f"Player {i}", seed=i) for i in range(1, count + 1)]


def _slot_label(slot, names):
    if slot.is_filled:
        return names.get(slot.participant_id, slot.participant_id)
    return 'BYE' if slot.is_bye else 'TBD'


def cmd_build(args, settings):
    if args.roster:
        roster = dedupe_by_name(load_roster(args.roster))
    elif args.participants is not None:
        roster = numbered_roster(args.participants)
    else:
        raise ConfigurationError("Give a participant count or --roster.")

    bracket_format = BracketFormat.parse(args.format or settings['default_format'])
    ordered = seed_participants(roster)
    match_set = build_bracket(ordered, bracket_format)

    names = {p.id: p.name for p in ordered}
    round_counts = Counter((m.role, m.round) for m in match_set.matches.values())
    print(f"{bracket_format.value.capitalize()} elimination: {len(ordered)} participants, "
          f"bracket size {match_set.bracket_size}, {match_set.bracket_size - len(ordered)} bye(s)")

    current = None
    for match in sorted(match_set.matches.values(), key=lambda m: m.round_key):
        if match.round_code != current:
            current = match.round_code
            count = round_counts[(match.role, match.round)]
            print(f"\n{current} - {round_name(match, bracket_format, round_counts)} ({count} matches)")
        home, away = (_slot_label(s, names) for s in match.slots)
        print(f"  {match.id}: {home} vs {away}")
    return 0


def cmd_simulate(args, settings):
    bracket_format = BracketFormat.parse(args.format or settings['default_format'])
    rng = random.Random(args.seed)
    failures = 0

    for run in range(1, args.runs + 1):
        service = TournamentService(settings)
        state = service.create_bracket(numbered_roster(args.participants), bracket_format,
                                       tournament_id=f"sim-{run}")
        summary = play_out(service, state.tournament_id, rng, check_each_step=True)
        line = (f"Run {run}: champion {summary['champion_id']}, "
                f"{summary['decisive_matches']} decisive matches, "
                f"{summary['finals_played']} final(s) played")
        if summary['violations']:
            failures += 1
            print(f"{line} - {len(summary['violations'])} violation(s)")
            for violation in summary['violations']:
                print(f"  - {violation['code']}: {violation['message']}")
        else:
            print(line)

    print(f"\n{args.runs - failures}/{args.runs} runs completed without violations")
    return 1 if failures else 0


def cmd_validate(args, settings):
    if args.snapshot:
        if not os.path.exists(args.snapshot):
            raise ConfigurationError(f"Snapshot file {args.snapshot} does not exist.")
        with open(args.snapshot, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
        if not data:
            raise ConfigurationError(f"Snapshot file {args.snapshot} is empty.")
    elif args.tournament:
        store = TournamentStore(args.data_dir or settings['data_dir'], settings['lock_timeout'])
        data = store.load(args.tournament)
        if data is None:
            raise ConfigurationError(f"No stored tournament '{args.tournament}'.")
    else:
        raise ConfigurationError("Give --snapshot or --tournament.")

    try:
        state = TournamentState.from_snapshot(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ConfigurationError(f"Snapshot is malformed: {e}")

    violations = validate(state)
    print(f"Tournament {state.tournament_id} ({state.bracket_format.value}, {state.status.value})")
    print(format_report(violations))
    return 1 if violations else 0


def build_parser():
    parser = argparse.ArgumentParser(
        description='Build, simulate and validate elimination brackets'
    )
    parser.add_argument(
        '--config',
        help='Settings YAML file (default: $BRACKETS_CONFIG)'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    build = subparsers.add_parser('build', help='Print the opening layout of a bracket')
    build.add_argument('participants', nargs='?', type=int, help='Number of participants')
    build.add_argument('--roster', help='Roster YAML file')
    build.add_argument('--format', help='single or double (default from settings)')
    build.set_defaults(handler=cmd_build)

    simulate = subparsers.add_parser('simulate', help='Play brackets out with random winners')
    simulate.add_argument('--participants', type=int, required=True, help='Number of participants')
    simulate.add_argument('--format', help='single or double (default from settings)')
    simulate.add_argument('--runs', type=int, default=1, help='Number of playthroughs (default: 1)')
    simulate.add_argument('--seed', type=int, help='Random seed for reproducible runs')
    simulate.set_defaults(handler=cmd_simulate)

    check = subparsers.add_parser('validate', help='Check a stored tournament for structural problems')
    check.add_argument('--snapshot', help='Snapshot YAML file')
    check.add_argument('--tournament', help='Tournament id in the data directory')
    check.add_argument('--data-dir', help='Data directory (default from settings)')
    check.set_defaults(handler=cmd_validate)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
        configure_logging(settings)
        return args.handler(args, settings)
    except StructuralError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        for violation in e.violations:
            print(f"  - {violation.code}: {violation.message}", file=sys.stderr)
        return 1
    except BracketError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e.message}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
