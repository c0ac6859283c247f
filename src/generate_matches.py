import argparse
import os
import sys

import yaml

from bracket_engine.bracket import build_bracket
from bracket_engine.errors import TournamentError
from bracket_engine.models import participant_label
from bracket_engine.pairings import generate_partner_rotation, generate_pool_pairings
from bracket_engine.seeding import pools_for_size, seed_pools


def load_entrants(file_path):
    """
    Load a ranked entrant list from YAML.

    Accepts either a plain list of names or a mapping with an ``entrants`` list.
    Entries may be names or dicts with a ``name`` key; list order is seed order.
    """
    with open(file_path, mode='r', encoding='utf-8') as file:
        data = yaml.safe_load(file) or []
    if isinstance(data, dict):
        data = data.get('entrants', [])
    entrants = []
    for entry in data:
        if isinstance(entry, dict):
            entrants.append(str(entry.get('name') or entry['id']))
        else:
            entrants.append(str(entry))
    return entrants


def format_pools(entrants, pool_count, partner_rotation=False):
    lines = []
    for pool in seed_pools(entrants, pool_count):
        if lines:
            lines.append('')
        lines.append(f"# {pool.name}")
        if partner_rotation:
            matches = generate_partner_rotation(pool.member_ids, pool_id=pool.id)
        else:
            matches = generate_pool_pairings(pool.member_ids, pool_id=pool.id)
        for match in matches:
            lines.append(f"{participant_label(match.slot1)} vs {participant_label(match.slot2)}")
    return lines


def format_bracket(entrants, format_override=None):
    bracket = build_bracket(entrants, format_override)
    lines = [f"# Bracket ({bracket.format}, byes={bracket.byes}, play-ins={bracket.play_ins})"]
    for entry in bracket.round_graph:
        lines.append('')
        lines.append(f"## {entry['key']}")
        for match in bracket.round_matches(entry['key']):
            lines.append(f"{match.id}: {participant_label(match.slot1)} vs {participant_label(match.slot2)}"
                         f" -> {match.next_match_id or 'champion'}")
    return lines


def main(argv=None):
    script_dir = os.path.dirname(__file__)
    base_dir = os.path.dirname(script_dir)

    parser = argparse.ArgumentParser(description='Seed pools and print pairings or a playoff bracket.')
    parser.add_argument('entrants_file', nargs='?', default=os.path.join(base_dir, 'data', 'entrants.yaml'))
    parser.add_argument('--pools', type=int, help='number of pools (default: from --pool-size)')
    parser.add_argument('--pool-size', type=int, default=4)
    parser.add_argument('--rotation', action='store_true', help='partner rotation instead of round robin')
    parser.add_argument('--bracket', action='store_true', help='print the elimination bracket instead of pools')
    parser.add_argument('--format', choices=['byes', 'play-in'], help='override the suggested bracket format')
    args = parser.parse_args(argv)

    entrants = load_entrants(args.entrants_file)
    if not entrants:
        print(f"No entrants loaded. Check {args.entrants_file}")
        return 1

    try:
        if args.bracket:
            lines = format_bracket(entrants, args.format)
        else:
            pool_count = args.pools or pools_for_size(len(entrants), args.pool_size)
            lines = format_pools(entrants, pool_count, partner_rotation=args.rotation)
    except TournamentError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 2

    print('\n'.join(lines))
    return 0


if __name__ == '__main__':
    sys.exit(main())
