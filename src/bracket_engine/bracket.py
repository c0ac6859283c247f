"""
Single elimination bracket construction.

Any number of seeds is supported. When the field is not a power of two the
bracket is completed with either byes (top seeds skip round 1) or play-in
matches (lowest seeds play an extra preliminary round). Every match is wired
to its successor slot when it is created, so the bracket can be replayed
from seeds alone.
"""
import logging
import math
from typing import Dict, List, Optional, Sequence

from .errors import InsufficientEntrants, InvalidAdvancement, UnknownFormat
from .models import (
    FORMAT_BYES,
    FORMAT_NONE,
    FORMAT_PLAY_IN,
    PLAYOFF_MATCH,
    AdvanceRules,
    Match,
    MatchRules,
    Team,
)

logger = logging.getLogger(__name__)

PLAY_IN_ROUND = 'Play-In'


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


def lower_power_of_two(n: int) -> int:
    """Largest power of 2 <= n."""
    if n <= 0:
        return 0
    return 2 ** int(math.floor(math.log2(n)))


def higher_power_of_two(n: int) -> int:
    """Smallest power of 2 >= n."""
    if n <= 0:
        return 0
    return 2 ** int(math.ceil(math.log2(n)))


def suggest_format(num_teams: int) -> Dict:
    """
    Suggest byes or play-in for a playoff field.

    Returns dict with:
    - suggestion: "byes", "play-in" or "none" (already a power of 2)
    - byes: teams that would skip round 1
    - play_ins: teams that would play a play-in match
    - lower / higher: surrounding powers of 2

    Play-in is suggested when it touches fewer teams than byes would.
    """
    if num_teams <= 0:
        return {'suggestion': FORMAT_BYES, 'byes': 0, 'play_ins': 0, 'lower': 0, 'higher': 0}

    lower = lower_power_of_two(num_teams)
    higher = higher_power_of_two(num_teams)

    if lower == higher:
        return {'suggestion': FORMAT_NONE, 'byes': 0, 'play_ins': 0, 'lower': lower, 'higher': higher}

    byes = higher - num_teams
    play_ins = (num_teams - lower) * 2
    suggestion = FORMAT_BYES if byes <= play_ins else FORMAT_PLAY_IN

    return {'suggestion': suggestion, 'byes': byes, 'play_ins': play_ins, 'lower': lower, 'higher': higher}


def make_advance_rules(num_teams: int, format_override: Optional[str] = None) -> AdvanceRules:
    """Build the stored AdvanceRules for a field, honoring an operator override."""
    suggestion = suggest_format(num_teams)
    chosen = suggestion['suggestion']
    if suggestion['suggestion'] != FORMAT_NONE and format_override not in (None, FORMAT_NONE):
        if format_override not in (FORMAT_BYES, FORMAT_PLAY_IN):
            raise UnknownFormat(f"Unknown playoff format: {format_override}", format=format_override)
        chosen = format_override
    elif format_override not in (None, FORMAT_NONE, FORMAT_BYES, FORMAT_PLAY_IN):
        raise UnknownFormat(f"Unknown playoff format: {format_override}", format=format_override)

    return AdvanceRules(
        num_advancing=num_teams,
        format_chosen=chosen,
        suggested_format=suggestion['suggestion'],
        byes=suggestion['byes'] if chosen == FORMAT_BYES else 0,
        play_ins=suggestion['play_ins'] if chosen == FORMAT_PLAY_IN else 0,
        lower=suggestion['lower'],
        higher=suggestion['higher'],
    )


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    Winners: 1v4 side, 2v3 side
    Final: 1v2 (if chalk)
    """
    if bracket_size == 1:
        return [1]
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)

    # Lower half as complement
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    # Interleave: pair each upper seed with its complement
    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])

    return result


def as_participant(seed):
    if seed is None or isinstance(seed, Team):
        return seed
    if isinstance(seed, dict):
        return Team(seed['name'], seed.get('attributes'))
    return Team(str(seed))


class Bracket:
    """A materialized bracket: matches in play order plus the round graph."""

    def __init__(self, bracket_id, matches, round_graph, advance_rules):
        self.bracket_id = bracket_id
        self.matches = matches
        self.round_graph = round_graph
        self.advance_rules = advance_rules

    @property
    def format(self):
        return self.advance_rules.format_chosen

    @property
    def byes(self):
        return self.advance_rules.byes

    @property
    def play_ins(self):
        return self.advance_rules.play_ins

    @property
    def matches_by_id(self):
        return {m.id: m for m in self.matches}

    def round_matches(self, round_key):
        by_id = self.matches_by_id
        for entry in self.round_graph:
            if entry['key'] == round_key:
                return [by_id[mid] for mid in entry['match_ids']]
        return []

    def to_dict(self):
        return {
            'bracket_id': self.bracket_id,
            'format': self.format,
            'byes': self.byes,
            'play_ins': self.play_ins,
            'advance_rules': self.advance_rules.to_dict(),
            'round_graph': [dict(entry, match_ids=list(entry['match_ids'])) for entry in self.round_graph],
            'matches': [m.to_dict() for m in self.matches],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            data['bracket_id'],
            [Match.from_dict(m) for m in data.get('matches', [])],
            data.get('round_graph', []),
            AdvanceRules.from_dict(data['advance_rules']),
        )

    def __repr__(self):
        return f"Bracket(id={self.bracket_id}, format={self.format}, matches={len(self.matches)})"


def build_bracket(seeds: Sequence, format_override: Optional[str] = None, bracket_id: str = 'playoff',
                  rules_by_round: Optional[Dict] = None) -> Bracket:
    """
    Build the single elimination match graph for seeds ordered 1..M.

    With L the largest power of two <= M, the main bracket has L positions.
    Seeds 1..(2L - M) are placed directly; the remaining 2(M - L) seeds play a
    feeder round paired high/low, and the winner of feeder match j takes
    position (2L - M) + 1 + j. With byes the feeder round is round 1 and the
    bye seeds enter in round 2; with play-in the feeder round is the play-in
    round ahead of round 1. Main-bracket positions are paired in standard
    bracket order (1vL, L/2 v L/2+1, ...) and later rounds halve the index.
    """
    num_teams = len(seeds)
    if num_teams < 2:
        raise InsufficientEntrants(f"A bracket needs at least 2 seeds, got {num_teams}", seeds=num_teams)

    rules_by_round = rules_by_round or {}
    advance_rules = make_advance_rules(num_teams, format_override)
    participants = [as_participant(s) for s in seeds]

    main_size = lower_power_of_two(num_teams)
    direct_count = 2 * main_size - num_teams
    feeder_seeds = list(range(direct_count + 1, num_teams + 1))
    feeder_count = len(feeder_seeds) // 2

    def rules_for(round_key):
        return MatchRules.from_dict(rules_by_round.get(round_key, rules_by_round.get('default')))

    matches = []
    round_graph = []
    round_number = 1

    # Feeder round (round 1 with byes, play-in round otherwise)
    feeder_matches = []
    if feeder_count:
        if advance_rules.format_chosen == FORMAT_PLAY_IN:
            feeder_key = PLAY_IN_ROUND
        else:
            feeder_key = get_round_name(2 * main_size)
        for j in range(feeder_count):
            high, low = feeder_seeds[j], feeder_seeds[-1 - j]
            feeder_matches.append(Match(
                f"{bracket_id}_r{round_number}_m{j + 1}",
                slot1=participants[high - 1],
                slot2=participants[low - 1],
                rules=rules_for(feeder_key),
                match_type=PLAYOFF_MATCH,
                round_key=feeder_key,
                round_number=round_number,
                match_number=j + 1,
                seed1=high,
                seed2=low,
            ))
        matches.extend(feeder_matches)
        round_graph.append({'key': feeder_key, 'number': round_number,
                            'match_ids': [m.id for m in feeder_matches]})
        round_number += 1

    # Main bracket, first layer
    order = _generate_bracket_order(main_size)
    round_key = get_round_name(main_size)
    current = []
    for i in range(0, len(order), 2):
        match = Match(
            f"{bracket_id}_r{round_number}_m{i // 2 + 1}",
            rules=rules_for(round_key),
            match_type=PLAYOFF_MATCH,
            round_key=round_key,
            round_number=round_number,
            match_number=i // 2 + 1,
        )
        for slot, position in ((1, order[i]), (2, order[i + 1])):
            if position <= direct_count:
                match.set_slot(slot, participants[position - 1])
                if slot == 1:
                    match.seed1 = position
                else:
                    match.seed2 = position
            else:
                feeder = feeder_matches[position - direct_count - 1]
                feeder.next_match_id = match.id
                feeder.next_slot = slot
        current.append(match)
    matches.extend(current)
    round_graph.append({'key': round_key, 'number': round_number, 'match_ids': [m.id for m in current]})

    # Later rounds: empty placeholders linked by halving index
    teams_in_round = main_size // 2
    while len(current) > 1:
        round_number += 1
        round_key = get_round_name(teams_in_round)
        next_round = []
        for k in range(len(current) // 2):
            match = Match(
                f"{bracket_id}_r{round_number}_m{k + 1}",
                rules=rules_for(round_key),
                match_type=PLAYOFF_MATCH,
                round_key=round_key,
                round_number=round_number,
                match_number=k + 1,
            )
            for slot, previous in ((1, current[2 * k]), (2, current[2 * k + 1])):
                previous.next_match_id = match.id
                previous.next_slot = slot
            next_round.append(match)
        matches.extend(next_round)
        round_graph.append({'key': round_key, 'number': round_number, 'match_ids': [m.id for m in next_round]})
        current = next_round
        teams_in_round //= 2

    logger.info(f"Built {advance_rules.format_chosen} bracket '{bracket_id}' for {num_teams} seeds: "
                f"{len(matches)} matches over {len(round_graph)} rounds")
    return Bracket(bracket_id, matches, round_graph, advance_rules)


def regenerate_bracket(advance_rules: AdvanceRules, seeds: Sequence, bracket_id: str = 'playoff',
                       rules_by_round: Optional[Dict] = None) -> Bracket:
    """Rebuild a bracket wholesale from stored advance rules and seeds."""
    if len(seeds) != advance_rules.num_advancing:
        raise InvalidAdvancement(
            f"Advance rules expect {advance_rules.num_advancing} seeds, got {len(seeds)}",
            expected=advance_rules.num_advancing, seeds=len(seeds))
    format_chosen = advance_rules.format_chosen
    if format_chosen == FORMAT_NONE:
        format_chosen = None
    return build_bracket(seeds, format_chosen, bracket_id=bracket_id, rules_by_round=rules_by_round)


def champion(matches: Sequence[Match]):
    """Winner of the final, or None while undecided."""
    finals = [m for m in matches if m.next_match_id is None and m.round_number is not None]
    if not finals:
        return None
    final = max(finals, key=lambda m: m.round_number)
    return final.winner_participant
