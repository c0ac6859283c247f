"""
Pairing generation for pool play.

Two schedules are produced:
- Round robin for team pools: every pair of teams plays once.
- Partner rotation for individual ("King of the Beach") pools: players play
  2-vs-2 and every unordered pair of players partners together exactly once.

For 4 players A, B, C, D the rotation is:
    Match 1: A+B vs C+D
    Match 2: A+C vs B+D
    Match 3: A+D vs B+C
"""
import logging
from collections import Counter
from itertools import combinations
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from .errors import InsufficientEntrants, InvalidPoolSize
from .models import KOB_MATCH, POOL_MATCH, Match, MatchRules, PlayerPair, Team

logger = logging.getLogger(__name__)

MIN_ROTATION_SIZE = 4
MAX_ROTATION_SIZE = 8


def _match_id(pool_id, number):
    return f"{pool_id}_m{number}" if pool_id else f"m{number}"


def generate_pool_pairings(members: Sequence[str], pool_id: Optional[str] = None,
                           rules=None, round_id: Optional[str] = None) -> List[Match]:
    """
    Round robin: each member plays every other member once.

    Matches come out in a stable order (by member index) so regenerating a
    pool yields identical match ids.
    """
    matches = []
    if len(members) < 2:
        logger.warning(f"Pool {pool_id} has fewer than 2 members ({len(members)}). Skipping match generation.")
        return matches

    for number, (team1, team2) in enumerate(combinations(members, 2), start=1):
        matches.append(Match(
            _match_id(pool_id, number),
            slot1=Team(team1),
            slot2=Team(team2),
            rules=MatchRules.from_dict(rules),
            match_type=POOL_MATCH,
            pool_id=pool_id,
            round_id=round_id,
            match_number=number,
        ))
    return matches


def _exact_cover(pairs: List[Tuple[str, str]], excluded: Optional[Tuple[str, str]] = None):
    """
    Find an ordering of disjoint pair-vs-pair matches that uses every pair once.

    Pairs are taken in their fixed order: the first unused pair is matched
    with the first compatible unused pair, backtracking on dead ends.
    """
    remaining = [p for p in pairs if p != excluded]
    used = set()
    schedule = []

    def search():
        first = next((p for p in remaining if p not in used), None)
        if first is None:
            return True
        used.add(first)
        for other in remaining:
            if other in used or set(other) & set(first):
                continue
            used.add(other)
            schedule.append((first, other))
            if search():
                return True
            schedule.pop()
            used.discard(other)
        used.discard(first)
        return False

    if search():
        return schedule
    return None


def build_rotation_schedule(members: Sequence[str]) -> List[Tuple[Tuple[str, str], Tuple[str, str], bool]]:
    """
    Build the partner-rotation schedule as (team1, team2, team2_is_repeat) tuples.

    When the number of pairs n(n-1)/2 is even (n = 4, 5, 8) every pair
    partners exactly once. When it is odd (n = 6, 7) one pair is left over;
    it plays a completion match against the two least-used other players,
    whose side is marked as a repeat partnership.
    """
    n = len(members)
    if n < MIN_ROTATION_SIZE:
        raise InsufficientEntrants(
            f"Partner rotation needs at least {MIN_ROTATION_SIZE} players, got {n}", players=n)
    if n > MAX_ROTATION_SIZE:
        raise InvalidPoolSize(
            f"Partner rotation supports at most {MAX_ROTATION_SIZE} players per pool, got {n}", players=n)

    pairs = list(combinations(members, 2))
    if len(pairs) % 2 == 0:
        schedule = _exact_cover(pairs)
        return [(a, b, False) for a, b in schedule]

    # Odd number of pairs: leave one out, trying the last pairs first
    for leftover in reversed(pairs):
        schedule = _exact_cover(pairs, excluded=leftover)
        if schedule is None:
            continue
        appearances = Counter()
        for team1, team2 in schedule:
            appearances.update(team1 + team2)
        others = [m for m in members if m not in leftover]
        others.sort(key=lambda m: (appearances[m], members.index(m)))
        opponents = (others[0], others[1])
        logger.debug(f"Rotation for {n} players leaves {leftover} over; completing against {opponents}")
        return [(a, b, False) for a, b in schedule] + [(leftover, opponents, True)]

    raise InvalidPoolSize(f"No partner rotation exists for {n} players", players=n)


def generate_partner_rotation(members: Sequence[str], pool_id: Optional[str] = None,
                              rules=None, round_id: Optional[str] = None) -> List[Match]:
    """Generate 2-vs-2 KOB matches for a pool of individual players."""
    matches = []
    for number, (team1, team2, repeat) in enumerate(build_rotation_schedule(list(members)), start=1):
        matches.append(Match(
            _match_id(pool_id, number),
            slot1=PlayerPair(*team1),
            slot2=PlayerPair(*team2, repeat=repeat),
            rules=MatchRules.from_dict(rules),
            match_type=KOB_MATCH,
            pool_id=pool_id,
            round_id=round_id,
            match_number=number,
        ))
    return matches


def partner_counts(matches: Sequence[Match], credited_only: bool = True) -> Dict[FrozenSet[str], int]:
    """Count how often each unordered pair partnered across the given matches."""
    counts = Counter()
    for match in matches:
        for side in (match.slot1, match.slot2):
            if not isinstance(side, PlayerPair):
                continue
            if credited_only and side.repeat:
                continue
            counts[frozenset(side.members)] += 1
    return dict(counts)
