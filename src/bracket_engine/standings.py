"""
Pool standings and cumulative entrant totals.

Standings are kept incrementally: each completed match contributes wins,
losses and points to every credited member of both sides. Editing a result
reverses the old contribution (``sign=-1``) before applying the new one, so the
stored totals always equal the sum over completed matches. A full
recomputation is available for verification.
"""
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from .advancement import apply_resolution
from .models import COMPLETED, IN_PROGRESS, LIVE, UPCOMING, Match, PlayerPair

logger = logging.getLogger(__name__)


class StandingLine:
    def __init__(self, entrant_id, name=None, seed=None, wins=0, losses=0, points_for=0,
                 points_against=0, sets_won=0, sets_lost=0, matches_played=0):
        self.entrant_id = entrant_id
        self.name = name if name is not None else entrant_id
        self.seed = seed
        self.wins = wins
        self.losses = losses
        self.points_for = points_for
        self.points_against = points_against
        self.sets_won = sets_won
        self.sets_lost = sets_lost
        self.matches_played = matches_played
        self.rank = None
        self.advances = False

    @property
    def differential(self):
        return self.points_for - self.points_against

    @property
    def set_differential(self):
        return self.sets_won - self.sets_lost

    def copy(self):
        line = StandingLine(self.entrant_id, self.name, self.seed, self.wins, self.losses,
                            self.points_for, self.points_against, self.sets_won,
                            self.sets_lost, self.matches_played)
        line.rank = self.rank
        line.advances = self.advances
        return line

    def to_dict(self):
        return {
            'entrant_id': self.entrant_id,
            'name': self.name,
            'seed': self.seed,
            'wins': self.wins,
            'losses': self.losses,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'differential': self.differential,
            'sets_won': self.sets_won,
            'sets_lost': self.sets_lost,
            'matches_played': self.matches_played,
            'rank': self.rank,
            'advances': self.advances,
        }

    @classmethod
    def from_dict(cls, data):
        line = cls(
            data['entrant_id'],
            name=data.get('name'),
            seed=data.get('seed'),
            wins=data.get('wins', 0),
            losses=data.get('losses', 0),
            points_for=data.get('points_for', 0),
            points_against=data.get('points_against', 0),
            sets_won=data.get('sets_won', 0),
            sets_lost=data.get('sets_lost', 0),
            matches_played=data.get('matches_played', 0),
        )
        line.rank = data.get('rank')
        line.advances = data.get('advances', False)
        return line

    def __repr__(self):
        return (f"StandingLine({self.entrant_id}, W{self.wins}-L{self.losses}, "
                f"diff={self.differential}, rank={self.rank})")


def _line_id(line):
    entrant_id = getattr(line, 'entrant_id', None)
    return line.id if entrant_id is None else entrant_id


def ranking_key(line):
    """Sort key: wins desc, differential desc, points for desc, entry seed asc, id."""
    seed = line.seed if line.seed is not None else float('inf')
    return (-line.wins, -line.differential, -line.points_for, seed, str(_line_id(line)))


def rank_standings(lines: Iterable, advance_count: Optional[int] = None) -> List:
    """
    Rank standing lines into a strict total order.

    Returns copies (where the line supports it) with ``rank`` set to 1..n and
    ``advances`` set for the top ``advance_count``. The input order never
    affects the result.
    """
    ranked = []
    for position, line in enumerate(sorted(lines, key=ranking_key), start=1):
        if hasattr(line, 'copy'):
            line = line.copy()
        line.rank = position
        line.advances = advance_count is not None and position <= advance_count
        ranked.append(line)
    return ranked


def _side_points(match: Match):
    """Points scored by each side: summed set points when sets exist, else the match score."""
    if match.set_scores:
        points1 = sum(s[0] for s in match.set_scores)
        points2 = sum(s[1] for s in match.set_scores)
        sets1 = sum(1 for s in match.set_scores if s[0] > s[1])
        sets2 = sum(1 for s in match.set_scores if s[1] > s[0])
        return points1, points2, sets1, sets2
    return match.score1 or 0, match.score2 or 0, 0, 0


def match_contributions(match: Match):
    """
    Yield (member_id, won, lost, points_for, points_against, sets_won, sets_lost)
    for every credited member of a completed match.

    Repeat partnerships are not credited.
    """
    if match.status != COMPLETED:
        return
    points1, points2, sets1, sets2 = _side_points(match)
    sides = (
        (match.slot1, 1, points1, points2, sets1, sets2),
        (match.slot2, 2, points2, points1, sets2, sets1),
    )
    for participant, slot, pf, pa, sw, sl in sides:
        if participant is None:
            continue
        if isinstance(participant, PlayerPair) and participant.repeat:
            continue
        won = 0 if match.is_draw else int(match.winner == slot)
        lost = 0 if match.is_draw else int(match.winner == 3 - slot)
        for member in participant.members:
            yield member, won, lost, pf, pa, sw, sl


def apply_match_to_standings(standings: Dict[str, StandingLine], match: Match, sign: int = 1) -> Dict[str, StandingLine]:
    """Add (sign=1) or reverse (sign=-1) one match's contribution to a standings map in place."""
    for member, won, lost, pf, pa, sw, sl in match_contributions(match):
        line = standings.get(member)
        if line is None:
            line = standings[member] = StandingLine(member)
        line.wins += sign * won
        line.losses += sign * lost
        line.points_for += sign * pf
        line.points_against += sign * pa
        line.sets_won += sign * sw
        line.sets_lost += sign * sl
        line.matches_played += sign
    return standings


def apply_match_to_entrants(entrants: Dict, match: Match, sign: int = 1) -> Dict:
    """Add (sign=1) or reverse (sign=-1) one match's contribution to cumulative entrant totals."""
    for member, won, lost, pf, pa, _, _ in match_contributions(match):
        entrant = entrants.get(member)
        if entrant is None:
            logger.warning(f"Match {match.id} credits unknown entrant {member}")
            continue
        entrant.wins += sign * won
        entrant.losses += sign * lost
        entrant.points_for += sign * pf
        entrant.points_against += sign * pa
    return entrants


def empty_standings(member_ids: Sequence[str], entrants: Optional[Dict] = None) -> Dict[str, StandingLine]:
    entrants = entrants or {}
    standings = {}
    for member in member_ids:
        entrant = entrants.get(member)
        if entrant is not None:
            standings[member] = StandingLine(member, entrant.name, entrant.seed)
        else:
            standings[member] = StandingLine(member)
    return standings


def _pool_matches(pool, matches):
    if isinstance(matches, dict):
        return [matches[mid] for mid in pool.match_ids if mid in matches]
    return [m for m in matches if m.id in pool.match_ids or m.pool_id == pool.id]


def calculate_pool_standings(pool, matches, entrants: Optional[Dict] = None) -> Dict[str, StandingLine]:
    """
    Recompute a pool's standings from its completed matches.

    Returns {entrant_id: StandingLine} in pool member order.
    """
    standings = empty_standings(pool.member_ids, entrants)
    for match in _pool_matches(pool, matches):
        apply_match_to_standings(standings, match)
    return standings


def pool_status(pool, matches) -> str:
    """upcoming until a match starts, completed once every match is, in_progress otherwise."""
    pool_matches = _pool_matches(pool, matches)
    if pool_matches and all(m.status == COMPLETED for m in pool_matches):
        return COMPLETED
    if any(m.status in (COMPLETED, LIVE) for m in pool_matches):
        return IN_PROGRESS
    return UPCOMING


def commit_result(matches: Dict[str, Match], entrants: Dict, pool, result) -> None:
    """
    Write a ResolveResult for a pool match into ``matches`` and keep the pool
    standings and entrant totals in step: the previous contribution of the
    match is reversed before the new one is added.
    """
    previous = result.previous_match
    if previous.status == COMPLETED:
        apply_match_to_standings(pool.standings, previous, sign=-1)
        apply_match_to_entrants(entrants, previous, sign=-1)

    apply_resolution(matches, result)
    apply_match_to_standings(pool.standings, result.updated_match)
    apply_match_to_entrants(entrants, result.updated_match)
    pool.status = pool_status(pool, matches)
