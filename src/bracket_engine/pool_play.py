"""
Team pool play ahead of a playoff bracket.

Teams are snake seeded into round-robin pools. Results keep each pool's
standings current; once every pool is complete the top finishers are seeded
into the playoff bracket by finish position.

    pool_play -> playoffs
"""
import copy
import logging
from typing import Dict, List, Sequence

from .advancement import clear_match, resolve_match, resolve_match_from_sets
from .errors import EntityNotFound, InvalidAdvancement, RoundNotComplete
from .models import COMPLETED, POOL_MATCH, Entrant, Match, MatchRules, Pool
from .pairings import generate_pool_pairings
from .seeding import seed_from_pool_standings, seed_pools
from .standings import commit_result, empty_standings, rank_standings

logger = logging.getLogger(__name__)

POOL_PLAY = 'pool_play'
PLAYOFFS = 'playoffs'


class PoolStage:
    """Snapshot of pool play: teams, pools, round-robin matches and their state."""

    def __init__(self, entrants=None, pools=None, matches=None, rules=None, advance_per_pool=2,
                 state=POOL_PLAY):
        self.entrants: Dict[str, Entrant] = entrants or {}
        self.pools: Dict[str, Pool] = pools or {}
        self.matches: Dict[str, Match] = matches or {}
        self.rules = MatchRules.from_dict(rules)
        self.advance_per_pool = advance_per_pool
        self.state = state

    def pool_matches(self, pool) -> List[Match]:
        return [self.matches[mid] for mid in pool.match_ids]

    def copy(self):
        return copy.deepcopy(self)

    def to_dict(self):
        return {
            'state': self.state,
            'rules': self.rules.to_dict(),
            'advance_per_pool': self.advance_per_pool,
            'entrants': [e.to_dict() for e in self.entrants.values()],
            'pools': [p.to_dict() for p in self.pools.values()],
            'matches': [m.to_dict() for m in self.matches.values()],
        }

    @classmethod
    def from_dict(cls, data):
        entrants = [Entrant.from_dict(e) for e in data.get('entrants', [])]
        pools = [Pool.from_dict(p) for p in data.get('pools', [])]
        matches = [Match.from_dict(m) for m in data.get('matches', [])]
        return cls(
            entrants={e.id: e for e in entrants},
            pools={p.id: p for p in pools},
            matches={m.id: m for m in matches},
            rules=data.get('rules'),
            advance_per_pool=data.get('advance_per_pool', 2),
            state=data.get('state', POOL_PLAY),
        )

    def __repr__(self):
        return f"PoolStage(state={self.state}, pools={len(self.pools)}, teams={len(self.entrants)})"


def _team_name(team):
    if isinstance(team, dict):
        return team['name']
    return str(team)


def create_pools(teams: Sequence, pool_count: int, rules=None, advance_per_pool: int = 2) -> PoolStage:
    """
    Seed teams (best first) into pools and generate every round-robin match.

    Teams may be names or dicts with a ``name`` key.
    """
    names = [_team_name(t) for t in teams]
    if len(set(names)) != len(names):
        raise InvalidAdvancement("Team names must be unique")
    if advance_per_pool < 1:
        raise InvalidAdvancement(f"advance_per_pool must be at least 1, got {advance_per_pool}")

    rules = MatchRules.from_dict(rules).validate()
    stage = PoolStage(
        entrants={name: Entrant(name, name, seed) for seed, name in enumerate(names, start=1)},
        rules=rules,
        advance_per_pool=advance_per_pool,
    )
    for pool in seed_pools(names, pool_count, advance=advance_per_pool):
        matches = generate_pool_pairings(pool.member_ids, pool_id=pool.id, rules=rules.to_dict())
        for match in matches:
            stage.matches[match.id] = match
        pool.match_ids = [m.id for m in matches]
        pool.standings = empty_standings(pool.member_ids, stage.entrants)
        stage.pools[pool.id] = pool

    logger.info(f"Created {len(stage.pools)} pools with {len(stage.matches)} matches for {len(names)} teams")
    return stage


def _pool_match(stage: PoolStage, match_id: str) -> Match:
    match = stage.matches.get(match_id)
    if match is None or match.match_type != POOL_MATCH:
        raise EntityNotFound(f"Pool match {match_id} not found", match_id=match_id)
    if stage.state != POOL_PLAY:
        raise InvalidAdvancement(f"Pool play has ended; {match_id} can no longer change", match_id=match_id)
    return match


def record_pool_result(stage: PoolStage, match_id: str, score1=None, score2=None, set_scores=None) -> PoolStage:
    """Record (or edit) a pool match and return the new stage with standings updated."""
    _pool_match(stage, match_id)
    updated = stage.copy()
    if set_scores:
        result = resolve_match_from_sets(updated.matches, match_id, set_scores)
    else:
        result = resolve_match(updated.matches, match_id, score1, score2)
    commit_result(updated.matches, updated.entrants, updated.pools[result.updated_match.pool_id], result)
    return updated


def clear_pool_result(stage: PoolStage, match_id: str) -> PoolStage:
    _pool_match(stage, match_id)
    updated = stage.copy()
    result = clear_match(updated.matches, match_id)
    commit_result(updated.matches, updated.entrants, updated.pools[result.updated_match.pool_id], result)
    return updated


def pools_complete(stage: PoolStage) -> bool:
    return bool(stage.pools) and all(m.status == COMPLETED for m in stage.matches.values())


def ranked_pool_standings(stage: PoolStage, advance_per_pool=None) -> Dict[str, List]:
    """Ranked standing lines per pool name, flagging the top ``advance_per_pool``."""
    advance = advance_per_pool or stage.advance_per_pool
    return {pool.name: rank_standings(pool.standings.values(), advance) for pool in stage.pools.values()}


def advance_to_playoffs(stage: PoolStage, advance_per_pool=None):
    """
    Close pool play and return (new stage, playoff seed names).

    Seeds run 1..K by pool finish position, then record. Raises
    RoundNotComplete while any pool match is pending.
    """
    if stage.state != POOL_PLAY:
        raise InvalidAdvancement("Pool play has already advanced to playoffs")
    pending = sum(1 for m in stage.matches.values() if m.status != COMPLETED)
    if pending or not stage.pools:
        raise RoundNotComplete(f"Pool play has {pending} pending matches", pending=pending)

    advance = advance_per_pool or stage.advance_per_pool
    updated = stage.copy()
    standings = ranked_pool_standings(updated, advance)
    for pool in updated.pools.values():
        pool.standings = {line.entrant_id: line for line in standings[pool.name]}
        pool.status = COMPLETED
    seeds = [updated.entrants[entrant_id].name
             for entrant_id, _, _ in seed_from_pool_standings(standings, advance)]
    if len(seeds) < 2:
        raise InvalidAdvancement(f"Only {len(seeds)} teams would reach the playoffs", advancing=len(seeds))

    updated.advance_per_pool = advance
    updated.state = PLAYOFFS
    logger.info(f"Pool play closed: {len(seeds)} teams advance to playoffs")
    return updated, seeds
