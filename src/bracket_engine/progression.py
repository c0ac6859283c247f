"""
Multi-round King of the Beach progression.

Individuals play partner-rotation pools. When every pool of the current round
is complete, the top finishers of each pool are re-pooled into the next round
and everyone else is eliminated. Once a round is played with few enough
players the event ends and every entrant gets a final rank.

    not_started -> round_active -> round_ready -> round_active (next round)
                                               -> terminal

Transitions never mutate their input: each returns a new RoundProgression.
"""
import copy
import logging
import math
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .advancement import clear_match, resolve_match, resolve_match_from_sets
from .errors import (
    EntityNotFound,
    InsufficientEntrants,
    InvalidAdvancement,
    InvalidPoolSize,
    RoundNotComplete,
    TournamentComplete,
)
from .models import COMPLETED, KOB_MATCH, Entrant, Match, MatchRules, Pool, Round
from .pairings import MAX_ROTATION_SIZE, MIN_ROTATION_SIZE, generate_partner_rotation
from .seeding import seed_from_pool_standings, seed_pools
from .standings import StandingLine, commit_result, empty_standings, rank_standings, ranking_key

logger = logging.getLogger(__name__)

NOT_STARTED = 'not_started'
ROUND_ACTIVE = 'round_active'
ROUND_READY = 'round_ready'
TERMINAL = 'terminal'

DEFAULT_FINAL_ROUND_MAX_PLAYERS = 4


class RoundProgression:
    """Snapshot of a KOB event: rounds, pools, matches and entrant totals."""

    def __init__(self, entrants=None, rounds=None, pools=None, matches=None, state=NOT_STARTED,
                 rules=None, final_round_max_players=DEFAULT_FINAL_ROUND_MAX_PLAYERS,
                 max_pool_size=MAX_ROTATION_SIZE):
        self.entrants: Dict[str, Entrant] = entrants or {}
        self.rounds: List[Round] = rounds or []
        self.pools: Dict[str, Pool] = pools or {}
        self.matches: Dict[str, Match] = matches or {}
        self.state = state
        self.rules = MatchRules.from_dict(rules)
        self.final_round_max_players = final_round_max_players
        self.max_pool_size = max_pool_size

    @property
    def current_round(self) -> Optional[Round]:
        return self.rounds[-1] if self.rounds else None

    @property
    def round_number(self):
        return len(self.rounds)

    @property
    def is_terminal(self):
        return self.state == TERMINAL

    def round_pools(self, round_obj=None) -> List[Pool]:
        round_obj = round_obj or self.current_round
        if round_obj is None:
            return []
        return [self.pools[pid] for pid in round_obj.pool_ids]

    def pool_matches(self, pool) -> List[Match]:
        return [self.matches[mid] for mid in pool.match_ids]

    def copy(self):
        return copy.deepcopy(self)

    def to_dict(self):
        return {
            'state': self.state,
            'round_number': self.round_number,
            'rules': self.rules.to_dict(),
            'final_round_max_players': self.final_round_max_players,
            'max_pool_size': self.max_pool_size,
            'entrants': [e.to_dict() for e in self.entrants.values()],
            'rounds': [r.to_dict() for r in self.rounds],
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
            rounds=[Round.from_dict(r) for r in data.get('rounds', [])],
            pools={p.id: p for p in pools},
            matches={m.id: m for m in matches},
            state=data.get('state', NOT_STARTED),
            rules=data.get('rules'),
            final_round_max_players=data.get('final_round_max_players', DEFAULT_FINAL_ROUND_MAX_PLAYERS),
            max_pool_size=data.get('max_pool_size', MAX_ROTATION_SIZE),
        )

    def __repr__(self):
        return (f"RoundProgression(state={self.state}, round={self.round_number}, "
                f"entrants={len(self.entrants)})")


class NextRoundPools:
    def __init__(self, progression, round_obj, pools, matches, eliminated):
        self.progression = progression
        self.round = round_obj
        self.pools = pools
        self.matches = matches
        self.eliminated = eliminated
        self.terminal = False

    def to_dict(self):
        return {
            'terminal': False,
            'round': self.round.to_dict(),
            'pools': [p.to_dict() for p in self.pools],
            'matches': [m.to_dict() for m in self.matches],
            'eliminated': list(self.eliminated),
        }


class TerminalResult:
    def __init__(self, progression, final_standings):
        self.progression = progression
        self.final_standings = final_standings
        self.terminal = True

    def to_dict(self):
        return {'terminal': True, 'final_standings': [e.to_dict() for e in self.final_standings]}


def _now():
    return datetime.now().isoformat()


def _as_entrant(item, seed):
    if isinstance(item, Entrant):
        return copy.deepcopy(item)
    if isinstance(item, dict):
        data = dict(item)
        data.setdefault('seed', seed)
        return Entrant.from_dict(data)
    return Entrant(str(item), str(item), seed)


def plan_pool_count(num_players: int, pool_size: int, min_size: int = MIN_ROTATION_SIZE,
                    max_size: int = MAX_ROTATION_SIZE) -> int:
    """
    Number of pools for a round.

    Starts at ceil(N / pool_size) and merges pools while the smallest would
    fall under ``min_size``. Raises InvalidPoolSize when the largest pool would
    still exceed ``max_size``.
    """
    if pool_size < 1:
        raise InvalidPoolSize(f"Pool size must be at least 1, got {pool_size}")
    if num_players < min_size:
        raise InsufficientEntrants(
            f"A round needs at least {min_size} players, got {num_players}", players=num_players)

    pool_count = math.ceil(num_players / pool_size)
    while pool_count > 1 and num_players // pool_count < min_size:
        pool_count -= 1
    if math.ceil(num_players / pool_count) > max_size:
        raise InvalidPoolSize(
            f"{num_players} players in {pool_count} pools exceeds the maximum pool size of {max_size}",
            players=num_players, pool_count=pool_count)
    return pool_count


def _open_round(progression: RoundProgression, ranked_ids: Sequence[str], pool_size: int):
    """Append a new round to ``progression`` (in place) and return (round, pools, matches)."""
    number = len(progression.rounds) + 1
    round_id = f"round_{number}"
    pool_count = plan_pool_count(len(ranked_ids), pool_size, max_size=progression.max_pool_size)

    pools = seed_pools(list(ranked_ids), pool_count, round_id=round_id)
    new_matches = []
    for pool in pools:
        matches = generate_partner_rotation(pool.member_ids, pool_id=pool.id,
                                            rules=progression.rules, round_id=round_id)
        for match in matches:
            progression.matches[match.id] = match
        pool.match_ids = [m.id for m in matches]
        pool.standings = empty_standings(pool.member_ids, progression.entrants)
        progression.pools[pool.id] = pool
        new_matches.extend(matches)

    round_obj = Round(round_id, number, [p.id for p in pools], created_at=_now())
    progression.rounds.append(round_obj)
    progression.state = ROUND_ACTIVE
    logger.info(f"Opened round {number}: {len(ranked_ids)} players in {len(pools)} pools, "
                f"{len(new_matches)} matches")
    return round_obj, pools, new_matches


def start_event(entrants: Sequence, pool_size: int = 4, rules=None,
                final_round_max_players: int = DEFAULT_FINAL_ROUND_MAX_PLAYERS,
                max_pool_size: int = MAX_ROTATION_SIZE) -> RoundProgression:
    """
    Create round 1 from entrants in seed order.

    Entrants may be ids, dicts or Entrant objects; missing seeds follow list
    order. Pools are snake seeded and get partner-rotation matches.
    """
    if len(entrants) < MIN_ROTATION_SIZE:
        raise InsufficientEntrants(
            f"A KOB event needs at least {MIN_ROTATION_SIZE} players, got {len(entrants)}",
            players=len(entrants))
    if final_round_max_players < MIN_ROTATION_SIZE:
        raise InvalidAdvancement(
            f"final_round_max_players must be at least {MIN_ROTATION_SIZE}, got {final_round_max_players}",
            final_round_max_players=final_round_max_players)

    players = [_as_entrant(item, seed) for seed, item in enumerate(entrants, start=1)]
    ids = [p.id for p in players]
    if len(set(ids)) != len(ids):
        raise InvalidAdvancement("Entrant ids must be unique")

    ranked = sorted(players, key=lambda p: (p.seed if p.seed is not None else float('inf'), ids.index(p.id)))
    progression = RoundProgression(
        entrants={p.id: p for p in players},
        rules=MatchRules.from_dict(rules).validate(),
        final_round_max_players=final_round_max_players,
        max_pool_size=max_pool_size,
    )
    _open_round(progression, [p.id for p in ranked], pool_size)
    return progression


def round_is_complete(progression: RoundProgression) -> bool:
    """True when every match of every pool in the current round is completed."""
    pools = progression.round_pools()
    if not pools:
        return False
    return all(progression.matches[mid].status == COMPLETED for pool in pools for mid in pool.match_ids)


def _current_round_match(progression: RoundProgression, match_id: str) -> Match:
    if progression.state == TERMINAL:
        raise TournamentComplete("The event is already complete")
    if progression.state == NOT_STARTED:
        raise RoundNotComplete("No round has started")
    match = progression.matches.get(match_id)
    if match is None or match.match_type != KOB_MATCH:
        raise EntityNotFound(f"Match {match_id} not found", match_id=match_id)
    if match.round_id != progression.current_round.id:
        raise InvalidAdvancement(f"Match {match_id} belongs to a finished round", match_id=match_id)
    return match


def _commit(progression: RoundProgression, result, pool: Pool):
    commit_result(progression.matches, progression.entrants, pool, result)
    progression.state = ROUND_READY if round_is_complete(progression) else ROUND_ACTIVE


def record_result(progression: RoundProgression, match_id: str, score1=None, score2=None,
                  set_scores=None) -> RoundProgression:
    """
    Record (or edit) a KOB match result and return the new progression.

    Any previous contribution of the match is reversed before the new one is
    applied to pool standings and entrant totals.
    """
    _current_round_match(progression, match_id)
    updated = progression.copy()
    if set_scores:
        result = resolve_match_from_sets(updated.matches, match_id, set_scores)
    else:
        result = resolve_match(updated.matches, match_id, score1, score2)

    pool = updated.pools[result.updated_match.pool_id]
    _commit(updated, result, pool)
    logger.debug(f"Recorded {match_id}: {result.updated_match.score1}-{result.updated_match.score2}")
    return updated


def clear_result(progression: RoundProgression, match_id: str) -> RoundProgression:
    """Reverse a recorded KOB result."""
    _current_round_match(progression, match_id)
    updated = progression.copy()
    result = clear_match(updated.matches, match_id)
    pool = updated.pools[result.updated_match.pool_id]
    _commit(updated, result, pool)
    return updated


def _rounds_reached(progression: RoundProgression) -> Dict[str, int]:
    reached = {}
    for round_obj in progression.rounds:
        for pool in progression.round_pools(round_obj):
            for member in pool.member_ids:
                reached[member] = round_obj.number
    return reached


def _final_ranking(progression: RoundProgression) -> List[Entrant]:
    """Deeper runs rank first, then cumulative wins, differential, points for and seed."""
    # Round reached leads the key, so finalists hold ranks 1..k even when an
    # earlier exit has the better cumulative record. A pure cumulative sort
    # could rank an eliminated player above a finalist.
    reached = _rounds_reached(progression)
    return sorted(progression.entrants.values(),
                  key=lambda e: (-reached.get(e.id, 0),) + ranking_key(e))


def advance_round(progression: RoundProgression, advance_per_pool: int = 2,
                  next_pool_size: int = 4):
    """
    Close the current round and either open the next one or end the event.

    Returns NextRoundPools or TerminalResult, each carrying the new
    progression. Raises RoundNotComplete while matches are pending and
    TournamentComplete once the event has ended.
    """
    if progression.state == TERMINAL:
        raise TournamentComplete("The event is already complete")
    if progression.state == NOT_STARTED or progression.current_round is None:
        raise RoundNotComplete("No round has started")
    if not round_is_complete(progression):
        pending = sum(1 for pool in progression.round_pools() for m in progression.pool_matches(pool)
                      if m.status != COMPLETED)
        raise RoundNotComplete(f"Round {progression.round_number} has {pending} pending matches",
                               pending=pending)
    if advance_per_pool < 1:
        raise InvalidAdvancement(f"advance_per_pool must be at least 1, got {advance_per_pool}")

    updated = progression.copy()
    finished = updated.current_round
    pools = updated.round_pools(finished)
    participants = [member for pool in pools for member in pool.member_ids]

    if len(participants) <= updated.final_round_max_players:
        finished.status = COMPLETED
        finished.completed_at = _now()
        ranked = _final_ranking(updated)
        for rank, entrant in enumerate(ranked, start=1):
            entrant.assign_final_rank(rank)
            if entrant.id not in participants:
                entrant.eliminated = True
        updated.state = TERMINAL
        logger.info(f"Event complete after round {finished.number}; champion {ranked[0].id}")
        return TerminalResult(updated, ranked)

    pool_standings = {}
    for pool in pools:
        ranked_lines = rank_standings(pool.standings.values(), advance_per_pool)
        pool.standings = {line.entrant_id: line for line in ranked_lines}
        pool.status = COMPLETED
        pool_standings[pool.name] = ranked_lines

    advancing = [entrant_id for entrant_id, _, _ in seed_from_pool_standings(pool_standings, advance_per_pool)]
    if len(advancing) < MIN_ROTATION_SIZE:
        # Too few for a rotation pool: fill up with the next-best finishers
        widest = max(len(pool.member_ids) for pool in pools)
        by_finish = [entrant_id for entrant_id, _, _ in seed_from_pool_standings(pool_standings, widest)]
        logger.info(f"Only {len(advancing)} players qualify; taking the top {MIN_ROTATION_SIZE} finishers")
        advancing = by_finish[:MIN_ROTATION_SIZE]
        for lines in pool_standings.values():
            for line in lines:
                line.advances = line.entrant_id in advancing
    if len(advancing) >= len(participants):
        raise InvalidAdvancement(
            f"Advancing {len(advancing)} of {len(participants)} players would not reduce the field",
            advancing=len(advancing), participants=len(participants))

    eliminated = [member for member in participants if member not in advancing]
    for member in eliminated:
        updated.entrants[member].eliminated = True

    finished.status = COMPLETED
    finished.completed_at = _now()
    round_obj, new_pools, new_matches = _open_round(updated, advancing, next_pool_size)
    logger.info(f"Round {finished.number} closed: {len(advancing)} advance, {len(eliminated)} eliminated")
    return NextRoundPools(updated, round_obj, new_pools, new_matches, eliminated)


def leaderboard(progression: RoundProgression) -> List[Dict]:
    """Cumulative standings; final ranks once the event has ended."""
    if progression.state == TERMINAL:
        ordered = sorted(progression.entrants.values(), key=lambda e: e.final_rank)
    else:
        ordered = sorted(progression.entrants.values(), key=lambda e: (e.eliminated,) + ranking_key(e))

    board = []
    for position, entrant in enumerate(ordered, start=1):
        row = StandingLine(entrant.id, entrant.name, entrant.seed, entrant.wins, entrant.losses,
                           entrant.points_for, entrant.points_against).to_dict()
        row['rank'] = entrant.final_rank if entrant.final_rank is not None else position
        row['eliminated'] = entrant.eliminated
        row['final_rank'] = entrant.final_rank
        del row['advances']
        board.append(row)
    return board
