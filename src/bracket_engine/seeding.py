"""
Seed ordering and pool distribution.

Pools are filled serpentine ("snake") style so the aggregate seed strength of
every pool is balanced without padding:

    8 entrants, 2 pools  ->  Pool A: 1, 4, 5, 8   Pool B: 2, 3, 6, 7
    9 entrants, 3 pools  ->  Pool A: 1, 6, 7      Pool B: 2, 5, 8    Pool C: 3, 4, 9
"""
import logging
import math
import random
import string
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import InvalidPoolCount, InvalidPoolSize
from .models import Pool

logger = logging.getLogger(__name__)


def get_pool_name(index: int) -> str:
    """Pool A, Pool B, ..., Pool Z, Pool AA, ..."""
    letters = ''
    index += 1
    while index > 0:
        index, remainder = divmod(index - 1, 26)
        letters = string.ascii_uppercase[remainder] + letters
    return f"Pool {letters}"


def snake_seed(entrants: Sequence, pool_count: int) -> List[List]:
    """
    Distribute ranked entrants across pools in serpentine order.

    Walks pools 0, 1, ..., P-1, P-1, ..., 0, 0, 1, ... reversing direction at
    each boundary. Pool sizes differ by at most one.
    """
    num_entrants = len(entrants)
    if pool_count < 1 or pool_count > num_entrants:
        raise InvalidPoolCount(
            f"Pool count must be between 1 and {num_entrants}, got {pool_count}",
            pool_count=pool_count, entrants=num_entrants)

    pools = [[] for _ in range(pool_count)]
    current_pool = 0
    direction = 1

    for entrant in entrants:
        pools[current_pool].append(entrant)

        next_pool = current_pool + direction
        if next_pool < 0 or next_pool >= pool_count:
            # Stay on the boundary pool for the next pick and turn around
            direction = -direction
        else:
            current_pool = next_pool

    return pools


def _entrant_id(entrant):
    if isinstance(entrant, str):
        return entrant
    if isinstance(entrant, dict):
        return entrant['id']
    return entrant.id


def seed_pools(entrants: Sequence, pool_count: int, round_id: Optional[str] = None,
               advance: int = 2) -> List[Pool]:
    """
    Build Pool objects from a ranked entrant list.

    Entrants may be ids, dicts with an ``id`` key, or Entrant objects.
    """
    groups = snake_seed(entrants, pool_count)
    pools = []
    for index, group in enumerate(groups):
        name = get_pool_name(index)
        pool_id = f"{round_id}_pool_{name[5:]}" if round_id else f"pool_{name[5:]}"
        pools.append(Pool(pool_id, name, [_entrant_id(e) for e in group], round_id=round_id, advance=advance))

    logger.info(f"Seeded {len(entrants)} entrants into {pool_count} pools "
                f"(sizes {[len(p.member_ids) for p in pools]})")
    return pools


def pools_for_size(num_entrants: int, pool_size: int) -> int:
    """Number of pools needed so that no pool exceeds ``pool_size``."""
    if pool_size < 1:
        raise InvalidPoolSize(f"Pool size must be at least 1, got {pool_size}")
    if num_entrants <= 0:
        return 0
    return math.ceil(num_entrants / pool_size)


def reorder_seeds(order: Sequence, start_index: int, end_index: int) -> List:
    """Move the entry at ``start_index`` to ``end_index`` (manual drag reorder)."""
    result = list(order)
    removed = result.pop(start_index)
    result.insert(end_index, removed)
    return result


def alphabetical_seeds(order: Sequence, key=None) -> List:
    """Reset seed order alphabetically (case-insensitive)."""
    if key is None:
        key = lambda e: str(getattr(e, 'name', e)).lower()
    return sorted(order, key=key)


def randomize_seeds(order: Sequence, rng: Optional[random.Random] = None) -> List:
    """Return a shuffled copy of the seed order."""
    rng = rng or random.Random()
    result = list(order)
    rng.shuffle(result)
    return result


def seed_from_pool_standings(pool_standings: Dict[str, List], advance_per_pool: int) -> List[Tuple[str, int, str]]:
    """
    Create the playoff seed list from ranked pool standings.

    Returns list of (entrant_id, seed, pool_name) tuples.

    Seeding is done by pool finish position:
    - All 1st place finishers get top seeds
    - All 2nd place finishers get next seeds
    - etc.
    Within a finish position, teams are ordered by wins, differential,
    points for and then entry seed, so the result is a strict order.
    """
    seeded = []
    if not pool_standings:
        return seeded

    for position in range(1, advance_per_pool + 1):
        at_position = []
        for pool_name in sorted(pool_standings.keys()):
            ranked = pool_standings[pool_name]
            if len(ranked) >= position:
                at_position.append((ranked[position - 1], pool_name))

        at_position.sort(key=lambda item: (
            -item[0].wins,
            -item[0].differential,
            -item[0].points_for,
            item[0].seed if item[0].seed is not None else float('inf'),
            item[1],
        ))
        for line, pool_name in at_position:
            seeded.append((line.entrant_id, len(seeded) + 1, pool_name))

    return seeded
