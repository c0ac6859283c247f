"""
Unit tests for snake seeding, seed-order helpers and cross-pool playoff seeding.
"""
import random
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket_engine.errors import InvalidPoolCount, InvalidPoolSize
from bracket_engine.models import Entrant
from bracket_engine.seeding import (
    alphabetical_seeds,
    get_pool_name,
    pools_for_size,
    randomize_seeds,
    reorder_seeds,
    seed_from_pool_standings,
    seed_pools,
    snake_seed,
)
from bracket_engine.standings import StandingLine


class TestSnakeSeed:
    """Tests for serpentine pool distribution."""

    def test_eight_into_two(self):
        """8 entrants in 2 pools: A gets 1,4,5,8 and B gets 2,3,6,7."""
        pools = snake_seed(list(range(1, 9)), 2)
        assert pools == [[1, 4, 5, 8], [2, 3, 6, 7]]

    def test_nine_into_three(self):
        """9 entrants in 3 pools balance the top seeds."""
        pools = snake_seed(list(range(1, 10)), 3)
        assert pools == [[1, 6, 7], [2, 5, 8], [3, 4, 9]]

    def test_single_pool_keeps_order(self):
        """One pool holds every entrant in seed order."""
        assert snake_seed(['a', 'b', 'c'], 1) == [['a', 'b', 'c']]

    def test_one_entrant_per_pool(self):
        """Pool count equal to entrant count gives singleton pools."""
        assert snake_seed(['a', 'b', 'c'], 3) == [['a'], ['b'], ['c']]

    @pytest.mark.slow
    def test_pool_sizes_differ_by_at_most_one(self):
        """For every N and P in range, pool sizes differ by at most one and nobody is lost."""
        for n in range(1, 41):
            entrants = list(range(n))
            for p in range(1, n + 1):
                pools = snake_seed(entrants, p)
                sizes = [len(pool) for pool in pools]
                assert max(sizes) - min(sizes) <= 1, (n, p, sizes)
                assert sorted(e for pool in pools for e in pool) == entrants

    def test_zero_pools_rejected(self):
        """Pool count below 1 is invalid."""
        with pytest.raises(InvalidPoolCount):
            snake_seed(['a', 'b'], 0)

    def test_more_pools_than_entrants_rejected(self):
        """Pool count above the entrant count is invalid."""
        with pytest.raises(InvalidPoolCount):
            snake_seed(['a', 'b'], 3)


class TestSeedPools:
    """Tests for Pool construction."""

    def test_pool_names_and_ids(self):
        """Pools are named A, B, ... and scoped to the round."""
        pools = seed_pools(['a', 'b', 'c', 'd'], 2, round_id='round_1')
        assert [p.name for p in pools] == ['Pool A', 'Pool B']
        assert [p.id for p in pools] == ['round_1_pool_A', 'round_1_pool_B']
        assert pools[0].member_ids == ['a', 'd']
        assert pools[0].round_id == 'round_1'

    def test_accepts_entrant_objects(self):
        """Entrant objects and dicts are reduced to their ids."""
        entrants = [Entrant('x', 'X', 1), {'id': 'y'}, 'z']
        pools = seed_pools(entrants, 1)
        assert pools[0].member_ids == ['x', 'y', 'z']

    def test_pool_name_past_z(self):
        """Pool names continue with double letters after Z."""
        assert get_pool_name(0) == 'Pool A'
        assert get_pool_name(25) == 'Pool Z'
        assert get_pool_name(26) == 'Pool AA'

    def test_pools_for_size(self):
        """Pool count is the ceiling of entrants over target size."""
        assert pools_for_size(16, 4) == 4
        assert pools_for_size(17, 4) == 5
        assert pools_for_size(0, 4) == 0
        with pytest.raises(InvalidPoolSize):
            pools_for_size(8, 0)


class TestSeedOrderHelpers:
    """Tests for manual, alphabetical and random seed ordering."""

    def test_reorder_moves_entry(self):
        """Dragging seed 4 to the top shifts the others down."""
        assert reorder_seeds(['a', 'b', 'c', 'd'], 3, 0) == ['d', 'a', 'b', 'c']

    def test_alphabetical_is_case_insensitive(self):
        """Alphabetical reset ignores case."""
        assert alphabetical_seeds(['bob', 'Alice', 'carl']) == ['Alice', 'bob', 'carl']

    def test_randomize_is_a_permutation(self):
        """Randomizing keeps every entry and is reproducible with a seeded RNG."""
        order = list(range(10))
        first = randomize_seeds(order, random.Random(7))
        second = randomize_seeds(order, random.Random(7))
        assert sorted(first) == order
        assert first == second
        assert order == list(range(10))


class TestSeedFromPoolStandings:
    """Tests for cross-pool playoff seeding."""

    def _line(self, entrant_id, wins, pf, pa, seed):
        return StandingLine(entrant_id, seed=seed, wins=wins, points_for=pf, points_against=pa)

    def test_pool_winners_seeded_first(self):
        """All first-place finishers come before any second-place finisher."""
        standings = {
            'Pool A': [self._line('a1', 3, 63, 40, 1), self._line('a2', 2, 60, 50, 4)],
            'Pool B': [self._line('b1', 2, 55, 50, 2), self._line('b2', 2, 62, 45, 3)],
        }
        seeded = seed_from_pool_standings(standings, 2)
        assert [entrant for entrant, _, _ in seeded] == ['a1', 'b1', 'b2', 'a2']
        assert [seed for _, seed, _ in seeded] == [1, 2, 3, 4]

    def test_ties_broken_by_differential_then_entry_seed(self):
        """Equal records fall back to differential, then entry seed."""
        standings = {
            'Pool A': [self._line('a1', 2, 50, 40, 3)],
            'Pool B': [self._line('b1', 2, 50, 40, 2)],
            'Pool C': [self._line('c1', 2, 50, 30, 5)],
        }
        seeded = seed_from_pool_standings(standings, 1)
        assert [entrant for entrant, _, _ in seeded] == ['c1', 'b1', 'a1']

    def test_empty_standings(self):
        """No pools means no seeds."""
        assert seed_from_pool_standings({}, 2) == []
