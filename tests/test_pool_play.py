"""
Unit tests for team pool play and the hand-off to playoffs.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket_engine.bracket import build_bracket
from bracket_engine.errors import EntityNotFound, InvalidAdvancement, RoundNotComplete, UnresolvableMatch
from bracket_engine.models import COMPLETED, IN_PROGRESS, UPCOMING, Team
from bracket_engine.pool_play import (
    PLAYOFFS,
    POOL_PLAY,
    PoolStage,
    advance_to_playoffs,
    clear_pool_result,
    create_pools,
    pools_complete,
    ranked_pool_standings,
    record_pool_result,
)


def finish_pools(stage, skip=()):
    """Record 21-15 for slot 1 in every pending pool match."""
    for match_id, match in list(stage.matches.items()):
        if match_id not in skip and not match.is_completed:
            stage = record_pool_result(stage, match_id, 21, 15)
    return stage


class TestCreatePools:
    """Tests for the pool draw."""

    def test_snake_seeded_round_robin(self, eight_seeds):
        stage = create_pools(eight_seeds, 2)
        assert stage.state == POOL_PLAY
        assert stage.pools['pool_A'].member_ids == ['Team 1', 'Team 4', 'Team 5', 'Team 8']
        assert stage.pools['pool_B'].member_ids == ['Team 2', 'Team 3', 'Team 6', 'Team 7']
        assert len(stage.matches) == 12
        assert stage.pools['pool_A'].match_ids[0] == 'pool_A_m1'
        assert stage.entrants['Team 3'].seed == 3

    def test_team_dicts(self):
        stage = create_pools([{'name': 'Sand Sharks'}, {'name': 'Dig Dogs'}, 'Net Ninjas'], 1)
        assert stage.pools['pool_A'].member_ids == ['Sand Sharks', 'Dig Dogs', 'Net Ninjas']
        assert len(stage.matches) == 3

    def test_duplicate_names_rejected(self):
        with pytest.raises(InvalidAdvancement):
            create_pools(['A', 'B', 'A'], 1)

    def test_serialization_round_trip(self, eight_seeds):
        stage = record_pool_result(create_pools(eight_seeds, 2), 'pool_A_m1', 21, 17)
        assert PoolStage.from_dict(stage.to_dict()).to_dict() == stage.to_dict()


class TestPoolResults:
    """Tests for recording, editing and clearing pool matches."""

    def test_result_updates_standings(self, eight_seeds):
        stage = create_pools(eight_seeds, 2)
        updated = record_pool_result(stage, 'pool_A_m1', 21, 17)

        pool = updated.pools['pool_A']
        assert pool.status == IN_PROGRESS
        assert pool.standings['Team 1'].wins == 1
        assert pool.standings['Team 4'].losses == 1
        assert pool.standings['Team 4'].points_for == 17
        assert stage.pools['pool_A'].standings['Team 1'].wins == 0

    def test_draw(self, eight_seeds):
        """Pool matches may end level; neither side gets a win or a loss."""
        stage = record_pool_result(create_pools(eight_seeds, 2), 'pool_A_m1', 20, 20)
        match = stage.matches['pool_A_m1']
        assert match.is_draw
        assert match.winner is None
        for team in ('Team 1', 'Team 4'):
            line = stage.pools['pool_A'].standings[team]
            assert (line.wins, line.losses, line.matches_played, line.points_for) == (0, 0, 1, 20)

    def test_edit_reverses_standings(self, eight_seeds):
        """Flipping a result moves the win without double counting."""
        stage = record_pool_result(create_pools(eight_seeds, 2), 'pool_A_m1', 21, 15)
        stage = record_pool_result(stage, 'pool_A_m1', 15, 21)

        standings = stage.pools['pool_A'].standings
        assert (standings['Team 1'].wins, standings['Team 1'].losses) == (0, 1)
        assert (standings['Team 4'].wins, standings['Team 4'].losses) == (1, 0)
        assert standings['Team 4'].matches_played == 1
        assert standings['Team 4'].differential == 6
        assert stage.entrants['Team 4'].wins == 1
        assert stage.entrants['Team 1'].wins == 0

    def test_clear_result(self, eight_seeds):
        stage = record_pool_result(create_pools(eight_seeds, 2), 'pool_A_m1', 21, 15)
        stage = clear_pool_result(stage, 'pool_A_m1')
        assert stage.matches['pool_A_m1'].status == UPCOMING
        assert stage.pools['pool_A'].standings['Team 1'].matches_played == 0
        assert stage.pools['pool_A'].status == UPCOMING

    def test_set_scores(self, eight_seeds):
        stage = create_pools(eight_seeds, 2)
        stage = record_pool_result(stage, 'pool_B_m1', set_scores=[(19, 21)])
        assert stage.matches['pool_B_m1'].winner == 2

    def test_unknown_match(self, eight_seeds):
        with pytest.raises(EntityNotFound):
            record_pool_result(create_pools(eight_seeds, 2), 'nope', 21, 10)

    def test_negative_score(self, eight_seeds):
        with pytest.raises(UnresolvableMatch):
            record_pool_result(create_pools(eight_seeds, 2), 'pool_A_m1', -1, 10)


class TestAdvanceToPlayoffs:
    """Tests for closing pool play."""

    def test_not_complete(self, eight_seeds):
        stage = finish_pools(create_pools(eight_seeds, 2), skip=('pool_B_m6',))
        assert not pools_complete(stage)
        with pytest.raises(RoundNotComplete) as excinfo:
            advance_to_playoffs(stage)
        assert excinfo.value.context['pending'] == 1

    def test_seeds_by_finish_position(self, eight_seeds):
        """Pool winners take seeds 1-2, runners-up 3-4, ties broken by entry seed."""
        stage = finish_pools(create_pools(eight_seeds, 2))
        assert pools_complete(stage)

        updated, seeds = advance_to_playoffs(stage)
        assert seeds == ['Team 1', 'Team 2', 'Team 3', 'Team 4']
        assert updated.state == PLAYOFFS
        assert all(p.status == COMPLETED for p in updated.pools.values())
        pool_a = updated.pools['pool_A'].standings
        assert pool_a['Team 1'].rank == 1 and pool_a['Team 1'].advances
        assert not pool_a['Team 5'].advances
        assert stage.state == POOL_PLAY

    def test_bracket_from_finishers(self, eight_seeds):
        _, seeds = advance_to_playoffs(finish_pools(create_pools(eight_seeds, 2)))
        matches = build_bracket(seeds).matches_by_id
        assert matches['playoff_r1_m1'].slot1 == Team('Team 1')
        assert matches['playoff_r1_m1'].slot2 == Team('Team 4')

    def test_edit_changes_seeds(self, eight_seeds):
        """An edited result that reverses a pool's order moves the seeds with it."""
        stage = finish_pools(create_pools(eight_seeds, 2))
        for match_id in ('pool_A_m1', 'pool_A_m2', 'pool_A_m3'):
            stage = record_pool_result(stage, match_id, 10, 21)
        ranked = ranked_pool_standings(stage)['Pool A']
        assert ranked[0].entrant_id == 'Team 4'

        _, seeds = advance_to_playoffs(stage)
        assert seeds == ['Team 4', 'Team 2', 'Team 5', 'Team 3']

    def test_locked_after_advance(self, eight_seeds):
        updated, _ = advance_to_playoffs(finish_pools(create_pools(eight_seeds, 2)))
        with pytest.raises(InvalidAdvancement):
            record_pool_result(updated, 'pool_A_m1', 10, 21)
        with pytest.raises(InvalidAdvancement):
            advance_to_playoffs(updated)
