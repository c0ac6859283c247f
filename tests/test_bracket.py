"""
Unit tests for single elimination bracket construction.
"""
from collections import Counter
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from bracket_engine.advancement import apply_resolution, resolve_match
from bracket_engine.bracket import (
    PLAY_IN_ROUND,
    Bracket,
    build_bracket,
    champion,
    get_round_name,
    make_advance_rules,
    regenerate_bracket,
    suggest_format,
)
from bracket_engine.errors import InsufficientEntrants, InvalidAdvancement, UnknownFormat
from bracket_engine.models import FORMAT_BYES, FORMAT_NONE, FORMAT_PLAY_IN, Team


def _seeds(n):
    return [f"Team {i}" for i in range(1, n + 1)]


def _seed_of(participant):
    return int(participant.name.split()[-1])


class TestSuggestFormat:
    """Tests for byes vs play-in suggestion."""

    def test_ten_teams(self):
        """10 teams: 6 byes or 4 play-in teams, so play-in."""
        assert suggest_format(10) == {'suggestion': FORMAT_PLAY_IN, 'byes': 6, 'play_ins': 4,
                                      'lower': 8, 'higher': 16}

    def test_twelve_teams(self):
        """12 teams: 4 byes beat 8 play-in teams."""
        assert suggest_format(12) == {'suggestion': FORMAT_BYES, 'byes': 4, 'play_ins': 8,
                                      'lower': 8, 'higher': 16}

    def test_nine_teams(self):
        """9 teams: a single play-in match."""
        assert suggest_format(9) == {'suggestion': FORMAT_PLAY_IN, 'byes': 7, 'play_ins': 2,
                                     'lower': 8, 'higher': 16}

    def test_power_of_two(self):
        """A power of two needs neither."""
        result = suggest_format(8)
        assert result['suggestion'] == FORMAT_NONE
        assert result['byes'] == 0 and result['play_ins'] == 0

    def test_zero_teams(self):
        """An empty field falls back to byes with all zeros."""
        assert suggest_format(0) == {'suggestion': FORMAT_BYES, 'byes': 0, 'play_ins': 0,
                                     'lower': 0, 'higher': 0}

    def test_small_fields_prefer_byes(self):
        """6 teams: 2 byes vs 4 play-in teams; 3 teams: 1 bye vs 2 play-in teams."""
        assert suggest_format(6)["suggestion"] == FORMAT_BYES
        assert suggest_format(3)['suggestion'] == FORMAT_BYES


class TestAdvanceRules:
    """Tests for stored format choice."""

    def test_override_is_recorded(self):
        """An operator override replaces the suggestion but both are kept."""
        rules = make_advance_rules(12, FORMAT_PLAY_IN)
        assert rules.format_chosen == FORMAT_PLAY_IN
        assert rules.suggested_format == FORMAT_BYES
        assert rules.play_ins == 8
        assert rules.byes == 0

    def test_override_ignored_for_power_of_two(self):
        """No extra round is forced on a power-of-two field."""
        assert make_advance_rules(8, FORMAT_BYES).format_chosen == FORMAT_NONE

    def test_unknown_format(self):
        """Unknown formats are rejected."""
        with pytest.raises(UnknownFormat):
            make_advance_rules(10, 'swiss')


class TestRoundNames:
    def test_names(self):
        assert get_round_name(2) == "Final"
        assert get_round_name(4) == "Semifinal"
        assert get_round_name(8) == "Quarterfinal"
        assert get_round_name(16) == "Round of 16"


class TestPowerOfTwoBracket:
    """Tests for a full 8-team bracket."""

    def test_first_round_pairings(self, eight_seeds):
        """Seeds pair 1v8, 4v5, 2v7, 3v6 in bracket order."""
        bracket = build_bracket(eight_seeds)
        first = bracket.round_matches("Quarterfinal")
        assert [(m.seed1, m.seed2) for m in first] == [(1, 8), (4, 5), (2, 7), (3, 6)]
        assert first[0].slot1 == Team("Team 1")

    def test_round_graph(self, eight_seeds):
        """Rounds are listed in play order and later rounds are empty."""
        bracket = build_bracket(eight_seeds)
        assert [r['key'] for r in bracket.round_graph] == ["Quarterfinal", "Semifinal", "Final"]
        assert [len(r['match_ids']) for r in bracket.round_graph] == [4, 2, 1]
        for match in bracket.round_matches("Semifinal") + bracket.round_matches("Final"):
            assert match.slot1 is None and match.slot2 is None

    def test_links_halve_index(self, eight_seeds):
        """Match k of a round feeds match k//2 of the next, odd/even into slot 1/2."""
        bracket = build_bracket(eight_seeds)
        first = bracket.round_matches("Quarterfinal")
        assert [(m.next_match_id, m.next_slot) for m in first] == [
            ('playoff_r2_m1', 1), ('playoff_r2_m1', 2), ('playoff_r2_m2', 1), ('playoff_r2_m2', 2)]
        final = bracket.round_matches("Final")[0]
        assert final.next_match_id is None
        assert bracket.format == FORMAT_NONE

    def test_too_few_seeds(self):
        """A bracket needs two seeds."""
        with pytest.raises(InsufficientEntrants):
            build_bracket(["Solo"])


class TestPlayInBracket:
    """Tests for play-in brackets."""

    def test_ten_entrants(self):
        """10 entrants: 2 play-in matches; round 1 waits on them for 2 matches and seeds 3-6 directly."""
        bracket = build_bracket(_seeds(10))
        assert bracket.format == FORMAT_PLAY_IN
        assert bracket.play_ins == 4

        play_in = bracket.round_matches(PLAY_IN_ROUND)
        assert [(m.seed1, m.seed2) for m in play_in] == [(7, 10), (8, 9)]

        first = bracket.round_matches("Quarterfinal")
        pending = [m for m in first if not m.is_ready]
        seeded = [m for m in first if m.is_ready]
        assert len(pending) == 2
        assert len(seeded) == 2
        assert sorted(s for m in seeded for s in (m.seed1, m.seed2)) == [3, 4, 5, 6]
        assert sorted(m.seed1 for m in pending) == [1, 2]

    def test_play_in_winner_slot(self):
        """The 8v9 play-in feeds seed 1's match, the 7v10 play-in feeds seed 2's."""
        bracket = build_bracket(_seeds(10))
        by_id = bracket.matches_by_id
        play_in = bracket.round_matches(PLAY_IN_ROUND)
        assert by_id[play_in[1].next_match_id].seed1 == 1
        assert by_id[play_in[0].next_match_id].seed1 == 2

    def test_forced_play_in(self):
        """12 entrants forced to play-in: 4 play-in matches."""
        bracket = build_bracket(_seeds(12), FORMAT_PLAY_IN)
        assert len(bracket.round_matches(PLAY_IN_ROUND)) == 4
        assert bracket.play_ins == 8


class TestByesBracket:
    """Tests for bye brackets."""

    def test_twelve_entrants(self):
        """12 entrants: top 4 seeds skip round 1, seeds 5-12 play high/low."""
        bracket = build_bracket(_seeds(12))
        assert bracket.format == FORMAT_BYES
        assert bracket.byes == 4

        first = bracket.round_matches("Round of 16")
        assert [(m.seed1, m.seed2) for m in first] == [(5, 12), (6, 11), (7, 10), (8, 9)]

        second = bracket.round_matches("Quarterfinal")
        assert [m.seed1 for m in second] == [1, 4, 2, 3]
        assert all(m.slot2 is None for m in second)

    def test_round_one_winners_meet_bye_seeds(self):
        """The 8v9 winner meets seed 1; the 5v12 winner meets seed 4."""
        bracket = build_bracket(_seeds(12))
        by_id = bracket.matches_by_id
        first = bracket.round_matches("Round of 16")
        assert by_id[first[3].next_match_id].seed1 == 1
        assert by_id[first[0].next_match_id].seed1 == 4


class TestBracketProperties:
    """Structural properties over many field sizes."""

    @pytest.mark.parametrize('fmt', [None, FORMAT_BYES, FORMAT_PLAY_IN])
    def test_structure(self, fmt):
        """M-1 matches, one final, and every slot fed by at most one match."""
        for n in range(2, 33):
            bracket = build_bracket(_seeds(n), fmt)
            assert len(bracket.matches) == n - 1
            finals = [m for m in bracket.matches if m.next_match_id is None]
            assert len(finals) == 1
            feeds = Counter((m.next_match_id, m.next_slot) for m in bracket.matches if m.next_match_id)
            assert all(count == 1 for count in feeds.values())
            by_id = bracket.matches_by_id
            for (target, slot), _ in feeds.items():
                assert by_id[target].slot(slot) is None

    def test_every_seed_placed_once(self):
        """Each seed appears in exactly one initial slot."""
        for n in range(2, 33):
            bracket = build_bracket(_seeds(n))
            placed = [s for m in bracket.matches for s in (m.seed1, m.seed2) if s is not None]
            assert sorted(placed) == list(range(1, n + 1))

    def test_chalk_final_is_one_v_two(self):
        """If the better seed always wins, seeds 1 and 2 meet in the final and seed 1 wins."""
        for n in range(2, 21):
            bracket = build_bracket(_seeds(n))
            matches = bracket.matches_by_id
            for match in bracket.matches:
                current = matches[match.id]
                if current.next_match_id is None:
                    assert {_seed_of(current.slot1), _seed_of(current.slot2)} == {1, 2}
                better_first = _seed_of(current.slot1) < _seed_of(current.slot2)
                score1, score2 = (21, 10) if better_first else (10, 21)
                apply_resolution(matches, resolve_match(matches, match.id, score1, score2))
            assert champion(list(matches.values())) == Team("Team 1")


class TestRegenerate:
    """Tests for deterministic rebuilds from stored rules."""

    def test_rebuild_matches_original(self):
        """Stored advance rules plus seeds rebuild the same bracket."""
        original = build_bracket(_seeds(12), FORMAT_PLAY_IN)
        rebuilt = regenerate_bracket(original.advance_rules, _seeds(12))
        assert rebuilt.to_dict() == original.to_dict()

    def test_rebuild_power_of_two(self, eight_seeds):
        """A 'none' format rebuilds without an override."""
        original = build_bracket(eight_seeds)
        assert regenerate_bracket(original.advance_rules, eight_seeds).to_dict() == original.to_dict()

    def test_seed_count_must_match(self):
        """A different field size is rejected."""
        original = build_bracket(_seeds(10))
        with pytest.raises(InvalidAdvancement):
            regenerate_bracket(original.advance_rules, _seeds(11))

    def test_dict_round_trip(self):
        """Brackets survive a dict round trip."""
        original = build_bracket(_seeds(10))
        assert Bracket.from_dict(original.to_dict()).to_dict() == original.to_dict()

    def test_champion_undecided(self, eight_seeds):
        """No champion before the final is played."""
        assert champion(build_bracket(eight_seeds).matches) is None
