"""
Tournament operations over a TransactionPort.

Every mutation for a tournament runs under that tournament's lock, so a
bracket regeneration never interleaves with result recording, and inside a
store transaction, so the completeness check that gates round advancement
reads the same snapshot the next round is written from.
"""
import logging
import re
from typing import Optional, Sequence

from .advancement import apply_resolution, clear_match, resolve_match, resolve_match_from_sets
from .bracket import Bracket, as_participant, build_bracket, regenerate_bracket, suggest_format
from .config import get_default_settings
from .errors import EntityNotFound
from .pool_play import (
    PoolStage,
    advance_to_playoffs,
    clear_pool_result,
    create_pools,
    ranked_pool_standings,
    record_pool_result,
)
from .progression import RoundProgression, advance_round, clear_result, leaderboard, record_result, start_event
from .seeding import pools_for_size
from .store import MemoryStore, TransactionPort

logger = logging.getLogger(__name__)

_TOURNAMENT_ID = re.compile(r'^[A-Za-z0-9_-]+$')


class TournamentService:
    def __init__(self, store: Optional[TransactionPort] = None, settings=None):
        self.settings = settings or get_default_settings()
        self.store = store or MemoryStore(retries=self.settings.get('transaction_retries', 5))

    # Paths

    def _check_id(self, tournament_id):
        if not tournament_id or not _TOURNAMENT_ID.match(tournament_id):
            raise EntityNotFound(f"Invalid tournament id: {tournament_id!r}", tournament_id=tournament_id)
        return tournament_id

    def _bracket_path(self, tournament_id):
        return f"tournaments/{self._check_id(tournament_id)}/bracket"

    def _kob_path(self, tournament_id):
        return f"tournaments/{self._check_id(tournament_id)}/kob"

    def _pools_path(self, tournament_id):
        return f"tournaments/{self._check_id(tournament_id)}/pools"

    def _lock(self, tournament_id):
        return self.store.lock_for(f"tournaments/{self._check_id(tournament_id)}")

    def subscribe(self, tournament_id, kind, callback):
        """Subscribe to committed 'bracket', 'pools' or 'kob' state of a tournament."""
        if kind == 'bracket':
            path = self._bracket_path(tournament_id)
        elif kind == 'pools':
            path = self._pools_path(tournament_id)
        else:
            path = self._kob_path(tournament_id)
        return self.store.hub.subscribe(path, callback)

    # Playoff bracket

    def suggest_format(self, num_teams):
        return suggest_format(num_teams)

    def generate_bracket(self, tournament_id, seeds: Sequence, format_override=None) -> Bracket:
        """Build (or rebuild wholesale) the playoff bracket for a tournament."""
        bracket = build_bracket(seeds, format_override, bracket_id='playoff',
                                rules_by_round=self.settings.get('playoff_rules'))
        seed_data = [as_participant(s).to_dict() for s in seeds]

        with self._lock(tournament_id):
            self.store.with_transaction(
                self._bracket_path(tournament_id),
                lambda _: {'seeds': seed_data, 'bracket': bracket.to_dict()},
            )
        logger.info(f"Tournament {tournament_id}: generated {bracket.format} bracket for {len(seeds)} seeds")
        return bracket

    def get_bracket(self, tournament_id) -> Bracket:
        data = self.store.get(self._bracket_path(tournament_id))
        if not data:
            raise EntityNotFound(f"Tournament {tournament_id} has no bracket", tournament_id=tournament_id)
        return Bracket.from_dict(data['bracket'])

    def regenerate_bracket(self, tournament_id) -> Bracket:
        """Rebuild the bracket from its stored advance rules and seeds, dropping all results."""
        rebuilt = {}

        def updater(data):
            if not data:
                raise EntityNotFound(f"Tournament {tournament_id} has no bracket", tournament_id=tournament_id)
            current = Bracket.from_dict(data['bracket'])
            bracket = regenerate_bracket(current.advance_rules, data['seeds'], bracket_id=current.bracket_id,
                                         rules_by_round=self.settings.get('playoff_rules'))
            rebuilt['bracket'] = bracket
            return {'seeds': data['seeds'], 'bracket': bracket.to_dict()}

        with self._lock(tournament_id):
            self.store.with_transaction(self._bracket_path(tournament_id), updater)
        return rebuilt['bracket']

    def _update_bracket(self, tournament_id, operation):
        outcome = {}

        def updater(data):
            if not data:
                raise EntityNotFound(f"Tournament {tournament_id} has no bracket", tournament_id=tournament_id)
            bracket = Bracket.from_dict(data['bracket'])
            matches = bracket.matches_by_id
            result = operation(matches)
            apply_resolution(matches, result)
            bracket.matches = [matches[m.id] for m in bracket.matches]
            outcome['result'] = result
            return {'seeds': data['seeds'], 'bracket': bracket.to_dict()}

        with self._lock(tournament_id):
            self.store.with_transaction(self._bracket_path(tournament_id), updater)
        return outcome['result']

    def record_bracket_result(self, tournament_id, match_id, score1=None, score2=None, set_scores=None):
        """Resolve a playoff match; returns the ResolveResult that was committed."""
        if set_scores:
            result = self._update_bracket(
                tournament_id, lambda matches: resolve_match_from_sets(matches, match_id, set_scores))
        else:
            result = self._update_bracket(
                tournament_id, lambda matches: resolve_match(matches, match_id, score1, score2))
        if result.cascade_clears:
            logger.info(f"Tournament {tournament_id}: edit of {match_id} cleared "
                        f"{len(result.cascade_clears)} downstream matches")
        return result

    def clear_bracket_result(self, tournament_id, match_id):
        return self._update_bracket(tournament_id, lambda matches: clear_match(matches, match_id))

    # Team pool play

    def create_pools(self, tournament_id, teams: Sequence, pool_count=None, pool_size=None,
                     advance_per_pool=None) -> PoolStage:
        """Seed teams into round-robin pools; ``pool_count`` wins over ``pool_size``."""
        if pool_count is None:
            pool_count = pools_for_size(len(teams), pool_size or self.settings['pool_size'])
        stage = create_pools(
            teams,
            pool_count,
            rules=self.settings.get('match_rules'),
            advance_per_pool=advance_per_pool or self.settings['advance_per_pool'],
        )
        with self._lock(tournament_id):
            self.store.with_transaction(self._pools_path(tournament_id), lambda _: stage.to_dict())
        return stage

    def get_pools(self, tournament_id) -> PoolStage:
        data = self.store.get(self._pools_path(tournament_id))
        if not data:
            raise EntityNotFound(f"Tournament {tournament_id} has no pools", tournament_id=tournament_id)
        return PoolStage.from_dict(data)

    def _update_pools(self, tournament_id, transition):
        def updater(data):
            if not data:
                raise EntityNotFound(f"Tournament {tournament_id} has no pools", tournament_id=tournament_id)
            return transition(PoolStage.from_dict(data)).to_dict()

        with self._lock(tournament_id):
            committed = self.store.with_transaction(self._pools_path(tournament_id), updater)
        return PoolStage.from_dict(committed)

    def record_pool_result(self, tournament_id, match_id, score1=None, score2=None, set_scores=None) -> PoolStage:
        return self._update_pools(
            tournament_id, lambda s: record_pool_result(s, match_id, score1, score2, set_scores=set_scores))

    def clear_pool_result(self, tournament_id, match_id) -> PoolStage:
        return self._update_pools(tournament_id, lambda s: clear_pool_result(s, match_id))

    def pool_standings(self, tournament_id):
        return ranked_pool_standings(self.get_pools(tournament_id))

    def advance_to_playoffs(self, tournament_id, advance_per_pool=None, format_override=None):
        """
        Close pool play and seed the playoff bracket from the pool finishers.

        The completeness check and the bracket build happen inside the pools
        transaction, so a failure leaves both the pools and any bracket as
        they were. Returns (seeds, bracket).
        """
        outcome = {}

        def updater(data):
            if not data:
                raise EntityNotFound(f"Tournament {tournament_id} has no pools", tournament_id=tournament_id)
            stage, seeds = advance_to_playoffs(PoolStage.from_dict(data), advance_per_pool)
            outcome['seeds'] = seeds
            outcome['bracket'] = build_bracket(seeds, format_override, bracket_id='playoff',
                                               rules_by_round=self.settings.get('playoff_rules'))
            return stage.to_dict()

        with self._lock(tournament_id):
            self.store.with_transaction(self._pools_path(tournament_id), updater)
            seed_data = [as_participant(s).to_dict() for s in outcome['seeds']]
            bracket = outcome['bracket']
            # Written directly: generate_bracket would take the tournament lock again
            self.store.with_transaction(
                self._bracket_path(tournament_id),
                lambda _: {'seeds': seed_data, 'bracket': bracket.to_dict()},
            )
        logger.info(f"Tournament {tournament_id}: {len(outcome['seeds'])} pool finishers seeded into "
                    f"a {bracket.format} bracket")
        return outcome['seeds'], bracket

    # King of the Beach

    def start_kob(self, tournament_id, players: Sequence, pool_size=None) -> RoundProgression:
        progression = start_event(
            players,
            pool_size=pool_size or self.settings['pool_size'],
            rules=self.settings.get('kob_match_rules'),
            final_round_max_players=self.settings.get('final_round_max_players', 4),
            max_pool_size=self.settings.get('max_kob_pool_size', 8),
        )
        with self._lock(tournament_id):
            self.store.with_transaction(self._kob_path(tournament_id), lambda _: progression.to_dict())
        return progression

    def get_kob(self, tournament_id) -> RoundProgression:
        data = self.store.get(self._kob_path(tournament_id))
        if not data:
            raise EntityNotFound(f"Tournament {tournament_id} has no KOB event", tournament_id=tournament_id)
        return RoundProgression.from_dict(data)

    def _update_kob(self, tournament_id, transition):
        outcome = {}

        def updater(data):
            if not data:
                raise EntityNotFound(f"Tournament {tournament_id} has no KOB event", tournament_id=tournament_id)
            result = transition(RoundProgression.from_dict(data))
            outcome['result'] = result
            progression = result if isinstance(result, RoundProgression) else result.progression
            return progression.to_dict()

        with self._lock(tournament_id):
            self.store.with_transaction(self._kob_path(tournament_id), updater)
        return outcome['result']

    def record_kob_result(self, tournament_id, match_id, score1=None, score2=None, set_scores=None):
        return self._update_kob(
            tournament_id, lambda p: record_result(p, match_id, score1, score2, set_scores=set_scores))

    def clear_kob_result(self, tournament_id, match_id):
        return self._update_kob(tournament_id, lambda p: clear_result(p, match_id))

    def advance_kob(self, tournament_id, advance_per_pool=None, pool_size=None):
        """Advance the KOB event; returns NextRoundPools or TerminalResult."""
        advance_per_pool = advance_per_pool or self.settings['advance_per_pool']
        pool_size = pool_size or self.settings['pool_size']
        return self._update_kob(tournament_id, lambda p: advance_round(p, advance_per_pool, pool_size))

    def kob_leaderboard(self, tournament_id):
        return leaderboard(self.get_kob(tournament_id))

