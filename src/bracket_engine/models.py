"""
Data model for entrants, matches, pools, rounds and advance rules.

Objects are plain classes that round-trip through ``to_dict``/``from_dict`` so
they can be stored as YAML or sent as JSON.
"""
import copy

from .errors import FinalRankAlreadySet, InvalidRules

# Match statuses
UPCOMING = 'upcoming'
LIVE = 'live'
COMPLETED = 'completed'

# Pool / round statuses
IN_PROGRESS = 'in_progress'

# Match types
POOL_MATCH = 'pool'
KOB_MATCH = 'kob'
PLAYOFF_MATCH = 'playoff'

# Bracket formats
FORMAT_BYES = 'byes'
FORMAT_PLAY_IN = 'play-in'
FORMAT_NONE = 'none'


class Team:
    def __init__(self, name, attributes=None):
        self.name = name
        self.attributes = attributes if attributes else {}

    @property
    def members(self):
        return (self.name,)

    def to_dict(self):
        data = {'kind': 'team', 'name': self.name}
        if self.attributes:
            data['attributes'] = dict(self.attributes)
        return data

    def __eq__(self, other):
        return isinstance(other, Team) and other.name == self.name

    def __hash__(self):
        return hash(('team', self.name))

    def __repr__(self):
        return f"Team(name={self.name}, attributes={self.attributes})"


class PlayerPair:
    """Two individual players sharing a side in a 2-vs-2 match."""

    def __init__(self, p1, p2, repeat=False):
        self.p1 = p1
        self.p2 = p2
        # A repeat pair has partnered before; its side is not credited in standings.
        self.repeat = repeat

    @property
    def members(self):
        return (self.p1, self.p2)

    def to_dict(self):
        data = {'kind': 'pair', 'players': [self.p1, self.p2]}
        if self.repeat:
            data['repeat'] = True
        return data

    def __eq__(self, other):
        return isinstance(other, PlayerPair) and frozenset(other.members) == frozenset(self.members)

    def __hash__(self):
        return hash(('pair', frozenset(self.members)))

    def __repr__(self):
        return f"PlayerPair(p1={self.p1}, p2={self.p2}, repeat={self.repeat})"


def participant_from_dict(data):
    """Rebuild a Team or PlayerPair from its dict form (None stays None)."""
    if data is None:
        return None
    if isinstance(data, str):
        return Team(data)
    if data.get('kind') == 'pair' or 'players' in data:
        p1, p2 = data['players']
        return PlayerPair(p1, p2, repeat=data.get('repeat', False))
    return Team(data['name'], data.get('attributes'))


def participant_label(participant):
    if participant is None:
        return 'TBD'
    if isinstance(participant, PlayerPair):
        return f"{participant.p1} & {participant.p2}"
    return participant.name


class MatchRules:
    """Scoring rules for a match.

    ``num_sets`` is a fixed number of sets where draws are possible;
    ``best_of`` ends the match once one side holds a majority of sets.
    """

    def __init__(self, first_to=21, win_by=2, cap=30, num_sets=1, best_of=None):
        self.first_to = first_to
        self.win_by = win_by
        self.cap = cap
        self.num_sets = None if best_of else num_sets
        self.best_of = best_of

    @property
    def allows_draw(self):
        return self.best_of is None

    def validate(self):
        if self.first_to is None or self.first_to < 1:
            raise InvalidRules('first_to must be at least 1')
        if self.win_by is None or self.win_by < 1:
            raise InvalidRules('win_by must be at least 1')
        if self.cap is None or self.cap < self.first_to:
            raise InvalidRules('cap must be greater than or equal to first_to')
        if bool(self.best_of) == bool(self.num_sets):
            raise InvalidRules('exactly one of num_sets or best_of must be set')
        if (self.best_of or self.num_sets) < 1:
            raise InvalidRules('set count must be at least 1')
        return self

    def to_dict(self):
        data = {'first_to': self.first_to, 'win_by': self.win_by, 'cap': self.cap}
        if self.best_of:
            data['best_of'] = self.best_of
        else:
            data['num_sets'] = self.num_sets
        return data

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return cls()
        if isinstance(data, MatchRules):
            return data
        return cls(
            first_to=data.get('first_to', 21),
            win_by=data.get('win_by', 2),
            cap=data.get('cap', 30),
            num_sets=data.get('num_sets', 1),
            best_of=data.get('best_of'),
        )

    def __repr__(self):
        return f"MatchRules({self.to_dict()})"


class Match:
    def __init__(self, id, slot1=None, slot2=None, rules=None, match_type=PLAYOFF_MATCH,
                 pool_id=None, round_id=None, round_key=None, round_number=None,
                 match_number=None, next_match_id=None, next_slot=None,
                 seed1=None, seed2=None):
        self.id = id
        self.slot1 = slot1
        self.slot2 = slot2
        self.score1 = None
        self.score2 = None
        self.set_scores = []
        self.winner = None  # 1, 2 or None
        self.is_draw = False
        self.status = UPCOMING
        self.rules = MatchRules.from_dict(rules)
        self.match_type = match_type
        self.pool_id = pool_id
        self.round_id = round_id
        self.round_key = round_key
        self.round_number = round_number
        self.match_number = match_number
        self.next_match_id = next_match_id
        self.next_slot = next_slot
        self.seed1 = seed1
        self.seed2 = seed2

    def slot(self, index):
        return self.slot1 if index == 1 else self.slot2

    def set_slot(self, index, participant):
        if index == 1:
            self.slot1 = participant
        else:
            self.slot2 = participant

    @property
    def is_ready(self):
        return self.slot1 is not None and self.slot2 is not None

    @property
    def is_completed(self):
        return self.status == COMPLETED

    @property
    def winner_participant(self):
        if self.winner is None:
            return None
        return self.slot(self.winner)

    @property
    def loser_participant(self):
        if self.winner is None:
            return None
        return self.slot(3 - self.winner)

    def reset_result(self):
        self.score1 = None
        self.score2 = None
        self.set_scores = []
        self.winner = None
        self.is_draw = False
        self.status = UPCOMING

    def copy(self):
        return copy.deepcopy(self)

    def to_dict(self):
        return {
            'id': self.id,
            'slot1': self.slot1.to_dict() if self.slot1 is not None else None,
            'slot2': self.slot2.to_dict() if self.slot2 is not None else None,
            'score1': self.score1,
            'score2': self.score2,
            'set_scores': [list(s) for s in self.set_scores],
            'winner': self.winner,
            'is_draw': self.is_draw,
            'status': self.status,
            'rules': self.rules.to_dict(),
            'match_type': self.match_type,
            'pool_id': self.pool_id,
            'round_id': self.round_id,
            'round_key': self.round_key,
            'round_number': self.round_number,
            'match_number': self.match_number,
            'next_match_id': self.next_match_id,
            'next_slot': self.next_slot,
            'seed1': self.seed1,
            'seed2': self.seed2,
        }

    @classmethod
    def from_dict(cls, data):
        match = cls(
            data['id'],
            slot1=participant_from_dict(data.get('slot1')),
            slot2=participant_from_dict(data.get('slot2')),
            rules=data.get('rules'),
            match_type=data.get('match_type', PLAYOFF_MATCH),
            pool_id=data.get('pool_id'),
            round_id=data.get('round_id'),
            round_key=data.get('round_key'),
            round_number=data.get('round_number'),
            match_number=data.get('match_number'),
            next_match_id=data.get('next_match_id'),
            next_slot=data.get('next_slot'),
            seed1=data.get('seed1'),
            seed2=data.get('seed2'),
        )
        match.score1 = data.get('score1')
        match.score2 = data.get('score2')
        match.set_scores = [tuple(s) for s in data.get('set_scores') or []]
        match.winner = data.get('winner')
        match.is_draw = data.get('is_draw', False)
        match.status = data.get('status', UPCOMING)
        return match

    def __repr__(self):
        return (f"Match(id={self.id}, {participant_label(self.slot1)} vs "
                f"{participant_label(self.slot2)}, status={self.status}, winner={self.winner})")


class Entrant:
    def __init__(self, id, name, seed, wins=0, losses=0, points_for=0, points_against=0,
                 eliminated=False, final_rank=None):
        self.id = id
        self.name = name
        self.seed = seed
        self.wins = wins
        self.losses = losses
        self.points_for = points_for
        self.points_against = points_against
        self.eliminated = eliminated
        self.final_rank = final_rank

    @property
    def differential(self):
        return self.points_for - self.points_against

    def assign_final_rank(self, rank):
        if self.final_rank is not None:
            raise FinalRankAlreadySet(f"Final rank for {self.id} is already {self.final_rank}")
        self.final_rank = rank

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'seed': self.seed,
            'wins': self.wins,
            'losses': self.losses,
            'points_for': self.points_for,
            'points_against': self.points_against,
            'differential': self.differential,
            'eliminated': self.eliminated,
            'final_rank': self.final_rank,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            data['id'],
            data.get('name', data['id']),
            data.get('seed'),
            wins=data.get('wins', 0),
            losses=data.get('losses', 0),
            points_for=data.get('points_for', 0),
            points_against=data.get('points_against', 0),
            eliminated=data.get('eliminated', False),
            final_rank=data.get('final_rank'),
        )

    def __repr__(self):
        return f"Entrant(id={self.id}, name={self.name}, seed={self.seed})"


class Pool:
    def __init__(self, id, name, member_ids, round_id=None, advance=2):
        self.id = id
        self.name = name
        self.round_id = round_id
        self.member_ids = list(member_ids)
        self.match_ids = []
        self.standings = {}
        self.status = UPCOMING
        self.advance = advance

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'round_id': self.round_id,
            'member_ids': list(self.member_ids),
            'match_ids': list(self.match_ids),
            'standings': {k: v.to_dict() for k, v in self.standings.items()},
            'status': self.status,
            'advance': self.advance,
        }

    @classmethod
    def from_dict(cls, data):
        # Imported here: standings builds on the model module.
        from .standings import StandingLine
        pool = cls(data['id'], data.get('name', data['id']), data.get('member_ids', []),
                   round_id=data.get('round_id'), advance=data.get('advance', 2))
        pool.match_ids = list(data.get('match_ids', []))
        pool.standings = {k: StandingLine.from_dict(v) for k, v in (data.get('standings') or {}).items()}
        pool.status = data.get('status', UPCOMING)
        return pool

    def __repr__(self):
        return f"Pool(id={self.id}, members={self.member_ids}, status={self.status})"


class Round:
    def __init__(self, id, number, pool_ids=None, status=IN_PROGRESS, created_at=None, completed_at=None):
        self.id = id
        self.number = number
        self.pool_ids = list(pool_ids or [])
        self.status = status
        self.created_at = created_at
        self.completed_at = completed_at

    def to_dict(self):
        return {
            'id': self.id,
            'number': self.number,
            'pool_ids': list(self.pool_ids),
            'status': self.status,
            'created_at': self.created_at,
            'completed_at': self.completed_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(data['id'], data['number'], data.get('pool_ids'), data.get('status', IN_PROGRESS),
                   data.get('created_at'), data.get('completed_at'))

    def __repr__(self):
        return f"Round(number={self.number}, pools={self.pool_ids}, status={self.status})"


class AdvanceRules:
    """Playoff format choice, stored so a bracket can be rebuilt from seeds alone."""

    def __init__(self, num_advancing, format_chosen, suggested_format, byes=0, play_ins=0, lower=0, higher=0):
        self.num_advancing = num_advancing
        self.format_chosen = format_chosen
        self.suggested_format = suggested_format
        self.byes = byes
        self.play_ins = play_ins
        self.lower = lower
        self.higher = higher

    def to_dict(self):
        return {
            'num_advancing': self.num_advancing,
            'format_chosen': self.format_chosen,
            'suggested_format': self.suggested_format,
            'byes': self.byes,
            'play_ins': self.play_ins,
            'lower': self.lower,
            'higher': self.higher,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            data['num_advancing'],
            data.get('format_chosen'),
            data.get('suggested_format'),
            byes=data.get('byes', 0),
            play_ins=data.get('play_ins', 0),
            lower=data.get('lower', 0),
            higher=data.get('higher', 0),
        )

    def __repr__(self):
        return f"AdvanceRules({self.to_dict()})"
