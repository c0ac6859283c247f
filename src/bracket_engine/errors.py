"""
Error kinds raised by the bracket engine.

Each error carries the HTTP status the web layer answers with, so routes can
turn any engine failure into a JSON error without a lookup table.
"""


class TournamentError(Exception):
    status = 400

    def __init__(self, message, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    @property
    def kind(self):
        return type(self).__name__

    def to_dict(self):
        data = {'error': self.message, 'kind': self.kind}
        if self.context:
            data['context'] = self.context
        return data


class InvalidPoolCount(TournamentError):
    """Pool count outside [1, number of entrants]."""


class InvalidPoolSize(TournamentError):
    """Pool too large for the partner-rotation schedule."""


class InsufficientEntrants(TournamentError):
    """Not enough entrants for the requested format."""


class InvalidRules(TournamentError):
    pass


class UnknownFormat(TournamentError):
    pass


class UnresolvableMatch(TournamentError):
    """Tied score in an elimination match, or a match missing a participant."""


class InvalidAdvancement(TournamentError):
    pass


class FinalRankAlreadySet(TournamentError):
    status = 409


class RoundNotComplete(TournamentError):
    status = 409


class TournamentComplete(TournamentError):
    status = 409


class CascadeConflict(TournamentError):
    status = 409


class TransactionConflict(TournamentError):
    status = 409


class EntityNotFound(TournamentError):
    status = 404
