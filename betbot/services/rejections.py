# betbot/services/rejections.py
"""
Typed rejection outcomes returned by the betting engine.

Engine operations return (True, result) on success and (False, Rejection) when
a business rule refuses the request. Rejections are values, never raised.
"""

from collections import namedtuple

NOT_FOUND = 'NotFound'
CLOSED = 'Closed'
ALREADY_BET = 'AlreadyBet'
SELECTION_CONFLICT = 'SelectionConflict'
INSUFFICIENT_FUNDS = 'InsufficientFunds'
ALREADY_COMPLETED = 'AlreadyCompleted'
ALREADY_ABORTED = 'AlreadyAborted'
INVALID_SELECTION = 'InvalidSelection'
INVALID_STAKE = 'InvalidStake'
INVALID_SCORE = 'InvalidScore'
INVALID_HANDICAP = 'InvalidHandicap'
INVALID_INPUT = 'InvalidInput'
CHANNEL_IN_USE = 'ChannelInUse'
LEAGUE_FULL = 'LeagueFull'
LEAGUE_COMPLETED = 'LeagueCompleted'
NO_CHANGES = 'NoChanges'
FORBIDDEN = 'Forbidden'

HTTP_STATUS = {
    NOT_FOUND: 404,
    CLOSED: 409,
    ALREADY_BET: 409,
    SELECTION_CONFLICT: 409,
    ALREADY_COMPLETED: 409,
    ALREADY_ABORTED: 409,
    CHANNEL_IN_USE: 409,
    LEAGUE_FULL: 409,
    LEAGUE_COMPLETED: 409,
    INSUFFICIENT_FUNDS: 400,
    INVALID_SELECTION: 400,
    INVALID_STAKE: 400,
    INVALID_SCORE: 400,
    INVALID_HANDICAP: 400,
    INVALID_INPUT: 400,
    NO_CHANGES: 400,
    FORBIDDEN: 403,
}


class Rejection(namedtuple('Rejection', ['reason', 'message'])):
    __slots__ = ()

    @property
    def http_status(self):
        return HTTP_STATUS.get(self.reason, 400)

    def to_dict(self):
        return {'message': self.message, 'reason': self.reason}


def reject(reason, message):
    """Shorthand for the failure half of an engine result tuple."""
    return False, Rejection(reason, message)
