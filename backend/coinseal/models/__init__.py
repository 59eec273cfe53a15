from .accounts import Company, Account
from .ledger import CoinTransaction
from .trips import TripSession, Seal, Comment
from .activity import ActivityLogEntry
from .auth import AuthToken
from .immutability import ImmutableRecordError, register_immutability_guards

register_immutability_guards()

__all__ = [
    'Company', 'Account',
    'CoinTransaction',
    'TripSession', 'Seal', 'Comment',
    'ActivityLogEntry',
    'AuthToken',
    'ImmutableRecordError',
]
