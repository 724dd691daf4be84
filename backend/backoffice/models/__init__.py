from .users import User, SessionToken, PasswordResetToken
from .parties import Client, Provider
from .inventory import Product
from .transactions import Transaction, TransactionItem, TRANSACTION_TYPES, TRANSACTION_STATUSES
from .ledger import LedgerEvent
from .security import SecurityEvent

__all__ = [
    'User', 'SessionToken', 'PasswordResetToken',
    'Client', 'Provider',
    'Product',
    'Transaction', 'TransactionItem', 'TRANSACTION_TYPES', 'TRANSACTION_STATUSES',
    'LedgerEvent',
    'SecurityEvent',
]
