from .network import Location, Terminal, RENT_MODELS, TERMINAL_STATUSES
from .transactions import Transaction, TRANSACTION_TYPES, TRANSACTION_STATUSES, DATA_SOURCES
from .imports import ImportBatch

__all__ = [
    'Location', 'Terminal', 'RENT_MODELS', 'TERMINAL_STATUSES',
    'Transaction', 'TRANSACTION_TYPES', 'TRANSACTION_STATUSES', 'DATA_SOURCES',
    'ImportBatch',
]
