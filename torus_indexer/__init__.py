# Torus ledger materializer: balances, delegations and agents from chain events

from .mp_compat import ensure_multiprocessing_compat

ensure_multiprocessing_compat()

__version__ = "1.0.0"

from .context import IndexerContext
from .errors import ChainUnavailableError, DecodeError, IndexerError, StoreError
from .models import (
    Account,
    Agent,
    DelegateAction,
    DelegateBalance,
    DelegationEvent,
    Transfer,
)
from .store import JsonFileStore, MemoryStore

__all__ = [
    "__version__",
    "IndexerContext",
    "IndexerError",
    "DecodeError",
    "ChainUnavailableError",
    "StoreError",
    "Account",
    "Agent",
    "DelegateAction",
    "DelegateBalance",
    "DelegationEvent",
    "Transfer",
    "MemoryStore",
    "JsonFileStore",
]
