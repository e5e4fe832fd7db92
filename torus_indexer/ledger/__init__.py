from .balances import credit_free, credit_staked, debit_free, debit_staked, init_account
from .delegations import apply_delegation, on_stake_delegated, on_stake_undelegated
from .genesis import load_bridged_entries, seed_genesis
from .reconcile import reconcile_accounts, reconcile_delegations

__all__ = [
    "credit_free",
    "debit_free",
    "credit_staked",
    "debit_staked",
    "init_account",
    "apply_delegation",
    "on_stake_delegated",
    "on_stake_undelegated",
    "load_bridged_entries",
    "seed_genesis",
    "reconcile_accounts",
    "reconcile_delegations",
]
