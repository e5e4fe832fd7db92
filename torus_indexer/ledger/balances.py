# torus_indexer/ledger/balances.py
# --------------------------------------------------------------------------- #
# Incremental liquid / staked balance deltas. These run per event and may
# leave balance_total out of step with free + staked; the reconciliation
# pass restores it every block.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from typing import Optional

from torus_indexer.context import IndexerContext
from torus_indexer.models import Account


def init_account(ctx: IndexerContext, address: str, height: int) -> Account:
    """Fresh, unsaved account with every balance at zero."""
    return ctx.store.create(  # type: ignore[return-value]
        Account.KIND,
        id=address,
        address=address,
        created_at=height,
        updated_at=height,
        balance_free=0,
        balance_staked=0,
        balance_total=0,
    )


async def _load(ctx: IndexerContext, address: str) -> Optional[Account]:
    return await ctx.store.get(Account.KIND, address)  # type: ignore[return-value]


async def credit_free(ctx: IndexerContext, address: str, amount: int, height: int) -> None:
    """
    Add *amount* to the liquid balance of *address*, creating the account.

    The credit is skipped when the account was created at this same height
    and already holds a non-zero free balance. The condition is kept exactly
    as the historical indexer applied it; do not widen or narrow it.
    """
    account = await _load(ctx, address)
    if account is None:
        account = init_account(ctx, address, height)

    if not (account.created_at == height and account.balance_free != 0):
        account.updated_at = height
        account.balance_free += amount
        account.balance_total += amount
    else:
        ctx.logger.debug(f"[ledger] skip duplicate credit {amount} to {address} @ {height}")

    await ctx.store.save(account)


async def debit_free(ctx: IndexerContext, address: str, amount: int, height: int) -> None:
    """Saturating debit: removes min(balance_free, amount); unknown accounts are ignored."""
    account = await _load(ctx, address)
    if account is None:
        return

    dec = min(account.balance_free, amount)
    account.updated_at = height
    account.balance_free -= dec
    account.balance_total -= dec

    await ctx.store.save(account)


async def credit_staked(ctx: IndexerContext, address: str, amount: int, height: int) -> None:
    """Move *amount* from free to staked. Unlike `debit_free` this does not clamp."""
    account = await _load(ctx, address)
    if account is None:
        return

    account.updated_at = height
    account.balance_staked += amount
    account.balance_free -= amount

    await ctx.store.save(account)


async def debit_staked(ctx: IndexerContext, address: str, amount: int, height: int) -> None:
    account = await _load(ctx, address)
    if account is None:
        return

    dec = min(account.balance_staked, amount)
    account.updated_at = height
    account.balance_free += dec
    account.balance_staked -= dec

    await ctx.store.save(account)
