# torus_indexer/ledger/reconcile.py
# --------------------------------------------------------------------------- #
# Per-block full-state resync. The chain snapshot is the source of truth:
# whatever the incremental ledgers did this block, these passes overwrite it.
#
# Both passes read the complete snapshot before writing anything, so a chain
# failure leaves the store exactly as it was.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from torus_indexer.context import IndexerContext
from torus_indexer.models import Account, DelegateBalance, delegate_balance_id


@dataclass(slots=True)
class AccountsReconciled:
    block: int
    accounts_seen: int = 0
    created: int = 0
    updated: int = 0
    total_free: int = 0
    total_staked: int = 0


@dataclass(slots=True)
class DelegationsReconciled:
    block: int
    pairs_seen: int = 0
    upserted: int = 0
    pruned: int = 0
    total_delegated: int = 0


async def staked_balance_of(ctx: IndexerContext, address: str) -> int:
    """Sum of every delegation aggregate held by *address*."""
    rows = await ctx.store.get_by_field(DelegateBalance.KIND, "account", address)
    return sum(row.amount for row in rows)  # type: ignore[attr-defined]


async def staked_balances(ctx: IndexerContext) -> Dict[str, int]:
    """Per-account sum of every delegation aggregate, from one table read."""
    totals: Dict[str, int] = defaultdict(int)
    for row in await ctx.store.all(DelegateBalance.KIND):
        totals[row.account] += row.amount  # type: ignore[attr-defined]
    return totals


async def reconcile_accounts(ctx: IndexerContext, height: int) -> AccountsReconciled:
    """
    Overwrite free / staked / total for every account the chain knows.

    staked is recomputed from local delegation aggregates, so this must run
    after the block's delegation events (and `reconcile_delegations`).
    Accounts missing from the chain snapshot are left untouched.
    """
    chain = ctx.require_chain()
    free_by_address: Dict[str, int] = await chain.free_balances()
    staked_by_address = await staked_balances(ctx)

    summary = AccountsReconciled(block=height)
    pending: List[Account] = []

    for address, free in free_by_address.items():
        staked = staked_by_address.get(address, 0)
        total = free + staked
        summary.accounts_seen += 1
        summary.total_free += free
        summary.total_staked += staked

        existing: Optional[Account] = await ctx.store.get(Account.KIND, address)  # type: ignore[assignment]
        if existing is not None:
            existing.updated_at = height
            existing.balance_free = free
            existing.balance_staked = staked
            existing.balance_total = total
            pending.append(existing)
            summary.updated += 1
        else:
            pending.append(
                ctx.store.create(  # type: ignore[arg-type]
                    Account.KIND,
                    id=address,
                    address=address,
                    created_at=height,
                    updated_at=height,
                    balance_free=free,
                    balance_staked=staked,
                    balance_total=total,
                )
            )
            summary.created += 1

    await ctx.store.bulk_create(Account.KIND, pending)
    ctx.logger.info(
        f"[reconcile] #{height}: {summary.accounts_seen} accounts "
        f"(created={summary.created} updated={summary.updated})"
    )
    return summary


async def reconcile_delegations(ctx: IndexerContext, height: int) -> DelegationsReconciled:
    """
    Rebuild delegation aggregates from the chain's stake map.

    Non-zero pairs are upserted with `last_update = height`; zero pairs are
    skipped and local aggregates the chain no longer reports are removed.
    """
    chain = ctx.require_chain()
    pairs = await chain.delegations()

    summary = DelegationsReconciled(block=height)
    records: List[DelegateBalance] = []
    live: Set[str] = set()

    for account, agent, amount in pairs:
        summary.pairs_seen += 1
        if amount == 0:
            continue
        key = delegate_balance_id(account, agent)
        live.add(key)
        summary.total_delegated += amount
        records.append(
            ctx.store.create(  # type: ignore[arg-type]
                DelegateBalance.KIND,
                id=key,
                account=account,
                agent=agent,
                amount=amount,
                last_update=height,
            )
        )

    stale = [row.id for row in await ctx.store.all(DelegateBalance.KIND) if row.id not in live]  # type: ignore[attr-defined]

    await ctx.store.bulk_create(DelegateBalance.KIND, records)
    for key in stale:
        await ctx.store.remove(DelegateBalance.KIND, key)

    summary.upserted = len(records)
    summary.pruned = len(stale)
    ctx.logger.info(
        f"[reconcile] #{height}: {summary.upserted} delegations synced, {summary.pruned} pruned"
    )
    return summary
