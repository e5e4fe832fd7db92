# torus_indexer/ledger/delegations.py
from __future__ import annotations

from typing import Optional

from torus_indexer.config import REGISTRATION_METHODS
from torus_indexer.context import IndexerContext
from torus_indexer.ledger.balances import credit_staked, debit_staked
from torus_indexer.models import (
    DelegateAction,
    DelegateBalance,
    DelegationEvent,
    delegate_balance_id,
    delegation_event_id,
)


def is_registration_method(method: Optional[str]) -> bool:
    return method in REGISTRATION_METHODS


async def apply_delegation(
    ctx: IndexerContext,
    action: DelegateAction,
    *,
    account: str,
    agent: str,
    amount: int,
    height: int,
    extrinsic_id: int,
    extrinsic_method: Optional[str],
) -> Optional[DelegateBalance]:
    """
    Log one delegate/undelegate event and fold it into the (account, agent)
    aggregate.

    Returns the persisted aggregate, or None when the event was ignored or
    the aggregate dropped to zero and was removed.
    """
    # Stake attached to agent registration is not a delegation.
    if is_registration_method(extrinsic_method):
        ctx.logger.debug(f"[delegation] ignore {action.value} from {extrinsic_method} @ {height}")
        return None
    if amount == 0:
        return None

    event = ctx.store.create(
        DelegationEvent.KIND,
        id=delegation_event_id(height, account, agent),
        height=height,
        extrinsic_id=extrinsic_id,
        account=account,
        agent=agent,
        amount=amount,
        action=action,
    )
    await ctx.store.save(event)

    if ctx.mirror_stake:
        if action is DelegateAction.DELEGATE:
            await credit_staked(ctx, account, amount, height)
        else:
            await debit_staked(ctx, account, amount, height)

    key = delegate_balance_id(account, agent)
    record: Optional[DelegateBalance] = await ctx.store.get(DelegateBalance.KIND, key)  # type: ignore[assignment]
    if record is None:
        record = ctx.store.create(  # type: ignore[assignment]
            DelegateBalance.KIND,
            id=key,
            account=account,
            agent=agent,
            amount=0,
            last_update=height,
        )

    if action is DelegateAction.DELEGATE:
        record.amount += amount
    else:
        record.amount = max(0, record.amount - amount)

    if record.amount == 0:
        await ctx.store.remove(DelegateBalance.KIND, key)
        ctx.logger.debug(f"[delegation] {key} fully undelegated @ {height}")
        return None

    record.last_update = height
    await ctx.store.save(record)
    return record


async def on_stake_delegated(
    ctx: IndexerContext,
    account: str,
    agent: str,
    amount: int,
    height: int,
    extrinsic_id: int,
    extrinsic_method: Optional[str],
) -> Optional[DelegateBalance]:
    return await apply_delegation(
        ctx,
        DelegateAction.DELEGATE,
        account=account,
        agent=agent,
        amount=amount,
        height=height,
        extrinsic_id=extrinsic_id,
        extrinsic_method=extrinsic_method,
    )


async def on_stake_undelegated(
    ctx: IndexerContext,
    account: str,
    agent: str,
    amount: int,
    height: int,
    extrinsic_id: int,
    extrinsic_method: Optional[str],
) -> Optional[DelegateBalance]:
    return await apply_delegation(
        ctx,
        DelegateAction.UNDELEGATE,
        account=account,
        agent=agent,
        amount=amount,
        height=height,
        extrinsic_id=extrinsic_id,
        extrinsic_method=extrinsic_method,
    )
