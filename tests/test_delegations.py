# ------------------------------------------------------------------------
# tests/test_delegations.py
# ------------------------------------------------------------------------
# Delegation ledger: per-event log plus (account, agent) aggregate.
# ------------------------------------------------------------------------

import pytest

from torus_indexer.ledger.balances import credit_free
from torus_indexer.ledger.delegations import on_stake_delegated, on_stake_undelegated
from torus_indexer.models import Account, DelegateAction, DelegateBalance, DelegationEvent


async def _aggregate(ctx, account, agent):
    return await ctx.store.get(DelegateBalance.KIND, f"{account}-{agent}")


@pytest.mark.asyncio
async def test_delegate_then_over_undelegate_removes_aggregate(ctx):
    await credit_free(ctx, "A", 500, 1)

    agg = await on_stake_delegated(ctx, "A", "Agent1", 50, 10, 2, "add_stake")
    assert agg.amount == 50
    assert agg.last_update == 10
    assert (await _aggregate(ctx, "A", "Agent1")).amount == 50

    assert await on_stake_undelegated(ctx, "A", "Agent1", 80, 11, 3, "remove_stake") is None
    assert await _aggregate(ctx, "A", "Agent1") is None

    ev = await ctx.store.get(DelegationEvent.KIND, "11-A-Agent1")
    assert ev.action is DelegateAction.UNDELEGATE
    assert ev.amount == 80
    assert ev.extrinsic_id == 3

    # balances untouched unless mirroring is on
    acct = await ctx.store.get(Account.KIND, "A")
    assert acct.balance_staked == 0
    assert acct.balance_free == 500


@pytest.mark.asyncio
async def test_partial_undelegate_keeps_aggregate(ctx):
    await on_stake_delegated(ctx, "A", "Agent1", 100, 10, 0, "add_stake")
    agg = await on_stake_undelegated(ctx, "A", "Agent1", 30, 12, 0, "remove_stake")

    assert agg.amount == 70
    stored = await _aggregate(ctx, "A", "Agent1")
    assert stored.amount == 70
    assert stored.last_update == 12


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["registerAgent", "register_agent"])
async def test_registration_stake_is_ignored(ctx, method):
    assert await on_stake_delegated(ctx, "A", "Agent1", 100, 10, 0, method) is None

    assert await ctx.store.all(DelegationEvent.KIND) == []
    assert await ctx.store.all(DelegateBalance.KIND) == []


@pytest.mark.asyncio
async def test_zero_amount_is_ignored(ctx):
    await on_stake_delegated(ctx, "A", "Agent1", 0, 10, 0, "add_stake")
    await on_stake_undelegated(ctx, "A", "Agent1", 0, 11, 0, "remove_stake")

    assert await ctx.store.all(DelegationEvent.KIND) == []
    assert await ctx.store.all(DelegateBalance.KIND) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "deltas",
    [
        [50, 25, -10],
        [100, -100],
        [10, -5, 20, -30],
        [5, 5, 5, -1, -1],
    ],
)
async def test_replay_matches_signed_sum(ctx, deltas):
    for height, delta in enumerate(deltas, start=1):
        if delta > 0:
            await on_stake_delegated(ctx, "A", "Agent1", delta, height, 0, "add_stake")
        else:
            await on_stake_undelegated(ctx, "A", "Agent1", -delta, height, 0, "remove_stake")

    expected = max(0, sum(deltas))
    agg = await _aggregate(ctx, "A", "Agent1")
    if expected == 0:
        assert agg is None
    else:
        assert agg.amount == expected
    assert len(await ctx.store.all(DelegationEvent.KIND)) == len(deltas)


@pytest.mark.asyncio
async def test_pairs_are_independent(ctx):
    await on_stake_delegated(ctx, "A", "Agent1", 10, 1, 0, "add_stake")
    await on_stake_delegated(ctx, "A", "Agent2", 20, 1, 1, "add_stake")
    await on_stake_delegated(ctx, "B", "Agent1", 30, 1, 2, "add_stake")

    rows = await ctx.store.get_by_field(DelegateBalance.KIND, "account", "A")
    assert sorted(r.amount for r in rows) == [10, 20]
    assert (await _aggregate(ctx, "B", "Agent1")).amount == 30


@pytest.mark.asyncio
async def test_mirror_stake_moves_account_balances(ctx):
    ctx.mirror_stake = True
    await credit_free(ctx, "A", 100, 1)

    await on_stake_delegated(ctx, "A", "Agent1", 60, 2, 0, "add_stake")
    acct = await ctx.store.get(Account.KIND, "A")
    assert acct.balance_free == 40
    assert acct.balance_staked == 60

    await on_stake_undelegated(ctx, "A", "Agent1", 100, 3, 0, "remove_stake")
    acct = await ctx.store.get(Account.KIND, "A")
    assert acct.balance_free == 100
    assert acct.balance_staked == 0
