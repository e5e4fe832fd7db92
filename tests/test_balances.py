# ------------------------------------------------------------------------
# tests/test_balances.py
# ------------------------------------------------------------------------
# Incremental liquid / staked balance deltas.
#
#   ① credit creates the account at the credit height
#   ② same-height credit on a funded account is skipped
#   ③ same-height credit on an empty account, or a later credit, applies
#   ④ debits saturate at zero; unknown accounts are ignored
#   ⑤ credit_staked does not clamp; debit_staked does
#   ⑥ a transfer into an empty ledger only touches the receiver
# ------------------------------------------------------------------------

from datetime import datetime, timezone

import pytest

from torus_indexer.handlers import on_transfer
from torus_indexer.ledger.balances import (
    credit_free,
    credit_staked,
    debit_free,
    debit_staked,
)
from torus_indexer.models import Account, Transfer


async def _acct(ctx, address):
    return await ctx.store.get(Account.KIND, address)


@pytest.mark.asyncio
async def test_credit_creates_account(ctx):
    await credit_free(ctx, "alice", 100, 10)

    acct = await _acct(ctx, "alice")
    assert acct.created_at == 10
    assert acct.updated_at == 10
    assert acct.balance_free == 100
    assert acct.balance_total == 100
    assert acct.balance_staked == 0


@pytest.mark.asyncio
async def test_same_height_credit_on_funded_account_is_skipped(ctx, logger):
    await credit_free(ctx, "alice", 100, 10)
    await credit_free(ctx, "alice", 40, 10)

    acct = await _acct(ctx, "alice")
    assert acct.balance_free == 100
    assert acct.balance_total == 100
    assert any("skip duplicate credit" in m for m in logger.at("debug"))


@pytest.mark.asyncio
async def test_same_height_credit_on_empty_account_applies(ctx):
    await credit_free(ctx, "alice", 0, 10)
    await credit_free(ctx, "alice", 40, 10)

    acct = await _acct(ctx, "alice")
    assert acct.balance_free == 40
    assert acct.balance_total == 40


@pytest.mark.asyncio
async def test_later_credit_applies(ctx):
    await credit_free(ctx, "alice", 100, 10)
    await credit_free(ctx, "alice", 40, 11)

    acct = await _acct(ctx, "alice")
    assert acct.balance_free == 140
    assert acct.balance_total == 140
    assert acct.created_at == 10
    assert acct.updated_at == 11


@pytest.mark.asyncio
async def test_debit_free_saturates(ctx):
    await credit_free(ctx, "alice", 30, 1)
    await debit_free(ctx, "alice", 100, 2)

    acct = await _acct(ctx, "alice")
    assert acct.balance_free == 0
    assert acct.balance_total == 0
    assert acct.updated_at == 2


@pytest.mark.asyncio
async def test_debit_unknown_account_is_noop(ctx):
    await debit_free(ctx, "ghost", 10, 1)
    await debit_staked(ctx, "ghost", 10, 1)
    await credit_staked(ctx, "ghost", 10, 1)

    assert await _acct(ctx, "ghost") is None
    assert await ctx.store.all(Account.KIND) == []


@pytest.mark.asyncio
async def test_free_and_total_never_negative(ctx):
    ops = [("c", 50), ("d", 20), ("d", 100), ("c", 5), ("d", 6), ("c", 7), ("d", 1)]
    for height, (op, amount) in enumerate(ops, start=1):
        if op == "c":
            await credit_free(ctx, "alice", amount, height)
        else:
            await debit_free(ctx, "alice", amount, height)
        acct = await _acct(ctx, "alice")
        assert acct.balance_free >= 0
        assert acct.balance_total >= 0

    acct = await _acct(ctx, "alice")
    assert acct.balance_free == 6


@pytest.mark.asyncio
async def test_credit_staked_moves_without_clamp(ctx):
    await credit_free(ctx, "alice", 10, 1)
    await credit_staked(ctx, "alice", 50, 2)

    acct = await _acct(ctx, "alice")
    assert acct.balance_staked == 50
    assert acct.balance_free == -40
    # total is not touched by stake moves
    assert acct.balance_total == 10


@pytest.mark.asyncio
async def test_debit_staked_saturates(ctx):
    await credit_free(ctx, "alice", 100, 1)
    await credit_staked(ctx, "alice", 30, 2)
    await debit_staked(ctx, "alice", 80, 3)

    acct = await _acct(ctx, "alice")
    assert acct.balance_staked == 0
    assert acct.balance_free == 100


@pytest.mark.asyncio
async def test_transfer_into_empty_ledger(ctx):
    ts = datetime(2025, 1, 1, tzinfo=timezone.utc)
    await on_transfer(ctx, "X", "Y", 100, 5, 3, 1, ts)

    y = await _acct(ctx, "Y")
    assert y.balance_free == 100
    assert y.balance_total == 100
    assert await _acct(ctx, "X") is None

    tr = await ctx.store.get(Transfer.KIND, "5-3")
    assert tr.from_address == "X"
    assert tr.to_address == "Y"
    assert tr.amount == 100
    assert tr.block_number == 5
    assert tr.extrinsic_id == 1
    assert tr.timestamp == ts
