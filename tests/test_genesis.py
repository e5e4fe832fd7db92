# ------------------------------------------------------------------------
# tests/test_genesis.py
# ------------------------------------------------------------------------

import json
from datetime import datetime, timezone

import pytest

from torus_indexer.errors import DecodeError
from torus_indexer.ledger.genesis import load_bridged_entries, seed_genesis
from torus_indexer.models import Account, Transfer


@pytest.mark.asyncio
async def test_seed_writes_transfers_only(ctx):
    await seed_genesis(ctx, [("addr1", 1000), ("addr2", 2000)])

    transfers = {t.id: t for t in await ctx.store.all(Transfer.KIND)}
    assert set(transfers) == {"bridge-0", "bridge-1"}

    first = transfers["bridge-0"]
    assert first.from_address == "CommuneBridge"
    assert first.to_address == "addr1"
    assert first.amount == 1000
    assert first.block_number == 0
    assert first.timestamp == datetime(2025, 1, 3, 23, 11, tzinfo=timezone.utc)
    assert transfers["bridge-1"].amount == 2000

    assert await ctx.store.all(Account.KIND) == []


@pytest.mark.asyncio
async def test_seed_is_idempotent(ctx):
    entries = [("addr1", 1), ("addr2", 2)]
    await seed_genesis(ctx, entries)
    await seed_genesis(ctx, entries)

    assert await ctx.store.count(Transfer.KIND) == 2


def test_load_accepts_int_and_string_amounts(tmp_path):
    path = tmp_path / "bridged.json"
    path.write_text(json.dumps([["addr1", 5], ["addr2", "123456789012345678901234567890"]]))

    assert load_bridged_entries(path) == [
        ("addr1", 5),
        ("addr2", 123456789012345678901234567890),
    ]


@pytest.mark.parametrize(
    "payload",
    [
        {"addr1": 5},
        [["addr1"]],
        [["", 5]],
        [["addr1", "lots"]],
        [["addr1", -1]],
    ],
)
def test_load_rejects_malformed_rows(tmp_path, payload):
    path = tmp_path / "bridged.json"
    path.write_text(json.dumps(payload))

    with pytest.raises(DecodeError):
        load_bridged_entries(path)


def test_load_missing_file(tmp_path):
    with pytest.raises(DecodeError):
        load_bridged_entries(tmp_path / "nope.json")
