# torus_indexer/ledger/genesis.py
"""
Bridge transfers that predate the chain.

Balances bridged from the previous network were minted in the genesis state,
so they never appear as Transfer events. `seed_genesis` writes them into the
transfer log only; the accounts themselves are filled in by reconciliation.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple

from torus_indexer.config import BRIDGE_SENDER, BRIDGE_TIMESTAMP_MS
from torus_indexer.context import IndexerContext
from torus_indexer.errors import DecodeError
from torus_indexer.models import Transfer, bridge_transfer_id

BRIDGE_TIMESTAMP: datetime = datetime.fromtimestamp(BRIDGE_TIMESTAMP_MS / 1000, tz=timezone.utc)


def load_bridged_entries(path: Path | str) -> List[Tuple[str, int]]:
    """
    Read `[[address, amount], ...]` from a JSON file.

    Amounts may be ints or decimal strings (large values are often quoted).
    """
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise DecodeError(f"could not read bridged list {p}: {e}") from e
    if not isinstance(raw, list):
        raise DecodeError(f"bridged list {p} must be a JSON array")

    entries: List[Tuple[str, int]] = []
    for i, row in enumerate(raw):
        if not isinstance(row, (list, tuple)) or len(row) != 2:
            raise DecodeError(f"bridged row {i} is not an [address, amount] pair: {row!r}")
        address, amount = row
        if not isinstance(address, str) or not address:
            raise DecodeError(f"bridged row {i} has no address")
        try:
            value = int(amount)
        except (TypeError, ValueError):
            raise DecodeError(f"bridged row {i} has a non-integer amount {amount!r}") from None
        if value < 0:
            raise DecodeError(f"bridged row {i} has a negative amount")
        entries.append((address, value))
    return entries


async def seed_genesis(ctx: IndexerContext, entries: Iterable[Tuple[str, int]]) -> Sequence[Transfer]:
    transfers: List[Transfer] = []
    for idx, (address, amount) in enumerate(entries):
        transfers.append(
            ctx.store.create(  # type: ignore[arg-type]
                Transfer.KIND,
                id=bridge_transfer_id(idx),
                from_address=BRIDGE_SENDER,
                to_address=address,
                amount=int(amount),
                block_number=0,
                extrinsic_id=0,
                timestamp=BRIDGE_TIMESTAMP,
            )
        )

    await ctx.store.bulk_create(Transfer.KIND, transfers)
    ctx.logger.info(f"[genesis] seeded {len(transfers)} bridge transfers")
    return transfers
