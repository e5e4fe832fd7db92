# torus_indexer/handlers.py
# --------------------------------------------------------------------------- #
# State-transition entry points. `on_*` functions take typed values; the
# `handle_*` adapters decode one chain event, call them and report whether
# the event was applied. EVENT_HANDLERS maps (pallet, event) to the adapter
# the indexer dispatches to.
# --------------------------------------------------------------------------- #

from __future__ import annotations

from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional, Tuple

from torus_indexer.context import IndexerContext
from torus_indexer.decoder import (
    BlockData,
    EventData,
    decode_agent_key,
    decode_agent_registered,
    decode_stake,
    decode_transfer,
    to_json,
)
from torus_indexer.ledger.balances import credit_free, debit_free
from torus_indexer.ledger.delegations import (
    is_registration_method,
    on_stake_delegated,
    on_stake_undelegated,
)
from torus_indexer.models import (
    Agent,
    Block,
    Event,
    Extrinsic,
    Transfer,
    padded_id,
    transfer_id,
)


# ╭─────────────────────────── ARCHIVAL RECORDS ───────────────────────────╮

async def index_block(ctx: IndexerContext, block: BlockData) -> None:
    """Write the Block, Event and Extrinsic records for *block*."""
    height = block.height
    ctx.logger.info(f"Fetching extrinsics and events at block #{height}")

    await ctx.store.save(
        ctx.store.create(
            Block.KIND,
            id=str(height),
            height=height,
            event_count=len(block.events),
            extrinsic_count=len(block.extrinsics),
            timestamp=block.timestamp,
            hash=block.hash,
            parent_hash=block.parent_hash,
            spec_version=block.spec_version,
        )
    )

    events = [
        ctx.store.create(
            Event.KIND,
            id=padded_id(height, ev.index),
            block_number=height,
            extrinsic_id=ev.extrinsic_idx if ev.extrinsic_idx is not None else -1,
            event_name=ev.method,
            module=ev.section,
            data=to_json(ev.attributes),
        )
        for ev in block.events
    ]
    await ctx.store.bulk_create(Event.KIND, events)

    extrinsics = [
        ctx.store.create(
            Extrinsic.KIND,
            id=padded_id(height, ex.index),
            module=ex.section,
            method=ex.method,
            block_number=height,
            extrinsic_id=ex.index,
            tip=ex.tip,
            version=ex.version,
            signer=ex.signer,
            success=ex.success,
            hash=ex.hash,
            args=to_json(dict(ex.args)),
        )
        for ex in block.extrinsics
    ]
    await ctx.store.bulk_create(Extrinsic.KIND, extrinsics)

    ctx.logger.info(f"Finished fetching extrinsics and events at block #{height}")

# ╰────────────────────────────────────────────────────────────────────────╯


# ╭──────────────────────────── TYPED HANDLERS ────────────────────────────╮

async def on_transfer(
    ctx: IndexerContext,
    from_address: str,
    to_address: str,
    amount: int,
    height: int,
    event_index: int,
    extrinsic_id: int,
    timestamp: datetime,
) -> Transfer:
    entity = ctx.store.create(
        Transfer.KIND,
        id=transfer_id(height, event_index),
        from_address=from_address,
        to_address=to_address,
        amount=amount,
        block_number=height,
        extrinsic_id=extrinsic_id,
        timestamp=timestamp,
    )

    await credit_free(ctx, to_address, amount, height)
    await debit_free(ctx, from_address, amount, height)

    await ctx.store.save(entity)
    return entity  # type: ignore[return-value]


async def on_agent_registered(
    ctx: IndexerContext,
    key: str,
    name: str,
    metadata: str,
    height: int,
    extrinsic_id: int,
    timestamp: datetime,
) -> Agent:
    entity = ctx.store.create(
        Agent.KIND,
        id=key,
        name=name,
        metadata=metadata,
        registered_at=height,
        timestamp=timestamp,
        extrinsic_id=extrinsic_id,
    )
    await ctx.store.save(entity)
    return entity  # type: ignore[return-value]


async def on_agent_unregistered(ctx: IndexerContext, key: str) -> bool:
    """Remove agent *key*; returns False (and logs) when it was never registered."""
    if await ctx.store.get(Agent.KIND, key) is None:
        ctx.logger.error(f"Agent {key} does not exist.")
        return False
    await ctx.store.remove(Agent.KIND, key)
    return True

# ╰────────────────────────────────────────────────────────────────────────╯


# ╭──────────────────────────── EVENT ADAPTERS ────────────────────────────╮

async def handle_transfer(ctx: IndexerContext, block: BlockData, event: EventData) -> bool:
    args = decode_transfer(event)
    await on_transfer(
        ctx,
        args.from_address,
        args.to_address,
        args.amount,
        block.height,
        event.index,
        event.extrinsic_idx if event.extrinsic_idx is not None else -1,
        block.timestamp,
    )
    return True


async def _handle_stake(ctx: IndexerContext, block: BlockData, event: EventData, handler) -> bool:
    extrinsic = block.extrinsic_of(event)
    if extrinsic is None:
        return False
    args = decode_stake(event)
    if args.amount == 0 or is_registration_method(extrinsic.method):
        return False
    await handler(
        ctx,
        args.account,
        args.agent,
        args.amount,
        block.height,
        extrinsic.index,
        extrinsic.method,
    )
    return True


async def handle_stake_added(ctx: IndexerContext, block: BlockData, event: EventData) -> bool:
    return await _handle_stake(ctx, block, event, on_stake_delegated)


async def handle_stake_removed(ctx: IndexerContext, block: BlockData, event: EventData) -> bool:
    return await _handle_stake(ctx, block, event, on_stake_undelegated)


async def handle_agent_registered(ctx: IndexerContext, block: BlockData, event: EventData) -> bool:
    extrinsic = block.extrinsic_of(event)
    if extrinsic is None:
        return False
    args = decode_agent_registered(event, extrinsic)
    await on_agent_registered(
        ctx,
        args.key,
        args.name,
        args.metadata,
        block.height,
        extrinsic.index,
        block.timestamp,
    )
    return True


async def handle_agent_unregistered(ctx: IndexerContext, block: BlockData, event: EventData) -> bool:
    if block.extrinsic_of(event) is None:
        return False
    return await on_agent_unregistered(ctx, decode_agent_key(event))


EventHandler = Callable[[IndexerContext, BlockData, EventData], Awaitable[bool]]

EVENT_HANDLERS: Dict[Tuple[str, str], EventHandler] = {
    ("balances", "Transfer"): handle_transfer,
    ("torus0", "StakeAdded"): handle_stake_added,
    ("torus0", "StakeRemoved"): handle_stake_removed,
    ("torus0", "AgentRegistered"): handle_agent_registered,
    ("torus0", "AgentUnregistered"): handle_agent_unregistered,
}


def handler_for(event: EventData) -> Optional[EventHandler]:
    return EVENT_HANDLERS.get((event.section, event.method))

# ╰────────────────────────────────────────────────────────────────────────╯
