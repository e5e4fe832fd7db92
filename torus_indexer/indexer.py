# torus_indexer/indexer.py
"""
Block loop for the ledger materializer.

For every height the indexer:
1. fetches and decodes the block,
2. writes the archival Block / Event / Extrinsic records,
3. applies balance, delegation and agent events in event order,
4. resyncs delegations and accounts against the chain at that block,
5. records the height in the checkpoint.

Every step is awaited before the next one starts; the checkpoint is the last
write, so a crash mid-block replays that block on restart.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Dict, Optional

from tqdm import tqdm

from torus_indexer.chain import BlockSource
from torus_indexer.config import (
    CHECKPOINT_ID,
    LOG_EVERY,
    RECONCILE_ACCOUNTS,
    RECONCILE_DELEGATIONS,
)
from torus_indexer.context import IndexerContext
from torus_indexer.decoder import BlockData
from torus_indexer.errors import IndexerError
from torus_indexer.handlers import handler_for, index_block
from torus_indexer.ledger.reconcile import reconcile_accounts, reconcile_delegations
from torus_indexer.models import Account, Checkpoint
from torus_indexer.utils.pretty_logs import pretty


class BlockIndexer:
    """Drives one IndexerContext over a range of blocks from a BlockSource."""

    def __init__(
        self,
        ctx: IndexerContext,
        source: Optional[BlockSource] = None,
        *,
        reconcile_accounts: bool = RECONCILE_ACCOUNTS,
        reconcile_delegations: bool = RECONCILE_DELEGATIONS,
        poll_interval: float = 6.0,
    ):
        self.ctx = ctx
        self.source = source if source is not None else ctx.chain
        if self.source is None:
            raise IndexerError("BlockIndexer needs a block source")
        self.reconcile_accounts = reconcile_accounts
        self.reconcile_delegations = reconcile_delegations
        self.poll_interval = poll_interval

        self.stats: Dict[str, int] = {
            "blocks_processed": 0,
            "events_handled": 0,
            "transfers": 0,
            "delegations": 0,
            "agents": 0,
        }

    # ---------- checkpoint ----------
    async def last_indexed(self) -> Optional[int]:
        cp = await self.ctx.store.get(Checkpoint.KIND, CHECKPOINT_ID)
        return cp.height if cp is not None else None  # type: ignore[attr-defined]

    async def _save_checkpoint(self, height: int) -> None:
        await self.ctx.store.save(self.ctx.store.create(Checkpoint.KIND, id=CHECKPOINT_ID, height=height))

    async def resume_from(self, default_start: int) -> int:
        last = await self.last_indexed()
        if last is None:
            return default_start
        return max(default_start, last + 1)

    # ---------- one block ----------
    async def process_block(self, block: BlockData) -> Dict[str, int]:
        """
        Apply *block* to the store; returns a count per applied event name.

        All writes for the block go through one store batch, so a persistent
        store commits the block (checkpoint included) or nothing.
        """
        ctx = self.ctx
        handled: Counter = Counter()

        async with ctx.store.batch():
            await index_block(ctx, block)

            for event in block.events:
                handler = handler_for(event)
                if handler is None:
                    continue
                if await handler(ctx, block, event):
                    handled[event.method] += 1

            if self.reconcile_delegations or self.reconcile_accounts:
                chain = ctx.require_chain()
                chain.pin(block.hash)
                if self.reconcile_delegations:
                    summary = await reconcile_delegations(ctx, block.height)
                    pretty.show_delegations_reconciled(summary)
                if self.reconcile_accounts:
                    summary = await reconcile_accounts(ctx, block.height)
                    pretty.show_accounts_reconciled(summary)

            await self._save_checkpoint(block.height)

        self.stats["blocks_processed"] += 1
        self.stats["events_handled"] += sum(handled.values())
        self.stats["transfers"] += handled["Transfer"]
        self.stats["delegations"] += handled["StakeAdded"] + handled["StakeRemoved"]
        self.stats["agents"] += handled["AgentRegistered"] + handled["AgentUnregistered"]
        pretty.show_block(block.height, len(block.events), len(block.extrinsics), dict(handled))
        return dict(handled)

    async def index_height(self, height: int) -> Dict[str, int]:
        block = await self.source.fetch_block(height)
        return await self.process_block(block)

    # ---------- loop ----------
    async def run(self, start: int, end: Optional[int] = None, *, follow: bool = False) -> Dict[str, Any]:
        """
        Index heights `start..end` inclusive.

        With `end=None` the current head is used. With `follow=True` the loop
        keeps polling for new heads after catching up. Any error aborts the
        run; the checkpoint still points at the last fully indexed block.
        """
        start = await self.resume_from(start)
        target = end if end is not None else await self.source.head()

        pretty.rule("[bold cyan]INDEXING[/bold cyan]")
        pretty.log(f"Indexing blocks {start} → {target}{' (following head)' if follow else ''}")

        height = start
        while True:
            if height <= target:
                await self._index_range(height, target)
                height = target + 1
            if not follow or (end is not None and height > end):
                break
            await asyncio.sleep(self.poll_interval)
            target = await self.source.head()
            if end is not None:
                target = min(target, end)

        self._log_final_stats()
        return self.stats.copy()

    async def _index_range(self, start: int, end: int) -> None:
        with tqdm(total=end - start + 1, desc="Indexing blocks", unit="block") as pbar:
            for height in range(start, end + 1):
                try:
                    await self.index_height(height)
                except Exception as e:
                    self.ctx.logger.error(f"Error indexing block {height}: {e}")
                    raise
                pbar.update(1)
                pbar.set_postfix(
                    {
                        "transfers": self.stats["transfers"],
                        "delegations": self.stats["delegations"],
                    }
                )
                if self.stats["blocks_processed"] % LOG_EVERY == 0:
                    self._log_progress()

    def _log_progress(self) -> None:
        self.ctx.logger.info(
            f"Progress: {self.stats['blocks_processed']} blocks, "
            f"{self.stats['transfers']} transfers, "
            f"{self.stats['delegations']} delegation events"
        )

    def _log_final_stats(self) -> None:
        pretty.rule("[bold green]INDEXING COMPLETE[/bold green]")
        pretty.show_run_stats(self.stats)

    async def show_top_accounts(self) -> None:
        pretty.show_top_accounts(await self.ctx.store.all(Account.KIND))
