#!/usr/bin/env python3
# torus_indexer/cli.py
"""
Run the ledger materializer against a Torus node.

Usage:
    run_indexer [--url URL] [--store-dir DIR] [--start-block N] [--end-block N]
                [--follow] [--seed-genesis] [--genesis-file FILE]
                [--no-reconcile] [--mirror-stake] [--debug]

Progress is kept in the store's checkpoint, so re-running with the same
--store-dir resumes after the last fully indexed block.
"""

import argparse
import asyncio
import sys
from pathlib import Path

import bittensor as bt

from torus_indexer.chain import open_chain
from torus_indexer.config import (
    GENESIS_FILE,
    MIRROR_STAKE_TO_ACCOUNTS,
    SS58_FORMAT,
    START_BLOCK,
    STORE_DIR,
    TORUS_RPC_URL,
)
from torus_indexer.context import IndexerContext
from torus_indexer.errors import IndexerError
from torus_indexer.indexer import BlockIndexer
from torus_indexer.ledger.genesis import load_bridged_entries, seed_genesis
from torus_indexer.store import JsonFileStore
from torus_indexer.utils.pretty_logs import pretty


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Index Torus balances, delegations and agents")
    parser.add_argument("--url", type=str, default=TORUS_RPC_URL, help="Node websocket URL")
    parser.add_argument("--store-dir", type=str, default=STORE_DIR, help="Directory for the JSON entity store")
    parser.add_argument("--start-block", type=int, default=START_BLOCK, help="First block to index")
    parser.add_argument("--end-block", type=int, default=None, help="Last block to index (default: head)")
    parser.add_argument("--follow", action="store_true", help="Keep indexing new blocks after catching up")
    parser.add_argument("--seed-genesis", action="store_true", help="Write bridge transfers before indexing")
    parser.add_argument("--genesis-file", type=str, default=GENESIS_FILE, help="JSON [[address, amount], ...] list")
    parser.add_argument("--no-reconcile", action="store_true", help="Skip per-block chain reconciliation")
    parser.add_argument(
        "--mirror-stake",
        action="store_true",
        default=MIRROR_STAKE_TO_ACCOUNTS,
        help="Move free <-> staked on accounts for stake events",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser


async def run(args: argparse.Namespace) -> dict:
    store = JsonFileStore(Path(args.store_dir))

    async with open_chain(args.url, ss58_format=SS58_FORMAT) as chain:
        ctx = IndexerContext(store=store, chain=chain, mirror_stake=args.mirror_stake)

        if args.seed_genesis:
            pretty.rule("[bold blue]GENESIS[/bold blue]")
            await seed_genesis(ctx, load_bridged_entries(args.genesis_file))

        indexer = BlockIndexer(
            ctx,
            chain,
            reconcile_accounts=not args.no_reconcile,
            reconcile_delegations=not args.no_reconcile,
        )
        stats = await indexer.run(args.start_block, args.end_block, follow=args.follow)
        await indexer.show_top_accounts()
        return stats


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    if args.debug:
        bt.logging.set_debug(True)
    else:
        bt.logging.set_info(True)

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        bt.logging.info("Indexing interrupted by user")
    except IndexerError as e:
        bt.logging.error(f"Indexing failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
