"""
torus_indexer/config.py - global constants
(ledger materializer: incremental deltas + per-block reconciliation)
"""

from __future__ import annotations
import os
from dotenv import load_dotenv

load_dotenv()

# ╭─────────────────────────── ENVIRONMENT ────────────────────────────╮
TORUS_RPC_URL: str = os.getenv("TORUS_RPC_URL", "wss://api.torus.network")
SS58_FORMAT: int = int(os.getenv("SS58_FORMAT", "42"))
STORE_DIR: str = os.getenv("STORE_DIR", "./indexer_state")
START_BLOCK: int = int(os.getenv("START_BLOCK", "0"))
# ╰────────────────────────────────────────────────────────────────────╯


# ╭───────────────────────────── LEDGER ───────────────────────────────╮
RECONCILE_ACCOUNTS: bool = os.getenv("RECONCILE_ACCOUNTS", "true").lower() == "true"
RECONCILE_DELEGATIONS: bool = os.getenv("RECONCILE_DELEGATIONS", "true").lower() == "true"
# Also move free <-> staked on the account when StakeAdded/StakeRemoved fire.
MIRROR_STAKE_TO_ACCOUNTS: bool = os.getenv("MIRROR_STAKE_TO_ACCOUNTS", "false").lower() == "true"
# Extrinsic methods whose stake events are not real delegations.
REGISTRATION_METHODS: frozenset[str] = frozenset({"registerAgent", "register_agent"})
# ╰────────────────────────────────────────────────────────────────────╯


# ╭────────────────────────── CHAIN QUERIES ───────────────────────────╮
QUERY_PAGE_SIZE: int = int(os.getenv("QUERY_PAGE_SIZE", "1000"))
# Query snapshots at the block being indexed (needs an archive node when
# backfilling) instead of at the chain head.
PIN_RECONCILE_TO_BLOCK: bool = os.getenv("PIN_RECONCILE_TO_BLOCK", "true").lower() == "true"
ACCOUNT_PALLET: str = "System"
ACCOUNT_STORAGE: str = "Account"
STAKING_PALLET: str = "Torus0"
STAKING_STORAGE: str = "StakingTo"
# ╰────────────────────────────────────────────────────────────────────╯


# ╭─────────────────────────── RECORD IDS ─────────────────────────────╮
ID_PAD_WIDTH: int = int(os.getenv("ID_PAD_WIDTH", "5"))
CHECKPOINT_ID: str = "indexer"
# ╰────────────────────────────────────────────────────────────────────╯


# ╭───────────────────────────── GENESIS ──────────────────────────────╮
BRIDGE_SENDER: str = "CommuneBridge"
BRIDGE_TIMESTAMP_MS: int = 1735945860000
GENESIS_FILE: str = os.getenv("GENESIS_FILE", "bridged.json")
# ╰────────────────────────────────────────────────────────────────────╯


# ╭──────────────────────────── LOGGING (pretty) ──────────────────────╮
PRETTY_LOGS: bool = os.getenv("PRETTY_LOGS", "true").lower() == "true"
LOG_TOP_N: int = int(os.getenv("LOG_TOP_N", "12"))
MASK_SS58: bool = os.getenv("MASK_SS58", "true").lower() == "true"
LOG_EVERY: int = int(os.getenv("LOG_EVERY", "50"))
# ╰────────────────────────────────────────────────────────────────────╯
