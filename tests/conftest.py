# ──────────────────────────────────────────────────────────────────────────
# tests/conftest.py
# --------------------------------------------------------------------------
"""
Shared fixtures for the ledger materializer tests.

Everything runs against MemoryStore and FakeChain; no node is needed:

    pytest -v
"""
from typing import Dict, List, Optional, Tuple

import pytest
from substrateinterface.utils.ss58 import ss58_encode

from torus_indexer.context import IndexerContext
from torus_indexer.decoder import BlockData
from torus_indexer.errors import ChainUnavailableError
from torus_indexer.store import MemoryStore


def make_address(n: int) -> str:
    """Deterministic, valid SS58 (prefix 42) address for test account *n*."""
    return ss58_encode("0x" + f"{n:02x}" * 32, ss58_format=42)


class RecordingLogger:
    """Drop-in for bt.logging that keeps every line for assertions."""

    def __init__(self):
        self.lines: List[Tuple[str, str]] = []

    def _log(self, level: str, msg: str) -> None:
        self.lines.append((level, msg))

    def debug(self, msg):
        self._log("debug", msg)

    def info(self, msg):
        self._log("info", msg)

    def warning(self, msg):
        self._log("warning", msg)

    def error(self, msg):
        self._log("error", msg)

    def at(self, level: str) -> List[str]:
        return [m for lvl, m in self.lines if lvl == level]


class FakeChain:
    """
    In-memory chain: implements both the state-query and block-source
    protocols. Set `down = True` to make every query fail.
    """

    def __init__(
        self,
        free: Optional[Dict[str, int]] = None,
        stakes: Optional[Dict[Tuple[str, str], int]] = None,
        blocks: Optional[Dict[int, BlockData]] = None,
    ):
        self.free: Dict[str, int] = dict(free or {})
        self.stakes: Dict[Tuple[str, str], int] = dict(stakes or {})
        self.blocks: Dict[int, BlockData] = dict(blocks or {})
        self.pinned: List[Optional[str]] = []
        self.down = False

    def _check(self):
        if self.down:
            raise ChainUnavailableError("fake node is down")

    def pin(self, block_hash):
        self.pinned.append(block_hash)

    async def free_balances(self):
        self._check()
        return dict(self.free)

    async def delegations(self):
        self._check()
        return [(acc, agent, amount) for (acc, agent), amount in self.stakes.items()]

    async def current_free_balance(self, address):
        self._check()
        return self.free.get(address, 0)

    async def current_delegations(self, account):
        self._check()
        return [(agent, amount) for (acc, agent), amount in self.stakes.items() if acc == account]

    async def head(self):
        self._check()
        return max(self.blocks) if self.blocks else 0

    async def fetch_block(self, height):
        self._check()
        try:
            return self.blocks[height]
        except KeyError:
            raise ChainUnavailableError(f"fake node has no block {height}") from None


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def chain():
    return FakeChain()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ctx(store, chain, logger):
    return IndexerContext(store=store, chain=chain, logger=logger, mirror_stake=False)
