# torus_indexer/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

import bittensor as bt

from torus_indexer.chain import ChainState
from torus_indexer.config import MIRROR_STAKE_TO_ACCOUNTS
from torus_indexer.errors import ChainUnavailableError
from torus_indexer.store import EntityStore


@dataclass
class IndexerContext:
    """
    Everything a handler needs, built once per process and passed explicitly.

    Attributes:
        store: Entity store all ledgers read from and write to.
        chain: Authoritative chain-state query (`ChainState`); None when the
            indexer runs without a node, in which case reconciliation fails.
        logger: Line logger, `bt.logging` unless a test swaps it.
        mirror_stake: Also move free <-> staked on the account for stake events.
    """

    store: EntityStore
    chain: Optional[ChainState] = None
    logger: Any = field(default_factory=lambda: bt.logging)
    mirror_stake: bool = MIRROR_STAKE_TO_ACCOUNTS

    def require_chain(self) -> ChainState:
        if self.chain is None:
            raise ChainUnavailableError("chain-state query is not initialised")
        return self.chain
