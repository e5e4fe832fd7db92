# torus_indexer/chain.py
# --------------------------------------------------------------------------- #
# All node I/O lives here: block fetching for the indexer loop and the
# authoritative state snapshots used by reconciliation. Higher layers only
# see decoded, typed values.
# --------------------------------------------------------------------------- #

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Protocol, Tuple, runtime_checkable

import bittensor as bt
import websockets
from async_substrate_interface.async_substrate import AsyncSubstrateInterface
from async_substrate_interface.errors import SubstrateRequestException

from torus_indexer.config import (
    ACCOUNT_PALLET,
    ACCOUNT_STORAGE,
    PIN_RECONCILE_TO_BLOCK,
    QUERY_PAGE_SIZE,
    SS58_FORMAT,
    STAKING_PALLET,
    STAKING_STORAGE,
)
from torus_indexer.decoder import BlockData, decode_address, decode_amount, decode_block, unwrap
from torus_indexer.errors import ChainUnavailableError, DecodeError
from torus_indexer.utils.async_substrate import aiter_pairs, maybe_async

_CONNECTION_ERRORS = (
    SubstrateRequestException,
    websockets.exceptions.WebSocketException,
    ConnectionError,
    asyncio.TimeoutError,
    OSError,
)


# ──────────────────────────────── PROTOCOLS ───────────────────────────── #

@runtime_checkable
class ChainState(Protocol):
    def pin(self, block_hash: Optional[str]) -> None: ...

    async def free_balances(self) -> Dict[str, int]: ...

    async def delegations(self) -> List[Tuple[str, str, int]]: ...

    async def current_free_balance(self, address: str) -> int: ...

    async def current_delegations(self, account: str) -> List[Tuple[str, int]]: ...


@runtime_checkable
class BlockSource(Protocol):
    async def head(self) -> int: ...

    async def fetch_block(self, height: int) -> BlockData: ...


# ─────────────────────────────── NODE CLIENT ──────────────────────────── #

def _account_key(key, ss58_format: int = SS58_FORMAT) -> str:
    key = unwrap(key)
    if isinstance(key, (list, tuple)) and len(key) == 1:
        key = key[0]
    return decode_address(key, ss58_format)


def _free_of(account_info) -> int:
    info = unwrap(account_info)
    try:
        return decode_amount(info["data"]["free"])
    except (KeyError, TypeError):
        raise DecodeError(f"System.Account value has no data.free: {info!r}") from None


class TorusChain:
    """
    Block source and chain-state query over one `AsyncSubstrateInterface`.

    RPCs are serialised under a lock so a single websocket never interleaves
    payloads; connection-level failures surface as ChainUnavailableError.
    """

    def __init__(
        self,
        substrate: AsyncSubstrateInterface,
        *,
        ss58_format: int = SS58_FORMAT,
        page_size: int = QUERY_PAGE_SIZE,
        pin_to_block: bool = PIN_RECONCILE_TO_BLOCK,
        rpc_lock: Optional[asyncio.Lock] = None,
    ) -> None:
        self.substrate = substrate
        self.ss58_format = ss58_format
        self.page_size = page_size
        self.pin_to_block = pin_to_block
        self._block_hash: Optional[str] = None
        self._rpc_lock: asyncio.Lock = rpc_lock or asyncio.Lock()

    def pin(self, block_hash: Optional[str]) -> None:
        """Run subsequent state queries at *block_hash* (None = chain head)."""
        self._block_hash = block_hash if self.pin_to_block else None

    async def _rpc(self, fn, *a, **kw):
        async with self._rpc_lock:
            try:
                return await maybe_async(fn, *a, **kw)
            except _CONNECTION_ERRORS as e:
                bt.logging.error(f"[chain] {getattr(fn, '__name__', fn)} failed: {e}")
                raise ChainUnavailableError(str(e)) from e

    # ---------- blocks ----------
    async def head(self) -> int:
        bh = await self._rpc(self.substrate.get_chain_head)
        return int(await self._rpc(self.substrate.get_block_number, bh))

    async def fetch_block(self, height: int) -> BlockData:
        bh = await self._rpc(self.substrate.get_block_hash, block_id=int(height))
        if not bh:
            raise ChainUnavailableError(f"node returned no hash for block {height}")
        bh_str = "0x" + bytes(bh).hex() if isinstance(bh, (bytes, bytearray)) else str(bh)

        events = await self._rpc(self.substrate.get_events, block_hash=bh_str)
        blk = await self._rpc(self.substrate.get_block, block_hash=bh_str)
        runtime = await self._rpc(self.substrate.rpc_request, "state_getRuntimeVersion", [bh_str])
        spec_version = int(((runtime or {}).get("result") or {}).get("specVersion") or 0)

        return decode_block(
            int(height),
            bh_str,
            blk,
            list(events or []),
            spec_version=spec_version,
            ss58_format=self.ss58_format,
        )

    # ---------- state snapshots ----------
    async def free_balances(self) -> Dict[str, int]:
        result = await self._rpc(
            self.substrate.query_map,
            ACCOUNT_PALLET,
            ACCOUNT_STORAGE,
            block_hash=self._block_hash,
            page_size=self.page_size,
        )
        balances: Dict[str, int] = {}
        try:
            async for key, value in aiter_pairs(result):
                balances[_account_key(key, self.ss58_format)] = _free_of(value)
        except _CONNECTION_ERRORS as e:
            raise ChainUnavailableError(f"System.Account paging failed: {e}") from e
        bt.logging.debug(f"[chain] System.Account snapshot: {len(balances)} accounts")
        return balances

    async def delegations(self) -> List[Tuple[str, str, int]]:
        result = await self._rpc(
            self.substrate.query_map,
            STAKING_PALLET,
            STAKING_STORAGE,
            block_hash=self._block_hash,
            page_size=self.page_size,
        )
        pairs: List[Tuple[str, str, int]] = []
        try:
            async for key, value in aiter_pairs(result):
                key = unwrap(key)
                if not isinstance(key, (list, tuple)) or len(key) != 2:
                    raise DecodeError(f"StakingTo key is not (account, agent): {key!r}")
                pairs.append(
                    (
                        decode_address(key[0], self.ss58_format),
                        decode_address(key[1], self.ss58_format),
                        decode_amount(value),
                    )
                )
        except _CONNECTION_ERRORS as e:
            raise ChainUnavailableError(f"StakingTo paging failed: {e}") from e
        bt.logging.debug(f"[chain] StakingTo snapshot: {len(pairs)} pairs")
        return pairs

    async def current_free_balance(self, address: str) -> int:
        info = await self._rpc(
            self.substrate.query,
            ACCOUNT_PALLET,
            ACCOUNT_STORAGE,
            [address],
            block_hash=self._block_hash,
        )
        return _free_of(info)

    async def current_delegations(self, account: str) -> List[Tuple[str, int]]:
        return [(agent, amount) for acc, agent, amount in await self.delegations() if acc == account]


@asynccontextmanager
async def open_chain(url: str, *, ss58_format: int = SS58_FORMAT) -> AsyncIterator[TorusChain]:
    """Async context manager that yields a connected TorusChain."""
    substrate = AsyncSubstrateInterface(url, ss58_format=ss58_format)
    try:
        await substrate.initialize()
    except _CONNECTION_ERRORS as e:
        raise ChainUnavailableError(f"could not connect to {url}: {e}") from e
    bt.logging.info(f"[chain] connected to {url}")
    try:
        yield TorusChain(substrate, ss58_format=ss58_format)
    finally:
        await substrate.close()
