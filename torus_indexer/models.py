# torus_indexer/models.py
# --------------------------------------------------------------------------- #
# Persisted entities. Every record is a slotted dataclass with a string `id`
# and a JSON-friendly dict form so the stores can keep serialised copies.
# Amounts are plain Python ints (arbitrary precision, never floats).
# --------------------------------------------------------------------------- #

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Tuple, Type, TypeVar

from torus_indexer.config import ID_PAD_WIDTH

E = TypeVar("E", bound="Entity")


class DelegateAction(str, Enum):
    DELEGATE = "DELEGATE"
    UNDELEGATE = "UNDELEGATE"


class Entity:
    """Mixin giving dataclass entities a kind name and dict round-tripping."""

    __slots__ = ()

    KIND: ClassVar[str] = ""
    _DATETIME_FIELDS: ClassVar[Tuple[str, ...]] = ()
    _ENUM_FIELDS: ClassVar[Dict[str, Type[Enum]]] = {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            val = getattr(self, f.name)
            if isinstance(val, datetime):
                val = val.isoformat()
            elif isinstance(val, Enum):
                val = val.value
            out[f.name] = val
        return out

    @classmethod
    def from_dict(cls: Type[E], data: Dict[str, Any]) -> E:
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):  # type: ignore[arg-type]
            if f.name not in data:
                continue
            val = data[f.name]
            if f.name in cls._DATETIME_FIELDS and isinstance(val, str):
                val = datetime.fromisoformat(val)
            elif f.name in cls._ENUM_FIELDS and val is not None:
                val = cls._ENUM_FIELDS[f.name](val)
            kwargs[f.name] = val
        return cls(**kwargs)


# --------------------------------------------------------------------------- #
# Ledger state
# --------------------------------------------------------------------------- #

@dataclass(slots=True)
class Account(Entity):
    """
    Materialized balance record for one chain address.

    `balance_total == balance_free + balance_staked` holds right after a
    reconciliation pass; the incremental path may leave it drifting until
    the next one.
    """

    KIND: ClassVar[str] = "Account"

    id: str
    address: str
    created_at: int
    updated_at: int
    balance_free: int = 0
    balance_staked: int = 0
    balance_total: int = 0


@dataclass(slots=True)
class DelegateBalance(Entity):
    """Stake currently delegated by `account` to `agent`. Never zero."""

    KIND: ClassVar[str] = "DelegateBalance"

    id: str
    account: str
    agent: str
    amount: int
    last_update: int


@dataclass(slots=True)
class DelegationEvent(Entity):
    KIND: ClassVar[str] = "DelegationEvent"
    _ENUM_FIELDS: ClassVar[Dict[str, Type[Enum]]] = {"action": DelegateAction}

    id: str
    height: int
    extrinsic_id: int
    account: str
    agent: str
    amount: int
    action: DelegateAction


@dataclass(slots=True)
class Transfer(Entity):
    KIND: ClassVar[str] = "Transfer"
    _DATETIME_FIELDS: ClassVar[Tuple[str, ...]] = ("timestamp",)

    id: str
    from_address: str
    to_address: str
    amount: int
    block_number: int
    extrinsic_id: int
    timestamp: datetime


@dataclass(slots=True)
class Agent(Entity):
    KIND: ClassVar[str] = "Agent"
    _DATETIME_FIELDS: ClassVar[Tuple[str, ...]] = ("timestamp",)

    id: str
    name: str
    metadata: str
    registered_at: int
    timestamp: datetime
    extrinsic_id: int = -1


# --------------------------------------------------------------------------- #
# Archival records
# --------------------------------------------------------------------------- #

@dataclass(slots=True)
class Block(Entity):
    KIND: ClassVar[str] = "Block"
    _DATETIME_FIELDS: ClassVar[Tuple[str, ...]] = ("timestamp",)

    id: str
    height: int
    event_count: int
    extrinsic_count: int
    timestamp: datetime
    hash: str
    parent_hash: str
    spec_version: int = 0


@dataclass(slots=True)
class Event(Entity):
    KIND: ClassVar[str] = "Event"

    id: str
    block_number: int
    extrinsic_id: int
    event_name: str
    module: str
    data: str


@dataclass(slots=True)
class Extrinsic(Entity):
    KIND: ClassVar[str] = "Extrinsic"

    id: str
    module: str
    method: str
    block_number: int
    extrinsic_id: int
    tip: int
    version: int
    signer: str
    success: bool
    hash: str
    args: str


@dataclass(slots=True)
class Checkpoint(Entity):
    """Last block whose per-block work fully completed."""

    KIND: ClassVar[str] = "Checkpoint"

    id: str
    height: int


ENTITY_KINDS: Dict[str, Type[Entity]] = {
    cls.KIND: cls
    for cls in (
        Account,
        DelegateBalance,
        DelegationEvent,
        Transfer,
        Agent,
        Block,
        Event,
        Extrinsic,
        Checkpoint,
    )
}


# --------------------------------------------------------------------------- #
# Record identifiers (kept bit-exact with previously indexed data)
# --------------------------------------------------------------------------- #

def padded_id(height: int, index: int) -> str:
    return f"{height}-{str(index).zfill(ID_PAD_WIDTH)}"


def transfer_id(height: int, event_index: int) -> str:
    return f"{height}-{event_index}"


def bridge_transfer_id(index: int) -> str:
    return f"bridge-{index}"


def delegate_balance_id(account: str, agent: str) -> str:
    return f"{account}-{agent}"


def delegation_event_id(height: int, account: str, agent: str) -> str:
    return f"{height}-{account}-{agent}"
