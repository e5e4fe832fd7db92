# ======================================================================
#
# torus_indexer/decoder.py
#
# Validated decoding boundary between raw substrate payloads and the
# ledgers:
#   • decode_block(): normalises get_block()/get_events() output into
#     BlockData with typed extrinsics and events.
#   • decode_*(): typed payloads for the events the ledgers consume.
#
# Anything that cannot be decoded raises DecodeError; the caller aborts
# the block instead of indexing half-decoded values.
#
# ======================================================================

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

import bittensor as bt
from substrateinterface.utils.ss58 import ss58_decode, ss58_encode

from torus_indexer.config import SS58_FORMAT
from torus_indexer.errors import DecodeError

# ── dataclasses ─────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class ExtrinsicData:
    index: int
    section: str
    method: str
    signer: str
    tip: int
    version: int
    hash: str
    args: Tuple[Tuple[str, Any], ...] = ()
    success: bool = False

    def arg(self, idx: int) -> Any:
        try:
            return self.args[idx][1]
        except IndexError:
            raise DecodeError(
                f"extrinsic {self.section}.{self.method} has no argument #{idx}"
            ) from None


@dataclass(slots=True, frozen=True)
class EventData:
    index: int
    section: str
    method: str
    extrinsic_idx: Optional[int]
    attributes: Any = ()


@dataclass(slots=True, frozen=True)
class BlockData:
    height: int
    hash: str
    parent_hash: str
    timestamp: datetime
    spec_version: int = 0
    extrinsics: Tuple[ExtrinsicData, ...] = ()
    events: Tuple[EventData, ...] = ()

    def extrinsic_of(self, event: EventData) -> Optional[ExtrinsicData]:
        if event.extrinsic_idx is None:
            return None
        if 0 <= event.extrinsic_idx < len(self.extrinsics):
            return self.extrinsics[event.extrinsic_idx]
        raise DecodeError(
            f"block {self.height}: event #{event.index} points at missing extrinsic {event.extrinsic_idx}"
        )


@dataclass(slots=True, frozen=True)
class TransferArgs:
    from_address: str
    to_address: str
    amount: int


@dataclass(slots=True, frozen=True)
class StakeArgs:
    account: str
    agent: str
    amount: int


@dataclass(slots=True, frozen=True)
class AgentRegisteredArgs:
    key: str
    name: str
    metadata: str


# ── scalar decoders ─────────────────────────────────────────────────────


def unwrap(obj: Any) -> Any:
    """Strip scalecodec / substrate-interface wrappers down to plain values."""
    while True:
        if hasattr(obj, "value_serialized"):
            obj = obj.value_serialized
        elif hasattr(obj, "value") and not isinstance(obj, (dict, str, bytes, bytearray, int)):
            obj = obj.value
        elif isinstance(obj, dict) and set(obj.keys()) == {"value"}:
            obj = obj["value"]
        else:
            return obj


def decode_address(obj: Any, ss58_format: int = SS58_FORMAT) -> str:
    """Return the SS58 form of an AccountId given as SS58, hex, bytes or int list."""
    obj = unwrap(obj)
    if isinstance(obj, dict):
        inner = obj.get("Id") or obj.get("AccountId") or obj.get("AccountId32")
        if inner is None and len(obj) == 1:
            inner = next(iter(obj.values()))
        if inner is None:
            raise DecodeError(f"unrecognised account shape: {obj!r}")
        return decode_address(inner, ss58_format)
    if isinstance(obj, (list, tuple)):
        if len(obj) == 32 and all(isinstance(x, int) for x in obj):
            return ss58_encode(bytes(obj), ss58_format=ss58_format)
        if len(obj) == 1:
            return decode_address(obj[0], ss58_format)
        raise DecodeError(f"unrecognised account shape: {obj!r}")
    if isinstance(obj, (bytes, bytearray)):
        if len(obj) != 32:
            raise DecodeError(f"account id must be 32 bytes, got {len(obj)}")
        return ss58_encode(bytes(obj), ss58_format=ss58_format)
    if isinstance(obj, str):
        s = obj.strip()
        if s.startswith("0x"):
            if len(s) != 66:
                raise DecodeError(f"account id must be 32 bytes hex: {s!r}")
            try:
                return ss58_encode(s, ss58_format=ss58_format)
            except ValueError as e:
                raise DecodeError(f"bad hex account id {s!r}: {e}") from e
        try:
            ss58_decode(s)
        except ValueError as e:
            raise DecodeError(f"bad SS58 address {s!r}: {e}") from e
        return s
    raise DecodeError(f"unrecognised account value of type {type(obj).__name__}")


def decode_amount(obj: Any) -> int:
    """Non-negative integer from an int, a decimal / hex string or a wrapped value."""
    obj = unwrap(obj)
    if isinstance(obj, bool):
        raise DecodeError("boolean is not an amount")
    if isinstance(obj, int):
        value = obj
    elif isinstance(obj, str):
        s = obj.strip().replace(",", "")
        try:
            value = int(s, 16) if s.lower().startswith("0x") else int(s)
        except ValueError:
            raise DecodeError(f"non-integer amount {obj!r}") from None
    else:
        raise DecodeError(f"unrecognised amount value of type {type(obj).__name__}")
    if value < 0:
        raise DecodeError(f"negative amount {value}")
    return value


def decode_text(obj: Any) -> str:
    """Human-readable text for a Vec<u8> argument (hex, bytes or already a string)."""
    obj = unwrap(obj)
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, (list, tuple)) and all(isinstance(x, int) for x in obj):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, str):
        if obj.startswith("0x"):
            try:
                return bytes.fromhex(obj[2:]).decode("utf-8", errors="replace")
            except ValueError:
                return obj
        return obj
    if obj is None:
        return ""
    return str(obj)


def _name(obj: Any) -> str:
    """String name for a call-module / call-function / event id."""
    obj = unwrap(obj)
    if isinstance(obj, dict):
        obj = obj.get("name")
    elif hasattr(obj, "name"):
        obj = obj.name
    if isinstance(obj, bytes):
        obj = obj.decode()
    if not isinstance(obj, str) or not obj:
        raise DecodeError(f"missing pallet / method name: {obj!r}")
    return obj


def _section(obj: Any) -> str:
    return _name(obj).lower()


def _jsonable(obj: Any) -> Any:
    obj = unwrap(obj)
    if isinstance(obj, (bytes, bytearray)):
        return "0x" + bytes(obj).hex()
    if isinstance(obj, dict):
        return {str(k): _jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(v) for v in obj]
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


def to_json(obj: Any) -> str:
    return json.dumps(_jsonable(obj), separators=(",", ":"))


# ── event attribute access ──────────────────────────────────────────────


def _param(params: Any, names: Sequence[str], idx: int) -> Any:
    """Fetch an event parameter by name (dict-shaped) or position (list-shaped)."""
    params = unwrap(params)
    if isinstance(params, dict):
        for k in names:
            if k in params:
                return params[k]
        values = list(params.values())
    elif isinstance(params, (list, tuple)):
        values = list(params)
        # list of {"name": ..., "value": ...} rows
        for item in values:
            if isinstance(item, dict) and item.get("name") in names and "value" in item:
                return item["value"]
    else:
        raise DecodeError(f"unrecognised event attributes of type {type(params).__name__}")
    try:
        val = values[idx]
    except IndexError:
        raise DecodeError(f"event parameter #{idx} ({names[0]}) missing") from None
    return val["value"] if isinstance(val, dict) and "value" in val and "name" in val else val


def decode_transfer(event: EventData, ss58_format: int = SS58_FORMAT) -> TransferArgs:
    params = event.attributes
    return TransferArgs(
        from_address=decode_address(_param(params, ("from",), 0), ss58_format),
        to_address=decode_address(_param(params, ("to",), 1), ss58_format),
        amount=decode_amount(_param(params, ("amount", "value"), 2)),
    )


def decode_stake(event: EventData, ss58_format: int = SS58_FORMAT) -> StakeArgs:
    params = event.attributes
    return StakeArgs(
        account=decode_address(_param(params, ("staker", "account", "who"), 0), ss58_format),
        agent=decode_address(_param(params, ("staked", "agent", "agent_key"), 1), ss58_format),
        amount=decode_amount(_param(params, ("amount", "stake"), 2)),
    )


def decode_agent_registered(
    event: EventData,
    extrinsic: ExtrinsicData,
    ss58_format: int = SS58_FORMAT,
) -> AgentRegisteredArgs:
    """Agent key comes from the event; name and metadata from call args #1 and #2."""
    return AgentRegisteredArgs(
        key=decode_address(_param(event.attributes, ("agent", "agent_key"), 0), ss58_format),
        name=decode_text(extrinsic.arg(1)),
        metadata=decode_text(extrinsic.arg(2)),
    )


def decode_agent_key(event: EventData, ss58_format: int = SS58_FORMAT) -> str:
    return decode_address(_param(event.attributes, ("agent", "agent_key"), 0), ss58_format)


# ── block decoding ──────────────────────────────────────────────────────


def _extrinsic_value(ex: Any) -> Dict[str, Any]:
    ex = unwrap(ex)
    if not isinstance(ex, dict):
        raise DecodeError(f"extrinsic of type {type(ex).__name__} is not a mapping")
    return ex


def _call_args(call: Dict[str, Any]) -> Tuple[Tuple[str, Any], ...]:
    raw = call.get("call_args")
    if raw is None:
        raw = call.get("args") or ()
    if isinstance(raw, dict):
        return tuple((str(k), v) for k, v in raw.items())
    out: List[Tuple[str, Any]] = []
    for i, item in enumerate(raw):
        if isinstance(item, dict) and "name" in item:
            out.append((str(item["name"]), item.get("value")))
        else:
            out.append((str(i), item))
    return tuple(out)


def _decode_extrinsic(index: int, ex: Any, ss58_format: int) -> ExtrinsicData:
    value = _extrinsic_value(ex)
    call = value.get("call")
    if not isinstance(call, dict):
        raise DecodeError(f"extrinsic #{index} has no call")
    signer_raw = value.get("address")
    return ExtrinsicData(
        index=index,
        section=_section(call.get("call_module")),
        method=_name(call.get("call_function")),
        signer=decode_address(signer_raw, ss58_format) if signer_raw else "",
        tip=decode_amount(value.get("tip") or 0),
        version=int(value.get("version") or 4),
        hash=str(value.get("extrinsic_hash") or ""),
        args=_call_args(call),
    )


def _decode_event(index: int, ev: Any) -> EventData:
    ev = unwrap(ev)
    if not isinstance(ev, dict):
        raise DecodeError(f"event #{index} of type {type(ev).__name__} is not a mapping")
    inner = ev.get("event") if isinstance(ev.get("event"), dict) else ev
    module = inner.get("module_id") or inner.get("section")
    method = inner.get("event_id") or inner.get("method")
    attributes = inner.get("attributes")
    if attributes is None:
        attributes = inner.get("data") or ()

    idx = ev.get("extrinsic_idx")
    if idx is None:
        idx = ev.get("extrinsic_index")
    if idx is not None:
        try:
            idx = int(idx)
        except (TypeError, ValueError):
            raise DecodeError(f"event #{index} has a non-integer extrinsic index {idx!r}") from None

    return EventData(
        index=index,
        section=_section(module),
        method=_name(method),
        extrinsic_idx=idx,
        attributes=attributes,
    )


def _block_timestamp(extrinsics: Sequence[ExtrinsicData]) -> Optional[datetime]:
    for ex in extrinsics:
        if ex.section == "timestamp" and ex.method == "set" and ex.args:
            ms = decode_amount(ex.args[0][1])
            return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return None


def decode_block(
    height: int,
    block_hash: str,
    raw_block: Any,
    raw_events: Any,
    *,
    spec_version: int = 0,
    ss58_format: int = SS58_FORMAT,
) -> BlockData:
    """Normalise substrate `get_block` / `get_events` output for block *height*."""
    if not isinstance(height, int) or height < 0:
        raise DecodeError(f"invalid block height {height!r}")
    if not block_hash:
        raise DecodeError(f"block {height}: empty block hash")

    raw_block = unwrap(raw_block)
    if not isinstance(raw_block, dict):
        raise DecodeError(f"block {height}: get_block returned {type(raw_block).__name__}")
    body = raw_block.get("block") if isinstance(raw_block.get("block"), dict) else raw_block
    header = body.get("header") or {}
    raw_extrinsics = body.get("extrinsics") or []
    if not isinstance(raw_extrinsics, list):
        raise DecodeError(f"block {height}: extrinsics is {type(raw_extrinsics).__name__}, expected list")
    if not isinstance(raw_events, list):
        raise DecodeError(f"block {height}: events is {type(raw_events).__name__}, expected list")

    extrinsics = [_decode_extrinsic(i, ex, ss58_format) for i, ex in enumerate(raw_extrinsics)]
    events = tuple(_decode_event(i, ev) for i, ev in enumerate(raw_events))

    succeeded = {
        ev.extrinsic_idx
        for ev in events
        if ev.section == "system" and ev.method == "ExtrinsicSuccess" and ev.extrinsic_idx is not None
    }
    extrinsics = [
        ExtrinsicData(
            index=ex.index,
            section=ex.section,
            method=ex.method,
            signer=ex.signer,
            tip=ex.tip,
            version=ex.version,
            hash=ex.hash,
            args=ex.args,
            success=ex.index in succeeded,
        )
        for ex in extrinsics
    ]

    timestamp = _block_timestamp(extrinsics)
    if timestamp is None:
        bt.logging.debug(f"[decoder] block {height} carries no timestamp extrinsic; using wall clock")
        timestamp = datetime.now(timezone.utc)

    return BlockData(
        height=height,
        hash=str(block_hash),
        parent_hash=str(header.get("parentHash") or header.get("parent_hash") or ""),
        timestamp=timestamp,
        spec_version=int(spec_version or 0),
        extrinsics=tuple(extrinsics),
        events=events,
    )
