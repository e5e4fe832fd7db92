# ------------------------------------------------------------------------
# tests/test_decoder.py
# ------------------------------------------------------------------------
# Raw substrate payload -> typed values. Anything malformed must raise
# DecodeError instead of leaking half-decoded data.
# ------------------------------------------------------------------------

from datetime import datetime, timezone

import pytest

from torus_indexer.decoder import (
    EventData,
    decode_address,
    decode_amount,
    decode_block,
    decode_stake,
    decode_text,
    decode_transfer,
    to_json,
)
from torus_indexer.errors import DecodeError

from conftest import make_address

HEX_11 = "0x" + "11" * 32


def test_address_forms_agree():
    ss58 = make_address(0x11)
    assert decode_address(ss58) == ss58
    assert decode_address(HEX_11) == ss58
    assert decode_address(bytes.fromhex("11" * 32)) == ss58
    assert decode_address([0x11] * 32) == ss58
    assert decode_address({"Id": HEX_11}) == ss58
    assert decode_address({"value": ss58}) == ss58


@pytest.mark.parametrize("bad", ["not-an-address", "0x1234", b"\x00" * 31, 42, None])
def test_address_rejects_garbage(bad):
    with pytest.raises(DecodeError):
        decode_address(bad)


@pytest.mark.parametrize(
    "raw, expected",
    [(5, 5), ("1,000", 1000), ("0x10", 16), ({"value": "7"}, 7)],
)
def test_amount_forms(raw, expected):
    assert decode_amount(raw) == expected


@pytest.mark.parametrize("bad", [-1, "abc", True, 1.5, None])
def test_amount_rejects_garbage(bad):
    with pytest.raises(DecodeError):
        decode_amount(bad)


def test_text_from_hex_and_bytes():
    assert decode_text("0x" + b"alpha".hex()) == "alpha"
    assert decode_text(b"beta") == "beta"
    assert decode_text("plain") == "plain"
    assert decode_text(None) == ""


def test_transfer_from_named_and_positional_attributes():
    a, b = make_address(1), make_address(2)
    named = EventData(0, "balances", "Transfer", 1, {"from": a, "to": b, "amount": 9})
    positional = EventData(0, "balances", "Transfer", 1, [a, b, "9"])

    for ev in (named, positional):
        args = decode_transfer(ev)
        assert (args.from_address, args.to_address, args.amount) == (a, b, 9)


def test_stake_missing_parameter():
    ev = EventData(0, "torus0", "StakeAdded", 1, [make_address(1)])
    with pytest.raises(DecodeError):
        decode_stake(ev)


def _raw_block(extrinsics):
    return {"block": {"header": {"parentHash": "0xparent"}, "extrinsics": extrinsics}}


def _raw_event(module, event_id, extrinsic_idx, attributes):
    return {
        "phase": "ApplyExtrinsic",
        "extrinsic_idx": extrinsic_idx,
        "event": {"module_id": module, "event_id": event_id, "attributes": attributes},
    }


def test_decode_block_normalises_extrinsics_and_events():
    signer = make_address(3)
    raw = _raw_block(
        [
            {
                "call": {
                    "call_module": "Timestamp",
                    "call_function": "set",
                    "call_args": [{"name": "now", "value": 1735945860000}],
                },
            },
            {
                "address": signer,
                "tip": 0,
                "extrinsic_hash": "0xabc",
                "call": {
                    "call_module": "Balances",
                    "call_function": "transfer_keep_alive",
                    "call_args": [
                        {"name": "dest", "value": make_address(4)},
                        {"name": "value", "value": 10},
                    ],
                },
            },
        ]
    )
    events = [
        _raw_event("System", "ExtrinsicSuccess", 0, {}),
        _raw_event("Balances", "Transfer", 1, {"from": signer, "to": make_address(4), "amount": 10}),
        _raw_event("System", "ExtrinsicFailed", 1, {}),
    ]

    block = decode_block(7, "0xhash", raw, events, spec_version=12)

    assert block.height == 7
    assert block.parent_hash == "0xparent"
    assert block.spec_version == 12
    assert block.timestamp == datetime(2025, 1, 3, 23, 11, tzinfo=timezone.utc)

    ts, xfer = block.extrinsics
    assert (ts.section, ts.method, ts.signer, ts.success) == ("timestamp", "set", "", True)
    assert (xfer.section, xfer.method, xfer.signer, xfer.success) == (
        "balances",
        "transfer_keep_alive",
        signer,
        False,
    )
    assert xfer.version == 4
    assert xfer.arg(1) == 10

    ev = block.events[1]
    assert (ev.section, ev.method, ev.extrinsic_idx) == ("balances", "Transfer", 1)
    assert block.extrinsic_of(ev) is xfer


def test_decode_block_rejects_bad_payloads():
    with pytest.raises(DecodeError):
        decode_block(1, "0xhash", "nonsense", [])
    with pytest.raises(DecodeError):
        decode_block(1, "", _raw_block([]), [])
    with pytest.raises(DecodeError):
        decode_block(1, "0xhash", _raw_block([]), [_raw_event("Balances", None, 0, {})])


def test_event_pointing_at_missing_extrinsic():
    block = decode_block(1, "0xhash", _raw_block([]), [_raw_event("Balances", "Transfer", 3, {})])
    with pytest.raises(DecodeError):
        block.extrinsic_of(block.events[0])


def test_to_json_handles_bytes_and_nesting():
    assert to_json({"a": b"\x01", "b": [1, (2, 3)]}) == '{"a":"0x01","b":[1,[2,3]]}'
