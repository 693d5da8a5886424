"""Decode node client JSON output into gateway models."""

import base64
import binascii
import hashlib
from typing import Iterable, List, Mapping, Optional, Tuple

from .models import BlockRecord, EventAttribute, TxEvent, TxRecord


class DecodeError(ValueError):
    """Raised when node output does not have the expected shape."""


def tx_hash_of(raw_tx: bytes) -> str:
    """Return the canonical upper-case hex SHA-256 hash of raw tx bytes."""

    return hashlib.sha256(raw_tx).hexdigest().upper()


def decode_tx(payload: Mapping[str, object]) -> TxRecord:
    if not isinstance(payload, Mapping):
        raise DecodeError("Transaction payload must be a JSON object.")

    log_events: List[TxEvent] = []
    for entry in payload.get("logs") or ():
        if isinstance(entry, Mapping):
            log_events.extend(_decode_events(entry.get("events") or ()))

    return TxRecord(
        tx_hash=str(payload.get("txhash") or ""),
        code=_parse_int(payload.get("code")) or 0,
        height=_parse_height(payload.get("height")),
        log_events=tuple(log_events),
        events=tuple(_decode_events(payload.get("events") or ())),
        raw_log=str(payload.get("raw_log") or ""),
        gas_wanted=_parse_int(payload.get("gas_wanted")),
        gas_used=_parse_int(payload.get("gas_used")),
        timestamp=str(payload.get("timestamp") or ""),
    )


def decode_search(payload: Mapping[str, object]) -> Tuple[TxRecord, ...]:
    if not isinstance(payload, Mapping):
        raise DecodeError("Search payload must be a JSON object.")
    return tuple(decode_tx(item) for item in payload.get("txs") or ())


def decode_block(payload: Mapping[str, object]) -> BlockRecord:
    if not isinstance(payload, Mapping):
        raise DecodeError("Block payload must be a JSON object.")

    block = payload.get("block")
    if not isinstance(block, Mapping):
        raise DecodeError("Block payload is missing 'block'.")

    header = block.get("header") or {}
    height = _parse_height(header.get("height") if isinstance(header, Mapping) else None)
    if height is None:
        raise DecodeError("Block header is missing a height.")

    data = block.get("data") or {}
    encoded = data.get("txs") if isinstance(data, Mapping) else None
    return BlockRecord(
        height=height,
        raw_txs=tuple(_decode_b64(item) for item in encoded or ()),
    )


def decode_balance(payload: Mapping[str, object], denom: str) -> int:
    if not isinstance(payload, Mapping):
        raise DecodeError("Balance payload must be a JSON object.")

    # Single-denom queries return a bare coin object.
    if payload.get("denom") == denom:
        return _parse_int(payload.get("amount")) or 0

    for coin in payload.get("balances") or ():
        if isinstance(coin, Mapping) and coin.get("denom") == denom:
            return _parse_int(coin.get("amount")) or 0
    return 0


def _decode_events(items: Iterable[object]) -> List[TxEvent]:
    events = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        attributes = tuple(
            EventAttribute(key=str(attr.get("key", "")), value=str(attr.get("value", "")))
            for attr in item.get("attributes") or ()
            if isinstance(attr, Mapping)
        )
        events.append(TxEvent(type=str(item.get("type", "")), attributes=attributes))
    return events


def _decode_b64(value: object) -> Optional[bytes]:
    if not isinstance(value, str):
        return None
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None


def _parse_height(value: object) -> Optional[int]:
    height = _parse_int(value)
    if height is None or height <= 0:
        return None
    return height


def _parse_int(value: object) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"Expected an integer, got {value!r}.") from exc
