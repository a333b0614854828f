"""Canonical CBOR encoding of stored entities."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Iterable, Optional, TypeVar

import cbor2

from flowemu.model import (
    EPOCH,
    Address,
    Block,
    CollectionGuarantee,
    Event,
    Header,
    Identifier,
    LightCollection,
    Payload,
    ProposalKey,
    StorableTransactionResult,
    TransactionBody,
)

_MAX_UINT64 = 2**64 - 1

T = TypeVar("T")


def _dumps(value: Any) -> bytes:
    return cbor2.dumps(value, canonical=True, datetime_as_timestamp=False)


def _decode(data: bytes, what: str, convert: Callable[[Any], T]) -> T:
    try:
        return convert(cbor2.loads(data))
    except (cbor2.CBORDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"could not decode {what}: {exc}") from exc


def _map(raw: Any) -> dict:
    if not isinstance(raw, dict):
        raise TypeError("expected a map")
    return raw


def _int(raw: Any) -> int:
    if raw is None:
        return 0
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError("expected an integer")
    return raw


def _bytes(raw: Any) -> bytes:
    if raw is None:
        return b""
    if not isinstance(raw, (bytes, bytearray)):
        raise TypeError("expected a byte string")
    return bytes(raw)


def _str(raw: Any) -> str:
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise TypeError("expected a text string")
    return raw


def _list(raw: Any) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise TypeError("expected an array")
    return raw


def _identifier(raw: Any) -> Identifier:
    return Identifier() if raw is None else Identifier(_bytes(raw))


def _address(raw: Any) -> Address:
    return Address() if raw is None else Address(_bytes(raw))


def _timestamp(raw: Any) -> datetime:
    if raw is None:
        return EPOCH
    if not isinstance(raw, datetime):
        raise TypeError("expected a timestamp")
    return raw


def _header_to(header: Header) -> dict:
    return {
        "ChainID": header.chain_id,
        "ParentID": header.parent_id.value,
        "Height": header.height,
        "View": header.view,
        "Timestamp": header.timestamp,
        "PayloadHash": header.payload_hash.value,
    }


def _header_from(raw: Any) -> Header:
    m = _map(raw)
    return Header(
        chain_id=_str(m.get("ChainID")),
        parent_id=_identifier(m.get("ParentID")),
        height=_int(m.get("Height")),
        view=_int(m.get("View")),
        timestamp=_timestamp(m.get("Timestamp")),
        payload_hash=_identifier(m.get("PayloadHash")),
    )


def _guarantee_to(g: CollectionGuarantee) -> dict:
    return {
        "CollectionID": g.collection_id.value,
        "ReferenceBlockID": g.reference_block_id.value,
        "SignerIndices": g.signer_indices,
        "Signature": g.signature,
    }


def _guarantee_from(raw: Any) -> CollectionGuarantee:
    m = _map(raw)
    return CollectionGuarantee(
        collection_id=_identifier(m.get("CollectionID")),
        reference_block_id=_identifier(m.get("ReferenceBlockID")),
        signer_indices=_bytes(m.get("SignerIndices")),
        signature=_bytes(m.get("Signature")),
    )


def _block_to(block: Block) -> dict:
    return {
        "Header": _header_to(block.header),
        "Payload": {"Guarantees": [_guarantee_to(g) for g in block.payload.guarantees]},
    }


def _block_from(raw: Any) -> Block:
    m = _map(raw)
    header = _header_from(m.get("Header") or {})
    payload_raw = _map(m.get("Payload") or {})
    payload = Payload([_guarantee_from(g) for g in _list(payload_raw.get("Guarantees"))])
    return Block(header=header, payload=payload)


def _collection_to(collection: LightCollection) -> dict:
    return {"Transactions": [tx_id.value for tx_id in collection.transactions]}


def _collection_from(raw: Any) -> LightCollection:
    m = _map(raw)
    return LightCollection([_identifier(t) for t in _list(m.get("Transactions"))])


def _transaction_to(tx: TransactionBody) -> dict:
    return {
        "ReferenceBlockID": tx.reference_block_id.value,
        "Script": tx.script,
        "Arguments": list(tx.arguments),
        "GasLimit": tx.gas_limit,
        "ProposalKey": {
            "Address": tx.proposal_key.address.value,
            "KeyIndex": tx.proposal_key.key_index,
            "SequenceNumber": tx.proposal_key.sequence_number,
        },
        "Payer": tx.payer.value,
        "Authorizers": [a.value for a in tx.authorizers],
    }


def _transaction_from(raw: Any) -> TransactionBody:
    m = _map(raw)
    key = _map(m.get("ProposalKey") or {})
    return TransactionBody(
        reference_block_id=_identifier(m.get("ReferenceBlockID")),
        script=_bytes(m.get("Script")),
        arguments=[_bytes(a) for a in _list(m.get("Arguments"))],
        gas_limit=_int(m.get("GasLimit")),
        proposal_key=ProposalKey(
            address=_address(key.get("Address")),
            key_index=_int(key.get("KeyIndex")),
            sequence_number=_int(key.get("SequenceNumber")),
        ),
        payer=_address(m.get("Payer")),
        authorizers=[_address(a) for a in _list(m.get("Authorizers"))],
    )


def _event_to(event: Event) -> dict:
    return {
        "Type": event.type,
        "TransactionID": event.transaction_id.value,
        "TransactionIndex": event.transaction_index,
        "EventIndex": event.event_index,
        "Payload": event.payload,
    }


def _event_from(raw: Any) -> Event:
    m = _map(raw)
    return Event(
        type=_str(m.get("Type")),
        transaction_id=_identifier(m.get("TransactionID")),
        transaction_index=_int(m.get("TransactionIndex")),
        event_index=_int(m.get("EventIndex")),
        payload=_bytes(m.get("Payload")),
    )


def _result_to(result: StorableTransactionResult) -> dict:
    return {
        "ErrorCode": result.error_code,
        "ErrorMessage": result.error_message,
        "Logs": list(result.logs),
        "Events": [_event_to(e) for e in result.events],
        "BlockID": result.block_id.value,
        "BlockHeight": result.block_height,
    }


def _result_from(raw: Any) -> StorableTransactionResult:
    m = _map(raw)
    return StorableTransactionResult(
        error_code=_int(m.get("ErrorCode")),
        error_message=_str(m.get("ErrorMessage")),
        logs=[_str(line) for line in _list(m.get("Logs"))],
        events=[_event_from(e) for e in _list(m.get("Events"))],
        block_id=_identifier(m.get("BlockID")),
        block_height=_int(m.get("BlockHeight")),
    )


def encode_block(block: Block) -> bytes:
    return _dumps(_block_to(block))


def decode_block(data: bytes) -> Block:
    return _decode(data, "block", _block_from)


def encode_collection(collection: LightCollection) -> bytes:
    return _dumps(_collection_to(collection))


def decode_collection(data: bytes) -> LightCollection:
    return _decode(data, "collection", _collection_from)


def encode_transaction(tx: TransactionBody) -> bytes:
    return _dumps(_transaction_to(tx))


def decode_transaction(data: bytes) -> TransactionBody:
    return _decode(data, "transaction", _transaction_from)


def encode_transaction_result(result: StorableTransactionResult) -> bytes:
    return _dumps(_result_to(result))


def decode_transaction_result(data: bytes) -> StorableTransactionResult:
    return _decode(data, "transaction result", _result_from)


def _check_uint64(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= _MAX_UINT64:
        raise ValueError(f"{value!r} is not an unsigned 64-bit integer")
    return value


def encode_uint64(value: int) -> bytes:
    return _dumps(_check_uint64(value))


def decode_uint64(data: bytes) -> int:
    return _decode(data, "uint64", _check_uint64)


def encode_events(events: Optional[Iterable[Event]]) -> bytes:
    return _dumps([_event_to(e) for e in events or ()])


def decode_events(data: bytes) -> list[Event]:
    return _decode(data, "events", lambda raw: [_event_from(e) for e in _list(raw)])