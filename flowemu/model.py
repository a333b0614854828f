"""Chain entities: identifiers, blocks, collections, transactions, events and ledger snapshots."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Mapping, Optional

import cbor2

IDENTIFIER_LENGTH = 32
ADDRESS_LENGTH = 8

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
GENESIS_TIME = datetime(2018, 12, 19, 22, 32, 30, tzinfo=timezone.utc)


def _strip_hex_prefix(text: str) -> str:
    return text[2:] if text.startswith(("0x", "0X")) else text


def _parse_hex(text: str, what: str) -> bytes:
    try:
        return bytes.fromhex(_strip_hex_prefix(text))
    except ValueError as exc:
        raise ValueError(f"invalid {what} hex {text!r}") from exc


@dataclass(frozen=True, order=True)
class Identifier:
    """A 32-byte entity identifier."""

    value: bytes = bytes(IDENTIFIER_LENGTH)

    def __post_init__(self) -> None:
        raw = bytes(self.value)
        if len(raw) != IDENTIFIER_LENGTH:
            raise ValueError(
                f"identifier must be {IDENTIFIER_LENGTH} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "value", raw)

    @classmethod
    def from_hex(cls, text: str) -> "Identifier":
        return cls(_parse_hex(text, "identifier"))

    def hex(self) -> str:
        return self.value.hex()

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.hex()


@dataclass(frozen=True, order=True)
class Address:
    """An 8-byte account address."""

    value: bytes = bytes(ADDRESS_LENGTH)

    def __post_init__(self) -> None:
        raw = bytes(self.value)
        if len(raw) > ADDRESS_LENGTH:
            raise ValueError(f"address must be at most {ADDRESS_LENGTH} bytes, got {len(raw)}")
        object.__setattr__(self, "value", raw.rjust(ADDRESS_LENGTH, b"\x00"))

    @classmethod
    def from_hex(cls, text: str) -> "Address":
        digits = _strip_hex_prefix(text)
        if len(digits) % 2:
            digits = "0" + digits
        return cls(_parse_hex(digits, "address"))

    def hex(self) -> str:
        return self.value.hex()

    def __bytes__(self) -> bytes:
        return self.value

    def __str__(self) -> str:
        return self.hex()


@dataclass(frozen=True, order=True)
class RegisterID:
    """Identifies one ledger register by owner and key; the empty address owns nothing."""

    owner: bytes = b""
    key: str = ""

    def __post_init__(self) -> None:
        owner = self.owner
        if isinstance(owner, Address):
            owner = b"" if owner == Address() else owner.value
        object.__setattr__(self, "owner", bytes(owner))

    def __str__(self) -> str:
        return f"{self.owner.hex()}/{self.key.encode().hex()}"


def _digest(*parts: object) -> Identifier:
    encoded = cbor2.dumps(list(parts), canonical=True)
    return Identifier(hashlib.sha3_256(encoded).digest())


@dataclass
class Header:
    chain_id: str = ""
    parent_id: Identifier = field(default_factory=Identifier)
    height: int = 0
    view: int = 0
    timestamp: datetime = EPOCH
    payload_hash: Identifier = field(default_factory=Identifier)

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None:
            self.timestamp = self.timestamp.replace(tzinfo=timezone.utc)

    def id(self) -> Identifier:
        return _digest(
            self.chain_id,
            self.parent_id.value,
            self.height,
            self.view,
            self.timestamp.astimezone(timezone.utc).isoformat(),
            self.payload_hash.value,
        )


@dataclass
class CollectionGuarantee:
    collection_id: Identifier = field(default_factory=Identifier)
    reference_block_id: Identifier = field(default_factory=Identifier)
    signer_indices: bytes = b""
    signature: bytes = b""


@dataclass
class Payload:
    guarantees: list[CollectionGuarantee] = field(default_factory=list)


def _payload_hash(payload: Payload) -> Identifier:
    return _digest(
        [
            [g.collection_id.value, g.reference_block_id.value, g.signer_indices, g.signature]
            for g in payload.guarantees
        ]
    )


@dataclass
class Block:
    header: Header = field(default_factory=Header)
    payload: Payload = field(default_factory=Payload)

    def id(self) -> Identifier:
        return self.header.id()


@dataclass
class LightCollection:
    """A collection holding only transaction IDs."""

    transactions: list[Identifier] = field(default_factory=list)

    def id(self) -> Identifier:
        return _digest([tx_id.value for tx_id in self.transactions])


@dataclass
class ProposalKey:
    address: Address = field(default_factory=Address)
    key_index: int = 0
    sequence_number: int = 0


@dataclass
class TransactionBody:
    reference_block_id: Identifier = field(default_factory=Identifier)
    script: bytes = b""
    arguments: list[bytes] = field(default_factory=list)
    gas_limit: int = 0
    proposal_key: ProposalKey = field(default_factory=ProposalKey)
    payer: Address = field(default_factory=Address)
    authorizers: list[Address] = field(default_factory=list)

    def id(self) -> Identifier:
        return _digest(
            self.reference_block_id.value,
            self.script,
            list(self.arguments),
            self.gas_limit,
            [
                self.proposal_key.address.value,
                self.proposal_key.key_index,
                self.proposal_key.sequence_number,
            ],
            self.payer.value,
            [a.value for a in self.authorizers],
        )


@dataclass
class Collection:
    """A collection holding full transaction bodies."""

    transactions: list[TransactionBody] = field(default_factory=list)

    def light(self) -> LightCollection:
        return LightCollection([tx.id() for tx in self.transactions])

    def id(self) -> Identifier:
        return self.light().id()


@dataclass
class Event:
    type: str = ""
    transaction_id: Identifier = field(default_factory=Identifier)
    transaction_index: int = 0
    event_index: int = 0
    payload: bytes = b""


@dataclass
class AccountPublicKey:
    index: int = 0
    public_key: bytes = b""
    sign_algo: str = ""
    hash_algo: str = ""
    weight: int = 0
    seq_number: int = 0
    revoked: bool = False


@dataclass
class StorableTransactionResult:
    error_code: int = 0
    error_message: str = ""
    logs: list[str] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    block_id: Identifier = field(default_factory=Identifier)
    block_height: int = 0


@dataclass
class ExecutionSnapshot:
    """The registers written by an execution; a value of None clears a register."""

    write_set: dict[RegisterID, Optional[bytes]] = field(default_factory=dict)


class SnapshotTree:
    """An immutable, layered view of ledger registers."""

    _COMPACTION_THRESHOLD = 10

    def __init__(self, base: Optional[Mapping[RegisterID, Optional[bytes]]] = None) -> None:
        self._layers: tuple[dict[RegisterID, Optional[bytes]], ...] = (
            (dict(base),) if base else ()
        )

    @classmethod
    def _from_layers(cls, layers: tuple[dict, ...]) -> "SnapshotTree":
        tree = cls()
        tree._layers = layers
        return tree

    def append(self, snapshot: Optional[ExecutionSnapshot]) -> "SnapshotTree":
        """Return a new tree with the snapshot's writes layered on top."""
        if snapshot is None or not snapshot.write_set:
            return self
        layers = self._layers + (dict(snapshot.write_set),)
        if len(layers) > self._COMPACTION_THRESHOLD:
            merged: dict[RegisterID, Optional[bytes]] = {}
            for layer in layers:
                merged.update(layer)
            layers = (merged,)
        return self._from_layers(layers)

    def get(self, register_id: RegisterID) -> Optional[bytes]:
        for layer in reversed(self._layers):
            if register_id in layer:
                return layer[register_id]
        return None


def genesis(chain_id: str) -> Block:
    """Return the genesis block of the given chain."""
    payload = Payload()
    header = Header(
        chain_id=chain_id,
        parent_id=Identifier(),
        height=0,
        view=0,
        timestamp=GENESIS_TIME,
        payload_hash=_payload_hash(payload),
    )
    return Block(header=header, payload=payload)