"""The storage layer for persistent chain state and its key-value backed default."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

from flowemu.encoding import (
    decode_block,
    decode_collection,
    decode_events,
    decode_transaction,
    decode_transaction_result,
    decode_uint64,
    encode_block,
    encode_collection,
    encode_events,
    encode_transaction,
    encode_transaction_result,
    encode_uint64,
)
from flowemu.errors import EntityNotFoundError
from flowemu.model import (
    Block,
    Collection,
    Event,
    ExecutionSnapshot,
    Identifier,
    LightCollection,
    RegisterID,
    StorableTransactionResult,
    TransactionBody,
)

GLOBAL_STORE_NAME = "global"
BLOCK_INDEX_STORE_NAME = "blockIndex"
BLOCK_STORE_NAME = "blocks"
COLLECTION_STORE_NAME = "collections"
TRANSACTION_STORE_NAME = "transactions"
TRANSACTION_RESULT_STORE_NAME = "transactionResults"
EVENT_STORE_NAME = "events"
LEDGER_STORE_NAME = "ledger"


class Store(ABC):
    """Persistent chain state: finalized blocks, transactions, registers and events.

    Lookups of missing entities raise ``EntityNotFoundError``.
    """

    @abstractmethod
    def start(self) -> None:
        """Start the store."""

    @abstractmethod
    def stop(self) -> None:
        """Stop the store."""

    @abstractmethod
    def latest_block_height(self) -> int:
        """Return the height of the latest block."""

    @abstractmethod
    def latest_block(self) -> Block:
        """Return the block with the highest height."""

    @abstractmethod
    def store_block(self, block: Block) -> None:
        """Store a block; storing the same block again succeeds."""

    @abstractmethod
    def block_by_id(self, block_id: Identifier) -> Block:
        """Return the block with the given ID."""

    @abstractmethod
    def block_by_height(self, height: int) -> Block:
        """Return the block at the given height."""

    @abstractmethod
    def commit_block(
        self,
        block: Block,
        collections: Optional[Iterable[LightCollection]],
        transactions: Optional[Mapping[Identifier, TransactionBody]],
        transaction_results: Optional[Mapping[Identifier, StorableTransactionResult]],
        execution_snapshot: Optional[ExecutionSnapshot],
        events: Optional[Iterable[Event]],
    ) -> None:
        """Save the execution results for a block."""

    @abstractmethod
    def collection_by_id(self, collection_id: Identifier) -> LightCollection:
        """Return the collection (transaction IDs only) with the given ID."""

    @abstractmethod
    def full_collection_by_id(self, collection_id: Identifier) -> Collection:
        """Return the collection with full transaction bodies."""

    @abstractmethod
    def transaction_by_id(self, tx_id: Identifier) -> TransactionBody:
        """Return the transaction with the given ID."""

    @abstractmethod
    def transaction_result_by_id(self, tx_id: Identifier) -> StorableTransactionResult:
        """Return the result of the transaction with the given ID."""

    @abstractmethod
    def ledger_by_height(self, block_height: int):
        """Return a read-only view of the ledger at the given block height."""

    @abstractmethod
    def events_by_height(self, block_height: int, event_type: str = "") -> list[Event]:
        """Return the events of a block, optionally only those of one type."""


class SnapshotProvider(ABC):
    """A store that can save and restore named snapshots of its state."""

    @abstractmethod
    def snapshots(self) -> list[str]:
        """Return the names of the existing snapshots."""

    @abstractmethod
    def create_snapshot(self, name: str) -> None:
        """Save the current state under a name."""

    @abstractmethod
    def load_snapshot(self, name: str) -> None:
        """Restore the state saved under a name."""

    @abstractmethod
    def supports_snapshots_with_current_config(self) -> bool:
        """Tell whether snapshots work with the store's configuration."""


class RollbackProvider(ABC):
    """A store that can discard every block above a height."""

    @abstractmethod
    def rollback_to_block_height(self, height: int) -> None:
        """Discard state above the given height."""


@dataclass(frozen=True)
class DefaultKeyGenerator:
    """Builds the store names and keys used by ``DefaultStore``.

    Store names get ``prefix`` in front of them; by default there is none.
    """

    prefix: str = ""

    def storage(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def latest_block(self) -> bytes:
        return b"latest_block_height"

    def forked_block(self) -> bytes:
        return b"forked_block_height"

    def block_height(self, height: int) -> bytes:
        return f"{height:032d}".encode()

    def identifier(self, identifier: Identifier) -> bytes:
        return identifier.hex().encode()


class DefaultStore(Store):
    """A ``Store`` built on a versioned byte key-value backend.

    Subclasses provide the four byte accessors; everything else is shared.
    """

    def __init__(self, key_generator: Optional[DefaultKeyGenerator] = None) -> None:
        self.key_generator = key_generator or DefaultKeyGenerator()
        self.current_height = 0
        self.running = False

    @abstractmethod
    def get_bytes(self, store: str, key: bytes) -> bytes:
        """Return the value under a key, raising ``EntityNotFoundError`` if absent."""

    @abstractmethod
    def get_bytes_at_version(self, store: str, key: bytes, version: int) -> bytes:
        """Return the newest value whose version is at most ``version``."""

    @abstractmethod
    def set_bytes(self, store: str, key: bytes, value: bytes) -> None:
        """Store a value under a key."""

    @abstractmethod
    def set_bytes_with_version(self, store: str, key: bytes, value: bytes, version: int) -> None:
        """Store a value under a key at a version."""

    def _store(self, name: str) -> str:
        return self.key_generator.storage(name)

    def set_block_height(self, height: int) -> None:
        self.current_height = height
        self.set_bytes(
            self._store(GLOBAL_STORE_NAME),
            self.key_generator.latest_block(),
            encode_uint64(height),
        )

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False

    def latest_block_height(self) -> int:
        raw = self.get_bytes(self._store(GLOBAL_STORE_NAME), self.key_generator.latest_block())
        return decode_uint64(raw)

    def latest_block(self) -> Block:
        height = self.latest_block_height()
        raw = self.get_bytes(BLOCK_STORE_NAME, self.key_generator.block_height(height))
        return decode_block(raw)

    def store_block(self, block: Block) -> None:
        height = block.header.height
        self.current_height = height
        encoded = encode_block(block)

        try:
            latest = self.latest_block_height()
        except EntityNotFoundError:
            latest = 0

        self.set_bytes(
            self._store(BLOCK_STORE_NAME),
            self.key_generator.block_height(height),
            encoded,
        )
        self.set_bytes(
            self._store(BLOCK_INDEX_STORE_NAME),
            self.key_generator.identifier(block.id()),
            encode_uint64(height),
        )
        if height >= latest:
            self.set_bytes(
                self._store(GLOBAL_STORE_NAME),
                self.key_generator.latest_block(),
                encode_uint64(height),
            )

    def forked_block_height(self) -> int:
        """Return the height at which the chain forked from a live network."""
        raw = self.get_bytes(self._store(GLOBAL_STORE_NAME), self.key_generator.forked_block())
        return decode_uint64(raw)

    def store_forked_block_height(self, height: int) -> None:
        self.set_bytes(
            self._store(GLOBAL_STORE_NAME),
            self.key_generator.forked_block(),
            encode_uint64(height),
        )

    def block_by_height(self, height: int) -> Block:
        raw = self.get_bytes(self._store(BLOCK_STORE_NAME), self.key_generator.block_height(height))
        return decode_block(raw)

    def block_by_id(self, block_id: Identifier) -> Block:
        raw = self.get_bytes(
            self._store(BLOCK_INDEX_STORE_NAME), self.key_generator.identifier(block_id)
        )
        return self.block_by_height(decode_uint64(raw))

    def collection_by_id(self, collection_id: Identifier) -> LightCollection:
        raw = self.get_bytes(
            self._store(COLLECTION_STORE_NAME), self.key_generator.identifier(collection_id)
        )
        return decode_collection(raw)

    def full_collection_by_id(self, collection_id: Identifier) -> Collection:
        light = self.collection_by_id(collection_id)
        return Collection([self.transaction_by_id(tx_id) for tx_id in light.transactions])

    def insert_collection(self, collection: LightCollection) -> None:
        self.set_bytes(
            self._store(COLLECTION_STORE_NAME),
            self.key_generator.identifier(collection.id()),
            encode_collection(collection),
        )

    def transaction_by_id(self, tx_id: Identifier) -> TransactionBody:
        raw = self.get_bytes(
            self._store(TRANSACTION_STORE_NAME), self.key_generator.identifier(tx_id)
        )
        return decode_transaction(raw)

    def insert_transaction(self, tx: TransactionBody) -> None:
        self.set_bytes(
            self._store(TRANSACTION_STORE_NAME),
            self.key_generator.identifier(tx.id()),
            encode_transaction(tx),
        )

    def transaction_result_by_id(self, tx_id: Identifier) -> StorableTransactionResult:
        raw = self.get_bytes(
            self._store(TRANSACTION_RESULT_STORE_NAME), self.key_generator.identifier(tx_id)
        )
        return decode_transaction_result(raw)

    def insert_transaction_result(
        self, tx_id: Identifier, result: StorableTransactionResult
    ) -> None:
        self.set_bytes(
            self._store(TRANSACTION_RESULT_STORE_NAME),
            self.key_generator.identifier(tx_id),
            encode_transaction_result(result),
        )

    def events_by_height(self, block_height: int, event_type: str = "") -> list[Event]:
        try:
            raw = self.get_bytes(
                self._store(EVENT_STORE_NAME), self.key_generator.block_height(block_height)
            )
        except EntityNotFoundError:
            return []
        return [e for e in decode_events(raw) if not event_type or e.type == event_type]

    def insert_events(self, block_height: int, events: Optional[Iterable[Event]]) -> None:
        self.set_bytes(
            self._store(EVENT_STORE_NAME),
            self.key_generator.block_height(block_height),
            encode_events(events),
        )

    def insert_execution_snapshot(
        self, block_height: int, execution_snapshot: Optional[ExecutionSnapshot]
    ) -> None:
        if execution_snapshot is None:
            return
        for register_id, value in execution_snapshot.write_set.items():
            self.set_bytes_with_version(
                self._store(LEDGER_STORE_NAME),
                str(register_id).encode(),
                value if value is not None else b"",
                block_height,
            )

    def commit_block(
        self,
        block: Block,
        collections: Optional[Iterable[LightCollection]],
        transactions: Optional[Mapping[Identifier, TransactionBody]],
        transaction_results: Optional[Mapping[Identifier, StorableTransactionResult]],
        execution_snapshot: Optional[ExecutionSnapshot],
        events: Optional[Iterable[Event]],
    ) -> None:
        transactions = transactions or {}
        transaction_results = transaction_results or {}
        if len(transactions) != len(transaction_results):
            raise ValueError(
                f"transactions count ({len(transactions)}) does not match "
                f"result count ({len(transaction_results)})"
            )

        self.store_block(block)
        for collection in collections or ():
            self.insert_collection(collection)
        for tx in transactions.values():
            self.insert_transaction(tx)
        for tx_id, result in transaction_results.items():
            self.insert_transaction_result(tx_id, result)
        self.insert_execution_snapshot(block.header.height, execution_snapshot)
        self.insert_events(block.header.height, events)

    def ledger_by_height(self, block_height: int) -> "LedgerSnapshot":
        return LedgerSnapshot(self, block_height)


@dataclass(frozen=True)
class LedgerSnapshot:
    """A read-only view of the ledger registers as of one block height."""

    store: DefaultStore
    block_height: int

    def get(self, register_id: RegisterID) -> Optional[bytes]:
        """Return a register's value, or None if it was never written."""
        try:
            return self.store.get_bytes_at_version(
                self.store.key_generator.storage(LEDGER_STORE_NAME),
                str(register_id).encode(),
                self.block_height,
            )
        except EntityNotFoundError:
            return None