"""An in-memory implementation of the chain state store."""

from __future__ import annotations

import threading
from typing import Iterable, Mapping, Optional

from flowemu.errors import EntityNotFoundError
from flowemu.model import (
    Block,
    Collection,
    Event,
    ExecutionSnapshot,
    Identifier,
    LightCollection,
    SnapshotTree,
    StorableTransactionResult,
    TransactionBody,
)
from flowemu.store import Store


class MemoryStore(Store):
    """Keeps all chain state in process memory; safe for use from several threads."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._block_id_to_height: dict[Identifier, int] = {}
        self._blocks: dict[int, Block] = {}
        self._collections: dict[Identifier, LightCollection] = {}
        self._transactions: dict[Identifier, TransactionBody] = {}
        self._transaction_results: dict[Identifier, StorableTransactionResult] = {}
        self._ledger: dict[int, SnapshotTree] = {}
        self._events_by_block_height: dict[int, list[Event]] = {}
        self._block_height = 0
        self.running = False

    def start(self) -> None:
        with self._lock:
            self.running = True

    def stop(self) -> None:
        with self._lock:
            self.running = False

    def latest_block_height(self) -> int:
        return self.latest_block().header.height

    def latest_block(self) -> Block:
        with self._lock:
            try:
                return self._blocks[self._block_height]
            except KeyError:
                raise EntityNotFoundError() from None

    def store_block(self, block: Block) -> None:
        with self._lock:
            self._store_block(block)

    def _store_block(self, block: Block) -> None:
        height = block.header.height
        self._blocks[height] = block
        self._block_id_to_height[block.id()] = height
        if height > self._block_height:
            self._block_height = height

    def block_by_id(self, block_id: Identifier) -> Block:
        with self._lock:
            try:
                return self._blocks[self._block_id_to_height[block_id]]
            except KeyError:
                raise EntityNotFoundError() from None

    def block_by_height(self, height: int) -> Block:
        with self._lock:
            try:
                return self._blocks[height]
            except KeyError:
                raise EntityNotFoundError() from None

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
        with self._lock:
            if len(transactions) != len(transaction_results):
                raise ValueError(
                    f"transactions count ({len(transactions)}) does not match "
                    f"result count ({len(transaction_results)})"
                )
            self._store_block(block)
            for collection in collections or ():
                self._collections[collection.id()] = collection
            for tx in transactions.values():
                self._transactions[tx.id()] = tx
            for tx_id, result in transaction_results.items():
                self._transaction_results[tx_id] = result
            self._insert_execution_snapshot(block.header.height, execution_snapshot)
            self._insert_events(block.header.height, events)

    def collection_by_id(self, collection_id: Identifier) -> LightCollection:
        with self._lock:
            try:
                return self._collections[collection_id]
            except KeyError:
                raise EntityNotFoundError() from None

    def full_collection_by_id(self, collection_id: Identifier) -> Collection:
        with self._lock:
            try:
                light = self._collections[collection_id]
                return Collection([self._transactions[tx_id] for tx_id in light.transactions])
            except KeyError:
                raise EntityNotFoundError() from None

    def transaction_by_id(self, tx_id: Identifier) -> TransactionBody:
        with self._lock:
            try:
                return self._transactions[tx_id]
            except KeyError:
                raise EntityNotFoundError() from None

    def transaction_result_by_id(self, tx_id: Identifier) -> StorableTransactionResult:
        with self._lock:
            try:
                return self._transaction_results[tx_id]
            except KeyError:
                raise EntityNotFoundError() from None

    def ledger_by_height(self, block_height: int) -> SnapshotTree:
        with self._lock:
            return self._ledger.get(block_height, SnapshotTree())

    def events_by_height(self, block_height: int, event_type: str = "") -> list[Event]:
        with self._lock:
            return [
                event
                for event in self._events_by_block_height.get(block_height, [])
                if not event_type or event.type == event_type
            ]

    def insert_execution_snapshot(
        self, block_height: int, execution_snapshot: Optional[ExecutionSnapshot]
    ) -> None:
        """Layer a snapshot's writes over the ledger of the previous height."""
        with self._lock:
            self._insert_execution_snapshot(block_height, execution_snapshot)

    def _insert_execution_snapshot(
        self, block_height: int, execution_snapshot: Optional[ExecutionSnapshot]
    ) -> None:
        previous = self._ledger.get(block_height - 1, SnapshotTree())
        self._ledger[block_height] = previous.append(execution_snapshot)

    def insert_events(self, block_height: int, events: Optional[Iterable[Event]]) -> None:
        """Append events to those already stored for a block height."""
        with self._lock:
            self._insert_events(block_height, events)

    def _insert_events(self, block_height: int, events: Optional[Iterable[Event]]) -> None:
        self._events_by_block_height.setdefault(block_height, []).extend(events or ())